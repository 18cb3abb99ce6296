"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (DELPHISCAN__SECTION__KEY)
3. Project YAML (<root>/.delphiscan/config.yaml)
4. Global YAML (~/.config/delphiscan/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    DELPHISCAN__<SECTION>__<KEY>=<VALUE>

Examples:
    DELPHISCAN__LOGGING__LEVEL=DEBUG
    DELPHISCAN__SCANNER__MAX_WORKERS=8
    DELPHISCAN__SQL__QUOTE_RESERVED_WORDS=true
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from delphiscan.config.constants import (
    DEFAULT_CONFIGURATION,
    DEFAULT_PLATFORM,
    PRUNABLE_DIRS,
    UNIT_FILE_EXTENSIONS,
)

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration."""

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        DELPHISCAN__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs every unit and query.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class ScannerConfig(BaseModel):
    """Project scanning configuration.

    Env vars:
        DELPHISCAN__SCANNER__MAX_WORKERS: Parallel unit workers per project
        DELPHISCAN__SCANNER__MAX_PROJECTS: Projects scanned concurrently in batch mode
    """

    max_workers: int = Field(
        default=4,
        description="Parallel unit workers per project scan. 1 scans sequentially.",
    )
    max_projects: int = Field(
        default=2,
        description="Projects scanned concurrently by batch scans.",
    )
    unit_extensions: list[str] = Field(
        default_factory=lambda: list(UNIT_FILE_EXTENSIONS),
        description="Extensions tried, in order, when resolving a unit name to a file.",
    )
    extra_system_prefixes: list[str] = Field(
        default_factory=list,
        description="Additional unit-name prefixes treated as third-party/runtime units "
        "and never resolved against disk (e.g. 'cx', 'dx' for DevExpress).",
    )
    prune_dirs: list[str] = Field(
        default_factory=lambda: sorted(PRUNABLE_DIRS),
        description="Directory names skipped by folder scans.",
    )
    fallback_encoding: str = Field(
        default="cp1252",
        description="Encoding used when a source file is not valid UTF-8.",
    )

    @field_validator("max_workers", "max_projects")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Must be at least 1, got {v}")
        return v

    @field_validator("unit_extensions")
    @classmethod
    def validate_extensions(cls, v: list[str]) -> list[str]:
        return [ext if ext.startswith(".") else f".{ext}" for ext in v]


class ProjectFileConfig(BaseModel):
    """.dproj interpretation.

    Env vars:
        DELPHISCAN__PROJECT_FILE__DEFAULT_PLATFORM: Platform substituted for $(Platform)
        DELPHISCAN__PROJECT_FILE__DEFAULT_CONFIG: Configuration substituted for $(Config)
    """

    variables: dict[str, str] = Field(
        default_factory=dict,
        description="Extra $(Name) substitutions for project-file paths, "
        "e.g. {'BDS': '/opt/embarcadero/23.0'}.",
    )
    default_platform: str = Field(default=DEFAULT_PLATFORM)
    default_config: str = Field(default=DEFAULT_CONFIGURATION)


class SqlConfig(BaseModel):
    """SQL reconstruction configuration.

    Env vars:
        DELPHISCAN__SQL__QUOTE_RESERVED_WORDS: Quote reserved identifiers in reconstructed SQL
    """

    quote_reserved_words: bool = Field(
        default=False,
        description="Rewrite reconstructed SQL so reserved words used as identifiers are quoted.",
    )


class DelphiScanConfig(BaseModel):
    """Root configuration for delphiscan."""

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    project_file: ProjectFileConfig = Field(default_factory=ProjectFileConfig)
    sql: SqlConfig = Field(default_factory=SqlConfig)
