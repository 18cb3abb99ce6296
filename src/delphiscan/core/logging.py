"""Structured logging for scans.

Events carry the scan they belong to: ``scan_context`` binds ``scan_id`` and
``target`` for a project scan, ``unit_context`` adds ``unit`` while one unit
is scanned. The binding lives in structlog's context variables. Executor
threads start with an empty context, so work handed to a pool goes through
``submit_with_context``.

Outputs come from ``LoggingConfig``. Each writes console or JSON lines to
stderr, stdout or an absolute file path at its own level; console outputs
go quiet while a Rich progress bar is live.
"""

from __future__ import annotations

import contextvars
import logging
import sys
from collections.abc import Callable, Iterator
from concurrent.futures import Executor, Future
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Any
from uuid import uuid4

import structlog

if TYPE_CHECKING:
    from delphiscan.config.models import LoggingConfig, LogOutputConfig

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# Run on structlog events and on records from plain stdlib loggers alike.
_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S", key="timestamp"),
]

_STREAMS = ("stderr", "stdout")


# -----------------------------------------------------------------------------
# Scan context
# -----------------------------------------------------------------------------


def new_scan_id() -> str:
    return uuid4().hex[:12]


def get_scan_id() -> str | None:
    """ID bound by the innermost active ``scan_context``, if any."""
    scan_id = structlog.contextvars.get_contextvars().get("scan_id")
    return scan_id if isinstance(scan_id, str) else None


@contextmanager
def scan_context(target: str, scan_id: str | None = None) -> Iterator[str]:
    """Tag every event logged inside the block with a scan ID; yields the ID.

    Leaving the block restores whatever was bound before, so a batch scan
    can nest project scans without leaking IDs between them.
    """
    sid = scan_id or new_scan_id()
    with structlog.contextvars.bound_contextvars(scan_id=sid, target=target):
        yield sid


def unit_context(unit_name: str) -> AbstractContextManager[None]:
    return structlog.contextvars.bound_contextvars(unit=unit_name)


def submit_with_context[T](
    executor: Executor, fn: Callable[..., T], /, *args: Any, **kwargs: Any
) -> Future[T]:
    """``executor.submit`` running ``fn`` under a copy of the caller's log context."""
    context = contextvars.copy_context()
    return executor.submit(context.run, fn, *args, **kwargs)


# -----------------------------------------------------------------------------
# Outputs
# -----------------------------------------------------------------------------


class ConsoleSuppressingFilter(logging.Filter):
    """Blocks console log records while a Rich progress bar is live.

    File handlers keep receiving everything.
    """

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: ARG002
        from delphiscan.core.progress import is_console_suppressed

        return not is_console_suppressed()


def _level(name: str | None, default: int = logging.WARNING) -> int:
    return _LEVELS.get(name.upper(), default) if name else default


def _build_handler(output: LogOutputConfig, level: int) -> logging.Handler:
    handler: logging.Handler
    if output.destination in _STREAMS:
        stream = sys.stderr if output.destination == "stderr" else sys.stdout
        handler = logging.StreamHandler(stream)
        handler.addFilter(ConsoleSuppressingFilter())
        colors = stream.isatty()
    else:
        path = Path(output.destination)
        path.parent.mkdir(parents=True, exist_ok=True)
        handler = logging.FileHandler(path, mode="a", encoding="utf-8")
        colors = False

    processors: list[structlog.types.Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta
    ]
    if output.format == "json":
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        processors.append(
            structlog.dev.ConsoleRenderer(colors=colors, pad_event_to=0, pad_level=False)
        )
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(processors=processors, foreign_pre_chain=_PRE_CHAIN)
    )
    handler.setLevel(level)
    return handler


def configure_logging(
    *,
    config: LoggingConfig | None = None,
    json_format: bool = False,
    level: str = "WARNING",
) -> None:
    """Route log events to the outputs of ``config``.

    Without ``config`` a single stderr output is built from ``json_format``
    and ``level``; the CLI does this before any config file has been read.
    Calling again replaces the previous outputs and closes their files.
    """
    from delphiscan.config.models import LoggingConfig, LogOutputConfig

    if config is None:
        config = LoggingConfig(
            level=level,  # type: ignore[arg-type]
            outputs=[LogOutputConfig(format="json" if json_format else "console")],
        )

    default_level = _level(config.level)
    levels = [_level(output.level, default_level) for output in config.outputs]
    # Loggers pass anything some output wants; each handler filters for itself.
    lowest = min(levels, default=default_level)

    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.make_filtering_bound_logger(lowest),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    root = logging.getLogger()
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(lowest)
    for output, output_level in zip(config.outputs, levels, strict=True):
        root.addHandler(_build_handler(output, output_level))


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)  # type: ignore[no-any-return]
