"""Local file reading for Delphi sources.

Delphi sources in the wild are a mix of UTF-8 (with or without BOM) and
legacy ANSI code pages. Text is decoded as UTF-8 first and falls back to a
single-byte encoding that never fails.
"""

from __future__ import annotations

from pathlib import Path

import structlog

log = structlog.get_logger(__name__)


class LocalSourceReader:
    """SourceReader over the local file system."""

    def __init__(self, fallback_encoding: str = "cp1252") -> None:
        self.fallback_encoding = fallback_encoding

    def read_text(self, path: Path) -> str:
        data = path.read_bytes()
        try:
            return data.decode("utf-8-sig")
        except UnicodeDecodeError:
            log.debug("source_decode_fallback", path=str(path), encoding=self.fallback_encoding)
            return data.decode(self.fallback_encoding, errors="replace")

    def size(self, path: Path) -> int:
        return path.stat().st_size
