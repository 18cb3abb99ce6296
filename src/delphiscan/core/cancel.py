"""Cooperative cancellation for long project and batch scans."""

from __future__ import annotations

import threading

from delphiscan.core.errors import ScanCancelled


class CancellationToken:
    """Thread-safe flag checked by scanners between units and projects.

    Work already running on a worker is never interrupted; the token only
    stops new work from being started.
    """

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, what: str = "next unit") -> None:
        if self._event.is_set():
            raise ScanCancelled.between(what)
