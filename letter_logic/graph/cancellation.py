from __future__ import annotations

import threading


class Cancelled(Exception):
    """Raised inside evaluation when the caller cancelled the request."""


class CancellationToken:
    """Caller-owned flag checked at every node visit and loop iteration."""

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: str | None = None

    def cancel(self, reason: str | None = None) -> None:
        self._reason = reason or "Cancelled by caller"
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> str | None:
        return self._reason

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise Cancelled(self._reason or "Cancelled by caller")
