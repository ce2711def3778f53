"""Cooperative cancellation signal shared between a caller and a run."""

from __future__ import annotations

import asyncio


class CancellationToken:
    """Set once by the caller; polled by the executor at suspension points."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason = ""

    def cancel(self, reason: str = "cancelled by caller") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
