from __future__ import annotations

from threading import Event


class CancellationToken:
    """One-way flag telling a background load that its result is no longer wanted."""

    def __init__(self) -> None:
        self._event = Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
