"""Infrastructure failures of the record store (map to 5xx, never to domain errors)."""

from __future__ import annotations


class StoreError(Exception):
    """Base class for record store failures."""


class RecordMissing(StoreError):
    """A record referenced by another record could not be read."""


class LockTimeout(StoreError):
    """The store lock could not be acquired in time."""

    def __init__(self, mode: str, timeout: float | None) -> None:
        super().__init__(f"timed out acquiring {mode} store lock after {timeout}s")
        self.mode = mode
        self.timeout = timeout
