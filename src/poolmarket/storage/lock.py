"""Process-wide reader/writer lock guarding the record store."""

from __future__ import annotations

from contextlib import contextmanager
from threading import Condition, Lock
from typing import Iterator

from poolmarket.storage.errors import LockTimeout


class RWLock:
    """Shared/exclusive lock with acquisition timeouts.

    Any number of readers may hold the lock together; a writer holds it alone.
    A waiting writer stops new readers from entering, and a releasing writer
    hands the lock to the readers already waiting before the next writer
    runs. Neither side can starve the other under sustained load.
    """

    def __init__(self) -> None:
        self._cond = Condition(Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0
        self._readers_waiting = 0
        # Set by a releasing writer while queued readers still have to get in
        self._read_turn = False

    def _end_read_turn_if_drained(self) -> None:
        if self._read_turn and self._readers_waiting == 0:
            self._read_turn = False
            self._cond.notify_all()

    def acquire_read(self, timeout: float | None = None) -> bool:
        with self._cond:
            self._readers_waiting += 1
            ok = self._cond.wait_for(
                lambda: not self._writer and (self._writers_waiting == 0 or self._read_turn),
                timeout,
            )
            self._readers_waiting -= 1
            if ok:
                self._readers += 1
            self._end_read_turn_if_drained()
            return ok

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self, timeout: float | None = None) -> bool:
        with self._cond:
            self._writers_waiting += 1
            ok = self._cond.wait_for(
                lambda: not self._writer and self._readers == 0 and not self._read_turn,
                timeout,
            )
            self._writers_waiting -= 1
            if ok:
                self._writer = True
            else:
                # Readers parked behind this writer may proceed now
                self._cond.notify_all()
            return ok

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            if self._readers_waiting:
                self._read_turn = True
            self._cond.notify_all()

    @property
    def locked_for_write(self) -> bool:
        return self._writer

    @property
    def reader_count(self) -> int:
        return self._readers

    @contextmanager
    def read(self, timeout: float | None = None) -> Iterator[None]:
        if not self.acquire_read(timeout):
            raise LockTimeout("read", timeout)
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self, timeout: float | None = None) -> Iterator[None]:
        if not self.acquire_write(timeout):
            raise LockTimeout("write", timeout)
        try:
            yield
        finally:
            self.release_write()
