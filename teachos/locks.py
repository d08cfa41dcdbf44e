"""Spin locks for short critical sections and sleep locks for long ones."""

from __future__ import annotations

import threading
import traceback
from typing import Optional

from .layout import KernelPanic

_MAX_PCS = 10


class SpinLock:
    """A mutual-exclusion lock owned by the thread that acquired it."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._lock = threading.Lock()
        self.owner: Optional[int] = None
        self.pcs: list[traceback.FrameSummary] = []

    @property
    def locked(self) -> bool:
        """Whether any thread holds the lock."""
        return self._lock.locked()

    def holding(self) -> bool:
        """Whether the calling thread holds the lock."""
        return self._lock.locked() and self.owner == threading.get_ident()

    def acquire(self) -> None:
        """Take the lock, waiting while another thread holds it."""
        if self.holding():
            raise KernelPanic("acquire")
        self._lock.acquire()
        self.owner = threading.get_ident()
        self.pcs = traceback.extract_stack(limit=_MAX_PCS + 1)[:-1]

    def release(self) -> None:
        """Give the lock up; only its holder may do so."""
        if not self.holding():
            raise KernelPanic("release")
        self.pcs = []
        self.owner = None
        self._lock.release()

    def __enter__(self) -> SpinLock:
        self.acquire()
        return self

    def __exit__(self, *args) -> None:
        self.release()


class SleepLock:
    """A long-term lock; waiters sleep until it is released."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._cond = threading.Condition()
        self.locked = False
        self.pid = 0

    def acquire(self, pid: int) -> None:
        """Take the lock on behalf of process pid, sleeping while it is held."""
        with self._cond:
            while self.locked:
                self._cond.wait()
            self.locked = True
            self.pid = pid

    def release(self) -> None:
        """Give the lock up and wake every waiter."""
        with self._cond:
            self.locked = False
            self.pid = 0
            self._cond.notify_all()

    def holding(self) -> bool:
        """Whether the lock is held by anyone."""
        with self._cond:
            return self.locked