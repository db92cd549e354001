"""Multiple-readers-or-one-writer lock guarding a context."""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, Optional

from causalis.errors import ContextLockError


class ReadWriteLock:
    """Reader-preferring read/write lock.

    Read leases are shared and reentrant per thread. A write lease waits
    until every read lease is released. A thread that holds a read lease and
    asks for a write lease gets ContextLockError instead of deadlocking on
    itself. The writer thread may take read leases.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers: Dict[int, int] = {}
        self._writer: Optional[int] = None
        self._write_depth = 0

    @property
    def reader_count(self) -> int:
        with self._cond:
            return sum(self._readers.values())

    @property
    def is_write_locked(self) -> bool:
        with self._cond:
            return self._writer is not None

    def holds_read(self) -> bool:
        with self._cond:
            return threading.get_ident() in self._readers

    @contextmanager
    def read(self) -> Iterator[None]:
        ident = threading.get_ident()
        with self._cond:
            while self._writer is not None and self._writer != ident:
                self._cond.wait()
            self._readers[ident] = self._readers.get(ident, 0) + 1
        try:
            yield
        finally:
            with self._cond:
                depth = self._readers[ident] - 1
                if depth:
                    self._readers[ident] = depth
                else:
                    del self._readers[ident]
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        ident = threading.get_ident()
        with self._cond:
            if self._writer == ident:
                self._write_depth += 1
            else:
                if ident in self._readers:
                    raise ContextLockError()
                while self._writer is not None or self._readers:
                    self._cond.wait()
                self._writer = ident
                self._write_depth = 1
        try:
            yield
        finally:
            with self._cond:
                self._write_depth -= 1
                if self._write_depth == 0:
                    self._writer = None
                    self._cond.notify_all()
