"""Thread-safe registry of subscriber callback URLs."""

from __future__ import annotations

import bisect
import threading
from contextlib import contextmanager
from enum import Enum
from typing import Collection, Iterator, Optional

from .validate import DEFAULT_SCHEMES, is_valid_url


class AddResult(str, Enum):
    ADDED = "added"
    ALREADY_PRESENT = "already_present"
    INVALID = "invalid"


class RemoveResult(str, Enum):
    REMOVED = "removed"
    NOT_FOUND = "not_found"


class ReadWriteLock:
    """Many readers or a single writer.

    Waiting writers block new readers so that mutations are not starved by a
    steady stream of snapshots.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SubscriberRegistry:
    """Sorted, de-duplicated set of callback URLs.

    Membership is byte-exact string equality. Iteration order is always
    lexicographic ascending.
    """

    def __init__(self, schemes: Optional[Collection[str]] = DEFAULT_SCHEMES) -> None:
        self._urls: list[str] = []
        self._lock = ReadWriteLock()
        self._schemes = schemes

    def _locate(self, url: str) -> tuple[int, bool]:
        # callers hold the lock
        index = bisect.bisect_left(self._urls, url)
        found = index < len(self._urls) and self._urls[index] == url
        return index, found

    def add(self, url: str) -> AddResult:
        if not is_valid_url(url, self._schemes):
            return AddResult.INVALID
        with self._lock.write():
            index, found = self._locate(url)
            if found:
                return AddResult.ALREADY_PRESENT
            self._urls.insert(index, url)
            return AddResult.ADDED

    def remove(self, url: str) -> RemoveResult:
        with self._lock.write():
            index, found = self._locate(url)
            if not found:
                return RemoveResult.NOT_FOUND
            del self._urls[index]
            return RemoveResult.REMOVED

    def snapshot(self) -> tuple[str, ...]:
        """Copy of the membership, safe to iterate while others mutate."""

        with self._lock.read():
            return tuple(self._urls)

    def list(self) -> list[str]:
        with self._lock.read():
            return list(self._urls)

    def __contains__(self, url: object) -> bool:
        if not isinstance(url, str):
            return False
        with self._lock.read():
            return self._locate(url)[1]

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._urls)
