from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List


class ArticleLockRegistry:
    """
    One lock per article id, created on first use.
    `hold` acquires a set of locks in sorted id order, so two callers
    locking overlapping article sets can never deadlock.
    """

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    def lock_for(self, article_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(article_id)
            if lock is None:
                lock = self._locks[article_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, article_ids: Iterable[str]) -> Iterator[List[str]]:
        ordered = sorted(set(article_ids))
        acquired: List[threading.Lock] = []
        try:
            for article_id in ordered:
                lock = self.lock_for(article_id)
                lock.acquire()
                acquired.append(lock)
            yield ordered
        finally:
            for lock in reversed(acquired):
                lock.release()
