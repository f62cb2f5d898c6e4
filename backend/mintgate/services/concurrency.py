# Overview: Concurrency helpers; DB retry on lock contention and the in-flight purchase registry.

from __future__ import annotations

import threading
import time
from contextlib import contextmanager

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class MintInProgressError(RuntimeError):
    """A purchase for the same wallet and item is already being executed."""

    def __init__(self, wallet: str, item_id: int):
        super().__init__(f"Mint already in progress for {wallet} on item {item_id}")
        self.wallet = wallet
        self.item_id = item_id


def lock_for_update(query):
    """
    Row-level lock for read-modify-write paths.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run a DB operation, retrying on lock errors (OperationalError) and
    optimistic locking conflicts (StaleDataError). The session is rolled back
    before each retry.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    return run_with_retry(db.session.commit, attempts=attempts, backoff_base=backoff_base)


class InFlightRegistry:
    """Process-wide set of (wallet, item) pairs with a purchase underway."""

    def __init__(self):
        self._lock = threading.Lock()
        self._active: set[tuple[str, int]] = set()

    def acquire(self, wallet: str, item_id: int) -> None:
        key = (wallet.lower(), item_id)
        with self._lock:
            if key in self._active:
                raise MintInProgressError(wallet, item_id)
            self._active.add(key)

    def release(self, wallet: str, item_id: int) -> None:
        with self._lock:
            self._active.discard((wallet.lower(), item_id))

    def is_active(self, wallet: str, item_id: int) -> bool:
        with self._lock:
            return (wallet.lower(), item_id) in self._active

    @contextmanager
    def hold(self, wallet: str, item_id: int):
        self.acquire(wallet, item_id)
        try:
            yield
        finally:
            self.release(wallet, item_id)


in_flight = InFlightRegistry()
