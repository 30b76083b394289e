# Overview: Service-layer concurrency helpers: row locks, retry on conflicts, compensation of partial batches.

from __future__ import annotations

import time
from typing import Callable

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import StockConflictError


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts on version_id columns). Domain errors
    propagate immediately.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.info("Retrying after concurrency conflict (attempt %s): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_or_conflict():
    """
    Commit the current unit of work exactly once.

    A failed commit rolls back and raises StockConflictError. Retry means
    re-running the whole operation, never the commit alone.
    """
    try:
        db.session.commit()
    except (OperationalError, StaleDataError) as exc:
        db.session.rollback()
        current_app.logger.warning("Commit failed, unit of work rolled back: %s", exc)
        raise StockConflictError("The operation could not be saved because of a concurrent change. Please retry.") from exc


class CompensationLog:
    """
    Undo journal for multi-cell writes that are applied one cell at a time.

    Each successful step records its inverse; unwind() replays the inverses
    newest-first so a failed batch leaves no partial effect behind, even if
    the surrounding session is later committed.
    """

    def __init__(self, label: str):
        self.label = label
        self._steps: list[tuple[str, Callable[[], None]]] = []

    def record(self, description: str, undo: Callable[[], None]) -> None:
        self._steps.append((description, undo))

    def __len__(self) -> int:
        return len(self._steps)

    def unwind(self) -> int:
        undone = 0
        while self._steps:
            description, undo = self._steps.pop()
            undo()
            undone += 1
            current_app.logger.warning("%s: compensated %s", self.label, description)
        return undone
