# Overview: Retry and commit helpers for storage contention and outages.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import RemoteUnavailableError
from ..extensions import db


RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.05, label: str = "database operation"):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (locks, dropped connections) and
    StaleDataError (optimistic locking conflicts). Only wrap operations that
    are safe to repeat from scratch: the session is rolled back before each
    retry. When attempts run out the failure surfaces as
    RemoteUnavailableError.
    """
    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.error("%s failed after %d attempts: %s", label, attempts, exc)
                raise RemoteUnavailableError("Data store unavailable") from exc
            current_app.logger.warning("%s failed (attempt %d/%d), retrying: %s", label, attempt + 1, attempts, exc)
            time.sleep(backoff_base * (2 ** attempt))


def commit_or_unavailable(label: str) -> None:
    """
    Commit once. A storage failure here has an unknown outcome, so it is
    rolled back locally and reported, never retried.
    """
    try:
        db.session.commit()
    except OperationalError as exc:
        db.session.rollback()
        current_app.logger.error("Commit failed for %s, outcome unknown: %s", label, exc)
        raise RemoteUnavailableError("Data store unavailable; the change may not have been saved") from exc
