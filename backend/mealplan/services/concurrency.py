# Overview: Retry and row-locking helpers shared by the wallet, billing and subscription services.

from __future__ import annotations

import time

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking before a read-modify-write on a subscription or order.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Wallet balances do not rely on this; see wallet_service.debit.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (database locked, deadlocks) and StaleDataError
    (optimistic version_id conflicts on subscriptions and orders). The session
    is rolled back before each retry so func always starts from a clean state.
    Domain errors propagate immediately.
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
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc
