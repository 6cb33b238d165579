import json
import logging
import time
from collections.abc import Callable
from typing import TypeVar

from sqlalchemy import Select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fishstock.core.config import settings

logger = logging.getLogger("fishstock.db")

T = TypeVar("T")


def lock_for_update(stmt: Select) -> Select:
    """
    Lock the selected rows until the transaction ends and re-read them.

    SQLite ignores FOR UPDATE; its database-level write lock serializes writers instead.
    """
    return stmt.with_for_update().execution_options(populate_existing=True)


def run_in_transaction(
    db: Session,
    operation: Callable[[], T],
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
) -> T:
    """
    Run ``operation`` and commit it as one unit.

    Lock and optimistic-concurrency failures roll back and retry with exponential
    backoff. Anything else rolls back and propagates, nothing is partially committed.
    """
    attempts = attempts or settings.db_lock_retry_attempts
    if backoff_base is None:
        backoff_base = settings.db_lock_retry_backoff_seconds

    for attempt in range(attempts):
        try:
            result = operation()
            db.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.rollback()
            if attempt >= attempts - 1:
                raise
            logger.warning(
                json.dumps(
                    {
                        "event": "db.retry",
                        "attempt": attempt + 1,
                        "error": exc.__class__.__name__,
                    }
                )
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.rollback()
            raise
    raise RuntimeError("run_in_transaction exhausted without result")
