# Overview: Service-layer helpers for locking, retries and storage error mapping.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import StorageFailure
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Correctness never depends on this lock alone: quantity and status
    changes are conditional UPDATEs (see mutation_service / workflow).
    """
    return query.with_for_update()


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    config = current_app.config
    if attempts is None:
        attempts = config.get("RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = config.get("RETRY_BACKOFF_SECONDS", 0.1)
    return max(1, attempts), backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of DB work, all-or-nothing.

    - Any exception rolls the session back before propagating, so no
      half-applied stock delta or orphaned log row survives a failure.
    - OperationalError (deadlocks, lock timeouts, lost connections) and
      StaleDataError (optimistic locking conflicts) are retried with
      exponential backoff, then surfaced as StorageFailure.
    - Other driver errors surface as StorageFailure without retry.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Storage operation failed after %s attempts: %s", attempts, exc)
                raise StorageFailure(
                    "Storage temporarily unavailable, please retry",
                    details={"attempts": attempts},
                ) from exc
            time.sleep(backoff_base * (2 ** attempt))
        except DBAPIError as exc:
            db.session.rollback()
            raise StorageFailure("Storage error, please retry") from exc
        except Exception:
            db.session.rollback()
            raise
