# Overview: Transaction boundary for every multi-write operation; locking, retry and failure mapping.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ErpError, PersistenceError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the version_id_col
    check on Product/Order turns a lost update into StaleDataError instead.
    """
    return query.with_for_update()


def run_in_transaction(
    func,
    *,
    attempts: int | None = None,
    backoff_base: float | None = None,
    timeout: float | None = None,
):
    """
    Execute func() and commit its writes as one unit.

    - OperationalError (lock wait, deadlock, driver timeout) and
      StaleDataError (optimistic version conflict) roll back and retry with
      exponential backoff, bounded by `attempts` and a wall-clock `timeout`.
      Exhausting either raises PersistenceError.
    - Domain errors (ErpError, ValueError from validation) roll back and
      propagate unchanged.
    - Any other SQLAlchemy failure rolls back and raises PersistenceError.

    func must not commit; it may flush. After a rollback the session is
    expired, so the next attempt re-reads current rows.
    """
    config = current_app.config
    if attempts is None:
        attempts = config.get("TX_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = config.get("TX_RETRY_BACKOFF_SECONDS", 0.05)
    if timeout is None:
        timeout = config.get("TX_TIMEOUT_SECONDS", 10.0)

    deadline = time.monotonic() + timeout
    for attempt in range(attempts):
        try:
            result = func()
            db.session.commit()
            return result
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise PersistenceError("Transaction failed after retries; no changes were applied") from exc
            delay = backoff_base * (2 ** attempt)
            if time.monotonic() + delay >= deadline:
                raise PersistenceError("Transaction timed out; no changes were applied") from exc
            current_app.logger.warning(
                "Retrying transaction after %s (attempt %d/%d)",
                type(exc).__name__, attempt + 1, attempts,
            )
            time.sleep(delay)
        except ErpError:
            db.session.rollback()
            raise
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise PersistenceError("Database write failed; no changes were applied") from exc
        except Exception:
            db.session.rollback()
            raise
    raise PersistenceError("Transaction failed; no changes were applied")
