"""
Commit helper shared by the component guard and the allocation ledger.

A unit of work is a callable that reads, validates and stages changes on
the session. It is committed as a whole or not at all. If the component
row changed underneath it (version counter mismatch), the whole unit is
rerun on fresh data, a bounded number of times.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from .errors import ComponentConflict, ComponentValidationError, DependencyUnavailable

logger = logging.getLogger(__name__)

MAX_ATTEMPTS = int(os.getenv("COMPONENT_UPDATE_MAX_ATTEMPTS", "3") or "3")

T = TypeVar("T")


def run_unit_of_work(
    db: Session,
    work: Callable[[], T],
    *,
    action: str,
    component_id: Optional[int] = None,
    max_attempts: Optional[int] = None,
) -> T:
    attempts = max_attempts or MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            result = work()
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            logger.warning(
                "Component changed concurrently; retrying",
                extra={"action": action, "component_id": component_id, "attempt": attempt},
            )
        except IntegrityError as exc:
            db.rollback()
            raise ComponentValidationError("component", f"rejected by the database: {exc.orig}") from exc
        except OperationalError as exc:
            # Never retried: a mutation may have been partially sent.
            db.rollback()
            raise DependencyUnavailable("Database is unavailable.") from exc
        except BaseException:
            db.rollback()
            raise
    raise ComponentConflict(
        f"Component was modified concurrently {attempts} times while trying to {action}; try again."
    )
