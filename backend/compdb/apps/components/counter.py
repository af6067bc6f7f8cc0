"""
Allocation counter: how many units of a component are checked out.

The count is read on the caller's session so that, after the caller has
locked the component row, it sees the same snapshot the following write
will commit against.
"""

from __future__ import annotations

import logging
import os
import time

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, OperationalError, PendingRollbackError
from sqlalchemy.orm import Session

from . import models
from .errors import DependencyUnavailable

logger = logging.getLogger(__name__)

COUNT_READ_RETRIES = int(os.getenv("COMPONENT_COUNT_READ_RETRIES", "2") or "2")


def _sum_allocated(db: Session, component_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(models.ComponentAllocation.assigned_qty), 0))
        .filter(models.ComponentAllocation.component_id == component_id)
        .scalar()
    )
    return int(total or 0)


def allocated_count(db: Session, component_id: int, *, retries: int = COUNT_READ_RETRIES) -> int:
    for attempt in range(retries + 1):
        try:
            return _sum_allocated(db, component_id)
        except (DBAPIError, PendingRollbackError) as exc:
            logger.warning(
                "Allocation count read failed",
                extra={"component_id": component_id, "attempt": attempt + 1, "error": str(exc)},
            )
            # Anything other than a dropped connection leaves the transaction
            # aborted; a second read on it cannot succeed.
            if not isinstance(exc, OperationalError) or attempt >= retries:
                break
            time.sleep(min(0.2 * (attempt + 1), 1.0))
    raise DependencyUnavailable("Allocation ledger is unavailable.")
