from __future__ import annotations

from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Query, Session

from compdb.tenancy import TenantScope, UNSCOPED

from . import models
from .errors import ComponentValidationError


def scoped_query(db: Session, scope: TenantScope = UNSCOPED) -> Query:
    query = db.query(models.Component)
    if not scope.unscoped:
        if scope.company_id is None:
            query = query.filter(models.Component.company_id.is_(None))
        else:
            query = query.filter(models.Component.company_id == scope.company_id)
    return query


def find(
    db: Session,
    component_id: int,
    *,
    scope: TenantScope = UNSCOPED,
    for_update: bool = False,
) -> Optional[models.Component]:
    query = scoped_query(db, scope).filter(models.Component.id == component_id)
    if for_update:
        # Ignored by SQLite; there the version counter catches the race.
        query = query.with_for_update().populate_existing()
    return query.first()


def save(db: Session, component: models.Component) -> models.Component:
    db.add(component)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ComponentValidationError("component", f"rejected by the database: {exc.orig}") from exc
    return component


def remove(db: Session, component: models.Component, *, with_allocations: bool = False) -> None:
    if with_allocations:
        (
            db.query(models.ComponentAllocation)
            .filter(models.ComponentAllocation.component_id == component.id)
            .delete(synchronize_session=False)
        )
    db.delete(component)
    db.flush()
