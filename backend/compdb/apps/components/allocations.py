"""
Checkout ledger for components.

Checking units out is the write that competes with quantity edits, so it
takes the same component row lock and bumps the same version counter as
`ComponentGuard.update`. Whichever commits second re-reads and re-checks.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session

from compdb.permissions import Actor, Authorizer
from compdb.tenancy import TenantResolver

from . import counter, models, repository
from .errors import ComponentForbidden, ComponentNotFound, ComponentValidationError
from .transactions import run_unit_of_work

logger = logging.getLogger(__name__)


class AllocationLedger:
    def __init__(self, authorizer: Authorizer, tenants: TenantResolver):
        self.authorizer = authorizer
        self.tenants = tenants

    def _locked_component(self, db: Session, actor: Actor, component_id: int) -> models.Component:
        component = repository.find(
            db,
            component_id,
            scope=self.tenants.scope_for(actor),
            for_update=True,
        )
        if component is None:
            raise ComponentNotFound(component_id)
        if not self.authorizer.can_checkout(actor, component):
            raise ComponentForbidden("check out")
        return component

    def _find_allocation(self, db: Session, allocation_id: int, *, for_update: bool = False) -> models.ComponentAllocation:
        query = db.query(models.ComponentAllocation).filter(models.ComponentAllocation.id == allocation_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        allocation = query.first()
        if allocation is None:
            raise ComponentNotFound(detail="Allocation not found.")
        return allocation

    def checkout(
        self,
        db: Session,
        *,
        actor: Actor,
        component_id: int,
        assigned_to: str,
        qty: int = 1,
        note: Optional[str] = None,
    ) -> models.ComponentAllocation:
        if not assigned_to:
            raise ComponentValidationError("assigned_to", "is required")
        if qty is None or qty < 1:
            raise ComponentValidationError("qty", "must be at least 1")

        def work() -> models.ComponentAllocation:
            component = self._locked_component(db, actor, component_id)
            remaining = component.qty - counter.allocated_count(db, component.id)
            if qty > remaining:
                raise ComponentValidationError(
                    "qty",
                    f"only {remaining} units remaining",
                    remaining=remaining,
                )
            allocation = models.ComponentAllocation(
                component_id=component.id,
                assigned_to=assigned_to,
                assigned_qty=qty,
                note=note,
                created_by=actor.user_id,
            )
            db.add(allocation)
            component.touch()
            db.flush()
            return allocation

        allocation = run_unit_of_work(db, work, action="check out", component_id=component_id)
        logger.info(
            "Component checked out",
            extra={
                "component_id": component_id,
                "allocation_id": allocation.id,
                "qty": qty,
                "assigned_to": assigned_to,
                "actor": actor.user_id,
            },
        )
        return allocation

    def checkin(self, db: Session, *, actor: Actor, allocation_id: int, qty: Optional[int] = None) -> int:
        """Return `qty` units (default: all) and report how many stay allocated on the row."""

        def work() -> int:
            located = self._find_allocation(db, allocation_id)
            component = self._locked_component(db, actor, located.component_id)
            # Re-read under the component lock; a concurrent checkin may
            # have shrunk or removed the row since it was located.
            allocation = self._find_allocation(db, allocation_id, for_update=True)
            returned = allocation.assigned_qty if qty is None else qty
            if returned < 1 or returned > allocation.assigned_qty:
                raise ComponentValidationError(
                    "qty",
                    f"must be between 1 and {allocation.assigned_qty}",
                    remaining=allocation.assigned_qty,
                )
            still_allocated = allocation.assigned_qty - returned
            if still_allocated:
                allocation.assigned_qty = still_allocated
            else:
                db.delete(allocation)
            component.touch()
            db.flush()
            return still_allocated

        still_allocated = run_unit_of_work(db, work, action="check in", component_id=None)
        logger.info(
            "Component checked in",
            extra={"allocation_id": allocation_id, "still_allocated": still_allocated, "actor": actor.user_id},
        )
        return still_allocated

    def list_for_component(self, db: Session, *, actor: Actor, component_id: int) -> List[models.ComponentAllocation]:
        component = repository.find(db, component_id, scope=self.tenants.scope_for(actor))
        if component is None:
            raise ComponentNotFound(component_id)
        if not self.authorizer.can_view(actor, component):
            raise ComponentForbidden("view")
        return (
            db.query(models.ComponentAllocation)
            .filter(models.ComponentAllocation.component_id == component.id)
            .order_by(models.ComponentAllocation.created_at.asc(), models.ComponentAllocation.id.asc())
            .all()
        )
