"""
Component mutation guard.

Every create / update / delete / clone goes through `ComponentGuard`,
which owns three rules:

- tenant scoping: a component outside the actor's company is reported as
  not found, never as forbidden;
- authorization: delegated to the injected `Authorizer`;
- quantity: `qty` may never drop below the units currently checked out.
  The count and the write happen in one transaction, after the row lock.

Blob store calls happen strictly before or after that transaction.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Callable, Iterable, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from compdb.permissions import Actor, Authorizer, PermissionAuthorizer
from compdb.storage import LocalBlobStore
from compdb.tenancy import TenantResolver

from . import counter, models, repository, schemas
from .errors import (
    ComponentConflict,
    ComponentForbidden,
    ComponentNotFound,
    ComponentValidationError,
)
from .images import DetachResult, ImageResolver, ImageUpload, log_detach
from .transactions import run_unit_of_work

logger = logging.getLogger(__name__)

DELETE_POLICY_BLOCK = "block"
DELETE_POLICY_CASCADE = "cascade"
DELETE_POLICY = os.getenv("COMPONENT_DELETE_POLICY", DELETE_POLICY_BLOCK).strip().lower()

COMPONENT_KIND = "component"

# Everything the payload overwrites; company_id goes through tenant resolution.
_REPLACED_FIELDS = (
    "category_id",
    "location_id",
    "manufacturer_id",
    "model_number",
    "supplier_id",
    "order_number",
    "serial",
    "notes",
    "purchase_date",
    "purchase_cost",
    "qty",
    "min_amt",
)


@dataclass(frozen=True)
class DeleteOutcome:
    component_id: int
    image: DetachResult


def _validate_fields(payload: schemas.ComponentFields) -> None:
    name = (payload.name or "").strip()
    if not name:
        raise ComponentValidationError("name", "is required")
    if len(name) > 255:
        raise ComponentValidationError("name", "must be at most 255 characters")
    if payload.category_id is None:
        raise ComponentValidationError("category_id", "is required")
    if payload.qty is None or payload.qty < 0:
        raise ComponentValidationError("qty", "must be a whole number of at least 0", min_allowed=0)
    if payload.min_amt is not None and payload.min_amt < 0:
        raise ComponentValidationError("min_amt", "must be at least 0")
    if payload.purchase_cost is not None and payload.purchase_cost < 0:
        raise ComponentValidationError("purchase_cost", "must be at least 0")


def _apply_fields(component: models.Component, payload: schemas.ComponentFields, company_id: Optional[str]) -> None:
    for field in _REPLACED_FIELDS:
        setattr(component, field, getattr(payload, field))
    component.name = payload.name.strip()
    component.company_id = company_id


class ComponentGuard:
    def __init__(self, authorizer: Authorizer, tenants: TenantResolver, images: ImageResolver):
        self.authorizer = authorizer
        self.tenants = tenants
        self.images = images

    # ------------------------------------------------------------------
    # LOOKUPS
    # ------------------------------------------------------------------

    def _find(self, db: Session, actor: Actor, component_id: int, *, for_update: bool = False) -> models.Component:
        component = repository.find(
            db,
            component_id,
            scope=self.tenants.scope_for(actor),
            for_update=for_update,
        )
        if component is None:
            raise ComponentNotFound(component_id)
        return component

    def get(self, db: Session, *, actor: Actor, component_id: int) -> models.Component:
        component = self._find(db, actor, component_id)
        if not self.authorizer.can_view(actor, component):
            raise ComponentForbidden("view")
        return component

    def list(
        self,
        db: Session,
        *,
        actor: Actor,
        company_id: Optional[str] = None,
        filters: Optional[schemas.ComponentFilters] = None,
    ) -> Iterable[models.Component]:
        if not self.authorizer.can_view(actor):
            raise ComponentForbidden("list")
        query = repository.scoped_query(db, self.tenants.scope_for(actor))
        if company_id is not None:
            query = query.filter(models.Component.company_id == self.tenants.resolve_tenant(actor, company_id))
        if filters:
            if filters.category_id is not None:
                query = query.filter(models.Component.category_id == filters.category_id)
            if filters.location_id is not None:
                query = query.filter(models.Component.location_id == filters.location_id)
            if filters.search:
                like = f"%{filters.search.strip()}%"
                query = query.filter(
                    or_(
                        models.Component.name.ilike(like),
                        models.Component.serial.ilike(like),
                        models.Component.model_number.ilike(like),
                    )
                )
        return query.order_by(models.Component.id.asc()).yield_per(100)

    def stock(self, db: Session, *, actor: Actor, component_id: int) -> schemas.ComponentStock:
        component = self.get(db, actor=actor, component_id=component_id)
        allocated = counter.allocated_count(db, component.id)
        remaining = component.qty - allocated
        return schemas.ComponentStock(
            id=component.id,
            qty=component.qty,
            allocated=allocated,
            remaining=remaining,
            min_amt=component.min_amt,
            needs_replenishment=component.min_amt is not None and remaining <= component.min_amt,
        )

    # ------------------------------------------------------------------
    # MUTATIONS
    # ------------------------------------------------------------------

    def _discard_blob(self, key: Optional[str], *, component_id=None) -> None:
        if key:
            log_detach(self.images.detach(key), component_id=component_id)

    def create(
        self,
        db: Session,
        *,
        actor: Actor,
        payload: schemas.ComponentCreate,
        upload: Optional[ImageUpload] = None,
    ) -> models.Component:
        if not self.authorizer.can_create(actor, COMPONENT_KIND):
            raise ComponentForbidden("create")
        _validate_fields(payload)
        company_id = self.tenants.resolve_tenant(actor, payload.company_id)

        component = models.Component(created_by=actor.user_id)
        _apply_fields(component, payload, company_id)
        # Transient object: no row, no lock, while the blob is written.
        image_key = self.images.attach(component, upload) if upload else None

        def work() -> models.Component:
            return repository.save(db, component)

        try:
            component = run_unit_of_work(db, work, action="create", max_attempts=1)
        except BaseException:
            self._discard_blob(image_key)
            raise

        logger.info(
            "Component created",
            extra={"component_id": component.id, "company_id": company_id, "qty": component.qty, "actor": actor.user_id},
        )
        return component

    def _locked_write(
        self,
        db: Session,
        actor: Actor,
        component_id: int,
        mutate: Callable[[models.Component], None],
        *,
        action: str,
        new_key: Optional[str] = None,
        drop_old_image: bool = False,
    ) -> models.Component:
        previous = {}

        def work() -> models.Component:
            locked = self._find(db, actor, component_id, for_update=True)
            if not self.authorizer.can_update(actor, locked):
                raise ComponentForbidden("update")
            previous["image"] = locked.image
            mutate(locked)
            locked.touch()
            return locked

        try:
            component = run_unit_of_work(db, work, action=action, component_id=component_id)
        except BaseException:
            self._discard_blob(new_key, component_id=component_id)
            raise

        old_key = previous.get("image")
        if drop_old_image and old_key and old_key != component.image:
            log_detach(self.images.detach(old_key), component_id=component_id)
        return component

    def update(
        self,
        db: Session,
        *,
        actor: Actor,
        component_id: int,
        payload: schemas.ComponentUpdate,
        upload: Optional[ImageUpload] = None,
        remove_image: bool = False,
    ) -> models.Component:
        """
        Replace every field of a component.

        Raises ComponentValidationError with `min_allowed` set when the new
        quantity is below the number of units checked out.
        """
        # Existence and rights first, so a bad payload never leaks whether
        # a component exists in another company.
        component = self._find(db, actor, component_id)
        if not self.authorizer.can_update(actor, component):
            raise ComponentForbidden("update")
        _validate_fields(payload)
        company_id = self.tenants.resolve_tenant(actor, payload.company_id)

        new_key = self.images.store_upload(upload) if upload else None

        def replace_fields(locked: models.Component) -> None:
            min_allowed = counter.allocated_count(db, locked.id)
            if payload.qty < min_allowed:
                raise ComponentValidationError(
                    "qty",
                    f"cannot be less than the {min_allowed} units currently checked out",
                    min_allowed=min_allowed,
                )
            _apply_fields(locked, payload, company_id)
            if new_key:
                locked.image = new_key
            elif remove_image:
                locked.image = None

        component = self._locked_write(
            db,
            actor,
            component_id,
            replace_fields,
            action="update",
            new_key=new_key,
            drop_old_image=remove_image,
        )
        logger.info(
            "Component updated",
            extra={"component_id": component.id, "qty": component.qty, "actor": actor.user_id},
        )
        return component

    def set_image(
        self,
        db: Session,
        *,
        actor: Actor,
        component_id: int,
        upload: Optional[ImageUpload] = None,
    ) -> models.Component:
        """Swap the image (or clear it when no upload is given); other fields are left as stored."""
        component = self._find(db, actor, component_id)
        if not self.authorizer.can_update(actor, component):
            raise ComponentForbidden("update")

        new_key = self.images.store_upload(upload) if upload else None

        def swap_image(locked: models.Component) -> None:
            locked.image = new_key

        component = self._locked_write(
            db,
            actor,
            component_id,
            swap_image,
            action="set image",
            new_key=new_key,
            drop_old_image=True,
        )
        logger.info(
            "Component image changed",
            extra={"component_id": component.id, "image": component.image, "actor": actor.user_id},
        )
        return component

    def delete(self, db: Session, *, actor: Actor, component_id: int, policy: Optional[str] = None) -> DeleteOutcome:
        policy = (policy or DELETE_POLICY).lower()
        if policy not in {DELETE_POLICY_BLOCK, DELETE_POLICY_CASCADE}:
            raise ValueError(f"Unknown component delete policy: {policy!r}")

        def work() -> Optional[str]:
            component = self._find(db, actor, component_id, for_update=True)
            if not self.authorizer.can_delete(actor, component):
                raise ComponentForbidden("delete")
            allocated = counter.allocated_count(db, component.id)
            if allocated and policy == DELETE_POLICY_BLOCK:
                raise ComponentConflict(
                    f"Component has {allocated} units checked out; check them in before deleting."
                )
            image_key = component.image
            repository.remove(db, component, with_allocations=policy == DELETE_POLICY_CASCADE)
            return image_key

        image_key = run_unit_of_work(db, work, action="delete", component_id=component_id)

        # The row is gone; the image is cleaned up best-effort.
        result = self.images.detach(image_key)
        log_detach(result, component_id=component_id)
        logger.info("Component deleted", extra={"component_id": component_id, "actor": actor.user_id})
        return DeleteOutcome(component_id=component_id, image=result)

    def clone(self, db: Session, *, actor: Actor, component_id: int) -> schemas.ComponentDraft:
        source = self._find(db, actor, component_id)
        if not self.authorizer.can_create(actor, COMPONENT_KIND):
            raise ComponentForbidden("clone")
        fields = {field: getattr(source, field) for field in _REPLACED_FIELDS}
        fields["serial"] = ""
        # The image is not shared with the copy; deleting the source would
        # otherwise leave the draft pointing at a removed blob.
        return schemas.ComponentDraft(
            name=source.name,
            company_id=source.company_id,
            cloned_from=source.id,
            **fields,
        )


def default_guard() -> ComponentGuard:
    tenants = TenantResolver()
    return ComponentGuard(
        authorizer=PermissionAuthorizer(tenants),
        tenants=tenants,
        images=ImageResolver(LocalBlobStore()),
    )
