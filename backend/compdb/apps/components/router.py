from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from compdb.database import get_read_db, get_write_db
from compdb.permissions import Actor

from . import schemas, services
from .allocations import AllocationLedger
from .images import ImageUpload

router = APIRouter(prefix="/components", tags=["components"])

_TRUE_VALUES = {"1", "true", "yes", "on"}


def actor_from_headers(
    actor_id: Optional[str],
    company_id: Optional[str],
    permissions: Optional[str],
    superuser: Optional[str],
) -> Actor:
    """
    Build the acting user from headers set by the authenticating gateway.

    The gateway is trusted; this service never sees credentials.
    """
    if not actor_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-Actor-Id header.",
        )
    perms = frozenset(p.strip() for p in (permissions or "").split(",") if p.strip())
    return Actor(
        user_id=actor_id,
        company_id=company_id or None,
        is_superuser=(superuser or "").strip().lower() in _TRUE_VALUES,
        permissions=perms,
    )


def get_current_actor(
    x_actor_id: Optional[str] = Header(None, alias="X-Actor-Id"),
    x_actor_company: Optional[str] = Header(None, alias="X-Actor-Company"),
    x_actor_permissions: Optional[str] = Header(None, alias="X-Actor-Permissions"),
    x_actor_superuser: Optional[str] = Header(None, alias="X-Actor-Superuser"),
) -> Actor:
    return actor_from_headers(x_actor_id, x_actor_company, x_actor_permissions, x_actor_superuser)


@lru_cache(maxsize=1)
def get_component_guard() -> services.ComponentGuard:
    return services.default_guard()


def get_allocation_ledger(
    guard: services.ComponentGuard = Depends(get_component_guard),
) -> AllocationLedger:
    return AllocationLedger(authorizer=guard.authorizer, tenants=guard.tenants)


def _read_upload(file: UploadFile) -> ImageUpload:
    return ImageUpload(filename=file.filename or "", content=file.file.read())


@router.get("", response_model=List[schemas.ComponentRead])
def list_components(
    company_id: Optional[str] = None,
    category_id: Optional[int] = None,
    location_id: Optional[int] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    filters = schemas.ComponentFilters(category_id=category_id, location_id=location_id, search=search)
    return list(guard.list(db, actor=actor, company_id=company_id, filters=filters))


@router.post("", response_model=schemas.ComponentRead, status_code=status.HTTP_201_CREATED)
def create_component(
    payload: schemas.ComponentCreate,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.create(db, actor=actor, payload=payload)


@router.get("/{component_id}", response_model=schemas.ComponentRead)
def get_component(
    component_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.get(db, actor=actor, component_id=component_id)


@router.put("/{component_id}", response_model=schemas.ComponentRead)
def update_component(
    component_id: int,
    payload: schemas.ComponentUpdate,
    remove_image: bool = False,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.update(
        db,
        actor=actor,
        component_id=component_id,
        payload=payload,
        remove_image=remove_image,
    )


@router.delete("/{component_id}", response_model=schemas.ComponentDeleteRead)
def delete_component(
    component_id: int,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    outcome = guard.delete(db, actor=actor, component_id=component_id)
    return schemas.ComponentDeleteRead(id=outcome.component_id, image_cleanup=outcome.image.status.value)


@router.get("/{component_id}/clone", response_model=schemas.ComponentDraft)
def clone_component(
    component_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.clone(db, actor=actor, component_id=component_id)


@router.get("/{component_id}/stock", response_model=schemas.ComponentStock)
def component_stock(
    component_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.stock(db, actor=actor, component_id=component_id)


@router.post("/{component_id}/image", response_model=schemas.ComponentRead)
def upload_component_image(
    component_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.set_image(db, actor=actor, component_id=component_id, upload=_read_upload(file))


@router.delete("/{component_id}/image", response_model=schemas.ComponentRead)
def delete_component_image(
    component_id: int,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    guard: services.ComponentGuard = Depends(get_component_guard),
):
    return guard.set_image(db, actor=actor, component_id=component_id)


@router.get("/{component_id}/allocations", response_model=List[schemas.AllocationRead])
def list_component_allocations(
    component_id: int,
    db: Session = Depends(get_read_db),
    actor: Actor = Depends(get_current_actor),
    ledger: AllocationLedger = Depends(get_allocation_ledger),
):
    return ledger.list_for_component(db, actor=actor, component_id=component_id)


@router.post(
    "/{component_id}/checkout",
    response_model=schemas.AllocationRead,
    status_code=status.HTTP_201_CREATED,
)
def checkout_component(
    component_id: int,
    payload: schemas.AllocationCreate,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    ledger: AllocationLedger = Depends(get_allocation_ledger),
):
    return ledger.checkout(
        db,
        actor=actor,
        component_id=component_id,
        assigned_to=payload.assigned_to,
        qty=payload.qty,
        note=payload.note,
    )


@router.post("/allocations/{allocation_id}/checkin", response_model=schemas.CheckinRead)
def checkin_allocation(
    allocation_id: int,
    payload: schemas.CheckinRequest,
    db: Session = Depends(get_write_db),
    actor: Actor = Depends(get_current_actor),
    ledger: AllocationLedger = Depends(get_allocation_ledger),
):
    still_allocated = ledger.checkin(db, actor=actor, allocation_id=allocation_id, qty=payload.qty)
    return schemas.CheckinRead(allocation_id=allocation_id, still_allocated=still_allocated)
