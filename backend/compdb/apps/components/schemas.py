from __future__ import annotations

from datetime import datetime, date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field


class ComponentFields(BaseModel):
    """
    Every editable field of a component.

    Used as a *full replacement*: an optional field left out of the
    payload is stored as NULL, it does not keep the previous value.
    `company_id` is only a hint; the tenant resolver decides the stored
    value.
    """

    name: str
    category_id: int
    location_id: Optional[int] = None
    company_id: Optional[str] = None
    manufacturer_id: Optional[int] = None
    model_number: Optional[str] = None
    supplier_id: Optional[int] = None
    order_number: Optional[str] = None
    serial: Optional[str] = None
    notes: Optional[str] = None
    purchase_date: Optional[date] = None
    purchase_cost: Optional[Decimal] = None
    qty: int
    min_amt: Optional[int] = None


class ComponentCreate(ComponentFields):
    pass


class ComponentUpdate(ComponentFields):
    pass


class ComponentRead(ComponentFields):
    id: int
    image: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ComponentDraft(ComponentFields):
    """Unsaved copy produced by cloning; becomes a component via create."""

    id: None = None
    image: None = None
    cloned_from: int

    def to_create(self) -> ComponentCreate:
        return ComponentCreate(**self.model_dump(exclude={"id", "image", "cloned_from"}))


class ComponentStock(BaseModel):
    id: int
    qty: int
    allocated: int
    remaining: int
    min_amt: Optional[int] = None
    needs_replenishment: bool


class ComponentDeleteRead(BaseModel):
    id: int
    image_cleanup: str


class AllocationCreate(BaseModel):
    assigned_to: str = Field(..., min_length=1, max_length=64)
    qty: int = 1
    note: Optional[str] = None


class AllocationRead(BaseModel):
    id: int
    component_id: int
    assigned_to: str
    assigned_qty: int
    note: Optional[str] = None
    created_by: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CheckinRequest(BaseModel):
    qty: Optional[int] = None


class CheckinRead(BaseModel):
    allocation_id: int
    still_allocated: int


class ComponentFilters(BaseModel):
    category_id: Optional[int] = None
    location_id: Optional[int] = None
    search: Optional[str] = None
