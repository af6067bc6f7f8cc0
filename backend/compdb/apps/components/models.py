from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from compdb.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Component(Base):
    __tablename__ = "components"
    __table_args__ = (
        CheckConstraint("qty >= 0", name="ck_components_qty_non_negative"),
        Index("ix_components_company_category", "company_id", "category_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    category_id = Column(Integer, nullable=False, index=True)
    location_id = Column(Integer, nullable=True, index=True)
    company_id = Column(String(36), nullable=True, index=True)

    manufacturer_id = Column(Integer, nullable=True)
    model_number = Column(String(255), nullable=True)
    supplier_id = Column(Integer, nullable=True)
    order_number = Column(String(255), nullable=True)
    serial = Column(String(255), nullable=True, index=True)
    notes = Column(Text, nullable=True)

    purchase_date = Column(Date, nullable=True)
    purchase_cost = Column(Numeric(20, 2), nullable=True)

    qty = Column(Integer, nullable=False, default=1)
    min_amt = Column(Integer, nullable=True)
    image = Column(String(255), nullable=True)

    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow)

    # Bumped on every UPDATE of the row; a writer holding a stale copy gets
    # StaleDataError at flush instead of silently overwriting.
    version = Column(Integer, nullable=False, default=1)

    allocations = relationship(
        "ComponentAllocation",
        back_populates="component",
        lazy="select",
        passive_deletes=True,
    )

    __mapper_args__ = {"version_id_col": version}

    def touch(self) -> None:
        """Force an UPDATE (and so a version check) even if no column changed."""
        self.updated_at = _utcnow()


class ComponentAllocation(Base):
    """One checkout of `assigned_qty` units of a component to a holder."""

    __tablename__ = "component_allocations"
    __table_args__ = (
        CheckConstraint("assigned_qty > 0", name="ck_component_allocations_qty_positive"),
        Index("ix_component_allocations_component", "component_id", "created_at"),
    )

    id = Column(Integer, primary_key=True, index=True)
    component_id = Column(
        Integer,
        ForeignKey("components.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assigned_to = Column(String(64), nullable=False, index=True)
    assigned_qty = Column(Integer, nullable=False, default=1)
    note = Column(Text, nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    component = relationship("Component", back_populates="allocations", lazy="joined")
