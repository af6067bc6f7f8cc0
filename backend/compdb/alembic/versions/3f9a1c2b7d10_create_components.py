"""create components and component allocations

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2026-09-01 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "components",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=False),
        sa.Column("location_id", sa.Integer(), nullable=True),
        sa.Column("company_id", sa.String(length=36), nullable=True),
        sa.Column("supplier_id", sa.Integer(), nullable=True),
        sa.Column("order_number", sa.String(length=255), nullable=True),
        sa.Column("serial", sa.String(length=255), nullable=True),
        sa.Column("purchase_date", sa.Date(), nullable=True),
        sa.Column("purchase_cost", sa.Numeric(20, 2), nullable=True),
        sa.Column("qty", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("min_amt", sa.Integer(), nullable=True),
        sa.Column("image", sa.String(length=255), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.CheckConstraint("qty >= 0", name="ck_components_qty_non_negative"),
    )
    op.create_index(op.f("ix_components_id"), "components", ["id"], unique=False)
    op.create_index(op.f("ix_components_name"), "components", ["name"], unique=False)
    op.create_index(op.f("ix_components_category_id"), "components", ["category_id"], unique=False)
    op.create_index(op.f("ix_components_location_id"), "components", ["location_id"], unique=False)
    op.create_index(op.f("ix_components_company_id"), "components", ["company_id"], unique=False)
    op.create_index(op.f("ix_components_serial"), "components", ["serial"], unique=False)
    op.create_index("ix_components_company_category", "components", ["company_id", "category_id"], unique=False)

    op.create_table(
        "component_allocations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "component_id",
            sa.Integer(),
            sa.ForeignKey("components.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("assigned_to", sa.String(length=64), nullable=False),
        sa.Column("assigned_qty", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("note", sa.Text(), nullable=True),
        sa.Column("created_by", sa.String(length=36), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("assigned_qty > 0", name="ck_component_allocations_qty_positive"),
    )
    op.create_index(op.f("ix_component_allocations_id"), "component_allocations", ["id"], unique=False)
    op.create_index(
        op.f("ix_component_allocations_component_id"),
        "component_allocations",
        ["component_id"],
        unique=False,
    )
    op.create_index(
        op.f("ix_component_allocations_assigned_to"),
        "component_allocations",
        ["assigned_to"],
        unique=False,
    )
    op.create_index(
        "ix_component_allocations_component",
        "component_allocations",
        ["component_id", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_component_allocations_component", table_name="component_allocations")
    op.drop_index(op.f("ix_component_allocations_assigned_to"), table_name="component_allocations")
    op.drop_index(op.f("ix_component_allocations_component_id"), table_name="component_allocations")
    op.drop_index(op.f("ix_component_allocations_id"), table_name="component_allocations")
    op.drop_table("component_allocations")

    op.drop_index("ix_components_company_category", table_name="components")
    op.drop_index(op.f("ix_components_serial"), table_name="components")
    op.drop_index(op.f("ix_components_company_id"), table_name="components")
    op.drop_index(op.f("ix_components_location_id"), table_name="components")
    op.drop_index(op.f("ix_components_category_id"), table_name="components")
    op.drop_index(op.f("ix_components_name"), table_name="components")
    op.drop_index(op.f("ix_components_id"), table_name="components")
    op.drop_table("components")
