"""components add manufacturer and model number

Revision ID: d1b7f05e3a62
Revises: 8c4e2d6a9b31
Create Date: 2026-09-05 10:05:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "d1b7f05e3a62"
down_revision: Union[str, Sequence[str], None] = "8c4e2d6a9b31"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("components", sa.Column("manufacturer_id", sa.Integer(), nullable=True))
    op.add_column("components", sa.Column("model_number", sa.String(length=255), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("components") as batch_op:
        batch_op.drop_column("model_number")
        batch_op.drop_column("manufacturer_id")
