"""component add notes

Revision ID: 8c4e2d6a9b31
Revises: 3f9a1c2b7d10
Create Date: 2026-09-03 14:20:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "8c4e2d6a9b31"
down_revision: Union[str, Sequence[str], None] = "3f9a1c2b7d10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column("components", sa.Column("notes", sa.Text(), nullable=True))


def downgrade() -> None:
    with op.batch_alter_table("components") as batch_op:
        batch_op.drop_column("notes")
