"""create users and hymn_submissions tables

Revision ID: 3b1c9d2f4a60
Revises: 
Create Date: 2026-10-19 09:12:31.402117

"""
from typing import Sequence, Union

from alembic import op
from hymnbook.database import Base
from hymnbook.models import user  # noqa: F401


# revision identifiers, used by Alembic.
revision: str = '3b1c9d2f4a60'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema by creating all tables and partial unique indexes."""
    bind = op.get_bind()
    Base.metadata.create_all(bind)


def downgrade() -> None:
    """Downgrade schema by dropping all tables."""
    bind = op.get_bind()
    Base.metadata.drop_all(bind)
