"""
Initial schema: users, access profiles, grants, pages, groups, forms, tickets.

Revision ID: 0001_initial
Revises:
Create Date: 2026-01-22
"""

from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    """Create all tables defined in SQLAlchemy metadata."""
    from tidesk.db.base import Base
    from tidesk.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.create_all(bind=bind)


def downgrade():
    """Drop all tables defined in SQLAlchemy metadata."""
    from tidesk.db.base import Base
    from tidesk.db import models  # noqa: F401

    bind = op.get_bind()
    Base.metadata.drop_all(bind=bind)
