# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Create permissions table.

Permission names are dotted codes such as ``users.view``. ``module`` is
set for permissions seeded by a feature module and NULL for core ones.

Revision ID: 2025_01_01_000002_create_permissions_table
Revises: 2025_01_01_000001_create_users_table
Create Date: 2025-01-01
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "2025_01_01_000002_create_permissions_table"
down_revision: Union[str, None] = "2025_01_01_000001_create_users_table"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create permissions table."""
    op.create_table(
        "permissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("module", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.current_timestamp(),
        ),
        sa.UniqueConstraint("name", name="uq_permissions_name"),
    )
    op.create_index("ix_permissions_module", "permissions", ["module"])


def downgrade() -> None:
    """Drop permissions table."""
    op.drop_index("ix_permissions_module", table_name="permissions")
    op.drop_table("permissions")
