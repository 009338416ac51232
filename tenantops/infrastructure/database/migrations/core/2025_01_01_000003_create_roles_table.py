# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Create roles table and seed the built-in roles.

Revision ID: 2025_01_01_000003_create_roles_table
Revises: 2025_01_01_000002_create_permissions_table
Create Date: 2025-01-01
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "2025_01_01_000003_create_roles_table"
down_revision: Union[str, None] = "2025_01_01_000002_create_permissions_table"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

BUILTIN_ROLES = [
    {"name": "admin", "description": "Administrator with full access to all features"},
    {"name": "member", "description": "Regular member with standard access"},
]


def upgrade() -> None:
    """Create roles table with admin and member roles."""
    roles = op.create_table(
        "roles",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("module", sa.String(64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=True,
            server_default=sa.func.current_timestamp(),
        ),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.bulk_insert(roles, BUILTIN_ROLES)


def downgrade() -> None:
    """Drop roles table."""
    op.drop_table("roles")
