# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Create settings table.

Workspace-level key/value settings, grouped for display and scoped to
the whole workspace, admins or individual users.

Revision ID: 2025_01_01_000006_create_settings_table
Revises: 2025_01_01_000005_create_user_roles_table
Create Date: 2025-01-01
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "2025_01_01_000006_create_settings_table"
down_revision: Union[str, None] = "2025_01_01_000005_create_user_roles_table"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create settings table."""
    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.JSON(), nullable=True),
        sa.Column("value_type", sa.String(20), nullable=False, server_default="string"),
        sa.Column("group", sa.String(50), nullable=False),
        sa.Column("scope", sa.String(20), nullable=False, server_default="global"),
        sa.Column("label", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_public", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.UniqueConstraint("key", "scope", name="uq_settings_key_scope"),
        sa.CheckConstraint(
            "scope IN ('global', 'user', 'admin')",
            name="ck_settings_scope",
        ),
    )
    op.create_index("ix_settings_group_scope", "settings", ["group", "scope"])


def downgrade() -> None:
    """Drop settings table."""
    op.drop_index("ix_settings_group_scope", table_name="settings")
    op.drop_table("settings")
