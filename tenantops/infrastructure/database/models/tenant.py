# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant-side table definitions used by the ACL store.

The physical tables are created by the core migration script set; these
Core ``Table`` objects only describe them for queries. They live on their
own MetaData so they are never created in the control plane.
"""

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    func,
)

tenant_metadata = MetaData()

permissions_table = Table(
    "permissions",
    tenant_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(150), nullable=False, unique=True),
    Column("module", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.current_timestamp()),
)

roles_table = Table(
    "roles",
    tenant_metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("name", String(100), nullable=False, unique=True),
    Column("description", Text, nullable=True),
    Column("module", String(64), nullable=True),
    Column("created_at", DateTime(timezone=True), server_default=func.current_timestamp()),
)

role_permissions_table = Table(
    "role_permissions",
    tenant_metadata,
    Column(
        "role_id",
        Integer,
        ForeignKey("roles.id", ondelete="CASCADE"),
        primary_key=True,
    ),
    Column(
        "permission_id",
        Integer,
        ForeignKey("permissions.id", ondelete="CASCADE"),
        primary_key=True,
    ),
)
