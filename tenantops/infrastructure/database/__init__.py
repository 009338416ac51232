# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the control plane and tenant databases.

This package provides synchronous SQLAlchemy access to:
- Control plane: workspace registry, module installations, operation locks
- Tenant databases: one physical database per workspace, created and
  dropped by a DatabaseProvisioner

Example:
    from tenantops.infrastructure.database import (
        ControlPlane,
        build_provisioner,
        create_control_plane_engine,
        create_control_plane_sessionmaker,
    )

    engine = create_control_plane_engine(settings.control_db.url)
    control_plane = ControlPlane(create_control_plane_sessionmaker(engine))
    provisioner = build_provisioner(settings)
"""

from tenantops.infrastructure.database.connection import (
    ControlPlane,
    create_control_plane_engine,
    create_control_plane_schema,
    create_control_plane_sessionmaker,
)
from tenantops.infrastructure.database.provisioner import (
    ConnectionDescriptor,
    ConnectionRegistry,
    DatabaseProvisioner,
    PostgresProvisioner,
    SqliteProvisioner,
    build_provisioner,
    create_tenant_engine,
    tenant_database_name,
    transaction_scope,
)
from tenantops.infrastructure.database.locks import WorkspaceLockHandle, WorkspaceLockManager

__all__ = [
    # Control plane
    "ControlPlane",
    "create_control_plane_engine",
    "create_control_plane_schema",
    "create_control_plane_sessionmaker",
    # Tenant databases
    "ConnectionDescriptor",
    "ConnectionRegistry",
    "DatabaseProvisioner",
    "PostgresProvisioner",
    "SqliteProvisioner",
    "build_provisioner",
    "create_tenant_engine",
    "tenant_database_name",
    "transaction_scope",
    # Locks
    "WorkspaceLockHandle",
    "WorkspaceLockManager",
]
