# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy models.

- Control plane: ORM models on ``Base.metadata``
- Tenant: Core tables on ``tenant_metadata`` (created by migrations)
"""

from tenantops.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
    new_uuid,
)
from tenantops.infrastructure.database.models.control_plane import (
    ALLOWED_TRANSITIONS,
    Workspace,
    WorkspaceModuleInstallation,
    WorkspaceOperationLock,
    WorkspaceStatus,
    can_transition,
)
from tenantops.infrastructure.database.models.tenant import (
    permissions_table,
    role_permissions_table,
    roles_table,
    tenant_metadata,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "UUIDPrimaryKeyMixin",
    "new_uuid",
    # Control plane
    "ALLOWED_TRANSITIONS",
    "Workspace",
    "WorkspaceModuleInstallation",
    "WorkspaceOperationLock",
    "WorkspaceStatus",
    "can_transition",
    # Tenant
    "tenant_metadata",
    "permissions_table",
    "roles_table",
    "role_permissions_table",
]
