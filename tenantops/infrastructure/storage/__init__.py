# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Workspace file storage.

Every workspace owns one storage namespace. Destroying a workspace purges
its namespace after the tenant database is gone.

Example:
    storage = LocalWorkspaceStorage(settings.storage.root)
    storage.purge_namespace(workspace_id)
"""

from tenantops.infrastructure.storage.local import LocalWorkspaceStorage, WorkspaceStorage

__all__ = ["LocalWorkspaceStorage", "WorkspaceStorage"]
