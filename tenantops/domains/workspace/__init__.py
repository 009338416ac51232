# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Workspace domain: creation, archive, restore and destruction."""

from tenantops.domains.workspace.schemas import WorkspaceCreate, WorkspaceSummary, slugify
from tenantops.domains.workspace.service import WorkspaceLifecycleManager

__all__ = ["WorkspaceCreate", "WorkspaceLifecycleManager", "WorkspaceSummary", "slugify"]
