# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Feature modules: catalog and per-workspace install/uninstall."""

from tenantops.domains.modules.catalog import (
    ModuleCatalog,
    ModuleDefinition,
    RoleTemplate,
    build_catalog,
)
from tenantops.domains.modules.service import ModuleLifecycleManager

__all__ = [
    "ModuleCatalog",
    "ModuleDefinition",
    "ModuleLifecycleManager",
    "RoleTemplate",
    "build_catalog",
]
