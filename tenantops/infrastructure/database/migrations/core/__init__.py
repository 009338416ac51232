# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core tenant database migrations.

Applied to every workspace database at provisioning:
- Users, roles, permissions and their associations
- Workspace settings
- Audit logs
"""

from functools import lru_cache

from tenantops.infrastructure.database.migrations.scripts import ScriptSet, load_script_set

CORE_SCRIPT_SET = "core"


@lru_cache
def core_script_set() -> ScriptSet:
    """The canonical core script set, resolved once per process."""
    return load_script_set(CORE_SCRIPT_SET, __name__)
