# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Expenses module: expense categories and expense records."""

from tenantops.domains.acl.store import RoleTemplate
from tenantops.domains.modules.catalog import ModuleDefinition
from tenantops.infrastructure.database.migrations.scripts import load_script_set

KEY = "expenses"

PERMISSIONS = (
    "expenses.view",
    "expenses.create",
    "expenses.update",
    "expenses.delete",
    "expenses.approve",
)

ROLES = (
    RoleTemplate(
        name="expenses_manager",
        permissions=PERMISSIONS,
        description="Manage and approve all expenses",
    ),
    RoleTemplate(
        name="expenses_submitter",
        permissions=("expenses.view", "expenses.create"),
        description="Submit own expenses",
    ),
)


def definition() -> ModuleDefinition:
    """Build the expenses module definition."""
    return ModuleDefinition(
        key=KEY,
        script_set=load_script_set(KEY, f"{__name__}.migrations"),
        permissions=PERMISSIONS,
        roles=ROLES,
        description="Expense tracking with categories and approval roles",
    )
