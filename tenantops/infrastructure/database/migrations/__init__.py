# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant database migrations.

Provides the script-set abstraction, the per-tenant ledger and the
runner that applies and reverts script sets. The ``core`` package holds
the script set applied to every workspace database; feature modules ship
their own script sets.
"""

from tenantops.infrastructure.database.migrations.scripts import (
    MigrationScript,
    ScriptSet,
    load_script_set,
    ordering_key,
)
from tenantops.infrastructure.database.migrations.ledger import LedgerEntry, MigrationLedger
from tenantops.infrastructure.database.migrations.runner import (
    MigrationRunner,
    MigrationStatus,
    RollbackReport,
)
from tenantops.infrastructure.database.migrations.core import CORE_SCRIPT_SET, core_script_set

__all__ = [
    "CORE_SCRIPT_SET",
    "LedgerEntry",
    "MigrationLedger",
    "MigrationRunner",
    "MigrationScript",
    "MigrationStatus",
    "RollbackReport",
    "ScriptSet",
    "core_script_set",
    "load_script_set",
    "ordering_key",
]
