# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Bundled feature modules.

Each module package exposes ``definition()`` returning its
ModuleDefinition and ships its tenant migrations in ``migrations``.
"""

from tenantops.domains.modules.catalog import ModuleCatalog, ModuleDefinition
from tenantops.modules import expenses


def builtin_definitions() -> list[ModuleDefinition]:
    """Definitions of all bundled modules, dependencies first."""
    return [expenses.definition()]


def register_builtin_modules(catalog: ModuleCatalog) -> None:
    """Register the bundled modules in a catalog."""
    for definition in builtin_definitions():
        catalog.register(definition)
