# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Registry of installable feature modules.

The catalog is built once at startup, validated as definitions are
registered, then frozen. After freeze() it is read-only and safe to
share between threads.

Example:
    catalog = ModuleCatalog(core_script_set())
    register_builtin_modules(catalog)
    catalog.freeze()

    definition = catalog.lookup("expenses")
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Iterator

from tenantops.core.exceptions import (
    CatalogError,
    CatalogFrozenError,
    ModuleDefinitionNotFoundError,
)
from tenantops.domains.acl.store import RoleTemplate
from tenantops.infrastructure.database.migrations.scripts import ScriptSet

logger = logging.getLogger(__name__)

MODULE_KEY_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,63}$")


@dataclass(frozen=True)
class ModuleDefinition:
    """An installable feature module.

    Attributes:
        key: Unique module key. Also the name of its script set.
        script_set: Migration scripts applied on install.
        permissions: Permission names seeded on install.
        roles: Roles created on install.
        requires: Keys of modules that must be installed first.
        description: Human-readable description.
    """

    key: str
    script_set: ScriptSet
    permissions: tuple[str, ...] = ()
    roles: tuple[RoleTemplate, ...] = ()
    requires: tuple[str, ...] = ()
    description: str = ""

    @property
    def role_names(self) -> list[str]:
        return [role.name for role in self.roles]


class ModuleCatalog:
    """Process-wide registry of ModuleDefinitions.

    Script keys are globally unique: no module may reuse a key of the
    core script set or of another module, so ledger entries of different
    script sets never collide.
    """

    def __init__(self, core_script_set: ScriptSet | None = None) -> None:
        """Initialize an empty, unfrozen catalog.

        Args:
            core_script_set: Core scripts whose keys modules may not reuse.
        """
        self._core_keys = set(core_script_set.keys) if core_script_set else set()
        self._definitions: dict[str, ModuleDefinition] = {}
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, definition: ModuleDefinition) -> None:
        """Add a module definition.

        Raises:
            CatalogFrozenError: If the catalog is frozen.
            CatalogError: If the definition is invalid or conflicts with a
                registered one.
        """
        if self._frozen:
            raise CatalogFrozenError(
                f"Cannot register module {definition.key}: catalog is frozen",
                {"module": definition.key},
            )

        self._validate(definition)
        self._definitions[definition.key] = definition
        logger.debug(
            "Registered module %s (%d scripts)", definition.key, len(definition.script_set)
        )

    def _validate(self, definition: ModuleDefinition) -> None:
        key = definition.key
        context = {"module": key}

        if not MODULE_KEY_PATTERN.match(key):
            raise CatalogError(f"Invalid module key: {key!r}", context)

        if key in self._definitions:
            raise CatalogError(f"Module already registered: {key}", context)

        if definition.script_set.name != key:
            raise CatalogError(
                f"Script set of module {key} is named {definition.script_set.name!r}",
                context,
            )

        declared = set(definition.permissions)
        for role in definition.roles:
            undeclared = sorted(set(role.permissions) - declared)
            if undeclared:
                raise CatalogError(
                    f"Role {role.name} of module {key} grants undeclared permissions: "
                    f"{', '.join(undeclared)}",
                    context,
                )

        for required in definition.requires:
            if required == key:
                raise CatalogError(f"Module {key} cannot require itself", context)
            if required not in self._definitions:
                raise CatalogError(
                    f"Module {key} requires unregistered module {required}", context
                )

        script_keys = set(definition.script_set.keys)
        overlap = script_keys & self._core_keys
        if overlap:
            raise CatalogError(
                f"Module {key} reuses core script keys: {', '.join(sorted(overlap))}",
                context,
            )
        for other in self._definitions.values():
            overlap = script_keys & set(other.script_set.keys)
            if overlap:
                raise CatalogError(
                    f"Module {key} reuses script keys of module {other.key}: "
                    f"{', '.join(sorted(overlap))}",
                    context,
                )

    def freeze(self) -> None:
        """Make the catalog read-only."""
        self._frozen = True
        logger.info("Module catalog frozen with %d modules", len(self._definitions))

    def lookup(self, key: str) -> ModuleDefinition:
        """Get a module definition.

        Raises:
            ModuleDefinitionNotFoundError: If no module has this key.
        """
        try:
            return self._definitions[key]
        except KeyError:
            raise ModuleDefinitionNotFoundError(
                f"Module not found: {key}", {"module": key}
            ) from None

    def keys(self) -> list[str]:
        return sorted(self._definitions)

    def dependents_of(self, key: str) -> list[str]:
        """Keys of registered modules that require the given module."""
        return sorted(
            definition.key
            for definition in self._definitions.values()
            if key in definition.requires
        )

    def __contains__(self, key: object) -> bool:
        return key in self._definitions

    def __iter__(self) -> Iterator[ModuleDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)


def build_catalog(
    core_script_set: ScriptSet | None,
    definitions: Iterable[ModuleDefinition] = (),
    freeze: bool = True,
) -> ModuleCatalog:
    """Build a catalog from definitions, frozen by default."""
    catalog = ModuleCatalog(core_script_set)
    for definition in definitions:
        catalog.register(definition)
    if freeze:
        catalog.freeze()
    return catalog
