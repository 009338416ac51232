# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Migration scripts and script sets.

A migration script is a Python module exposing ``upgrade()`` and,
optionally, ``downgrade()``, written against ``alembic.op``. Its key is
the module's ``revision`` attribute, or the module name when absent.

Scripts are ordered by the timestamp-like numeric prefix of their key
(``2025_01_01_000001_create_users_table``, ``001_initial_schema``), ties
broken lexically by the full key.

Example:
    script_set = load_script_set("core", "tenantops.infrastructure.database.migrations.core")
    script_set.keys  # ordered script keys
"""

import importlib
import pkgutil
import re
from dataclasses import dataclass
from types import ModuleType
from typing import Callable, Iterator

_ORDERING_PREFIX = re.compile(r"^(\d+(?:_\d+)*)")


def ordering_key(key: str) -> tuple[tuple[int, ...], str]:
    """Sort key of a migration script key.

    Args:
        key: Script key.

    Returns:
        (numeric prefix parts, key). Keys without a numeric prefix sort
        before prefixed ones.
    """
    match = _ORDERING_PREFIX.match(key)
    prefix = tuple(int(part) for part in match.group(1).split("_")) if match else ()
    return prefix, key


@dataclass(frozen=True)
class MigrationScript:
    """One forward/inverse schema operation pair.

    Attributes:
        key: Stable, sortable identifier recorded in the ledger.
        upgrade: Forward operation.
        downgrade: Inverse operation, or None if irreversible.
    """

    key: str
    upgrade: Callable[[], None]
    downgrade: Callable[[], None] | None = None

    @property
    def reversible(self) -> bool:
        return self.downgrade is not None

    @property
    def ordering_key(self) -> tuple[tuple[int, ...], str]:
        return ordering_key(self.key)


@dataclass(frozen=True)
class ScriptSet:
    """Named, ordered collection of migration scripts.

    Scripts are kept sorted by ordering key regardless of input order.

    Attributes:
        name: Script set identifier (``core`` or a module key).
        scripts: Scripts in application order.
    """

    name: str
    scripts: tuple[MigrationScript, ...] = ()

    def __post_init__(self) -> None:
        ordered = tuple(sorted(self.scripts, key=lambda s: s.ordering_key))
        keys = [s.key for s in ordered]
        duplicates = sorted({k for k in keys if keys.count(k) > 1})
        if duplicates:
            raise ValueError(
                f"Script set {self.name} has duplicate keys: {', '.join(duplicates)}"
            )
        object.__setattr__(self, "scripts", ordered)

    @property
    def keys(self) -> list[str]:
        """Script keys in application order."""
        return [s.key for s in self.scripts]

    def get(self, key: str) -> MigrationScript | None:
        for script in self.scripts:
            if script.key == key:
                return script
        return None

    def __iter__(self) -> Iterator[MigrationScript]:
        return iter(self.scripts)

    def __len__(self) -> int:
        return len(self.scripts)


def load_script_set(name: str, package: str | ModuleType) -> ScriptSet:
    """Discover the migration scripts of a Python package.

    Every non-private, non-package module of the package is a script.

    Args:
        name: Script set identifier.
        package: Package (or its dotted name) containing the scripts.

    Returns:
        ScriptSet with the discovered scripts.

    Raises:
        ImportError: If a script module cannot be imported.
        ValueError: If a script has no upgrade() function.
    """
    if isinstance(package, str):
        package = importlib.import_module(package)

    scripts = []
    for info in pkgutil.iter_modules(package.__path__):
        if info.ispkg or info.name.startswith("_"):
            continue

        module_name = f"{package.__name__}.{info.name}"
        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ImportError(f"Cannot import migration {info.name}: {e}") from e

        upgrade = getattr(module, "upgrade", None)
        if upgrade is None:
            raise ValueError(f"Migration {info.name} has no upgrade() function")

        scripts.append(
            MigrationScript(
                key=getattr(module, "revision", info.name),
                upgrade=upgrade,
                downgrade=getattr(module, "downgrade", None),
            )
        )

    return ScriptSet(name=name, scripts=tuple(scripts))
