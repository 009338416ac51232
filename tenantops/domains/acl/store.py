# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant ACL data: permissions, roles and their links.

Feature modules declare the permissions and roles they need. Installing
a module seeds them into the tenant database; uninstalling removes them.
Seeding is idempotent: names already present are left untouched and
reported as not created, so a compensating removal only deletes what
the failed call itself added. Rows are tagged with the module that
seeded them and removals scoped to a module leave untagged rows alone.

Permissions are dotted codes such as ``expenses.view``.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Protocol, Sequence, runtime_checkable

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Connection

from tenantops.infrastructure.database.models.tenant import (
    permissions_table,
    role_permissions_table,
    roles_table,
)
from tenantops.infrastructure.database.provisioner import transaction_scope

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleTemplate:
    """Role declared by a module.

    Attributes:
        name: Role name, unique within a tenant database.
        permissions: Permission names granted to the role.
        description: Human-readable description.
    """

    name: str
    permissions: tuple[str, ...] = ()
    description: str | None = None


@runtime_checkable
class AclStore(Protocol):
    """ACL collaborator used by module install and uninstall."""

    def seed_permissions(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> list[str]:
        """Create missing permissions. Returns the names created."""
        ...

    def create_roles(
        self, connection: Connection, roles: Sequence[RoleTemplate], module: str | None = None
    ) -> list[str]:
        """Create missing roles and grant their permissions. Returns the roles created."""
        ...

    def remove_roles(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> int:
        """Delete roles and their permission links. Returns the roles deleted."""
        ...

    def remove_permissions(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> int:
        """Delete permissions and their role links. Returns the permissions deleted."""
        ...

    def permissions(self, connection: Connection) -> list[str]:
        ...

    def roles(self, connection: Connection) -> dict[str, list[str]]:
        ...


class SqlAclStore:
    """AclStore writing the tenant ``permissions``, ``roles`` and
    ``role_permissions`` tables created by the core script set.

    Every method runs in a transaction on the given connection, or joins
    the caller's transaction if one is open.
    """

    def seed_permissions(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> list[str]:
        wanted = list(dict.fromkeys(names))
        if not wanted:
            return []

        with transaction_scope(connection):
            existing = set(
                connection.execute(
                    select(permissions_table.c.name).where(permissions_table.c.name.in_(wanted))
                ).scalars()
            )
            created = [name for name in wanted if name not in existing]
            if created:
                connection.execute(
                    insert(permissions_table),
                    [{"name": name, "module": module} for name in created],
                )

        logger.info("Seeded %d permissions (%d already present)", len(created), len(existing))
        return created

    def create_roles(
        self, connection: Connection, roles: Sequence[RoleTemplate], module: str | None = None
    ) -> list[str]:
        created: list[str] = []

        with transaction_scope(connection):
            for role in roles:
                role_id = connection.execute(
                    select(roles_table.c.id).where(roles_table.c.name == role.name)
                ).scalar()

                if role_id is None:
                    result = connection.execute(
                        insert(roles_table).values(
                            name=role.name,
                            description=role.description,
                            module=module,
                        )
                    )
                    role_id = result.inserted_primary_key[0]
                    created.append(role.name)

                self._grant(connection, role_id, role)

        logger.info("Created %d roles", len(created))
        return created

    def _grant(self, connection: Connection, role_id: int, role: RoleTemplate) -> None:
        if not role.permissions:
            return

        permission_ids = dict(
            connection.execute(
                select(permissions_table.c.name, permissions_table.c.id).where(
                    permissions_table.c.name.in_(role.permissions)
                )
            ).all()
        )
        missing = sorted(set(role.permissions) - set(permission_ids))
        if missing:
            raise ValueError(
                f"Role {role.name} references unknown permissions: {', '.join(missing)}"
            )

        granted = set(
            connection.execute(
                select(role_permissions_table.c.permission_id).where(
                    role_permissions_table.c.role_id == role_id
                )
            ).scalars()
        )
        links = [
            {"role_id": role_id, "permission_id": permission_id}
            for permission_id in permission_ids.values()
            if permission_id not in granted
        ]
        if links:
            connection.execute(insert(role_permissions_table), links)

    def remove_roles(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> int:
        """Delete roles by name.

        With ``module`` only roles created by that module are deleted, so
        a same-named role that predates the module survives.
        """
        names = list(names)
        if not names:
            return 0

        condition = roles_table.c.name.in_(names)
        if module is not None:
            condition = condition & (roles_table.c.module == module)

        with transaction_scope(connection):
            role_ids = select(roles_table.c.id).where(condition)
            connection.execute(
                delete(role_permissions_table).where(
                    role_permissions_table.c.role_id.in_(role_ids)
                )
            )
            result = connection.execute(delete(roles_table).where(condition))

        logger.info("Removed %d roles", result.rowcount)
        return result.rowcount

    def remove_permissions(
        self, connection: Connection, names: Iterable[str], module: str | None = None
    ) -> int:
        """Delete permissions by name, optionally only those seeded by ``module``."""
        names = list(names)
        if not names:
            return 0

        condition = permissions_table.c.name.in_(names)
        if module is not None:
            condition = condition & (permissions_table.c.module == module)

        with transaction_scope(connection):
            permission_ids = select(permissions_table.c.id).where(condition)
            connection.execute(
                delete(role_permissions_table).where(
                    role_permissions_table.c.permission_id.in_(permission_ids)
                )
            )
            result = connection.execute(delete(permissions_table).where(condition))

        logger.info("Removed %d permissions", result.rowcount)
        return result.rowcount

    def permissions(self, connection: Connection) -> list[str]:
        with transaction_scope(connection):
            return list(
                connection.execute(
                    select(permissions_table.c.name).order_by(permissions_table.c.name)
                ).scalars()
            )

    def roles(self, connection: Connection) -> dict[str, list[str]]:
        """Role names mapped to their sorted permission names."""
        stmt = (
            select(roles_table.c.name, permissions_table.c.name)
            .select_from(
                roles_table.outerjoin(
                    role_permissions_table,
                    role_permissions_table.c.role_id == roles_table.c.id,
                ).outerjoin(
                    permissions_table,
                    permissions_table.c.id == role_permissions_table.c.permission_id,
                )
            )
            .order_by(roles_table.c.name, permissions_table.c.name)
        )

        result: dict[str, list[str]] = {}
        with transaction_scope(connection):
            for role_name, permission_name in connection.execute(stmt):
                grants = result.setdefault(role_name, [])
                if permission_name is not None:
                    grants.append(permission_name)
        return result
