# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the tenant ACL store."""

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy.engine import Connection

from tenantops.domains.acl.store import AclStore, RoleTemplate, SqlAclStore
from tenantops.infrastructure.database.migrations import (
    MigrationLedger,
    MigrationRunner,
    core_script_set,
)
from tenantops.infrastructure.database.provisioner import create_tenant_engine


@pytest.fixture
def connection(tmp_path: Path) -> Iterator[Connection]:
    """Connection to a tenant database with the core scripts applied."""
    engine = create_tenant_engine(f"sqlite:///{tmp_path / 'tenant.sqlite3'}")
    with engine.connect() as conn:
        MigrationRunner().apply_pending(conn, core_script_set(), MigrationLedger())
        yield conn
    engine.dispose()


@pytest.fixture
def acl() -> SqlAclStore:
    return SqlAclStore()


class TestSqlAclStore:
    """Tests for SqlAclStore."""

    def test_implements_protocol(self, acl: SqlAclStore) -> None:
        assert isinstance(acl, AclStore)

    def test_core_roles_present(self, connection: Connection, acl: SqlAclStore) -> None:
        assert acl.roles(connection) == {"admin": [], "member": []}
        assert acl.permissions(connection) == []

    def test_seed_permissions_is_idempotent(self, connection: Connection, acl: SqlAclStore) -> None:
        created = acl.seed_permissions(connection, ["invoices.view", "invoices.create"], "invoices")
        again = acl.seed_permissions(
            connection, ["invoices.view", "invoices.void", "invoices.void"], "invoices"
        )

        assert created == ["invoices.view", "invoices.create"]
        assert again == ["invoices.void"]
        assert acl.permissions(connection) == ["invoices.create", "invoices.view", "invoices.void"]

    def test_seed_nothing(self, connection: Connection, acl: SqlAclStore) -> None:
        assert acl.seed_permissions(connection, []) == []

    def test_create_roles_grants_permissions(self, connection: Connection, acl: SqlAclStore) -> None:
        acl.seed_permissions(connection, ["invoices.view", "invoices.void"])

        created = acl.create_roles(
            connection,
            [
                RoleTemplate("invoices_admin", ("invoices.view", "invoices.void")),
                RoleTemplate("invoices_reader", ("invoices.view",), "Read invoices"),
            ],
            module="invoices",
        )

        assert created == ["invoices_admin", "invoices_reader"]
        roles = acl.roles(connection)
        assert roles["invoices_admin"] == ["invoices.view", "invoices.void"]
        assert roles["invoices_reader"] == ["invoices.view"]

    def test_existing_role_is_not_reported_as_created(
        self, connection: Connection, acl: SqlAclStore
    ) -> None:
        acl.seed_permissions(connection, ["settings.manage"])

        created = acl.create_roles(connection, [RoleTemplate("admin", ("settings.manage",))])

        assert created == []
        assert acl.roles(connection)["admin"] == ["settings.manage"]

    def test_unknown_permission_rejected(self, connection: Connection, acl: SqlAclStore) -> None:
        with pytest.raises(ValueError, match="invoices.void"):
            acl.create_roles(connection, [RoleTemplate("invoices_admin", ("invoices.void",))])

        assert "invoices_admin" not in acl.roles(connection)

    def test_remove_roles_and_permissions(self, connection: Connection, acl: SqlAclStore) -> None:
        acl.seed_permissions(connection, ["invoices.view"])
        acl.create_roles(connection, [RoleTemplate("invoices_reader", ("invoices.view",))])

        assert acl.remove_roles(connection, ["invoices_reader", "missing"]) == 1
        assert acl.remove_permissions(connection, ["invoices.view"]) == 1
        assert acl.remove_roles(connection, []) == 0
        assert acl.roles(connection) == {"admin": [], "member": []}
        assert acl.permissions(connection) == []

    def test_remove_permission_unlinks_roles(self, connection: Connection, acl: SqlAclStore) -> None:
        acl.seed_permissions(connection, ["invoices.view", "invoices.void"])
        acl.create_roles(connection, [RoleTemplate("invoices_admin", ("invoices.view", "invoices.void"))])

        acl.remove_permissions(connection, ["invoices.void"])

        assert acl.roles(connection)["invoices_admin"] == ["invoices.view"]

    def test_module_scoped_removal_keeps_foreign_rows(
        self, connection: Connection, acl: SqlAclStore
    ) -> None:
        acl.seed_permissions(connection, ["invoices.view"])
        acl.seed_permissions(connection, ["invoices.view", "invoices.void"], "invoices")
        acl.create_roles(connection, [RoleTemplate("auditor", ("invoices.view",))])
        acl.create_roles(
            connection, [RoleTemplate("invoices_admin", ("invoices.void",))], module="invoices"
        )

        removed_roles = acl.remove_roles(
            connection, ["auditor", "invoices_admin"], module="invoices"
        )
        removed_permissions = acl.remove_permissions(
            connection, ["invoices.view", "invoices.void"], module="invoices"
        )

        assert removed_roles == 1
        assert removed_permissions == 1
        assert acl.permissions(connection) == ["invoices.view"]
        assert acl.roles(connection)["auditor"] == ["invoices.view"]
        assert "invoices_admin" not in acl.roles(connection)
