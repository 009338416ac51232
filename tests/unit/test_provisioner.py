# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for tenant database provisioning."""

from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError, ProgrammingError

from tenantops.core.config.settings import Settings, TenantDatabaseSettings
from tenantops.core.exceptions import (
    DatabaseAlreadyExistsError,
    DatabaseError,
    DatabaseNotFoundError,
    TeardownError,
    ValidationError,
)
from tenantops.infrastructure.database.provisioner import (
    ConnectionDescriptor,
    ConnectionRegistry,
    PostgresProvisioner,
    SqliteProvisioner,
    build_provisioner,
    tenant_database_name,
    transaction_scope,
)

WORKSPACE_ID = "0f3c8d2e-5b7a-4c1d-9e6f-123456789abc"


@pytest.fixture
def provisioner(tmp_path: Path) -> SqliteProvisioner:
    return SqliteProvisioner(tmp_path / "tenants")


class FakePgDuplicateDatabase(Exception):
    pgcode = "42P04"


class TestTenantDatabaseName:
    """Tests for tenant database name derivation."""

    def test_derived_from_workspace_id(self) -> None:
        assert tenant_database_name(WORKSPACE_ID) == "ws_0f3c8d2e5b7a4c1d9e6f123456789abc"

    def test_custom_prefix(self) -> None:
        assert tenant_database_name(WORKSPACE_ID, "acct_").startswith("acct_0f3c8d2e")

    def test_rejects_non_uuid(self) -> None:
        with pytest.raises(ValueError):
            tenant_database_name("not-a-uuid")


class TestDescriptor:
    """Tests for connection descriptors."""

    @pytest.mark.parametrize("name", ["Bad", "1abc", "ws-abc", "ws_abc; DROP DATABASE x", ""])
    def test_rejects_unsafe_names(self, provisioner: SqliteProvisioner, name: str) -> None:
        with pytest.raises(ValidationError):
            provisioner.descriptor_for(name)

    def test_repr_hides_credentials(self) -> None:
        provisioner = PostgresProvisioner("postgresql+psycopg2://owner:s3cret@db:5432/postgres")

        descriptor = provisioner.descriptor_for("ws_abc", WORKSPACE_ID)

        assert "s3cret" in descriptor.url
        assert descriptor.url.endswith("/ws_abc")
        assert "s3cret" not in repr(descriptor)
        assert "s3cret" not in descriptor.safe_url


class TestConnectionRegistry:
    """Tests for the process-local connection registry."""

    def test_register_and_deregister(self) -> None:
        registry = ConnectionRegistry()
        descriptor = ConnectionDescriptor("ws_a", "sqlite:///a.sqlite3")

        first = registry.register(descriptor)
        second = registry.register(descriptor)

        assert registry.holders("ws_a") == 2
        registry.deregister(first)
        assert registry.is_registered("ws_a")
        registry.deregister(second)
        assert not registry.is_registered("ws_a")
        assert registry.active() == []

    def test_deregister_unknown_token_is_ignored(self) -> None:
        registry = ConnectionRegistry()

        registry.deregister("missing")

        assert registry.active() == []


class TestSqliteProvisioner:
    """Tests for the file-per-tenant provisioner."""

    def test_create_and_drop(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme", WORKSPACE_ID)

        provisioner.create_database(descriptor)
        assert provisioner.database_exists(descriptor)
        assert provisioner.path_for("ws_acme").exists()

        provisioner.drop_database(descriptor)
        assert not provisioner.database_exists(descriptor)

    def test_create_existing_raises(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme", WORKSPACE_ID)
        provisioner.create_database(descriptor)

        with pytest.raises(DatabaseAlreadyExistsError) as exc_info:
            provisioner.create_database(descriptor)

        assert exc_info.value.workspace_id == WORKSPACE_ID
        assert exc_info.value.step == "create_database"

    def test_drop_missing_raises(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_missing", WORKSPACE_ID)

        with pytest.raises(DatabaseNotFoundError):
            provisioner.drop_database(descriptor)

    def test_drop_refused_while_connected(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme", WORKSPACE_ID)
        provisioner.create_database(descriptor)

        with provisioner.temporary_connection(descriptor):
            with pytest.raises(TeardownError) as exc_info:
                provisioner.drop_database(descriptor)

        assert exc_info.value.step == "drop_database"
        assert provisioner.database_exists(descriptor)

        provisioner.drop_database(descriptor)
        assert not provisioner.database_exists(descriptor)

    def test_temporary_connection_registers_descriptor(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme")
        provisioner.create_database(descriptor)

        with provisioner.temporary_connection(descriptor) as connection:
            assert provisioner.registry.is_registered("ws_acme")
            with transaction_scope(connection):
                assert connection.execute(text("SELECT 1")).scalar() == 1

        assert not provisioner.registry.is_registered("ws_acme")

    def test_temporary_connection_deregisters_on_error(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme")
        provisioner.create_database(descriptor)

        with pytest.raises(RuntimeError):
            with provisioner.temporary_connection(descriptor):
                raise RuntimeError("interrupted")

        assert provisioner.registry.active() == []

    def test_temporary_connection_rolls_back_ddl(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme")
        provisioner.create_database(descriptor)

        with provisioner.temporary_connection(descriptor) as connection:
            with pytest.raises(RuntimeError):
                with transaction_scope(connection):
                    connection.execute(text("CREATE TABLE half_t (id INTEGER PRIMARY KEY)"))
                    raise RuntimeError("script failed after DDL")

            with transaction_scope(connection):
                tables = connection.execute(
                    text("SELECT name FROM sqlite_master WHERE type = 'table'")
                ).scalars().all()

        assert tables == []

    def test_terminate_connections_is_noop(self, provisioner: SqliteProvisioner) -> None:
        descriptor = provisioner.descriptor_for("ws_acme")

        assert provisioner.terminate_connections(descriptor) == 0


class TestPostgresProvisioner:
    """Tests for the PostgreSQL provisioner with a mocked admin engine."""

    @pytest.fixture
    def pg(self) -> PostgresProvisioner:
        return PostgresProvisioner("postgresql+psycopg2://owner:secret@db:5432/postgres")

    @pytest.fixture
    def connection(self, pg: PostgresProvisioner) -> MagicMock:
        engine = MagicMock()
        conn = MagicMock()
        engine.connect.return_value.__enter__.return_value = conn
        engine.dialect.identifier_preparer.quote.side_effect = lambda name: f'"{name}"'
        pg._admin_engine = engine
        return conn

    def test_create_database_issues_ddl(self, pg: PostgresProvisioner, connection: MagicMock) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)

        with patch.object(pg, "database_exists", return_value=False):
            pg.create_database(descriptor)

        statement = connection.execute.call_args.args[0]
        assert str(statement) == 'CREATE DATABASE "ws_acme"'

    def test_create_existing_raises(self, pg: PostgresProvisioner, connection: MagicMock) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)

        with patch.object(pg, "database_exists", return_value=True):
            with pytest.raises(DatabaseAlreadyExistsError):
                pg.create_database(descriptor)

        connection.execute.assert_not_called()

    def test_duplicate_database_race_maps_to_already_exists(
        self, pg: PostgresProvisioner, connection: MagicMock
    ) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)
        connection.execute.side_effect = ProgrammingError(
            "CREATE DATABASE", {}, FakePgDuplicateDatabase("exists")
        )

        with patch.object(pg, "database_exists", return_value=False):
            with pytest.raises(DatabaseAlreadyExistsError):
                pg.create_database(descriptor)

    def test_create_failure_wraps_driver_error(
        self, pg: PostgresProvisioner, connection: MagicMock
    ) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)
        error = OperationalError("CREATE DATABASE", {}, Exception("permission denied"))
        connection.execute.side_effect = error

        with patch.object(pg, "database_exists", return_value=False):
            with pytest.raises(DatabaseError) as exc_info:
                pg.create_database(descriptor)

        assert exc_info.value.original_error is error

    def test_drop_missing_raises(self, pg: PostgresProvisioner, connection: MagicMock) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)

        with patch.object(pg, "database_exists", return_value=False):
            with pytest.raises(DatabaseNotFoundError):
                pg.drop_database(descriptor)

    def test_drop_blocked_raises_teardown_error(
        self, pg: PostgresProvisioner, connection: MagicMock
    ) -> None:
        descriptor = pg.descriptor_for("ws_acme", WORKSPACE_ID)
        error = OperationalError(
            "DROP DATABASE", {}, Exception("database is being accessed by other users")
        )
        connection.execute.side_effect = error

        with patch.object(pg, "database_exists", return_value=True):
            with pytest.raises(TeardownError) as exc_info:
                pg.drop_database(descriptor)

        assert exc_info.value.original_error is error
        assert exc_info.value.workspace_id == WORKSPACE_ID
        assert exc_info.value.step == "drop_database"
        # A single DROP attempt, no implicit forced disconnect.
        assert connection.execute.call_count == 1


class TestBuildProvisioner:
    """Tests for provisioner selection."""

    def test_sqlite(self, tmp_path: Path) -> None:
        settings = Settings(
            tenant_db=TenantDatabaseSettings(server_dsn="sqlite://", sqlite_directory=tmp_path)
        )

        assert isinstance(build_provisioner(settings), SqliteProvisioner)

    def test_postgres_by_default(self) -> None:
        assert isinstance(build_provisioner(Settings()), PostgresProvisioner)

    def test_unsupported_backend(self) -> None:
        settings = Settings(tenant_db=TenantDatabaseSettings(server_dsn="mysql://u:p@h/db"))

        with pytest.raises(ValueError, match="mysql"):
            build_provisioner(settings)
