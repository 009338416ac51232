# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Physical tenant database provisioning and transient connections.

Each workspace owns exactly one tenant database. This module creates and
drops those databases and hands out short-lived connections to them.

Two provisioners are provided:
1. PostgresProvisioner: CREATE/DROP DATABASE on a shared PostgreSQL server
2. SqliteProvisioner: One database file per tenant in a directory
   (development and tests)

Database DDL is never wrapped in a transaction. PostgreSQL refuses
CREATE DATABASE inside one, and engines that auto-commit DDL would
silently commit any surrounding registry work. The admin engine therefore
runs in AUTOCOMMIT mode.

Tenant connections are never ambient. Every caller receives a
ConnectionDescriptor and passes it explicitly; temporary_connection()
registers it in the process-local ConnectionRegistry for exactly the
lifetime of one operation.

Example:
    provisioner = build_provisioner(settings)
    descriptor = provisioner.descriptor_for("ws_0f3c...", workspace_id)

    provisioner.create_database(descriptor)
    with provisioner.temporary_connection(descriptor) as connection:
        runner.apply_pending(connection, core_scripts, ledger)
"""

import logging
import re
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Iterator
from uuid import UUID, uuid4

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Connection, Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from tenantops.core.exceptions import (
    DatabaseAlreadyExistsError,
    DatabaseError,
    DatabaseNotFoundError,
    TeardownError,
    ValidationError,
)

if TYPE_CHECKING:
    from tenantops.core.config.settings import Settings

logger = logging.getLogger(__name__)

DATABASE_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]{0,62}$")

# SQLSTATE duplicate_database
PG_DUPLICATE_DATABASE = "42P04"


def tenant_database_name(workspace_id: str, prefix: str = "ws_") -> str:
    """Derive the tenant database identifier from a workspace id.

    The name is deterministic so a half-provisioned workspace can always
    be matched to its database.

    Args:
        workspace_id: Workspace UUID.
        prefix: Database name prefix.

    Returns:
        Database identifier, e.g. ``ws_0f3c8d...``.
    """
    return f"{prefix}{UUID(workspace_id).hex}"


@dataclass(frozen=True)
class ConnectionDescriptor:
    """How to reach one tenant database.

    Never persisted. Owned by the operation that requested it.

    Attributes:
        database_name: Tenant database identifier.
        url: SQLAlchemy URL of the tenant database (may contain credentials).
        workspace_id: Workspace the database belongs to, when known.
    """

    database_name: str
    url: str = field(repr=False)
    workspace_id: str | None = None

    @property
    def safe_url(self) -> str:
        """URL with the password masked, for logs."""
        return make_url(self.url).render_as_string(hide_password=True)


class ConnectionRegistry:
    """Process-local registry of tenant connections currently open.

    A descriptor is registered for the lifetime of one temporary
    connection. Registrations are keyed by an opaque token so two
    operations on the same database never deregister each other.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, ConnectionDescriptor] = {}

    def register(self, descriptor: ConnectionDescriptor) -> str:
        """Register a descriptor and return its registration token."""
        token = str(uuid4())
        with self._lock:
            self._entries[token] = descriptor
        return token

    def deregister(self, token: str) -> None:
        """Remove a registration. Unknown tokens are ignored."""
        with self._lock:
            self._entries.pop(token, None)

    def holders(self, database_name: str) -> int:
        """Number of open registrations for a database."""
        with self._lock:
            return sum(
                1 for d in self._entries.values() if d.database_name == database_name
            )

    def is_registered(self, database_name: str) -> bool:
        return self.holders(database_name) > 0

    def active(self) -> list[ConnectionDescriptor]:
        """Snapshot of all registered descriptors."""
        with self._lock:
            return list(self._entries.values())


def create_tenant_engine(url: str) -> Engine:
    """Create an unpooled engine for one tenant database.

    On SQLite the pysqlite driver only opens a transaction before DML, so
    DDL would commit on its own. The driver's transaction handling is
    switched off and BEGIN is emitted explicitly, making schema changes
    and ledger rows commit or roll back together.

    Args:
        url: SQLAlchemy URL of the tenant database.

    Returns:
        Engine using NullPool.
    """
    engine = create_engine(url, poolclass=NullPool)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_driver_transactions(dbapi_connection, connection_record):
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn):
            conn.exec_driver_sql("BEGIN")

    return engine


@contextmanager
def transaction_scope(connection: Connection) -> Iterator[Connection]:
    """Run a block in a transaction on a tenant connection.

    If the caller already began a transaction on the connection, the
    block joins it and the caller decides the outcome.
    """
    if connection.in_transaction():
        yield connection
        return

    with connection.begin():
        yield connection


class DatabaseProvisioner(ABC):
    """Creates and drops tenant databases and opens transient connections.

    Attributes:
        registry: Registry of tenant connections open in this process.
    """

    dialect: str = ""

    def __init__(self, registry: ConnectionRegistry | None = None) -> None:
        self.registry = registry or ConnectionRegistry()

    def descriptor_for(
        self, database_name: str, workspace_id: str | None = None
    ) -> ConnectionDescriptor:
        """Build the descriptor of a tenant database.

        Args:
            database_name: Tenant database identifier.
            workspace_id: Owning workspace, for error context.

        Returns:
            ConnectionDescriptor for the database.

        Raises:
            ValidationError: If the identifier is not a safe database name.
        """
        if not DATABASE_NAME_PATTERN.match(database_name):
            raise ValidationError(
                f"Invalid tenant database name: {database_name!r}",
                {"workspace_id": workspace_id},
            )
        return ConnectionDescriptor(
            database_name=database_name,
            url=self._database_url(database_name),
            workspace_id=workspace_id,
        )

    @abstractmethod
    def _database_url(self, database_name: str) -> str:
        """SQLAlchemy URL of a tenant database."""

    @abstractmethod
    def database_exists(self, descriptor: ConnectionDescriptor) -> bool:
        """Check whether the tenant database physically exists."""

    @abstractmethod
    def create_database(self, descriptor: ConnectionDescriptor) -> None:
        """Physically create the tenant database.

        Raises:
            DatabaseAlreadyExistsError: If the database already exists.
            DatabaseError: If the server rejects the statement.
        """

    @abstractmethod
    def drop_database(self, descriptor: ConnectionDescriptor) -> None:
        """Physically destroy the tenant database.

        Active connections are never disconnected implicitly; call
        terminate_connections() first as a separate, explicit step.

        Raises:
            DatabaseNotFoundError: If the database does not exist.
            TeardownError: If the drop is blocked or rejected.
        """

    @abstractmethod
    def terminate_connections(self, descriptor: ConnectionDescriptor) -> int:
        """Forcefully disconnect other sessions from the tenant database.

        Returns:
            Number of sessions terminated.
        """

    def dispose(self) -> None:
        """Release provisioner-held resources."""

    @contextmanager
    def temporary_connection(self, descriptor: ConnectionDescriptor) -> Iterator[Connection]:
        """Open a connection to a tenant database for one operation.

        The descriptor is registered while the connection is open and
        deregistered on every exit path: success, error or interruption.

        Args:
            descriptor: Tenant database to connect to.

        Yields:
            SQLAlchemy Connection to the tenant database.
        """
        token = self.registry.register(descriptor)
        engine: Engine | None = None

        try:
            engine = create_tenant_engine(descriptor.url)
            with engine.connect() as connection:
                yield connection
        finally:
            if engine is not None:
                engine.dispose()
            self.registry.deregister(token)

    def _teardown_context(self, descriptor: ConnectionDescriptor) -> dict:
        return {
            "workspace_id": descriptor.workspace_id,
            "database_name": descriptor.database_name,
            "step": "drop_database",
        }


class PostgresProvisioner(DatabaseProvisioner):
    """Tenant databases on a shared PostgreSQL server.

    Example:
        provisioner = PostgresProvisioner(
            "postgresql+psycopg2://user:pass@db:5432/postgres"
        )
    """

    dialect = "postgresql"

    def __init__(self, server_url: str, registry: ConnectionRegistry | None = None) -> None:
        """Initialize the provisioner.

        Args:
            server_url: URL of the maintenance database on the tenant server.
            registry: Connection registry. A new one is created if omitted.
        """
        super().__init__(registry)
        self._server_url = make_url(server_url)
        self._admin_engine: Engine | None = None

    def _get_admin_engine(self) -> Engine:
        if self._admin_engine is None:
            self._admin_engine = create_engine(
                self._server_url,
                isolation_level="AUTOCOMMIT",
                poolclass=NullPool,
            )
        return self._admin_engine

    def _database_url(self, database_name: str) -> str:
        return self._server_url.set(database=database_name).render_as_string(
            hide_password=False
        )

    def _quote(self, database_name: str) -> str:
        return self._get_admin_engine().dialect.identifier_preparer.quote(database_name)

    def database_exists(self, descriptor: ConnectionDescriptor) -> bool:
        try:
            with self._get_admin_engine().connect() as conn:
                result = conn.execute(
                    text("SELECT 1 FROM pg_database WHERE datname = :name"),
                    {"name": descriptor.database_name},
                )
                return result.scalar() is not None
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to check database {descriptor.database_name}", e
            ) from e

    def create_database(self, descriptor: ConnectionDescriptor) -> None:
        if self.database_exists(descriptor):
            raise DatabaseAlreadyExistsError(
                f"Database already exists: {descriptor.database_name}",
                {"workspace_id": descriptor.workspace_id, "step": "create_database"},
            )

        try:
            with self._get_admin_engine().connect() as conn:
                conn.execute(text(f"CREATE DATABASE {self._quote(descriptor.database_name)}"))
        except SQLAlchemyError as e:
            if getattr(getattr(e, "orig", None), "pgcode", None) == PG_DUPLICATE_DATABASE:
                raise DatabaseAlreadyExistsError(
                    f"Database already exists: {descriptor.database_name}",
                    {"workspace_id": descriptor.workspace_id, "step": "create_database"},
                ) from e
            raise DatabaseError(
                f"Failed to create database {descriptor.database_name}", e
            ) from e

        logger.info("Created tenant database %s", descriptor.database_name)

    def drop_database(self, descriptor: ConnectionDescriptor) -> None:
        if not self.database_exists(descriptor):
            raise DatabaseNotFoundError(
                f"Database does not exist: {descriptor.database_name}",
                self._teardown_context(descriptor),
            )

        try:
            with self._get_admin_engine().connect() as conn:
                conn.execute(text(f"DROP DATABASE {self._quote(descriptor.database_name)}"))
        except SQLAlchemyError as e:
            raise TeardownError(
                f"Failed to drop database {descriptor.database_name}",
                original_error=e,
                details=self._teardown_context(descriptor),
            ) from e

        logger.info("Dropped tenant database %s", descriptor.database_name)

    def terminate_connections(self, descriptor: ConnectionDescriptor) -> int:
        try:
            with self._get_admin_engine().connect() as conn:
                result = conn.execute(
                    text(
                        "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                        "WHERE datname = :name AND pid <> pg_backend_pid()"
                    ),
                    {"name": descriptor.database_name},
                )
                terminated = sum(1 for row in result if row[0])
        except SQLAlchemyError as e:
            raise DatabaseError(
                f"Failed to terminate connections to {descriptor.database_name}", e
            ) from e

        logger.warning(
            "Terminated %d sessions on tenant database %s",
            terminated,
            descriptor.database_name,
        )
        return terminated

    def dispose(self) -> None:
        if self._admin_engine is not None:
            self._admin_engine.dispose()
            self._admin_engine = None


class SqliteProvisioner(DatabaseProvisioner):
    """One SQLite file per tenant database.

    A drop is refused while this process holds a temporary connection to
    the database, the file-level equivalent of a server refusing to drop
    a database with active sessions.
    """

    dialect = "sqlite"
    SUFFIX = ".sqlite3"

    def __init__(self, directory: Path | str, registry: ConnectionRegistry | None = None) -> None:
        """Initialize the provisioner.

        Args:
            directory: Directory holding the tenant database files.
            registry: Connection registry. A new one is created if omitted.
        """
        super().__init__(registry)
        self._directory = Path(directory)

    def path_for(self, database_name: str) -> Path:
        """Path of the file backing a tenant database."""
        return self._directory / f"{database_name}{self.SUFFIX}"

    def _database_url(self, database_name: str) -> str:
        return f"sqlite:///{self.path_for(database_name)}"

    def database_exists(self, descriptor: ConnectionDescriptor) -> bool:
        return self.path_for(descriptor.database_name).exists()

    def create_database(self, descriptor: ConnectionDescriptor) -> None:
        path = self.path_for(descriptor.database_name)

        try:
            self._directory.mkdir(parents=True, exist_ok=True)
            # An empty file is a valid empty SQLite database.
            path.touch(exist_ok=False)
        except FileExistsError as e:
            raise DatabaseAlreadyExistsError(
                f"Database already exists: {descriptor.database_name}",
                {"workspace_id": descriptor.workspace_id, "step": "create_database"},
            ) from e
        except OSError as e:
            raise DatabaseError(
                f"Failed to create database {descriptor.database_name}", e
            ) from e

        logger.info("Created tenant database %s", descriptor.database_name)

    def drop_database(self, descriptor: ConnectionDescriptor) -> None:
        path = self.path_for(descriptor.database_name)

        if not path.exists():
            raise DatabaseNotFoundError(
                f"Database does not exist: {descriptor.database_name}",
                self._teardown_context(descriptor),
            )

        holders = self.registry.holders(descriptor.database_name)
        if holders:
            raise TeardownError(
                f"Database {descriptor.database_name} has {holders} active connection(s)",
                details=self._teardown_context(descriptor),
            )

        try:
            path.unlink()
            for suffix in ("-journal", "-wal", "-shm"):
                path.with_name(path.name + suffix).unlink(missing_ok=True)
        except OSError as e:
            raise TeardownError(
                f"Failed to drop database {descriptor.database_name}",
                original_error=e,
                details=self._teardown_context(descriptor),
            ) from e

        logger.info("Dropped tenant database %s", descriptor.database_name)

    def terminate_connections(self, descriptor: ConnectionDescriptor) -> int:
        # SQLite has no server sessions to terminate.
        holders = self.registry.holders(descriptor.database_name)
        if holders:
            logger.warning(
                "Cannot terminate %d in-process connection(s) to %s",
                holders,
                descriptor.database_name,
            )
        return 0


def build_provisioner(
    settings: "Settings", registry: ConnectionRegistry | None = None
) -> DatabaseProvisioner:
    """Build the provisioner matching the configured tenant server.

    Args:
        settings: Application settings.
        registry: Optional shared connection registry.

    Returns:
        PostgresProvisioner or SqliteProvisioner.

    Raises:
        ValueError: If the tenant server dialect is not supported.
    """
    url = settings.tenant_db.server_url
    backend = make_url(url).get_backend_name()

    if backend == "postgresql":
        return PostgresProvisioner(url, registry=registry)
    if backend == "sqlite":
        return SqliteProvisioner(settings.tenant_db.sqlite_directory, registry=registry)

    raise ValueError(f"Unsupported tenant database backend: {backend}")
