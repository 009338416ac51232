# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- Unit tests (SQLite control plane and SQLite tenant databases)
- Integration tests (PostgreSQL, opt-in via TEST_POSTGRES_URL)
"""

from collections.abc import Callable, Generator, Iterator
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path

import pytest
from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from tenantops.core.config.settings import (
    ControlPlaneDatabaseSettings,
    LifecycleSettings,
    Settings,
    StorageSettings,
    TenantDatabaseSettings,
)
from tenantops.infrastructure.database.provisioner import SqliteProvisioner
from tenantops.services import LifecycleServices, build_services


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test (requires services)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )


# =============================================================================
# Settings Fixtures
# =============================================================================


def make_sqlite_settings(root: Path, **lifecycle: object) -> Settings:
    """Build settings with a SQLite control plane and SQLite tenants under root."""
    return Settings(
        environment="development",
        control_db=ControlPlaneDatabaseSettings(dsn=f"sqlite:///{root / 'control.sqlite3'}"),
        tenant_db=TenantDatabaseSettings(
            server_dsn="sqlite://",
            sqlite_directory=root / "tenants",
        ),
        lifecycle=LifecycleSettings(**lifecycle),
        storage=StorageSettings(root=root / "storage"),
    )


@pytest.fixture
def sqlite_settings(tmp_path: Path) -> Settings:
    """Provide settings backed entirely by files in tmp_path."""
    return make_sqlite_settings(tmp_path)


# =============================================================================
# Service Fixtures
# =============================================================================


@pytest.fixture
def services(sqlite_settings: Settings) -> Generator[LifecycleServices, None, None]:
    """Provide lifecycle services with the bundled module catalog."""
    built = build_services(sqlite_settings)
    yield built
    built.close()


@pytest.fixture
def make_services(tmp_path: Path) -> Generator[Callable[..., LifecycleServices], None, None]:
    """Provide a factory building services with custom options.

    Keyword arguments prefixed with ``lifecycle_`` override lifecycle
    settings; the rest are passed to build_services().
    """
    built: list[LifecycleServices] = []

    def factory(**options: object) -> LifecycleServices:
        lifecycle = {
            key.removeprefix("lifecycle_"): options.pop(key)
            for key in list(options)
            if key.startswith("lifecycle_")
        }
        services = build_services(make_sqlite_settings(tmp_path, **lifecycle), **options)
        built.append(services)
        return services

    yield factory

    for services in built:
        services.close()


# =============================================================================
# Tenant Inspection Helpers
# =============================================================================


@pytest.fixture
def tenant_tables(tmp_path: Path) -> Callable[[str], set[str]]:
    """Read the table names of a SQLite tenant database.

    Uses its own engine so assertions never share a connection with the
    code under test.
    """

    def reader(database_name: str) -> set[str]:
        path = tmp_path / "tenants" / f"{database_name}{SqliteProvisioner.SUFFIX}"
        engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
        try:
            return set(inspect(engine).get_table_names())
        finally:
            engine.dispose()

    return reader


@pytest.fixture
def tenant_engine(tmp_path: Path) -> Callable[[str], AbstractContextManager[Engine]]:
    """Open a separate engine on a SQLite tenant database for assertions."""

    @contextmanager
    def opener(database_name: str) -> Iterator[Engine]:
        path = tmp_path / "tenants" / f"{database_name}{SqliteProvisioner.SUFFIX}"
        engine = create_engine(f"sqlite:///{path}", poolclass=NullPool)
        try:
            yield engine
        finally:
            engine.dispose()

    return opener


@pytest.fixture
def sample_owner_id() -> str:
    """Provide a sample workspace owner id."""
    return "user-550e8400"


@pytest.fixture
def acme_attributes() -> dict[str, object]:
    """Provide attributes of the Acme sample workspace."""
    return {"name": "Acme", "settings": {"locale": "en"}}
