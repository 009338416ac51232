# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application configuration settings using Pydantic Settings.

This module provides centralized configuration management for tenantops.
Settings are loaded from environment variables with sensible defaults.

The Settings class is the main entry point and aggregates all subsettings.
A singleton instance is provided via get_settings() for dependency injection.

Example:
    >>> from tenantops.core.config.settings import get_settings
    >>> settings = get_settings()
    >>> print(settings.environment)
    'development'
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Self

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class ControlPlaneDatabaseSettings(BaseSettings):
    """Control-plane database configuration.

    The control-plane database stores:
    - Workspace registry and lifecycle status
    - Module installation records
    - Per-workspace operation locks

    Attributes:
        user: PostgreSQL username for the control-plane database.
        password: PostgreSQL password for the control-plane database.
        host: Database host address.
        port: Database port number.
        database: Database name.
        dsn: Full SQLAlchemy URL. Overrides the components when set.
        pool_size: Connection pool size.
        max_overflow: Maximum overflow connections.
    """

    model_config = SettingsConfigDict(
        env_prefix="CONTROL_DB_",
        extra="ignore",
    )

    user: str = "tenantops"
    password: SecretStr = SecretStr("tenantops_control_password")
    host: str = "localhost"
    port: int = 5432
    database: str = "tenantops_control"
    dsn: str | None = None
    pool_size: int = 5
    max_overflow: int = 10

    @property
    def url(self) -> str:
        """Build the sync database URL from components."""
        if self.dsn:
            return self.dsn
        pwd = self.password.get_secret_value()
        return f"postgresql+psycopg2://{self.user}:{pwd}@{self.host}:{self.port}/{self.database}"


class TenantDatabaseSettings(BaseSettings):
    """Tenant database server configuration.

    Each workspace gets its own database on the tenant server. The
    server URL points at the maintenance database used to issue
    CREATE DATABASE / DROP DATABASE.

    Attributes:
        user: PostgreSQL username for tenant databases.
        password: PostgreSQL password for tenant databases.
        host: Tenant database server host.
        port: Tenant database server port.
        admin_database: Maintenance database used for DDL on databases.
        server_dsn: Full SQLAlchemy URL of the tenant server. Overrides
            the components when set. A ``sqlite://`` URL selects the
            file-per-tenant provisioner.
        sqlite_directory: Directory holding tenant files for SQLite.
        database_prefix: Prefix of every tenant database name.
    """

    model_config = SettingsConfigDict(
        env_prefix="TENANT_DB_",
        extra="ignore",
    )

    user: str = "tenantops"
    password: SecretStr = SecretStr("tenantops_tenant_password")
    host: str = "localhost"
    port: int = 5432
    admin_database: str = "postgres"
    server_dsn: str | None = None
    sqlite_directory: Path = Path("var/tenants")
    database_prefix: str = "ws_"

    @property
    def server_url(self) -> str:
        """Build the tenant server maintenance URL."""
        if self.server_dsn:
            return self.server_dsn
        pwd = self.password.get_secret_value()
        return (
            f"postgresql+psycopg2://{self.user}:{pwd}"
            f"@{self.host}:{self.port}/{self.admin_database}"
        )


class LifecycleSettings(BaseSettings):
    """Workspace and module lifecycle behaviour.

    Attributes:
        use_control_plane_transactions: Commit each control-plane step in
            its own short transaction. Disable when the caller already
            wraps the whole operation in an outer transaction (test
            harnesses); the control plane then only flushes.
        hard_delete: Remove the workspace row on destroy instead of
            marking it destroyed.
        ledger_table: Name of the per-tenant migration ledger table.
    """

    model_config = SettingsConfigDict(
        env_prefix="LIFECYCLE_",
        extra="ignore",
    )

    use_control_plane_transactions: bool = True
    hard_delete: bool = True
    ledger_table: str = "tenant_migrations"


class StorageSettings(BaseSettings):
    """Workspace file-storage configuration.

    Attributes:
        root: Directory holding one namespace directory per workspace.
    """

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore",
    )

    root: Path = Path("var/storage")


class Settings(BaseSettings):
    """Main application settings aggregating all subsettings.

    Use get_settings() to obtain a cached singleton instance.

    Attributes:
        environment: Current environment (development, staging, production).
        debug: Enable debug mode.
        log_level: Logging level.
        control_db: Control-plane database settings.
        tenant_db: Tenant database server settings.
        lifecycle: Lifecycle behaviour settings.
        storage: Workspace file-storage settings.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Environment
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    # Subsettings - loaded with their own env prefixes
    control_db: ControlPlaneDatabaseSettings = Field(
        default_factory=ControlPlaneDatabaseSettings
    )
    tenant_db: TenantDatabaseSettings = Field(default_factory=TenantDatabaseSettings)
    lifecycle: LifecycleSettings = Field(default_factory=LifecycleSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @model_validator(mode="after")
    def validate_production_settings(self) -> Self:
        """Validate that production settings are properly configured.

        Raises:
            ValueError: If running in production with insecure defaults.
        """
        if self.environment == "production":
            defaults = {
                "CONTROL_DB_PASSWORD": (
                    self.control_db.password.get_secret_value(),
                    "tenantops_control_password",
                ),
                "TENANT_DB_PASSWORD": (
                    self.tenant_db.password.get_secret_value(),
                    "tenantops_tenant_password",
                ),
            }
            for env_name, (value, default) in defaults.items():
                if value == default:
                    raise ValueError(
                        f"Database password must be changed from default in production. "
                        f"Set {env_name} environment variable."
                    )
        return self

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment == "production"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    Call clear_settings_cache() if you need to reload settings.

    Returns:
        Cached Settings instance.
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this if you need to reload settings from environment.
    Useful for testing or dynamic configuration updates.
    """
    get_settings.cache_clear()
