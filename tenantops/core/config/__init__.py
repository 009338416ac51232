# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Configuration package for tenantops.

Settings are Pydantic-based and loaded from environment variables.

Example:
    >>> from tenantops.core.config import get_settings
    >>> settings = get_settings()
    >>> settings.lifecycle.use_control_plane_transactions
    True
"""

from tenantops.core.config.settings import (
    ControlPlaneDatabaseSettings,
    LifecycleSettings,
    Settings,
    StorageSettings,
    TenantDatabaseSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "Settings",
    "get_settings",
    "clear_settings_cache",
    # Subsettings
    "ControlPlaneDatabaseSettings",
    "TenantDatabaseSettings",
    "LifecycleSettings",
    "StorageSettings",
]
