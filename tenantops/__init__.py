"""tenantops.

Workspace database provisioning, scoped tenant migrations and feature
module lifecycle for multi-tenant SaaS platforms.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "0.1.0"
