# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services.

- workspace: Workspace creation and destruction
- modules: Module catalog and install/uninstall
- acl: Tenant permissions and roles
"""
