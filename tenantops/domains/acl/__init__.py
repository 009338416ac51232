# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Tenant access-control data seeded by feature modules."""

from tenantops.domains.acl.store import AclStore, RoleTemplate, SqlAclStore

__all__ = ["AclStore", "RoleTemplate", "SqlAclStore"]
