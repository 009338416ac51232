# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schemas for workspace lifecycle requests.

- WorkspaceCreate: Attributes of a new workspace
- WorkspaceSummary: Read-only view of a registered workspace
"""

import re
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from tenantops.infrastructure.database.models.control_plane import WorkspaceStatus

SLUG_PATTERN = r"^[a-z0-9][a-z0-9-]{0,62}$"


def slugify(value: str) -> str:
    """Derive a workspace slug from a display name.

    Example:
        >>> slugify("Acme Corp.")
        'acme-corp'
    """
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug[:63].rstrip("-")


class WorkspaceCreate(BaseModel):
    """Attributes of a workspace to create.

    The slug is derived from the name when not given.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: str = Field(
        min_length=1,
        max_length=120,
        description="Display name of the workspace",
    )
    slug: str | None = Field(
        default=None,
        pattern=SLUG_PATTERN,
        description="URL-safe unique identifier",
    )
    settings: dict[str, Any] = Field(
        default_factory=dict,
        description="Initial workspace settings",
    )

    @model_validator(mode="after")
    def derive_slug(self) -> "WorkspaceCreate":
        if self.slug is None:
            slug = slugify(self.name)
            if not slug:
                raise ValueError(f"Cannot derive a slug from name {self.name!r}")
            self.slug = slug
        return self


class WorkspaceSummary(BaseModel):
    """Read-only view of a workspace."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    slug: str
    status: WorkspaceStatus
    owner_id: str
    database_name: str
    failure_reason: str | None = None
    created_at: datetime | None = None
    provisioned_at: datetime | None = None
    archived_at: datetime | None = None
