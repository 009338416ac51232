# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Control-plane registry models.

Tables:
- workspaces: One row per tenant workspace and its lifecycle status
- workspace_module_installations: Installed feature modules per workspace
- workspace_operation_locks: In-flight lifecycle operation per workspace
"""

from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from tenantops.infrastructure.database.models.base import (
    Base,
    TimestampMixin,
    UUIDPrimaryKeyMixin,
)
from tenantops.utils.datetime import utc_now


class WorkspaceStatus(str, Enum):
    """Lifecycle status of a workspace."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    ARCHIVED = "archived"
    DESTROYING = "destroying"
    DESTROYED = "destroyed"
    FAILED_PROVISIONING = "failed_provisioning"


# Re-entering destroying is a caller-driven retry after a teardown failure.
ALLOWED_TRANSITIONS: dict[WorkspaceStatus, frozenset[WorkspaceStatus]] = {
    WorkspaceStatus.PENDING: frozenset(
        {WorkspaceStatus.PROVISIONING, WorkspaceStatus.FAILED_PROVISIONING}
    ),
    WorkspaceStatus.PROVISIONING: frozenset(
        {WorkspaceStatus.ACTIVE, WorkspaceStatus.FAILED_PROVISIONING}
    ),
    WorkspaceStatus.ACTIVE: frozenset(
        {WorkspaceStatus.ARCHIVED, WorkspaceStatus.DESTROYING}
    ),
    WorkspaceStatus.ARCHIVED: frozenset(
        {WorkspaceStatus.ACTIVE, WorkspaceStatus.DESTROYING}
    ),
    WorkspaceStatus.FAILED_PROVISIONING: frozenset(
        {WorkspaceStatus.PROVISIONING, WorkspaceStatus.DESTROYING}
    ),
    WorkspaceStatus.DESTROYING: frozenset(
        {WorkspaceStatus.DESTROYED, WorkspaceStatus.DESTROYING}
    ),
    WorkspaceStatus.DESTROYED: frozenset(),
}


def can_transition(current: WorkspaceStatus, target: WorkspaceStatus) -> bool:
    """Check whether a lifecycle transition is allowed."""
    return target in ALLOWED_TRANSITIONS[current]


class Workspace(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A tenant workspace and the database that belongs to it.

    The row is committed before any physical provisioning starts so that
    failed or interrupted provisioning remains visible for diagnosis.
    """

    __tablename__ = "workspaces"

    name: Mapped[str] = mapped_column(String(120), nullable=False)
    slug: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    database_name: Mapped[str] = mapped_column(String(63), nullable=False, unique=True)
    status: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        default=WorkspaceStatus.PENDING.value,
        index=True,
    )
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    provisioned_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    archived_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    destroyed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    @property
    def lifecycle_status(self) -> WorkspaceStatus:
        """Status as a WorkspaceStatus enum."""
        return WorkspaceStatus(self.status)

    def __repr__(self) -> str:
        return f"<Workspace {self.slug} ({self.id}) {self.status}>"


class WorkspaceModuleInstallation(UUIDPrimaryKeyMixin, Base):
    """A feature module installed in a workspace."""

    __tablename__ = "workspace_module_installations"
    __table_args__ = (
        UniqueConstraint(
            "workspace_id", "module_key", name="uq_workspace_module_installation"
        ),
    )

    workspace_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    module_key: Mapped[str] = mapped_column(String(64), nullable=False)
    installed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class WorkspaceOperationLock(Base):
    """Marks a lifecycle operation in flight for a workspace.

    The primary key makes a second concurrent acquisition fail with a
    unique violation.
    """

    __tablename__ = "workspace_operation_locks"

    workspace_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    operation: Mapped[str] = mapped_column(String(32), nullable=False)
    token: Mapped[str] = mapped_column(String(36), nullable=False)
    acquired_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
