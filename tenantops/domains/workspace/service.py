# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Workspace lifecycle management service.

This module provides complete workspace lifecycle management including:
- Workspace creation with tenant database provisioning
- Core schema migration of the new database
- Archive and restore
- Workspace destruction with database drop and storage purge

Registry updates and physical steps never share a transaction. Every
status change is committed before the next physical step starts, so an
interrupted operation always leaves a truthful status behind.

Example:
    >>> manager = WorkspaceLifecycleManager(
    ...     control_plane, provisioner, runner, ledger, core_script_set(),
    ...     storage, locks,
    ... )
    >>> workspace = manager.create("user-42", {"name": "Acme"})
    >>> manager.destroy(workspace.id)
"""

import logging
from typing import Any

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tenantops.core.exceptions import (
    DatabaseAlreadyExistsError,
    DatabaseError,
    DatabaseNotFoundError,
    InvalidStateTransitionError,
    ProvisioningError,
    TeardownError,
    TenantOpsError,
    ValidationError,
    WorkspaceAlreadyExistsError,
    WorkspaceNotFoundError,
)
from tenantops.domains.workspace.schemas import WorkspaceCreate
from tenantops.infrastructure.database.connection import ControlPlane
from tenantops.infrastructure.database.locks import WorkspaceLockManager
from tenantops.infrastructure.database.migrations import (
    MigrationLedger,
    MigrationRunner,
    ScriptSet,
)
from tenantops.infrastructure.database.models.base import new_uuid
from tenantops.infrastructure.database.models.control_plane import (
    Workspace,
    WorkspaceModuleInstallation,
    WorkspaceStatus,
    can_transition,
)
from tenantops.infrastructure.database.provisioner import (
    ConnectionDescriptor,
    DatabaseProvisioner,
    tenant_database_name,
)
from tenantops.infrastructure.storage import WorkspaceStorage
from tenantops.utils.datetime import utc_now
from tenantops.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class WorkspaceLifecycleManager:
    """Workspace lifecycle management service.

    Handles the workspace lifecycle from creation to destruction,
    including tenant database provisioning and teardown.

    Attributes:
        _control_plane: Short units of work against the registry.
        _provisioner: Creates and drops tenant databases.
        _runner: Applies the core script set.
        _locks: Per-workspace operation locks.
    """

    def __init__(
        self,
        control_plane: ControlPlane,
        provisioner: DatabaseProvisioner,
        runner: MigrationRunner,
        ledger: MigrationLedger,
        core_scripts: ScriptSet,
        storage: WorkspaceStorage,
        locks: WorkspaceLockManager,
        hard_delete: bool = True,
        database_prefix: str = "ws_",
    ) -> None:
        """Initialize the workspace lifecycle manager.

        Args:
            control_plane: Control-plane unit-of-work provider.
            provisioner: Tenant database provisioner.
            runner: Migration runner.
            ledger: Tenant migration ledger.
            core_scripts: Script set applied to every new workspace.
            storage: Workspace file storage.
            locks: Workspace lock manager.
            hard_delete: Delete the workspace row on destroy instead of
                keeping it as ``destroyed``.
            database_prefix: Prefix of tenant database names.
        """
        self._control_plane = control_plane
        self._provisioner = provisioner
        self._runner = runner
        self._ledger = ledger
        self._core_scripts = core_scripts
        self._storage = storage
        self._locks = locks
        self._hard_delete = hard_delete
        self._database_prefix = database_prefix

    # =========================================================================
    # Creation
    # =========================================================================

    def create(self, owner_id: str, attributes: dict[str, Any] | WorkspaceCreate) -> Workspace:
        """Create a workspace and provision its tenant database.

        This method:
        1. Validates the attributes and the slug's uniqueness
        2. Locks the new id and registers the workspace as pending (committed)
        3. Creates the tenant database
        4. Applies the core script set
        5. Marks the workspace active

        Args:
            owner_id: Id of the user owning the workspace.
            attributes: Workspace attributes (name, optional slug, settings).

        Returns:
            The active Workspace.

        Raises:
            ValidationError: If the attributes are invalid.
            WorkspaceAlreadyExistsError: If the slug is taken.
            ProvisioningError: If database creation or migration fails.
                The workspace is left in failed_provisioning.
        """
        request = self._validate(owner_id, attributes)
        workspace_id = new_uuid()

        bind_context(workspace_id=workspace_id, operation="create")
        try:
            with self._locks.hold(workspace_id, "create"):
                self._register(workspace_id, owner_id, request)
                return self._provision(workspace_id, reuse_existing=False)
        finally:
            clear_context()

    def retry_provisioning(self, workspace_id: str) -> Workspace:
        """Provision a workspace again after a failed attempt.

        An existing tenant database is reused and only its pending core
        scripts are applied.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist.
            InvalidStateTransitionError: If the workspace is not in
                failed_provisioning or pending.
            ProvisioningError: If provisioning fails again.
        """
        bind_context(workspace_id=workspace_id, operation="retry_provisioning")
        try:
            with self._locks.hold(workspace_id, "retry_provisioning"):
                return self._provision(workspace_id, reuse_existing=True)
        finally:
            clear_context()

    def _validate(self, owner_id: str, attributes: dict[str, Any] | WorkspaceCreate) -> WorkspaceCreate:
        if not owner_id:
            raise ValidationError("Workspace owner is required")

        if isinstance(attributes, WorkspaceCreate):
            return attributes

        try:
            return WorkspaceCreate.model_validate(attributes)
        except PydanticValidationError as e:
            raise ValidationError(
                "Invalid workspace attributes",
                {"errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def _register(self, workspace_id: str, owner_id: str, request: WorkspaceCreate) -> None:
        try:
            with self._control_plane.unit() as session:
                existing = session.execute(
                    select(Workspace.id).where(Workspace.slug == request.slug)
                ).scalar()
                if existing is not None:
                    raise WorkspaceAlreadyExistsError(
                        f"Workspace with slug '{request.slug}' already exists",
                        {"slug": request.slug},
                    )

                session.add(
                    Workspace(
                        id=workspace_id,
                        name=request.name,
                        slug=request.slug,
                        database_name=tenant_database_name(workspace_id, self._database_prefix),
                        status=WorkspaceStatus.PENDING.value,
                        owner_id=owner_id,
                        settings=request.settings,
                    )
                )
        except DatabaseError as e:
            if isinstance(e.original_error, IntegrityError):
                raise WorkspaceAlreadyExistsError(
                    f"Workspace with slug '{request.slug}' already exists",
                    {"slug": request.slug},
                ) from e
            raise

        logger.info("Registered workspace %s (%s)", request.slug, workspace_id)

    def _provision(self, workspace_id: str, reuse_existing: bool) -> Workspace:
        workspace = self._transition(workspace_id, WorkspaceStatus.PROVISIONING, failure_reason=None)
        descriptor = self._provisioner.descriptor_for(workspace.database_name, workspace_id)
        context = {"workspace_id": workspace_id, "database_name": descriptor.database_name}

        created = False
        try:
            if reuse_existing and self._provisioner.database_exists(descriptor):
                logger.info("Reusing existing tenant database %s", descriptor.database_name)
            else:
                self._provisioner.create_database(descriptor)
                created = True
        except DatabaseAlreadyExistsError as e:
            # Never compensate by dropping a database this call did not create.
            self._mark_failed(workspace_id, "create_database", e)
            raise ProvisioningError(
                f"Tenant database {descriptor.database_name} already exists",
                {**context, "step": "create_database"},
            ) from e
        except TenantOpsError as e:
            self._mark_failed(workspace_id, "create_database", e)
            raise ProvisioningError(
                f"Failed to create tenant database {descriptor.database_name}",
                {**context, "step": "create_database"},
            ) from e

        try:
            with self._provisioner.temporary_connection(descriptor) as connection:
                applied = self._runner.apply_pending(connection, self._core_scripts, self._ledger)
        except (TenantOpsError, SQLAlchemyError) as e:
            compensation_error = self._compensate(descriptor) if created else None
            self._mark_failed(workspace_id, "apply_migrations", e)
            raise ProvisioningError(
                f"Failed to migrate tenant database {descriptor.database_name}",
                {**context, "step": "apply_migrations", "script": getattr(e, "script", None)},
                compensation_error=compensation_error,
            ) from e

        logger.info(
            "Applied %d core migrations to %s", len(applied), descriptor.database_name
        )

        workspace = self._transition(
            workspace_id, WorkspaceStatus.ACTIVE, provisioned_at=utc_now()
        )
        logger.info("Workspace %s provisioned successfully", workspace.slug)
        return workspace

    def _compensate(self, descriptor: ConnectionDescriptor) -> Exception | None:
        try:
            self._provisioner.drop_database(descriptor)
        except TenantOpsError as drop_error:
            logger.error(
                "Compensating drop of %s failed, manual cleanup required: %s",
                descriptor.database_name,
                drop_error,
            )
            return drop_error

        logger.info("Dropped partially migrated database %s", descriptor.database_name)
        return None

    def _mark_failed(self, workspace_id: str, step: str, error: Exception) -> None:
        logger.error("Provisioning of workspace %s failed at %s: %s", workspace_id, step, error)
        try:
            self._transition(
                workspace_id,
                WorkspaceStatus.FAILED_PROVISIONING,
                failure_reason=f"{step}: {error}",
            )
        except TenantOpsError:
            logger.exception("Failed to record failed_provisioning for workspace %s", workspace_id)

    # =========================================================================
    # Destruction
    # =========================================================================

    def destroy(self, workspace_id: str) -> Workspace:
        """Destroy a workspace, its tenant database and its stored files.

        A teardown failure leaves the workspace in ``destroying``; calling
        destroy again resumes from there.

        Args:
            workspace_id: Workspace to destroy.

        Returns:
            The destroyed Workspace (detached when hard-deleted).

        Raises:
            ConcurrencyConflictError: If another operation holds the workspace.
            WorkspaceNotFoundError: If the workspace does not exist.
            InvalidStateTransitionError: If the workspace is already
                destroyed or cannot be destroyed from its status.
            TeardownError: If dropping the database or purging storage fails.
        """
        bind_context(workspace_id=workspace_id, operation="destroy")
        try:
            with self._locks.hold(workspace_id, "destroy"):
                return self._destroy(workspace_id)
        finally:
            clear_context()

    def _destroy(self, workspace_id: str) -> Workspace:
        workspace = self._transition(workspace_id, WorkspaceStatus.DESTROYING)
        descriptor = self._provisioner.descriptor_for(workspace.database_name, workspace_id)
        context = {"workspace_id": workspace_id, "database_name": descriptor.database_name}

        try:
            if self._provisioner.database_exists(descriptor):
                self._provisioner.drop_database(descriptor)
            else:
                logger.info("Tenant database %s does not exist, skipping drop", descriptor.database_name)
        except DatabaseNotFoundError:
            logger.info("Tenant database %s already dropped", descriptor.database_name)
        except TeardownError:
            logger.error("Failed to drop tenant database %s", descriptor.database_name)
            raise
        except TenantOpsError as e:
            raise TeardownError(
                f"Failed to drop tenant database {descriptor.database_name}",
                original_error=e,
                details={**context, "step": "drop_database"},
            ) from e

        try:
            self._storage.purge_namespace(workspace_id)
        except Exception as e:
            logger.error("Failed to purge storage of workspace %s: %s", workspace_id, e)
            raise TeardownError(
                f"Failed to purge storage of workspace {workspace_id}",
                original_error=e,
                details={**context, "step": "purge_storage"},
            ) from e

        with self._control_plane.unit() as session:
            workspace = self._load(session, workspace_id)
            session.execute(
                delete(WorkspaceModuleInstallation).where(
                    WorkspaceModuleInstallation.workspace_id == workspace_id
                )
            )
            workspace.status = WorkspaceStatus.DESTROYED.value
            workspace.destroyed_at = utc_now()
            if self._hard_delete:
                session.delete(workspace)

        logger.info(
            "Workspace %s destroyed (%s)",
            workspace.slug,
            "hard delete" if self._hard_delete else "soft delete",
        )
        return workspace

    # =========================================================================
    # Archive / restore
    # =========================================================================

    def archive(self, workspace_id: str) -> Workspace:
        """Archive an active workspace. Its database is kept."""
        bind_context(workspace_id=workspace_id, operation="archive")
        try:
            with self._locks.hold(workspace_id, "archive"):
                return self._transition(
                    workspace_id, WorkspaceStatus.ARCHIVED, archived_at=utc_now()
                )
        finally:
            clear_context()

    def restore(self, workspace_id: str) -> Workspace:
        """Return an archived workspace to active."""
        bind_context(workspace_id=workspace_id, operation="restore")
        try:
            with self._locks.hold(workspace_id, "restore"):
                return self._transition(workspace_id, WorkspaceStatus.ACTIVE, archived_at=None)
        finally:
            clear_context()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, workspace_id: str) -> Workspace:
        """Get a workspace by id.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist.
        """
        with self._control_plane.unit() as session:
            return self._load(session, workspace_id)

    def get_by_slug(self, slug: str) -> Workspace | None:
        with self._control_plane.unit() as session:
            return session.execute(
                select(Workspace).where(Workspace.slug == slug)
            ).scalar_one_or_none()

    def list_workspaces(self, status: WorkspaceStatus | None = None) -> list[Workspace]:
        """List workspaces, oldest first, optionally filtered by status."""
        stmt = select(Workspace).order_by(Workspace.created_at, Workspace.slug)
        if status is not None:
            stmt = stmt.where(Workspace.status == WorkspaceStatus(status).value)

        with self._control_plane.unit() as session:
            return list(session.execute(stmt).scalars())

    # =========================================================================
    # Private helpers
    # =========================================================================

    def _load(self, session: Session, workspace_id: str) -> Workspace:
        workspace = session.get(Workspace, workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(
                f"Workspace not found: {workspace_id}", {"workspace_id": workspace_id}
            )
        return workspace

    def _transition(
        self, workspace_id: str, target: WorkspaceStatus, **changes: Any
    ) -> Workspace:
        """Move a workspace to a new status in its own unit of work.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist.
            InvalidStateTransitionError: If the transition is not allowed.
        """
        with self._control_plane.unit() as session:
            workspace = self._load(session, workspace_id)
            current = workspace.lifecycle_status

            if not can_transition(current, target):
                raise InvalidStateTransitionError(
                    current.value, target.value, {"workspace_id": workspace_id}
                )

            workspace.status = target.value
            for field, value in changes.items():
                setattr(workspace, field, value)

        logger.info("Workspace %s: %s -> %s", workspace_id, current.value, target.value)
        return workspace
