# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Module lifecycle management service.

Installs and uninstalls feature modules in a single workspace. Only the
module's own script set is applied to, or reverted from, the workspace's
tenant database; no other workspace is touched.

Install order: apply scripts, seed permissions, create roles, record the
installation. Uninstall runs the inverse: revert scripts, remove roles
and permissions, delete the installation record. The record is the last
thing written on install and the last thing deleted on uninstall, so it
is only present while the module is fully in place.

Example:
    >>> manager = ModuleLifecycleManager(
    ...     control_plane, catalog, provisioner, runner, ledger, acl, locks,
    ... )
    >>> manager.install(workspace.id, "expenses")
    >>> manager.uninstall(workspace.id, "expenses")
"""

import logging

from sqlalchemy import delete, select
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from tenantops.core.exceptions import (
    DatabaseError,
    MigrationError,
    ModuleAlreadyInstalledError,
    ModuleDependencyError,
    ModuleInstallError,
    ModuleNotInstalledError,
    ModuleUninstallError,
    TenantOpsError,
    WorkspaceNotActiveError,
    WorkspaceNotFoundError,
)
from tenantops.domains.acl.store import AclStore
from tenantops.domains.modules.catalog import ModuleCatalog, ModuleDefinition
from tenantops.infrastructure.database.connection import ControlPlane
from tenantops.infrastructure.database.locks import WorkspaceLockManager
from tenantops.infrastructure.database.migrations import MigrationLedger, MigrationRunner
from tenantops.infrastructure.database.models.control_plane import (
    Workspace,
    WorkspaceModuleInstallation,
    WorkspaceStatus,
)
from tenantops.infrastructure.database.provisioner import DatabaseProvisioner
from tenantops.utils.logging import bind_context, clear_context

logger = logging.getLogger(__name__)


class ModuleLifecycleManager:
    """Installs and uninstalls catalog modules per workspace."""

    def __init__(
        self,
        control_plane: ControlPlane,
        catalog: ModuleCatalog,
        provisioner: DatabaseProvisioner,
        runner: MigrationRunner,
        ledger: MigrationLedger,
        acl: AclStore,
        locks: WorkspaceLockManager,
    ) -> None:
        self._control_plane = control_plane
        self._catalog = catalog
        self._provisioner = provisioner
        self._runner = runner
        self._ledger = ledger
        self._acl = acl
        self._locks = locks

    # =========================================================================
    # Install
    # =========================================================================

    def install(self, workspace_id: str, module_key: str) -> WorkspaceModuleInstallation:
        """Install a module in a workspace.

        Args:
            workspace_id: Target workspace.
            module_key: Catalog key of the module.

        Returns:
            The installation record.

        Raises:
            ModuleDefinitionNotFoundError: If the module is not in the catalog.
            ConcurrencyConflictError: If another operation holds the workspace.
            WorkspaceNotFoundError: If the workspace does not exist.
            WorkspaceNotActiveError: If the workspace is not active.
            ModuleAlreadyInstalledError: If the module is already installed.
            ModuleDependencyError: If a required module is not installed.
            ModuleInstallError: If a step failed after schema changes began.
                Scripts applied by this call were rolled back unless
                ``compensation_error`` is set.
        """
        definition = self._catalog.lookup(module_key)

        bind_context(workspace_id=workspace_id, operation="install", module=module_key)
        try:
            with self._locks.hold(workspace_id, "install"):
                return self._install(workspace_id, definition)
        finally:
            clear_context()

    def _install(self, workspace_id: str, definition: ModuleDefinition) -> WorkspaceModuleInstallation:
        with self._control_plane.unit() as session:
            workspace = self._load_active(session, workspace_id)
            installed = self._installed_keys(session, workspace_id)

        context = {"workspace_id": workspace_id, "module": definition.key}

        if definition.key in installed:
            raise ModuleAlreadyInstalledError(
                f"Module {definition.key} is already installed in workspace {workspace_id}",
                context,
            )

        missing = [key for key in definition.requires if key not in installed]
        if missing:
            raise ModuleDependencyError(
                f"Module {definition.key} requires {', '.join(missing)}",
                {**context, "missing": missing},
            )

        descriptor = self._provisioner.descriptor_for(workspace.database_name, workspace_id)

        try:
            with self._provisioner.temporary_connection(descriptor) as connection:
                installation = self._apply(connection, workspace_id, definition)
        except SQLAlchemyError as e:
            raise ModuleInstallError(
                f"Cannot connect to tenant database {descriptor.database_name}",
                {**context, "step": "connect"},
            ) from e

        logger.info("Installed module %s in workspace %s", definition.key, workspace_id)
        return installation

    def _apply(
        self, connection: Connection, workspace_id: str, definition: ModuleDefinition
    ) -> WorkspaceModuleInstallation:
        applied: list[str] = []
        seeded: list[str] = []
        created_roles: list[str] = []
        step = "apply_migrations"

        try:
            applied = self._runner.apply_pending(connection, definition.script_set, self._ledger)

            step = "seed_permissions"
            seeded = self._acl.seed_permissions(
                connection, definition.permissions, module=definition.key
            )

            step = "create_roles"
            created_roles = self._acl.create_roles(
                connection, definition.roles, module=definition.key
            )

            step = "record_installation"
            return self._record(workspace_id, definition.key)

        except (TenantOpsError, SQLAlchemyError, ValueError) as e:
            if isinstance(e, MigrationError):
                applied = e.applied

            logger.error(
                "Install of module %s failed at %s: %s", definition.key, step, e
            )
            compensation_error = self._compensate(
                connection, definition, applied, seeded, created_roles
            )
            raise ModuleInstallError(
                f"Failed to install module {definition.key} in workspace {workspace_id}",
                {
                    "workspace_id": workspace_id,
                    "module": definition.key,
                    "step": step,
                    "script": getattr(e, "script", None),
                    "applied": applied,
                },
                compensation_error=compensation_error,
            ) from e

    def _compensate(
        self,
        connection: Connection,
        definition: ModuleDefinition,
        applied: list[str],
        seeded: list[str],
        created_roles: list[str],
    ) -> Exception | None:
        try:
            self._acl.remove_roles(connection, created_roles, module=definition.key)
            self._acl.remove_permissions(connection, seeded, module=definition.key)
            if applied:
                self._runner.rollback(
                    connection, definition.script_set, self._ledger, only=applied
                )
        except (TenantOpsError, SQLAlchemyError) as compensation_error:
            logger.error(
                "Compensation of module %s failed, manual cleanup required: %s",
                definition.key,
                compensation_error,
            )
            return compensation_error

        logger.info("Rolled back %d script(s) of module %s", len(applied), definition.key)
        return None

    def _record(self, workspace_id: str, module_key: str) -> WorkspaceModuleInstallation:
        installation = WorkspaceModuleInstallation(workspace_id=workspace_id, module_key=module_key)
        try:
            with self._control_plane.unit() as session:
                session.add(installation)
        except DatabaseError as e:
            if isinstance(e.original_error, IntegrityError):
                raise ModuleAlreadyInstalledError(
                    f"Module {module_key} is already installed in workspace {workspace_id}",
                    {"workspace_id": workspace_id, "module": module_key},
                ) from e
            raise
        return installation

    # =========================================================================
    # Uninstall
    # =========================================================================

    def uninstall(self, workspace_id: str, module_key: str) -> list[str]:
        """Uninstall a module from a workspace.

        Args:
            workspace_id: Target workspace.
            module_key: Catalog key of the module.

        Returns:
            Keys of the reverted scripts, in execution order.

        Raises:
            ConcurrencyConflictError: If another operation holds the workspace.
            WorkspaceNotFoundError: If the workspace does not exist.
            WorkspaceNotActiveError: If the workspace is not active.
            ModuleNotInstalledError: If the module is not installed.
            ModuleDefinitionNotFoundError: If the module is not in the catalog.
            ModuleDependencyError: If an installed module requires this one.
            ModuleUninstallError: If reverting scripts or removing ACL data
                failed. The installation record is left intact.
        """
        bind_context(workspace_id=workspace_id, operation="uninstall", module=module_key)
        try:
            with self._locks.hold(workspace_id, "uninstall"):
                return self._uninstall(workspace_id, module_key)
        finally:
            clear_context()

    def _uninstall(self, workspace_id: str, module_key: str) -> list[str]:
        with self._control_plane.unit() as session:
            workspace = self._load_active(session, workspace_id)
            installed = self._installed_keys(session, workspace_id)

        context = {"workspace_id": workspace_id, "module": module_key}

        if module_key not in installed:
            raise ModuleNotInstalledError(
                f"Module {module_key} is not installed in workspace {workspace_id}",
                context,
            )

        definition = self._catalog.lookup(module_key)

        dependents = [key for key in self._catalog.dependents_of(module_key) if key in installed]
        if dependents:
            raise ModuleDependencyError(
                f"Module {module_key} is required by {', '.join(dependents)}",
                {**context, "dependents": dependents},
            )

        descriptor = self._provisioner.descriptor_for(workspace.database_name, workspace_id)

        try:
            with self._provisioner.temporary_connection(descriptor) as connection:
                reverted = self._revert(connection, workspace_id, definition)
        except SQLAlchemyError as e:
            raise ModuleUninstallError(
                f"Cannot connect to tenant database {descriptor.database_name}",
                {**context, "step": "connect"},
            ) from e

        with self._control_plane.unit() as session:
            session.execute(
                delete(WorkspaceModuleInstallation).where(
                    WorkspaceModuleInstallation.workspace_id == workspace_id,
                    WorkspaceModuleInstallation.module_key == module_key,
                )
            )

        logger.info("Uninstalled module %s from workspace %s", module_key, workspace_id)
        return reverted

    def _revert(
        self, connection: Connection, workspace_id: str, definition: ModuleDefinition
    ) -> list[str]:
        context = {"workspace_id": workspace_id, "module": definition.key}

        try:
            report = self._runner.rollback(connection, definition.script_set, self._ledger)
        except (TenantOpsError, SQLAlchemyError) as e:
            logger.error("Rollback of module %s failed: %s", definition.key, e)
            raise ModuleUninstallError(
                f"Failed to revert scripts of module {definition.key}",
                {
                    **context,
                    "step": "rollback",
                    "script": getattr(e, "script", None),
                    "reverted": getattr(e, "reverted", []),
                    "remaining": getattr(e, "remaining", []),
                },
            ) from e

        try:
            self._acl.remove_roles(connection, definition.role_names, module=definition.key)
            self._acl.remove_permissions(
                connection, definition.permissions, module=definition.key
            )
        except (TenantOpsError, SQLAlchemyError) as e:
            logger.error("Removing ACL data of module %s failed: %s", definition.key, e)
            raise ModuleUninstallError(
                f"Failed to remove roles and permissions of module {definition.key}",
                {**context, "step": "remove_acl", "reverted": report.reverted},
            ) from e

        return report.reverted

    # =========================================================================
    # Queries
    # =========================================================================

    def installed(self, workspace_id: str) -> list[str]:
        """Keys of the modules installed in a workspace.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist.
        """
        with self._control_plane.unit() as session:
            self._load(session, workspace_id)
            return sorted(self._installed_keys(session, workspace_id))

    def _installed_keys(self, session: Session, workspace_id: str) -> set[str]:
        return set(
            session.execute(
                select(WorkspaceModuleInstallation.module_key).where(
                    WorkspaceModuleInstallation.workspace_id == workspace_id
                )
            ).scalars()
        )

    def _load(self, session: Session, workspace_id: str) -> Workspace:
        workspace = session.get(Workspace, workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(
                f"Workspace not found: {workspace_id}", {"workspace_id": workspace_id}
            )
        return workspace

    def _load_active(self, session: Session, workspace_id: str) -> Workspace:
        workspace = self._load(session, workspace_id)
        if workspace.lifecycle_status is not WorkspaceStatus.ACTIVE:
            raise WorkspaceNotActiveError(
                f"Workspace {workspace_id} is {workspace.status}",
                {"workspace_id": workspace_id, "status": workspace.status},
            )
        return workspace
