# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Service wiring.

Builds the workspace and module lifecycle managers, and everything they
depend on, from Settings.

Example:
    from tenantops.services import build_services

    services = build_services(get_settings())
    workspace = services.workspaces.create("user-42", {"name": "Acme"})
    services.modules.install(workspace.id, "expenses")
    services.close()
"""

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session

from tenantops.core.config.settings import Settings, get_settings
from tenantops.domains.acl.store import AclStore, SqlAclStore
from tenantops.domains.modules.catalog import ModuleCatalog, build_catalog
from tenantops.domains.modules.service import ModuleLifecycleManager
from tenantops.domains.workspace.service import WorkspaceLifecycleManager
from tenantops.infrastructure.database.connection import (
    ControlPlane,
    create_control_plane_engine,
    create_control_plane_schema,
    create_control_plane_sessionmaker,
)
from tenantops.infrastructure.database.locks import WorkspaceLockManager
from tenantops.infrastructure.database.migrations import (
    MigrationLedger,
    MigrationRunner,
    ScriptSet,
    core_script_set,
)
from tenantops.infrastructure.database.provisioner import DatabaseProvisioner, build_provisioner
from tenantops.infrastructure.storage import LocalWorkspaceStorage, WorkspaceStorage
from tenantops.modules import builtin_definitions

logger = logging.getLogger(__name__)


@dataclass
class LifecycleServices:
    """The lifecycle managers and their shared collaborators."""

    settings: Settings
    engine: Engine
    control_plane: ControlPlane
    provisioner: DatabaseProvisioner
    runner: MigrationRunner
    ledger: MigrationLedger
    core_scripts: ScriptSet
    catalog: ModuleCatalog
    acl: AclStore
    storage: WorkspaceStorage
    locks: WorkspaceLockManager
    workspaces: WorkspaceLifecycleManager
    modules: ModuleLifecycleManager
    owns_engine: bool = True

    def close(self) -> None:
        """Release database resources held by the services."""
        self.provisioner.dispose()
        if self.owns_engine:
            self.engine.dispose()


def build_services(
    settings: Settings | None = None,
    *,
    session: Session | None = None,
    catalog: ModuleCatalog | None = None,
    storage: WorkspaceStorage | None = None,
    create_schema: bool = True,
) -> LifecycleServices:
    """Build the lifecycle services.

    Args:
        settings: Application settings. Defaults to get_settings().
        session: Caller-owned control-plane session. Required when
            ``lifecycle.use_control_plane_transactions`` is disabled; the
            caller then commits or rolls back.
        catalog: Module catalog. Defaults to a frozen catalog of the
            bundled modules.
        storage: Workspace storage. Defaults to local directories under
            ``storage.root``.
        create_schema: Create missing control-plane tables.

    Returns:
        LifecycleServices.

    Raises:
        ValueError: If transactions are disabled and no session is given.
        DatabaseError: If the control-plane schema cannot be created.
    """
    settings = settings or get_settings()
    use_transactions = settings.lifecycle.use_control_plane_transactions

    if not use_transactions and session is None:
        raise ValueError(
            "A caller-owned session is required when control-plane transactions are disabled"
        )

    if session is not None:
        engine = session.get_bind()
        owns_engine = False
    else:
        engine = create_control_plane_engine(
            settings.control_db.url,
            pool_size=settings.control_db.pool_size,
            max_overflow=settings.control_db.max_overflow,
            echo=settings.debug,
        )
        owns_engine = True

    if create_schema:
        create_control_plane_schema(engine)

    if use_transactions:
        control_plane = ControlPlane(create_control_plane_sessionmaker(engine))
    else:
        control_plane = ControlPlane(use_transactions=False, session=session)

    core_scripts = core_script_set()
    if catalog is None:
        catalog = build_catalog(core_scripts, builtin_definitions())

    provisioner = build_provisioner(settings)
    runner = MigrationRunner()
    ledger = MigrationLedger(settings.lifecycle.ledger_table)
    acl = SqlAclStore()
    storage = storage or LocalWorkspaceStorage(settings.storage.root)
    locks = WorkspaceLockManager(control_plane)

    workspaces = WorkspaceLifecycleManager(
        control_plane,
        provisioner,
        runner,
        ledger,
        core_scripts,
        storage,
        locks,
        hard_delete=settings.lifecycle.hard_delete,
        database_prefix=settings.tenant_db.database_prefix,
    )
    modules = ModuleLifecycleManager(
        control_plane, catalog, provisioner, runner, ledger, acl, locks
    )

    logger.info(
        "Lifecycle services ready (%s tenants, %d modules, control-plane transactions %s)",
        provisioner.dialect,
        len(catalog),
        "on" if use_transactions else "off",
    )

    return LifecycleServices(
        settings=settings,
        engine=engine,
        control_plane=control_plane,
        provisioner=provisioner,
        runner=runner,
        ledger=ledger,
        core_scripts=core_scripts,
        catalog=catalog,
        acl=acl,
        storage=storage,
        locks=locks,
        workspaces=workspaces,
        modules=modules,
        owns_engine=owns_engine,
    )
