# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Migration runner for tenant databases.

Applies and reverts script sets against a tenant connection without the
alembic CLI. Each script runs in its own transaction together with its
ledger row, under an alembic MigrationContext so scripts can use
``alembic.op``. On SQLite the connection must come from an engine built
by create_tenant_engine(), otherwise DDL commits outside that transaction.

Runs are fail-fast: the first failing script aborts the call. Scripts
that already succeeded in the same call stay applied and recorded.

Example:
    runner = MigrationRunner()
    ledger = MigrationLedger()

    with provisioner.temporary_connection(descriptor) as connection:
        applied = runner.apply_pending(connection, core_scripts, ledger)
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from alembic.operations import Operations
from alembic.runtime.migration import MigrationContext
from sqlalchemy.engine import Connection

from tenantops.core.exceptions import MigrationError, MigrationRollbackError
from tenantops.infrastructure.database.migrations.ledger import MigrationLedger
from tenantops.infrastructure.database.migrations.scripts import MigrationScript, ScriptSet
from tenantops.infrastructure.database.provisioner import transaction_scope

logger = logging.getLogger(__name__)


@dataclass
class RollbackReport:
    """Outcome of a completed rollback.

    Attributes:
        script_set: Script set that was rolled back.
        reverted: Keys whose inverse ran, in execution order.
    """

    script_set: str
    reverted: list[str] = field(default_factory=list)


@dataclass
class MigrationStatus:
    """Applied and pending scripts of one script set in a tenant database."""

    script_set: str
    applied: list[str] = field(default_factory=list)
    pending: list[str] = field(default_factory=list)

    @property
    def is_up_to_date(self) -> bool:
        return not self.pending


def _run_operation_sync(connection: Connection, operation: Callable[[], None]) -> None:
    """Run an upgrade or downgrade function with alembic operations bound.

    The caller has already begun the transaction; the migration context
    joins it.
    """
    context = MigrationContext.configure(connection)

    with context.begin_transaction():
        with Operations.context(context):
            operation()


class MigrationRunner:
    """Applies and reverts script sets, keeping the ledger in step."""

    def pending(
        self, connection: Connection, script_set: ScriptSet, ledger: MigrationLedger
    ) -> list[MigrationScript]:
        """Scripts of a set not yet recorded in the ledger, in order."""
        ledger.ensure(connection)
        applied = ledger.applied_keys(connection)
        return [script for script in script_set if script.key not in applied]

    def apply_pending(
        self, connection: Connection, script_set: ScriptSet, ledger: MigrationLedger
    ) -> list[str]:
        """Apply every pending script of a set in order.

        Args:
            connection: Tenant database connection.
            script_set: Scripts to apply.
            ledger: Ledger of the tenant database.

        Returns:
            Keys applied by this call, in order. Empty if already up to date.

        Raises:
            MigrationError: If a script fails. ``applied`` lists the keys
                this call applied before the failure; the failing script
                is neither applied nor recorded.
        """
        to_apply = self.pending(connection, script_set, ledger)

        if not to_apply:
            logger.info("Script set %s is up to date", script_set.name)
            return []

        batch = ledger.next_batch(connection)
        applied: list[str] = []

        for script in to_apply:
            logger.info("Applying migration %s (%s)", script.key, script_set.name)
            try:
                with transaction_scope(connection):
                    _run_operation_sync(connection, script.upgrade)
                    ledger.record(connection, script.key, script_set.name, batch)
            except Exception as e:
                logger.error("Migration %s failed: %s", script.key, e)
                raise MigrationError(
                    script.key,
                    e,
                    applied=applied,
                    details={"script_set": script_set.name},
                ) from e
            applied.append(script.key)

        logger.info("Applied %d migration(s) from %s", len(applied), script_set.name)
        return applied

    def rollback(
        self,
        connection: Connection,
        script_set: ScriptSet,
        ledger: MigrationLedger,
        only: Iterable[str] | None = None,
    ) -> RollbackReport:
        """Revert the applied scripts of a set in reverse order.

        Args:
            connection: Tenant database connection.
            script_set: Scripts to revert.
            ledger: Ledger of the tenant database.
            only: Restrict the rollback to these keys, e.g. the scripts a
                failed apply call managed to apply.

        Returns:
            RollbackReport listing the reverted keys.

        Raises:
            MigrationRollbackError: If an inverse fails or a script has no
                inverse. Scripts already reverted stay reverted; the
                failing script and everything before it stay applied.
        """
        ledger.ensure(connection)
        applied = ledger.applied_keys(connection)
        selected = set(only) if only is not None else None

        targets = [
            script
            for script in reversed(script_set.scripts)
            if script.key in applied and (selected is None or script.key in selected)
        ]

        reverted: list[str] = []
        for index, script in enumerate(targets):
            remaining = [s.key for s in targets[index:]]

            if script.downgrade is None:
                raise MigrationRollbackError(
                    script.key,
                    ValueError(f"Migration {script.key} has no downgrade() function"),
                    reverted=reverted,
                    remaining=remaining,
                    details={"script_set": script_set.name},
                )

            logger.info("Reverting migration %s (%s)", script.key, script_set.name)
            try:
                with transaction_scope(connection):
                    _run_operation_sync(connection, script.downgrade)
                    ledger.remove(connection, script.key)
            except Exception as e:
                logger.error("Rollback of migration %s failed: %s", script.key, e)
                raise MigrationRollbackError(
                    script.key,
                    e,
                    reverted=reverted,
                    remaining=remaining,
                    details={"script_set": script_set.name},
                ) from e
            reverted.append(script.key)

        logger.info("Reverted %d migration(s) from %s", len(reverted), script_set.name)
        return RollbackReport(script_set=script_set.name, reverted=reverted)

    def status(
        self, connection: Connection, script_set: ScriptSet, ledger: MigrationLedger
    ) -> MigrationStatus:
        """Report which scripts of a set are applied and which are pending."""
        ledger.ensure(connection)
        applied = ledger.applied_keys(connection)

        return MigrationStatus(
            script_set=script_set.name,
            applied=[key for key in script_set.keys if key in applied],
            pending=[key for key in script_set.keys if key not in applied],
        )
