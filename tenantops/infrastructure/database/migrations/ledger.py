# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-tenant ledger of applied migration scripts.

The ledger lives inside each tenant database and must always list
exactly the scripts physically applied there. Rows are written in the
same transaction as the script that produced them and after it, so a
script is never recorded before it ran nor removed before its inverse
ran.
"""

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, MetaData, String, Table, delete, func, insert, select
from sqlalchemy.engine import Connection

from tenantops.infrastructure.database.provisioner import transaction_scope
from tenantops.utils.datetime import ensure_utc, utc_now


@dataclass(frozen=True)
class LedgerEntry:
    """One applied migration script."""

    migration: str
    script_set: str
    batch: int
    applied_at: datetime


class MigrationLedger:
    """Reads and writes the ledger table of a tenant database.

    The ledger holds no state of its own; every method receives the
    tenant connection explicitly.

    Attributes:
        table: Ledger table definition.
    """

    def __init__(self, table_name: str = "tenant_migrations") -> None:
        self._metadata = MetaData()
        self.table = Table(
            table_name,
            self._metadata,
            Column("migration", String(255), primary_key=True),
            Column("script_set", String(64), nullable=False, index=True),
            Column("batch", Integer, nullable=False),
            Column("applied_at", DateTime(timezone=True), nullable=False),
        )

    @property
    def table_name(self) -> str:
        return self.table.name

    def ensure(self, connection: Connection) -> None:
        """Create the ledger table if it does not exist."""
        with transaction_scope(connection):
            self.table.create(connection, checkfirst=True)

    def applied(self, connection: Connection, script_set: str | None = None) -> list[LedgerEntry]:
        """Applied scripts, optionally limited to one script set.

        Returns:
            Entries ordered by batch, then key.
        """
        stmt = select(self.table).order_by(self.table.c.batch, self.table.c.migration)
        if script_set is not None:
            stmt = stmt.where(self.table.c.script_set == script_set)

        with transaction_scope(connection):
            rows = connection.execute(stmt).all()

        return [
            LedgerEntry(
                migration=row.migration,
                script_set=row.script_set,
                batch=row.batch,
                applied_at=ensure_utc(row.applied_at),
            )
            for row in rows
        ]

    def applied_keys(self, connection: Connection, script_set: str | None = None) -> set[str]:
        """Keys of applied scripts, optionally limited to one script set."""
        return {entry.migration for entry in self.applied(connection, script_set)}

    def next_batch(self, connection: Connection) -> int:
        """Batch number for the next apply call."""
        with transaction_scope(connection):
            current = connection.execute(select(func.max(self.table.c.batch))).scalar()
        return (current or 0) + 1

    def record(self, connection: Connection, key: str, script_set: str, batch: int) -> None:
        """Record a script as applied."""
        with transaction_scope(connection):
            connection.execute(
                insert(self.table).values(
                    migration=key,
                    script_set=script_set,
                    batch=batch,
                    applied_at=utc_now(),
                )
            )

    def remove(self, connection: Connection, key: str) -> bool:
        """Remove a script from the ledger.

        Returns:
            True if an entry was removed.
        """
        with transaction_scope(connection):
            result = connection.execute(
                delete(self.table).where(self.table.c.migration == key)
            )
        return result.rowcount == 1
