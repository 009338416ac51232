# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Per-workspace serialization of lifecycle operations.

Create, destroy, install and uninstall are multi-step and partly
irreversible, so at most one of them may run for a given workspace at a
time. A lock is one row in ``workspace_operation_locks`` keyed by the
workspace id, inserted in its own committed unit of work. A concurrent
acquisition either sees the row or fails on the primary key; both map to
ConcurrencyConflictError. The row is deleted when the operation ends, on
every exit path.

Example:
    locks = WorkspaceLockManager(control_plane)

    with locks.hold(workspace_id, "destroy"):
        ...
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from tenantops.core.exceptions import ConcurrencyConflictError, DatabaseError
from tenantops.infrastructure.database.connection import ControlPlane
from tenantops.infrastructure.database.models.control_plane import WorkspaceOperationLock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WorkspaceLockHandle:
    """Proof of a held workspace lock."""

    workspace_id: str
    operation: str
    token: str


class WorkspaceLockManager:
    """Acquire and release one lock per workspace in the control plane."""

    def __init__(self, control_plane: ControlPlane) -> None:
        self._control_plane = control_plane

    def acquire(self, workspace_id: str, operation: str) -> WorkspaceLockHandle:
        """Acquire the lock for a workspace.

        Args:
            workspace_id: Workspace to lock.
            operation: Name of the lifecycle operation taking the lock.

        Returns:
            Handle used to release the lock.

        Raises:
            ConcurrencyConflictError: If another operation holds the lock.
        """
        token = str(uuid4())

        try:
            with self._control_plane.unit() as session:
                existing = session.get(WorkspaceOperationLock, workspace_id)
                if existing is not None:
                    raise ConcurrencyConflictError(
                        workspace_id,
                        held_by=existing.operation,
                        details={"operation": operation},
                    )
                session.add(
                    WorkspaceOperationLock(
                        workspace_id=workspace_id,
                        operation=operation,
                        token=token,
                    )
                )
        except DatabaseError as e:
            if isinstance(e.original_error, IntegrityError):
                raise ConcurrencyConflictError(
                    workspace_id, details={"operation": operation}
                ) from e
            raise

        logger.debug("Acquired %s lock for workspace %s", operation, workspace_id)
        return WorkspaceLockHandle(workspace_id=workspace_id, operation=operation, token=token)

    def release(self, handle: WorkspaceLockHandle) -> bool:
        """Release a held lock.

        Args:
            handle: Handle returned by acquire().

        Returns:
            True if the lock row was removed, False if it was already gone.
        """
        with self._control_plane.unit() as session:
            result = session.execute(
                delete(WorkspaceOperationLock).where(
                    WorkspaceOperationLock.workspace_id == handle.workspace_id,
                    WorkspaceOperationLock.token == handle.token,
                )
            )
            released = result.rowcount == 1

        if not released:
            logger.warning(
                "Lock for workspace %s (%s) was already released",
                handle.workspace_id,
                handle.operation,
            )
        return released

    def force_release(self, workspace_id: str) -> bool:
        """Remove a workspace lock regardless of its holder.

        Operator tool for locks left behind by a crashed process.

        Returns:
            True if a lock row was removed.
        """
        with self._control_plane.unit() as session:
            result = session.execute(
                delete(WorkspaceOperationLock).where(
                    WorkspaceOperationLock.workspace_id == workspace_id
                )
            )
            removed = result.rowcount == 1

        if removed:
            logger.warning("Force-released lock for workspace %s", workspace_id)
        return removed

    def holder(self, workspace_id: str) -> str | None:
        """Get the operation currently holding a workspace lock, if any."""
        with self._control_plane.unit() as session:
            lock = session.get(WorkspaceOperationLock, workspace_id)
            return lock.operation if lock else None

    @contextmanager
    def hold(self, workspace_id: str, operation: str) -> Iterator[WorkspaceLockHandle]:
        """Hold the workspace lock for the duration of a block.

        Raises:
            ConcurrencyConflictError: If another operation holds the lock.
        """
        handle = self.acquire(workspace_id, operation)
        try:
            yield handle
        except BaseException:
            # The operation's own error must reach the caller.
            try:
                self.release(handle)
            except DatabaseError:
                logger.exception(
                    "Failed to release %s lock for workspace %s",
                    operation,
                    workspace_id,
                )
            raise
        else:
            self.release(handle)
