# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for per-workspace operation locks and control-plane units."""

import pytest
from sqlalchemy.orm import Session

from tenantops.core.exceptions import ConcurrencyConflictError
from tenantops.infrastructure.database.connection import ControlPlane
from tenantops.infrastructure.database.models import WorkspaceOperationLock
from tenantops.services import LifecycleServices

WORKSPACE_ID = "0f3c8d2e-5b7a-4c1d-9e6f-123456789abc"


class TestWorkspaceLockManager:
    """Tests for WorkspaceLockManager."""

    def test_acquire_and_release(self, services: LifecycleServices) -> None:
        locks = services.locks

        handle = locks.acquire(WORKSPACE_ID, "destroy")

        assert handle.operation == "destroy"
        assert locks.holder(WORKSPACE_ID) == "destroy"
        assert locks.release(handle) is True
        assert locks.holder(WORKSPACE_ID) is None

    def test_second_acquire_conflicts(self, services: LifecycleServices) -> None:
        locks = services.locks
        locks.acquire(WORKSPACE_ID, "install")

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            locks.acquire(WORKSPACE_ID, "destroy")

        assert exc_info.value.held_by == "install"
        assert exc_info.value.workspace_id == WORKSPACE_ID
        assert exc_info.value.details["operation"] == "destroy"

    def test_locks_are_per_workspace(self, services: LifecycleServices) -> None:
        locks = services.locks

        locks.acquire(WORKSPACE_ID, "install")
        other = locks.acquire("9a1b2c3d-0000-4000-8000-000000000000", "install")

        assert other.workspace_id != WORKSPACE_ID

    def test_release_twice(self, services: LifecycleServices) -> None:
        locks = services.locks
        handle = locks.acquire(WORKSPACE_ID, "create")

        locks.release(handle)

        assert locks.release(handle) is False

    def test_stale_handle_does_not_release_new_holder(self, services: LifecycleServices) -> None:
        locks = services.locks
        stale = locks.acquire(WORKSPACE_ID, "create")
        locks.force_release(WORKSPACE_ID)
        locks.acquire(WORKSPACE_ID, "destroy")

        assert locks.release(stale) is False
        assert locks.holder(WORKSPACE_ID) == "destroy"

    def test_hold_releases_on_success(self, services: LifecycleServices) -> None:
        locks = services.locks

        with locks.hold(WORKSPACE_ID, "archive"):
            assert locks.holder(WORKSPACE_ID) == "archive"

        assert locks.holder(WORKSPACE_ID) is None

    def test_hold_releases_on_error(self, services: LifecycleServices) -> None:
        locks = services.locks

        with pytest.raises(RuntimeError, match="interrupted"):
            with locks.hold(WORKSPACE_ID, "destroy"):
                raise RuntimeError("interrupted")

        assert locks.holder(WORKSPACE_ID) is None

    def test_force_release(self, services: LifecycleServices) -> None:
        locks = services.locks
        locks.acquire(WORKSPACE_ID, "install")

        assert locks.force_release(WORKSPACE_ID) is True
        assert locks.force_release(WORKSPACE_ID) is False


class TestControlPlane:
    """Tests for ControlPlane units of work."""

    def test_requires_session_factory(self) -> None:
        with pytest.raises(ValueError, match="session_factory"):
            ControlPlane()

    def test_requires_session_without_transactions(self) -> None:
        with pytest.raises(ValueError, match="session"):
            ControlPlane(use_transactions=False)

    def test_unit_rolls_back_on_error(self, services: LifecycleServices) -> None:
        control_plane = services.control_plane

        with pytest.raises(RuntimeError):
            with control_plane.unit() as session:
                session.add(
                    WorkspaceOperationLock(
                        workspace_id=WORKSPACE_ID, operation="create", token="t-1"
                    )
                )
                session.flush()
                raise RuntimeError("abort")

        with control_plane.unit() as session:
            assert session.get(WorkspaceOperationLock, WORKSPACE_ID) is None

    def test_flush_mode_leaves_commit_to_caller(self, make_services) -> None:
        base = make_services()
        session = Session(base.engine)
        try:
            control_plane = ControlPlane(use_transactions=False, session=session)

            with control_plane.unit() as unit_session:
                unit_session.add(
                    WorkspaceOperationLock(
                        workspace_id=WORKSPACE_ID, operation="create", token="t-1"
                    )
                )

            assert control_plane.uses_transactions is False
            assert session.get(WorkspaceOperationLock, WORKSPACE_ID) is not None

            session.rollback()
            assert session.get(WorkspaceOperationLock, WORKSPACE_ID) is None
        finally:
            session.close()
