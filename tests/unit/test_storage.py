# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for local workspace storage."""

from pathlib import Path

import pytest

from tenantops.core.exceptions import ValidationError
from tenantops.infrastructure.storage import LocalWorkspaceStorage, WorkspaceStorage

WORKSPACE_ID = "0f3c8d2e-5b7a-4c1d-9e6f-123456789abc"


@pytest.fixture
def storage(tmp_path: Path) -> LocalWorkspaceStorage:
    return LocalWorkspaceStorage(tmp_path / "storage")


class TestLocalWorkspaceStorage:
    """Tests for LocalWorkspaceStorage."""

    def test_implements_protocol(self, storage: LocalWorkspaceStorage) -> None:
        assert isinstance(storage, WorkspaceStorage)

    def test_namespace_under_root(self, storage: LocalWorkspaceStorage) -> None:
        assert storage.namespace_path(WORKSPACE_ID) == storage.root / WORKSPACE_ID

    @pytest.mark.parametrize("workspace_id", ["", "..", "../etc", "a/b", ".hidden"])
    def test_rejects_escaping_ids(self, storage: LocalWorkspaceStorage, workspace_id: str) -> None:
        with pytest.raises(ValidationError):
            storage.namespace_path(workspace_id)

    def test_purge_removes_files(self, storage: LocalWorkspaceStorage) -> None:
        namespace = storage.ensure_namespace(WORKSPACE_ID)
        (namespace / "receipts").mkdir()
        (namespace / "receipts" / "2025-01.pdf").write_bytes(b"%PDF")

        storage.purge_namespace(WORKSPACE_ID)

        assert not namespace.exists()
        assert storage.root.exists()

    def test_purge_missing_namespace(self, storage: LocalWorkspaceStorage) -> None:
        storage.purge_namespace(WORKSPACE_ID)

        assert not storage.namespace_path(WORKSPACE_ID).exists()

    def test_purge_leaves_other_namespaces(self, storage: LocalWorkspaceStorage) -> None:
        other = storage.ensure_namespace("9a1b2c3d-0000-4000-8000-000000000000")
        storage.ensure_namespace(WORKSPACE_ID)

        storage.purge_namespace(WORKSPACE_ID)

        assert other.exists()
