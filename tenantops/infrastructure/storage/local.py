# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Local directory storage namespaces."""

import logging
import re
import shutil
from pathlib import Path
from typing import Protocol, runtime_checkable

from tenantops.core.exceptions import ValidationError

logger = logging.getLogger(__name__)

_NAMESPACE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


@runtime_checkable
class WorkspaceStorage(Protocol):
    """File storage collaborator used by workspace destruction."""

    def purge_namespace(self, workspace_id: str) -> None:
        """Delete every file stored for a workspace.

        Purging a namespace that does not exist is not an error.
        """
        ...


class LocalWorkspaceStorage:
    """Stores each workspace's files under ``<root>/<workspace_id>``."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def namespace_path(self, workspace_id: str) -> Path:
        """Directory of a workspace namespace.

        Raises:
            ValidationError: If the id could escape the storage root.
        """
        if not _NAMESPACE_PATTERN.match(workspace_id):
            raise ValidationError(
                f"Invalid storage namespace: {workspace_id!r}",
                {"workspace_id": workspace_id},
            )
        return self._root / workspace_id

    def ensure_namespace(self, workspace_id: str) -> Path:
        """Create a workspace namespace if needed and return its path."""
        path = self.namespace_path(workspace_id)
        path.mkdir(parents=True, exist_ok=True)
        return path

    def purge_namespace(self, workspace_id: str) -> None:
        path = self.namespace_path(workspace_id)

        if not path.exists():
            logger.debug("Storage namespace %s does not exist", workspace_id)
            return

        shutil.rmtree(path)
        logger.info("Purged storage namespace %s", workspace_id)
