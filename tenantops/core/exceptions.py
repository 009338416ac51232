# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exception hierarchy for workspace and module lifecycle operations.

- TenantOpsError: Base exception carrying message and context details
- ValidationError: Input rejected before any side effect
- AlreadyExistsError / NotFoundError: Idempotency guards
- ModuleAlreadyInstalledError / ModuleNotInstalledError: Installation guards
- ProvisioningError: Workspace creation failed (status failed_provisioning)
- TeardownError: Destruction failed (status stays destroying)
- MigrationError / MigrationRollbackError: A specific script failed
- ConcurrencyConflictError: Another lifecycle operation holds the workspace

Every error raised during an irreversible step carries ``workspace_id``,
``operation`` and ``step`` in ``details`` when they are known.
"""

from typing import Any


class TenantOpsError(Exception):
    """Base exception for all lifecycle errors.

    Attributes:
        message: Human-readable error description.
        details: Dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        """Initialize the error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    @property
    def workspace_id(self) -> str | None:
        """Workspace the failure relates to, if known."""
        return self.details.get("workspace_id")

    @property
    def step(self) -> str | None:
        """Lifecycle step that failed, if known."""
        return self.details.get("step")

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class DatabaseError(TenantOpsError):
    """Control-plane database operation failed.

    Attributes:
        original_error: The underlying SQLAlchemy or driver error.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.original_error = original_error
        super().__init__(message, details)

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        return super().__str__()


class ValidationError(TenantOpsError):
    """Input rejected before any side effect."""


class InvalidStateTransitionError(TenantOpsError):
    """Requested lifecycle transition is not allowed from the current status.

    Attributes:
        current: Current workspace status.
        target: Requested workspace status.
    """

    def __init__(
        self,
        current: str,
        target: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.current = current
        self.target = target
        super().__init__(
            f"Cannot transition workspace from '{current}' to '{target}'", details
        )


class WorkspaceNotActiveError(TenantOpsError):
    """Workspace is not active; its modules cannot be changed."""


class AlreadyExistsError(TenantOpsError):
    """Resource already exists."""


class WorkspaceAlreadyExistsError(AlreadyExistsError):
    """Workspace slug is already taken."""


class DatabaseAlreadyExistsError(AlreadyExistsError):
    """Physical tenant database already exists."""


class NotFoundError(TenantOpsError):
    """Resource does not exist."""


class WorkspaceNotFoundError(NotFoundError):
    """Workspace is not registered in the control plane."""


class DatabaseNotFoundError(NotFoundError):
    """Physical tenant database does not exist."""


class ModuleDefinitionNotFoundError(NotFoundError):
    """Module key is not registered in the catalog."""


class ModuleAlreadyInstalledError(TenantOpsError):
    """Module is already installed in the workspace."""


class ModuleNotInstalledError(TenantOpsError):
    """Module is not installed in the workspace."""


class ModuleDependencyError(TenantOpsError):
    """Module dependencies prevent the requested install or uninstall."""


class CatalogError(TenantOpsError):
    """Module definition rejected at catalog registration."""


class CatalogFrozenError(CatalogError):
    """Catalog no longer accepts registrations."""


class ConcurrencyConflictError(TenantOpsError):
    """Another lifecycle operation is in flight for the same workspace.

    Attributes:
        held_by: Operation currently holding the workspace lock.
    """

    def __init__(
        self,
        workspace_id: str,
        held_by: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.held_by = held_by
        context = {"workspace_id": workspace_id, "held_by": held_by}
        context.update(details or {})
        super().__init__(
            f"Another lifecycle operation is in progress for workspace {workspace_id}",
            context,
        )


class MigrationError(TenantOpsError):
    """A migration script failed to apply.

    Attributes:
        script: Key of the failing script.
        applied: Keys applied by the same call before the failure.
        original_error: The underlying error.
    """

    def __init__(
        self,
        script: str,
        original_error: Exception | None = None,
        applied: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.script = script
        self.original_error = original_error
        self.applied = list(applied or [])
        context = {"script": script}
        context.update(details or {})
        super().__init__(f"Migration {script} failed: {original_error}", context)


class MigrationRollbackError(MigrationError):
    """A migration inverse failed partway through a rollback.

    Attributes:
        reverted: Keys whose inverse succeeded, in execution order.
        remaining: Keys still applied, including the failing one.
    """

    def __init__(
        self,
        script: str,
        original_error: Exception | None = None,
        reverted: list[str] | None = None,
        remaining: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.reverted = list(reverted or [])
        self.remaining = list(remaining or [])
        context = {"reverted": self.reverted, "remaining": self.remaining}
        context.update(details or {})
        super().__init__(script, original_error, details=context)
        self.message = f"Rollback of migration {script} failed: {original_error}"
        self.args = (self.message,)


class ProvisioningError(TenantOpsError):
    """Workspace creation failed; workspace left in failed_provisioning.

    Attributes:
        compensation_error: Error raised by the compensating drop, if any.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        compensation_error: Exception | None = None,
    ) -> None:
        self.compensation_error = compensation_error
        super().__init__(message, details)


class TeardownError(TenantOpsError):
    """Destruction failed; workspace stays in destroying.

    Attributes:
        original_error: The underlying driver or storage error.
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.original_error = original_error
        super().__init__(message, details)


class ModuleInstallError(TenantOpsError):
    """Module install failed after schema changes began.

    Attributes:
        compensation_error: Error raised by the compensating rollback, if any.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        compensation_error: Exception | None = None,
    ) -> None:
        self.compensation_error = compensation_error
        super().__init__(message, details)


class ModuleUninstallError(TenantOpsError):
    """Module uninstall failed; the installation record is left intact."""
