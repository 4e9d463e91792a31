"""
gateway_bootstrap.exceptions — Error taxonomy for the bootstrap pipeline.

Fatal errors derive from BootstrapError and abort the run with exit status 1.
Non-fatal conditions are never raised; they are collected as warnings on the
StepResult of the step that observed them.
"""

from __future__ import annotations


class BootstrapError(RuntimeError):
    """Base class for fatal bootstrap errors.

    Attributes:
        hint: Optional remediation shown to the operator after the message.
    """

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class PreflightError(BootstrapError):
    """A required tool is missing or a required daemon is unreachable."""


class ActivationError(BootstrapError):
    """The model runtime did not become ready within its readiness window."""


class ProvisioningError(BootstrapError):
    """The model inventory could not be read or the model pull failed."""


class ConfigMissingError(BootstrapError):
    """A declarative artifact needed by `start` has never been generated."""


class CommandError(BootstrapError):
    """Raised when an external command the pipeline depends on exits non-zero."""

    def __init__(
        self,
        *,
        command: list[str],
        returncode: int,
        stderr_tail: str = "",
        hint: str | None = None,
    ) -> None:
        self.command = command
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        message = f"Command failed ({returncode}): {' '.join(command)}"
        if stderr_tail:
            message = f"{message}\n{stderr_tail}"
        super().__init__(message, hint=hint)


class LockError(BootstrapError):
    """Base class for run lock errors."""


class LockAlreadyHeldError(LockError):
    """Raised when another bootstrap run currently holds the lock."""


class LockOwnershipError(LockError):
    """Raised when release is attempted with a lock id that does not match."""
