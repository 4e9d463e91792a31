"""
gateway_bootstrap.models — Value types shared by the pipeline steps.

All records are frozen dataclasses.  A step never mutates a record it was
handed; it returns a new StepResult describing what it did.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class StepStatus(StrEnum):
    SKIPPED = "skipped"
    APPLIED = "applied"
    FAILED = "failed"


class RuntimeKind(StrEnum):
    CONTAINER = "container"
    NATIVE = "native"


class HandleKind(StrEnum):
    CONTAINER = "container"
    PROCESS = "process"
    HTTP = "http"


class WaitStatus(StrEnum):
    READY = "ready"
    TIMED_OUT = "timed_out"


# ---------------------------------------------------------------------------
# Step outcome
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StepResult:
    """Outcome of one pipeline step.

    `writes` lists every path the step created or modified; an empty tuple
    means the step left the filesystem untouched.
    """

    step: str
    status: StepStatus
    message: str = ""
    writes: tuple[Path, ...] = ()
    warnings: tuple[str, ...] = ()
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status is not StepStatus.FAILED


# ---------------------------------------------------------------------------
# Secrets and artifacts
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SecretPolicy:
    """How one key of the secrets file is materialized.

    A value is considered unset when it is empty or exactly equals one of
    `placeholders`.  Only unset values are ever written.
    """

    name: str
    description: str
    placeholders: tuple[str, ...] = ()
    auto_generate: bool = False
    prompt: bool = False
    missing_warning: str = ""

    def is_unset(self, value: str | None) -> bool:
        if value is None:
            return True
        stripped = value.strip()
        return not stripped or stripped in self.placeholders


@dataclass(frozen=True)
class ConfigArtifact:
    name: str
    path: Path
    content: str


# ---------------------------------------------------------------------------
# Runtime queries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServiceHandle:
    """Point-in-time view of an externally owned service.  Never cached."""

    name: str
    kind: HandleKind
    alive: bool
    detail: str = ""


@dataclass(frozen=True)
class WaitOutcome:
    status: WaitStatus
    attempts: int
    elapsed_seconds: float = 0.0

    @property
    def ready(self) -> bool:
        return self.status is WaitStatus.READY
