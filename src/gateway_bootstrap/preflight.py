"""
gateway_bootstrap.preflight — Required tool and daemon checks.

Side-effect free.  The first unmet requirement raises PreflightError naming
the missing dependency and how to obtain it, before any file is written.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from gateway_bootstrap.config import RunConfig
from gateway_bootstrap.exceptions import PreflightError
from gateway_bootstrap.models import RuntimeKind, StepResult, StepStatus
from gateway_bootstrap.runner import CommandRunner

logger = logging.getLogger("gateway_bootstrap.preflight")

STATUS_TIMEOUT_SECONDS = 30


@dataclass(frozen=True)
class Requirement:
    """One external command, optionally with a status query it must pass."""

    command: str
    install_hint: str
    status_command: tuple[str, ...] = ()
    status_message: str = ""
    status_hint: str = ""


DOCKER = Requirement(
    command="docker",
    install_hint=(
        "Install Docker Desktop from https://www.docker.com/products/docker-desktop/ first."
    ),
    status_command=("docker", "info"),
    status_message="Docker is installed but the Docker daemon is not running.",
    status_hint="Start Docker Desktop and re-run setup.",
)

DOCKER_COMPOSE = Requirement(
    command="docker",
    install_hint="Install Docker Desktop, which ships the Compose v2 plugin.",
    status_command=("docker", "compose", "version"),
    status_message="The `docker compose` plugin is not available.",
    status_hint="Upgrade Docker Desktop or install the Compose v2 plugin.",
)

HOMEBREW = Requirement(
    command="brew",
    install_hint=(
        "Install Homebrew from https://brew.sh/ or install Ollama manually "
        "from https://ollama.com/download."
    ),
)


def requirements_for(config: RunConfig, runner: CommandRunner) -> list[Requirement]:
    requirements = [DOCKER, DOCKER_COMPOSE]
    # brew is only needed when the native runtime still has to be installed.
    if config.runtime is RuntimeKind.NATIVE and runner.which("ollama") is None:
        requirements.append(HOMEBREW)
    return requirements


def check_requirements(
    requirements: list[Requirement],
    runner: CommandRunner,
    *,
    step: str = "preflight",
) -> StepResult:
    checked: list[str] = []
    for requirement in requirements:
        if runner.which(requirement.command) is None:
            raise PreflightError(
                f"'{requirement.command}' is required but not found.",
                hint=requirement.install_hint,
            )
        if requirement.status_command:
            result = runner.run(
                list(requirement.status_command),
                check=False,
                timeout=STATUS_TIMEOUT_SECONDS,
            )
            if not result.ok:
                raise PreflightError(requirement.status_message, hint=requirement.status_hint)
        label = " ".join(requirement.status_command) or requirement.command
        logger.info("  [=] %s ok", label)
        checked.append(label)

    return StepResult(
        step=step,
        status=StepStatus.SKIPPED,
        message="prerequisites OK",
        details={"checked": checked},
    )
