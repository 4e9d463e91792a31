"""
gateway_bootstrap.runtime — Model runtime activation and model provisioning.

Two activation strategies share one interface:

  container  Ollama runs as a service of the compose stack; models live in
             the `ollama_data` named volume.
  native     Ollama is installed on the host (Homebrew) and managed as a
             background service; the compose stack only holds the gateway.

The pipeline never branches on the strategy kind; it only calls the methods
below.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import requests

from gateway_bootstrap.artifacts import RUNTIME_IMAGE, RUNTIME_SERVICE
from gateway_bootstrap.config import RunConfig
from gateway_bootstrap.exceptions import ActivationError, CommandError, ProvisioningError
from gateway_bootstrap.models import (
    HandleKind,
    RuntimeKind,
    ServiceHandle,
    StepResult,
    StepStatus,
)
from gateway_bootstrap.orchestrator import Compose
from gateway_bootstrap.polling import Sleeper, await_predicate
from gateway_bootstrap.probes import http_ok, list_runtime_models, model_in_inventory
from gateway_bootstrap.runner import CommandRunner

logger = logging.getLogger("gateway_bootstrap.runtime")


class RuntimeStrategy(ABC):
    """How the model runtime is installed, started, probed and fed models."""

    kind: RuntimeKind
    description: str
    logs_hint: str
    # True when `docker compose down` also stops the runtime.
    stops_with_stack: bool

    def __init__(
        self,
        config: RunConfig,
        *,
        runner: CommandRunner,
        compose: Compose,
        session: requests.Session,
    ) -> None:
        self.config = config
        self.runner = runner
        self.compose = compose
        self.session = session

    @abstractmethod
    def is_installed(self) -> bool: ...

    @abstractmethod
    def install(self) -> None: ...

    @abstractmethod
    def handle(self) -> ServiceHandle: ...

    @abstractmethod
    def start(self) -> None: ...

    @abstractmethod
    def is_ready(self) -> bool: ...

    @abstractmethod
    def pull(self, model: str) -> None: ...

    def inventory(self) -> list[str]:
        return list_runtime_models(
            self.session, self.config.runtime_url, timeout=self.config.http_timeout
        )

    @property
    def stop_hint(self) -> str | None:
        return None


class ContainerRuntime(RuntimeStrategy):
    kind = RuntimeKind.CONTAINER
    description = "Ollama in Docker"
    logs_hint = f"Check logs: docker compose logs {RUNTIME_SERVICE}"
    stops_with_stack = True

    def is_installed(self) -> bool:
        result = self.runner.run(["docker", "image", "inspect", RUNTIME_IMAGE], check=False)
        return result.ok

    def install(self) -> None:
        self.compose.pull(quiet=True)

    def handle(self) -> ServiceHandle:
        return self.compose.service(RUNTIME_SERVICE)

    def start(self) -> None:
        self.compose.up((RUNTIME_SERVICE,))

    def is_ready(self) -> bool:
        return self.compose.exec(RUNTIME_SERVICE, ["ollama", "list"], check=False).ok

    def pull(self, model: str) -> None:
        self.compose.exec(RUNTIME_SERVICE, ["ollama", "pull", model], capture=False)


class NativeRuntime(RuntimeStrategy):
    kind = RuntimeKind.NATIVE
    description = "native Ollama"
    logs_hint = "Check the service: brew services info ollama"
    stops_with_stack = False

    def _probe(self) -> bool:
        return http_ok(
            self.session, f"{self.config.runtime_url}/", timeout=self.config.http_timeout
        )

    def is_installed(self) -> bool:
        return self.runner.which("ollama") is not None

    def install(self) -> None:
        self.runner.run(
            ["brew", "install", "ollama"], hint="Install manually: brew install ollama"
        )

    def handle(self) -> ServiceHandle:
        return ServiceHandle(
            name="ollama",
            kind=HandleKind.HTTP,
            alive=self._probe(),
            detail=self.config.runtime_url,
        )

    def start(self) -> None:
        if self.runner.which("brew"):
            self.runner.run(["brew", "services", "start", "ollama"])
        else:
            self.runner.spawn_detached(["ollama", "serve"])

    def is_ready(self) -> bool:
        return self._probe()

    def pull(self, model: str) -> None:
        self.runner.run(["ollama", "pull", model], capture=False)

    @property
    def stop_hint(self) -> str | None:
        return "Ollama is still running. To stop it: brew services stop ollama"


STRATEGIES: dict[RuntimeKind, type[RuntimeStrategy]] = {
    RuntimeKind.CONTAINER: ContainerRuntime,
    RuntimeKind.NATIVE: NativeRuntime,
}


def build_strategy(
    config: RunConfig,
    *,
    runner: CommandRunner,
    compose: Compose,
    session: requests.Session,
) -> RuntimeStrategy:
    return STRATEGIES[config.runtime](config, runner=runner, compose=compose, session=session)


# ---------------------------------------------------------------------------
# Dependency activation
# ---------------------------------------------------------------------------


def activate_dependency(
    strategy: RuntimeStrategy,
    *,
    sleep: Sleeper,
    wait_for_ready: bool = True,
    step: str = "dependency",
) -> StepResult:
    """Ensure the runtime is installed and running, then wait until it answers.

    The settle probe after a fresh start only produces a warning; the
    readiness wait that follows is the authoritative gate and is fatal.
    """
    config = strategy.config
    applied = False
    warnings: list[str] = []

    if strategy.is_installed():
        logger.info("  [=] %s installed", strategy.description)
    else:
        logger.info("  [+] installing %s", strategy.description)
        try:
            strategy.install()
        except CommandError as exc:
            raise ActivationError(
                f"Could not install {strategy.description}: {exc}", hint=exc.hint
            ) from exc
        applied = True

    if strategy.handle().alive:
        logger.info("  [=] %s running", strategy.description)
    else:
        logger.info("  [+] starting %s", strategy.description)
        try:
            strategy.start()
        except CommandError as exc:
            raise ActivationError(
                f"Could not start {strategy.description}: {exc}", hint=strategy.logs_hint
            ) from exc
        applied = True
        sleep(config.settle_seconds)
        if not strategy.handle().alive:
            warning = (
                f"{strategy.description} not responding {config.settle_seconds:g}s after start; "
                "continuing to readiness wait"
            )
            logger.warning("  [!] %s", warning)
            warnings.append(warning)

    details: dict[str, object] = {"runtime": strategy.kind.value}
    if wait_for_ready:
        outcome = await_predicate(
            strategy.is_ready, config.runtime_wait, label="model runtime", sleep=sleep
        )
        details["readinessAttempts"] = outcome.attempts
        if not outcome.ready:
            raise ActivationError(
                f"{strategy.description} did not become ready in time "
                f"({outcome.attempts} attempts)",
                hint=strategy.logs_hint,
            )
        logger.info("  [=] %s ready", strategy.description)

    return StepResult(
        step=step,
        status=StepStatus.APPLIED if applied else StepStatus.SKIPPED,
        message=f"{strategy.description} ready",
        warnings=tuple(warnings),
        details=details,
    )


# ---------------------------------------------------------------------------
# Asset provisioning
# ---------------------------------------------------------------------------


def provision_model(
    strategy: RuntimeStrategy,
    model: str,
    *,
    step: str = "assets",
) -> StepResult:
    """Pull `model` into the runtime unless its inventory already lists it."""
    try:
        inventory = strategy.inventory()
    except (requests.RequestException, ValueError) as exc:
        raise ProvisioningError(
            f"Could not read the model inventory from {strategy.config.runtime_url}: {exc}",
            hint=strategy.logs_hint,
        ) from exc

    if model_in_inventory(model, inventory):
        logger.info("  [=] model %s already present", model)
        return StepResult(
            step=step,
            status=StepStatus.SKIPPED,
            message=f"model {model} already present",
        )

    logger.info("  [+] pulling %s; this may take several minutes", model)
    try:
        strategy.pull(model)
    except CommandError as exc:
        raise ProvisioningError(
            f"Pulling model {model} failed (exit {exc.returncode})",
            hint="Re-run setup to resume the download.",
        ) from exc
    logger.info("  [+] model %s downloaded", model)
    return StepResult(step=step, status=StepStatus.APPLIED, message=f"pulled {model}")
