"""
tests/unit/test_runtime.py — Runtime activation and model provisioning.

Key assertions:
    - a runtime that is already up is left alone (no start command)
    - readiness is bounded: N probes, N-1 sleeps, then ActivationError
    - a model already in the inventory triggers zero pull commands
"""

from __future__ import annotations

import pytest
import requests

from gateway_bootstrap.exceptions import ActivationError, ProvisioningError
from gateway_bootstrap.models import StepStatus
from gateway_bootstrap.orchestrator import Compose
from gateway_bootstrap.runtime import (
    ContainerRuntime,
    NativeRuntime,
    activate_dependency,
    build_strategy,
    provision_model,
)

from fakes import RUNNING_PS, FakeResponse, FakeRunner, FakeSession, tags_response


def _strategy(config, runner: FakeRunner, session: FakeSession):
    compose = Compose(runner, config.manifest_path)  # type: ignore[arg-type]
    return build_strategy(
        config,
        runner=runner,  # type: ignore[arg-type]
        compose=compose,
        session=session,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Container runtime
# ---------------------------------------------------------------------------


class TestContainerActivation:
    def test_running_and_ready_is_skipped(self, make_config, healthy_runner, sleeper) -> None:
        strategy = _strategy(make_config(), healthy_runner, FakeSession())

        result = activate_dependency(strategy, sleep=sleeper)

        assert isinstance(strategy, ContainerRuntime)
        assert result.status is StepStatus.SKIPPED
        assert healthy_runner.count("up", "-d") == 0
        assert sleeper.calls == []

    def test_stopped_runtime_is_started(self, make_config, sleeper) -> None:
        runner = FakeRunner().on("ps", "--format", "json", results=[(0, "[]"), (0, RUNNING_PS)])
        strategy = _strategy(make_config(), runner, FakeSession())

        result = activate_dependency(strategy, sleep=sleeper)

        assert result.status is StepStatus.APPLIED
        assert result.warnings == ()
        assert runner.count("up", "-d", "ollama") == 1
        assert sleeper.calls == [1.0]

    def test_settle_probe_failure_is_only_a_warning(self, make_config, sleeper) -> None:
        runner = (
            FakeRunner()
            .on("ps", "--format", "json", stdout="[]")
            .on("ollama", "list", results=[(1, ""), (0, "")])
        )
        strategy = _strategy(make_config(), runner, FakeSession())

        result = activate_dependency(strategy, sleep=sleeper)

        assert result.status is StepStatus.APPLIED
        assert len(result.warnings) == 1
        assert result.details["readinessAttempts"] == 2
        assert sleeper.calls == [1.0, 2.0]

    def test_readiness_timeout_is_fatal(self, make_config, healthy_runner, sleeper) -> None:
        healthy_runner.on("ollama", "list", returncode=1)
        strategy = _strategy(make_config(), healthy_runner, FakeSession())

        with pytest.raises(ActivationError, match="3 attempts") as exc_info:
            activate_dependency(strategy, sleep=sleeper)

        assert healthy_runner.count("ollama", "list") == 3
        assert sleeper.calls == [2.0, 2.0]
        assert "docker compose logs ollama" in (exc_info.value.hint or "")

    def test_missing_image_is_pulled(self, make_config, healthy_runner, sleeper) -> None:
        healthy_runner.on("image", "inspect", returncode=1)
        strategy = _strategy(make_config(), healthy_runner, FakeSession())

        result = activate_dependency(strategy, sleep=sleeper)

        assert result.status is StepStatus.APPLIED
        assert healthy_runner.count("compose", "-f") >= 1
        assert healthy_runner.count("pull", "--quiet") == 1

    def test_failed_image_pull_is_activation_error(
        self, make_config, healthy_runner, sleeper
    ) -> None:
        healthy_runner.on("image", "inspect", returncode=1).on("pull", "--quiet", returncode=1)
        strategy = _strategy(make_config(), healthy_runner, FakeSession())

        with pytest.raises(ActivationError, match="Could not install"):
            activate_dependency(strategy, sleep=sleeper)

    def test_container_stops_with_stack(self, make_config) -> None:
        strategy = _strategy(make_config(), FakeRunner(), FakeSession())

        assert strategy.stops_with_stack is True
        assert strategy.stop_hint is None


# ---------------------------------------------------------------------------
# Native runtime
# ---------------------------------------------------------------------------


class TestNativeActivation:
    def test_installs_with_brew_and_starts_service(self, make_config, sleeper) -> None:
        runner = FakeRunner(tools=("docker", "brew"))
        session = FakeSession().route(
            ":11434/", requests.ConnectionError("down"), FakeResponse(200)
        )
        strategy = _strategy(make_config(runtime="native"), runner, session)

        result = activate_dependency(strategy, sleep=sleeper)

        assert isinstance(strategy, NativeRuntime)
        assert result.status is StepStatus.APPLIED
        assert ["brew", "install", "ollama"] in runner.calls
        assert ["brew", "services", "start", "ollama"] in runner.calls
        assert runner.spawned == []

    def test_without_brew_spawns_serve(self, make_config, sleeper) -> None:
        runner = FakeRunner(tools=("docker", "ollama"))
        session = FakeSession().route(
            ":11434/", requests.ConnectionError("down"), FakeResponse(200)
        )
        strategy = _strategy(make_config(runtime="native"), runner, session)

        activate_dependency(strategy, sleep=sleeper)

        assert runner.spawned == [["ollama", "serve"]]
        assert not any(call[0] == "brew" for call in runner.calls)

    def test_running_native_runtime_is_skipped(self, make_config, healthy_session, sleeper) -> None:
        runner = FakeRunner(tools=("docker", "ollama"))
        strategy = _strategy(make_config(runtime="native"), runner, healthy_session)

        result = activate_dependency(strategy, sleep=sleeper)

        assert result.status is StepStatus.SKIPPED
        assert runner.calls == []
        assert runner.spawned == []

    def test_native_runtime_outlives_the_stack(self, make_config) -> None:
        strategy = _strategy(make_config(runtime="native"), FakeRunner(), FakeSession())

        assert strategy.stops_with_stack is False
        assert "brew services stop ollama" in (strategy.stop_hint or "")


# ---------------------------------------------------------------------------
# Model provisioning
# ---------------------------------------------------------------------------


class TestProvisionModel:
    def test_present_model_is_not_pulled(self, make_config, healthy_runner) -> None:
        session = FakeSession().route("/api/tags", tags_response("qwen2.5-coder:14b"))
        strategy = _strategy(make_config(), healthy_runner, session)

        result = provision_model(strategy, "qwen2.5-coder:14b")

        assert result.status is StepStatus.SKIPPED
        assert healthy_runner.count("ollama", "pull") == 0

    def test_bare_name_matches_latest_tag(self, make_config, healthy_runner) -> None:
        session = FakeSession().route("/api/tags", tags_response("llama3.2:latest"))
        strategy = _strategy(make_config(), healthy_runner, session)

        result = provision_model(strategy, "llama3.2")

        assert result.status is StepStatus.SKIPPED
        assert healthy_runner.count("ollama", "pull") == 0

    def test_missing_model_is_pulled_inside_container(self, make_config, healthy_runner) -> None:
        session = FakeSession().route("/api/tags", tags_response("other:7b"))
        strategy = _strategy(make_config(), healthy_runner, session)

        result = provision_model(strategy, "qwen2.5-coder:14b")

        assert result.status is StepStatus.APPLIED
        pulls = [call for call in healthy_runner.calls if "pull" in call]
        assert len(pulls) == 1
        assert pulls[0][-5:] == ["-T", "ollama", "ollama", "pull", "qwen2.5-coder:14b"]

    def test_missing_model_is_pulled_natively(self, make_config) -> None:
        runner = FakeRunner(tools=("docker", "ollama"))
        session = FakeSession().route("/api/tags", tags_response())
        strategy = _strategy(make_config(runtime="native"), runner, session)

        provision_model(strategy, "phi4")

        assert runner.calls == [["ollama", "pull", "phi4"]]

    def test_pull_failure_is_provisioning_error(self, make_config, healthy_runner) -> None:
        healthy_runner.on("ollama", "pull", returncode=1)
        session = FakeSession().route("/api/tags", tags_response())
        strategy = _strategy(make_config(), healthy_runner, session)

        with pytest.raises(ProvisioningError, match="exit 1"):
            provision_model(strategy, "qwen2.5-coder:14b")

    def test_unreadable_inventory_is_provisioning_error(self, make_config, healthy_runner) -> None:
        strategy = _strategy(make_config(), healthy_runner, FakeSession())

        with pytest.raises(ProvisioningError, match="inventory"):
            provision_model(strategy, "qwen2.5-coder:14b")

        assert healthy_runner.count("ollama", "pull") == 0
