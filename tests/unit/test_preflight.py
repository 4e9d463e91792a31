"""
tests/unit/test_preflight.py — Tool and daemon checks.
"""

from __future__ import annotations

import pytest

from gateway_bootstrap.exceptions import PreflightError
from gateway_bootstrap.models import StepStatus
from gateway_bootstrap.preflight import (
    HOMEBREW,
    check_requirements,
    requirements_for,
)

from fakes import FakeRunner


def _check(config, runner: FakeRunner):
    return check_requirements(requirements_for(config, runner), runner)


def test_all_present(make_config) -> None:
    runner = FakeRunner(tools=("docker",))

    result = _check(make_config(), runner)

    assert result.status is StepStatus.SKIPPED
    assert result.details["checked"] == ["docker info", "docker compose version"]


def test_missing_docker_names_install_source(make_config) -> None:
    runner = FakeRunner(tools=())

    with pytest.raises(PreflightError) as exc_info:
        _check(make_config(), runner)

    assert "'docker'" in str(exc_info.value)
    assert "docker.com" in (exc_info.value.hint or "")
    assert runner.calls == []


def test_daemon_not_running(make_config) -> None:
    runner = FakeRunner(tools=("docker",)).on("docker", "info", returncode=1)

    with pytest.raises(PreflightError, match="daemon is not running") as exc_info:
        _check(make_config(), runner)

    assert exc_info.value.hint == "Start Docker Desktop and re-run setup."


def test_compose_plugin_missing(make_config) -> None:
    runner = FakeRunner(tools=("docker",)).on("compose", "version", returncode=1)

    with pytest.raises(PreflightError, match="docker compose"):
        _check(make_config(), runner)


class TestNativeRequirements:
    def test_brew_required_when_ollama_missing(self, make_config) -> None:
        runner = FakeRunner(tools=("docker",))

        requirements = requirements_for(make_config(runtime="native"), runner)

        assert HOMEBREW in requirements
        with pytest.raises(PreflightError, match="'brew'"):
            check_requirements(requirements, runner)

    def test_brew_not_required_when_ollama_installed(self, make_config) -> None:
        runner = FakeRunner(tools=("docker", "ollama"))

        assert HOMEBREW not in requirements_for(make_config(runtime="native"), runner)

    def test_container_runtime_never_needs_brew(self, make_config) -> None:
        runner = FakeRunner(tools=("docker",))

        assert HOMEBREW not in requirements_for(make_config(runtime="container"), runner)
