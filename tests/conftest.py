"""
tests/conftest.py — Shared fixtures: fast run config, healthy fakes, context factory.
"""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from gateway_bootstrap.config import RunConfig, build_run_config
from gateway_bootstrap.engine import BootstrapContext, build_context

from fakes import RUNNING_PS, FakeResponse, FakeRunner, FakeSession, SleepRecorder, tags_response

FAST_ENV = {
    "GATEWAY_RUNTIME_WAIT_ATTEMPTS": "3",
    "GATEWAY_RUNTIME_WAIT_INTERVAL": "2",
    "GATEWAY_WAIT_ATTEMPTS": "4",
    "GATEWAY_WAIT_INTERVAL": "3",
    "GATEWAY_SETTLE_SECONDS": "1",
}


@pytest.fixture
def sleeper() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., RunConfig]:
    def _make(env: dict[str, str] | None = None, **overrides: Any) -> RunConfig:
        values: dict[str, Any] = {"project_dir": tmp_path, "interactive": False}
        values.update(overrides)
        return build_run_config(values, env={**FAST_ENV, **(env or {})})

    return _make


@pytest.fixture
def healthy_runner() -> FakeRunner:
    """A host with docker installed and the ollama container already running."""
    runner = FakeRunner(tools=("docker",))
    runner.on("ps", "--format", "json", stdout=RUNNING_PS)
    return runner


@pytest.fixture
def healthy_session() -> FakeSession:
    """Runtime already holds the default model; gateway answers its health check."""
    session = FakeSession()
    session.route("/api/tags", tags_response("qwen2.5-coder:14b"))
    session.route("/health/liveliness", FakeResponse(200))
    session.route(":11434/", FakeResponse(200))
    return session


@pytest.fixture
def make_ctx(sleeper: SleepRecorder) -> Callable[..., BootstrapContext]:
    def _make(
        config: RunConfig,
        runner: FakeRunner,
        session: FakeSession,
        *,
        environ: dict[str, str] | None = None,
        prompt: Callable[[str], str] | None = None,
        isatty: bool = False,
        out: list[str] | None = None,
    ) -> BootstrapContext:
        printed = out if out is not None else []
        return build_context(
            config,
            runner=runner,  # type: ignore[arg-type]
            session=session,  # type: ignore[arg-type]
            environ=environ if environ is not None else {},
            prompt=prompt or (lambda _: ""),
            isatty=lambda: isatty,
            sleep=sleeper,
            out=printed.append,
        )

    return _make

