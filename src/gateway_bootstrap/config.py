"""
gateway_bootstrap.config — RunConfig construction.

Precedence: explicit overrides (CLI flags) > environment > defaults.
The RunConfig is built once before the first step and never mutated.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from gateway_bootstrap.exceptions import BootstrapError
from gateway_bootstrap.models import RuntimeKind
from gateway_bootstrap.polling import RetryPolicy

DEFAULT_MODEL = "qwen2.5-coder:14b"
DEFAULT_PRIMARY_ROUTE = "qwen-coder"
DEFAULT_FALLBACK_ROUTE = "claude-fallback"
DEFAULT_FALLBACK_MODEL = "claude-sonnet-4-6"
DEFAULT_GATEWAY_PORT = 4000
DEFAULT_RUNTIME_PORT = 11434
DEFAULT_HEALTH_PATH = "/health/liveliness"

DEFAULT_RUNTIME_WAIT_ATTEMPTS = 30
DEFAULT_RUNTIME_WAIT_INTERVAL = 2.0
DEFAULT_GATEWAY_WAIT_ATTEMPTS = 20
DEFAULT_GATEWAY_WAIT_INTERVAL = 3.0
DEFAULT_SETTLE_SECONDS = 3.0
DEFAULT_HTTP_TIMEOUT = 5.0
DEFAULT_LOCK_TTL_SECONDS = 3600

ENV_FILENAME = ".env"
ENV_EXAMPLE_FILENAME = ".env.example"
ROUTING_FILENAME = "config.yaml"
MANIFEST_FILENAME = "docker-compose.yml"
LOCK_FILENAME = ".gateway-bootstrap.lock"


@dataclass(frozen=True)
class RunConfig:
    project_dir: Path
    runtime: RuntimeKind
    model: str
    primary_route: str
    fallback_route: str
    fallback_model: str
    gateway_port: int
    runtime_port: int
    health_path: str
    runtime_wait: RetryPolicy
    gateway_wait: RetryPolicy
    settle_seconds: float
    http_timeout: float
    lock_ttl_seconds: int
    interactive: bool = True
    report_path: Path | None = None

    @property
    def env_path(self) -> Path:
        return self.project_dir / ENV_FILENAME

    @property
    def env_example_path(self) -> Path:
        return self.project_dir / ENV_EXAMPLE_FILENAME

    @property
    def routing_path(self) -> Path:
        return self.project_dir / ROUTING_FILENAME

    @property
    def manifest_path(self) -> Path:
        return self.project_dir / MANIFEST_FILENAME

    @property
    def lock_path(self) -> Path:
        return self.project_dir / LOCK_FILENAME

    @property
    def gateway_url(self) -> str:
        return f"http://localhost:{self.gateway_port}"

    @property
    def runtime_url(self) -> str:
        return f"http://localhost:{self.runtime_port}"


def _env_int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise BootstrapError(f"{name} must be an integer (got {raw!r})") from exc
    if value < 1:
        raise BootstrapError(f"{name} must be >= 1 (got {value})")
    return value


def _port(name: str, value: Any) -> int:
    try:
        port = int(value)
    except (TypeError, ValueError) as exc:
        raise BootstrapError(f"{name} must be an integer (got {value!r})") from exc
    if not 1 <= port <= 65535:
        raise BootstrapError(
            f"{name} must be between 1 and 65535 (got {port})",
            hint="Pick a free TCP port, e.g. --port 4000.",
        )
    return port


def _env_port(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name, "").strip()
    return _port(name, raw) if raw else default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name, "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise BootstrapError(f"{name} must be a number (got {raw!r})") from exc
    if value < 0:
        raise BootstrapError(f"{name} must be >= 0 (got {value})")
    return value


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    return env.get(name, "").strip() or default


def _runtime_kind(raw: str) -> RuntimeKind:
    try:
        return RuntimeKind(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(kind.value for kind in RuntimeKind)
        raise BootstrapError(f"Unknown runtime {raw!r}; expected one of: {choices}") from exc


def build_run_config(
    overrides: Mapping[str, Any] | None = None,
    *,
    env: Mapping[str, str] | None = None,
) -> RunConfig:
    """Create the RunConfig for one invocation.

    Args:
        overrides: Values from the CLI.  Keys with a None value are ignored.
        env: Environment mapping; defaults to os.environ.  Used in tests.
    """
    env = os.environ if env is None else env
    given = {key: value for key, value in (overrides or {}).items() if value is not None}

    project_dir = Path(given.get("project_dir") or _env_str(env, "GATEWAY_PROJECT_DIR", "."))
    runtime = _runtime_kind(
        str(given.get("runtime") or _env_str(env, "GATEWAY_RUNTIME", RuntimeKind.CONTAINER))
    )
    if "port" in given:
        gateway_port = _port("--port", given["port"])
    else:
        gateway_port = _env_port(env, "GATEWAY_PORT", DEFAULT_GATEWAY_PORT)
    report = given.get("report_path")

    return RunConfig(
        project_dir=project_dir.expanduser().resolve(),
        runtime=runtime,
        model=str(given.get("model") or _env_str(env, "GATEWAY_MODEL", DEFAULT_MODEL)),
        primary_route=_env_str(env, "GATEWAY_PRIMARY_ROUTE", DEFAULT_PRIMARY_ROUTE),
        fallback_route=_env_str(env, "GATEWAY_FALLBACK_ROUTE", DEFAULT_FALLBACK_ROUTE),
        fallback_model=_env_str(env, "GATEWAY_FALLBACK_MODEL", DEFAULT_FALLBACK_MODEL),
        gateway_port=gateway_port,
        runtime_port=_env_port(env, "GATEWAY_RUNTIME_PORT", DEFAULT_RUNTIME_PORT),
        health_path=_env_str(env, "GATEWAY_HEALTH_PATH", DEFAULT_HEALTH_PATH),
        runtime_wait=RetryPolicy(
            max_attempts=_env_int(
                env, "GATEWAY_RUNTIME_WAIT_ATTEMPTS", DEFAULT_RUNTIME_WAIT_ATTEMPTS
            ),
            interval_seconds=_env_float(
                env, "GATEWAY_RUNTIME_WAIT_INTERVAL", DEFAULT_RUNTIME_WAIT_INTERVAL
            ),
        ),
        gateway_wait=RetryPolicy(
            max_attempts=_env_int(env, "GATEWAY_WAIT_ATTEMPTS", DEFAULT_GATEWAY_WAIT_ATTEMPTS),
            interval_seconds=_env_float(
                env, "GATEWAY_WAIT_INTERVAL", DEFAULT_GATEWAY_WAIT_INTERVAL
            ),
        ),
        settle_seconds=_env_float(env, "GATEWAY_SETTLE_SECONDS", DEFAULT_SETTLE_SECONDS),
        http_timeout=_env_float(env, "GATEWAY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT),
        lock_ttl_seconds=_env_int(env, "GATEWAY_LOCK_TTL", DEFAULT_LOCK_TTL_SECONDS),
        interactive=bool(given.get("interactive", True)),
        report_path=Path(report).expanduser() if report else None,
    )
