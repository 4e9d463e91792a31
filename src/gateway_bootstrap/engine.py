"""
gateway_bootstrap.engine — Ordered bootstrap steps.  Idempotent and safe to re-run.

Each step checks its own precondition and either skips or applies one
idempotent action.  A fatal error aborts the pipeline without rollback:
whatever earlier steps wrote stays in place, and the next run re-enters at
the first unmet precondition.

Steps:
    preflight    required tools present, Docker daemon reachable
    secrets      .env exists, placeholder secrets filled in
    config       config.yaml / docker-compose.yml written if absent
    dependency   model runtime installed, running and ready
    assets       target model present in the runtime inventory
    services     compose stack pulled and applied
    convergence  gateway health endpoint polled (warning on timeout)
    summary      connection details printed
"""

from __future__ import annotations

import getpass
import json
import logging
import os
import sys
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import requests

from gateway_bootstrap.artifacts import canonical_artifacts, emit_artifacts, require_artifact
from gateway_bootstrap.config import RunConfig
from gateway_bootstrap.credentials import (
    LITELLM_MASTER_KEY,
    Prompt,
    materialize_secrets,
    read_secret,
)
from gateway_bootstrap.exceptions import BootstrapError
from gateway_bootstrap.fsutil import write_text_atomic
from gateway_bootstrap.models import StepResult, StepStatus
from gateway_bootstrap.orchestrator import Compose
from gateway_bootstrap.polling import Sleeper, await_predicate
from gateway_bootstrap.preflight import check_requirements, requirements_for
from gateway_bootstrap.probes import http_ok
from gateway_bootstrap.runner import CommandRunner
from gateway_bootstrap.runtime import (
    RuntimeStrategy,
    activate_dependency,
    build_strategy,
    provision_model,
)
from gateway_bootstrap.summary import render_summary

logger = logging.getLogger("gateway_bootstrap.engine")

STEP_ORDER: tuple[str, ...] = (
    "preflight",
    "secrets",
    "config",
    "dependency",
    "assets",
    "services",
    "convergence",
    "summary",
)


@dataclass(frozen=True)
class BootstrapContext:
    """Everything a step may read or call.  Built once per run."""

    config: RunConfig
    runner: CommandRunner
    compose: Compose
    strategy: RuntimeStrategy
    session: requests.Session
    environ: Mapping[str, str]
    prompt: Prompt
    isatty: Callable[[], bool]
    sleep: Sleeper
    out: Callable[[str], None] = print


StepHandler = Callable[[BootstrapContext], StepResult]


def build_context(
    config: RunConfig,
    *,
    runner: CommandRunner | None = None,
    session: requests.Session | None = None,
    environ: Mapping[str, str] | None = None,
    prompt: Prompt = getpass.getpass,
    isatty: Callable[[], bool] | None = None,
    sleep: Sleeper = time.sleep,
    out: Callable[[str], None] = print,
) -> BootstrapContext:
    """Create the run context; collaborators default to the real implementations."""
    runner = runner or CommandRunner(cwd=config.project_dir)
    session = session or requests.Session()
    compose = Compose(runner, config.manifest_path)
    strategy = build_strategy(config, runner=runner, compose=compose, session=session)
    return BootstrapContext(
        config=config,
        runner=runner,
        compose=compose,
        strategy=strategy,
        session=session,
        environ=os.environ if environ is None else environ,
        prompt=prompt,
        isatty=isatty or sys.stdin.isatty,
        sleep=sleep,
        out=out,
    )


def utc_now_iso() -> str:
    """Return current UTC timestamp in ISO-8601 format."""
    return datetime.now(tz=UTC).isoformat()


# ---------------------------------------------------------------------------
# Step handlers
# ---------------------------------------------------------------------------


def step_preflight(ctx: BootstrapContext) -> StepResult:
    """Verify docker (+ compose) and, for a native install, Homebrew."""
    return check_requirements(requirements_for(ctx.config, ctx.runner), ctx.runner)


def step_secrets(ctx: BootstrapContext) -> StepResult:
    """Create .env if missing and fill in placeholder secrets."""
    return materialize_secrets(
        ctx.config.env_path,
        ctx.config.env_example_path,
        environ=ctx.environ,
        interactive=ctx.config.interactive,
        prompt=ctx.prompt,
        isatty=ctx.isatty,
    )


def step_config(ctx: BootstrapContext) -> StepResult:
    """Write the routing table and compose manifest when absent."""
    return emit_artifacts(canonical_artifacts(ctx.config))


def step_dependency(ctx: BootstrapContext) -> StepResult:
    """Install/start the model runtime and wait until it answers."""
    return activate_dependency(ctx.strategy, sleep=ctx.sleep)


def step_assets(ctx: BootstrapContext) -> StepResult:
    """Pull the target model unless the runtime already has it."""
    return provision_model(ctx.strategy, ctx.config.model)


def step_services(ctx: BootstrapContext) -> StepResult:
    """Pull latest images quietly, then apply the full compose manifest."""
    warnings: list[str] = []
    pulled = ctx.compose.pull(quiet=True, check=False)
    if not pulled.ok:
        warning = "Image pull failed; starting with the images already present"
        logger.warning("  [!] %s", warning)
        warnings.append(warning)
    ctx.compose.up()
    logger.info("  [+] compose stack applied")
    return StepResult(
        step="services",
        status=StepStatus.APPLIED,
        message="compose stack applied",
        warnings=tuple(warnings),
    )


def gateway_health_check(ctx: BootstrapContext) -> Callable[[], bool]:
    """Predicate: the gateway health endpoint answers 200."""
    url = f"{ctx.config.gateway_url}{ctx.config.health_path}"
    headers: dict[str, str] = {}
    master_key = read_secret(ctx.config.env_path, LITELLM_MASTER_KEY.name)
    if master_key and not LITELLM_MASTER_KEY.is_unset(master_key):
        headers["Authorization"] = f"Bearer {master_key}"

    def _check() -> bool:
        return http_ok(ctx.session, url, timeout=ctx.config.http_timeout, headers=headers)

    return _check


def step_convergence(ctx: BootstrapContext) -> StepResult:
    """Poll the gateway until healthy.  A timeout is a warning, not a failure."""
    policy = ctx.config.gateway_wait
    logger.info(
        "  waiting for the gateway (up to %d attempts, %gs apart)",
        policy.max_attempts,
        policy.interval_seconds,
    )
    outcome = await_predicate(
        gateway_health_check(ctx), policy, label="gateway", sleep=ctx.sleep
    )
    details = {"attempts": outcome.attempts, "status": outcome.status.value}
    if outcome.ready:
        logger.info("  [=] gateway healthy")
        return StepResult(
            step="convergence",
            status=StepStatus.SKIPPED,
            message="gateway healthy",
            details=details,
        )

    warning = "Gateway did not respond in time. Check logs with: docker compose logs -f"
    logger.warning("  [!] %s", warning)
    return StepResult(
        step="convergence",
        status=StepStatus.SKIPPED,
        message="gateway not yet healthy",
        warnings=(warning,),
        details=details,
    )


def step_summary(ctx: BootstrapContext) -> StepResult:
    """Print connection details and example invocations."""
    master_key = read_secret(ctx.config.env_path, LITELLM_MASTER_KEY.name)
    ctx.out(
        render_summary(
            ctx.config,
            master_key=master_key,
            runtime_description=ctx.strategy.description,
        )
    )
    return StepResult(step="summary", status=StepStatus.SKIPPED, message="summary printed")


STEP_HANDLERS: dict[str, StepHandler] = {
    "preflight": step_preflight,
    "secrets": step_secrets,
    "config": step_config,
    "dependency": step_dependency,
    "assets": step_assets,
    "services": step_services,
    "convergence": step_convergence,
    "summary": step_summary,
}


# ---------------------------------------------------------------------------
# Run report
# ---------------------------------------------------------------------------


def initial_report(config: RunConfig) -> dict[str, Any]:
    """Build an empty run report object."""
    return {
        "projectDir": str(config.project_dir),
        "runtime": config.runtime.value,
        "model": config.model,
        "updatedAt": utc_now_iso(),
        "steps": [],
    }


def load_report(path: Path, config: RunConfig) -> dict[str, Any]:
    """Load an existing report or return a fresh one."""
    try:
        parsed = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return initial_report(config)
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.warning("Ignoring unreadable run report %s", path)
        return initial_report(config)
    except OSError as exc:
        raise BootstrapError(
            f"Cannot read run report {path}: {exc.strerror or exc}",
            hint="Pass a writable file path to --report.",
        ) from exc
    if not isinstance(parsed, dict):
        return initial_report(config)
    if "steps" not in parsed or not isinstance(parsed["steps"], list):
        parsed["steps"] = []
    return parsed


def persist_report(path: Path, report: dict[str, Any]) -> None:
    """Write the run report JSON atomically."""
    report["updatedAt"] = utc_now_iso()
    write_text_atomic(path, json.dumps(report, indent=2, sort_keys=True) + "\n")
    logger.debug("Wrote run report: %s", path)


def _report_entry(result: StepResult, started_at: str) -> dict[str, Any]:
    return {
        "step": result.step,
        "status": result.status.value,
        "message": result.message,
        "startedAt": started_at,
        "completedAt": utc_now_iso(),
        "writes": [str(path) for path in result.writes],
        "warnings": list(result.warnings),
        "details": result.details,
    }


# ---------------------------------------------------------------------------
# Pipeline driver
# ---------------------------------------------------------------------------


def execute_step(
    *,
    step_name: str,
    ctx: BootstrapContext,
    report: dict[str, Any] | None = None,
) -> StepResult:
    """Execute one step and record its outcome.  Fatal errors are re-raised."""
    handler = STEP_HANDLERS[step_name]
    started_at = utc_now_iso()
    result: StepResult | None = None

    try:
        result = handler(ctx)
        return result
    except Exception as exc:
        result = StepResult(
            step=step_name,
            status=StepStatus.FAILED,
            message=str(exc),
            details={"errorType": exc.__class__.__name__, "errorMessage": str(exc)},
        )
        raise
    finally:
        if report is not None and result is not None:
            report.setdefault("steps", []).append(_report_entry(result, started_at))
            if ctx.config.report_path is not None:
                persist_report(ctx.config.report_path, report)


def run_pipeline(
    ctx: BootstrapContext,
    steps: tuple[str, ...] = STEP_ORDER,
) -> list[StepResult]:
    """Run steps strictly in order; the first fatal error aborts the run."""
    report = None
    if ctx.config.report_path is not None:
        report = load_report(ctx.config.report_path, ctx.config)

    results: list[StepResult] = []
    for step_name in steps:
        logger.info("==> Step: %s", step_name)
        results.append(execute_step(step_name=step_name, ctx=ctx, report=report))
    return results


def collect_warnings(results: list[StepResult]) -> list[str]:
    return [warning for result in results for warning in result.warnings]


# ---------------------------------------------------------------------------
# Start / stop
# ---------------------------------------------------------------------------


def run_start(ctx: BootstrapContext) -> StepResult:
    """Bring up a previously configured stack.  Writes no config or secrets."""
    manifest = next(
        artifact
        for artifact in canonical_artifacts(ctx.config)
        if artifact.path == ctx.config.manifest_path
    )
    require_artifact(manifest)

    activation = activate_dependency(ctx.strategy, sleep=ctx.sleep)
    ctx.compose.up()
    logger.info("  [+] compose stack started")

    ctx.out(f"Gateway: {ctx.config.gateway_url}")
    ctx.out(f"Ollama:  {ctx.config.runtime_url} ({ctx.strategy.description})")
    ctx.out("Logs:    docker compose logs -f")
    return StepResult(
        step="start",
        status=StepStatus.APPLIED,
        message="gateway started",
        warnings=activation.warnings,
    )


def run_stop(ctx: BootstrapContext) -> StepResult:
    """Tear down the compose stack.  Volumes and downloaded models survive."""
    if ctx.config.manifest_path.exists():
        ctx.compose.down()
        logger.info("  [+] compose stack stopped")
        status = StepStatus.APPLIED
    else:
        logger.info("  [=] %s not found; nothing to stop", ctx.config.manifest_path.name)
        status = StepStatus.SKIPPED

    ctx.out("Gateway stopped.")
    if ctx.strategy.stop_hint:
        ctx.out(ctx.strategy.stop_hint)
    return StepResult(step="stop", status=status, message="gateway stopped")
