"""
gateway_bootstrap.artifacts — Routing table and orchestration manifest.

Both files are rendered from structured data with PyYAML.  Emission is gated on
existence only: a file that is already present is never rewritten, whatever
its content.  When an existing file no longer matches the canonical rendering
a drift warning is reported instead.

Drift digest:
    - parse the file as YAML
    - canonicalise: JSON with sorted keys
    - SHA256 of canonical form, first 16 hex characters
"""

from __future__ import annotations

import hashlib
import json
import logging
from typing import Any

import yaml

from gateway_bootstrap.config import RunConfig
from gateway_bootstrap.exceptions import ConfigMissingError
from gateway_bootstrap.fsutil import write_text_atomic
from gateway_bootstrap.models import ConfigArtifact, RuntimeKind, StepResult, StepStatus

logger = logging.getLogger("gateway_bootstrap.artifacts")

DIGEST_LENGTH = 16

RUNTIME_SERVICE = "ollama"
GATEWAY_SERVICE = "litellm"
RUNTIME_IMAGE = "ollama/ollama:latest"
GATEWAY_IMAGE = "ghcr.io/berriai/litellm:main-latest"
RUNTIME_CONTAINER_PORT = 11434
RUNTIME_VOLUME = "ollama_data"

_HEADER = (
    "# Generated by gateway-bootstrap.  Setup never rewrites this file once it\n"
    "# exists; delete it and re-run setup to restore the default.\n"
)


# ---------------------------------------------------------------------------
# Canonical content
# ---------------------------------------------------------------------------


def runtime_base_url(config: RunConfig) -> str:
    """Runtime address as seen from inside the gateway container."""
    if config.runtime is RuntimeKind.CONTAINER:
        return f"http://{RUNTIME_SERVICE}:{RUNTIME_CONTAINER_PORT}"
    return f"http://host.docker.internal:{config.runtime_port}"


def routing_document(config: RunConfig) -> dict[str, Any]:
    return {
        "model_list": [
            {
                "model_name": config.primary_route,
                "litellm_params": {
                    "model": f"ollama_chat/{config.model}",
                    "api_base": runtime_base_url(config),
                    "keep_alive": "10m",
                },
            },
            {
                "model_name": config.fallback_route,
                "litellm_params": {
                    "model": config.fallback_model,
                    "api_key": "os.environ/ANTHROPIC_API_KEY",
                },
            },
        ],
        "litellm_settings": {
            "fallbacks": [{config.primary_route: [config.fallback_route]}],
            "num_retries": 2,
            "request_timeout": 60,
            "drop_params": True,
        },
        "general_settings": {
            "master_key": "os.environ/LITELLM_MASTER_KEY",
            "port": config.gateway_port,
            "host": "0.0.0.0",
        },
    }


def _gateway_service(config: RunConfig) -> dict[str, Any]:
    port = config.gateway_port
    liveness = f"http://localhost:{port}/health/liveliness"
    service: dict[str, Any] = {
        "image": GATEWAY_IMAGE,
        "container_name": "litellm-gateway",
        "ports": [f"{port}:{port}"],
        "volumes": ["./config.yaml:/app/config.yaml:ro"],
        "env_file": [".env"],
        "command": ["--config", "/app/config.yaml", "--port", str(port), "--detailed_debug"],
    }
    if config.runtime is RuntimeKind.CONTAINER:
        service["depends_on"] = {RUNTIME_SERVICE: {"condition": "service_healthy"}}
    else:
        service["extra_hosts"] = ["host.docker.internal:host-gateway"]
    service["healthcheck"] = {
        "test": [
            "CMD",
            "python",
            "-c",
            f"import urllib.request; urllib.request.urlopen('{liveness}')",
        ],
        "interval": "15s",
        "timeout": "5s",
        "retries": 5,
        "start_period": "30s",
    }
    service["restart"] = "unless-stopped"
    return service


def manifest_document(config: RunConfig) -> dict[str, Any]:
    services: dict[str, Any] = {}
    if config.runtime is RuntimeKind.CONTAINER:
        services[RUNTIME_SERVICE] = {
            "image": RUNTIME_IMAGE,
            "container_name": "ollama",
            "ports": [f"{config.runtime_port}:{RUNTIME_CONTAINER_PORT}"],
            "volumes": [f"{RUNTIME_VOLUME}:/root/.ollama"],
            "restart": "unless-stopped",
            "healthcheck": {
                "test": ["CMD", "ollama", "list"],
                "interval": "10s",
                "timeout": "5s",
                "retries": 10,
                "start_period": "20s",
            },
        }
    services[GATEWAY_SERVICE] = _gateway_service(config)

    document: dict[str, Any] = {"services": services}
    if config.runtime is RuntimeKind.CONTAINER:
        document["volumes"] = {RUNTIME_VOLUME: {}}
    return document


def render(document: dict[str, Any]) -> str:
    return _HEADER + yaml.safe_dump(document, sort_keys=False, default_flow_style=False)


def canonical_artifacts(config: RunConfig) -> tuple[ConfigArtifact, ...]:
    return (
        ConfigArtifact(
            name="routing table",
            path=config.routing_path,
            content=render(routing_document(config)),
        ),
        ConfigArtifact(
            name="orchestration manifest",
            path=config.manifest_path,
            content=render(manifest_document(config)),
        ),
    )


# ---------------------------------------------------------------------------
# Drift detection
# ---------------------------------------------------------------------------


def content_digest(text: str) -> str | None:
    """Digest of the parsed YAML document; None when the text does not parse."""
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        return None
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()[:DIGEST_LENGTH]


def drift_warning(artifact: ConfigArtifact) -> str | None:
    """Describe how an existing file departs from the canonical content."""
    try:
        existing = artifact.path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        reason = exc.strerror or exc
        return f"{artifact.path.name} could not be read ({reason}); leaving it untouched"
    current = content_digest(existing)
    expected = content_digest(artifact.content)
    if current is None:
        return f"{artifact.path.name} is not valid YAML; leaving it untouched"
    if current != expected:
        logger.debug(
            "%s digest mismatch (current=%s canonical=%s)", artifact.path.name, current, expected
        )
        return (
            f"{artifact.path.name} differs from the default {artifact.name}; "
            "leaving it untouched"
        )
    return None


# ---------------------------------------------------------------------------
# Emission
# ---------------------------------------------------------------------------


def emit_artifacts(artifacts: tuple[ConfigArtifact, ...], *, step: str = "config") -> StepResult:
    """Write each artifact that does not exist yet; never touch existing ones."""
    writes = []
    warnings = []
    for artifact in artifacts:
        if artifact.path.exists():
            logger.info("  [=] %s already present", artifact.path.name)
            warning = drift_warning(artifact)
            if warning:
                logger.warning("  [!] %s", warning)
                warnings.append(warning)
            continue
        write_text_atomic(artifact.path, artifact.content)
        logger.info("  [+] wrote %s", artifact.path.name)
        writes.append(artifact.path)

    return StepResult(
        step=step,
        status=StepStatus.APPLIED if writes else StepStatus.SKIPPED,
        message=f"wrote {len(writes)} artifact(s)" if writes else "artifacts already present",
        writes=tuple(writes),
        warnings=tuple(warnings),
    )


def require_artifact(artifact: ConfigArtifact) -> None:
    """Used by `start`: refuse to run without a previously generated artifact."""
    if not artifact.path.exists():
        raise ConfigMissingError(
            f"{artifact.path} not found",
            hint="Run `gateway-bootstrap setup` first.",
        )
