"""
gateway_bootstrap.probes — HTTP checks against the runtime and the gateway.

Probe functions never raise on connection problems: an unreachable endpoint
is simply "not ready".  Inventory reads do raise, because the caller has to
distinguish "model missing" from "could not ask".
"""

from __future__ import annotations

import logging
from typing import Any

import requests

logger = logging.getLogger("gateway_bootstrap.probes")


def http_ok(
    session: requests.Session,
    url: str,
    *,
    timeout: float,
    headers: dict[str, str] | None = None,
) -> bool:
    """Return True when GET `url` answers 200."""
    try:
        response = session.get(url, headers=headers or {}, timeout=timeout)
    except requests.RequestException as exc:
        logger.debug("GET %s failed: %s", url, exc.__class__.__name__)
        return False
    return response.status_code == 200


def list_runtime_models(session: requests.Session, base_url: str, *, timeout: float) -> list[str]:
    """Return model names from the runtime's /api/tags inventory endpoint."""
    response = session.get(f"{base_url.rstrip('/')}/api/tags", timeout=timeout)
    response.raise_for_status()
    payload: Any = response.json()
    models = payload.get("models", []) if isinstance(payload, dict) else []
    names: list[str] = []
    for item in models:
        if not isinstance(item, dict):
            continue
        name = item.get("name") or item.get("model")
        if name:
            names.append(str(name))
    return names


def model_in_inventory(model: str, inventory: list[str]) -> bool:
    """Match a model reference, treating a bare name as `<name>:latest`."""
    wanted = model if ":" in model else f"{model}:latest"
    for name in inventory:
        have = name if ":" in name else f"{name}:latest"
        if have == wanted:
            return True
    return False
