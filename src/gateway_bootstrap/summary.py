"""gateway_bootstrap.summary — Connection details printed at the end of setup."""

from __future__ import annotations

import json

from gateway_bootstrap.config import RunConfig

_RULE = "=" * 54


def render_summary(config: RunConfig, *, master_key: str | None, runtime_description: str) -> str:
    """Build the operator-facing banner.

    The master key is printed in full: it is the one secret the operator
    needs in order to call the gateway.
    """
    key = master_key or "<LITELLM_MASTER_KEY not set>"
    url = config.gateway_url
    chat_body = json.dumps(
        {
            "model": config.primary_route,
            "messages": [{"role": "user", "content": "Write a Python hello world"}],
        }
    )
    lines = [
        "",
        _RULE,
        "  LLM Gateway Setup Complete",
        _RULE,
        f"  Gateway URL  : {url}",
        f"  Ollama URL   : {config.runtime_url}",
        f"  Primary model: {config.model} ({runtime_description})",
        f"  Fallback     : {config.fallback_model} (Anthropic)",
        f"  Master key   : {key}",
        "",
        "  Test commands:",
        "",
        "  # List models",
        f"  curl {url}/models \\",
        f'    -H "Authorization: Bearer {key}"',
        "",
        f"  # Chat completion ({config.primary_route} primary)",
        f"  curl -X POST {url}/chat/completions \\",
        '    -H "Content-Type: application/json" \\',
        f'    -H "Authorization: Bearer {key}" \\',
        f"    -d '{chat_body}'",
        "",
        "  # Manage:",
        "  gateway-bootstrap start   # start gateway",
        "  gateway-bootstrap stop    # stop gateway",
        "  docker compose logs -f    # view logs",
        f"  curl {config.runtime_url}/api/tags   # list models",
        _RULE,
    ]
    return "\n".join(lines)


def render_warnings(warnings: list[str]) -> str:
    lines = ["", "!" * 54, "  Setup finished with warnings:"]
    lines.extend(f"  - {warning}" for warning in warnings)
    lines.append("!" * 54)
    return "\n".join(lines)
