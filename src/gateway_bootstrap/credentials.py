"""
gateway_bootstrap.credentials — Secret materialization for the .env file.

For each declared secret the on-disk value is inspected:

  * real value present      -> left untouched
  * absent / placeholder    -> taken from the process environment, else
                               prompted for (interactive runs only), else
                               auto-generated when the policy allows it,
                               else left unset with a warning

Secret values are never logged.
"""

from __future__ import annotations

import getpass
import logging
import secrets
import sys
from collections.abc import Callable, Mapping
from pathlib import Path

from gateway_bootstrap.envfile import EnvFile
from gateway_bootstrap.fsutil import write_text_atomic
from gateway_bootstrap.models import SecretPolicy, StepResult, StepStatus

logger = logging.getLogger("gateway_bootstrap.credentials")

Prompt = Callable[[str], str]

MASTER_KEY_PREFIX = "sk-"
MASTER_KEY_HEX_BYTES = 16

ANTHROPIC_API_KEY = SecretPolicy(
    name="ANTHROPIC_API_KEY",
    description="Anthropic API key",
    placeholders=("sk-ant-...",),
    prompt=True,
    missing_warning="ANTHROPIC_API_KEY not set; the Claude fallback route will not work.",
)

LITELLM_MASTER_KEY = SecretPolicy(
    name="LITELLM_MASTER_KEY",
    description="gateway master key",
    placeholders=("sk-local-master-key", "sk-dvsa-local-master-key"),
    auto_generate=True,
)

SECRET_POLICIES: tuple[SecretPolicy, ...] = (ANTHROPIC_API_KEY, LITELLM_MASTER_KEY)

ENV_TEMPLATE = """\
# Local LLM gateway secrets.  Keep this file out of version control.

# Anthropic API key used by the cloud fallback route.
ANTHROPIC_API_KEY=sk-ant-...

# Key clients present to the gateway as a Bearer token.
# The placeholder is replaced with a random key on the next setup run.
LITELLM_MASTER_KEY=sk-local-master-key
"""


def generate_master_key() -> str:
    """Return `sk-` followed by 32 lowercase hex characters from a CSPRNG."""
    return MASTER_KEY_PREFIX + secrets.token_hex(MASTER_KEY_HEX_BYTES)


def _stdin_is_tty() -> bool:
    return sys.stdin.isatty()


def acquire_secret(
    policy: SecretPolicy,
    *,
    environ: Mapping[str, str],
    interactive: bool,
    prompt: Prompt = getpass.getpass,
    isatty: Callable[[], bool] = _stdin_is_tty,
) -> str | None:
    """Find a value for an unset secret without generating one.

    Read from the environment first; fall back to a hidden prompt.
    Returns None when nothing usable was supplied.
    """
    from_env = environ.get(policy.name)
    if from_env is not None and not policy.is_unset(from_env):
        return from_env.strip()

    if not (policy.prompt and interactive and isatty()):
        return None

    try:
        value = prompt(f"Enter your {policy.description} (or press Enter to skip): ")
    except EOFError:
        return None
    value = value.strip()
    if policy.is_unset(value):
        return None
    return value


def ensure_env_file(env_path: Path, example_path: Path) -> bool:
    """Create the secrets file if missing.  Returns True when it was written."""
    if env_path.exists():
        logger.info("  [=] %s already exists", env_path.name)
        return False

    if example_path.exists():
        content = example_path.read_bytes().decode("utf-8")
        source = example_path.name
    else:
        content = ENV_TEMPLATE
        source = "built-in template"
    write_text_atomic(env_path, content, mode=0o600)
    logger.info("  [+] created %s from %s", env_path.name, source)
    return True


def materialize_secrets(
    env_path: Path,
    example_path: Path,
    *,
    policies: tuple[SecretPolicy, ...] = SECRET_POLICIES,
    environ: Mapping[str, str],
    interactive: bool,
    prompt: Prompt = getpass.getpass,
    isatty: Callable[[], bool] = _stdin_is_tty,
    step: str = "secrets",
) -> StepResult:
    """Ensure the secrets file exists and every declared secret is filled in."""
    writes: list[Path] = []
    warnings: list[str] = []
    filled: list[str] = []

    if ensure_env_file(env_path, example_path):
        writes.append(env_path)

    env_file = EnvFile.load(env_path)
    for policy in policies:
        if not policy.is_unset(env_file.get(policy.name)):
            logger.info("  [=] %s already configured", policy.name)
            continue

        value = acquire_secret(
            policy,
            environ=environ,
            interactive=interactive,
            prompt=prompt,
            isatty=isatty,
        )
        origin = "supplied"
        if value is None and policy.auto_generate:
            value = generate_master_key()
            origin = "generated"
        if value is None:
            message = policy.missing_warning or f"{policy.name} not set"
            logger.warning("  [!] %s", message)
            warnings.append(message)
            continue

        env_file.set(policy.name, value, replaceable=policy.placeholders)
        filled.append(policy.name)
        logger.info("  [+] %s %s", policy.name, origin)

    if filled:
        env_file.save(env_path)
        if env_path not in writes:
            writes.append(env_path)

    return StepResult(
        step=step,
        status=StepStatus.APPLIED if writes else StepStatus.SKIPPED,
        message=f"filled {', '.join(filled)}" if filled else "secrets already configured",
        writes=tuple(writes),
        warnings=tuple(warnings),
        details={"filled": filled},
    )


def read_secret(env_path: Path, name: str) -> str | None:
    """Return a secret's on-disk value, or None when missing or unreadable."""
    if not env_path.exists():
        return None
    value = EnvFile.load(env_path).get(name)
    return value or None
