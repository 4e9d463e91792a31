"""
gateway_bootstrap.orchestrator — Thin `docker compose` wrapper.

Every call is scoped to one manifest file and runs from the project
directory.  The orchestrator owns container state; this module only asks it
to converge ("up"), to tear down ("down"), or reports what it sees ("ps").
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from gateway_bootstrap.models import HandleKind, ServiceHandle
from gateway_bootstrap.runner import CommandResult, CommandRunner

logger = logging.getLogger("gateway_bootstrap.orchestrator")

_LOGS_HINT = "Check logs with: docker compose logs -f"


class Compose:
    def __init__(self, runner: CommandRunner, manifest_path: Path) -> None:
        self.runner = runner
        self.manifest_path = manifest_path

    def _base(self) -> list[str]:
        return ["docker", "compose", "-f", str(self.manifest_path)]

    def pull(self, *, quiet: bool = True, check: bool = True) -> CommandResult:
        command = [*self._base(), "pull"]
        if quiet:
            command.append("--quiet")
        return self.runner.run(command, check=check, hint="Check network access to the registry.")

    def up(self, services: tuple[str, ...] = ()) -> CommandResult:
        """Apply the manifest detached.  A no-op for already-running services."""
        return self.runner.run([*self._base(), "up", "-d", *services], hint=_LOGS_HINT)

    def down(self) -> CommandResult:
        # Named volumes (downloaded models) survive: never pass -v here.
        return self.runner.run([*self._base(), "down"], hint=_LOGS_HINT)

    def exec(
        self,
        service: str,
        args: list[str],
        *,
        check: bool = True,
        capture: bool = True,
    ) -> CommandResult:
        return self.runner.run(
            [*self._base(), "exec", "-T", service, *args],
            check=check,
            capture=capture,
            hint=f"Check logs with: docker compose logs {service}",
        )

    def service(self, name: str) -> ServiceHandle:
        """Query the orchestrator for the current state of one service."""
        result = self.runner.run(
            [*self._base(), "ps", "--format", "json", name],
            check=False,
        )
        if not result.ok:
            return ServiceHandle(name=name, kind=HandleKind.CONTAINER, alive=False)

        states = [entry.get("State", "") for entry in _parse_ps(result.stdout)]
        alive = any(str(state).lower() == "running" for state in states)
        return ServiceHandle(
            name=name,
            kind=HandleKind.CONTAINER,
            alive=alive,
            detail=",".join(str(state) for state in states),
        )


def _parse_ps(output: str) -> list[dict]:
    """Compose prints either a JSON array or one JSON object per line."""
    text = output.strip()
    if not text:
        return []
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        entries = []
        for line in text.splitlines():
            try:
                item = json.loads(line)
            except json.JSONDecodeError:
                logger.debug("Ignoring unparseable compose ps line: %s", line)
                continue
            if isinstance(item, dict):
                entries.append(item)
        return entries
    if isinstance(parsed, dict):
        return [parsed]
    if isinstance(parsed, list):
        return [item for item in parsed if isinstance(item, dict)]
    return []
