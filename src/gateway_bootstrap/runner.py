"""
gateway_bootstrap.runner — Subprocess seam for every external tool call.

All docker / ollama / brew invocations go through CommandRunner so tests can
substitute a recording fake and never touch the host.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from gateway_bootstrap.exceptions import CommandError

logger = logging.getLogger("gateway_bootstrap.runner")

_TAIL_CHARS = 4000


@dataclass(frozen=True)
class CommandResult:
    command: tuple[str, ...]
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class CommandRunner:
    """Runs commands synchronously from a fixed working directory."""

    def __init__(self, cwd: Path | None = None) -> None:
        self.cwd = cwd

    def which(self, name: str) -> str | None:
        return shutil.which(name)

    def run(
        self,
        command: list[str],
        *,
        check: bool = True,
        capture: bool = True,
        timeout: float | None = None,
        hint: str | None = None,
    ) -> CommandResult:
        """Run a command and return its result.

        With `capture=False` output streams straight to the terminal (used
        for long pulls so the operator sees progress).  Raises CommandError
        on a non-zero exit when `check` is set.
        """
        cmd_display = " ".join(command)
        logger.debug("Running: %s", cmd_display)
        try:
            completed = subprocess.run(
                command,
                cwd=str(self.cwd) if self.cwd else None,
                check=False,
                capture_output=capture,
                text=True,
                timeout=timeout,
            )
        except FileNotFoundError:
            result = CommandResult(command=tuple(command), returncode=127, stderr="not found")
        except subprocess.TimeoutExpired:
            result = CommandResult(command=tuple(command), returncode=124, stderr="timed out")
        else:
            result = CommandResult(
                command=tuple(command),
                returncode=completed.returncode,
                stdout=completed.stdout or "",
                stderr=completed.stderr or "",
            )

        if check and not result.ok:
            raise CommandError(
                command=list(command),
                returncode=result.returncode,
                stderr_tail=result.stderr.strip()[-_TAIL_CHARS:],
                hint=hint,
            )
        return result

    def spawn_detached(self, command: list[str]) -> None:
        """Start a long-lived background process that outlives this run."""
        logger.debug("Spawning: %s", " ".join(command))
        subprocess.Popen(
            command,
            cwd=str(self.cwd) if self.cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            start_new_session=True,
        )
