"""
gateway_bootstrap.lock — Single-instance guard for bootstrap runs.

Prevents two setup/start/stop runs from converging the same project
directory at once.

Lock record (JSON, created with O_CREAT | O_EXCL):
  lockId      random UUID identifying the holder
  acquiredBy  user@host:pid
  acquiredAt  ISO-8601 UTC
  ttl         epoch seconds after which the lock is considered abandoned

An expired lock (holder crashed or was killed) is taken over on the next run.
"""

from __future__ import annotations

import json
import logging
import os
import socket
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from uuid import uuid4

from gateway_bootstrap.exceptions import LockAlreadyHeldError, LockOwnershipError

logger = logging.getLogger("gateway_bootstrap.lock")


@dataclass(frozen=True)
class LockRecord:
    lock_id: str
    acquired_by: str
    acquired_at: str
    ttl: int

    def to_json(self) -> str:
        return (
            json.dumps(
                {
                    "lockId": self.lock_id,
                    "acquiredBy": self.acquired_by,
                    "acquiredAt": self.acquired_at,
                    "ttl": self.ttl,
                },
                indent=2,
            )
            + "\n"
        )


def now_utc() -> datetime:
    return datetime.now(UTC)


def iso8601_utc(dt: datetime) -> str:
    return dt.astimezone(UTC).isoformat(timespec="seconds").replace("+00:00", "Z")


def default_owner() -> str:
    user = os.environ.get("USER") or os.environ.get("USERNAME") or "unknown"
    host = socket.gethostname() or "unknown-host"
    return f"{user}@{host}:{os.getpid()}"


def read_lock(path: Path) -> LockRecord | None:
    """Return the current lock record, or None when absent or unreadable."""
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        return None
    if not isinstance(data, dict):
        return None
    try:
        return LockRecord(
            lock_id=str(data["lockId"]),
            acquired_by=str(data.get("acquiredBy", "unknown")),
            acquired_at=str(data.get("acquiredAt", "")),
            ttl=int(data["ttl"]),
        )
    except (KeyError, TypeError, ValueError):
        return None


def _create_exclusive(path: Path, record: LockRecord) -> bool:
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        return False
    with os.fdopen(fd, "w", encoding="utf-8") as fh:
        fh.write(record.to_json())
    return True


def acquire_lock(
    path: Path,
    *,
    acquired_by: str | None = None,
    ttl_seconds: int,
    now: datetime | None = None,
) -> LockRecord:
    current_time = now or now_utc()
    record = LockRecord(
        lock_id=str(uuid4()),
        acquired_by=acquired_by or default_owner(),
        acquired_at=iso8601_utc(current_time),
        ttl=int(current_time.timestamp()) + ttl_seconds,
    )
    path.parent.mkdir(parents=True, exist_ok=True)

    if _create_exclusive(path, record):
        return record

    existing = read_lock(path)
    if existing is not None and existing.ttl > int(current_time.timestamp()):
        raise LockAlreadyHeldError(
            f"Another bootstrap run holds {path} ({existing.acquired_by} since "
            f"{existing.acquired_at})",
            hint=f"Wait for it to finish, or delete {path} if that run is gone.",
        )

    # Expired or unreadable: take it over.
    logger.warning("Taking over stale lock %s", path)
    path.unlink(missing_ok=True)
    if _create_exclusive(path, record):
        return record
    raise LockAlreadyHeldError(f"Lost the race for {path}")


def release_lock(path: Path, *, lock_id: str | None = None) -> bool:
    """Remove the lock file.  Returns False when no lock was present."""
    existing = read_lock(path)
    if existing is None:
        if path.exists():
            path.unlink(missing_ok=True)
            return True
        return False
    if lock_id and existing.lock_id != lock_id:
        raise LockOwnershipError(f"Lock ownership mismatch for {path}; refusing to release")
    path.unlink(missing_ok=True)
    return True


@contextmanager
def held_lock(
    path: Path,
    *,
    ttl_seconds: int,
    acquired_by: str | None = None,
) -> Iterator[LockRecord]:
    record = acquire_lock(path, acquired_by=acquired_by, ttl_seconds=ttl_seconds)
    try:
        yield record
    finally:
        try:
            release_lock(path, lock_id=record.lock_id)
        except LockOwnershipError:
            # Taken over after expiry; the new holder owns the file now.
            logger.warning("Lock %s was taken over before release", path)
