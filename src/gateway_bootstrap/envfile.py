"""
gateway_bootstrap.envfile — Structured read/modify/write of KEY=VALUE files.

The file is parsed into an ordered list of lines.  Only assignment lines are
interpreted; comments, blank lines and anything unparseable are kept verbatim
so that serialize(parse(text)) == text, line endings included.

Unquoted values end at the first `#` preceded by whitespace, which is how
docker compose reads an env_file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path

from gateway_bootstrap.fsutil import write_text_atomic

_ASSIGN_RE = re.compile(
    r"^(?P<prefix>\s*(?:export\s+)?)(?P<key>[A-Za-z_][A-Za-z0-9_]*)\s*=(?P<value>.*)$"
)
_INLINE_COMMENT_RE = re.compile(r"\s#")


class ProtectedValueError(ValueError):
    """Raised when a write would replace a real (non-placeholder) value."""


@dataclass(frozen=True)
class EnvLine:
    raw: str
    key: str | None = None
    value: str | None = None
    prefix: str = ""

    def render(self) -> str:
        if self.key is None:
            return self.raw
        return f"{self.prefix}{self.key}={self.value}"


def _split_comment(value: str) -> tuple[str, str]:
    """Split an unquoted value into (value, trailing comment)."""
    if value.strip()[:1] in {"'", '"'}:
        return value, ""
    match = _INLINE_COMMENT_RE.search(value)
    if match is None:
        return value, ""
    body = value[: match.start()].rstrip()
    return body, value[len(body) :]


def _unquote(value: str) -> str:
    stripped = value.strip()
    if stripped[:1] in {"'", '"'}:
        end = stripped.find(stripped[0], 1)
        if end != -1:
            return stripped[1:end]
        return stripped
    return _split_comment(value)[0].strip()


class EnvFile:
    """Parsed secrets file.  Mutations only touch the line for the named key."""

    def __init__(
        self, lines: list[EnvLine], *, trailing_newline: bool = True, newline: str = "\n"
    ) -> None:
        self._lines = lines
        self._trailing_newline = trailing_newline
        self._newline = newline

    @classmethod
    def parse(cls, text: str) -> EnvFile:
        newline = "\r\n" if "\r\n" in text else "\n"
        body = text[: -len(newline)] if text.endswith(newline) else text
        lines: list[EnvLine] = []
        for raw in body.split(newline) if text else []:
            match = _ASSIGN_RE.match(raw)
            if match and not raw.lstrip().startswith("#"):
                lines.append(
                    EnvLine(
                        raw=raw,
                        key=match.group("key"),
                        value=match.group("value"),
                        prefix=match.group("prefix"),
                    )
                )
            else:
                lines.append(EnvLine(raw=raw))
        return cls(lines, trailing_newline=text.endswith("\n") or not text, newline=newline)

    @classmethod
    def load(cls, path: Path) -> EnvFile:
        return cls.parse(path.read_bytes().decode("utf-8"))

    def keys(self) -> list[str]:
        return [line.key for line in self._lines if line.key is not None]

    def get(self, key: str) -> str | None:
        """Return the unquoted value of the last assignment to `key`."""
        found: str | None = None
        for line in self._lines:
            if line.key == key and line.value is not None:
                found = _unquote(line.value)
        return found

    def set(self, key: str, value: str, *, replaceable: tuple[str, ...] = ()) -> None:
        """Set `key` to `value`, appending the key if it is absent.

        The existing value may only be replaced when it is empty or listed in
        `replaceable`; anything else raises ProtectedValueError.  A trailing
        inline comment on the replaced line is kept.
        """
        current = self.get(key)
        if current is not None and current.strip() and current.strip() not in replaceable:
            raise ProtectedValueError(f"{key} already holds a value; refusing to overwrite")

        for index in range(len(self._lines) - 1, -1, -1):
            line = self._lines[index]
            if line.key == key:
                _, comment = _split_comment(line.value or "")
                self._lines[index] = replace(line, value=value + comment)
                return
        self._lines.append(EnvLine(raw="", key=key, value=value))
        self._trailing_newline = True

    def serialize(self) -> str:
        body = self._newline.join(line.render() for line in self._lines)
        if self._lines and self._trailing_newline:
            body += self._newline
        return body

    def save(self, path: Path) -> None:
        write_text_atomic(path, self.serialize())
