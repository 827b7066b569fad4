"""Audit trail of encrypt/decrypt/key operations.

Entries are appended as JSON lines. Recording is fire-and-forget from the
services' point of view: they catch and log audit failures instead of
aborting the cryptographic operation.
"""

from __future__ import annotations

import getpass
import json
import subprocess  # nosec B404
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from envault.logging import get_logger

log = get_logger("envault.audit")


class AuditAction(Enum):
    """Actions recorded in the audit log."""

    INIT = "init"
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"
    REENCRYPT = "reencrypt"
    RESOLVE = "resolve"
    KEY_ADD = "key_add"
    KEY_REMOVE = "key_remove"


@dataclass
class AuditEntry:
    """A single audit log entry."""

    action: AuditAction
    environments: list[str] = field(default_factory=list)
    author: str = "unknown"
    email: str | None = None
    detail: str | None = None
    state_hash: str | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dict."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "author": self.author,
            "email": self.email,
            "action": self.action.value,
            "environments": list(self.environments),
            "detail": self.detail,
            "state_hash": self.state_hash,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        """Create from a dict produced by :meth:`to_dict`."""
        return cls(
            action=AuditAction(data["action"]),
            environments=list(data.get("environments") or []),
            author=data.get("author", "unknown"),
            email=data.get("email"),
            detail=data.get("detail"),
            state_hash=data.get("state_hash"),
            timestamp=datetime.fromisoformat(data["timestamp"]),
        )


class AuditLogger(ABC):
    """Abstract base class for audit sinks."""

    @abstractmethod
    def log_event(self, entry: AuditEntry) -> None:
        """Append an entry to the audit log."""
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        author: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        """Return entries, optionally filtered by author substring and start time."""
        raise NotImplementedError

    def record(
        self,
        action: AuditAction,
        environments: list[str],
        detail: str | None = None,
        state_hash: str | None = None,
    ) -> None:
        """Build an entry for the current user and log it."""
        author, email = current_author()
        self.log_event(
            AuditEntry(
                action=action,
                environments=environments,
                author=author,
                email=email,
                detail=detail,
                state_hash=state_hash,
            )
        )


class JsonAuditLogger(AuditLogger):
    """Audit logger that appends entries as JSON lines to a file."""

    def __init__(self, log_path: Path | str) -> None:
        self._log_path = Path(log_path)

    @property
    def path(self) -> Path:
        """Return the audit log file path."""
        return self._log_path

    def log_event(self, entry: AuditEntry) -> None:
        self._log_path.parent.mkdir(parents=True, exist_ok=True)
        with self._log_path.open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(entry.to_dict(), sort_keys=True) + "\n")

    def query(
        self,
        author: str | None = None,
        since: datetime | None = None,
    ) -> list[AuditEntry]:
        if not self._log_path.exists():
            return []

        entries = []
        needle = author.lower() if author else None
        with self._log_path.open(encoding="utf-8") as fh:
            for line_number, line in enumerate(fh, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = AuditEntry.from_dict(json.loads(line))
                except (ValueError, KeyError) as e:
                    raise ValueError(f"Malformed audit entry at line {line_number}: {e}") from e

                if needle is not None:
                    in_name = needle in entry.author.lower()
                    in_email = entry.email is not None and needle in entry.email.lower()
                    if not (in_name or in_email):
                        continue
                if since is not None and entry.timestamp < since:
                    continue
                entries.append(entry)
        return entries


def _git_config(key: str) -> str | None:
    try:
        result = subprocess.run(  # nosec B603 B607
            ["git", "config", key],
            capture_output=True,
            text=True,
            timeout=5,
        )
    except (OSError, subprocess.TimeoutExpired):
        return None
    value = result.stdout.strip()
    return value if result.returncode == 0 and value else None


def current_author() -> tuple[str, str | None]:
    """Return the (name, email) recorded for the current user.

    Prefers git's ``user.name``/``user.email``, falling back to the login name.
    """
    name = _git_config("user.name")
    if name is None:
        try:
            name = getpass.getuser()
        except (OSError, KeyError):
            name = "unknown"
    return name, _git_config("user.email")
