"""Recipient key stores.

The store is the single source of truth for who may decrypt. It is passed
explicitly to the encryption service; there is no process-wide recipient list.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from pathlib import Path

from envault.errors import RecipientNotFoundError
from envault.keys.formats import detect_scheme, validate_label, validate_recipient
from envault.logging import get_logger
from envault.models import RecipientIdentity, Scheme
from envault.storage import atomic_write

log = get_logger("envault.keys.store")


class KeyStore(ABC):
    """Abstract base class for recipient stores."""

    @abstractmethod
    def list(self) -> list[RecipientIdentity]:
        """Return all recipients in insertion order."""
        raise NotImplementedError

    @abstractmethod
    def _save(self, recipients: list[RecipientIdentity]) -> None:
        """Replace the stored recipient list."""
        raise NotImplementedError

    def add(self, identity: RecipientIdentity) -> bool:
        """Add a recipient after validating its format.

        Adding an existing key is a no-op.

        Returns:
            True if the recipient was added, False if it was already present.

        Raises:
            InvalidRecipientError: If the key does not match its scheme's grammar
                or the label spans more than one line.
        """
        validate_recipient(identity.public_key, identity.scheme)
        validate_label(identity.public_key, identity.label)

        recipients = self.list()
        if identity in recipients:
            log.debug("recipient_already_present", scheme=identity.scheme.value)
            return False

        if identity.added_at is None:
            identity = RecipientIdentity(
                public_key=identity.public_key,
                scheme=identity.scheme,
                label=identity.label,
                added_at=datetime.now(UTC),
            )
        recipients.append(identity)
        self._save(recipients)
        log.info("recipient_added", scheme=identity.scheme.value, total=len(recipients))
        return True

    def remove(self, public_key: str) -> RecipientIdentity:
        """Remove a recipient by exact public key match.

        Returns:
            The removed identity.

        Raises:
            RecipientNotFoundError: If the key is not in the store.
        """
        recipients = self.list()
        for index, identity in enumerate(recipients):
            if identity.public_key == public_key:
                del recipients[index]
                self._save(recipients)
                log.info("recipient_removed", scheme=identity.scheme.value, total=len(recipients))
                return identity
        raise RecipientNotFoundError(public_key)

    def list_for(self, scheme: Scheme) -> list[RecipientIdentity]:
        """Return the recipients of one scheme."""
        return [r for r in self.list() if r.scheme is scheme]

    def __contains__(self, public_key: object) -> bool:
        return any(r.public_key == public_key for r in self.list())


class InMemoryKeyStore(KeyStore):
    """Key store held entirely in memory."""

    def __init__(self, recipients: list[RecipientIdentity] | None = None) -> None:
        self._recipients: list[RecipientIdentity] = []
        for identity in recipients or []:
            self.add(identity)

    def list(self) -> list[RecipientIdentity]:
        return list(self._recipients)

    def _save(self, recipients: list[RecipientIdentity]) -> None:
        self._recipients = list(recipients)


class FileKeyStore(KeyStore):
    """Key store persisted as a text file, one public key per line.

    An optional label follows the key after ``#``; lines starting with ``#``
    are comments. The scheme of each key is detected from its format::

        # team recipients
        envault1qy...  # alice
        0123456789ABCDEF0123456789ABCDEF01234567  # ci (gpg)
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        """Return the file path this store reads from."""
        return self._path

    def list(self) -> list[RecipientIdentity]:
        if not self._path.exists():
            return []
        content = self._path.read_text(encoding="utf-8")
        recipients = []
        for line in content.splitlines():
            identity = self._parse_line(line)
            if identity is not None:
                recipients.append(identity)
        return recipients

    def _save(self, recipients: list[RecipientIdentity]) -> None:
        atomic_write(self._path, self._serialize(recipients).encode("utf-8"))

    @staticmethod
    def _parse_line(line: str) -> RecipientIdentity | None:
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            return None

        key, _, label = stripped.partition("#")
        key = key.strip()
        if not key:
            return None
        return RecipientIdentity(
            public_key=key,
            scheme=detect_scheme(key),
            label=label.strip() or None,
        )

    @staticmethod
    def _serialize(recipients: list[RecipientIdentity]) -> str:
        lines = []
        for identity in recipients:
            if identity.label:
                lines.append(f"{identity.public_key} # {identity.label}")
            else:
                lines.append(identity.public_key)
        return "\n".join(lines) + "\n" if lines else ""
