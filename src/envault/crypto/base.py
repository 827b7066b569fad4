"""Cipher backend interface.

A backend is a pure byte transform: ``encrypt`` for a recipient set,
``decrypt`` against a private key source. Which backend is active is decided
once (see :mod:`envault.crypto.factory`); callers never branch on it.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from pathlib import Path

from envault.errors import EmptyRecipientListError
from envault.models import RecipientIdentity, Scheme


class CipherBackend(ABC):
    """Abstract base class for cipher backends."""

    scheme: Scheme
    name: str

    @abstractmethod
    def encrypt(self, plaintext: bytes, recipients: Sequence[RecipientIdentity]) -> bytes:
        """Encrypt ``plaintext`` so that every recipient can decrypt it.

        Raises:
            EmptyRecipientListError: If ``recipients`` is empty.
        """
        raise NotImplementedError

    @abstractmethod
    def decrypt(self, ciphertext: bytes, identity: Path | None = None) -> bytes:
        """Decrypt ``ciphertext`` with the private key found at ``identity``.

        Raises:
            KeyNotAuthorizedError: The key is not a recipient of the file.
            CiphertextCorruptError: The ciphertext is malformed or tampered with.
            PrivateKeyNotFoundError: No private key at ``identity``.
        """
        raise NotImplementedError

    def public_key(self, identity: Path | None = None) -> str | None:
        """Return the caller's own recipient string, if it can be derived."""
        return None

    def _check_recipients(self, recipients: Sequence[RecipientIdentity]) -> None:
        if not recipients:
            raise EmptyRecipientListError()
        foreign = [r.public_key for r in recipients if r.scheme is not self.scheme]
        if foreign:
            raise ValueError(
                f"{self.name} backend cannot encrypt to {len(foreign)} "
                f"recipient(s) of another scheme"
            )
