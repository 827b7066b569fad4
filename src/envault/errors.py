"""Exception hierarchy for envault.

Every error carries enough structured context for a command layer to render
a useful message without re-deriving it.
"""

from __future__ import annotations

from pathlib import Path


class EnvaultError(Exception):
    """Base exception for all envault errors."""


# ---------------------------------------------------------------------------
# Configuration / environment graph
# ---------------------------------------------------------------------------


class ConfigurationError(EnvaultError):
    """Invalid project configuration."""


class GraphError(ConfigurationError):
    """Invalid environment inheritance graph."""


class CircularInheritanceError(GraphError):
    """Two or more environments inherit from each other."""

    def __init__(self, cycle: list[str]):
        self.cycle = list(cycle)
        super().__init__(f"Circular inheritance detected: {' -> '.join(self.cycle)}")


class EnvironmentNotFoundError(GraphError):
    """An environment (requested or referenced as parent) is not defined."""

    def __init__(self, name: str, available: list[str]):
        self.name = name
        self.available = sorted(available)
        listing = ", ".join(self.available) if self.available else "(none)"
        super().__init__(f"Environment '{name}' not found. Available environments: {listing}")


# ---------------------------------------------------------------------------
# Cryptography
# ---------------------------------------------------------------------------


class CryptoError(EnvaultError):
    """Base class for encryption and decryption failures."""


class KeyNotAuthorizedError(CryptoError):
    """The caller's private key is not among the file's recipients."""

    def __init__(self, message: str | None = None):
        super().__init__(
            message or "Decryption failed: no matching key found in the recipients of this file"
        )


class CiphertextCorruptError(CryptoError):
    """Ciphertext is malformed or failed authentication."""


class PrivateKeyNotFoundError(CryptoError):
    """The private key source does not exist or holds no usable key."""

    def __init__(self, path: Path | str | None, reason: str | None = None):
        self.path = Path(path) if path is not None else None
        where = str(self.path) if self.path is not None else "keyring"
        super().__init__(f"No private key found at {where}" + (f": {reason}" if reason else ""))


class EmptyRecipientListError(CryptoError):
    """Refusing to produce ciphertext nobody can open."""

    def __init__(self, message: str | None = None):
        super().__init__(message or "No recipients configured; refusing to encrypt")


class CipherToolError(CryptoError):
    """The external cipher tool could not be run."""


# ---------------------------------------------------------------------------
# Key store
# ---------------------------------------------------------------------------


class KeyStoreError(EnvaultError):
    """Base class for recipient key store errors."""


class InvalidRecipientError(KeyStoreError):
    """A recipient string does not match its scheme's format."""

    def __init__(self, public_key: str, reason: str):
        self.public_key = public_key
        self.reason = reason
        super().__init__(f"Invalid recipient '{public_key}': {reason}")


class RecipientNotFoundError(KeyStoreError):
    """Tried to remove a recipient that is not in the store."""

    def __init__(self, public_key: str):
        self.public_key = public_key
        super().__init__(f"Recipient '{public_key}' not found")


# ---------------------------------------------------------------------------
# Parsing / files
# ---------------------------------------------------------------------------


class ParseError(EnvaultError):
    """A secrets file could not be parsed."""

    def __init__(self, detail: str, line: int | None = None):
        self.detail = detail
        self.line = line
        prefix = f"line {line}: " if line is not None else ""
        super().__init__(f"Parse error: {prefix}{detail}")


class SecretFileNotFoundError(EnvaultError, FileNotFoundError):
    """A plaintext or encrypted secrets file does not exist."""

    def __init__(self, path: Path | str):
        self.path = Path(path)
        super().__init__(f"File not found: {self.path}")

    def __str__(self) -> str:
        return f"File not found: {self.path}"
