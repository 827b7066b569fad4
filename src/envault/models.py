"""Domain models for envault.

Recipients and environment nodes are durable (loaded at startup, mutated only
through explicit key/config changes). Secret files and resolved environments
live for a single invocation.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

# Also a bare TOML key and a plain file name: no dots, slashes or spaces
ENVIRONMENT_NAME_RE = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]*")


def validate_environment_name(name: str) -> str:
    """Return ``name`` if it is a valid environment name.

    Raises:
        ValueError: If the name could escape the vault directory or break the config file.
    """
    if not ENVIRONMENT_NAME_RE.fullmatch(name):
        raise ValueError(f"invalid environment name '{name}': use letters, digits, '_' or '-'")
    return name


class Scheme(Enum):
    """Cipher scheme a recipient (and a ciphertext) belongs to."""

    NATIVE = "native"
    EXTERNAL = "external"


@dataclass(frozen=True)
class RecipientIdentity:
    """An authorized public key.

    Equality and hashing use the exact public key string only.
    """

    public_key: str
    scheme: Scheme = field(default=Scheme.NATIVE, compare=False)
    label: str | None = field(default=None, compare=False)
    added_at: datetime | None = field(default=None, compare=False)

    def __str__(self) -> str:
        if self.label:
            return f"{self.public_key} ({self.label})"
        return self.public_key


@dataclass
class SecretFile:
    """One environment layer's ciphertext as read from or written to the vault."""

    environment: str
    scheme: Scheme
    data: bytes = field(repr=False)


@dataclass(frozen=True)
class EnvironmentNode:
    """An environment definition: a named layer with an optional parent."""

    name: str
    file: str | None = None
    parent: str | None = None
    template: str | None = None

    @property
    def source_file(self) -> str:
        """Plaintext file this layer is encrypted from."""
        return self.file or f"{self.name}.env"


@dataclass
class ResolvedEnvironment:
    """The merged key/value set of an environment's full inheritance chain."""

    name: str
    values: dict[str, str] = field(default_factory=dict, repr=False)
    layers: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.values)

    def keys(self) -> list[str]:
        """Variable names in resolution order."""
        return list(self.values)
