"""Pytest fixtures for envault tests."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

import pytest

from envault.crypto.native import NativeBackend, generate_identity
from envault.keys.store import InMemoryKeyStore
from envault.models import RecipientIdentity, Scheme
from envault.services.encryption import EncryptionService


@dataclass
class NativeIdentity:
    """A generated native identity file and its public key."""

    path: Path
    public_key: str

    @property
    def recipient(self) -> RecipientIdentity:
        return RecipientIdentity(self.public_key, Scheme.NATIVE, label=self.path.stem)


@pytest.fixture(autouse=True)
def clear_settings_cache(monkeypatch: pytest.MonkeyPatch):
    """Keep ENVAULT_* variables from the host out of tests and reset cached settings."""
    import os

    for name in list(os.environ):
        if name.startswith("ENVAULT_"):
            monkeypatch.delenv(name)

    from envault.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_identity(tmp_path: Path) -> Callable[[str], NativeIdentity]:
    """Factory generating named native identities under ``tmp_path/keys``."""

    def _make(name: str) -> NativeIdentity:
        path = tmp_path / "keys" / f"{name}.txt"
        return NativeIdentity(path=path, public_key=generate_identity(path))

    return _make


@pytest.fixture
def alice(make_identity: Callable[[str], NativeIdentity]) -> NativeIdentity:
    return make_identity("alice")


@pytest.fixture
def bob(make_identity: Callable[[str], NativeIdentity]) -> NativeIdentity:
    return make_identity("bob")


@pytest.fixture
def mallory(make_identity: Callable[[str], NativeIdentity]) -> NativeIdentity:
    """An identity that is never added as a recipient."""
    return make_identity("mallory")


@pytest.fixture
def native_backend() -> NativeBackend:
    return NativeBackend()


@pytest.fixture
def key_store(alice: NativeIdentity, bob: NativeIdentity) -> InMemoryKeyStore:
    """In-memory store holding alice and bob."""
    return InMemoryKeyStore([alice.recipient, bob.recipient])


@pytest.fixture
def vault_dir(tmp_path: Path) -> Path:
    path = tmp_path / ".envault"
    path.mkdir()
    return path


@pytest.fixture
def encryption_service(
    native_backend: NativeBackend,
    key_store: InMemoryKeyStore,
    vault_dir: Path,
) -> EncryptionService:
    return EncryptionService(native_backend, key_store, vault_dir)
