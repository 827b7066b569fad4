"""Factory for the configured cipher backend."""

from __future__ import annotations

from envault.config import Settings, get_settings
from envault.crypto.base import CipherBackend
from envault.crypto.gpg import GpgBackend
from envault.crypto.native import NativeBackend
from envault.logging import get_logger
from envault.models import Scheme

log = get_logger("envault.crypto.factory")


def parse_scheme(value: str | Scheme) -> Scheme:
    """Convert a config value to a :class:`Scheme`.

    Raises:
        ValueError: If the value names no known scheme.
    """
    if isinstance(value, Scheme):
        return value
    try:
        return Scheme(value.strip().lower())
    except ValueError:
        valid = [s.value for s in Scheme]
        raise ValueError(f"Unknown cipher scheme '{value}', expected one of {valid}") from None


def get_cipher_backend(
    scheme: str | Scheme | None = None,
    settings: Settings | None = None,
) -> CipherBackend:
    """Build the cipher backend for ``scheme``.

    Args:
        scheme: Scheme to use; defaults to ``settings.cipher``.
        settings: Settings to read paths and tool options from.

    Returns:
        A ready-to-use backend.
    """
    settings = settings or get_settings()
    selected = parse_scheme(scheme if scheme is not None else settings.cipher)

    backend: CipherBackend
    if selected is Scheme.NATIVE:
        backend = NativeBackend(identity_path=settings.resolved_identity_path)
    else:
        backend = GpgBackend(
            gpg_path=settings.gpg_binary,
            homedir=settings.gpg_homedir,
            timeout=settings.gpg_timeout,
        )

    log.debug("cipher_backend_selected", backend=backend.name)
    return backend
