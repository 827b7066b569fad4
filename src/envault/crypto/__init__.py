"""Cipher backends.

Provides the in-process native envelope scheme and the GnuPG adapter behind
a single :class:`CipherBackend` interface.
"""

from envault.crypto.base import CipherBackend
from envault.crypto.factory import get_cipher_backend, parse_scheme
from envault.crypto.gpg import GpgBackend
from envault.crypto.native import NativeBackend, generate_identity, read_public_key

__all__ = [
    "CipherBackend",
    "GpgBackend",
    "NativeBackend",
    "generate_identity",
    "get_cipher_backend",
    "parse_scheme",
    "read_public_key",
]
