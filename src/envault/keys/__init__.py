"""Recipient key management."""

from envault.keys.formats import detect_scheme, validate_recipient
from envault.keys.store import FileKeyStore, InMemoryKeyStore, KeyStore

__all__ = [
    "FileKeyStore",
    "InMemoryKeyStore",
    "KeyStore",
    "detect_scheme",
    "validate_recipient",
]
