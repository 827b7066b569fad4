"""Recipient string grammars, one per cipher scheme.

Validation happens when a recipient is added, so a typo is rejected
immediately instead of producing ciphertext nobody can open.
"""

import base64
import binascii
import re

from envault.errors import InvalidRecipientError
from envault.models import Scheme

NATIVE_PREFIX = "envault1"
NATIVE_KEY_SIZE = 32  # X25519 public key

_NATIVE_RE = re.compile(rf"^{NATIVE_PREFIX}[a-z2-7]{{52}}$")
_GPG_FINGERPRINT_RE = re.compile(r"^(0x)?[0-9A-Fa-f]{40}$")
_GPG_LONG_ID_RE = re.compile(r"^(0x)?[0-9A-Fa-f]{16}$")
_EMAIL_RE = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")


def encode_native_public_key(raw: bytes) -> str:
    """Encode a raw X25519 public key as a native recipient string."""
    if len(raw) != NATIVE_KEY_SIZE:
        raise ValueError(f"Public key must be exactly {NATIVE_KEY_SIZE} bytes, got {len(raw)}")
    return NATIVE_PREFIX + base64.b32encode(raw).decode("ascii").rstrip("=").lower()


def decode_native_public_key(public_key: str) -> bytes:
    """Decode a native recipient string back to the raw 32-byte key.

    Raises:
        InvalidRecipientError: If the string is not a canonical native key.
    """
    if not _NATIVE_RE.match(public_key):
        raise InvalidRecipientError(
            public_key,
            f"expected '{NATIVE_PREFIX}' followed by 52 base32 characters",
        )
    body = public_key[len(NATIVE_PREFIX) :].upper()
    try:
        raw = base64.b32decode(body + "=" * (-len(body) % 8))
    except binascii.Error as e:
        raise InvalidRecipientError(public_key, f"not valid base32: {e}") from e

    # Reject non-canonical encodings (stray bits in the final character)
    if len(raw) != NATIVE_KEY_SIZE or encode_native_public_key(raw) != public_key:
        raise InvalidRecipientError(public_key, "not a canonical 32-byte key encoding")
    return raw


def _validate_external(public_key: str) -> None:
    if (
        _GPG_FINGERPRINT_RE.match(public_key)
        or _GPG_LONG_ID_RE.match(public_key)
        or _EMAIL_RE.match(public_key)
    ):
        return
    raise InvalidRecipientError(
        public_key,
        "expected a 40-hex fingerprint, a 16-hex long key id or an e-mail address",
    )


def validate_recipient(public_key: str, scheme: Scheme) -> None:
    """Check ``public_key`` against the grammar of ``scheme``.

    Raises:
        InvalidRecipientError: If the string does not match.
    """
    if not public_key or public_key != public_key.strip():
        raise InvalidRecipientError(public_key, "empty or surrounded by whitespace")

    if scheme is Scheme.NATIVE:
        decode_native_public_key(public_key)
    else:
        _validate_external(public_key)


def detect_scheme(public_key: str) -> Scheme:
    """Infer the scheme a recipient string belongs to."""
    if public_key.startswith(NATIVE_PREFIX):
        return Scheme.NATIVE
    return Scheme.EXTERNAL


def validate_label(public_key: str, label: str | None) -> None:
    """Check a recipient label fits on the key's line.

    Raises:
        InvalidRecipientError: If the label contains a line break.
    """
    if label and label.splitlines() != [label]:
        raise InvalidRecipientError(public_key, "label must be a single line")
