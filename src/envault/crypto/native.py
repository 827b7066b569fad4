"""Native envelope encryption: X25519 key agreement + AES-256-GCM.

Each call generates a random 256-bit file key, encrypts the plaintext once
with it, and wraps the file key separately for every recipient. Binary
layout::

    MAGIC "envault/v1\\n"
    u16  stanza count (big-endian)
    stanza * count:
        recipient public key   32
        ephemeral public key   32
        wrap nonce             12
        wrapped file key       48   (32 + 16-byte GCM tag)
    body nonce                 12
    AES-256-GCM(plaintext, file key, aad=everything above)

The result is ASCII armored so encrypted files diff cleanly in git.
"""

from __future__ import annotations

import base64
import binascii
import os
import struct
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey, X25519PublicKey
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from envault.crypto.base import CipherBackend
from envault.errors import (
    CiphertextCorruptError,
    InvalidRecipientError,
    KeyNotAuthorizedError,
    PrivateKeyNotFoundError,
)
from envault.keys.formats import decode_native_public_key, encode_native_public_key
from envault.logging import get_logger
from envault.models import RecipientIdentity, Scheme
from envault.storage import atomic_write

log = get_logger("envault.crypto.native")

MAGIC = b"envault/v1\n"
KEY_SIZE = 32  # AES-256 file key, X25519 keys
NONCE_SIZE = 12  # 96-bit nonce (recommended for GCM)
TAG_SIZE = 16
WRAPPED_KEY_SIZE = KEY_SIZE + TAG_SIZE
STANZA_SIZE = KEY_SIZE + KEY_SIZE + NONCE_SIZE + WRAPPED_KEY_SIZE
MAX_RECIPIENTS = 0xFFFF
WRAP_INFO = b"envault/v1 wrap"

ARMOR_BEGIN = "-----BEGIN ENVAULT ENCRYPTED FILE-----"
ARMOR_END = "-----END ENVAULT ENCRYPTED FILE-----"
ARMOR_LINE_LENGTH = 64

SECRET_KEY_PREFIX = "ENVAULT-SECRET-KEY-"
PUBLIC_KEY_COMMENT = "# public key: "


@dataclass(frozen=True)
class _Stanza:
    recipient: bytes
    ephemeral: bytes
    nonce: bytes
    wrapped_key: bytes

    def pack(self) -> bytes:
        return self.recipient + self.ephemeral + self.nonce + self.wrapped_key

    @classmethod
    def unpack(cls, block: bytes) -> _Stanza:
        return cls(
            recipient=block[:KEY_SIZE],
            ephemeral=block[KEY_SIZE : 2 * KEY_SIZE],
            nonce=block[2 * KEY_SIZE : 2 * KEY_SIZE + NONCE_SIZE],
            wrapped_key=block[2 * KEY_SIZE + NONCE_SIZE : STANZA_SIZE],
        )


# ---------------------------------------------------------------------------
# Identity files
# ---------------------------------------------------------------------------


def _encode_secret_key(private_key: X25519PrivateKey) -> str:
    raw = private_key.private_bytes_raw()
    return SECRET_KEY_PREFIX + base64.b32encode(raw).decode("ascii").rstrip("=")


def generate_identity(path: Path | str) -> str:
    """Generate a new X25519 identity, save it to ``path`` and return its public key.

    The file is created with mode 0600 and is never overwritten.

    Raises:
        FileExistsError: If ``path`` already exists.
    """
    target = Path(path).expanduser()
    if target.exists():
        raise FileExistsError(f"Identity file already exists: {target}")

    private_key = X25519PrivateKey.generate()
    public_key = encode_native_public_key(private_key.public_key().public_bytes_raw())
    created = datetime.now(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")
    contents = (
        f"# created: {created}\n{PUBLIC_KEY_COMMENT}{public_key}\n"
        f"{_encode_secret_key(private_key)}\n"
    )
    atomic_write(target, contents.encode("ascii"), mode=0o600)
    log.info("identity_generated", path=str(target))
    return public_key


def load_identity(path: Path | str | None) -> X25519PrivateKey:
    """Load the private key from an identity file.

    Raises:
        PrivateKeyNotFoundError: If the file is missing, unreadable or holds no valid key.
    """
    if path is None:
        raise PrivateKeyNotFoundError(None, "no identity file configured")

    source = Path(path).expanduser()
    if not source.is_file():
        raise PrivateKeyNotFoundError(source)
    try:
        content = source.read_text(encoding="ascii")
    except (OSError, UnicodeDecodeError) as e:
        raise PrivateKeyNotFoundError(source, f"unreadable identity file: {e}") from e

    for line in content.splitlines():
        line = line.strip()
        if not line.startswith(SECRET_KEY_PREFIX):
            continue
        encoded = line[len(SECRET_KEY_PREFIX) :]
        try:
            raw = base64.b32decode(encoded + "=" * (-len(encoded) % 8))
            return X25519PrivateKey.from_private_bytes(raw)
        except (binascii.Error, ValueError) as e:
            raise PrivateKeyNotFoundError(source, "malformed secret key") from e

    raise PrivateKeyNotFoundError(source, f"no {SECRET_KEY_PREFIX} line")


def read_public_key(path: Path | str) -> str:
    """Return the public key of an identity file.

    Uses the ``# public key:`` comment when present, otherwise derives it
    from the secret key.
    """
    source = Path(path).expanduser()
    if source.is_file():
        for line in source.read_text(encoding="ascii").splitlines():
            if line.startswith(PUBLIC_KEY_COMMENT):
                return line[len(PUBLIC_KEY_COMMENT) :].strip()
    private_key = load_identity(source)
    return encode_native_public_key(private_key.public_key().public_bytes_raw())


# ---------------------------------------------------------------------------
# Armor
# ---------------------------------------------------------------------------


def armor(data: bytes) -> bytes:
    """Wrap binary ciphertext in base64 armor lines."""
    encoded = base64.b64encode(data).decode("ascii")
    lines = [encoded[i : i + ARMOR_LINE_LENGTH] for i in range(0, len(encoded), ARMOR_LINE_LENGTH)]
    return ("\n".join([ARMOR_BEGIN, *lines, ARMOR_END]) + "\n").encode("ascii")


def is_armored(data: bytes) -> bool:
    """Check whether ``data`` starts with the armor header."""
    return data.lstrip().startswith(ARMOR_BEGIN.encode("ascii"))


def dearmor(data: bytes) -> bytes:
    """Strip armor and return the binary ciphertext.

    Raises:
        CiphertextCorruptError: If the armor is malformed.
    """
    try:
        lines = data.decode("ascii").strip().splitlines()
    except UnicodeDecodeError as e:
        raise CiphertextCorruptError("Armored ciphertext is not ASCII") from e

    if len(lines) < 2 or lines[0].strip() != ARMOR_BEGIN or lines[-1].strip() != ARMOR_END:
        raise CiphertextCorruptError("Missing armor begin/end lines")
    try:
        return base64.b64decode("".join(line.strip() for line in lines[1:-1]), validate=True)
    except binascii.Error as e:
        raise CiphertextCorruptError(f"Invalid armor encoding: {e}") from e


# ---------------------------------------------------------------------------
# Backend
# ---------------------------------------------------------------------------


def _derive_wrap_key(shared_secret: bytes, ephemeral: bytes, recipient: bytes) -> bytes:
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=ephemeral + recipient,
        info=WRAP_INFO,
    )
    return hkdf.derive(shared_secret)


class NativeBackend(CipherBackend):
    """In-process multi-recipient envelope encryption."""

    scheme = Scheme.NATIVE
    name = "native"

    def __init__(self, identity_path: Path | str | None = None) -> None:
        """Initialize the backend.

        Args:
            identity_path: Default identity file used when ``decrypt`` is
                called without one.
        """
        self._identity_path = Path(identity_path).expanduser() if identity_path else None

    def encrypt(self, plaintext: bytes, recipients: Sequence[RecipientIdentity]) -> bytes:
        self._check_recipients(recipients)
        if len(recipients) > MAX_RECIPIENTS:
            raise ValueError(f"Too many recipients: {len(recipients)} > {MAX_RECIPIENTS}")

        recipient_keys = []
        for identity in recipients:
            raw = decode_native_public_key(identity.public_key)
            try:
                recipient_keys.append((raw, X25519PublicKey.from_public_bytes(raw)))
            except ValueError as e:
                raise InvalidRecipientError(identity.public_key, str(e)) from e

        file_key = AESGCM.generate_key(bit_length=256)
        stanzas = [self._wrap(file_key, raw, public) for raw, public in recipient_keys]

        header = MAGIC + struct.pack(">H", len(stanzas)) + b"".join(s.pack() for s in stanzas)
        body_nonce = os.urandom(NONCE_SIZE)
        body = AESGCM(file_key).encrypt(body_nonce, plaintext, header)

        log.debug("native_encrypted", recipients=len(stanzas), size=len(plaintext))
        return armor(header + body_nonce + body)

    def decrypt(self, ciphertext: bytes, identity: Path | None = None) -> bytes:
        private_key = load_identity(identity or self._identity_path)
        own_public = private_key.public_key().public_bytes_raw()

        raw = dearmor(ciphertext) if is_armored(ciphertext) else ciphertext
        header, stanzas = self._parse_header(raw)

        addressed = [s for s in stanzas if s.recipient == own_public]
        if not addressed:
            log.debug("native_no_matching_stanza", stanzas=len(stanzas))
            raise KeyNotAuthorizedError()

        file_key = None
        for stanza in addressed:
            file_key = self._unwrap(private_key, stanza)
            if file_key is not None:
                break
        if file_key is None:
            raise CiphertextCorruptError("Wrapped file key failed authentication")

        body_nonce = raw[len(header) : len(header) + NONCE_SIZE]
        body = raw[len(header) + NONCE_SIZE :]
        try:
            return AESGCM(file_key).decrypt(body_nonce, body, header)
        except InvalidTag as e:
            raise CiphertextCorruptError("Ciphertext body failed authentication") from e

    def public_key(self, identity: Path | None = None) -> str | None:
        source = identity or self._identity_path
        if source is None:
            return None
        return read_public_key(source)

    @staticmethod
    def _wrap(file_key: bytes, recipient: bytes, recipient_key: X25519PublicKey) -> _Stanza:
        ephemeral_key = X25519PrivateKey.generate()
        ephemeral = ephemeral_key.public_key().public_bytes_raw()
        try:
            shared = ephemeral_key.exchange(recipient_key)
        except ValueError as e:
            raise InvalidRecipientError(
                encode_native_public_key(recipient), "key agreement failed"
            ) from e
        wrap_key = _derive_wrap_key(shared, ephemeral, recipient)
        nonce = os.urandom(NONCE_SIZE)
        wrapped = AESGCM(wrap_key).encrypt(nonce, file_key, None)
        return _Stanza(recipient=recipient, ephemeral=ephemeral, nonce=nonce, wrapped_key=wrapped)

    @staticmethod
    def _unwrap(private_key: X25519PrivateKey, stanza: _Stanza) -> bytes | None:
        try:
            shared = private_key.exchange(X25519PublicKey.from_public_bytes(stanza.ephemeral))
            wrap_key = _derive_wrap_key(shared, stanza.ephemeral, stanza.recipient)
            return AESGCM(wrap_key).decrypt(stanza.nonce, stanza.wrapped_key, None)
        except (InvalidTag, ValueError):
            return None

    @staticmethod
    def _parse_header(raw: bytes) -> tuple[bytes, list[_Stanza]]:
        if not raw.startswith(MAGIC):
            raise CiphertextCorruptError("Not an envault ciphertext (bad magic)")

        offset = len(MAGIC)
        if len(raw) < offset + 2:
            raise CiphertextCorruptError("Truncated header")
        (count,) = struct.unpack(">H", raw[offset : offset + 2])
        offset += 2
        if count == 0:
            raise CiphertextCorruptError("Header lists no recipients")

        header_end = offset + count * STANZA_SIZE
        if len(raw) < header_end + NONCE_SIZE + TAG_SIZE:
            raise CiphertextCorruptError("Truncated ciphertext")

        stanzas = [
            _Stanza.unpack(raw[start : start + STANZA_SIZE])
            for start in range(offset, header_end, STANZA_SIZE)
        ]
        return raw[:header_end], stanzas
