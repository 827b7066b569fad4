"""External-tool backend that shells out to the system ``gpg`` binary.

Plaintext and ciphertext are streamed through the child's stdin/stdout; nothing
is written to disk by this adapter.
"""

from __future__ import annotations

import subprocess  # nosec B404
from collections.abc import Sequence
from pathlib import Path

from envault.crypto.base import CipherBackend
from envault.errors import (
    CiphertextCorruptError,
    CipherToolError,
    KeyNotAuthorizedError,
    PrivateKeyNotFoundError,
)
from envault.logging import get_logger
from envault.models import RecipientIdentity, Scheme

log = get_logger("envault.crypto.gpg")

DEFAULT_TIMEOUT = 30.0

# stderr fragments gpg prints for unreadable input
_CORRUPT_MARKERS = (
    "no valid openpgp data",
    "invalid packet",
    "invalid armor",
    "unexpected",
    "packet(s) with unknown version",
)
_NO_KEY_MARKER = "no secret key"


class GpgBackend(CipherBackend):
    """Cipher backend delegating to GnuPG."""

    scheme = Scheme.EXTERNAL
    name = "gpg"

    def __init__(
        self,
        gpg_path: str = "gpg",
        homedir: Path | str | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the backend.

        Args:
            gpg_path: gpg executable name or path.
            homedir: Default GnuPG home directory; gpg's own default when None.
            timeout: Seconds to wait for each gpg invocation.
        """
        self._gpg_path = gpg_path
        self._homedir = Path(homedir).expanduser() if homedir else None
        self._timeout = timeout

    def is_available(self) -> bool:
        """Check if gpg can be executed."""
        try:
            result = self._run(["--version"], None)
        except CipherToolError:
            return False
        return result.returncode == 0

    def encrypt(self, plaintext: bytes, recipients: Sequence[RecipientIdentity]) -> bytes:
        self._check_recipients(recipients)

        args = ["--batch", "--yes", "--armor", "--trust-model", "always", "--encrypt"]
        for identity in recipients:
            args.extend(["--recipient", identity.public_key])

        result = self._run(args, plaintext, self._homedir)
        if result.returncode != 0:
            stderr = _stderr_text(result)
            log.error("gpg_encrypt_failed", returncode=result.returncode, stderr=stderr)
            raise CipherToolError(f"gpg exited with error: {stderr}")

        log.debug("gpg_encrypted", recipients=len(recipients), size=len(plaintext))
        return result.stdout

    def decrypt(self, ciphertext: bytes, identity: Path | None = None) -> bytes:
        homedir = Path(identity).expanduser() if identity else self._homedir
        if homedir is not None and not homedir.is_dir():
            raise PrivateKeyNotFoundError(homedir, "GnuPG home directory does not exist")

        result = self._run(["--batch", "--yes", "--decrypt"], ciphertext, homedir)
        if result.returncode == 0:
            return result.stdout

        stderr = _stderr_text(result)
        lowered = stderr.lower()
        if any(marker in lowered for marker in _CORRUPT_MARKERS):
            raise CiphertextCorruptError(f"gpg could not parse the ciphertext: {stderr}")
        if _NO_KEY_MARKER in lowered:
            if not self._has_secret_keys(homedir):
                raise PrivateKeyNotFoundError(homedir, "keyring holds no secret keys")
            raise KeyNotAuthorizedError()

        log.error("gpg_decrypt_failed", returncode=result.returncode, stderr=stderr)
        raise CipherToolError(f"gpg exited with error: {stderr}")

    def public_key(self, identity: Path | None = None) -> str | None:
        """Return the fingerprint of the first secret key in the keyring."""
        homedir = Path(identity).expanduser() if identity else self._homedir
        for fingerprint in self._secret_fingerprints(homedir):
            return fingerprint
        return None

    def _has_secret_keys(self, homedir: Path | None) -> bool:
        return bool(self._secret_fingerprints(homedir))

    def _secret_fingerprints(self, homedir: Path | None) -> list[str]:
        result = self._run(["--batch", "--with-colons", "--list-secret-keys"], None, homedir)
        if result.returncode != 0:
            return []
        fingerprints = []
        expect_primary_fpr = False
        for line in result.stdout.decode("utf-8", errors="replace").splitlines():
            fields = line.split(":")
            if fields[0] == "sec":
                expect_primary_fpr = True
            elif fields[0] == "fpr" and expect_primary_fpr and len(fields) > 9:
                fingerprints.append(fields[9])
                expect_primary_fpr = False
        return fingerprints

    def _run(
        self,
        args: list[str],
        stdin_data: bytes | None,
        homedir: Path | None = None,
    ) -> subprocess.CompletedProcess[bytes]:
        command = [self._gpg_path]
        if homedir is not None:
            command.extend(["--homedir", str(homedir)])
        command.extend(args)

        try:
            return subprocess.run(  # nosec B603
                command,
                input=stdin_data,
                capture_output=True,
                timeout=self._timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise CipherToolError(f"gpg executable not found: {self._gpg_path}") from e
        except subprocess.TimeoutExpired as e:
            raise CipherToolError(f"gpg timed out after {self._timeout}s") from e


def _stderr_text(result: subprocess.CompletedProcess[bytes]) -> str:
    return (result.stderr or b"").decode("utf-8", errors="replace").strip()
