"""Encryption service: named secret files on top of a cipher backend and key store.

Ciphertext for environment ``E`` lives at ``<vault_dir>/E.env.enc``. Every
write is atomic. Read-only callers use :meth:`EncryptionService.decrypt_to_bytes`
so no plaintext is written to disk.
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path

from envault.audit import AuditAction, AuditLogger
from envault.crypto.base import CipherBackend
from envault.errors import CryptoError, EmptyRecipientListError, SecretFileNotFoundError
from envault.keys.store import KeyStore
from envault.logging import get_logger
from envault.models import SecretFile, validate_environment_name
from envault.storage import atomic_write

log = get_logger("envault.services.encryption")

CIPHERTEXT_SUFFIX = ".env.enc"


def state_hash(data: bytes) -> str:
    """SHA-256 hex digest recorded in the audit log for a ciphertext."""
    return hashlib.sha256(data).hexdigest()


class EncryptionService:
    """Encrypts, decrypts and re-encrypts environment secret files."""

    def __init__(
        self,
        backend: CipherBackend,
        key_store: KeyStore,
        vault_dir: Path | str,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        """Initialize the service.

        Args:
            backend: Cipher backend selected for this operation.
            key_store: Source of truth for the current recipients.
            vault_dir: Directory holding the ``*.env.enc`` files.
            audit_logger: Optional audit sink; its failures are logged and ignored.
        """
        self._backend = backend
        self._key_store = key_store
        self._vault_dir = Path(vault_dir)
        self._audit = audit_logger

    @property
    def backend(self) -> CipherBackend:
        """The active cipher backend."""
        return self._backend

    def ciphertext_path(self, environment: str) -> Path:
        """Return where the ciphertext of ``environment`` is stored.

        Raises:
            ValueError: If ``environment`` is not a valid environment name.
        """
        validate_environment_name(environment)
        return self._vault_dir / f"{environment}{CIPHERTEXT_SUFFIX}"

    def has_ciphertext(self, environment: str) -> bool:
        """Check whether ``environment`` has been encrypted."""
        return self.ciphertext_path(environment).is_file()

    # ------------------------------------------------------------------
    # Encrypt
    # ------------------------------------------------------------------

    def encrypt_file(self, plaintext_path: Path | str, environment: str) -> bytes:
        """Encrypt a plaintext file for all current recipients.

        Raises:
            SecretFileNotFoundError: If ``plaintext_path`` does not exist.
            EmptyRecipientListError: If no recipient of the active scheme is configured.
        """
        source = Path(plaintext_path)
        if not source.is_file():
            raise SecretFileNotFoundError(source)
        return self.encrypt_bytes(source.read_bytes(), environment)

    def encrypt_bytes(self, plaintext: bytes, environment: str) -> bytes:
        """Encrypt in-memory plaintext for all current recipients and persist it.

        Returns:
            The ciphertext written to :meth:`ciphertext_path`.
        """
        ciphertext = self._encrypt(plaintext, environment)
        self.record_audit(AuditAction.ENCRYPT, [environment], state_hash=state_hash(ciphertext))
        return ciphertext

    def _encrypt(self, plaintext: bytes, environment: str) -> bytes:
        recipients = self._key_store.list_for(self._backend.scheme)
        if not recipients:
            raise EmptyRecipientListError(
                f"No {self._backend.scheme.value} recipients configured; "
                f"refusing to encrypt '{environment}'"
            )

        ciphertext = self._backend.encrypt(plaintext, recipients)
        secret = SecretFile(environment, self._backend.scheme, ciphertext)
        target = atomic_write(self.ciphertext_path(environment), secret.data)
        log.info(
            "environment_encrypted",
            environment=environment,
            backend=self._backend.name,
            recipients=len(recipients),
            path=str(target),
        )
        return secret.data

    # ------------------------------------------------------------------
    # Decrypt
    # ------------------------------------------------------------------

    def decrypt_to_bytes(self, environment: str, identity: Path | None = None) -> bytes:
        """Decrypt an environment in memory; nothing is written to disk.

        Raises:
            SecretFileNotFoundError: If the environment has no ciphertext.
            KeyNotAuthorizedError: The key is not a recipient.
            CiphertextCorruptError: The ciphertext is malformed.
            PrivateKeyNotFoundError: No private key at ``identity``.
        """
        source = self.ciphertext_path(environment)
        if not source.is_file():
            raise SecretFileNotFoundError(source)

        secret = SecretFile(environment, self._backend.scheme, source.read_bytes())
        try:
            plaintext = self._backend.decrypt(secret.data, identity)
        except CryptoError as e:
            log.error(
                "decrypt_failed",
                environment=environment,
                backend=self._backend.name,
                error=type(e).__name__,
            )
            raise
        log.debug("environment_decrypted", environment=environment, backend=self._backend.name)
        return plaintext

    def decrypt_file(
        self,
        environment: str,
        output_path: Path | str,
        identity: Path | None = None,
    ) -> bytes:
        """Decrypt an environment and write the plaintext to ``output_path``.

        Returns:
            The plaintext that was written.
        """
        plaintext = self.decrypt_to_bytes(environment, identity)
        target = atomic_write(output_path, plaintext, mode=0o600)
        log.info("environment_decrypted_to_file", environment=environment, path=str(target))
        self.record_audit(
            AuditAction.DECRYPT,
            [environment],
            state_hash=state_hash(self.ciphertext_path(environment).read_bytes()),
        )
        return plaintext

    # ------------------------------------------------------------------
    # Re-encrypt
    # ------------------------------------------------------------------

    def reencrypt_all(
        self,
        environments: Iterable[str],
        identity: Path | None = None,
    ) -> list[str]:
        """Re-encrypt environments for the current recipient list, one at a time.

        Plaintext only ever exists in memory. Stops at the first failure;
        environments rewritten before it keep their new ciphertext.
        Environments without ciphertext are skipped.

        Returns:
            Names of the environments that were rewritten.
        """
        rewritten: list[str] = []
        for environment in environments:
            if not self.has_ciphertext(environment):
                log.debug("reencrypt_skipped", environment=environment, reason="no ciphertext")
                continue
            try:
                plaintext = self.decrypt_to_bytes(environment, identity)
                self._encrypt(plaintext, environment)
            except Exception:
                log.exception(
                    "reencrypt_aborted",
                    environment=environment,
                    rewritten=rewritten,
                )
                if rewritten:
                    self.record_audit(
                        AuditAction.REENCRYPT, rewritten, detail="aborted before completion"
                    )
                raise
            rewritten.append(environment)

        log.info("reencrypt_complete", rewritten=rewritten, backend=self._backend.name)
        self.record_audit(AuditAction.REENCRYPT, rewritten)
        return rewritten

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def record_audit(
        self,
        action: AuditAction,
        environments: list[str],
        detail: str | None = None,
        state_hash: str | None = None,
    ) -> None:
        if self._audit is None:
            return
        try:
            self._audit.record(action, environments, detail=detail, state_hash=state_hash)
        except Exception as e:
            log.warning("audit_failed", action=action.value, error=str(e))
