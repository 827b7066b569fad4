"""Project-level facade wiring settings, config, key store and services.

A command layer builds one :class:`Vault` per invocation and calls the
operation matching the user's command.
"""

from __future__ import annotations

from pathlib import Path

from envault.audit import AuditAction, JsonAuditLogger
from envault.config import Settings, get_settings
from envault.crypto.factory import get_cipher_backend, parse_scheme
from envault.crypto.native import generate_identity
from envault.errors import ConfigurationError, InvalidRecipientError
from envault.keys.formats import detect_scheme
from envault.keys.store import FileKeyStore
from envault.logging import get_logger
from envault.models import RecipientIdentity, ResolvedEnvironment, Scheme
from envault.project import ProjectConfig, default_project_config
from envault.services.encryption import EncryptionService
from envault.services.pipeline import ResolutionPipeline
from envault.services.resolver import EnvironmentGraph

log = get_logger("envault.vault")

DEFAULT_OUTPUT = ".env"


class Vault:
    """An initialized envault project."""

    def __init__(
        self,
        root: Path,
        config: ProjectConfig,
        encryption: EncryptionService,
        key_store: FileKeyStore,
        graph: EnvironmentGraph,
    ) -> None:
        self.root = root
        self.config = config
        self.encryption = encryption
        self.key_store = key_store
        self.graph = graph
        self.pipeline = ResolutionPipeline(encryption, graph)

    @classmethod
    def open(cls, root: Path | str = ".", settings: Settings | None = None) -> Vault:
        """Load the project rooted at ``root``.

        Raises:
            ConfigurationError: If the project is not initialized or its config
                (including the environment graph) is invalid.
        """
        settings = settings or get_settings()
        project_root = Path(root)
        vault_dir = project_root / settings.vault_dir
        if not vault_dir.is_dir():
            raise ConfigurationError(f"envault not initialized in {project_root}; run init first")

        config = ProjectConfig.load(vault_dir / settings.config_file)
        graph = EnvironmentGraph(config.environment_nodes())
        graph.validate()

        key_store = FileKeyStore(vault_dir / settings.recipients_file)
        audit_logger = (
            JsonAuditLogger(vault_dir / config.audit.log_file) if config.audit.enabled else None
        )
        encryption = EncryptionService(
            backend=get_cipher_backend(config.scheme, settings),
            key_store=key_store,
            vault_dir=vault_dir,
            audit_logger=audit_logger,
        )
        log.debug("vault_opened", root=str(project_root), scheme=config.scheme.value)
        return cls(project_root, config, encryption, key_store, graph)

    @classmethod
    def init(
        cls,
        root: Path | str = ".",
        scheme: str | Scheme = Scheme.NATIVE,
        settings: Settings | None = None,
        add_self: bool = True,
    ) -> Vault:
        """Scaffold a new project and return it opened.

        With ``add_self``, the caller's own public key is added as the first
        recipient; for the native scheme an identity is generated if missing.

        Raises:
            ConfigurationError: If the project is already initialized.
        """
        settings = settings or get_settings()
        selected = parse_scheme(scheme)
        vault_dir = Path(root) / settings.vault_dir
        config_path = vault_dir / settings.config_file
        if config_path.exists():
            raise ConfigurationError(f"envault already initialized at {vault_dir}")

        vault_dir.mkdir(parents=True, exist_ok=True)
        config_path.write_text(default_project_config(selected).to_toml(), encoding="utf-8")
        (vault_dir / settings.recipients_file).touch()

        vault = cls.open(root, settings)
        if add_self:
            if selected is Scheme.NATIVE and not settings.resolved_identity_path.exists():
                generate_identity(settings.resolved_identity_path)
            own_key = vault.encryption.backend.public_key()
            if own_key:
                vault.key_store.add(RecipientIdentity(own_key, selected, label="init"))
            else:
                log.warning("init_no_own_key", scheme=selected.value)

        vault.encryption.record_audit(AuditAction.INIT, vault.graph.names)
        log.info("vault_initialized", root=str(root), scheme=selected.value)
        return vault

    # ------------------------------------------------------------------
    # Secrets
    # ------------------------------------------------------------------

    def _environment(self, environment: str | None) -> str:
        name = environment or self.config.envault.default_env
        self.graph.get(name)
        return name

    def encrypt(self, environment: str | None = None, source: Path | str | None = None) -> Path:
        """Encrypt ``source`` (default: the environment's file) as ``environment``.

        Returns:
            Path of the written ciphertext.
        """
        name = self._environment(environment)
        plaintext_path = Path(source) if source else self.root / self.graph.get(name).source_file
        self.encryption.encrypt_file(plaintext_path, name)
        return self.encryption.ciphertext_path(name)

    def encrypt_all(self, identity: Path | None = None) -> list[str]:
        """Re-encrypt every existing environment ciphertext for the current recipients."""
        return self.encryption.reencrypt_all(self.graph.names, identity)

    def decrypt(
        self,
        environment: str | None = None,
        output: Path | str | None = None,
        identity: Path | None = None,
    ) -> Path:
        """Decrypt one environment layer to ``output`` (default ``.env``)."""
        name = self._environment(environment)
        target = Path(output) if output else self.root / DEFAULT_OUTPUT
        self.encryption.decrypt_file(name, target, identity)
        return target

    def resolve(
        self,
        environment: str | None = None,
        output: Path | str | None = None,
        identity: Path | None = None,
    ) -> ResolvedEnvironment:
        """Resolve an environment's inheritance chain.

        Nothing is written unless ``output`` is given.
        """
        name = self._environment(environment)
        if output is None:
            return self.pipeline.resolve(name, identity)
        return self.pipeline.resolve_to(name, output, identity)

    # ------------------------------------------------------------------
    # Recipients
    # ------------------------------------------------------------------

    def list_recipients(self) -> list[RecipientIdentity]:
        """Return all authorized recipients."""
        return self.key_store.list()

    def add_recipient(
        self,
        public_key: str,
        label: str | None = None,
        reencrypt: bool = False,
        identity: Path | None = None,
    ) -> bool:
        """Authorize a new recipient.

        Existing ciphertext only becomes readable by the new recipient after a
        re-encryption pass, run here when ``reencrypt`` is set.

        Returns:
            True if the recipient was added, False if already present.

        Raises:
            InvalidRecipientError: If the key is not a valid key of the
                project's cipher scheme.
        """
        scheme = self.config.scheme
        detected = detect_scheme(public_key)
        if detected is not scheme:
            raise InvalidRecipientError(
                public_key, f"this project uses {scheme.value} keys, got a {detected.value} key"
            )
        added = self.key_store.add(RecipientIdentity(public_key, scheme, label))
        if added:
            self.encryption.record_audit(AuditAction.KEY_ADD, [], detail=f"added {public_key}")
            if reencrypt:
                self.encrypt_all(identity)
        return added

    def remove_recipient(
        self,
        public_key: str,
        reencrypt: bool = False,
        identity: Path | None = None,
    ) -> RecipientIdentity:
        """Revoke a recipient.

        Existing ciphertext stays readable by the removed key until it is
        re-encrypted, run here when ``reencrypt`` is set.
        """
        removed = self.key_store.remove(public_key)
        self.encryption.record_audit(AuditAction.KEY_REMOVE, [], detail=f"removed {public_key}")
        if reencrypt:
            self.encrypt_all(identity)
        return removed
