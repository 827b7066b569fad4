"""Resolution pipeline: decrypt every layer in memory, merge, write once."""

from __future__ import annotations

from pathlib import Path

from envault.audit import AuditAction
from envault.errors import SecretFileNotFoundError
from envault.logging import get_logger
from envault.models import ResolvedEnvironment
from envault.parsers.dotenv import DotenvParser
from envault.services.encryption import EncryptionService
from envault.services.resolver import EnvironmentGraph, EnvironmentResolver
from envault.storage import atomic_write

log = get_logger("envault.services.pipeline")


class ResolutionPipeline:
    """Produces a final secret set with no intermediate plaintext files."""

    def __init__(
        self,
        encryption: EncryptionService,
        graph: EnvironmentGraph,
        parser: DotenvParser | None = None,
    ) -> None:
        self._encryption = encryption
        self._parser = parser or DotenvParser()
        self._resolver = EnvironmentResolver(graph, self._parser)

    def resolve(self, name: str, identity: Path | None = None) -> ResolvedEnvironment:
        """Resolve ``name`` entirely in memory.

        Layers with no ciphertext on disk are skipped with a warning. Any
        decryption failure propagates.

        Raises:
            SecretFileNotFoundError: If no layer of the chain has ciphertext.
        """

        def load_layer(layer: str) -> bytes | None:
            if not self._encryption.has_ciphertext(layer):
                log.warning(
                    "layer_missing",
                    environment=layer,
                    path=str(self._encryption.ciphertext_path(layer)),
                )
                return None
            return self._encryption.decrypt_to_bytes(layer, identity)

        resolved = self._resolver.resolve(name, load_layer)
        if not resolved.layers:
            raise SecretFileNotFoundError(self._encryption.ciphertext_path(name))

        self._encryption.record_audit(
            AuditAction.RESOLVE,
            [name],
            detail=f"{len(resolved)} variables from {len(resolved.layers)} layer(s)",
        )
        return resolved

    def resolve_to(
        self,
        name: str,
        output_path: Path | str,
        identity: Path | None = None,
    ) -> ResolvedEnvironment:
        """Resolve ``name`` and write the result once to ``output_path``."""
        resolved = self.resolve(name, identity)
        atomic_write(output_path, self._parser.serialize(resolved.values), mode=0o600)
        log.info("resolved_environment_written", environment=name, path=str(output_path))
        return resolved
