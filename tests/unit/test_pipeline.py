"""Unit tests for the resolution pipeline."""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from envault.errors import CircularInheritanceError, KeyNotAuthorizedError, SecretFileNotFoundError
from envault.models import EnvironmentNode
from envault.services.encryption import EncryptionService
from envault.services.pipeline import ResolutionPipeline
from envault.services.resolver import EnvironmentGraph


def _graph(*edges: tuple[str, str | None]) -> EnvironmentGraph:
    return EnvironmentGraph(EnvironmentNode(name=name, parent=parent) for name, parent in edges)


@pytest.fixture
def layered(encryption_service) -> EncryptionService:
    """base and dev encrypted; feature left unencrypted."""
    encryption_service.encrypt_bytes(b"DB_HOST=db.internal\nDEBUG=false\nLOG=info\n", "base")
    encryption_service.encrypt_bytes(b"DEBUG=true\nDEV_TOKEN=abc\n", "dev")
    return encryption_service


class TestResolve:
    """Tests for in-memory resolution."""

    def test_merges_chain(self, layered, alice) -> None:
        """Test parent values are overridden by the child in parent order."""
        pipeline = ResolutionPipeline(layered, _graph(("base", None), ("dev", "base")))
        resolved = pipeline.resolve("dev", alice.path)

        assert list(resolved.values.items()) == [
            ("DB_HOST", "db.internal"),
            ("DEBUG", "true"),
            ("LOG", "info"),
            ("DEV_TOKEN", "abc"),
        ]
        assert resolved.name == "dev"
        assert resolved.layers == ["base", "dev"]

    def test_missing_layer_skipped(self, layered, alice) -> None:
        """Test a layer without ciphertext is skipped rather than failing."""
        graph = _graph(("base", None), ("dev", "base"), ("feature", "dev"))
        resolved = ResolutionPipeline(layered, graph).resolve("feature", alice.path)
        assert resolved.values["DEBUG"] == "true"
        assert resolved.skipped == ["feature"]

    def test_no_layers_is_an_error(self, encryption_service, alice) -> None:
        """Test a chain with no ciphertext at all is reported."""
        pipeline = ResolutionPipeline(encryption_service, _graph(("base", None), ("dev", "base")))
        with pytest.raises(SecretFileNotFoundError) as exc_info:
            pipeline.resolve("dev", alice.path)
        assert exc_info.value.path == encryption_service.ciphertext_path("dev")

    def test_decrypt_failure_propagates(self, layered, mallory) -> None:
        """Test a layer the caller cannot decrypt aborts the resolution."""
        pipeline = ResolutionPipeline(layered, _graph(("base", None), ("dev", "base")))
        with pytest.raises(KeyNotAuthorizedError):
            pipeline.resolve("dev", mallory.path)

    def test_cycle_never_decrypts(self) -> None:
        """Test a cyclic chain is rejected before any layer is touched."""
        encryption = MagicMock(spec=EncryptionService)
        pipeline = ResolutionPipeline(encryption, _graph(("dev", "staging"), ("staging", "dev")))

        with pytest.raises(CircularInheritanceError):
            pipeline.resolve("dev")

        encryption.has_ciphertext.assert_not_called()
        encryption.decrypt_to_bytes.assert_not_called()

    def test_resolve_writes_no_files(self, layered, alice, tmp_path: Path) -> None:
        """Test in-memory resolution creates nothing on disk."""
        before = sorted(str(p) for p in tmp_path.rglob("*"))
        ResolutionPipeline(layered, _graph(("base", None), ("dev", "base"))).resolve(
            "dev", alice.path
        )
        assert sorted(str(p) for p in tmp_path.rglob("*")) == before


class TestResolveTo:
    """Tests for writing a resolved environment."""

    def test_writes_merged_dotenv(self, layered, alice, tmp_path: Path) -> None:
        """Test the merged set is written once, privately, as dotenv."""
        output = tmp_path / ".env"
        pipeline = ResolutionPipeline(layered, _graph(("base", None), ("dev", "base")))
        pipeline.resolve_to("dev", output, alice.path)

        assert output.read_bytes() == (
            b"DB_HOST=db.internal\nDEBUG=true\nLOG=info\nDEV_TOKEN=abc\n"
        )
        assert output.stat().st_mode & 0o777 == 0o600
        assert not list(tmp_path.glob(".*.tmp"))

    def test_failure_leaves_output_untouched(self, layered, mallory, tmp_path: Path) -> None:
        """Test an existing output file survives a failed resolution."""
        output = tmp_path / ".env"
        output.write_bytes(b"OLD=1\n")
        pipeline = ResolutionPipeline(layered, _graph(("base", None), ("dev", "base")))

        with pytest.raises(KeyNotAuthorizedError):
            pipeline.resolve_to("dev", output, mallory.path)
        assert output.read_bytes() == b"OLD=1\n"
