"""Unit tests for the project config file."""

from pathlib import Path

import pytest

from envault.errors import ConfigurationError
from envault.models import Scheme
from envault.project import ProjectConfig, default_project_config

CONFIG = """\
[envault]
version = "1"
cipher = "external"
default_env = "staging"

[environments.shared]

[environments.staging]
inherits = "shared"
file = "config/staging.env"

[environments.prod]
inherits = "shared"

[audit]
enabled = false
"""


def _write(tmp_path: Path, content: str) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(content)
    return path


class TestProjectConfig:
    """Tests for ProjectConfig.load."""

    def test_load(self, tmp_path: Path) -> None:
        """Test sections are read and validated."""
        config = ProjectConfig.load(_write(tmp_path, CONFIG))
        assert config.scheme is Scheme.EXTERNAL
        assert config.envault.default_env == "staging"
        assert config.audit.enabled is False

    def test_environment_nodes_in_file_order(self, tmp_path: Path) -> None:
        """Test environments keep their definition order and parents."""
        nodes = ProjectConfig.load(_write(tmp_path, CONFIG)).environment_nodes()
        assert [n.name for n in nodes] == ["shared", "staging", "prod"]
        assert nodes[1].parent == "shared"
        assert nodes[1].source_file == "config/staging.env"
        assert nodes[2].source_file == "prod.env"

    def test_empty_file_uses_defaults(self, tmp_path: Path) -> None:
        """Test an empty config falls back to defaults."""
        config = ProjectConfig.load(_write(tmp_path, ""))
        assert config.scheme is Scheme.NATIVE
        assert config.environments == {}
        assert config.audit.log_file == "audit.log"

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file suggests running init."""
        with pytest.raises(ConfigurationError, match="run init"):
            ProjectConfig.load(tmp_path / "config.toml")

    def test_invalid_toml(self, tmp_path: Path) -> None:
        """Test a syntax error is a configuration error."""
        with pytest.raises(ConfigurationError, match="Invalid TOML"):
            ProjectConfig.load(_write(tmp_path, "[envault\n"))

    def test_unknown_cipher(self, tmp_path: Path) -> None:
        """Test an unknown cipher value is rejected."""
        with pytest.raises(ConfigurationError):
            ProjectConfig.load(_write(tmp_path, '[envault]\ncipher = "rot13"\n'))

    def test_newer_format_version(self, tmp_path: Path) -> None:
        """Test a project written by a newer format is refused."""
        with pytest.raises(ConfigurationError, match="format version 2"):
            ProjectConfig.load(_write(tmp_path, '[envault]\nversion = "2.0"\n'))

    def test_to_toml_reloads(self, tmp_path: Path) -> None:
        """Test rendered TOML loads back to the same config."""
        config = ProjectConfig.load(_write(tmp_path, CONFIG))
        reloaded = ProjectConfig.load(_write(tmp_path, config.to_toml()))
        assert reloaded == config

    def test_default_config(self) -> None:
        """Test the scaffolded config defines base and three children."""
        config = default_project_config(Scheme.EXTERNAL)
        assert config.scheme is Scheme.EXTERNAL
        assert {n.name: n.parent for n in config.environment_nodes()} == {
            "base": None,
            "dev": "base",
            "staging": "base",
            "prod": "base",
        }

    @pytest.mark.parametrize("name", ['"../escape"', '"has space"', '"a.b"', '"-dash"'])
    def test_invalid_environment_name(self, tmp_path: Path, name: str) -> None:
        """Test names that are not safe file names and bare TOML keys are rejected."""
        with pytest.raises(ConfigurationError, match="invalid environment name"):
            ProjectConfig.load(_write(tmp_path, f"[environments.{name}]\n"))

    def test_invalid_parent_name(self, tmp_path: Path) -> None:
        """Test inherits values follow the same grammar."""
        with pytest.raises(ConfigurationError, match="invalid environment name"):
            ProjectConfig.load(_write(tmp_path, '[environments.dev]\ninherits = "../base"\n'))

    def test_invalid_default_env(self, tmp_path: Path) -> None:
        """Test the default environment name is validated."""
        with pytest.raises(ConfigurationError, match="invalid environment name"):
            ProjectConfig.load(_write(tmp_path, '[envault]\ndefault_env = "a/b"\n'))

    def test_to_toml_escapes_strings(self, tmp_path: Path) -> None:
        """Test quotes and backslashes in values survive rendering."""
        config = ProjectConfig.load(
            _write(tmp_path, "[environments.dev]\nfile = 'C:\\secrets\\\"dev\".env'\n")
        )
        reloaded = ProjectConfig.load(_write(tmp_path, config.to_toml()))
        assert reloaded.environments["dev"].file == 'C:\\secrets\\"dev".env'
