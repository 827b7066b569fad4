"""Project configuration (``.envault/config.toml``).

Supplies the ordered environment definitions and the active cipher scheme.
Example::

    [envault]
    version = "1"
    cipher = "native"
    default_env = "dev"

    [environments.base]
    [environments.dev]
    inherits = "base"

    [audit]
    enabled = true
    log_file = "audit.log"
"""

from __future__ import annotations

import json
import tomllib
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from envault.errors import ConfigurationError
from envault.logging import get_logger
from envault.models import EnvironmentNode, Scheme, validate_environment_name

log = get_logger("envault.project")

SUPPORTED_FORMAT_VERSION = 1


def _toml_string(value: str) -> str:
    # JSON string escapes are valid TOML basic-string escapes
    return json.dumps(value)


class VaultSection(BaseModel):
    """The ``[envault]`` section."""

    model_config = ConfigDict(extra="ignore")

    version: str = "1"
    cipher: Scheme = Scheme.NATIVE
    default_env: str = "dev"
    template: str | None = None

    @field_validator("version")
    @classmethod
    def validate_version(cls, v: str) -> str:
        """Reject projects written by a newer format version."""
        try:
            major = int(str(v).split(".")[0])
        except ValueError:
            raise ValueError(f"version must be numeric, got: {v}") from None
        if major > SUPPORTED_FORMAT_VERSION:
            raise ValueError(
                f"project uses format version {major}, "
                f"but this envault only supports up to {SUPPORTED_FORMAT_VERSION}"
            )
        return str(v)

    @field_validator("default_env")
    @classmethod
    def validate_default_env(cls, v: str) -> str:
        """Validate the default environment name."""
        return validate_environment_name(v)


class EnvironmentEntry(BaseModel):
    """An entry under ``[environments]``."""

    model_config = ConfigDict(extra="ignore")

    file: str | None = None
    inherits: str | None = None
    template: str | None = None

    @field_validator("inherits")
    @classmethod
    def validate_inherits(cls, v: str | None) -> str | None:
        """Validate the parent environment name."""
        return validate_environment_name(v) if v is not None else v


class AuditSection(BaseModel):
    """The ``[audit]`` section."""

    model_config = ConfigDict(extra="ignore")

    enabled: bool = True
    log_file: str = "audit.log"


class ProjectConfig(BaseModel):
    """Validated contents of a project config file."""

    model_config = ConfigDict(extra="ignore")

    envault: VaultSection = Field(default_factory=VaultSection)
    environments: dict[str, EnvironmentEntry] = Field(default_factory=dict)
    audit: AuditSection = Field(default_factory=AuditSection)

    @field_validator("environments")
    @classmethod
    def validate_environment_names(
        cls, v: dict[str, EnvironmentEntry]
    ) -> dict[str, EnvironmentEntry]:
        """Environment names become file names and TOML table keys."""
        for name in v:
            validate_environment_name(name)
        return v

    @classmethod
    def load(cls, path: Path | str) -> ProjectConfig:
        """Read and validate a config file.

        Raises:
            ConfigurationError: If the file is missing, not TOML, or invalid.
        """
        source = Path(path)
        try:
            with source.open("rb") as fh:
                data = tomllib.load(fh)
        except FileNotFoundError:
            raise ConfigurationError(
                f"Project config not found at {source}; run init first"
            ) from None
        except tomllib.TOMLDecodeError as e:
            raise ConfigurationError(f"Invalid TOML in {source}: {e}") from e

        try:
            config = cls.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {source}: {e}") from e

        log.debug("project_config_loaded", path=str(source), environments=len(config.environments))
        return config

    @property
    def scheme(self) -> Scheme:
        """The project's active cipher scheme."""
        return self.envault.cipher

    def environment_nodes(self) -> list[EnvironmentNode]:
        """Return environment definitions in file order."""
        return [
            EnvironmentNode(
                name=name,
                file=entry.file,
                parent=entry.inherits,
                template=entry.template,
            )
            for name, entry in self.environments.items()
        ]

    def to_toml(self) -> str:
        """Render the config as TOML."""
        lines = [
            "[envault]",
            f"version = {_toml_string(self.envault.version)}",
            f"cipher = {_toml_string(self.envault.cipher.value)}",
            f"default_env = {_toml_string(self.envault.default_env)}",
        ]
        if self.envault.template:
            lines.append(f"template = {_toml_string(self.envault.template)}")

        for name, entry in self.environments.items():
            lines.extend(["", f"[environments.{name}]"])
            if entry.file:
                lines.append(f"file = {_toml_string(entry.file)}")
            if entry.inherits:
                lines.append(f"inherits = {_toml_string(entry.inherits)}")
            if entry.template:
                lines.append(f"template = {_toml_string(entry.template)}")

        lines.extend(
            [
                "",
                "[audit]",
                f"enabled = {'true' if self.audit.enabled else 'false'}",
                f"log_file = {_toml_string(self.audit.log_file)}",
            ]
        )
        return "\n".join(lines) + "\n"


def default_project_config(scheme: Scheme = Scheme.NATIVE) -> ProjectConfig:
    """Config written by ``Vault.init``: base, dev, staging and prod."""
    return ProjectConfig(
        envault=VaultSection(cipher=scheme),
        environments={
            "base": EnvironmentEntry(),
            "dev": EnvironmentEntry(inherits="base"),
            "staging": EnvironmentEntry(inherits="base"),
            "prod": EnvironmentEntry(inherits="base"),
        },
    )
