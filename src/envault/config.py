"""Configuration management for envault."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

VALID_CIPHERS = ["native", "external"]
VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Runtime settings loaded from ``ENVAULT_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="ENVAULT_",
        env_file=".env.envault",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="WARNING", description="Logging level")

    # Logging Configuration
    log_to_file: bool = Field(default=False, description="Enable file-based logging")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Max size per log file before rotation",
    )
    log_file_backup_count: int = Field(
        default=5, description="Number of rotated log files to keep"
    )
    log_file_prefix: str = Field(default="envault", description="Prefix for log file names")

    # Project layout
    vault_dir: str = Field(default=".envault", description="Project vault directory name")
    config_file: str = Field(default="config.toml", description="Project config file name")
    recipients_file: str = Field(
        default="recipients.txt", description="Recipient list file name inside the vault"
    )

    # Cipher
    cipher: str = Field(
        default="native", description="Cipher scheme when the project config sets none"
    )
    identity_path: Path = Field(
        default=Path("~/.config/envault/identity.txt"),
        description="Native scheme private identity file",
    )
    gpg_binary: str = Field(default="gpg", description="Path to the gpg executable")
    gpg_homedir: Path | None = Field(
        default=None, description="GnuPG home directory (defaults to gpg's own)"
    )
    gpg_timeout: float = Field(default=30.0, description="Seconds to wait for gpg")

    @field_validator("cipher")
    @classmethod
    def validate_cipher(cls, v: str) -> str:
        """Validate cipher scheme choice."""
        v = v.lower()
        if v not in VALID_CIPHERS:
            raise ValueError(f"cipher must be one of {VALID_CIPHERS}, got: {v}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level."""
        v = v.upper()
        if v not in VALID_LOG_LEVELS:
            raise ValueError(f"log_level must be one of {VALID_LOG_LEVELS}, got: {v}")
        return v

    @field_validator("gpg_timeout")
    @classmethod
    def validate_gpg_timeout(cls, v: float) -> float:
        """Validate the subprocess timeout is positive."""
        if v <= 0:
            raise ValueError(f"gpg_timeout must be positive, got: {v}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() in ("development", "dev", "local")

    @property
    def resolved_identity_path(self) -> Path:
        """Identity path with ``~`` expanded."""
        return self.identity_path.expanduser()

    @property
    def log_file_path(self) -> str:
        """Get the full log file path."""
        return f"{self.log_directory}/{self.log_file_prefix}.log"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
