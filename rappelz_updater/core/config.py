"""Configuration management for rappelz-updater."""

from __future__ import annotations

import json
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, field_validator

from rappelz_updater.core.utils import host_fingerprint
from rappelz_updater.protocol.constants import DEFAULT_BUFFER_SIZE, DEFAULT_PORT

logger = structlog.get_logger()


class UpdaterConfig(BaseModel):
    """Settings for one update session against one patch server."""

    host: str = Field(..., description="Patch server host name or IP address")
    port: int = Field(default=DEFAULT_PORT, description="Patch server TCP port")
    client_path: Path = Field(..., description="Game client installation directory")
    operational_path: Path = Field(
        default_factory=Path.cwd,
        description="Directory holding the .patch-info and .patch-files folders"
    )
    locale: str = Field(default="us", description="Content locale tracked by this client")
    fingerprint: str = Field(
        default_factory=host_fingerprint,
        description="Credential sent in reply to an authentication challenge"
    )
    buffer_size: int = Field(
        default=DEFAULT_BUFFER_SIZE,
        description="Maximum bytes read from the connection per transfer chunk"
    )
    segmented_update: bool = Field(
        default=True,
        description="Walk every intermediate version instead of jumping to the latest"
    )
    keep_update_files: bool = Field(
        default=True,
        description="Keep downloaded patch files after they are imported"
    )
    timeout: float | None = Field(
        default=None,
        description="Socket timeout in seconds (None blocks indefinitely)"
    )

    @field_validator("host")
    @classmethod
    def validate_host(cls, v: str) -> str:
        """Validate host value."""
        if not v.strip():
            raise ValueError("Host cannot be empty")
        return v.strip()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port value."""
        if not 0 < v < 65536:
            raise ValueError(f"Invalid port: {v}")
        return v

    @field_validator("locale")
    @classmethod
    def validate_locale(cls, v: str) -> str:
        """Validate locale value."""
        if not v or ":" in v or not v.isascii():
            raise ValueError("Locale must be non-empty ASCII and cannot contain ':'")
        return v

    @field_validator("fingerprint")
    @classmethod
    def validate_fingerprint(cls, v: str) -> str:
        """Validate fingerprint value."""
        if not v:
            raise ValueError("Fingerprint cannot be empty")
        if not v.isascii():
            raise ValueError("Fingerprint must be ASCII")
        return v

    @field_validator("buffer_size")
    @classmethod
    def validate_buffer_size(cls, v: int) -> int:
        """Validate buffer size value."""
        if v <= 0:
            raise ValueError("Buffer size must be positive")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float | None) -> float | None:
        """Validate timeout value."""
        if v is not None and v <= 0:
            raise ValueError("Timeout must be positive")
        return v

    @property
    def patch_info_dir(self) -> Path:
        """Directory holding persisted patch manifests."""
        return self.operational_path / ".patch-info"

    @property
    def patch_files_dir(self) -> Path:
        """Directory holding downloaded raw patch files."""
        return self.operational_path / ".patch-files"


class AppConfig(BaseModel):
    """Application configuration."""

    config_dir: Path = Field(
        default=Path.home() / ".config" / "rappelz-updater",
        description="Configuration directory"
    )
    output_format: str = Field(
        default="rich",
        description="Output format (rich, json, plain)"
    )
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )
    updater: UpdaterConfig | None = Field(
        default=None,
        description="Default update session settings"
    )

    @classmethod
    def load(cls, config_file: Path | None = None) -> AppConfig:
        """Load configuration from file.

        Args:
            config_file: Path to config file, uses default if None

        Returns:
            Application configuration
        """
        if config_file is None:
            config_file = Path.home() / ".config" / "rappelz-updater" / "config.json"

        if config_file.exists():
            with open(config_file) as f:
                data = json.load(f)
                return cls(**data)

        return cls()

    def save(self, config_file: Path | None = None) -> None:
        """Save configuration to file.

        Args:
            config_file: Path to config file, uses default if None
        """
        if config_file is None:
            config_file = self.config_dir / "config.json"

        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            json.dump(self.model_dump(mode="json"), f, indent=2, default=str)

        logger.info("config_saved", path=str(config_file))

    @field_validator("output_format")
    @classmethod
    def validate_output_format(cls, v: str) -> str:
        """Validate output format."""
        valid_formats = {"rich", "json", "plain"}
        if v not in valid_formats:
            raise ValueError(f"Invalid output format: {v}. Valid formats: {valid_formats}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Valid levels: {valid_levels}")
        return v
