"""AniTilky Configuration Settings."""

from __future__ import annotations

import os
from enum import StrEnum
from functools import cached_property, lru_cache
from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

from anitilky.utils.logging import _get_logger

__all__ = [
    "AniTilkyConfig",
    "BasicAuthConfig",
    "DriveConfig",
    "LogLevel",
    "StorageConfig",
    "TransferConfig",
    "WebConfig",
    "find_yaml_config_file",
    "get_config",
]

_log = _get_logger(__name__)

DEFAULT_VIDEO_EXTENSIONS = [".mp4", ".mkv", ".avi", ".mov", ".webm", ".m4v", ".ts"]


def _data_path() -> Path:
    return Path(os.getenv("AT_DATA_PATH", "./data")).resolve()


def find_yaml_config_file() -> Path:
    """Find the YAML configuration file in the data path.

    Returns:
        Path: The path to an existing YAML configuration file or the default location.
    """
    data_path = _data_path()

    for ext in ("yaml", "yml"):
        yaml_file = data_path / f"config.{ext}"
        if yaml_file.exists():
            _log.debug(f"Using YAML config file: {yaml_file.resolve()}")
            return yaml_file.resolve()
    return data_path / "config.yaml"


class BaseStrEnum(StrEnum):
    """String enumeration with case-insensitive lookup."""

    @classmethod
    def _missing_(cls, value: object) -> BaseStrEnum | None:
        """Handle case-insensitive lookup for enum values.

        Args:
            value: The value to look up in the enumeration

        Returns:
            BaseStrEnum | None: The matching enum member if found, None otherwise
        """
        value = value.lower() if isinstance(value, str) else value
        for member in cls:
            if member.lower() == value:
                return member
        return None

    def __repr__(self) -> str:
        """Return the string value of the enum member."""
        return self.value

    def __str__(self) -> str:
        """Return the string representation of the enum member."""
        return repr(self)


class LogLevel(BaseStrEnum):
    """Enumeration of available logging levels.

    Note: SUCCESS is a custom level used by this application.
    """

    DEBUG = "DEBUG"
    INFO = "INFO"
    SUCCESS = "SUCCESS"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class BasicAuthConfig(BaseModel):
    """Configuration for operator authentication."""

    username: str | None = Field(
        default=None, description="Username for authentication"
    )
    password: SecretStr | None = Field(
        default=None, description="Password for authentication"
    )
    realm: str = Field(
        default="AniTilky", description="Realm for HTTP Basic Authentication"
    )


class WebConfig(BaseModel):
    """Configuration for the embedded web server."""

    enabled: bool = Field(default=True, description="Enable the AniTilky web server")
    host: str = Field(default="0.0.0.0", description="Host for the web server")
    port: int = Field(default=4545, description="Port for the web server")
    basic_auth: BasicAuthConfig = Field(
        default_factory=BasicAuthConfig, description="Authentication settings"
    )


class DriveConfig(BaseModel):
    """Configuration for the Google Drive source folder client."""

    api_url: str = Field(
        default="https://www.googleapis.com/drive/v3",
        description="Base URL of the Drive v3 REST API",
    )
    api_key: SecretStr | None = Field(
        default=None, description="API key for publicly shared folders"
    )
    access_token: SecretStr | None = Field(
        default=None, description="OAuth bearer token for private folders"
    )
    page_size: int = Field(
        default=1000, ge=1, le=1000, description="Files requested per listing page"
    )
    video_extensions: list[str] = Field(
        default_factory=lambda: list(DEFAULT_VIDEO_EXTENSIONS),
        description="File extensions treated as video regardless of MIME type",
    )


class StorageConfig(BaseModel):
    """Configuration for the Bunny object storage zone."""

    zone_name: str | None = Field(default=None, description="Storage zone name")
    api_key: SecretStr | None = Field(default=None, description="Storage access key")
    storage_host: str = Field(
        default="storage.bunnycdn.com",
        description="Storage API host (region specific hosts are allowed)",
    )
    cdn_host: str | None = Field(
        default=None,
        description="Public CDN host; defaults to '<zone_name>.b-cdn.net'",
    )


class TransferConfig(BaseModel):
    """Tuning knobs for the bulk transfer pipeline."""

    chunk_size: int = Field(
        default=1024 * 1024, ge=4096, description="Bytes read per download chunk"
    )
    stall_timeout: float = Field(
        default=120.0, gt=0, description="Seconds to wait for a chunk before failing"
    )
    persist_retries: int = Field(
        default=3, ge=1, description="Attempts to persist a transferred episode"
    )
    persist_retry_delay: float = Field(
        default=1.0, ge=0, description="Base delay in seconds between persist attempts"
    )
    history_limit: int = Field(
        default=50, ge=1, description="Finished jobs kept in memory for status lookups"
    )


class AniTilkyConfig(BaseSettings):
    """Application configuration.

    Configuration is sourced from a YAML file in the data directory (optionally
    combined with parameters passed directly to the model).
    """

    log_level: LogLevel = Field(
        default=LogLevel.INFO, description="Logging level for the application"
    )
    web: WebConfig = Field(
        default_factory=WebConfig, description="Embedded web server configuration"
    )
    drive: DriveConfig = Field(
        default_factory=DriveConfig, description="Remote drive configuration"
    )
    storage: StorageConfig = Field(
        default_factory=StorageConfig, description="Object storage configuration"
    )
    transfer: TransferConfig = Field(
        default_factory=TransferConfig, description="Bulk transfer configuration"
    )

    @cached_property
    def data_path(self) -> Path:
        """Get the data path for AniTilky.

        Returns:
            Path: The data path resolved from the environment or default location.
        """
        return _data_path()

    @model_validator(mode="after")
    def validate_config(self) -> AniTilkyConfig:
        """Normalize partial settings.

        Returns:
            AniTilkyConfig: Self with validated settings.
        """
        if (not self.web.basic_auth.username) != (not self.web.basic_auth.password):
            _log.warning(
                "Both web.basic_auth.username and web.basic_auth.password must be set "
                "to enable HTTP Basic Authentication; ignoring partial values"
            )
            self.web.basic_auth.username = None
            self.web.basic_auth.password = None

        if not self.drive.api_key and not self.drive.access_token:
            _log.warning(
                "Neither drive.api_key nor drive.access_token is set; bulk uploads "
                "will fail until Drive credentials are configured"
            )

        self.drive.video_extensions = [
            ext.lower() if ext.startswith(".") else f".{ext.lower()}"
            for ext in self.drive.video_extensions
        ]
        return self

    def __str__(self) -> str:
        """Creates a human-readable representation of the configuration.

        Returns:
            str: Configuration summary.
        """
        return (
            f"AniTilky Config: DATA_PATH: {self.data_path}, "
            f"LOG_LEVEL: {self.log_level}, "
            f"STORAGE_ZONE: {self.storage.zone_name or 'unset'}"
        )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize the order of configuration sources."""
        return (
            init_settings,
            YamlConfigSettingsSource(settings_cls, yaml_file=find_yaml_config_file()),
        )

    model_config = SettingsConfigDict(extra="ignore")


@lru_cache(maxsize=1)
def get_config() -> AniTilkyConfig:
    """Get the singleton instance of AniTilkyConfig.

    Returns:
        AniTilkyConfig: The singleton configuration instance.
    """
    return AniTilkyConfig()
