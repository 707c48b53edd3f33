"""Configuration management for App Stager."""

from pathlib import Path
from typing import Any, Optional, Union

import yaml
from pydantic import Field, validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from app_stager.core.exceptions import ConfigurationError


UNPACK_BACKENDS = ("unzip", "zipfile")
LOG_FORMATS = ("json", "console")


class Settings(BaseSettings):
    """Stager configuration settings.

    Values are read from ``APP_STAGER_*`` environment variables or a ``.env``
    file; ``from_yaml`` layers a YAML file underneath explicit overrides.
    """

    model_config = SettingsConfigDict(
        env_prefix="APP_STAGER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pointer object coordinates
    bucket: Optional[str] = Field(None, description="Bucket holding the pointer document")
    key: Optional[str] = Field(None, description="Key of the pointer document")

    # AWS configuration
    aws_region: str = Field("us-east-1", description="Region for the S3 client")
    s3_endpoint_url: Optional[str] = Field(None, description="Custom S3-compatible endpoint")
    storage_connect_timeout_seconds: float = Field(10.0, description="S3 connect timeout")
    storage_read_timeout_seconds: float = Field(60.0, description="S3 read timeout")
    max_artifact_size_mb: int = Field(0, description="Maximum artifact size, 0 for unlimited")

    # Local staging
    work_dir: str = Field(".", description="Directory the app is unpacked into")
    max_unpack_attempts: int = Field(5, ge=1, description="Extraction attempts before rolling back")
    unpack_backend: str = Field("unzip", description="Extraction backend: unzip or zipfile")
    unzip_command: str = Field("unzip -o -q {zip_path}", description="Shell command used by the unzip backend")
    install_command: str = Field("npm install", description="Dependency install command, empty to skip")
    command_timeout_seconds: float = Field(300.0, description="Timeout for shell commands")
    rollback_on_download_failure: bool = Field(
        True,
        description="Restore the previous app when the artifact download fails",
    )

    # Observability
    log_level: str = Field("INFO")
    log_format: str = Field("json")
    metrics_enabled: bool = Field(True)
    metrics_file: Optional[str] = Field(None, description="Write Prometheus metrics here after a deployment")

    @validator("unpack_backend", pre=True)
    def check_unpack_backend(cls, v: str) -> str:
        """Normalise and validate the unpack backend name."""
        v = str(v).strip().lower()
        if v not in UNPACK_BACKENDS:
            raise ValueError(f"unpack_backend must be one of {', '.join(UNPACK_BACKENDS)}")
        return v

    @validator("log_format", pre=True)
    def check_log_format(cls, v: str) -> str:
        v = str(v).strip().lower()
        if v not in LOG_FORMATS:
            raise ValueError(f"log_format must be one of {', '.join(LOG_FORMATS)}")
        return v

    @property
    def max_artifact_size_bytes(self) -> Optional[int]:
        if self.max_artifact_size_mb <= 0:
            return None
        return self.max_artifact_size_mb * 1024 * 1024

    @classmethod
    def from_yaml(cls, path: Union[str, Path], **overrides: Any) -> "Settings":
        """Load settings from a YAML mapping, with ``overrides`` taking precedence.

        Keys set to ``None`` in ``overrides`` are ignored so unset CLI flags do
        not clobber file values.
        """
        config_path = Path(path)
        if not config_path.exists():
            raise ConfigurationError(f"Config file not found: {config_path}")

        with open(config_path) as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file must contain a mapping: {config_path}")

        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**data)
