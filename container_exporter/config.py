"""
Configuration for the Container Stats Exporter
"""
import os
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from container_exporter.errors import ConfigurationError

ROOT_PATH = '/'


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ('1', 'true', 'yes')


class ExporterConfig(BaseModel):
    """Runtime settings, populated from environment variables"""

    model_config = ConfigDict(validate_default=True)

    # HTTP server
    host: str = Field(default_factory=lambda: os.getenv('EXPORTER_HOST', '0.0.0.0'))
    port: int = Field(default_factory=lambda: int(os.getenv('EXPORTER_PORT', '8080')))

    # Collection loop
    poll_interval: float = Field(
        default_factory=lambda: float(os.getenv('POLL_INTERVAL', '5'))
    )

    # Docker API
    socket_path: Optional[str] = Field(
        default_factory=lambda: os.getenv('DOCKER_SOCKET_PATH') or None
    )
    api_timeout: float = Field(
        default_factory=lambda: float(os.getenv('DOCKER_API_TIMEOUT', '10'))
    )

    # Label schema for container and network series
    label_schema: Literal['compose', 'detailed'] = Field(
        default_factory=lambda: os.getenv('LABEL_SCHEMA', 'compose').lower()
    )
    track_info: bool = Field(
        default_factory=lambda: _env_bool('TRACK_CONTAINER_INFO', 'true')
    )

    # Filesystem capacity
    base_path: str = ROOT_PATH

    log_level: str = Field(default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO').upper())

    @field_validator('poll_interval')
    @classmethod
    def validate_poll_interval(cls, v):
        if v <= 0:
            raise ValueError("poll_interval must be positive")
        return v

    @field_validator('api_timeout')
    @classmethod
    def validate_api_timeout(cls, v):
        if v <= 0:
            raise ValueError("api_timeout must be positive")
        return v

    @field_validator('port')
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError(f"port out of range: {v}")
        return v


def validate_base_path(base_path: str) -> str:
    """
    Check that the base path is a readable directory.

    Raises:
        ConfigurationError: if the directory cannot be listed
    """
    try:
        os.listdir(base_path)
    except OSError as e:
        raise ConfigurationError(str(e), operation='read_dir', target=base_path) from e
    return base_path


def load_config(base_path: Optional[str] = None) -> ExporterConfig:
    """
    Build the exporter configuration from the environment and the
    optional base path argument.

    Args:
        base_path: Directory to scan for filesystem capacity metrics.
            Defaults to the root path.

    Returns:
        Validated ExporterConfig

    Raises:
        ConfigurationError: on an unreadable base path or invalid settings
    """
    path = validate_base_path(base_path) if base_path else ROOT_PATH
    try:
        return ExporterConfig(base_path=path)
    except (ValidationError, ValueError) as e:
        raise ConfigurationError(f"Configuration validation failed: {e}") from e
