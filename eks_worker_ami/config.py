"""Configuration for eks_worker_ami.

Two kinds of configuration exist:

- Settings: how the tool itself behaves (filesystem root, timeouts, log
  level). Loaded with pydantic-settings from EKS_AMI_* variables and .env.
- BuildConfig: what gets installed (Kubernetes version, binary bucket,
  runtime versions). Supplied by Packer as plain environment variables,
  validated once at process start and never mutated afterwards.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from eks_worker_ami.errors import InvalidConfigurationError
from eks_worker_ami.validation import validate_required

logger = logging.getLogger(__name__)

DEFAULT_TEMPLATE_DIR = "/tmp/worker"
DEFAULT_IMDS_ENDPOINT = "http://169.254.169.254"


class Settings(BaseSettings):
    """Tool settings.

    Settings are loaded from environment variables with the EKS_AMI_ prefix.
    CLI flags can override these at runtime.
    """

    model_config = SettingsConfigDict(
        env_prefix="EKS_AMI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Paths
    root_dir: Path = Field(
        default=Path("/"),
        description="Filesystem root that absolute output paths are resolved under",
    )

    # Operational modes
    dry_run: bool = Field(
        default=False,
        description="Log external commands instead of running them",
    )
    use_sudo: bool = Field(
        default=True,
        description="Prefix external commands with sudo when not running as root",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    # Endpoints
    imds_endpoint: str = Field(
        default=DEFAULT_IMDS_ENDPOINT,
        description="Instance metadata service base URL",
    )

    # Timeouts (in seconds)
    download_timeout: int = Field(
        default=600,
        ge=10,
        description="Timeout for artifact downloads",
    )
    metadata_timeout: int = Field(
        default=5,
        ge=1,
        description="Timeout for instance metadata requests",
    )
    cloud_init_timeout: int = Field(
        default=900,
        ge=60,
        description="Timeout for waiting on cloud-init to finish",
    )

    def host_path(self, path: str | Path) -> Path:
        """Resolve an absolute host path under root_dir.

        Args:
            path: Absolute path as it appears on the image.

        Returns:
            Path under root_dir.
        """
        path = Path(path)
        if path.is_absolute():
            path = path.relative_to(path.anchor)
        return self.root_dir / path


class BuildConfig(BaseModel):
    """Immutable build configuration supplied by Packer."""

    model_config = ConfigDict(frozen=True)

    binary_bucket_name: str
    binary_bucket_region: str
    docker_version: str
    cni_version: str
    cni_plugin_version: str
    kubernetes_version: str
    kubernetes_build_date: str
    install_docker: bool = True
    template_dir: Path = Path(DEFAULT_TEMPLATE_DIR)
    has_credentials: bool = False
    build_user: str | None = None

    @property
    def kubernetes_minor_version(self) -> str:
        """Kubernetes version without its patch component (1.21.2 -> 1.21)."""
        return self.kubernetes_version.rsplit(".", 1)[0]

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        var_file: Path | None = None,
    ) -> BuildConfig:
        """Build a BuildConfig from environment variables.

        Args:
            environ: Environment mapping; defaults to os.environ.
            var_file: Optional YAML file of build variables. Environment
                values take precedence over file values.

        Returns:
            Validated BuildConfig.

        Raises:
            MissingConfigurationError: If a required variable is missing.
            InvalidConfigurationError: If the variable file is unusable.
        """
        if environ is None:
            environ = os.environ

        merged: dict[str, str] = {}
        if var_file is not None:
            merged.update(load_var_file(var_file))
        merged.update(environ)

        values = validate_required(merged)

        return cls(
            binary_bucket_name=values["BINARY_BUCKET_NAME"],
            binary_bucket_region=values["BINARY_BUCKET_REGION"],
            docker_version=values["DOCKER_VERSION"],
            cni_version=values["CNI_VERSION"],
            cni_plugin_version=values["CNI_PLUGIN_VERSION"],
            kubernetes_version=values["KUBERNETES_VERSION"],
            kubernetes_build_date=values["KUBERNETES_BUILD_DATE"],
            install_docker=merged.get("INSTALL_DOCKER", "true") == "true",
            template_dir=Path(merged.get("TEMPLATE_DIR") or DEFAULT_TEMPLATE_DIR),
            has_credentials=bool(merged.get("AWS_ACCESS_KEY_ID")),
            build_user=merged.get("USER") or None,
        )


def load_var_file(path: Path) -> dict[str, str]:
    """Load build variables from a YAML file.

    Args:
        path: Path to a YAML mapping of VARIABLE: value.

    Returns:
        Mapping of variable name to string value.

    Raises:
        InvalidConfigurationError: If the file cannot be read, is not valid
            YAML, or is not a mapping.
    """
    try:
        with path.open(encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as e:
        raise InvalidConfigurationError(f"Cannot read variable file {path}: {e}") from e
    except (yaml.YAMLError, UnicodeDecodeError) as e:
        raise InvalidConfigurationError(f"Invalid YAML in variable file {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise InvalidConfigurationError(f"Variable file {path} must contain a mapping")

    logger.debug("Loaded %d build variables from %s", len(data), path)
    return {str(k): "" if v is None else str(v) for k, v in data.items()}


def get_settings() -> Settings:
    """Get the application settings.

    Returns:
        Settings instance loaded from environment.
    """
    return Settings()


def print_settings_json(settings: Settings | None = None) -> str:
    """Render effective settings as JSON.

    Args:
        settings: Optional settings instance; uses default if not provided.

    Returns:
        JSON string of effective settings.
    """
    if settings is None:
        settings = get_settings()
    return settings.model_dump_json(indent=2)


__all__ = [
    "BuildConfig",
    "Settings",
    "get_settings",
    "load_var_file",
    "print_settings_json",
]
