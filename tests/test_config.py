"""Tests for configuration module."""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from eks_worker_ami.config import (
    BuildConfig,
    Settings,
    get_settings,
    load_var_file,
    print_settings_json,
)
from eks_worker_ami.errors import InvalidConfigurationError, MissingConfigurationError


class TestSettings:
    """Test Settings class."""

    def test_default_settings(self) -> None:
        """Settings should have sensible defaults."""
        settings = Settings()

        assert settings.root_dir == Path("/")
        assert settings.dry_run is False
        assert settings.use_sudo is True
        assert settings.log_level == "INFO"
        assert settings.imds_endpoint == "http://169.254.169.254"
        assert settings.download_timeout >= 10

    def test_settings_from_env(self) -> None:
        """Settings should be loadable from environment variables."""
        with patch.dict(
            os.environ,
            {
                "EKS_AMI_DRY_RUN": "true",
                "EKS_AMI_LOG_LEVEL": "DEBUG",
                "EKS_AMI_DOWNLOAD_TIMEOUT": "120",
                "EKS_AMI_ROOT_DIR": "/mnt/image",
            },
        ):
            settings = Settings()
            assert settings.dry_run is True
            assert settings.log_level == "DEBUG"
            assert settings.download_timeout == 120
            assert settings.root_dir == Path("/mnt/image")

    def test_host_path_under_root(self, tmp_path) -> None:
        """Absolute image paths should resolve under root_dir."""
        settings = Settings(root_dir=tmp_path)
        assert settings.host_path("/etc/eks/release") == tmp_path / "etc/eks/release"

    def test_host_path_default_root(self) -> None:
        """With the default root, host paths are unchanged."""
        settings = Settings()
        assert settings.host_path("/usr/bin") == Path("/usr/bin")


class TestBuildConfig:
    """Test BuildConfig construction."""

    def test_from_env(self, build_env) -> None:
        """All required variables should map onto fields."""
        config = BuildConfig.from_env(build_env)

        assert config.binary_bucket_name == "example-bucket"
        assert config.binary_bucket_region == "us-west-2"
        assert config.kubernetes_version == "1.21.2"
        assert config.kubernetes_build_date == "2021-07-31"
        assert config.cni_version == "v0.8.6"
        assert config.cni_plugin_version == "v0.8.7"
        assert config.docker_version == "5:19.03.13"

    def test_optional_defaults(self, build_env) -> None:
        """Optional variables should fall back to defaults."""
        config = BuildConfig.from_env(build_env)

        assert config.install_docker is True
        assert config.template_dir == Path("/tmp/worker")
        assert config.has_credentials is False
        assert config.build_user is None

    def test_install_docker_toggle(self, build_env) -> None:
        """Any INSTALL_DOCKER value other than 'true' disables the runtime."""
        build_env["INSTALL_DOCKER"] = "false"
        assert BuildConfig.from_env(build_env).install_docker is False

        build_env["INSTALL_DOCKER"] = "true"
        assert BuildConfig.from_env(build_env).install_docker is True

    def test_credentials_presence(self, build_env) -> None:
        """has_credentials should follow AWS_ACCESS_KEY_ID without storing it."""
        build_env["AWS_ACCESS_KEY_ID"] = "AKIAEXAMPLE"
        config = BuildConfig.from_env(build_env)

        assert config.has_credentials is True
        assert "AKIAEXAMPLE" not in config.model_dump_json()

    def test_empty_credentials(self, build_env) -> None:
        """An empty access key counts as absent."""
        build_env["AWS_ACCESS_KEY_ID"] = ""
        assert BuildConfig.from_env(build_env).has_credentials is False

    def test_kubernetes_minor_version(self, build_config) -> None:
        """Minor version should drop the patch component."""
        assert build_config.kubernetes_minor_version == "1.21"

    def test_frozen(self, build_config) -> None:
        """BuildConfig should be immutable."""
        with pytest.raises(ValidationError):
            build_config.kubernetes_version = "1.22.0"

    def test_missing_variable(self, build_env) -> None:
        """A missing required variable should raise."""
        del build_env["CNI_VERSION"]
        with pytest.raises(MissingConfigurationError) as exc_info:
            BuildConfig.from_env(build_env)
        assert exc_info.value.name == "CNI_VERSION"

    def test_var_file(self, tmp_path, build_env) -> None:
        """Variables should be loadable from a YAML file."""
        var_file = tmp_path / "vars.yaml"
        var_file.write_text(
            "\n".join(f'{k}: "{v}"' for k, v in build_env.items()) + "\n"
        )

        config = BuildConfig.from_env({}, var_file=var_file)
        assert config.binary_bucket_name == "example-bucket"
        assert config.docker_version == "5:19.03.13"

    def test_env_overrides_var_file(self, tmp_path, build_env) -> None:
        """Environment values should win over var file values."""
        var_file = tmp_path / "vars.yaml"
        var_file.write_text(
            "\n".join(f'{k}: "{v}"' for k, v in build_env.items()) + "\n"
        )

        config = BuildConfig.from_env(
            {"KUBERNETES_VERSION": "1.22.1"}, var_file=var_file
        )
        assert config.kubernetes_version == "1.22.1"


class TestLoadVarFile:
    """Test load_var_file function."""

    def test_empty_file(self, tmp_path) -> None:
        """An empty file should give no variables."""
        var_file = tmp_path / "empty.yaml"
        var_file.write_text("")
        assert load_var_file(var_file) == {}

    def test_not_a_mapping(self, tmp_path) -> None:
        """A YAML list should be rejected."""
        var_file = tmp_path / "list.yaml"
        var_file.write_text("- a\n- b\n")
        with pytest.raises(InvalidConfigurationError, match="must contain a mapping"):
            load_var_file(var_file)

    def test_malformed_yaml(self, tmp_path) -> None:
        """Unparseable YAML should be a configuration error."""
        var_file = tmp_path / "bad.yaml"
        var_file.write_text("KUBERNETES_VERSION: [1.21\n")
        with pytest.raises(InvalidConfigurationError, match="Invalid YAML") as exc_info:
            load_var_file(var_file)
        assert exc_info.value.code == "invalid_configuration"

    def test_missing_file(self, tmp_path) -> None:
        """A missing file should be a configuration error."""
        with pytest.raises(InvalidConfigurationError, match="Cannot read"):
            load_var_file(tmp_path / "absent.yaml")

    def test_values_are_strings(self, tmp_path) -> None:
        """Non-string YAML scalars should be converted to strings."""
        var_file = tmp_path / "vars.yaml"
        var_file.write_text("INSTALL_DOCKER: false\nEMPTY:\n")
        assert load_var_file(var_file) == {"INSTALL_DOCKER": "False", "EMPTY": ""}


class TestGetSettings:
    """Test get_settings function."""

    def test_get_settings_returns_settings(self) -> None:
        """get_settings should return a Settings instance."""
        assert isinstance(get_settings(), Settings)


class TestPrintSettingsJson:
    """Test print_settings_json function."""

    def test_print_settings_json(self) -> None:
        """print_settings_json should return valid JSON."""
        parsed = json.loads(print_settings_json(Settings()))

        assert "root_dir" in parsed
        assert "dry_run" in parsed
        assert "download_timeout" in parsed

    def test_print_settings_json_default(self) -> None:
        """print_settings_json without args should use default settings."""
        parsed = json.loads(print_settings_json())
        assert "log_level" in parsed
