"""Tests for the CLI.

These tests run commands through Typer's CliRunner with build variables
set in the environment, a temporary filesystem root and mocked HTTP.
"""

import hashlib
import json

import httpx
import pytest
import respx
from typer.testing import CliRunner

from eks_worker_ami import __version__
from eks_worker_ami.cli import app
from eks_worker_ami.steps import STEP_NAMES

runner = CliRunner()

BUILD_ENV = {
    "BINARY_BUCKET_NAME": "example-bucket",
    "BINARY_BUCKET_REGION": "us-west-2",
    "KUBERNETES_VERSION": "1.21.2",
    "KUBERNETES_BUILD_DATE": "2021-07-31",
    "CNI_VERSION": "v0.8.6",
    "CNI_PLUGIN_VERSION": "v0.8.7",
    "DOCKER_VERSION": "5:19.03.13",
}


@pytest.fixture
def packer_env(monkeypatch):
    """Environment as Packer sets it, without AWS credentials."""
    for key, value in BUILD_ENV.items():
        monkeypatch.setenv(key, value)
    monkeypatch.delenv("AWS_ACCESS_KEY_ID", raising=False)
    monkeypatch.setenv("EKS_AMI_USE_SUDO", "false")
    # keep stderr quiet so JSON on stdout parses on every click version
    monkeypatch.setenv("EKS_AMI_LOG_LEVEL", "CRITICAL")


class TestCLIHelp:
    """Test CLI help and version commands."""

    def test_help_returns_zero(self) -> None:
        """CLI --help should return exit code 0."""
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        assert "EKS worker AMI provisioner" in result.stdout

    def test_version_flag(self) -> None:
        """CLI --version should print version and exit 0."""
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_short_version_flag(self) -> None:
        """CLI -V should print version and exit 0."""
        result = runner.invoke(app, ["-V"])
        assert result.exit_code == 0
        assert __version__ in result.stdout


class TestCLIConfig:
    """Test CLI config and steps commands."""

    def test_config_command(self) -> None:
        """CLI config should show settings sections."""
        result = runner.invoke(app, ["config"])
        assert result.exit_code == 0
        assert "Root directory" in result.stdout
        assert "Dry run" in result.stdout
        assert "Download timeout" in result.stdout

    def test_config_json(self, monkeypatch) -> None:
        """CLI config --json should output JSON."""
        monkeypatch.setenv("EKS_AMI_DRY_RUN", "true")

        result = runner.invoke(app, ["config", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["dry_run"] is True
        assert "root_dir" in data

    def test_steps_command(self) -> None:
        """CLI steps should list every step in order."""
        result = runner.invoke(app, ["steps"])
        assert result.exit_code == 0
        positions = [result.stdout.index(name) for name in STEP_NAMES]
        assert positions == sorted(positions)


class TestCLIValidate:
    """Test CLI validate command."""

    def test_valid(self, packer_env) -> None:
        """validate should succeed with every variable set."""
        result = runner.invoke(app, ["validate", "--machine", "aarch64"])
        assert result.exit_code == 0
        assert "arm64" in result.stdout
        assert "1.21.2 (minor 1.21)" in result.stdout

    def test_missing_var_file(self, packer_env, tmp_path) -> None:
        """A missing var file should exit 1 with a diagnostic."""
        result = runner.invoke(
            app,
            ["validate", "--var-file", str(tmp_path / "absent.yaml"), "--machine", "x86_64"],
        )
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Cannot read variable file" in result.output

    def test_malformed_var_file(self, packer_env, tmp_path) -> None:
        """Unparseable YAML should exit 1 with a diagnostic."""
        var_file = tmp_path / "bad.yaml"
        var_file.write_text("DOCKER_VERSION: [5\n")

        result = runner.invoke(
            app, ["validate", "--var-file", str(var_file), "--machine", "x86_64"]
        )

        assert result.exit_code == 1
        assert isinstance(result.exception, SystemExit)

    def test_missing_variable(self, packer_env, monkeypatch) -> None:
        """validate should name the missing variable and exit 1."""
        monkeypatch.delenv("KUBERNETES_VERSION")

        result = runner.invoke(app, ["validate", "--machine", "x86_64"])

        assert result.exit_code == 1
        assert "KUBERNETES_VERSION" in result.output

    def test_unsupported_machine(self, packer_env) -> None:
        """validate should reject unknown architectures."""
        result = runner.invoke(app, ["validate", "--machine", "ppc64le"])
        assert result.exit_code == 1
        assert "ppc64le" in result.output

    def test_var_file(self, packer_env, monkeypatch, tmp_path) -> None:
        """Variables missing from the environment can come from a var file."""
        monkeypatch.delenv("DOCKER_VERSION")
        var_file = tmp_path / "vars.yaml"
        var_file.write_text('DOCKER_VERSION: "5:19.03.13"\n')

        result = runner.invoke(
            app, ["validate", "--var-file", str(var_file), "--machine", "x86_64"]
        )

        assert result.exit_code == 0


class TestCLIUrls:
    """Test CLI urls command."""

    def test_anonymous_urls(self, packer_env) -> None:
        """urls should show public HTTPS locations without credentials."""
        result = runner.invoke(app, ["urls", "--machine", "x86_64", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["aws-iam-authenticator"] == (
            "https://example-bucket.s3.us-west-2.amazonaws.com"
            "/1.21.2/2021-07-31/bin/linux/amd64/aws-iam-authenticator"
        )
        assert data["cni-amd64-v0.8.6.tgz"] == (
            "https://github.com/containernetworking/cni/releases/download"
            "/v0.8.6/cni-amd64-v0.8.6.tgz"
        )
        assert "cni-plugins-amd64-v0.8.7.tgz" in data

    def test_authenticated_urls(self, packer_env, monkeypatch) -> None:
        """urls should show s3:// locations with credentials."""
        monkeypatch.setenv("AWS_ACCESS_KEY_ID", "AKIAEXAMPLE")

        result = runner.invoke(app, ["urls", "--machine", "aarch64", "--json"])

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["aws-iam-authenticator"] == (
            "s3://example-bucket/1.21.2/2021-07-31/bin/linux/arm64/aws-iam-authenticator"
        )


class TestCLIProvision:
    """Test CLI provision command."""

    @respx.mock
    def test_provision_binaries(self, packer_env, monkeypatch, tmp_path) -> None:
        """provision --only binaries should install the verified binary."""
        monkeypatch.setattr("eks_worker_ami.arch.platform.machine", lambda: "x86_64")
        base = (
            "https://example-bucket.s3.us-west-2.amazonaws.com"
            "/1.21.2/2021-07-31/bin/linux/amd64"
        )
        content = b"aws-iam-authenticator binary"
        respx.get(f"{base}/aws-iam-authenticator").mock(
            return_value=httpx.Response(200, content=content)
        )
        respx.get(f"{base}/aws-iam-authenticator.sha256").mock(
            return_value=httpx.Response(
                200, text=f"{hashlib.sha256(content).hexdigest()}  aws-iam-authenticator\n"
            )
        )

        result = runner.invoke(
            app,
            [
                "provision",
                "--only",
                "binaries",
                "--root-dir",
                str(tmp_path),
                "--dry-run",
                "--json",
            ],
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["success"] is True
        statuses = {s["name"]: s["status"] for s in data["steps"]}
        assert statuses["binaries"] == "succeeded"
        assert statuses["cleanup"] == "skipped"
        assert (tmp_path / "usr" / "bin" / "aws-iam-authenticator").read_bytes() == content

    @respx.mock
    def test_provision_failure_exits_nonzero(self, packer_env, monkeypatch, tmp_path) -> None:
        """A failing step should exit 1 and report the error code."""
        monkeypatch.setattr("eks_worker_ami.arch.platform.machine", lambda: "x86_64")
        respx.get(url__regex=r"https://example-bucket\.s3\..*").mock(
            return_value=httpx.Response(404)
        )

        result = runner.invoke(
            app,
            ["provision", "--only", "binaries", "--root-dir", str(tmp_path), "-n", "--json"],
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["success"] is False
        assert data["error_code"] == "http_error"

    def test_provision_missing_variable(self, packer_env, monkeypatch, tmp_path) -> None:
        """A missing variable should abort before any step runs."""
        monkeypatch.delenv("BINARY_BUCKET_NAME")

        result = runner.invoke(
            app, ["provision", "--root-dir", str(tmp_path), "-n", "--json"]
        )

        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["error_code"] == "missing_configuration"
        assert "BINARY_BUCKET_NAME" in data["error_message"]

    def test_provision_unknown_step(self, packer_env, tmp_path) -> None:
        """Unknown step names should exit 1."""
        result = runner.invoke(
            app, ["provision", "--only", "bogus", "--root-dir", str(tmp_path), "-n"]
        )
        assert result.exit_code == 1
        assert "bogus" in result.output
