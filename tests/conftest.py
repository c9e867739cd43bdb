"""Shared fixtures for eks_worker_ami tests."""

from pathlib import Path

import httpx
import pytest

from eks_worker_ami.config import BuildConfig, Settings
from eks_worker_ami.shell import CommandRunner
from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.types import Architecture

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
def build_env() -> dict[str, str]:
    """Complete set of required build variables, no credentials."""
    return dict(BUILD_ENV)


@pytest.fixture
def build_config(build_env) -> BuildConfig:
    """BuildConfig from the example build variables."""
    return BuildConfig.from_env(build_env)


@pytest.fixture
def root_dir(tmp_path) -> Path:
    """Empty filesystem root to provision into."""
    root = tmp_path / "root"
    root.mkdir()
    return root


@pytest.fixture
def settings(root_dir) -> Settings:
    """Dry-run settings rooted at root_dir."""
    return Settings(root_dir=root_dir, dry_run=True, use_sudo=False)


@pytest.fixture
def runner() -> CommandRunner:
    """Dry-run command runner that records commands."""
    return CommandRunner(use_sudo=False, dry_run=True)


@pytest.fixture
def http_client():
    """HTTPX client closed after the test."""
    with httpx.Client() as client:
        yield client


@pytest.fixture
def ctx(build_config, settings, runner, http_client) -> StepContext:
    """StepContext for an amd64 host under root_dir."""
    return StepContext(
        config=build_config,
        settings=settings,
        arch=Architecture.AMD64,
        runner=runner,
        http_client=http_client,
    )


@pytest.fixture
def template_dir(root_dir) -> Path:
    """Staged template directory as Packer uploads it."""
    path = root_dir / "tmp" / "worker"
    path.mkdir(parents=True)
    return path
