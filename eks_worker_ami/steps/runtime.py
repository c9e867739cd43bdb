"""Container runtime and log rotation steps."""

from __future__ import annotations

import logging

import httpx

from eks_worker_ami.errors import FetchError, InstallError
from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.steps.files import ensure_dirs, move_file

logger = logging.getLogger(__name__)

DOCKER_APT_BASE = "https://download.docker.com/linux/ubuntu"
DOCKER_GPG_URL = f"{DOCKER_APT_BASE}/gpg"
DOCKER_KEY_FINGERPRINT = "0EBFCD88"

OS_RELEASE = "/etc/os-release"

# Timeout for the apt key download (seconds)
KEY_TIMEOUT = 30


def docker_packages(version: str) -> list[str]:
    """Return the pinned runtime packages for a Docker version."""
    return [
        "containerd.io",
        f"docker-ce={version}",
        f"docker-ce-cli={version}",
    ]


def docker_repository(arch: str, codename: str) -> str:
    """Return the apt source line for the Docker repository."""
    return f"deb [arch={arch}] {DOCKER_APT_BASE} {codename} stable"


def parse_os_release_codename(text: str) -> str | None:
    """Return VERSION_CODENAME from os-release content, if present."""
    for line in text.splitlines():
        key, _, value = line.partition("=")
        if key.strip() == "VERSION_CODENAME":
            return value.strip().strip('"') or None
    return None


def distro_codename(ctx: StepContext) -> str:
    """Return the Ubuntu release codename of the image."""
    os_release = ctx.host_path(OS_RELEASE)
    if os_release.is_file():
        codename = parse_os_release_codename(os_release.read_text(encoding="utf-8"))
        if codename:
            return codename

    codename = ctx.runner.output(["lsb_release", "-cs"])
    if codename:
        return codename
    if ctx.settings.dry_run:
        return "unknown"
    raise InstallError("Unable to determine the distribution codename")


def fetch_docker_key(client: httpx.Client, url: str = DOCKER_GPG_URL) -> str:
    """Download the Docker apt signing key.

    Raises:
        FetchError: If the key cannot be downloaded.
    """
    logger.debug("Fetching Docker apt key from %s", url)

    try:
        response = client.get(url, timeout=KEY_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
        return response.text

    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"HTTP error fetching Docker apt key: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise FetchError(f"Timeout fetching Docker apt key from {url}", code="timeout") from e
    except httpx.RequestError as e:
        raise FetchError(
            f"Network error fetching Docker apt key: {e}",
            code="network_error",
        ) from e


def install_container_runtime(ctx: StepContext) -> str:
    """Install pinned Docker CE and containerd and enable the daemon."""
    runner = ctx.runner
    version = ctx.config.docker_version

    key = fetch_docker_key(ctx.http_client)
    runner.run(["apt-key", "add", "-"], input=key)
    runner.run(["apt-key", "fingerprint", DOCKER_KEY_FINGERPRINT])

    repository = docker_repository(ctx.arch.value, distro_codename(ctx))
    runner.run(["add-apt-repository", "-y", repository])

    runner.run(["apt-get", "update", "-y"])
    runner.run(["apt-get", "install", "-y", *docker_packages(version)])

    if ctx.config.build_user:
        runner.run(["usermod", "-aG", "docker", ctx.config.build_user])

    ensure_dirs(ctx.host_path("/etc/docker"))
    move_file(
        ctx.template("docker-daemon.json"),
        ctx.host_path("/etc/docker/daemon.json"),
        root_owned=True,
    )

    runner.run(["systemctl", "daemon-reload"])
    runner.run(["systemctl", "enable", "docker"])
    return f"docker-ce {version} installed"


def install_log_rotation(ctx: StepContext) -> str:
    """Rotate kube-proxy logs and keep the journal on disk.

    kubelet logs to journald, which rotates and caps itself.
    """
    move_file(
        ctx.template("logrotate-kube-proxy"),
        ctx.host_path("/etc/logrotate.d/kube-proxy"),
        root_owned=True,
    )
    ensure_dirs(ctx.host_path("/var/log/journal"))
    return "kube-proxy log rotation installed"


__all__ = [
    "DOCKER_GPG_URL",
    "DOCKER_KEY_FINGERPRINT",
    "distro_codename",
    "docker_packages",
    "docker_repository",
    "fetch_docker_key",
    "install_container_runtime",
    "install_log_rotation",
    "parse_os_release_codename",
]
