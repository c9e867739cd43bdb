"""EKS bootstrap files and build provenance record."""

from __future__ import annotations

import logging
import platform
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from eks_worker_ami.errors import FetchError
from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.steps.files import ensure_dirs, move_file, set_root_owner, write_file

logger = logging.getLogger(__name__)

EKS_DIR = "/etc/eks"
RELEASE_FILE = f"{EKS_DIR}/release"

IMDS_TOKEN_PATH = "/latest/api/token"
IMDS_AMI_ID_PATH = "/latest/meta-data/ami-id"
IMDS_TOKEN_TTL_SECONDS = 21600

# Same layout as date(1) output
BUILD_TIME_FORMAT = "%a %b %d %H:%M:%S %Z %Y"


@dataclass(frozen=True)
class ReleaseMetadata:
    """Provenance of a built image."""

    base_ami_id: str
    build_time: str
    build_kernel: str
    arch: str

    def render(self) -> str:
        """Render as a shell-sourceable KEY="value" file."""
        fields = {
            "BASE_AMI_ID": self.base_ami_id,
            "BUILD_TIME": self.build_time,
            "BUILD_KERNEL": self.build_kernel,
            "ARCH": self.arch,
        }
        lines = []
        for key, value in fields.items():
            escaped = value.replace("\\", "\\\\").replace('"', '\\"')
            lines.append(f'{key}="{escaped}"')
        return "\n".join(lines) + "\n"


def fetch_base_ami_id(
    client: httpx.Client,
    endpoint: str,
    timeout: float = 5,
) -> str:
    """Read the AMI id of the running instance from the metadata service.

    Args:
        client: HTTPX client instance.
        endpoint: Metadata service base URL.
        timeout: Request timeout in seconds.

    Returns:
        The base AMI id.

    Raises:
        FetchError: If the metadata service cannot be queried.
    """
    base = endpoint.rstrip("/")

    try:
        token_response = client.put(
            f"{base}{IMDS_TOKEN_PATH}",
            headers={"X-aws-ec2-metadata-token-ttl-seconds": str(IMDS_TOKEN_TTL_SECONDS)},
            timeout=timeout,
        )
        token_response.raise_for_status()

        response = client.get(
            f"{base}{IMDS_AMI_ID_PATH}",
            headers={"X-aws-ec2-metadata-token": token_response.text},
            timeout=timeout,
        )
        response.raise_for_status()
        return response.text.strip()

    except httpx.HTTPStatusError as e:
        raise FetchError(
            f"HTTP error reading instance metadata: {e.response.status_code}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise FetchError("Timeout reading instance metadata", code="timeout") from e
    except httpx.RequestError as e:
        raise FetchError(
            f"Network error reading instance metadata: {e}",
            code="network_error",
        ) from e


def collect_release_metadata(
    ctx: StepContext,
    now: datetime | None = None,
) -> ReleaseMetadata:
    """Gather provenance for the image being built."""
    if now is None:
        now = datetime.now(timezone.utc)

    return ReleaseMetadata(
        base_ami_id=fetch_base_ami_id(
            ctx.http_client,
            ctx.settings.imds_endpoint,
            timeout=ctx.settings.metadata_timeout,
        ),
        build_time=now.strftime(BUILD_TIME_FORMAT),
        build_kernel=platform.release(),
        arch=platform.machine(),
    )


def install_eks_bootstrap(ctx: StepContext) -> str:
    """Stage the bootstrap script and max-pods table under /etc/eks."""
    eks_dir = ctx.host_path(EKS_DIR)
    ensure_dirs(eks_dir)
    move_file(ctx.template("eni-max-pods.txt"), eks_dir / "eni-max-pods.txt")
    move_file(ctx.template("bootstrap.sh"), eks_dir / "bootstrap.sh", mode=0o755)
    return "bootstrap.sh and eni-max-pods.txt staged"


def write_release_metadata(ctx: StepContext) -> str:
    """Write the provenance record and hand /etc/eks to root."""
    metadata = collect_release_metadata(ctx)
    write_file(ctx.host_path(RELEASE_FILE), metadata.render())
    set_root_owner(ctx.host_path(EKS_DIR), recursive=True)
    logger.info("Recorded base AMI %s", metadata.base_ami_id)
    return f"base AMI {metadata.base_ami_id}"


__all__ = [
    "EKS_DIR",
    "RELEASE_FILE",
    "ReleaseMetadata",
    "collect_release_metadata",
    "fetch_base_ami_id",
    "install_eks_bootstrap",
    "write_release_metadata",
]
