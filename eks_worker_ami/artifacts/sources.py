"""Artifact sources.

An ArtifactSource retrieves a named file from some base location into a
local path. Two variants exist:

- HttpSource: anonymous HTTP(S) download with httpx. Works for public
  buckets and GitHub release assets.
- ObjectStoreSource: authenticated S3 download with boto3. Works for
  private buckets.

The source for the binary list is selected once per run from credential
presence, so every binary in a run travels the same path.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

import boto3
import httpx
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from eks_worker_ami.artifacts.urls import binary_key_prefix, s3_url_base
from eks_worker_ami.config import BuildConfig
from eks_worker_ami.errors import FetchError, InstallError
from eks_worker_ami.types import Architecture

logger = logging.getLogger(__name__)

# Timeout for downloads (seconds)
DOWNLOAD_TIMEOUT = 600

# Chunk size for downloads (bytes)
DOWNLOAD_CHUNK_SIZE = 64 * 1024  # 64 KB


class ArtifactSource(ABC):
    """A base location artifacts can be fetched from."""

    kind: str = "abstract"

    @abstractmethod
    def location(self, name: str) -> str:
        """Return the full location of a named artifact."""

    @abstractmethod
    def fetch(self, name: str, dest_path: Path) -> int:
        """Fetch a named artifact to a local path.

        Args:
            name: Artifact file name relative to the source base.
            dest_path: Local path to write to.

        Returns:
            Number of bytes written.

        Raises:
            FetchError: If retrieval fails.
            InstallError: If the local file cannot be written.
        """


class HttpSource(ArtifactSource):
    """Anonymous HTTP source."""

    kind = "http"

    def __init__(
        self,
        client: httpx.Client,
        base_url: str,
        timeout: float = DOWNLOAD_TIMEOUT,
        chunk_size: int = DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size

    def location(self, name: str) -> str:
        return f"{self.base_url}/{name}"

    def fetch(self, name: str, dest_path: Path) -> int:
        url = self.location(name)
        logger.info("Downloading %s to %s", url, dest_path)

        try:
            with self.client.stream(
                "GET", url, timeout=self.timeout, follow_redirects=True
            ) as response:
                response.raise_for_status()

                total_bytes = 0
                with dest_path.open("wb") as f:
                    for chunk in response.iter_bytes(self.chunk_size):
                        f.write(chunk)
                        total_bytes += len(chunk)

        except httpx.HTTPStatusError as e:
            raise FetchError(
                f"HTTP error downloading {url}: "
                f"{e.response.status_code} {e.response.reason_phrase}",
                code="http_error",
            ) from e
        except httpx.TimeoutException as e:
            raise FetchError(f"Timeout downloading {url}", code="timeout") from e
        except httpx.RequestError as e:
            raise FetchError(
                f"Network error downloading {url}: {e}",
                code="network_error",
            ) from e
        except OSError as e:
            raise InstallError(f"Cannot write {dest_path}: {e}") from e

        logger.debug("Downloaded %s (%d bytes)", name, total_bytes)
        return total_bytes


class ObjectStoreSource(ArtifactSource):
    """Authenticated S3 source."""

    kind = "s3"

    def __init__(self, client: Any, bucket: str, prefix: str) -> None:
        self.client = client
        self.bucket = bucket
        self.prefix = prefix.strip("/")

    def _key(self, name: str) -> str:
        if not self.prefix:
            return name
        return f"{self.prefix}/{name}"

    def location(self, name: str) -> str:
        return f"s3://{self.bucket}/{self._key(name)}"

    def fetch(self, name: str, dest_path: Path) -> int:
        key = self._key(name)
        logger.info("Copying s3://%s/%s to %s", self.bucket, key, dest_path)

        try:
            self.client.download_file(self.bucket, key, str(dest_path))
        except ClientError as e:
            error_code = e.response.get("Error", {}).get("Code", "unknown")
            raise FetchError(
                f"S3 error copying s3://{self.bucket}/{key}: {error_code}",
                code="s3_error",
            ) from e
        except BotoCoreError as e:
            raise FetchError(
                f"S3 error copying s3://{self.bucket}/{key}: {e}",
                code="s3_error",
            ) from e
        except Boto3Error as e:
            raise FetchError(
                f"S3 transfer failed for s3://{self.bucket}/{key}: {e}",
                code="s3_error",
            ) from e
        except OSError as e:
            raise InstallError(f"Cannot write {dest_path}: {e}") from e

        return dest_path.stat().st_size


def create_s3_client(region: str) -> Any:
    """Create an S3 client pinned to a region."""
    return boto3.client("s3", region_name=region)


def select_binary_source(
    config: BuildConfig,
    arch: Architecture,
    http_client: httpx.Client,
    s3_client_factory: Callable[[str], Any] = create_s3_client,
    timeout: float = DOWNLOAD_TIMEOUT,
) -> ArtifactSource:
    """Select the source for the binary list.

    Args:
        config: Build configuration.
        arch: Target architecture.
        http_client: HTTPX client for the anonymous path.
        s3_client_factory: Factory for the authenticated path.
        timeout: Download timeout for the anonymous path.

    Returns:
        ObjectStoreSource when credentials are present, else HttpSource.
    """
    logger.info("Downloading binaries from: s3://%s", config.binary_bucket_name)

    if config.has_credentials:
        logger.info("AWS credentials present - using S3 client to copy binaries")
        return ObjectStoreSource(
            s3_client_factory(config.binary_bucket_region),
            bucket=config.binary_bucket_name,
            prefix=binary_key_prefix(config, arch),
        )

    logger.info(
        "AWS credentials missing - using HTTPS to fetch binaries. "
        "Note: this won't work for a private bucket."
    )
    return HttpSource(http_client, s3_url_base(config, arch), timeout=timeout)


__all__ = [
    "ArtifactSource",
    "DOWNLOAD_CHUNK_SIZE",
    "DOWNLOAD_TIMEOUT",
    "HttpSource",
    "ObjectStoreSource",
    "create_s3_client",
    "select_binary_source",
]
