"""Verified artifact fetch and install.

This module handles:
- Fetching an artifact and its checksum sibling from an ArtifactSource
- Verifying the artifact digest against the sibling
- Installing binaries (chmod +x, atomic move into a directory)
- Extracting plugin bundles into a directory

Nothing reaches the destination until verification passes, and temporary
downloads are removed whether the install succeeds or not.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
from dataclasses import dataclass
from pathlib import Path

from eks_worker_ami.artifacts.sources import ArtifactSource
from eks_worker_ami.errors import InstallError, IntegrityError
from eks_worker_ami.types import ArtifactKind, ChecksumAlgorithm

logger = logging.getLogger(__name__)

# Chunk size for hashing (bytes)
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB

BINARY_MODE = 0o755


@dataclass(frozen=True)
class ArtifactSpec:
    """An artifact to fetch, verify and install.

    Attributes:
        name: File name relative to the source base.
        destination: Directory the artifact is installed into.
        algorithm: Digest algorithm of the checksum sibling.
        kind: Whether to install as a binary or extract as a bundle.
    """

    name: str
    destination: Path
    algorithm: ChecksumAlgorithm = ChecksumAlgorithm.SHA256
    kind: ArtifactKind = ArtifactKind.BINARY

    @property
    def checksum_name(self) -> str:
        """Name of the checksum sibling file."""
        return f"{self.name}.{self.algorithm.value}"


@dataclass
class FetchResult:
    """Result of a verified fetch."""

    name: str
    location: str
    digest: str
    size_bytes: int
    installed_path: Path


def parse_checksum_file(content: str) -> str | None:
    """Extract the digest from a sha*sum style checksum file.

    Args:
        content: Checksum file content ("<digest>  <filename>" or bare digest).

    Returns:
        Lowercase digest, or None if the file holds none.
    """
    for line in content.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        return line.split(maxsplit=1)[0].lstrip("\\").lower()
    return None


def compute_file_digest(
    file_path: Path,
    algorithm: ChecksumAlgorithm = ChecksumAlgorithm.SHA256,
    chunk_size: int = HASH_CHUNK_SIZE,
) -> str:
    """Compute the digest of a file.

    Args:
        file_path: Path to the file.
        algorithm: Digest algorithm.
        chunk_size: Size of chunks to read.

    Returns:
        Hex digest.
    """
    digest = hashlib.new(algorithm.value)
    with file_path.open("rb") as f:
        while chunk := f.read(chunk_size):
            digest.update(chunk)
    return digest.hexdigest()


def verify_file(
    file_path: Path,
    checksum_path: Path,
    algorithm: ChecksumAlgorithm,
) -> str:
    """Verify a file against its checksum sibling.

    Args:
        file_path: Path to the downloaded artifact.
        checksum_path: Path to the downloaded checksum file.
        algorithm: Digest algorithm.

    Returns:
        The verified digest.

    Raises:
        IntegrityError: If the checksum file is unreadable, empty, or the
            digests differ.
    """
    try:
        content = checksum_path.read_text(encoding="utf-8")
    except (UnicodeDecodeError, OSError) as e:
        raise IntegrityError(f"Unreadable checksum file {checksum_path.name}: {e}") from e

    expected = parse_checksum_file(content)
    if not expected:
        raise IntegrityError(f"No checksum found in {checksum_path.name}")

    computed = compute_file_digest(file_path, algorithm)
    if computed != expected:
        raise IntegrityError(
            f"Checksum mismatch for {file_path.name}: "
            f"expected {expected}, got {computed}"
        )

    logger.info("%s: OK (%s %s...)", file_path.name, algorithm.value, computed[:16])
    return computed


def install_binary(file_path: Path, dest_dir: Path, mode: int = BINARY_MODE) -> Path:
    """Mark a verified file executable and move it into a directory.

    Any existing file with the same name is replaced atomically.

    Args:
        file_path: Verified file.
        dest_dir: Destination directory.
        mode: File mode to apply.

    Returns:
        Installed path.

    Raises:
        InstallError: If a filesystem operation fails.
    """
    final_path = dest_dir / file_path.name
    partial_path = dest_dir / f".{file_path.name}.partial"

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        file_path.chmod(mode)
        shutil.move(str(file_path), str(partial_path))
        os.replace(partial_path, final_path)
    except OSError as e:
        if partial_path.exists():
            partial_path.unlink()
        raise InstallError(f"Failed to install {file_path.name} to {dest_dir}: {e}") from e

    logger.info("Installed %s", final_path)
    return final_path


def extract_bundle(archive_path: Path, dest_dir: Path) -> Path:
    """Extract a verified .tgz bundle into a directory.

    Args:
        archive_path: Verified archive.
        dest_dir: Destination directory.

    Returns:
        The destination directory.

    Raises:
        InstallError: If extraction fails or a member escapes dest_dir.
    """
    logger.info("Extracting %s to %s", archive_path.name, dest_dir)

    try:
        dest_dir.mkdir(parents=True, exist_ok=True)
        with tarfile.open(archive_path, "r:gz") as tar:
            for member in tar.getmembers():
                member_path = Path(member.name)
                if member_path.is_absolute() or ".." in member_path.parts:
                    raise InstallError(
                        f"Refusing to extract {member.name}: path traversal detected",
                        code="path_traversal",
                    )
            tar.extractall(dest_dir, filter="data")

    except tarfile.TarError as e:
        raise InstallError(f"Failed to extract {archive_path.name}: {e}") from e
    except OSError as e:
        raise InstallError(
            f"OS error extracting {archive_path.name}: {e}"
        ) from e

    return dest_dir


def fetch_artifact(
    spec: ArtifactSpec,
    source: ArtifactSource,
    work_dir: Path | None = None,
) -> FetchResult:
    """Fetch, verify and install one artifact.

    Args:
        spec: Artifact to fetch.
        source: Source to fetch the artifact and its checksum from.
        work_dir: Directory for temporary downloads (system default if None).

    Returns:
        FetchResult describing the installed artifact.

    Raises:
        FetchError: If the artifact or checksum cannot be retrieved.
        IntegrityError: If verification fails.
        InstallError: If installation fails.
    """
    if work_dir is not None:
        work_dir.mkdir(parents=True, exist_ok=True)

    with tempfile.TemporaryDirectory(prefix="eks-ami-", dir=work_dir) as tmp:
        tmp_dir = Path(tmp)
        artifact_path = tmp_dir / spec.name
        checksum_path = tmp_dir / spec.checksum_name

        size_bytes = source.fetch(spec.name, artifact_path)
        source.fetch(spec.checksum_name, checksum_path)

        digest = verify_file(artifact_path, checksum_path, spec.algorithm)

        if spec.kind == ArtifactKind.BUNDLE:
            installed = extract_bundle(artifact_path, spec.destination)
        else:
            installed = install_binary(artifact_path, spec.destination)

    return FetchResult(
        name=spec.name,
        location=source.location(spec.name),
        digest=digest,
        size_bytes=size_bytes,
        installed_path=installed,
    )


__all__ = [
    "ArtifactSpec",
    "BINARY_MODE",
    "FetchResult",
    "compute_file_digest",
    "extract_bundle",
    "fetch_artifact",
    "install_binary",
    "parse_checksum_file",
    "verify_file",
]
