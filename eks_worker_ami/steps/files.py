"""Filesystem helpers shared by provisioning steps.

All helpers raise InstallError on OSError so the pipeline sees a single
failure kind for filesystem problems.
"""

from __future__ import annotations

import logging
import os
import shutil
from pathlib import Path

from eks_worker_ami.errors import InstallError

logger = logging.getLogger(__name__)


def ensure_dirs(*paths: Path) -> None:
    """Create directories (mkdir -p)."""
    for path in paths:
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise InstallError(f"Failed to create {path}: {e}") from e


def set_root_owner(path: Path, recursive: bool = False) -> None:
    """Make root the owner of a path.

    Ownership can only be changed by root; otherwise it is left alone.
    """
    if os.geteuid() != 0:
        logger.debug("Not running as root, leaving ownership of %s unchanged", path)
        return

    targets = [path]
    if recursive and path.is_dir():
        targets.extend(path.rglob("*"))

    try:
        for target in targets:
            os.chown(target, 0, 0, follow_symlinks=False)
    except OSError as e:
        raise InstallError(f"Failed to chown {path}: {e}") from e


def move_file(
    source: Path,
    dest: Path,
    mode: int | None = None,
    root_owned: bool = False,
) -> Path:
    """Move a staged file into place, replacing any existing file.

    Args:
        source: Staged file.
        dest: Final path.
        mode: Optional file mode to apply after the move.
        root_owned: Make root the owner after the move.

    Returns:
        The destination path.

    Raises:
        InstallError: If the source is missing or the move fails.
    """
    if not source.is_file():
        raise InstallError(f"Template file not found: {source}")

    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(source), str(dest))
        if mode is not None:
            dest.chmod(mode)
    except OSError as e:
        raise InstallError(f"Failed to move {source} -> {dest}: {e}") from e

    if root_owned:
        set_root_owner(dest)

    logger.info("Installed %s", dest)
    return dest


def write_file(path: Path, content: str, mode: int | None = None) -> Path:
    """Write text content to a file, creating parent directories."""
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        if mode is not None:
            path.chmod(mode)
    except OSError as e:
        raise InstallError(f"Failed to write {path}: {e}") from e
    return path


def remove_path(path: Path) -> bool:
    """Remove a file, symlink or directory tree.

    Returns:
        True if something was removed, False if the path did not exist.

    Raises:
        InstallError: If removal fails.
    """
    try:
        if path.is_symlink() or path.is_file():
            path.unlink()
        elif path.is_dir():
            shutil.rmtree(path)
        else:
            return False
    except FileNotFoundError:
        return False
    except OSError as e:
        raise InstallError(f"Failed to remove {path}: {e}") from e
    return True


__all__ = [
    "ensure_dirs",
    "move_file",
    "remove_path",
    "set_root_owner",
    "write_file",
]
