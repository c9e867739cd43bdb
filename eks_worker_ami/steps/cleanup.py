"""Golden image cleanup.

Removes package caches, staged templates, SSH host keys, authorized keys,
login records and cloud-init state so that instances launched from the
image never inherit the build host's identity or credentials.
"""

from __future__ import annotations

import glob
import logging
from pathlib import Path

from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.steps.files import remove_path

logger = logging.getLogger(__name__)

GLOB_CHARS = "*?["

CACHE_PATTERNS: tuple[str, ...] = ("/var/lib/apt/lists/*",)

IDENTITY_PATTERNS: tuple[str, ...] = (
    "/etc/ssh/ssh_host*",
    "/root/.ssh/authorized_keys",
    "/home/ubuntu/.ssh/authorized_keys",
    "/var/log/secure",
    "/var/log/wtmp",
    "/var/lib/dhclient/*",
    "/var/lib/dhcp/dhclient.*",
    "/var/lib/cloud/sem",
    "/var/lib/cloud/data",
    "/var/lib/cloud/instance",
    "/var/lib/cloud/instances",
    "/var/log/cloud-init.log",
    "/var/log/cloud-init-output.log",
)


def expand_pattern(root: Path, pattern: str) -> list[Path]:
    """Expand an absolute glob pattern under a root directory."""
    relative = pattern.lstrip("/")
    base = str(root / relative)
    if any(c in relative for c in GLOB_CHARS):
        return sorted(Path(p) for p in glob.glob(base))
    path = Path(base)
    return [path] if path.exists() or path.is_symlink() else []


def remove_patterns(root: Path, patterns: tuple[str, ...] | list[str]) -> list[Path]:
    """Remove everything matching the patterns; missing paths are ignored.

    Returns:
        Paths that were removed.
    """
    removed: list[Path] = []
    for pattern in patterns:
        for path in expand_pattern(root, pattern):
            if remove_path(path):
                logger.debug("Removed %s", path)
                removed.append(path)
    return removed


def cleanup_image(ctx: StepContext) -> str:
    """Drop caches and host identity before the image is snapshotted."""
    ctx.runner.run(["apt-get", "-y", "autoremove"])
    ctx.runner.run(["apt-get", "clean"])

    patterns = [str(ctx.config.template_dir), *CACHE_PATTERNS, *IDENTITY_PATTERNS]
    removed = remove_patterns(ctx.settings.root_dir, patterns)
    logger.info("Removed %d paths", len(removed))
    return f"removed {len(removed)} paths"


__all__ = [
    "CACHE_PATTERNS",
    "IDENTITY_PATTERNS",
    "cleanup_image",
    "expand_pattern",
    "remove_patterns",
]
