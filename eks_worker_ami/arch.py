"""Machine architecture detection."""

from __future__ import annotations

import platform

from eks_worker_ami.errors import UnsupportedPlatformError
from eks_worker_ami.types import Architecture

MACHINE_ARCHITECTURES: dict[str, Architecture] = {
    "x86_64": Architecture.AMD64,
    "aarch64": Architecture.ARM64,
}


def detect_architecture(machine: str | None = None) -> Architecture:
    """Map a `uname -m` machine name to its Kubernetes architecture.

    Args:
        machine: Machine name; defaults to the running host's.

    Returns:
        Architecture for the machine.

    Raises:
        UnsupportedPlatformError: If the machine is not recognized.
    """
    if machine is None:
        machine = platform.machine()
    try:
        return MACHINE_ARCHITECTURES[machine]
    except KeyError:
        raise UnsupportedPlatformError(machine) from None


__all__ = ["MACHINE_ARCHITECTURES", "detect_architecture"]
