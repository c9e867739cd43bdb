"""Error types for eks_worker_ami.

Every failure raised during provisioning derives from ProvisioningError and
carries a stable code. The pipeline stops at the first one it sees.
"""

from __future__ import annotations

# Error code constants
MISSING_CONFIGURATION = "missing_configuration"
INVALID_CONFIGURATION = "invalid_configuration"
UNSUPPORTED_PLATFORM = "unsupported_platform"
FETCH_ERROR = "fetch_error"
INTEGRITY_ERROR = "integrity_error"
INSTALL_ERROR = "install_error"
COMMAND_FAILED = "command_failed"


class ProvisioningError(Exception):
    """Base class for provisioning failures."""

    default_code = "provisioning_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        """Initialize ProvisioningError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.code = code or self.default_code


class MissingConfigurationError(ProvisioningError):
    """Raised when a required build variable is unset or empty."""

    default_code = MISSING_CONFIGURATION

    def __init__(self, name: str) -> None:
        super().__init__(f"Packer variable '{name}' was not set. Aborting")
        self.name = name


class InvalidConfigurationError(ProvisioningError):
    """Raised when a build variable file cannot be read or parsed."""

    default_code = INVALID_CONFIGURATION


class UnsupportedPlatformError(ProvisioningError):
    """Raised when the machine architecture is not recognized."""

    default_code = UNSUPPORTED_PLATFORM

    def __init__(self, machine: str) -> None:
        super().__init__(f"Unknown machine architecture '{machine}'")
        self.machine = machine


class FetchError(ProvisioningError):
    """Raised when an artifact or its checksum cannot be retrieved."""

    default_code = FETCH_ERROR


class IntegrityError(ProvisioningError):
    """Raised when a downloaded artifact fails checksum verification."""

    default_code = INTEGRITY_ERROR


class InstallError(ProvisioningError):
    """Raised when a filesystem operation fails while installing."""

    default_code = INSTALL_ERROR


class CommandError(ProvisioningError):
    """Raised when an external command exits non-zero."""

    default_code = COMMAND_FAILED

    def __init__(
        self,
        message: str,
        exit_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.exit_code = exit_code


__all__ = [
    "COMMAND_FAILED",
    "CommandError",
    "FETCH_ERROR",
    "FetchError",
    "INSTALL_ERROR",
    "INTEGRITY_ERROR",
    "INVALID_CONFIGURATION",
    "InstallError",
    "IntegrityError",
    "InvalidConfigurationError",
    "MISSING_CONFIGURATION",
    "MissingConfigurationError",
    "ProvisioningError",
    "UNSUPPORTED_PLATFORM",
    "UnsupportedPlatformError",
]
