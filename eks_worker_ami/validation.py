"""Required build variable validation.

Packer passes build variables to the provisioner through the environment.
Every required variable must be set and non-empty before any step runs.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping

from eks_worker_ami.errors import MissingConfigurationError

logger = logging.getLogger(__name__)

REQUIRED_VARIABLES: tuple[str, ...] = (
    "BINARY_BUCKET_NAME",
    "BINARY_BUCKET_REGION",
    "DOCKER_VERSION",
    "CNI_VERSION",
    "CNI_PLUGIN_VERSION",
    "KUBERNETES_VERSION",
    "KUBERNETES_BUILD_DATE",
)


def validate_env_set(name: str, environ: Mapping[str, str]) -> str:
    """Return the value of a required variable.

    Args:
        name: Variable name.
        environ: Environment mapping to read from.

    Returns:
        The non-empty value.

    Raises:
        MissingConfigurationError: If the variable is unset or empty.
    """
    value = environ.get(name)
    if not value:
        raise MissingConfigurationError(name)
    return value


def validate_required(
    environ: Mapping[str, str],
    names: Iterable[str] = REQUIRED_VARIABLES,
) -> dict[str, str]:
    """Validate that all required variables are present.

    Stops at the first missing variable.

    Args:
        environ: Environment mapping to read from.
        names: Required variable names, checked in order.

    Returns:
        Mapping of variable name to value.

    Raises:
        MissingConfigurationError: On the first missing variable.
    """
    values = {name: validate_env_set(name, environ) for name in names}
    logger.debug("All %d required build variables are set", len(values))
    return values


__all__ = ["REQUIRED_VARIABLES", "validate_env_set", "validate_required"]
