"""Step context and step descriptor.

A StepContext carries everything a step may touch: the immutable build
configuration, tool settings, the detected architecture, a command runner
and network clients. Steps receive it by reference and never mutate it.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from eks_worker_ami.artifacts.sources import create_s3_client
from eks_worker_ami.config import BuildConfig, Settings
from eks_worker_ami.shell import CommandRunner
from eks_worker_ami.types import Architecture


@dataclass
class StepContext:
    """Shared, read-only inputs for provisioning steps."""

    config: BuildConfig
    settings: Settings
    arch: Architecture
    runner: CommandRunner
    http_client: httpx.Client
    s3_client_factory: Callable[[str], Any] = create_s3_client

    def host_path(self, path: str | Path) -> Path:
        """Resolve an absolute image path under the configured root."""
        return self.settings.host_path(path)

    def template(self, name: str) -> Path:
        """Return the path of a staged template file."""
        return self.host_path(self.config.template_dir / name)


def _always(config: BuildConfig) -> bool:
    return True


@dataclass(frozen=True)
class Step:
    """A named provisioning step.

    Attributes:
        name: Stable step name used by --skip/--only.
        run: Callable performing the step; may return a summary message.
        description: One-line description for listings.
        reads: BuildConfig fields the step reads.
        enabled: Predicate deciding whether the step applies to a config.
    """

    name: str
    run: Callable[[StepContext], str | None]
    description: str
    reads: tuple[str, ...] = ()
    enabled: Callable[[BuildConfig], bool] = field(default=_always)


__all__ = ["Step", "StepContext"]
