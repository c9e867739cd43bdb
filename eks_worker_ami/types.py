"""Shared type definitions for eks_worker_ami.

This module contains enums and dataclasses shared across subpackages to
avoid circular imports.
"""

from dataclasses import dataclass, field
from enum import Enum


class Architecture(str, Enum):
    """Kubernetes architecture names for supported machines."""

    AMD64 = "amd64"
    ARM64 = "arm64"


class ChecksumAlgorithm(str, Enum):
    """Digest algorithm used by a checksum sibling file."""

    SHA256 = "sha256"
    SHA512 = "sha512"


class ArtifactKind(str, Enum):
    """How a verified artifact is installed."""

    BINARY = "binary"
    BUNDLE = "bundle"


class StepStatus(str, Enum):
    """Status of a pipeline step."""

    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class StepResult:
    """Result of a single pipeline step."""

    name: str
    status: StepStatus
    message: str = ""
    code: str | None = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.status in (StepStatus.SUCCEEDED, StepStatus.SKIPPED)


@dataclass
class PipelineResult:
    """Result of a whole provisioning run."""

    success: bool
    steps: list[StepResult] = field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None

    @property
    def failed_step(self) -> StepResult | None:
        for step in self.steps:
            if step.status == StepStatus.FAILED:
                return step
        return None

    def to_dict(self) -> dict[str, object]:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "steps": [
                {
                    "name": s.name,
                    "status": s.status.value,
                    "message": s.message,
                    "code": s.code,
                    "duration_seconds": round(s.duration_seconds, 3),
                }
                for s in self.steps
            ],
        }


__all__ = [
    "Architecture",
    "ArtifactKind",
    "ChecksumAlgorithm",
    "PipelineResult",
    "StepResult",
    "StepStatus",
]
