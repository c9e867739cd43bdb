"""Provisioning pipeline driver.

This module handles:
- Building the StepContext once per run
- Running steps in order and recording a StepResult for each
- Stopping at the first failure; remaining steps are reported as skipped

A failed run leaves whatever earlier steps already placed on disk; there is
no rollback and nothing is retried.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Collection, Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any

import httpx

from eks_worker_ami.arch import detect_architecture
from eks_worker_ami.artifacts.sources import create_s3_client
from eks_worker_ami.config import BuildConfig, Settings
from eks_worker_ami.errors import ProvisioningError
from eks_worker_ami.shell import CommandRunner
from eks_worker_ami.steps import DEFAULT_STEPS, STEP_NAMES, Step, StepContext
from eks_worker_ami.types import PipelineResult, StepResult, StepStatus

logger = logging.getLogger(__name__)


class UnknownStepError(ValueError):
    """Raised when --skip/--only names a step that does not exist."""

    def __init__(self, names: Collection[str]) -> None:
        super().__init__(
            f"Unknown step(s): {', '.join(sorted(names))}. "
            f"Valid steps: {', '.join(STEP_NAMES)}"
        )
        self.names = set(names)


def select_steps(
    steps: Sequence[Step],
    skip: Collection[str] = (),
    only: Collection[str] = (),
) -> set[str]:
    """Return the names of steps that should run.

    Raises:
        UnknownStepError: If skip or only name unknown steps.
    """
    known = {s.name for s in steps}
    unknown = (set(skip) | set(only)) - known
    if unknown:
        raise UnknownStepError(unknown)

    selected = set(only) if only else set(known)
    return selected - set(skip)


@contextmanager
def step_context(
    config: BuildConfig,
    settings: Settings,
    machine: str | None = None,
    runner: CommandRunner | None = None,
    s3_client_factory: Callable[[str], Any] = create_s3_client,
) -> Iterator[StepContext]:
    """Create a StepContext and close its network clients afterwards.

    Raises:
        UnsupportedPlatformError: If the machine is not supported.
    """
    arch = detect_architecture(machine)
    logger.info("Detected architecture %s", arch.value)

    if runner is None:
        runner = CommandRunner(use_sudo=settings.use_sudo, dry_run=settings.dry_run)

    with httpx.Client() as client:
        yield StepContext(
            config=config,
            settings=settings,
            arch=arch,
            runner=runner,
            http_client=client,
            s3_client_factory=s3_client_factory,
        )


def run_pipeline(
    ctx: StepContext,
    steps: Sequence[Step] = DEFAULT_STEPS,
    skip: Collection[str] = (),
    only: Collection[str] = (),
    on_step: Callable[[StepResult], None] | None = None,
) -> PipelineResult:
    """Run steps in order, stopping at the first failure.

    Args:
        ctx: Step context.
        steps: Steps to run.
        skip: Step names to skip.
        only: If given, run only these step names.
        on_step: Optional callback invoked with each StepResult.

    Returns:
        PipelineResult with one StepResult per step.
    """
    selected = select_steps(steps, skip=skip, only=only)
    result = PipelineResult(success=True)

    def record(step_result: StepResult) -> None:
        result.steps.append(step_result)
        if on_step is not None:
            on_step(step_result)

    for step in steps:
        if not result.success:
            record(StepResult(step.name, StepStatus.SKIPPED, "not run"))
            continue
        if step.name not in selected:
            record(StepResult(step.name, StepStatus.SKIPPED, "skipped by request"))
            continue
        if not step.enabled(ctx.config):
            record(StepResult(step.name, StepStatus.SKIPPED, "disabled by configuration"))
            continue

        logger.info("==> %s: %s", step.name, step.description)
        started = time.monotonic()
        try:
            message = step.run(ctx) or ""
        except ProvisioningError as e:
            duration = time.monotonic() - started
            logger.error("Step %s failed: %s", step.name, e)
            result.success = False
            result.error_code = e.code
            result.error_message = str(e)
            record(
                StepResult(
                    step.name,
                    StepStatus.FAILED,
                    message=str(e),
                    code=e.code,
                    duration_seconds=duration,
                )
            )
            continue

        duration = time.monotonic() - started
        logger.info("Step %s finished in %.1fs", step.name, duration)
        record(
            StepResult(
                step.name,
                StepStatus.SUCCEEDED,
                message=message,
                duration_seconds=duration,
            )
        )

    return result


def provision(
    settings: Settings,
    environ: Mapping[str, str] | None = None,
    var_file: Path | None = None,
    machine: str | None = None,
    skip: Collection[str] = (),
    only: Collection[str] = (),
    on_step: Callable[[StepResult], None] | None = None,
) -> PipelineResult:
    """Validate configuration, detect the platform and run the pipeline.

    Raises:
        MissingConfigurationError: If a required variable is missing.
        UnsupportedPlatformError: If the machine is not supported.
        UnknownStepError: If skip or only name unknown steps.
    """
    config = BuildConfig.from_env(environ, var_file=var_file)
    select_steps(DEFAULT_STEPS, skip=skip, only=only)

    with step_context(config, settings, machine=machine) as ctx:
        return run_pipeline(ctx, skip=skip, only=only, on_step=on_step)


__all__ = [
    "UnknownStepError",
    "provision",
    "run_pipeline",
    "select_steps",
    "step_context",
]
