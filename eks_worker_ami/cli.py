"""Thin CLI wrapper for eks_worker_ami.

This module provides the command-line interface using Typer.
All provisioning logic is delegated to core modules.
"""

import json
import logging
import os
from pathlib import Path
from typing import Annotated

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from eks_worker_ami import __version__
from eks_worker_ami.config import Settings, get_settings, print_settings_json

app = typer.Typer(
    name="eks-worker-ami",
    help="EKS worker AMI provisioner - turn a base Ubuntu instance into an EKS node image",
    no_args_is_help=True,
)
console = Console()
err_console = Console(stderr=True)


def configure_logging(settings: Settings) -> None:
    """Send log records to stderr through Rich."""
    logging.basicConfig(
        level=settings.log_level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=err_console, show_path=False)],
        force=True,
    )


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"eks-worker-ami version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """EKS worker AMI provisioner - turn a base Ubuntu instance into an EKS node image."""


@app.command()
def config(
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show effective tool settings."""
    settings = get_settings()
    if json_output:
        console.print(print_settings_json(settings), soft_wrap=True)
    else:
        console.print("[bold]Effective Configuration:[/bold]")
        console.print()
        console.print("[bold]Paths:[/bold]")
        console.print(f"  Root directory:      {settings.root_dir}")
        console.print()
        console.print("[bold]Operational:[/bold]")
        console.print(f"  Dry run:             {settings.dry_run}")
        console.print(f"  Use sudo:            {settings.use_sudo}")
        console.print(f"  Log level:           {settings.log_level}")
        console.print(f"  Metadata endpoint:   {settings.imds_endpoint}")
        console.print()
        console.print("[bold]Timeouts (seconds):[/bold]")
        console.print(f"  Download timeout:    {settings.download_timeout}")
        console.print(f"  Metadata timeout:    {settings.metadata_timeout}")
        console.print(f"  Cloud-init timeout:  {settings.cloud_init_timeout}")


@app.command()
def steps() -> None:
    """List provisioning steps and the build variables each reads."""
    from eks_worker_ami.steps import DEFAULT_STEPS

    console.print(f"[bold]{len(DEFAULT_STEPS)} step(s), in order:[/bold]")
    console.print()
    for step in DEFAULT_STEPS:
        console.print(f"  [green]{step.name}[/green]")
        console.print(f"    {step.description}")
        if step.reads:
            console.print(f"    Reads: {', '.join(step.reads)}")


@app.command()
def validate(
    var_file: Annotated[
        Path | None,
        typer.Option("--var-file", help="YAML file of build variables"),
    ] = None,
    machine: Annotated[
        str | None,
        typer.Option("--machine", help="Machine name to check (default: this host)"),
    ] = None,
) -> None:
    """Check build variables and machine architecture without provisioning."""
    from eks_worker_ami.arch import detect_architecture
    from eks_worker_ami.config import BuildConfig
    from eks_worker_ami.errors import ProvisioningError

    try:
        build_config = BuildConfig.from_env(var_file=var_file)
        arch = detect_architecture(machine)
    except ProvisioningError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    console.print("[green]✓ Build configuration is valid[/green]")
    console.print(
        f"  Kubernetes: {build_config.kubernetes_version}"
        f" (minor {build_config.kubernetes_minor_version})"
    )
    console.print(f"  Build date: {build_config.kubernetes_build_date}")
    console.print(f"  Architecture: {arch.value}")
    console.print(f"  Install Docker: {build_config.install_docker}")


@app.command()
def urls(
    var_file: Annotated[
        Path | None,
        typer.Option("--var-file", help="YAML file of build variables"),
    ] = None,
    machine: Annotated[
        str | None,
        typer.Option("--machine", help="Machine name (default: this host)"),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show where each artifact will be fetched from."""
    from eks_worker_ami.arch import detect_architecture
    from eks_worker_ami.artifacts.urls import (
        cni_bundle_name,
        cni_plugins_bundle_name,
        cni_plugins_url_base,
        cni_url_base,
        s3_path,
        s3_url_base,
    )
    from eks_worker_ami.config import BuildConfig
    from eks_worker_ami.errors import ProvisioningError
    from eks_worker_ami.steps.kubernetes import BINARIES

    try:
        build_config = BuildConfig.from_env(var_file=var_file)
        arch = detect_architecture(machine)
    except ProvisioningError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    binary_base = (
        s3_path(build_config, arch)
        if build_config.has_credentials
        else s3_url_base(build_config, arch)
    )
    artifacts = {name: f"{binary_base}/{name}" for name in BINARIES}
    cni = cni_bundle_name(build_config.cni_version, arch)
    cni_plugins = cni_plugins_bundle_name(build_config.cni_plugin_version, arch)
    artifacts[cni] = f"{cni_url_base(build_config.cni_version)}/{cni}"
    artifacts[cni_plugins] = (
        f"{cni_plugins_url_base(build_config.cni_plugin_version)}/{cni_plugins}"
    )

    if json_output:
        console.print(json.dumps(artifacts, indent=2), soft_wrap=True)
    else:
        for name, location in artifacts.items():
            console.print(f"  [green]{name}[/green]: {location}")


@app.command()
def provision(
    var_file: Annotated[
        Path | None,
        typer.Option("--var-file", help="YAML file of build variables"),
    ] = None,
    skip: Annotated[
        list[str] | None,
        typer.Option("--skip", help="Skip a step (can be repeated)"),
    ] = None,
    only: Annotated[
        list[str] | None,
        typer.Option("--only", help="Run only this step (can be repeated)"),
    ] = None,
    root_dir: Annotated[
        Path | None,
        typer.Option("--root-dir", help="Filesystem root to provision"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Log commands instead of running them"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Provision this machine as an EKS worker node image.

    Build variables are read from the environment (as set by Packer).
    The run stops at the first failing step and exits non-zero.
    """
    from eks_worker_ami.errors import ProvisioningError
    from eks_worker_ami.pipeline import UnknownStepError
    from eks_worker_ami.pipeline import provision as run_provision
    from eks_worker_ami.types import StepResult, StepStatus

    settings = get_settings()
    overrides: dict[str, object] = {}
    if root_dir is not None:
        overrides["root_dir"] = root_dir
    if dry_run:
        overrides["dry_run"] = True
    if overrides:
        settings = settings.model_copy(update=overrides)

    configure_logging(settings)

    def report(step_result: StepResult) -> None:
        if json_output:
            return
        color = {
            StepStatus.SUCCEEDED: "green",
            StepStatus.FAILED: "red",
            StepStatus.SKIPPED: "yellow",
        }.get(step_result.status, "white")
        console.print(
            f"  [{color}]{step_result.status.value:>9}[/{color}] "
            f"{step_result.name}: {step_result.message}"
        )

    try:
        result = run_provision(
            settings,
            environ=os.environ,
            var_file=var_file,
            skip=skip or (),
            only=only or (),
            on_step=report,
        )
    except UnknownStepError as e:
        err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None
    except ProvisioningError as e:
        if json_output:
            output = {"success": False, "error_code": e.code, "error_message": str(e)}
            console.print(json.dumps(output, indent=2), soft_wrap=True)
        else:
            err_console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(code=1) from None

    if json_output:
        console.print(json.dumps(result.to_dict(), indent=2), soft_wrap=True)
    elif result.success:
        console.print("[green]✓ Provisioning succeeded[/green]")
    else:
        failed = result.failed_step
        name = failed.name if failed else "unknown"
        err_console.print(f"[red]✗ Provisioning failed at step {name}[/red]")
        if result.error_message:
            err_console.print(f"  Error: {escape(result.error_message)}")

    if not result.success:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
