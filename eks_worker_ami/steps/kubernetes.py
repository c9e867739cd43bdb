"""Kubernetes node steps: directories, CNI bundles, binaries and kubelet."""

from __future__ import annotations

import logging
from pathlib import Path

from eks_worker_ami.artifacts.fetch import ArtifactSpec, FetchResult, fetch_artifact
from eks_worker_ami.artifacts.sources import (
    ArtifactSource,
    HttpSource,
    select_binary_source,
)
from eks_worker_ami.artifacts.urls import (
    cni_bundle_name,
    cni_plugins_bundle_name,
    cni_plugins_url_base,
    cni_url_base,
)
from eks_worker_ami.config import BuildConfig
from eks_worker_ami.steps.base import StepContext
from eks_worker_ami.steps.files import ensure_dirs, move_file
from eks_worker_ami.types import Architecture, ArtifactKind, ChecksumAlgorithm

logger = logging.getLogger(__name__)

KUBERNETES_DIRS: tuple[str, ...] = (
    "/etc/kubernetes/manifests",
    "/var/lib/kubernetes",
    "/var/lib/kubelet",
    "/opt/cni/bin",
)

CNI_BIN_DIR = "/opt/cni/bin"
BIN_DIR = "/usr/bin"

# Binaries fetched from the EKS binary bucket
BINARIES: tuple[str, ...] = ("aws-iam-authenticator",)

SNAPS: tuple[str, ...] = ("kubectl-eks", "kubelet-eks")


def cni_bundle_specs(
    config: BuildConfig,
    arch: Architecture,
    dest_dir: Path,
) -> list[tuple[ArtifactSpec, str]]:
    """Return the CNI bundles to install with their release URL bases."""
    return [
        (
            ArtifactSpec(
                name=cni_bundle_name(config.cni_version, arch),
                destination=dest_dir,
                algorithm=ChecksumAlgorithm.SHA512,
                kind=ArtifactKind.BUNDLE,
            ),
            cni_url_base(config.cni_version),
        ),
        (
            ArtifactSpec(
                name=cni_plugins_bundle_name(config.cni_plugin_version, arch),
                destination=dest_dir,
                algorithm=ChecksumAlgorithm.SHA512,
                kind=ArtifactKind.BUNDLE,
            ),
            cni_plugins_url_base(config.cni_plugin_version),
        ),
    ]


def binary_specs(dest_dir: Path, names: tuple[str, ...] = BINARIES) -> list[ArtifactSpec]:
    """Return the binaries to install from the binary bucket."""
    return [ArtifactSpec(name=name, destination=dest_dir) for name in names]


def install_cni(ctx: StepContext) -> str:
    """Create Kubernetes directories and install both CNI bundles."""
    ensure_dirs(*(ctx.host_path(d) for d in KUBERNETES_DIRS))

    timeout = ctx.settings.download_timeout
    results: list[FetchResult] = []
    for spec, url_base in cni_bundle_specs(
        ctx.config, ctx.arch, ctx.host_path(CNI_BIN_DIR)
    ):
        source = HttpSource(ctx.http_client, url_base, timeout=timeout)
        results.append(fetch_artifact(spec, source))

    return ", ".join(r.name for r in results)


def install_binaries(
    ctx: StepContext,
    names: tuple[str, ...] = BINARIES,
) -> list[FetchResult]:
    """Fetch, verify and install every binary through one source.

    Returns:
        One FetchResult per binary, in order.
    """
    source: ArtifactSource = select_binary_source(
        ctx.config,
        ctx.arch,
        ctx.http_client,
        s3_client_factory=ctx.s3_client_factory,
        timeout=ctx.settings.download_timeout,
    )
    return [
        fetch_artifact(spec, source)
        for spec in binary_specs(ctx.host_path(BIN_DIR), names)
    ]


def install_binaries_step(ctx: StepContext) -> str:
    results = install_binaries(ctx)
    return ", ".join(f"{r.name} from {r.location}" for r in results)


def install_kubelet(ctx: StepContext) -> str:
    """Install kubelet and kubectl snaps and stage kubelet configuration."""
    channel = f"--channel={ctx.config.kubernetes_version}/stable"
    for snap in SNAPS:
        ctx.runner.run(["snap", "install", snap, channel, "--classic"])

    ensure_dirs(ctx.host_path("/etc/kubernetes/kubelet"))
    move_file(
        ctx.template("kubelet-kubeconfig"),
        ctx.host_path("/var/lib/kubelet/kubeconfig"),
        root_owned=True,
    )
    move_file(
        ctx.template("kubelet-config.json"),
        ctx.host_path("/etc/kubernetes/kubelet/kubelet-config.json"),
        root_owned=True,
    )
    return f"kubelet {ctx.config.kubernetes_version} installed"


__all__ = [
    "BINARIES",
    "BIN_DIR",
    "CNI_BIN_DIR",
    "KUBERNETES_DIRS",
    "SNAPS",
    "binary_specs",
    "cni_bundle_specs",
    "install_binaries",
    "install_binaries_step",
    "install_cni",
    "install_kubelet",
]
