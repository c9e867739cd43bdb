"""Provisioning steps.

Steps run in the order of DEFAULT_STEPS. Each declares the BuildConfig
fields it reads so that the dependency of every step on the build
variables is visible without reading its body.
"""

from eks_worker_ami.config import BuildConfig
from eks_worker_ami.steps.base import Step, StepContext
from eks_worker_ami.steps.cleanup import cleanup_image
from eks_worker_ami.steps.eks import install_eks_bootstrap, write_release_metadata
from eks_worker_ami.steps.kubernetes import (
    install_binaries_step,
    install_cni,
    install_kubelet,
)
from eks_worker_ami.steps.runtime import install_container_runtime, install_log_rotation
from eks_worker_ami.steps.system import (
    configure_network,
    configure_time_sync,
    install_packages,
    wait_for_cloud_init,
)


def _docker_enabled(config: BuildConfig) -> bool:
    return config.install_docker


DEFAULT_STEPS: tuple[Step, ...] = (
    Step("cloud-init", wait_for_cloud_init, "Wait for cloud-init to finish"),
    Step("packages", install_packages, "Install base OS packages"),
    Step("time", configure_time_sync, "Configure chrony and clocksource"),
    Step(
        "network",
        configure_network,
        "Persist iptables rules and restore them on boot",
        reads=("template_dir",),
    ),
    Step(
        "docker",
        install_container_runtime,
        "Install Docker CE and containerd",
        reads=("docker_version", "install_docker", "template_dir", "build_user"),
        enabled=_docker_enabled,
    ),
    Step(
        "logrotate",
        install_log_rotation,
        "Install kube-proxy log rotation",
        reads=("template_dir",),
    ),
    Step(
        "cni",
        install_cni,
        "Install CNI and CNI plugin bundles",
        reads=("cni_version", "cni_plugin_version"),
    ),
    Step(
        "binaries",
        install_binaries_step,
        "Install binaries from the EKS binary bucket",
        reads=(
            "binary_bucket_name",
            "binary_bucket_region",
            "kubernetes_version",
            "kubernetes_build_date",
            "has_credentials",
        ),
    ),
    Step(
        "kubelet",
        install_kubelet,
        "Install kubelet and kubectl and stage kubelet configuration",
        reads=("kubernetes_version", "template_dir"),
    ),
    Step(
        "eks",
        install_eks_bootstrap,
        "Stage the EKS bootstrap script and max-pods table",
        reads=("template_dir",),
    ),
    Step("metadata", write_release_metadata, "Record build provenance"),
    Step(
        "cleanup",
        cleanup_image,
        "Remove caches and host identity",
        reads=("template_dir",),
    ),
)

STEP_NAMES: tuple[str, ...] = tuple(step.name for step in DEFAULT_STEPS)

__all__ = ["DEFAULT_STEPS", "STEP_NAMES", "Step", "StepContext"]
