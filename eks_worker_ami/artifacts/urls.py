"""URL construction for Kubernetes node artifacts.

Binaries come from the EKS binary bucket, addressed either as an S3 path
(authenticated) or a virtual-hosted HTTPS URL (anonymous). CNI bundles come
from the containernetworking GitHub releases.
"""

from __future__ import annotations

from eks_worker_ami.config import BuildConfig
from eks_worker_ami.types import Architecture

# Regions served from the amazonaws.com.cn partition
CHINA_REGIONS = frozenset({"cn-north-1", "cn-northwest-1"})

S3_DOMAIN = "amazonaws.com"
S3_DOMAIN_CHINA = "amazonaws.com.cn"

CNI_RELEASE_BASE = "https://github.com/containernetworking/cni/releases/download"
CNI_PLUGINS_RELEASE_BASE = (
    "https://github.com/containernetworking/plugins/releases/download"
)


def s3_domain(region: str) -> str:
    """Return the S3 domain suffix for a region."""
    if region in CHINA_REGIONS:
        return S3_DOMAIN_CHINA
    return S3_DOMAIN


def binary_key_prefix(config: BuildConfig, arch: Architecture) -> str:
    """Return the bucket key prefix holding binaries for a build."""
    return (
        f"{config.kubernetes_version}/{config.kubernetes_build_date}"
        f"/bin/linux/{arch.value}"
    )


def s3_url_base(config: BuildConfig, arch: Architecture) -> str:
    """Return the public HTTPS URL base for binaries.

    Args:
        config: Build configuration.
        arch: Target architecture.

    Returns:
        URL base without a trailing slash.
    """
    region = config.binary_bucket_region
    return (
        f"https://{config.binary_bucket_name}.s3.{region}.{s3_domain(region)}"
        f"/{binary_key_prefix(config, arch)}"
    )


def s3_path(config: BuildConfig, arch: Architecture) -> str:
    """Return the s3:// path for binaries."""
    return f"s3://{config.binary_bucket_name}/{binary_key_prefix(config, arch)}"


def cni_bundle_name(version: str, arch: Architecture) -> str:
    """Return the CNI core bundle filename."""
    return f"cni-{arch.value}-{version}.tgz"


def cni_plugins_bundle_name(version: str, arch: Architecture) -> str:
    """Return the CNI plugins bundle filename."""
    return f"cni-plugins-{arch.value}-{version}.tgz"


def cni_url_base(version: str) -> str:
    """Return the release URL base for the CNI core bundle."""
    return f"{CNI_RELEASE_BASE}/{version}"


def cni_plugins_url_base(version: str) -> str:
    """Return the release URL base for the CNI plugins bundle."""
    return f"{CNI_PLUGINS_RELEASE_BASE}/{version}"


__all__ = [
    "CHINA_REGIONS",
    "CNI_PLUGINS_RELEASE_BASE",
    "CNI_RELEASE_BASE",
    "S3_DOMAIN",
    "S3_DOMAIN_CHINA",
    "binary_key_prefix",
    "cni_bundle_name",
    "cni_plugins_bundle_name",
    "cni_plugins_url_base",
    "cni_url_base",
    "s3_domain",
    "s3_path",
    "s3_url_base",
]
