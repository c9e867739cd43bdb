"""Kubernetes node artifact management.

This module handles:
- Building binary bucket and CNI release URLs
- Selecting an authenticated or anonymous artifact source
- Downloading, checksum verification and installation
"""

from eks_worker_ami.artifacts.fetch import (
    ArtifactSpec,
    FetchResult,
    fetch_artifact,
)
from eks_worker_ami.artifacts.sources import (
    ArtifactSource,
    HttpSource,
    ObjectStoreSource,
    select_binary_source,
)
from eks_worker_ami.artifacts.urls import s3_domain, s3_path, s3_url_base

__all__ = [
    # Fetch module
    "ArtifactSpec",
    "FetchResult",
    "fetch_artifact",
    # Sources module
    "ArtifactSource",
    "HttpSource",
    "ObjectStoreSource",
    "select_binary_source",
    # URLs module
    "s3_domain",
    "s3_path",
    "s3_url_base",
]
