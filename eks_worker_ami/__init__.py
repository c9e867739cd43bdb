"""EKS worker AMI provisioner.

This package turns a base Ubuntu instance into an EKS worker node golden
image. It is run by Packer as a provisioning step and installs packages,
the container runtime, Kubernetes node binaries and EKS bootstrap files.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
