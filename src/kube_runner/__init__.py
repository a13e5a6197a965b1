"""kube_runner - interactive terminal client for live Kubernetes resources."""

from kube_runner.__version__ import __version__

__all__ = ["__version__"]
