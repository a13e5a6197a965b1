"""Version information for kube_runner."""

__version__ = "0.3.0"
