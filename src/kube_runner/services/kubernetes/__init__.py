"""Kubernetes service module.

Managers over the context-bound KubernetesClient for the operations the
interactive client issues in the background.
"""

from kube_runner.services.kubernetes.namespace_manager import NamespaceManager
from kube_runner.services.kubernetes.streaming_manager import LogStream, StreamingManager
from kube_runner.services.kubernetes.workload_manager import WorkloadManager

__all__ = [
    "LogStream",
    "NamespaceManager",
    "StreamingManager",
    "WorkloadManager",
]
