"""Kubernetes integration - API client, kubectl wrapper and configuration models."""

from kube_runner.integrations.kubernetes.client import KubernetesClient
from kube_runner.integrations.kubernetes.config import (
    KubernetesDefaultsConfig,
    KubeRunnerConfig,
)
from kube_runner.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)
from kube_runner.integrations.kubernetes.kubectl_client import KubectlClient, KubectlError

__all__ = [
    "KubeRunnerConfig",
    "KubectlClient",
    "KubectlError",
    "KubernetesAuthError",
    "KubernetesClient",
    "KubernetesConflictError",
    "KubernetesConnectionError",
    "KubernetesDefaultsConfig",
    "KubernetesError",
    "KubernetesNotFoundError",
    "KubernetesTimeoutError",
    "KubernetesValidationError",
]
