"""Kubernetes API client wrapper.

Wraps the official kubernetes Python client with per-context API clients,
lazy API group initialization, retry logic, and consistent error translation.
Each instance is bound to exactly one kubeconfig context; switching context
produces a new instance so in-flight background work keeps its own handle.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
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

if TYPE_CHECKING:
    from kubernetes.client import ApiClient, AppsV1Api, CoreV1Api

    from kube_runner.integrations.kubernetes.config import KubeRunnerConfig

logger = structlog.get_logger()

IN_CLUSTER_CONTEXT = "in-cluster"


def close_response(response: Any) -> None:
    """Release a streaming HTTP response, waking any thread blocked reading it.

    ``shutdown`` (urllib3 2.3+) interrupts a read in progress on another
    thread; ``close`` and ``release_conn`` then free the connection. Safe to
    call more than once.
    """
    if response is None:
        return
    for name in ("shutdown", "close", "release_conn"):
        method = getattr(response, name, None)
        if callable(method):
            try:
                method()
            except OSError as e:
                logger.debug("response_close_failed", step=name, error=str(e))


class KubernetesClient:
    """Context-bound Kubernetes API client.

    Wraps the official kubernetes Python client with:
    - One ``ApiClient`` per kubeconfig context
    - Lazy API group initialization
    - Automatic retry with tenacity for transient connection errors
    - Consistent error translation to custom exceptions

    Example:
        ```python
        from kube_runner.integrations.kubernetes import KubernetesClient, KubeRunnerConfig

        client = KubernetesClient(KubeRunnerConfig.from_env())
        pods = client.core_v1.list_namespaced_pod(client.default_namespace)
        other = client.switch_context("staging")
        ```
    """

    def __init__(self, config: KubeRunnerConfig, context: str | None = None) -> None:
        """Initialize the client for one kubeconfig context.

        Args:
            config: Runtime configuration (kubeconfig path, overrides, retries).
            context: Context to bind to. Defaults to the configured context,
                then the kubeconfig current-context.

        Raises:
            KubernetesConnectionError: If no usable configuration can be loaded.
        """
        self._config = config
        self._retries = config.defaults.retry_attempts
        self._requested_context = context or config.context
        self._current_context: str | None = None
        self._api_client: ApiClient | None = None

        # Lazy-loaded API group instances
        self._core_v1: CoreV1Api | None = None
        self._apps_v1: AppsV1Api | None = None

        self._load_config()

        logger.info(
            "kubernetes_client_initialized",
            context=self._current_context,
            default_namespace=self.default_namespace,
        )

    def _load_config(self) -> None:
        """Build the API client from kubeconfig, falling back to in-cluster config."""
        from kubernetes import client as k8s_client
        from kubernetes import config
        from kubernetes.config import ConfigException

        try:
            self._api_client = config.new_client_from_config(
                config_file=self._config.kubeconfig,
                context=self._requested_context,
            )
            self._current_context = self._requested_context or self._kubeconfig_current_context()
            logger.debug(
                "loaded_kubeconfig",
                context=self._current_context,
                kubeconfig=self._config.kubeconfig,
            )
        except ConfigException as e:
            if self._requested_context:
                raise KubernetesConnectionError(
                    message=f"Cannot load context '{self._requested_context}': {e}",
                    original_error=e,
                ) from e
            try:
                config.load_incluster_config()
                self._api_client = k8s_client.ApiClient()
                self._current_context = IN_CLUSTER_CONTEXT
                logger.debug("loaded_incluster_config")
            except ConfigException as inner:
                raise KubernetesConnectionError(
                    message="Cannot load Kubernetes configuration. "
                    "Ensure kubeconfig exists or running inside a cluster.",
                    original_error=inner,
                ) from inner

    def _kubeconfig_current_context(self) -> str | None:
        """Read current-context from kubeconfig."""
        from kubernetes import config

        try:
            _, active = config.list_kube_config_contexts(config_file=self._config.kubeconfig)
        except Exception:
            return None
        return active.get("name") if active else None

    # =========================================================================
    # Lazy API Group Accessors
    # =========================================================================

    @property
    def core_v1(self) -> CoreV1Api:
        """Get CoreV1Api instance (pods, secrets, namespaces)."""
        if self._core_v1 is None:
            from kubernetes.client import CoreV1Api

            self._core_v1 = CoreV1Api(self._api_client)
        return self._core_v1

    @property
    def apps_v1(self) -> AppsV1Api:
        """Get AppsV1Api instance (deployments)."""
        if self._apps_v1 is None:
            from kubernetes.client import AppsV1Api

            self._apps_v1 = AppsV1Api(self._api_client)
        return self._apps_v1

    # =========================================================================
    # Context Management
    # =========================================================================

    def switch_context(self, context_name: str) -> KubernetesClient:
        """Create a client bound to another kubeconfig context.

        This may run credential plugins (exec auth) that prompt on the
        terminal, so callers suspend any full-screen UI first.

        Args:
            context_name: The kubeconfig context name.

        Returns:
            A new client; this instance is left untouched.

        Raises:
            KubernetesConnectionError: If the context cannot be loaded.
        """
        new_client = KubernetesClient(self._config, context=context_name)
        logger.info("switched_context", context=context_name)
        return new_client

    def get_current_context(self) -> str:
        """Get the context this client is bound to.

        Returns:
            The context name, 'in-cluster' inside a pod, or 'default' if unknown.
        """
        return self._current_context or "default"

    def list_contexts(self) -> list[dict[str, Any]]:
        """List all available kubeconfig contexts.

        Returns:
            List of context dictionaries with 'name', 'cluster', 'namespace'
            and 'active' keys.
        """
        from kubernetes import config

        try:
            contexts, active = config.list_kube_config_contexts(
                config_file=self._config.kubeconfig
            )
        except Exception:
            return []

        result = []
        for ctx in contexts:
            ctx_info = ctx.get("context", {}) or {}
            result.append(
                {
                    "name": ctx.get("name", ""),
                    "cluster": ctx_info.get("cluster", ""),
                    "namespace": ctx_info.get("namespace") or "default",
                    "active": ctx.get("name") == active.get("name") if active else False,
                }
            )
        return result

    def list_context_names(self) -> list[str]:
        """List kubeconfig context names in file order."""
        return [ctx["name"] for ctx in self.list_contexts() if ctx["name"]]

    def namespace_for_context(self, context_name: str) -> str:
        """Namespace configured for a context, or 'default'."""
        for ctx in self.list_contexts():
            if ctx["name"] == context_name:
                return str(ctx["namespace"])
        return "default"

    # =========================================================================
    # Error Translation
    # =========================================================================

    @staticmethod
    def api_error_message(e: Exception) -> str:
        """Extract the API server's status message from an ApiException body."""
        body = getattr(e, "body", None)
        if body:
            try:
                payload = json.loads(body)
            except (TypeError, ValueError):
                payload = None
            if isinstance(payload, dict) and payload.get("message"):
                return str(payload["message"])
        return str(getattr(e, "reason", "") or "")

    @staticmethod
    def translate_api_exception(
        e: Exception,
        resource_type: str | None = None,
        resource_name: str | None = None,
        namespace: str | None = None,
    ) -> KubernetesError:
        """Translate a kubernetes ApiException to a custom exception.

        Args:
            e: The original exception.
            resource_type: Type of resource being operated on.
            resource_name: Name of the resource.
            namespace: Namespace of the resource.

        Returns:
            An appropriate KubernetesError subclass.
        """
        from kubernetes.client import ApiException
        from urllib3.exceptions import HTTPError
        from urllib3.exceptions import TimeoutError as TransportTimeoutError

        if isinstance(e, KubernetesError):
            return e

        if isinstance(e, TransportTimeoutError):
            return KubernetesTimeoutError(message=str(e), original_error=e)

        if isinstance(e, (HTTPError, ConnectionError)):
            return KubernetesConnectionError(message=str(e), original_error=e)

        if not isinstance(e, ApiException):
            return KubernetesError(
                message=str(e),
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        status = e.status
        message = KubernetesClient.api_error_message(e)

        if status in (401, 403):
            return KubernetesAuthError(
                message=message or "Authentication/authorization failed",
                status_code=status,
                reason=e.reason,
            )

        if status == 404:
            return KubernetesNotFoundError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status == 409:
            return KubernetesConflictError(
                resource_type=resource_type,
                resource_name=resource_name,
                namespace=namespace,
            )

        if status in (400, 422):
            return KubernetesValidationError(
                message=message or "Validation failed",
                status_code=status,
            )

        return KubernetesError(
            message=message or f"Kubernetes API error: {status}",
            status_code=status,
            resource_type=resource_type,
            resource_name=resource_name,
            namespace=namespace,
        )

    # =========================================================================
    # Retry Decorator
    # =========================================================================

    def make_retry_decorator(self) -> Any:
        """Create a retry decorator for transient connection errors.

        Returns:
            A tenacity retry decorator configured with exponential backoff.
        """
        return retry(
            retry=retry_if_exception_type((KubernetesConnectionError, KubernetesTimeoutError)),
            stop=stop_after_attempt(max(self._retries, 1)),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def default_namespace(self) -> str:
        """Namespace override from config, else the bound context's namespace."""
        if self._config.namespace:
            return self._config.namespace
        if self._current_context in (None, IN_CLUSTER_CONTEXT):
            return "default"
        return self.namespace_for_context(self.get_current_context())

    @property
    def config(self) -> KubeRunnerConfig:
        """Runtime configuration this client was built from."""
        return self._config

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def close(self) -> None:
        """Close the underlying API client and release pooled connections."""
        if self._api_client is not None:
            self._api_client.close()
        self._core_v1 = None
        self._apps_v1 = None
        logger.debug("kubernetes_client_closed", context=self._current_context)
