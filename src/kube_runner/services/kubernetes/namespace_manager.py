"""Kubernetes namespace discovery."""

from __future__ import annotations

from kube_runner.services.kubernetes.base import K8sBaseManager


class NamespaceManager(K8sBaseManager):
    """Manager for namespace listing."""

    _entity_name = "namespace"

    def list_namespace_names(self) -> list[str]:
        """List the names of all namespaces visible to the current credentials.

        Returns:
            Namespace names in API order.
        """
        self._log.debug("listing_namespaces")
        result = self._call(self._client.core_v1.list_namespace, "Namespace")
        names = [ns.metadata.name for ns in result.items if ns.metadata and ns.metadata.name]
        self._log.debug("listed_namespaces", count=len(names))
        return names
