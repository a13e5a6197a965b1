"""Kubernetes workload resource manager.

Destructive and mutating operations on Pods and Deployments: delete,
scale and rollout restart.
"""

from __future__ import annotations

from datetime import UTC, datetime

from kube_runner.services.kubernetes.base import K8sBaseManager

FIELD_MANAGER = "kr"


class WorkloadManager(K8sBaseManager):
    """Manager for Kubernetes workload mutations."""

    _entity_name = "workload"

    # =========================================================================
    # Pod Operations
    # =========================================================================

    def delete_pod(self, name: str, namespace: str | None = None) -> None:
        """Delete a pod.

        Args:
            name: Pod name.
            namespace: Target namespace.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("deleting_pod", name=name, namespace=ns)
        self._call(
            self._client.core_v1.delete_namespaced_pod, "Pod", name, name=name, namespace=ns
        )
        self._log.info("deleted_pod", name=name, namespace=ns)

    # =========================================================================
    # Deployment Operations
    # =========================================================================

    def delete_deployment(self, name: str, namespace: str | None = None) -> None:
        """Delete a deployment.

        Args:
            name: Deployment name.
            namespace: Target namespace.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("deleting_deployment", name=name, namespace=ns)
        self._call(
            self._client.apps_v1.delete_namespaced_deployment,
            "Deployment",
            name,
            name=name,
            namespace=ns,
        )
        self._log.info("deleted_deployment", name=name, namespace=ns)

    def scale_deployment(self, name: str, namespace: str | None = None, *, replicas: int) -> None:
        """Scale a deployment with a merge patch on ``spec.replicas``.

        Args:
            name: Deployment name.
            namespace: Target namespace.
            replicas: Desired replica count.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("scaling_deployment", name=name, namespace=ns, replicas=replicas)
        patch = {"spec": {"replicas": replicas}}
        self._call(
            self._client.apps_v1.patch_namespaced_deployment,
            "Deployment",
            name,
            name=name,
            namespace=ns,
            body=patch,
            field_manager=FIELD_MANAGER,
        )
        self._log.info("scaled_deployment", name=name, namespace=ns, replicas=replicas)

    def restart_deployment(self, name: str, namespace: str | None = None) -> None:
        """Restart a deployment by patching the pod template annotation.

        Equivalent to ``kubectl rollout restart deployment``.

        Args:
            name: Deployment name.
            namespace: Target namespace.
        """
        ns = self._resolve_namespace(namespace)
        self._log.info("restarting_deployment", name=name, namespace=ns)
        now = datetime.now(UTC).isoformat()
        patch = {
            "spec": {
                "template": {
                    "metadata": {"annotations": {"kubectl.kubernetes.io/restartedAt": now}}
                }
            }
        }
        self._call(
            self._client.apps_v1.patch_namespaced_deployment,
            "Deployment",
            name,
            name=name,
            namespace=ns,
            body=patch,
            field_manager=FIELD_MANAGER,
        )
        self._log.info("restarted_deployment", name=name, namespace=ns)
