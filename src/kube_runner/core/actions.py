"""Background work issued by the dispatcher.

Every runner here returns immediately. The blocking call runs on a worker
thread, and its outcome comes back as a message on the result channel.
Nothing in this module touches the ``Session``.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any

import pyperclip
import structlog

from kube_runner.core.channel import EventChannel
from kube_runner.core.events import (
    ActionFailed,
    ActionSucceeded,
    ChannelEvent,
    DescribeReady,
    LogHistory,
    LogHistoryFailed,
    LogLine,
    LogStreamEnded,
    NamespacesLoaded,
)
from kube_runner.core.models import ResourceKind
from kube_runner.core.modes import DeleteResource, PendingAction, RestartDeployment, ScaleDeployment
from kube_runner.core.tasks import CancelToken, TaskKind, TaskRegistry
from kube_runner.integrations.kubernetes.client import KubernetesClient
from kube_runner.integrations.kubernetes.exceptions import KubernetesError
from kube_runner.integrations.kubernetes.kubectl_client import KubectlClient
from kube_runner.services.kubernetes import NamespaceManager, StreamingManager, WorkloadManager

logger = structlog.get_logger()

CLIPBOARD_CLEAR_SECONDS = 15


def _error_text(error: Exception) -> str:
    return str(error) or type(error).__name__


class LogStreamer:
    """Feeds a log session from the API on registered daemon threads."""

    def __init__(
        self,
        client: KubernetesClient,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
    ) -> None:
        self._streaming = StreamingManager(client)
        self._channel = channel
        self._registry = registry

    def rebind(self, client: KubernetesClient) -> None:
        self.stop()
        self._streaming = StreamingManager(client)

    def start_follow(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        streaming = self._streaming
        channel = self._channel

        def follow(token: CancelToken) -> None:
            error: str | None = None
            try:
                stream = streaming.follow_logs(pod, namespace, tail_lines=tail_lines)
                token.on_cancel(stream.close)
                for line in stream:
                    if token.cancelled or not channel.send(LogLine(generation, line)):
                        return
            except Exception as e:
                if token.cancelled:
                    return
                error = _error_text(e)
                logger.warning("log_follow_failed", pod=pod, error=error)
            if not token.cancelled:
                channel.send(LogStreamEnded(generation, error))

        self._registry.spawn_thread(TaskKind.LOG_FOLLOW, follow)

    def fetch_history(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        streaming = self._streaming
        channel = self._channel

        def fetch(token: CancelToken) -> None:
            try:
                lines = streaming.fetch_log_tail(pod, namespace, tail_lines=tail_lines)
            except Exception as e:
                if not token.cancelled:
                    channel.send(LogHistoryFailed(generation, _error_text(e)))
                return
            if not token.cancelled:
                channel.send(LogHistory(generation, tuple(lines)))

        self._registry.spawn_thread(TaskKind.LOG_HISTORY, fetch)

    def stop(self) -> None:
        self._registry.cancel(TaskKind.LOG_FOLLOW)
        self._registry.cancel(TaskKind.LOG_HISTORY)


class ActionRunner:
    """Runs one-shot cluster actions and reports their outcome.

    Args:
        client: Client bound to the active context.
        channel: Result channel into the orchestrator.
        registry: Task registry for tracked and one-shot tasks.
        kubectl: kubectl wrapper for describe and namespace fallback.
        clipboard_copy: Function that places text on the system clipboard.
    """

    def __init__(
        self,
        client: KubernetesClient,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
        kubectl: KubectlClient | None = None,
        clipboard_copy: Callable[[str], None] = pyperclip.copy,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._kubectl = kubectl or KubectlClient()
        self._clipboard_copy = clipboard_copy
        self.rebind(client)

    def rebind(self, client: KubernetesClient) -> None:
        self._workloads = WorkloadManager(client)
        self._namespaces = NamespaceManager(client)

    @property
    def kubectl(self) -> KubectlClient:
        return self._kubectl

    def _spawn(
        self,
        func: Callable[..., Any],
        *args: Any,
        success: str | Callable[[Any], ChannelEvent],
        failure: str,
    ) -> asyncio.Task[Any]:
        async def run() -> None:
            try:
                result = await asyncio.to_thread(func, *args)
            except Exception as e:
                logger.warning(
                    "action_failed",
                    action=getattr(func, "__name__", "action"),
                    error=_error_text(e),
                )
                self._channel.send(ActionFailed(f"{failure}: {_error_text(e)}"))
                return
            if isinstance(success, str):
                self._channel.send(ActionSucceeded(success))
            else:
                self._channel.send(success(result))

        return self._registry.spawn_oneshot(run())

    # =========================================================================
    # Confirmed actions
    # =========================================================================

    def execute(self, action: PendingAction, kind: ResourceKind, namespace: str) -> None:
        """Carry out a confirmed action."""
        match action:
            case DeleteResource(names=names):
                for name in names:
                    self.delete(kind, namespace, name)
            case RestartDeployment(name=name):
                self.restart(namespace, name)
            case ScaleDeployment(name=name, replicas=replicas):
                self.scale(namespace, name, replicas)

    def delete(self, kind: ResourceKind, namespace: str, name: str) -> None:
        """Delete one pod or deployment; each call reports on its own."""
        if kind is ResourceKind.POD:
            self._spawn(
                self._workloads.delete_pod,
                name,
                namespace,
                success=f"Pod '{name}' deleted",
                failure=f"Delete '{name}' failed",
            )
        elif kind is ResourceKind.DEPLOYMENT:
            self._spawn(
                self._workloads.delete_deployment,
                name,
                namespace,
                success=f"Deployment '{name}' deleted",
                failure=f"Delete '{name}' failed",
            )

    def restart(self, namespace: str, name: str) -> None:
        self._spawn(
            self._workloads.restart_deployment,
            name,
            namespace,
            success=f"Rollout restart: '{name}'",
            failure=f"Restart '{name}' failed",
        )

    def scale(self, namespace: str, name: str, replicas: int) -> None:
        def scale_to(name: str, namespace: str) -> None:
            self._workloads.scale_deployment(name, namespace, replicas=replicas)

        self._spawn(
            scale_to,
            name,
            namespace,
            success=f"'{name}' scaled to {replicas} replicas",
            failure=f"Scale '{name}' failed",
        )

    # =========================================================================
    # Read-only actions
    # =========================================================================

    def describe(self, kind: ResourceKind, namespace: str, name: str, context: str) -> None:
        self._spawn(
            self._kubectl.describe,
            kind.singular,
            name,
            namespace,
            context,
            success=lambda lines: DescribeReady(tuple(lines)),
            failure="Describe failed",
        )

    def load_namespaces(self, context: str, current_namespace: str) -> None:
        """Discover namespaces: API first, then kubectl, then just the current one."""

        def discover() -> list[str]:
            try:
                return self._namespaces.list_namespace_names()
            except Exception as e:
                logger.debug("namespace_api_list_failed", context=context, error=str(e))
            try:
                names = self._kubectl.get_namespace_names(context)
            except KubernetesError as e:
                logger.debug("namespace_kubectl_list_failed", context=context, error=str(e))
                names = []
            return names or [current_namespace]

        async def run() -> None:
            names = await asyncio.to_thread(discover)
            self._channel.send(NamespacesLoaded(context, tuple(names)))

        self._registry.spawn_oneshot(run())

    # =========================================================================
    # Clipboard
    # =========================================================================

    def copy_to_clipboard(self, label: str, value: str) -> None:
        """Copy a secret value and arm the delayed clear."""
        try:
            self._clipboard_copy(value)
        except pyperclip.PyperclipException as e:
            self._channel.send(ActionFailed(f"Clipboard error: {e}"))
            return
        self._channel.send(
            ActionSucceeded(f"Copied '{label}' to clipboard (clears in {CLIPBOARD_CLEAR_SECONDS}s)")
        )
        self._registry.spawn(TaskKind.CLIPBOARD_CLEAR, self._clear_clipboard_later())

    async def _clear_clipboard_later(self) -> None:
        await asyncio.sleep(CLIPBOARD_CLEAR_SECONDS)
        try:
            await asyncio.to_thread(self._clipboard_copy, "")
        except pyperclip.PyperclipException as e:
            logger.warning("clipboard_clear_failed", error=str(e))
