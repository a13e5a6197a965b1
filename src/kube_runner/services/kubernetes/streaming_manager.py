"""Streaming operations manager for Kubernetes.

Provides live log following and bounded log history fetches through the
Kubernetes API.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from kube_runner.integrations.kubernetes.client import close_response
from kube_runner.services.kubernetes.base import K8sBaseManager


class LogStream:
    """A followed pod log: iterate for lines, ``close()`` from any thread.

    Closing shuts the underlying response down, so a reader blocked on a
    quiet pod returns instead of waiting for the next line.
    """

    def __init__(self, response: Any) -> None:
        self._response = response
        self.closed = False

    def __iter__(self) -> Iterator[str]:
        try:
            for line in self._response:
                if self.closed:
                    return
                if isinstance(line, bytes):
                    yield line.decode("utf-8", errors="replace").rstrip("\r\n")
                else:
                    yield str(line).rstrip("\r\n")
        finally:
            self.close()

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        close_response(self._response)


class StreamingManager(K8sBaseManager):
    """Manager for pod log streams.

    ``follow_logs`` returns a blocking iterator meant for a worker thread;
    ``fetch_log_tail`` returns the last N lines in one request.
    """

    _entity_name = "streaming"

    def follow_logs(
        self,
        pod_name: str,
        namespace: str | None = None,
        *,
        tail_lines: int | None = None,
        container: str | None = None,
    ) -> LogStream:
        """Stream logs from a pod in follow mode.

        The request is issued eagerly so connection and permission errors
        surface here rather than on first iteration.

        Args:
            pod_name: Pod name.
            namespace: Target namespace.
            tail_lines: Number of existing lines to start from.
            container: Specific container name.

        Returns:
            A ``LogStream`` yielding lines without trailing newlines. Its
            ``close()`` releases the underlying connection.
        """
        ns = self._resolve_namespace(namespace)
        self._log.debug("following_logs", pod=pod_name, namespace=ns, tail_lines=tail_lines)

        kwargs: dict[str, Any] = {
            "name": pod_name,
            "namespace": ns,
            "follow": True,
            "_preload_content": False,
        }
        if container:
            kwargs["container"] = container
        if tail_lines is not None:
            kwargs["tail_lines"] = tail_lines

        try:
            response = self._client.core_v1.read_namespaced_pod_log(**kwargs)
        except Exception as e:
            self._handle_api_error(e, "Pod", pod_name, ns)

        return LogStream(response)

    def fetch_log_tail(
        self,
        pod_name: str,
        namespace: str | None = None,
        *,
        tail_lines: int,
        container: str | None = None,
    ) -> list[str]:
        """Fetch the last ``tail_lines`` lines of a pod's log without following.

        Args:
            pod_name: Pod name.
            namespace: Target namespace.
            tail_lines: Number of lines from the end.
            container: Specific container name.

        Returns:
            Log lines, oldest first.
        """
        ns = self._resolve_namespace(namespace)
        self._log.debug("fetching_log_tail", pod=pod_name, namespace=ns, tail_lines=tail_lines)

        kwargs: dict[str, Any] = {
            "name": pod_name,
            "namespace": ns,
            "tail_lines": tail_lines,
        }
        if container:
            kwargs["container"] = container

        logs: str = self._call(
            self._client.core_v1.read_namespaced_pod_log, "Pod", pod_name, **kwargs
        )
        return logs.splitlines() if logs else []
