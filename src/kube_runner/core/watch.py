"""Resource watch manager.

One subscription exists for the active (kind, namespace, context). A
daemon reflector thread lists the resources, reports ``InitialListDone``,
then watches from the list's resource version and applies every change to
a lock-guarded snapshot cache, reporting ``Refresh`` after each one.

Permission failures end the subscription with ``WatcherForbidden``; the
orchestrator then parks it on an inert stream so nothing is retried until
the subscription is replaced. Any other failure is reported as
``WatchError`` and the reflector relists with exponential backoff.
"""

from __future__ import annotations

import asyncio
import functools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import structlog
from kubernetes import watch as k8s_watch
from kubernetes.client import ApiException
from tenacity import RetryCallState, Retrying, retry_if_exception, wait_exponential

from kube_runner.core.channel import EventChannel
from kube_runner.core.events import (
    InitialListDone,
    Refresh,
    WatcherForbidden,
    WatchError,
    WatchEvent,
)
from kube_runner.core.models import ResourceItem, ResourceKind, item_from_k8s
from kube_runner.core.tasks import CancelToken
from kube_runner.integrations.kubernetes.client import KubernetesClient, close_response
from kube_runner.integrations.kubernetes.exceptions import KubernetesAuthError

logger = structlog.get_logger()

WATCH_TIMEOUT_SECONDS = 300
RECONNECT_MIN_SECONDS = 1
RECONNECT_MAX_SECONDS = 30
HTTP_GONE = 410


def is_forbidden(error: BaseException | dict[str, Any]) -> bool:
    """Whether a list/watch failure means the credentials lack permission.

    Covers failures of the initial list, of starting the watch, and ERROR
    objects delivered inside the watch stream.
    """
    if isinstance(error, dict):
        return error.get("code") == 403
    if isinstance(error, KubernetesAuthError):
        return error.forbidden
    if isinstance(error, ApiException):
        return error.status == 403
    return False


def forbidden_message(error: BaseException) -> str:
    """Server-provided reason for a permission failure, possibly empty."""
    if isinstance(error, ApiException):
        return KubernetesClient.api_error_message(error)
    return getattr(error, "message", None) or str(error)


class SnapshotCache:
    """Thread-safe mirror of the watched resources, keyed by uid."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._items: dict[str, ResourceItem] = {}

    @staticmethod
    def _key(item: ResourceItem) -> str:
        return item.uid or f"{item.namespace}/{item.name}"

    def replace(self, items: list[ResourceItem]) -> None:
        with self._lock:
            self._items = {self._key(item): item for item in items}

    def apply(self, event_type: str, item: ResourceItem) -> bool:
        """Apply one watch event; returns whether the cache changed."""
        key = self._key(item)
        with self._lock:
            if event_type in ("ADDED", "MODIFIED"):
                self._items[key] = item
                return True
            if event_type == "DELETED":
                return self._items.pop(key, None) is not None
        return False

    def snapshot(self) -> list[ResourceItem]:
        """Current contents sorted by name."""
        with self._lock:
            items = list(self._items.values())
        return sorted(items, key=lambda item: item.name)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class WatchStream:
    """Async view of the events a reflector produces."""

    def __init__(self) -> None:
        self.channel: EventChannel[WatchEvent] = EventChannel(name="watch")

    async def next(self) -> WatchEvent:
        return await self.channel.recv()

    def drain(self) -> list[WatchEvent]:
        return self.channel.drain()

    def close(self) -> None:
        self.channel.close()


class InertWatchStream(WatchStream):
    """A stream that never yields; used once a watch is forbidden."""

    def __init__(self) -> None:
        super().__init__()
        self.channel.close()

    async def next(self) -> WatchEvent:
        await asyncio.Event().wait()
        raise AssertionError("unreachable")

    def drain(self) -> list[WatchEvent]:
        return []


@dataclass
class WatchSubscription:
    """The live watch for one (kind, namespace, context)."""

    kind: ResourceKind
    namespace: str
    context: str
    cache: SnapshotCache
    stream: WatchStream
    token: CancelToken = field(default_factory=CancelToken)
    thread: threading.Thread | None = None
    forbidden: bool = False
    _watch: k8s_watch.Watch | None = None
    _response: Any = None

    @property
    def key(self) -> tuple[ResourceKind, str, str]:
        return (self.kind, self.namespace, self.context)

    def park(self) -> None:
        """Swap in an inert stream after a permission failure."""
        self.forbidden = True
        self.token.cancel()
        self.stream.close()
        self.stream = InertWatchStream()

    def attach_response(self, response: Any) -> None:
        """Track the open watch response so ``stop()`` can shut it down."""
        self._response = response
        if self.token.cancelled:
            close_response(response)

    def stop(self) -> None:
        """Stop the reflector and release its connection; later sends fail silently."""
        self.token.cancel()
        if self._watch is not None:
            self._watch.stop()
        close_response(self._response)
        self.stream.close()


def _list_function(client: KubernetesClient, kind: ResourceKind) -> Callable[..., Any]:
    if kind is ResourceKind.POD:
        return client.core_v1.list_namespaced_pod
    if kind is ResourceKind.DEPLOYMENT:
        return client.apps_v1.list_namespaced_deployment
    return client.core_v1.list_namespaced_secret


class _Reflector:
    """List-then-watch loop run on the subscription's thread."""

    def __init__(self, client: KubernetesClient, subscription: WatchSubscription) -> None:
        self._client = client
        self._sub = subscription
        self._list_fn = _list_function(client, subscription.kind)
        self._log = logger.bind(
            kind=subscription.kind.plural,
            namespace=subscription.namespace,
            context=subscription.context,
        )
        self._listed = False

    def _emit(self, event: WatchEvent) -> bool:
        if not self._sub.stream.channel.send(event):
            self._sub.token.cancel()
            return False
        return True

    def _report(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        self._log.warning("watch_failed", error=str(error), attempt=retry_state.attempt_number)
        if error is not None:
            self._emit(WatchError(f"Watcher error: {forbidden_message(error)}"))

    def run(self) -> None:
        token = self._sub.token
        retrying = Retrying(
            retry=retry_if_exception(lambda e: not is_forbidden(e)),
            wait=wait_exponential(
                multiplier=1, min=RECONNECT_MIN_SECONDS, max=RECONNECT_MAX_SECONDS
            ),
            stop=lambda _state: token.cancelled,
            sleep=token.wait,
            before_sleep=self._report,
            reraise=True,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._list_and_watch()
        except Exception as e:
            if token.cancelled:
                return
            if is_forbidden(e):
                message = forbidden_message(e)
                self._log.warning("watch_forbidden", error=message)
                self._emit(WatcherForbidden(message))
                return
            self._log.error("watch_aborted", error=str(e))
            self._emit(WatchError(f"Watcher error: {e}"))
        self._log.debug("watch_stopped")

    def _list(self) -> str | None:
        result = self._list_fn(namespace=self._sub.namespace)
        kind = self._sub.kind
        self._sub.cache.replace([item_from_k8s(kind, obj) for obj in result.items or []])
        resource_version = getattr(result.metadata, "resource_version", None)
        self._log.debug(
            "watch_listed", count=len(self._sub.cache), resource_version=resource_version
        )
        if not self._listed:
            self._listed = True
            event: WatchEvent = InitialListDone()
        else:
            event = Refresh()
        return (resource_version or "") if self._emit(event) else None

    def _list_and_watch(self) -> None:
        token = self._sub.token
        while not token.cancelled:
            resource_version = self._list()
            while not token.cancelled and resource_version is not None:
                resource_version = self._watch_once(resource_version)

    def _watch_once(self, resource_version: str) -> str | None:
        """Watch until the server closes the stream; returns the version to resume from.

        ``None`` means the version expired and the caller must relist.
        """
        w = k8s_watch.Watch()
        self._sub._watch = w
        kind = self._sub.kind
        list_fn = self._list_fn

        @functools.wraps(list_fn)
        def open_watch(*args: Any, **kwargs: Any) -> Any:
            response = list_fn(*args, **kwargs)
            self._sub.attach_response(response)
            return response

        try:
            for event in w.stream(
                open_watch,
                namespace=self._sub.namespace,
                resource_version=resource_version,
                timeout_seconds=WATCH_TIMEOUT_SECONDS,
                allow_watch_bookmarks=True,
            ):
                if self._sub.token.cancelled:
                    w.stop()
                    break
                event_type = event.get("type")
                obj = event.get("object")
                if event_type == "ERROR":
                    raw = event.get("raw_object") or {}
                    if raw.get("code") == HTTP_GONE:
                        return None
                    raise ApiException(status=raw.get("code"), reason=raw.get("message"))
                version = getattr(getattr(obj, "metadata", None), "resource_version", None)
                if version:
                    resource_version = version
                if event_type == "BOOKMARK":
                    continue
                if self._sub.cache.apply(event_type, item_from_k8s(kind, obj)):
                    if not self._emit(Refresh()):
                        w.stop()
                        break
        except ApiException as e:
            if e.status == HTTP_GONE:
                self._log.debug("watch_expired", resource_version=resource_version)
                return None
            raise
        return resource_version


class ResourceWatchManager:
    """Owns the single live watch subscription.

    Example:
        ```python
        manager = ResourceWatchManager(client)
        sub = manager.subscribe(ResourceKind.POD, "default")
        event = await sub.stream.next()
        items = manager.refresh()
        manager.teardown()
        ```
    """

    def __init__(self, client: KubernetesClient) -> None:
        self._client = client
        self._current: WatchSubscription | None = None

    @property
    def current(self) -> WatchSubscription | None:
        return self._current

    def rebind(self, client: KubernetesClient) -> None:
        """Use a new context's client for future subscriptions."""
        self.teardown()
        self._client = client

    def subscribe(self, kind: ResourceKind, namespace: str) -> WatchSubscription:
        """Replace the current subscription with a fresh one."""
        self.teardown()
        subscription = WatchSubscription(
            kind=kind,
            namespace=namespace,
            context=self._client.get_current_context(),
            cache=SnapshotCache(),
            stream=WatchStream(),
        )
        subscription.stream.channel.bind()
        reflector = _Reflector(self._client, subscription)
        thread = threading.Thread(
            target=reflector.run,
            name=f"kr-watch-{kind.plural}",
            daemon=True,
        )
        subscription.thread = thread
        self._current = subscription
        thread.start()
        logger.info(
            "watch_started",
            kind=kind.plural,
            namespace=namespace,
            context=subscription.context,
        )
        return subscription

    def park(self) -> None:
        """Park the current subscription on an inert stream."""
        if self._current is not None:
            self._current.park()

    def teardown(self) -> None:
        """Stop and forget the current subscription."""
        if self._current is None:
            return
        self._current.stop()
        logger.debug("watch_torn_down", kind=self._current.kind.plural)
        self._current = None

    def refresh(self) -> list[ResourceItem]:
        """Items of the current subscription, sorted by name."""
        if self._current is None:
            return []
        return self._current.cache.snapshot()
