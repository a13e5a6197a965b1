"""Orchestrator: the single-writer event loop of the interactive client.

Every iteration renders if needed, honours quit, performs a pending
context switch, re-subscribes when the (kind, namespace, context) triple
changed, and otherwise waits on four sources at once: a periodic tick,
terminal input, the active watch stream and the result channel.
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable, Iterator
from typing import Any, Protocol

import pyperclip
import structlog

from kube_runner.core.actions import ActionRunner, LogStreamer
from kube_runner.core.channel import EventChannel
from kube_runner.core.dispatcher import Dispatcher, KeyPress
from kube_runner.core.events import (
    ActionFailed,
    ActionSucceeded,
    ChannelEvent,
    DescribeReady,
    InitialListDone,
    LogHistory,
    LogHistoryFailed,
    LogLine,
    LogStreamEnded,
    NamespacesLoaded,
    ShellExited,
    ShellOutput,
    WatchError,
    WatchEvent,
    WatcherForbidden,
)
from kube_runner.core.logs import LogSession
from kube_runner.core.models import ResourceKind
from kube_runner.core.modes import Mode
from kube_runner.core.session import Session
from kube_runner.core.settings_store import SettingsStore
from kube_runner.core.tasks import TaskRegistry
from kube_runner.core.watch import ResourceWatchManager
from kube_runner.integrations.kubernetes.client import KubernetesClient
from kube_runner.integrations.kubernetes.exceptions import KubernetesError
from kube_runner.integrations.kubernetes.kubectl_client import KubectlClient

logger = structlog.get_logger()

TICK_SECONDS = 0.25


class Surface(Protocol):
    """What the orchestrator needs from the terminal layer."""

    def draw(self, session: Session) -> None: ...

    def suspend_terminal(self) -> contextlib.AbstractContextManager[Any]: ...


@contextlib.contextmanager
def _no_suspend() -> Iterator[None]:
    yield


class HeadlessSurface:
    """A surface that draws nothing; used when no terminal is attached."""

    def __init__(self) -> None:
        self.draws = 0

    def draw(self, session: Session) -> None:
        self.draws += 1

    def suspend_terminal(self) -> contextlib.AbstractContextManager[Any]:
        return _no_suspend()


def access_denied_message(kind: ResourceKind, message: str) -> str:
    if message:
        return f"Access denied: {kind.plural} — {message}"
    return f"Access denied: cannot list {kind.plural}"


class Orchestrator:
    """Owns the ``Session`` and every background collaborator.

    Args:
        client: Cluster client for the initial context.
        settings: Local settings store, already loaded.
        surface: Terminal layer to render into.
        namespace: Initial namespace; defaults to the context's namespace.
        kubectl: kubectl wrapper; one is created when omitted.
        clipboard_copy: Clipboard writer handed to the action runner.

    Example:
        ```python
        orchestrator = Orchestrator(client, settings, surface)
        orchestrator.feed_key(KeyPress("j", "j"))
        await orchestrator.run()
        ```
    """

    def __init__(
        self,
        client: KubernetesClient,
        settings: SettingsStore,
        surface: Surface | None = None,
        namespace: str | None = None,
        kubectl: KubectlClient | None = None,
        clipboard_copy: Callable[[str], None] = pyperclip.copy,
    ) -> None:
        self._client = client
        self._settings = settings
        self._surface: Surface = surface or HeadlessSurface()
        self._registry = TaskRegistry()
        self._channel: EventChannel[ChannelEvent] = EventChannel(name="results")
        self._input: asyncio.Queue[KeyPress] = asyncio.Queue()

        self._streamer = LogStreamer(client, self._channel, self._registry)
        self._actions = ActionRunner(
            client,
            self._channel,
            self._registry,
            kubectl=kubectl,
            clipboard_copy=clipboard_copy,
        )
        self._watch = ResourceWatchManager(client)

        self.session = Session(
            LogSession(self._streamer),
            namespace=namespace or client.default_namespace,
            context=client.get_current_context(),
        )
        self._dispatcher = Dispatcher(
            self.session, self._actions, settings, self._registry, self._channel
        )

        self._watch_key: tuple[ResourceKind, str, str] | None = None
        self._tick_task: asyncio.Task[None] | None = None
        self._input_task: asyncio.Task[KeyPress] | None = None
        self._watch_task: asyncio.Task[WatchEvent] | None = None
        self._watch_task_stream: object | None = None
        self._channel_task: asyncio.Task[ChannelEvent] | None = None

    @property
    def client(self) -> KubernetesClient:
        return self._client

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def watch(self) -> ResourceWatchManager:
        return self._watch

    # =========================================================================
    # Inputs from the terminal layer
    # =========================================================================

    def feed_key(self, key: KeyPress) -> None:
        """Queue a key press for the loop."""
        self._input.put_nowait(key)

    def resize(self, rows: int, cols: int) -> None:
        """Record a new viewport size and resize any embedded terminal."""
        s = self.session
        s.viewport_rows = rows
        s.viewport_cols = cols
        if s.shell is not None:
            s.shell.resize(*s.shell_size)
        s.dirty = True

    # =========================================================================
    # Startup and shutdown
    # =========================================================================

    def startup(self) -> None:
        """Load contexts and seed namespaces before the first iteration."""
        s = self.session
        s.contexts = self._client.list_context_names()
        s.context = self._client.get_current_context()
        s.seed_namespaces(self._settings.get_namespaces(s.context))
        s.reset_namespace_popup()
        self._actions.load_namespaces(s.context, s.namespace)
        logger.info("orchestrator_started", context=s.context, namespace=s.namespace)

    def shutdown(self) -> None:
        """Cancel every background operation and release resources."""
        self._dispatcher.close_shell()
        self.session.log.stop()
        self._watch.teardown()
        self._registry.cancel_all()
        for task in (self._tick_task, self._input_task, self._watch_task, self._channel_task):
            if task is not None:
                task.cancel()
        self._tick_task = self._input_task = self._watch_task = self._channel_task = None
        self._channel.close()
        logger.info("orchestrator_stopped")

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(self) -> None:
        """Run until the user quits."""
        self._channel.bind()
        self.startup()
        try:
            while await self.step():
                pass
        finally:
            self.shutdown()

    async def step(self) -> bool:
        """One loop iteration; returns ``False`` once the loop should exit."""
        s = self.session
        if s.dirty:
            self._surface.draw(s)
            s.dirty = False

        if s.should_quit:
            return False

        if s.pending_context is not None:
            context, s.pending_context = s.pending_context, None
            self.switch_context(context)
            return True

        if (s.kind, s.namespace, s.context) != self._watch_key:
            self.resubscribe()
            return True

        await self._wait()
        return True

    def resubscribe(self) -> None:
        """Tear down the current watch and subscribe to the session's triple."""
        s = self.session
        self._watch.teardown()
        s.reset_for_watch()
        self._watch.subscribe(s.kind, s.namespace)
        self._watch_key = (s.kind, s.namespace, s.context)

    def _ensure_waiters(self) -> set[asyncio.Task[Any]]:
        loop = asyncio.get_running_loop()
        if self._tick_task is None:
            self._tick_task = loop.create_task(asyncio.sleep(TICK_SECONDS))
        if self._input_task is None:
            self._input_task = loop.create_task(self._input.get())
        subscription = self._watch.current
        stream = subscription.stream if subscription is not None else None
        if self._watch_task is not None and self._watch_task_stream is not stream:
            self._watch_task.cancel()
            self._watch_task = None
        if self._watch_task is None and stream is not None:
            self._watch_task = loop.create_task(stream.next())
            self._watch_task_stream = stream
        if self._channel_task is None:
            self._channel_task = loop.create_task(self._channel.recv())
        return {
            task
            for task in (self._tick_task, self._input_task, self._watch_task, self._channel_task)
            if task is not None
        }

    async def _wait(self) -> None:
        waiters = self._ensure_waiters()
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)

        if self._tick_task in done:
            self._tick_task = None
            self.session.clear_stale_messages()
            self.session.dirty = True

        if self._input_task in done:
            key = self._input_task.result()
            self._input_task = None
            self._dispatcher.handle(key)

        if self._watch_task is not None and self._watch_task in done:
            stream = self._watch_task_stream
            event = self._watch_task.result()
            self._watch_task = None
            needs_refresh = self._apply_watch_event(event)
            # The stream may have been parked by the event above
            subscription = self._watch.current
            if subscription is not None and subscription.stream is stream:
                for queued in subscription.stream.drain():
                    needs_refresh |= self._apply_watch_event(queued)
            self._finish_watch_events(needs_refresh)

        if self._channel_task in done:
            event = self._channel_task.result()
            self._channel_task = None
            self.handle_channel_event(event)
            for queued in self._channel.drain():
                self.handle_channel_event(queued)

    # =========================================================================
    # Context switching
    # =========================================================================

    def switch_context(self, context: str) -> None:
        """Rebind every collaborator to ``context``.

        The credential exchange may prompt on the terminal, so it runs with
        the surface suspended.
        """
        s = self.session
        logger.info("context_switch_requested", context=context)
        try:
            with self._surface.suspend_terminal():
                new_client = self._client.switch_context(context)
        except KubernetesError as e:
            logger.warning("context_switch_failed", context=context, error=str(e))
            s.set_error(f"Context switch failed: {e}")
            return

        self._client = new_client
        self._watch.rebind(new_client)
        self._watch_key = None
        self._streamer.rebind(new_client)
        self._actions.rebind(new_client)

        s.context = new_client.get_current_context()
        s.namespace = new_client.namespace_for_context(s.context)
        s.seed_namespaces(self._settings.get_namespaces(s.context))
        s.reset_namespace_popup()
        s.dirty = True
        self._actions.load_namespaces(s.context, s.namespace)

    # =========================================================================
    # Event handling
    # =========================================================================

    def handle_watch_event(self, event: WatchEvent) -> None:
        self._finish_watch_events(self._apply_watch_event(event))

    def _apply_watch_event(self, event: WatchEvent) -> bool:
        """Apply one watch event; returns whether the item list needs a refresh."""
        s = self.session
        match event:
            case WatcherForbidden(message=message):
                s.set_error(access_denied_message(s.kind, message))
                s.stop_loading()
                self._watch.park()
                return False
            case WatchError(message=message):
                s.set_error(message)
                return False
            case InitialListDone():
                s.stop_loading()
                return True
            case _:
                return not s.loading

    def _finish_watch_events(self, needs_refresh: bool) -> None:
        if needs_refresh:
            self.session.set_items(self._watch.refresh())
        self.session.dirty = True

    def handle_channel_event(self, event: ChannelEvent) -> None:
        s = self.session
        log = s.log
        match event:
            case LogLine(generation=generation, line=line):
                if generation == log.generation:
                    log.push_line(line)
            case LogHistory(generation=generation, lines=lines):
                notice = log.merge_history(generation, lines)
                if notice:
                    s.set_error(notice)
            case LogStreamEnded(generation=generation, error=error):
                if generation == log.generation:
                    log.stream_ended = True
                    if error:
                        s.set_error(f"Log error: {error}")
            case LogHistoryFailed(generation=generation, error=error):
                log.history_failed(generation)
                if generation == log.generation:
                    s.set_error(f"Log history error: {error}")
            case ActionSucceeded(message=message):
                s.set_success(message)
            case ActionFailed(message=message):
                s.set_error(message)
            case ShellOutput(session_id=session_id, data=data):
                if s.shell is not None and s.shell.id == session_id:
                    s.shell.feed(data)
            case ShellExited(session_id=session_id):
                if s.shell is not None and s.shell.id == session_id:
                    self._dispatcher.close_shell()
                    if s.mode is Mode.SHELL_VIEW:
                        s.mode = Mode.LIST
                    s.set_success("Shell session ended")
            case DescribeReady(lines=lines):
                s.describe_lines = list(lines)
                s.describe_scroll = 0
                s.mode = Mode.DESCRIBE_VIEW
            case NamespacesLoaded(context=context, namespaces=namespaces):
                merged = self._settings.merge_namespaces(context, list(namespaces))
                self._settings.save()
                if context == s.context:
                    s.seed_namespaces(merged)
                    if s.mode is not Mode.NAMESPACE_SELECT:
                        s.reset_namespace_popup()
        s.dirty = True
