"""Unit tests for background actions and log streaming."""

from __future__ import annotations

import asyncio
import threading
from collections.abc import Iterator
from unittest.mock import MagicMock

import pyperclip
import pytest

from kube_runner.core import actions as actions_module
from kube_runner.core.actions import ActionRunner, LogStreamer
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
from kube_runner.core.modes import DeleteResource, RestartDeployment, ScaleDeployment
from kube_runner.core.tasks import TaskKind, TaskRegistry
from kube_runner.integrations.kubernetes.kubectl_client import KubectlError
from kube_runner.services.kubernetes import LogStream


class QuietPodResponse:
    """Streaming response for a pod that never logs again; unblocks on shutdown."""

    def __init__(self) -> None:
        self.reading = threading.Event()
        self.shut_down = threading.Event()
        self.released = False

    def __iter__(self) -> Iterator[bytes]:
        yield b"last line\n"
        self.reading.set()
        self.shut_down.wait(5)

    def shutdown(self) -> None:
        self.shut_down.set()

    def release_conn(self) -> None:
        self.released = True


class FakeClipboard:
    def __init__(self, error: Exception | None = None) -> None:
        self.copies: list[str] = []
        self.error = error

    def __call__(self, text: str) -> None:
        if self.error is not None:
            raise self.error
        self.copies.append(text)


@pytest.fixture
def channel() -> EventChannel[ChannelEvent]:
    return EventChannel()


@pytest.fixture
def registry() -> TaskRegistry:
    return TaskRegistry()


@pytest.fixture
def clipboard() -> FakeClipboard:
    return FakeClipboard()


@pytest.fixture
def runner(
    mock_k8s_client: MagicMock,
    channel: EventChannel[ChannelEvent],
    registry: TaskRegistry,
    clipboard: FakeClipboard,
) -> ActionRunner:
    runner = ActionRunner(
        mock_k8s_client, channel, registry, kubectl=MagicMock(), clipboard_copy=clipboard
    )
    runner._workloads = MagicMock()
    runner._namespaces = MagicMock()
    return runner


async def receive(channel: EventChannel[ChannelEvent]) -> ChannelEvent:
    return await asyncio.wait_for(channel.recv(), timeout=2)


@pytest.mark.unit
class TestConfirmedActions:
    """Tests for delete, restart and scale."""

    @pytest.mark.asyncio
    async def test_delete_each_name_reports_separately(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner.execute(DeleteResource(2, "pod(s)", ("a", "b")), ResourceKind.POD, "default")

        events = {await receive(channel), await receive(channel)}

        assert events == {ActionSucceeded("Pod 'a' deleted"), ActionSucceeded("Pod 'b' deleted")}
        runner._workloads.delete_pod.assert_any_call("a", "default")
        runner._workloads.delete_pod.assert_any_call("b", "default")

    @pytest.mark.asyncio
    async def test_delete_failure_names_resource(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner._workloads.delete_deployment.side_effect = RuntimeError("conflict")

        runner.delete(ResourceKind.DEPLOYMENT, "prod", "api")

        assert await receive(channel) == ActionFailed("Delete 'api' failed: conflict")

    @pytest.mark.asyncio
    async def test_delete_secret_is_ignored(
        self, runner: ActionRunner, registry: TaskRegistry
    ) -> None:
        runner.delete(ResourceKind.SECRET, "default", "db")
        assert not registry._oneshots

    @pytest.mark.asyncio
    async def test_restart(self, runner: ActionRunner, channel: EventChannel[ChannelEvent]) -> None:
        channel.bind()
        runner.execute(RestartDeployment("api"), ResourceKind.DEPLOYMENT, "prod")

        assert await receive(channel) == ActionSucceeded("Rollout restart: 'api'")
        runner._workloads.restart_deployment.assert_called_once_with("api", "prod")

    @pytest.mark.asyncio
    async def test_scale(self, runner: ActionRunner, channel: EventChannel[ChannelEvent]) -> None:
        channel.bind()
        runner.execute(ScaleDeployment("api", 3), ResourceKind.DEPLOYMENT, "prod")

        assert await receive(channel) == ActionSucceeded("'api' scaled to 3 replicas")
        runner._workloads.scale_deployment.assert_called_once_with("api", "prod", replicas=3)


@pytest.mark.unit
class TestReadOnlyActions:
    """Tests for describe and namespace discovery."""

    @pytest.mark.asyncio
    async def test_describe_delivers_lines(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner.kubectl.describe.return_value = ["Name: web-0", "Status: Running"]

        runner.describe(ResourceKind.POD, "default", "web-0", "dev")

        assert await receive(channel) == DescribeReady(("Name: web-0", "Status: Running"))
        runner.kubectl.describe.assert_called_once_with("pod", "web-0", "default", "dev")

    @pytest.mark.asyncio
    async def test_describe_failure(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner.kubectl.describe.side_effect = KubectlError("not found")

        runner.describe(ResourceKind.POD, "default", "web-0", "dev")

        event = await receive(channel)
        assert isinstance(event, ActionFailed)
        assert event.message.startswith("Describe failed: ")

    @pytest.mark.asyncio
    async def test_namespaces_from_api(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner._namespaces.list_namespace_names.return_value = ["default", "prod"]

        runner.load_namespaces("dev", "default")

        assert await receive(channel) == NamespacesLoaded("dev", ("default", "prod"))
        runner.kubectl.get_namespace_names.assert_not_called()

    @pytest.mark.asyncio
    async def test_namespaces_fall_back_to_kubectl(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner._namespaces.list_namespace_names.side_effect = RuntimeError("forbidden")
        runner.kubectl.get_namespace_names.return_value = ["team-a"]

        runner.load_namespaces("dev", "default")

        assert await receive(channel) == NamespacesLoaded("dev", ("team-a",))

    @pytest.mark.asyncio
    async def test_namespaces_fall_back_to_current(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        runner._namespaces.list_namespace_names.side_effect = RuntimeError("forbidden")
        runner.kubectl.get_namespace_names.side_effect = KubectlError("kubectl missing")

        runner.load_namespaces("dev", "team-b")

        assert await receive(channel) == NamespacesLoaded("dev", ("team-b",))


@pytest.mark.unit
class TestClipboard:
    """Tests for copying secret values."""

    @pytest.mark.asyncio
    async def test_copy_arms_clear(
        self,
        runner: ActionRunner,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
        clipboard: FakeClipboard,
    ) -> None:
        channel.bind()

        runner.copy_to_clipboard("password", "hunter2")

        assert clipboard.copies == ["hunter2"]
        event = channel.try_recv()
        assert isinstance(event, ActionSucceeded)
        assert "Copied 'password' to clipboard" in event.message
        assert registry.is_running(TaskKind.CLIPBOARD_CLEAR)
        registry.cancel_all()

    @pytest.mark.asyncio
    async def test_clear_runs_after_delay(
        self,
        runner: ActionRunner,
        channel: EventChannel[ChannelEvent],
        clipboard: FakeClipboard,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        channel.bind()
        monkeypatch.setattr(actions_module, "CLIPBOARD_CLEAR_SECONDS", 0)

        runner.copy_to_clipboard("password", "hunter2")
        for _ in range(100):
            if len(clipboard.copies) == 2:
                break
            await asyncio.sleep(0.01)

        assert clipboard.copies == ["hunter2", ""]

    @pytest.mark.asyncio
    async def test_second_copy_restarts_clear(
        self, runner: ActionRunner, channel: EventChannel[ChannelEvent], registry: TaskRegistry
    ) -> None:
        channel.bind()
        runner.copy_to_clipboard("a", "1")
        first = registry.get(TaskKind.CLIPBOARD_CLEAR)

        runner.copy_to_clipboard("b", "2")
        await asyncio.sleep(0.01)

        assert first is not None and first.done
        assert registry.is_running(TaskKind.CLIPBOARD_CLEAR)
        registry.cancel_all()

    @pytest.mark.asyncio
    async def test_clipboard_unavailable(
        self,
        mock_k8s_client: MagicMock,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
    ) -> None:
        channel.bind()
        broken = FakeClipboard(error=pyperclip.PyperclipException("no clipboard"))
        runner = ActionRunner(
            mock_k8s_client, channel, registry, kubectl=MagicMock(), clipboard_copy=broken
        )

        runner.copy_to_clipboard("password", "hunter2")

        assert channel.try_recv() == ActionFailed("Clipboard error: no clipboard")
        assert not registry.is_running(TaskKind.CLIPBOARD_CLEAR)


@pytest.mark.unit
class TestLogStreamer:
    """Tests for log follow and history threads."""

    @pytest.fixture
    def streamer(
        self,
        mock_k8s_client: MagicMock,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
    ) -> Iterator[LogStreamer]:
        streamer = LogStreamer(mock_k8s_client, channel, registry)
        streamer._streaming = MagicMock()
        yield streamer
        streamer.stop()

    @pytest.mark.asyncio
    async def test_follow_sends_lines_then_end(
        self, streamer: LogStreamer, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        streamer._streaming.follow_logs.return_value = LogStream(["one", "two"])

        streamer.start_follow("web-0", "default", 4, 100)

        assert await receive(channel) == LogLine(4, "one")
        assert await receive(channel) == LogLine(4, "two")
        assert await receive(channel) == LogStreamEnded(4, None)
        streamer._streaming.follow_logs.assert_called_once_with("web-0", "default", tail_lines=100)

    @pytest.mark.asyncio
    async def test_follow_error_reported(
        self, streamer: LogStreamer, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        streamer._streaming.follow_logs.side_effect = RuntimeError("container not found")

        streamer.start_follow("web-0", "default", 1, 100)

        assert await receive(channel) == LogStreamEnded(1, "container not found")

    @pytest.mark.asyncio
    async def test_fetch_history(
        self, streamer: LogStreamer, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        streamer._streaming.fetch_log_tail.return_value = ["old", "new"]

        streamer.fetch_history("web-0", "default", 2, 200)

        assert await receive(channel) == LogHistory(2, ("old", "new"))

    @pytest.mark.asyncio
    async def test_fetch_history_failure(
        self, streamer: LogStreamer, channel: EventChannel[ChannelEvent]
    ) -> None:
        channel.bind()
        streamer._streaming.fetch_log_tail.side_effect = RuntimeError("timeout")

        streamer.fetch_history("web-0", "default", 2, 200)

        assert await receive(channel) == LogHistoryFailed(2, "timeout")

    @pytest.mark.asyncio
    async def test_stop_releases_blocked_follow(
        self,
        streamer: LogStreamer,
        channel: EventChannel[ChannelEvent],
        registry: TaskRegistry,
    ) -> None:
        """Should close the response so a reader blocked on a quiet pod exits."""
        channel.bind()
        response = QuietPodResponse()
        streamer._streaming.follow_logs.return_value = LogStream(response)

        streamer.start_follow("web-0", "default", 3, 100)
        assert await receive(channel) == LogLine(3, "last line")
        assert await asyncio.to_thread(response.reading.wait, 1)
        handle = registry.get(TaskKind.LOG_FOLLOW)
        assert handle is not None

        streamer.stop()

        assert response.shut_down.is_set()
        for _ in range(100):
            if handle.done:
                break
            await asyncio.sleep(0.01)
        assert handle.done
        assert response.released
        assert channel.try_recv() is None
