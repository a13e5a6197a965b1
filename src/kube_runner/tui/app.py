"""Textual application hosting the orchestrator.

The app owns the terminal: it forwards every key press into the
orchestrator's input queue, reports resizes, and redraws three static
regions (header, body, footer) from the session whenever asked.
"""

from __future__ import annotations

import contextlib
import time
from collections.abc import Iterator
from typing import TYPE_CHECKING

from textual import events
from textual.app import App, ComposeResult
from textual.screen import Screen
from textual.widgets import Static

from kube_runner.core.dispatcher import KeyPress
from kube_runner.core.orchestrator import Orchestrator
from kube_runner.logging import get_logger
from kube_runner.tui.render import render_body, render_footer, render_header

if TYPE_CHECKING:
    from kube_runner.core.session import Session
    from kube_runner.core.settings_store import SettingsStore
    from kube_runner.integrations.kubernetes.client import KubernetesClient

logger = get_logger(__name__, component="tui")


class MainScreen(Screen[None], inherit_bindings=False):
    """Single full-screen view; keys go straight to the orchestrator."""

    DEFAULT_CSS = """
    MainScreen {
        layout: vertical;
    }
    #header {
        height: 1;
    }
    #body {
        height: 1fr;
    }
    #footer {
        height: 1;
    }
    """

    def __init__(self, orchestrator: Orchestrator) -> None:
        super().__init__()
        self._orchestrator = orchestrator

    def compose(self) -> ComposeResult:
        yield Static(id="header")
        yield Static(id="body")
        yield Static(id="footer")

    def on_key(self, event: events.Key) -> None:
        event.stop()
        event.prevent_default()
        self._orchestrator.feed_key(KeyPress(event.key, event.character))

    def on_resize(self, event: events.Resize) -> None:
        self._orchestrator.resize(event.size.height, event.size.width)

    def draw(self, session: Session) -> None:
        self.query_one("#header", Static).update(render_header(session, time.monotonic()))
        self.query_one("#body", Static).update(render_body(session))
        self.query_one("#footer", Static).update(render_footer(session))


class KubeRunnerApp(App[None], inherit_bindings=False):
    """Full-screen client for pods, deployments and secrets.

    Args:
        client: Kubernetes API client for the initial context.
        settings: Loaded settings store.
        namespace: Initial namespace override.
    """

    TITLE = "kr"
    ENABLE_COMMAND_PALETTE = False

    def __init__(
        self,
        client: KubernetesClient,
        settings: SettingsStore,
        namespace: str | None = None,
    ) -> None:
        super().__init__()
        self.orchestrator = Orchestrator(client, settings, surface=self, namespace=namespace)
        self._main = MainScreen(self.orchestrator)

    def on_mount(self) -> None:
        self.push_screen(self._main)
        self.orchestrator.resize(self.size.height, self.size.width)
        self.run_worker(self._run_orchestrator(), name="orchestrator", exclusive=True)

    async def _run_orchestrator(self) -> None:
        try:
            await self.orchestrator.run()
        except Exception:
            logger.exception("orchestrator_crashed")
            self.exit(return_code=1)
            raise
        self.exit()

    # Surface protocol

    def draw(self, session: Session) -> None:
        if self.screen is self._main:
            self._main.draw(session)

    @contextlib.contextmanager
    def suspend_terminal(self) -> Iterator[None]:
        if self.is_headless:
            yield
            return
        with self.suspend():
            yield
