"""Terminal user interface built with Textual.

Usage:
    from kube_runner.tui import KubeRunnerApp

    KubeRunnerApp(client, settings).run()
"""

from kube_runner.tui.app import KubeRunnerApp
from kube_runner.tui.render import render_session
from kube_runner.tui.theme import Colors, Styles

__all__ = ["Colors", "KubeRunnerApp", "Styles", "render_session"]
