"""Theme constants and style helpers for the terminal interface.

Usage:
    from kube_runner.tui.theme import Colors, Styles, phase_style

    Text(pod.phase, style=phase_style(pod.phase))
    Styles.error("Access denied: pods")
"""

from __future__ import annotations


class Colors:
    """Hex colours for Rich styles."""

    SUCCESS = "#22c55e"
    WARNING = "#eab308"
    ERROR = "#ef4444"
    PRIMARY = "#06b6d4"
    MUTED = "#6b7280"

    SELECTED_ROW = "reverse"
    MARKED_ROW = "bold #a855f7"
    SEARCH_HIT = "black on #eab308"
    SEARCH_MATCH_LINE = "on #1e3a5f"


PHASE_STYLES: dict[str, str] = {
    "Running": Colors.SUCCESS,
    "Succeeded": Colors.PRIMARY,
    "Pending": Colors.WARNING,
    "Failed": Colors.ERROR,
}

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"


def phase_style(phase: str) -> str:
    """Colour for a pod phase; unknown phases are muted."""
    return PHASE_STYLES.get(phase, Colors.MUTED)


class Styles:
    """Rich markup wrappers."""

    @staticmethod
    def success(text: str) -> str:
        return f"[{Colors.SUCCESS}]{text}[/]"

    @staticmethod
    def warning(text: str) -> str:
        return f"[{Colors.WARNING}]{text}[/]"

    @staticmethod
    def error(text: str) -> str:
        return f"[{Colors.ERROR}]{text}[/]"

    @staticmethod
    def muted(text: str) -> str:
        return f"[dim]{text}[/dim]"

    @staticmethod
    def bold(text: str) -> str:
        return f"[bold]{text}[/bold]"
