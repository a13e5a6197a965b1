"""Session: the single mutable root of the interactive client.

Only the orchestrator (directly or through the dispatcher) writes to a
``Session``. Renderers read it. Background work never touches it; it
reports through the result channel instead.
"""

from __future__ import annotations

import time
from collections import Counter
from typing import TYPE_CHECKING

from kube_runner.core.models import PodItem, ResourceItem, ResourceKind, SecretItem
from kube_runner.core.modes import Mode, PendingAction

if TYPE_CHECKING:
    from kube_runner.core.logs import LogSession
    from kube_runner.core.pty_session import PtySession

SUCCESS_BANNER_SECONDS = 5.0
ERROR_BANNER_SECONDS = 15.0
ACCESS_DENIED_PREFIX = "Access denied"

# Rows taken by header, tab bar, table header and footer around the item table
LIST_CHROME_ROWS = 8
# Rows taken by the log pane's border, title and status line
LOG_CHROME_ROWS = 4


class Session:
    """All interactive state.

    Args:
        log: Log viewer state, bound to its background source.
        namespace: Initial namespace.
        context: Initial kubeconfig context.
    """

    def __init__(
        self,
        log: LogSession,
        namespace: str = "default",
        context: str = "default",
    ) -> None:
        self.kind = ResourceKind.POD
        self.namespace = namespace
        self.context = context
        self.pending_context: str | None = None

        self.mode = Mode.LIST
        self.should_quit = False
        self.dirty = True

        self.loading = False
        self.loading_since: float | None = None

        # Resource table
        self.items: list[ResourceItem] = []
        self.filtered_items: list[ResourceItem] = []
        self.cursor: int | None = None
        self.selection: set[int] = set()
        self.filter_query = ""
        self.status_filter: set[str] = set()

        # Status filter popup
        self.status_filter_items: list[tuple[str, int]] = []
        self.status_filter_selected: set[int] = set()
        self.status_filter_cursor: int | None = None

        # Context and namespace popups
        self.contexts: list[str] = []
        self.namespaces: list[str] = []
        self.filtered_namespaces: list[str] = []
        self.namespace_input = ""
        self.namespace_typing = False
        self.popup_cursor: int | None = None

        # Viewers
        self.secret_name: str | None = None
        self.secret_decoded: list[tuple[str, str]] | None = None
        self.secret_cursor = 0
        self.secret_revealed = False
        self.describe_title = ""
        self.describe_lines: list[str] = []
        self.describe_scroll = 0
        self.shell: PtySession | None = None
        self.log = log

        self.scale_input = ""
        self.pending_action: PendingAction | None = None

        # Banner
        self.last_error: str | None = None
        self.last_success: str | None = None
        self.message_time: float | None = None

        self.viewport_rows = 24
        self.viewport_cols = 80

    # =========================================================================
    # Banners
    # =========================================================================

    def set_error(self, message: str) -> None:
        self.last_error = message
        self.last_success = None
        self.message_time = time.monotonic()
        self.dirty = True

    def set_success(self, message: str) -> None:
        self.last_success = message
        self.last_error = None
        self.message_time = time.monotonic()
        self.dirty = True

    def clear_stale_messages(self, now: float | None = None) -> None:
        """Expire banners; access-denied errors stay until the watch changes."""
        if self.message_time is None:
            return
        elapsed = (now if now is not None else time.monotonic()) - self.message_time
        if self.last_success is not None and elapsed >= SUCCESS_BANNER_SECONDS:
            self.last_success = None
            if self.last_error is None:
                self.message_time = None
        if (
            self.last_error is not None
            and not self.last_error.startswith(ACCESS_DENIED_PREFIX)
            and elapsed >= ERROR_BANNER_SECONDS
        ):
            self.last_error = None
            self.message_time = None

    def clear_access_denied(self) -> None:
        if self.last_error is not None and self.last_error.startswith(ACCESS_DENIED_PREFIX):
            self.last_error = None
            self.message_time = None

    # =========================================================================
    # Loading
    # =========================================================================

    def start_loading(self) -> None:
        self.loading = True
        self.loading_since = time.monotonic()

    def stop_loading(self) -> None:
        self.loading = False
        self.loading_since = None

    def loading_elapsed(self, now: float | None = None) -> float:
        if self.loading_since is None:
            return 0.0
        return (now if now is not None else time.monotonic()) - self.loading_since

    # =========================================================================
    # Items and filters
    # =========================================================================

    def set_items(self, items: list[ResourceItem]) -> None:
        """Replace the item list and recompute the filtered view."""
        self.items = items
        self.update_filter()

    def matches_filters(self, item: ResourceItem) -> bool:
        """Whether ``item`` passes both the status filter and the text filter."""
        if self.kind is ResourceKind.POD and self.status_filter:
            if isinstance(item, PodItem) and item.phase not in self.status_filter:
                return False
        if self.filter_query:
            return self.filter_query.lower() in item.name.lower()
        return True

    def update_filter(self) -> None:
        """Recompute ``filtered_items``; always clears the multi-selection."""
        self.selection.clear()
        if not self.filter_query and not (self.kind is ResourceKind.POD and self.status_filter):
            self.filtered_items = list(self.items)
        else:
            self.filtered_items = [item for item in self.items if self.matches_filters(item)]
        if self.cursor is not None:
            if not self.filtered_items:
                self.cursor = None
            elif self.cursor >= len(self.filtered_items):
                self.cursor = len(self.filtered_items) - 1
        self.dirty = True

    def clear_filters(self) -> None:
        self.filter_query = ""
        self.status_filter.clear()
        self.update_filter()

    def selected_item(self) -> ResourceItem | None:
        """The highlighted row, if any."""
        if self.cursor is None or not 0 <= self.cursor < len(self.filtered_items):
            return None
        return self.filtered_items[self.cursor]

    def selected_names(self) -> list[str]:
        """Names of the multi-selection in row order."""
        return [
            self.filtered_items[i].name
            for i in sorted(self.selection)
            if i < len(self.filtered_items)
        ]

    def build_status_filter_items(self) -> None:
        """Distinct pod phases with counts, preselecting the active filter."""
        counts = Counter(item.phase for item in self.items if isinstance(item, PodItem))
        self.status_filter_items = sorted(counts.items())
        self.status_filter_selected = {
            i
            for i, (phase, _) in enumerate(self.status_filter_items)
            if phase in self.status_filter
        }
        self.status_filter_cursor = 0 if self.status_filter_items else None

    # =========================================================================
    # Tabs
    # =========================================================================

    def _reset_tab_state(self) -> None:
        self.items = []
        self.filtered_items = []
        self.cursor = None
        self.selection.clear()
        self.status_filter.clear()
        self.dirty = True

    def next_tab(self) -> None:
        self.kind = self.kind.next()
        self._reset_tab_state()

    def prev_tab(self) -> None:
        self.kind = self.kind.previous()
        self._reset_tab_state()

    def reset_for_watch(self) -> None:
        """Clear per-subscription state before a new watch is created."""
        self.items = []
        self.filtered_items = []
        self.cursor = None
        self.selection.clear()
        self.clear_access_denied()
        self.start_loading()
        self.dirty = True

    # =========================================================================
    # Namespaces
    # =========================================================================

    def seed_namespaces(self, remembered: list[str]) -> None:
        """Use remembered namespaces, always including the current one."""
        names = list(remembered)
        if self.namespace not in names:
            names.append(self.namespace)
        self.namespaces = sorted(names)

    def update_namespace_filter(self) -> None:
        """Filter namespaces by the typed text; cursor on the first match."""
        if not self.namespace_input:
            self.filtered_namespaces = list(self.namespaces)
        else:
            query = self.namespace_input.lower()
            self.filtered_namespaces = [ns for ns in self.namespaces if query in ns.lower()]
        self.popup_cursor = 0 if self.filtered_namespaces else None

    def reset_namespace_popup(self) -> None:
        """Show every known namespace with the cursor on the current one."""
        self.namespace_input = ""
        self.namespace_typing = False
        self.filtered_namespaces = list(self.namespaces)
        if self.namespace in self.filtered_namespaces:
            self.popup_cursor = self.filtered_namespaces.index(self.namespace)
        else:
            self.popup_cursor = 0 if self.filtered_namespaces else None

    # =========================================================================
    # Secrets
    # =========================================================================

    def open_secret(self) -> bool:
        """Decode the highlighted secret; returns whether one was opened."""
        item = self.selected_item()
        if not isinstance(item, SecretItem):
            return False
        self.secret_name = item.name
        self.secret_decoded = item.decoded()
        self.secret_cursor = 0
        self.secret_revealed = False
        return True

    def close_secret(self) -> None:
        self.secret_name = None
        self.secret_decoded = None
        self.secret_cursor = 0
        self.secret_revealed = False

    # =========================================================================
    # Geometry
    # =========================================================================

    @property
    def list_page_size(self) -> int:
        return max(self.viewport_rows - LIST_CHROME_ROWS, 1)

    @property
    def log_visible_rows(self) -> int:
        return max(self.viewport_rows - LOG_CHROME_ROWS, 1)

    @property
    def popup_rows(self) -> int:
        """Rows available inside the large popups (describe, shell)."""
        return max(self.viewport_rows * 90 // 100 - 2, 1)

    @property
    def shell_size(self) -> tuple[int, int]:
        """(rows, cols) of the embedded terminal."""
        rows = max(self.viewport_rows * 80 // 100 - 2, 10)
        cols = max(self.viewport_cols * 80 // 100 - 2, 40)
        return rows, cols
