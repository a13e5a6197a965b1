"""Input dispatcher: what a key press means in the current mode.

Each mode has one handler. Handlers mutate the ``Session`` and hand any
slow work to the ``ActionRunner``; destructive actions are only ever
executed from ``Mode.CONFIRM``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from kube_runner.core.models import ResourceKind, SecretItem
from kube_runner.core.modes import DeleteResource, Mode, RestartDeployment, ScaleDeployment
from kube_runner.core.pty_session import PtySession, PtySessionError
from kube_runner.core.tasks import TaskKind
from kube_runner.integrations.kubernetes.exceptions import KubernetesError

if TYPE_CHECKING:
    from collections.abc import Callable

    from kube_runner.core.actions import ActionRunner
    from kube_runner.core.channel import EventChannel
    from kube_runner.core.events import ChannelEvent
    from kube_runner.core.session import Session
    from kube_runner.core.settings_store import SettingsStore
    from kube_runner.core.tasks import TaskRegistry

logger = structlog.get_logger()

MAX_REPLICAS = 1000
INVALID_NAMESPACE = "Invalid namespace name (RFC 1123: lowercase, digits, hyphens, max 63 chars)"

_RESOURCE_NAME = re.compile(r"^[a-z0-9]([a-z0-9-]{0,61}[a-z0-9])?$")


def is_valid_resource_name(name: str) -> bool:
    """RFC 1123 label: 1-63 lowercase alphanumerics or hyphens, alphanumeric at both ends."""
    return bool(_RESOURCE_NAME.fullmatch(name))


@dataclass(frozen=True)
class KeyPress:
    """A terminal key event.

    ``key`` is the key name as the terminal layer reports it (``"j"``,
    ``"enter"``, ``"ctrl+c"``, ``"shift+tab"``); ``character`` is the
    printable character it produced, if any.
    """

    key: str
    character: str | None = None

    @property
    def char(self) -> str | None:
        """The printable character, unless a control modifier is held."""
        if self.key.startswith(("ctrl+", "alt+")):
            return None
        if self.character and len(self.character) == 1 and self.character.isprintable():
            return self.character
        return None

    def is_(self, *names: str) -> bool:
        """Whether this is one of the named keys or typed characters."""
        return self.key in names or (self.char is not None and self.char in names)


# =========================================================================
# PTY key encoding
# =========================================================================

_PTY_SEQUENCES: dict[str, bytes] = {
    "enter": b"\r",
    "backspace": b"\x7f",
    "tab": b"\t",
    "shift+tab": b"\x1b[Z",
    "escape": b"\x1b",
    "up": b"\x1b[A",
    "down": b"\x1b[B",
    "right": b"\x1b[C",
    "left": b"\x1b[D",
    "home": b"\x1b[H",
    "end": b"\x1b[F",
    "delete": b"\x1b[3~",
    "pageup": b"\x1b[5~",
    "pagedown": b"\x1b[6~",
}


def key_to_pty_bytes(key: KeyPress) -> bytes:
    """Encode a key press the way a VT-compatible terminal sends it."""
    name = key.key
    alt = False
    if name.startswith("alt+"):
        alt = True
        name = name[len("alt+") :]
    prefix = b"\x1b" if alt else b""

    if name.startswith("ctrl+") and len(name) == len("ctrl+") + 1:
        letter = name[-1].lower()
        if "a" <= letter <= "z":
            return prefix + bytes([ord(letter) - ord("a") + 1])
    if name in _PTY_SEQUENCES:
        return prefix + _PTY_SEQUENCES[name]
    if name == "space":
        return prefix + b" "
    character = key.character
    if character and character.isprintable():
        return prefix + character.encode("utf-8")
    if alt and len(name) == 1:
        return prefix + name.encode("utf-8")
    return b""


class Dispatcher:
    """Routes key presses to the handler for ``session.mode``.

    Args:
        session: State to mutate.
        actions: Runner for background cluster work.
        settings: Per-context namespace memory.
        registry: Task registry, used for the shell pump.
        channel: Result channel the shell pump reports into.
    """

    def __init__(
        self,
        session: Session,
        actions: ActionRunner,
        settings: SettingsStore,
        registry: TaskRegistry,
        channel: EventChannel[ChannelEvent],
    ) -> None:
        self._session = session
        self._actions = actions
        self._settings = settings
        self._registry = registry
        self._channel = channel
        self._handlers: dict[Mode, Callable[[KeyPress], None]] = {
            Mode.LIST: self._handle_list,
            Mode.FILTER_INPUT: self._handle_filter_input,
            Mode.SECRET_DECODE: self._handle_secret,
            Mode.CONTEXT_SELECT: self._handle_context_select,
            Mode.NAMESPACE_SELECT: self._handle_namespace_select,
            Mode.SCALE_INPUT: self._handle_scale_input,
            Mode.CONFIRM: self._handle_confirm,
            Mode.SHELL_VIEW: self._handle_shell,
            Mode.DESCRIBE_VIEW: self._handle_describe,
            Mode.LOG_VIEW: self._handle_log,
            Mode.LOG_SEARCH_INPUT: self._handle_log_search_input,
            Mode.STATUS_FILTER: self._handle_status_filter,
        }

    def handle(self, key: KeyPress) -> None:
        """Apply one key press to the session."""
        self._handlers[self._session.mode](key)
        self._session.dirty = True

    # =========================================================================
    # List
    # =========================================================================

    def _handle_list(self, key: KeyPress) -> None:
        s = self._session
        kind = s.kind

        if key.is_("q", "ctrl+c"):
            s.should_quit = True
        elif key.is_("tab"):
            s.next_tab()
        elif key.is_("shift+tab"):
            s.prev_tab()
        elif key.is_("j", "down"):
            self._next_row()
        elif key.is_("k", "up"):
            self._prev_row()
        elif key.is_("g"):
            if s.filtered_items:
                s.cursor = 0
        elif key.is_("G"):
            if s.filtered_items:
                s.cursor = len(s.filtered_items) - 1
        elif key.is_("pagedown"):
            if s.filtered_items:
                s.cursor = min((s.cursor or 0) + s.list_page_size, len(s.filtered_items) - 1)
        elif key.is_("pageup"):
            if s.filtered_items:
                s.cursor = max((s.cursor or 0) - s.list_page_size, 0)
        elif key.is_(" ", "space") and kind is not ResourceKind.SECRET:
            if s.cursor is not None:
                s.selection.symmetric_difference_update({s.cursor})
        elif key.is_("ctrl+a"):
            if len(s.selection) == len(s.filtered_items):
                s.selection.clear()
            else:
                s.selection = set(range(len(s.filtered_items)))
        elif key.is_("/"):
            s.mode = Mode.FILTER_INPUT
        elif key.is_("escape"):
            s.clear_filters()
        elif key.is_("f") and kind is ResourceKind.POD:
            s.build_status_filter_items()
            s.mode = Mode.STATUS_FILTER
        elif key.is_("c"):
            s.popup_cursor = s.contexts.index(s.context) if s.context in s.contexts else 0
            s.mode = Mode.CONTEXT_SELECT
        elif key.is_("n"):
            s.reset_namespace_popup()
            s.mode = Mode.NAMESPACE_SELECT
        elif key.is_("l") and kind is ResourceKind.POD:
            self._open_logs()
        elif key.is_("s") and kind is ResourceKind.POD:
            self._open_shell()
        elif key.is_("d") and kind is not ResourceKind.SECRET:
            self._describe()
        elif key.is_("e") and kind is not ResourceKind.SECRET:
            self._edit()
        elif key.is_("D", "delete") and kind is not ResourceKind.SECRET:
            self._confirm_delete()
        elif key.is_("S") and kind is ResourceKind.DEPLOYMENT:
            if s.selected_item() is None:
                s.set_error("No deployment selected")
            else:
                s.scale_input = ""
                s.mode = Mode.SCALE_INPUT
        elif key.is_("r") and kind is ResourceKind.DEPLOYMENT:
            item = s.selected_item()
            if item is None:
                s.set_error("No deployment selected")
            else:
                s.pending_action = RestartDeployment(item.name)
                s.mode = Mode.CONFIRM
        elif key.is_("enter", "x") and kind is ResourceKind.SECRET:
            if s.open_secret():
                s.mode = Mode.SECRET_DECODE

    def _next_row(self) -> None:
        s = self._session
        count = len(s.filtered_items)
        if count:
            s.cursor = 0 if s.cursor is None else (s.cursor + 1) % count

    def _prev_row(self) -> None:
        s = self._session
        count = len(s.filtered_items)
        if count:
            s.cursor = count - 1 if s.cursor is None else (s.cursor - 1) % count

    def _open_logs(self) -> None:
        s = self._session
        item = s.selected_item()
        if item is None:
            s.set_error("No pod selected")
            return
        s.log.start(item.name, s.namespace)
        s.mode = Mode.LOG_VIEW

    def _open_terminal(self, argv: list[str]) -> None:
        s = self._session
        rows, cols = s.shell_size
        try:
            shell = PtySession.open(argv, rows, cols)
        except PtySessionError as e:
            s.set_error(str(e))
            return
        shell.start_pump(self._registry, self._channel)
        s.shell = shell
        s.mode = Mode.SHELL_VIEW

    def _open_shell(self) -> None:
        s = self._session
        item = s.selected_item()
        if item is None:
            s.set_error("No pod selected")
            return
        try:
            argv = self._actions.kubectl.exec_argv(item.name, s.namespace, s.context)
        except KubernetesError as e:
            s.set_error(f"Failed to spawn command: {e}")
            return
        self._open_terminal(argv)

    def _edit(self) -> None:
        s = self._session
        item = s.selected_item()
        if item is None:
            s.set_error("No resource selected")
            return
        try:
            argv = self._actions.kubectl.edit_argv(
                s.kind.singular, item.name, s.namespace, s.context
            )
        except KubernetesError as e:
            s.set_error(f"Failed to spawn command: {e}")
            return
        self._open_terminal(argv)

    def _describe(self) -> None:
        s = self._session
        item = s.selected_item()
        if item is None:
            s.set_error("No resource selected")
            return
        s.describe_title = f"{s.kind.singular}/{item.name}"
        self._actions.describe(s.kind, s.namespace, item.name, s.context)

    def _confirm_delete(self) -> None:
        s = self._session
        if s.selection:
            names = s.selected_names()
        else:
            item = s.selected_item()
            names = [item.name] if item is not None else []
        if not names:
            s.set_error("No resource selected")
            return
        label = "pod(s)" if s.kind is ResourceKind.POD else "deployment(s)"
        s.pending_action = DeleteResource(len(names), label, tuple(names))
        s.mode = Mode.CONFIRM

    # =========================================================================
    # Filters
    # =========================================================================

    def _handle_filter_input(self, key: KeyPress) -> None:
        s = self._session
        if key.is_("escape", "enter"):
            s.mode = Mode.LIST
        elif key.is_("backspace"):
            s.filter_query = s.filter_query[:-1]
            s.update_filter()
        elif key.char is not None:
            s.filter_query += key.char
            s.update_filter()

    def _handle_status_filter(self, key: KeyPress) -> None:
        s = self._session
        count = len(s.status_filter_items)
        if key.is_("escape"):
            s.mode = Mode.LIST
        elif key.is_("enter"):
            chosen = set(s.status_filter_selected)
            if not chosen and s.status_filter_cursor is not None:
                chosen = {s.status_filter_cursor}
            if len(chosen) == count:
                s.status_filter = set()
            else:
                s.status_filter = {s.status_filter_items[i][0] for i in chosen if i < count}
            s.update_filter()
            s.mode = Mode.LIST
        elif key.is_(" ", "space"):
            if s.status_filter_cursor is not None:
                s.status_filter_selected.symmetric_difference_update({s.status_filter_cursor})
        elif key.is_("a"):
            if len(s.status_filter_selected) == count:
                s.status_filter_selected.clear()
            else:
                s.status_filter_selected = set(range(count))
        elif key.is_("k", "up"):
            s.status_filter_cursor = max((s.status_filter_cursor or 0) - 1, 0)
        elif key.is_("j", "down"):
            if count:
                current = s.status_filter_cursor
                s.status_filter_cursor = 0 if current is None else min(current + 1, count - 1)

    # =========================================================================
    # Context and namespace selection
    # =========================================================================

    def _move_popup(self, key: KeyPress, count: int, *, letters: bool = True) -> bool:
        s = self._session
        up = ("k", "up") if letters else ("up",)
        down = ("j", "down") if letters else ("down",)
        if key.is_(*up):
            s.popup_cursor = max((s.popup_cursor or 0) - 1, 0)
            return True
        if key.is_(*down):
            if count:
                current = s.popup_cursor
                s.popup_cursor = 0 if current is None else min(current + 1, count - 1)
            return True
        return False

    def _handle_context_select(self, key: KeyPress) -> None:
        s = self._session
        if key.is_("escape"):
            s.mode = Mode.LIST
        elif key.is_("enter"):
            if s.popup_cursor is not None and s.popup_cursor < len(s.contexts):
                s.pending_context = s.contexts[s.popup_cursor]
            s.mode = Mode.LIST
        else:
            self._move_popup(key, len(s.contexts))

    def _select_namespace(self, namespace: str) -> None:
        s = self._session
        if namespace:
            s.namespace = namespace
            remembered = self._settings.add_namespace(s.context, namespace)
            s.namespaces = sorted(set(s.namespaces) | set(remembered))
            self._settings.save()
            logger.info("namespace_selected", namespace=namespace, context=s.context)
        s.namespace_input = ""
        s.namespace_typing = False
        s.mode = Mode.LIST

    def _highlighted_namespace(self) -> str | None:
        s = self._session
        if s.popup_cursor is not None and s.popup_cursor < len(s.filtered_namespaces):
            return s.filtered_namespaces[s.popup_cursor]
        return None

    def _handle_namespace_select(self, key: KeyPress) -> None:
        s = self._session
        count = len(s.filtered_namespaces)
        if s.namespace_typing:
            if key.is_("escape"):
                s.reset_namespace_popup()
            elif key.is_("enter"):
                candidate = self._highlighted_namespace() or s.namespace_input
                if is_valid_resource_name(candidate):
                    self._select_namespace(candidate)
                else:
                    s.set_error(INVALID_NAMESPACE)
            elif self._move_popup(key, count, letters=False):
                pass
            elif key.is_("backspace"):
                s.namespace_input = s.namespace_input[:-1]
                s.update_namespace_filter()
            elif key.char is not None:
                s.namespace_input += key.char
                s.update_namespace_filter()
            return

        if key.is_("escape"):
            s.namespace_input = ""
            s.namespace_typing = False
            s.mode = Mode.LIST
        elif key.is_("/"):
            s.namespace_typing = True
            s.namespace_input = ""
        elif key.is_("enter"):
            namespace = self._highlighted_namespace()
            if namespace is not None:
                self._select_namespace(namespace)
        else:
            self._move_popup(key, count)

    # =========================================================================
    # Scale and confirm
    # =========================================================================

    def _handle_scale_input(self, key: KeyPress) -> None:
        s = self._session
        if key.is_("escape"):
            s.mode = Mode.LIST
        elif key.is_("enter"):
            if not s.scale_input:
                s.set_error("Enter a replica count")
                return
            try:
                replicas = int(s.scale_input)
            except ValueError:
                s.set_error("Invalid number")
                s.mode = Mode.LIST
                return
            item = s.selected_item()
            if replicas > MAX_REPLICAS:
                s.set_error(f"Replica count must be <= {MAX_REPLICAS}")
            elif item is not None:
                s.pending_action = ScaleDeployment(item.name, replicas)
                s.mode = Mode.CONFIRM
                return
            s.mode = Mode.LIST
        elif key.is_("backspace"):
            s.scale_input = s.scale_input[:-1]
        elif key.char is not None and key.char.isascii() and key.char.isdigit():
            s.scale_input += key.char

    def _handle_confirm(self, key: KeyPress) -> None:
        s = self._session
        if key.is_("y", "Y"):
            action = s.pending_action
            s.pending_action = None
            if action is not None:
                logger.info("action_confirmed", action=type(action).__name__, namespace=s.namespace)
                self._actions.execute(action, s.kind, s.namespace)
            s.selection.clear()
            s.mode = Mode.LIST
        elif key.is_("n", "N", "escape"):
            s.pending_action = None
            s.selection.clear()
            s.mode = Mode.LIST

    # =========================================================================
    # Viewers
    # =========================================================================

    def _handle_secret(self, key: KeyPress) -> None:
        s = self._session
        decoded = s.secret_decoded or []
        if key.is_("escape", "q"):
            s.close_secret()
            s.mode = Mode.LIST
        elif key.is_("j", "down"):
            if s.secret_cursor < len(decoded) - 1:
                s.secret_cursor += 1
        elif key.is_("k", "up"):
            s.secret_cursor = max(s.secret_cursor - 1, 0)
        elif key.is_("r"):
            s.secret_revealed = not s.secret_revealed
        elif key.is_("c"):
            if s.secret_cursor < len(decoded):
                label, value = decoded[s.secret_cursor]
                self._actions.copy_to_clipboard(label, value)

    def _handle_describe(self, key: KeyPress) -> None:
        s = self._session
        page = s.popup_rows
        top = max(len(s.describe_lines) - page, 0)
        if key.is_("escape", "q"):
            s.describe_lines = []
            s.describe_title = ""
            s.describe_scroll = 0
            s.mode = Mode.LIST
        elif key.is_("j", "down"):
            s.describe_scroll = min(s.describe_scroll + 1, top)
        elif key.is_("k", "up"):
            s.describe_scroll = max(s.describe_scroll - 1, 0)
        elif key.is_("pagedown"):
            s.describe_scroll = min(s.describe_scroll + page, top)
        elif key.is_("pageup"):
            s.describe_scroll = max(s.describe_scroll - page, 0)
        elif key.is_("g"):
            s.describe_scroll = 0
        elif key.is_("G"):
            s.describe_scroll = top

    def _close_log(self) -> None:
        s = self._session
        s.log.stop()
        s.mode = Mode.LIST

    def _handle_log(self, key: KeyPress) -> None:
        s = self._session
        log = s.log
        height = s.log_visible_rows
        notice: str | None = None
        if key.is_("q"):
            self._close_log()
        elif key.is_("escape"):
            if log.search.active:
                log.clear_search()
            else:
                self._close_log()
        elif key.is_("/"):
            log.search_input = log.search.query
            s.mode = Mode.LOG_SEARCH_INPUT
        elif key.is_("n"):
            notice = log.search_next(height)
        elif key.is_("N"):
            notice = log.search_prev(height)
        elif key.is_("j", "down"):
            log.scroll_down(height)
        elif key.is_("k", "up"):
            log.scroll_up(height)
        elif key.is_("pagedown"):
            log.scroll_down(height, height)
        elif key.is_("pageup"):
            log.scroll_up(height, height)
        elif key.is_("g"):
            log.scroll_to_top()
        elif key.is_("G"):
            log.follow()
        if notice:
            s.set_error(notice)

    def _handle_log_search_input(self, key: KeyPress) -> None:
        s = self._session
        log = s.log
        if key.is_("enter"):
            s.mode = Mode.LOG_VIEW
            notice = log.commit_search(s.log_visible_rows)
            if notice:
                s.set_error(notice)
        elif key.is_("escape"):
            log.search_input = ""
            s.mode = Mode.LOG_VIEW
        elif key.is_("backspace"):
            log.search_input = log.search_input[:-1]
        elif key.char is not None:
            log.search_input += key.char

    def close_shell(self) -> None:
        """Tear down the embedded terminal and its output pump."""
        s = self._session
        self._registry.cancel(TaskKind.SHELL_PUMP)
        if s.shell is not None:
            s.shell.close()
            s.shell = None

    def _handle_shell(self, key: KeyPress) -> None:
        s = self._session
        if key.is_("ctrl+q"):
            self.close_shell()
            s.mode = Mode.LIST
            return
        if s.shell is not None:
            data = key_to_pty_bytes(key)
            if data:
                s.shell.write(data)
