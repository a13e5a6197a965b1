"""Pure rendering: Session in, Rich renderable out.

Nothing here mutates the session. The app updates its header, body and
footer widgets from ``render_header``, ``render_body`` and
``render_footer`` each time the orchestrator marks the session dirty;
``render_session`` stacks all three into one renderable for a plain Rich
console.
"""

from __future__ import annotations

import time

from rich.align import Align
from rich.console import Group, RenderableType
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from kube_runner.core.models import DeploymentItem, PodItem, ResourceKind, SecretItem
from kube_runner.core.modes import Mode
from kube_runner.core.session import LIST_CHROME_ROWS, LOG_CHROME_ROWS, Session
from kube_runner.tui.theme import SPINNER_FRAMES, Colors, Styles, phase_style

MASK = "••••••••"

MODE_HINTS: dict[Mode, str] = {
    Mode.LIST: "j/k move  tab kind  / filter  f status  n namespace  c context  l logs  s shell  "
    "d describe  e edit  D delete  S scale  r restart  q quit",
    Mode.FILTER_INPUT: "type to filter  enter/esc done",
    Mode.STATUS_FILTER: "j/k move  space toggle  a all  enter apply  esc cancel",
    Mode.CONTEXT_SELECT: "j/k move  enter switch  esc cancel",
    Mode.NAMESPACE_SELECT: "j/k move  / type  enter select  esc cancel",
    Mode.SCALE_INPUT: "digits  enter confirm  esc cancel",
    Mode.CONFIRM: "y confirm  n cancel",
    Mode.SECRET_DECODE: "j/k move  r reveal  c copy  esc close",
    Mode.DESCRIBE_VIEW: "j/k scroll  pgup/pgdn page  g/G top/bottom  esc close",
    Mode.LOG_VIEW: "j/k scroll  g/G top/follow  / search  n/N next/prev  q close",
    Mode.LOG_SEARCH_INPUT: "type query  enter search  esc cancel",
    Mode.SHELL_VIEW: "ctrl+q close",
}


# =========================================================================
# Chrome
# =========================================================================


def render_header(session: Session, now: float | None = None) -> Text:
    """Tabs, context, namespace, counts and active filters."""
    header = Text()
    header.append(" kr ", style=f"bold black on {Colors.PRIMARY}")
    header.append(" ")
    for kind in ResourceKind:
        style = f"bold {Colors.PRIMARY} underline" if kind is session.kind else Colors.MUTED
        header.append(f" {kind.value} ", style=style)
    header.append("  ctx: ", style=Colors.MUTED)
    header.append(session.context, style="bold")
    header.append("  ns: ", style=Colors.MUTED)
    header.append(session.namespace, style="bold")
    header.append(f"  {len(session.filtered_items)}/{len(session.items)} items", style=Colors.MUTED)
    if session.filter_query or session.mode is Mode.FILTER_INPUT:
        header.append(f"  filter: {session.filter_query}", style=Colors.WARNING)
        if session.mode is Mode.FILTER_INPUT:
            header.append("▏", style=Colors.WARNING)
    if session.status_filter and session.kind is ResourceKind.POD:
        header.append(f"  status: {','.join(sorted(session.status_filter))}", style=Colors.WARNING)
    if session.loading:
        elapsed = session.loading_elapsed(now)
        frame = SPINNER_FRAMES[int(elapsed * 10) % len(SPINNER_FRAMES)]
        header.append(f"  {frame} loading {elapsed:.1f}s", style=Colors.PRIMARY)
    return header


def render_footer(session: Session) -> Text:
    """Banner if one is showing, otherwise key hints for the mode."""
    if session.last_error:
        return Text.from_markup(Styles.error(escape(session.last_error)))
    if session.last_success:
        return Text.from_markup(Styles.success(escape(session.last_success)))
    return Text.from_markup(Styles.muted(MODE_HINTS.get(session.mode, "")))


# =========================================================================
# Resource table
# =========================================================================


def _visible_range(cursor: int | None, total: int, height: int) -> range:
    """Rows to draw so the cursor stays on screen."""
    if total <= height:
        return range(total)
    start = 0 if cursor is None else min(max(cursor - height // 2, 0), total - height)
    return range(start, start + height)


def render_table(session: Session) -> Table:
    """The item table for the active kind."""
    table = Table(expand=True, box=None, header_style=f"bold {Colors.PRIMARY}", pad_edge=False)
    table.add_column("", width=1, no_wrap=True)
    table.add_column("NAME", ratio=3, no_wrap=True)
    match session.kind:
        case ResourceKind.POD:
            for column in ("READY", "STATUS", "RESTARTS", "AGE"):
                table.add_column(column, no_wrap=True)
        case ResourceKind.DEPLOYMENT:
            for column in ("READY", "UP-TO-DATE", "AVAILABLE", "AGE"):
                table.add_column(column, no_wrap=True)
        case ResourceKind.SECRET:
            for column in ("TYPE", "DATA", "AGE"):
                table.add_column(column, no_wrap=True)

    height = max(session.viewport_rows - LIST_CHROME_ROWS, 1)
    for index in _visible_range(session.cursor, len(session.filtered_items), height):
        item = session.filtered_items[index]
        marked = index in session.selection
        marker = Text("●", style=Colors.MARKED_ROW) if marked else Text(" ")
        cells: list[Text | str]
        if isinstance(item, PodItem):
            cells = [
                f"{item.ready_count}/{item.total_count}",
                Text(item.phase, style=phase_style(item.phase)),
                str(item.restarts),
                item.age,
            ]
        elif isinstance(item, DeploymentItem):
            cells = [
                f"{item.ready_replicas}/{item.replicas}",
                str(item.updated_replicas),
                str(item.available_replicas),
                item.age,
            ]
        else:
            cells = [item.type, str(len(item.data)), item.age]
        if index == session.cursor:
            style = Colors.SELECTED_ROW
        else:
            style = Colors.MARKED_ROW if marked else ""
        table.add_row(marker, item.name, *cells, style=style)
    return table


# =========================================================================
# Popups
# =========================================================================


def _list_popup(
    title: str,
    entries: list[str],
    cursor: int | None,
    height: int,
    footer: Text | None = None,
) -> Panel:
    body = Text()
    for index in _visible_range(cursor, len(entries), height):
        style = Colors.SELECTED_ROW if index == cursor else ""
        body.append(f" {entries[index]} \n", style=style)
    if not entries:
        body.append(Text.from_markup(Styles.muted(" (none)\n")))
    renderable: RenderableType = Group(footer, body) if footer is not None else body
    return Panel(renderable, title=title, border_style=Colors.PRIMARY, width=60)


def render_status_filter(session: Session) -> Panel:
    entries = [
        f"[{'x' if i in session.status_filter_selected else ' '}] {phase} ({count})"
        for i, (phase, count) in enumerate(session.status_filter_items)
    ]
    return _list_popup(
        "Filter by status", entries, session.status_filter_cursor, session.popup_rows
    )


def render_context_select(session: Session) -> Panel:
    entries = [f"{'*' if name == session.context else ' '} {name}" for name in session.contexts]
    return _list_popup("Switch context", entries, session.popup_cursor, session.popup_rows)


def render_namespace_select(session: Session) -> Panel:
    prompt = None
    if session.namespace_typing:
        prompt = Text(f"/{session.namespace_input}▏", style=Colors.WARNING)
    entries = [
        f"{'*' if name == session.namespace else ' '} {name}"
        for name in session.filtered_namespaces
    ]
    return _list_popup(
        "Select namespace", entries, session.popup_cursor, session.popup_rows, prompt
    )


def render_scale_input(session: Session) -> Panel:
    item = session.selected_item()
    name = item.name if item is not None else "?"
    body = Text.assemble(("Replicas: ", "bold"), (f"{session.scale_input}▏", Colors.WARNING))
    return Panel(body, title=f"Scale {name}", border_style=Colors.PRIMARY, width=50)


def render_confirm(session: Session) -> Panel:
    message = session.pending_action.message if session.pending_action is not None else ""
    body = Text(message, style="bold")
    body.append("\n\n")
    body.append_text(Text.from_markup(Styles.muted("y confirm  n cancel")))
    return Panel(body, title="Confirm", border_style=Colors.ERROR, width=60)


def render_secret(session: Session) -> Panel:
    table = Table(expand=True, box=None, header_style=f"bold {Colors.PRIMARY}")
    table.add_column("KEY", no_wrap=True)
    table.add_column("VALUE")
    for index, (key, value) in enumerate(session.secret_decoded or []):
        shown = value if session.secret_revealed else MASK
        style = Colors.SELECTED_ROW if index == session.secret_cursor else ""
        table.add_row(key, shown, style=style)
    state = "revealed" if session.secret_revealed else "hidden"
    title = f"Secret {session.secret_name} ({state})"
    return Panel(table, title=title, border_style=Colors.WARNING)


def render_describe(session: Session) -> Panel:
    rows = session.popup_rows
    window = session.describe_lines[session.describe_scroll : session.describe_scroll + rows]
    title = f"Describe {session.describe_title}"
    return Panel(Text("\n".join(window)), title=title, border_style=Colors.PRIMARY, height=rows + 2)


# =========================================================================
# Log and shell panes
# =========================================================================


def render_log(session: Session) -> Panel:
    log = session.log
    height = session.log_visible_rows
    start, window = log.visible_window(height)
    query = log.search.query

    body = Text()
    for offset, line in enumerate(window):
        index = start + offset
        text = Text(line)
        if index == log.search.match_line:
            text.stylize(Colors.SEARCH_MATCH_LINE)
        if query:
            text.highlight_words([query], style=Colors.SEARCH_HIT, case_sensitive=False)
        body.append_text(text)
        body.append("\n")

    if log.following:
        status = "FOLLOWING"
    else:
        status = f"PAUSED {start + 1}-{start + len(window)}/{len(log)}"
    if log.history_loading:
        status += "  loading history"
    elif log.history_exhausted:
        status += "  start of log"
    if log.stream_ended:
        status += "  stream ended"
    subtitle = status
    if session.mode is Mode.LOG_SEARCH_INPUT:
        subtitle = f"/{log.search_input}▏"
    elif query:
        subtitle = f"{status}  search: {query}"
    return Panel(
        body,
        title=f"Logs {log.pod} ({log.namespace})",
        subtitle=subtitle,
        border_style=Colors.PRIMARY,
        height=height + LOG_CHROME_ROWS - 2,
    )


def render_shell(session: Session) -> Panel:
    shell = session.shell
    rows, cols = session.shell_size
    body = Text()
    if shell is not None:
        cursor_row, cursor_col = shell.cursor
        for row, line in enumerate(shell.display):
            text = Text(line)
            if row == cursor_row and cursor_col < len(line):
                text.stylize("reverse", cursor_col, cursor_col + 1)
            body.append_text(text)
            body.append("\n")
    return Panel(body, title="Terminal", subtitle="ctrl+q close", width=cols + 2, height=rows + 2)


# =========================================================================
# Whole screen
# =========================================================================


def render_body(session: Session) -> RenderableType:
    mode = session.mode
    if mode.is_log_mode:
        return render_log(session)
    if mode is Mode.SHELL_VIEW:
        return Align.center(render_shell(session), vertical="middle")
    if mode is Mode.DESCRIBE_VIEW:
        return render_describe(session)

    popup: RenderableType | None = None
    match mode:
        case Mode.STATUS_FILTER:
            popup = render_status_filter(session)
        case Mode.CONTEXT_SELECT:
            popup = render_context_select(session)
        case Mode.NAMESPACE_SELECT:
            popup = render_namespace_select(session)
        case Mode.SCALE_INPUT:
            popup = render_scale_input(session)
        case Mode.CONFIRM:
            popup = render_confirm(session)
        case Mode.SECRET_DECODE:
            popup = render_secret(session)
    if popup is not None:
        return Align.center(popup, vertical="middle")
    return render_table(session)


def render_session(session: Session, now: float | None = None) -> RenderableType:
    """Everything on screen for the current state."""
    return Group(
        render_header(session, now if now is not None else time.monotonic()),
        render_body(session),
        render_footer(session),
    )
