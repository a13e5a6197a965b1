"""Log viewing: bounded buffer, live follow, lazy history backfill, search.

The viewer shows one pod's log. A live follow streams new lines onto the
end of the buffer while history is fetched on demand by re-reading a
growing tail of the log and prepending whatever precedes the buffer's
current first line.

Every (re)start of the follow bumps ``generation``. History responses
carry the generation they were requested under, and a response from an
older generation is dropped: the buffer it was computed against no
longer exists. Line indices (``scroll_offset``, ``search.match_line``) are
absolute positions from the start of the buffer and are shifted whenever
lines are evicted from or prepended to the front.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

logger = structlog.get_logger()

LOG_CAPACITY = 10_000
TAIL_STEP = 100

NO_MORE_MATCHES = "No more matches"
NOT_FOUND = "Not found"
NOT_FOUND_REQUEST_MORE = "Not found in loaded lines, press n/N to search older history"


class LogSource(Protocol):
    """Starts the background reads that feed a ``LogSession``."""

    def start_follow(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        """Stream new lines for ``pod``, tagged with ``generation``."""
        ...

    def fetch_history(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        """Fetch the last ``tail_lines`` lines once, tagged with ``generation``."""
        ...

    def stop(self) -> None:
        """Cancel the follow and any history fetch."""
        ...


@dataclass
class SearchState:
    """Incremental search over the buffer."""

    query: str = ""
    match_line: int | None = None
    pending: bool = False

    def clear(self) -> None:
        self.query = ""
        self.match_line = None
        self.pending = False

    @property
    def active(self) -> bool:
        return bool(self.query)


_ASCII_LOWER = str.maketrans(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ", "abcdefghijklmnopqrstuvwxyz"
)


def ascii_lower(text: str) -> str:
    """Lowercase A-Z only; other characters keep their case."""
    return text.translate(_ASCII_LOWER)


def _contains(line: str, query: str) -> bool:
    """ASCII case-insensitive substring test; ``query`` is already lowercase."""
    return query in ascii_lower(line)


def centered_offset(index: int, visible_height: int, length: int) -> int:
    """Viewport offset that centers ``index`` without scrolling past either end."""
    upper = max(length - visible_height, 0)
    return min(max(index - visible_height // 2, 0), upper)


def rightmost_index(lines: Sequence[str], needle: str) -> int | None:
    """Index of the last occurrence of ``needle`` in ``lines``."""
    for i in range(len(lines) - 1, -1, -1):
        if lines[i] == needle:
            return i
    return None


class LogSession:
    """State of the log viewer for one pod.

    Args:
        source: Background reader used to start follows and history fetches.
        capacity: Maximum number of retained lines.
        tail_step: Growth of the history window per backfill.
    """

    def __init__(
        self,
        source: LogSource,
        capacity: int = LOG_CAPACITY,
        tail_step: int = TAIL_STEP,
    ) -> None:
        self._source = source
        self.capacity = capacity
        self.tail_step = tail_step

        self.lines: deque[str] = deque()
        self.generation = 0
        self.tail_window = tail_step
        self.history_exhausted = False
        self.history_loading = False
        self.scroll_offset: int | None = None
        self.search = SearchState()
        self.search_input = ""

        self.pod: str | None = None
        self.namespace: str | None = None
        self.stream_ended = False
        self._search_height = 20

    def __len__(self) -> int:
        return len(self.lines)

    @property
    def following(self) -> bool:
        """Whether the viewport tracks the newest line."""
        return self.scroll_offset is None

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self, pod: str, namespace: str) -> int:
        """Begin viewing ``pod`` from a clean buffer.

        Returns:
            The new generation.
        """
        self._source.stop()
        self.lines.clear()
        self.search.clear()
        self.search_input = ""
        self.tail_window = self.tail_step
        self.history_exhausted = False
        self.history_loading = False
        self.scroll_offset = None
        self.stream_ended = False
        self.pod = pod
        self.namespace = namespace
        self.generation += 1
        logger.info("log_view_started", pod=pod, namespace=namespace, generation=self.generation)
        self._source.start_follow(pod, namespace, self.generation, self.tail_window)
        return self.generation

    def stop(self) -> None:
        """Cancel background reads and drop buffered content."""
        self._source.stop()
        self.lines.clear()
        self.search.clear()
        self.search_input = ""
        self.history_loading = False
        self.scroll_offset = None
        self.pod = None
        self.namespace = None

    # =========================================================================
    # Live follow
    # =========================================================================

    def push_line(self, line: str) -> None:
        """Append a followed line, evicting the oldest when full."""
        self.lines.append(line)
        if len(self.lines) > self.capacity:
            self.lines.popleft()
            if self.scroll_offset is not None and self.scroll_offset > 0:
                self.scroll_offset -= 1
            if self.search.match_line is not None:
                self.search.match_line = (
                    self.search.match_line - 1 if self.search.match_line > 0 else None
                )

    def push_lines(self, lines: Iterable[str]) -> None:
        for line in lines:
            self.push_line(line)

    # =========================================================================
    # History backfill
    # =========================================================================

    def request_more_history(self) -> bool:
        """Ask for a deeper tail of the log.

        Returns:
            Whether a fetch was issued.
        """
        if self.history_loading or self.history_exhausted or self.pod is None:
            return False
        if self.tail_window >= self.capacity:
            self.history_exhausted = True
            return False
        self.history_loading = True
        self.tail_window = min(self.tail_window + self.tail_step, self.capacity)
        logger.debug(
            "log_history_requested",
            pod=self.pod,
            generation=self.generation,
            tail_lines=self.tail_window,
        )
        self._source.fetch_history(
            self.pod, self.namespace or "", self.generation, self.tail_window
        )
        return True

    def history_failed(self, generation: int) -> None:
        """Release the in-flight marker after a failed fetch of this generation."""
        if generation == self.generation:
            self.history_loading = False
            self.search.pending = False

    def merge_history(self, generation: int, lines: Sequence[str]) -> str | None:
        """Prepend the part of a history response that precedes the buffer.

        Args:
            generation: Generation the fetch was issued under.
            lines: The fetched tail, oldest first.

        Returns:
            A notice for the user when a pending search could not be
            resolved, otherwise ``None``.
        """
        if generation != self.generation:
            logger.debug(
                "log_history_stale", response=generation, current=self.generation
            )
            self.history_loading = False
            return None

        if len(lines) < self.tail_window:
            self.history_exhausted = True

        candidates = lines
        if self.lines:
            seam = rightmost_index(lines, self.lines[0])
            if seam is not None:
                candidates = lines[:seam]

        new_count = min(len(candidates), max(self.capacity - len(self.lines), 0))
        if new_count == 0:
            self.history_exhausted = True
            self.history_loading = False
            return self._resolve_pending(0)

        self.lines.extendleft(reversed(candidates[len(candidates) - new_count :]))

        if self.scroll_offset is not None:
            self.scroll_offset += new_count
        if self.search.match_line is not None:
            self.search.match_line += new_count

        self.history_loading = False
        logger.debug(
            "log_history_merged",
            generation=generation,
            prepended=new_count,
            exhausted=self.history_exhausted,
        )
        return self._resolve_pending(new_count)

    def _resolve_pending(self, new_count: int) -> str | None:
        if not self.search.pending:
            return None
        self.search.pending = False
        for i in range(new_count - 1, -1, -1):
            if _contains(self.lines[i], self.search.query):
                self._set_match(i, self._search_height)
                return None
        if self.history_exhausted:
            return NOT_FOUND
        return NOT_FOUND_REQUEST_MORE

    # =========================================================================
    # Search
    # =========================================================================

    def _set_match(self, index: int, visible_height: int) -> None:
        self.search.match_line = index
        self.scroll_offset = centered_offset(index, visible_height, len(self.lines))

    def _not_found(self, visible_height: int) -> str | None:
        if self.history_exhausted:
            return NO_MORE_MATCHES
        self.search.pending = True
        self._search_height = visible_height
        if not self.request_more_history():
            if self.history_exhausted:
                self.search.pending = False
                return NO_MORE_MATCHES
        return None

    def search_next(self, visible_height: int) -> str | None:
        """Find the query in older lines, above the current match or viewport."""
        query = self.search.query
        if not query or not self.lines:
            return None
        if self.search.match_line is not None:
            start = self.search.match_line - 1
        elif self.scroll_offset is not None:
            start = min(self.scroll_offset, len(self.lines) - 1)
        else:
            start = len(self.lines) - 1
        for i in range(start, -1, -1):
            if _contains(self.lines[i], query):
                self._set_match(i, visible_height)
                return None
        return self._not_found(visible_height)

    def search_prev(self, visible_height: int) -> str | None:
        """Find the query in newer lines, below the current match or viewport."""
        query = self.search.query
        if not query or not self.lines:
            return None
        if self.search.match_line is not None:
            start = self.search.match_line + 1
        elif self.scroll_offset is not None:
            start = self.scroll_offset
        else:
            start = max(len(self.lines) - visible_height, 0)
        for i in range(start, len(self.lines)):
            if _contains(self.lines[i], query):
                self._set_match(i, visible_height)
                return None
        if self.history_exhausted:
            return NO_MORE_MATCHES
        # Newer lines only arrive from the live follow
        return NOT_FOUND

    def commit_search(self, visible_height: int) -> str | None:
        """Adopt the typed query (ASCII-lowercased) and search from the viewport."""
        self.search.query = ascii_lower(self.search_input)
        self.search.match_line = None
        self.search.pending = False
        return self.search_next(visible_height)

    def clear_search(self) -> None:
        self.search.clear()

    # =========================================================================
    # Scrolling
    # =========================================================================

    def max_scroll(self, visible_height: int) -> int:
        return max(len(self.lines) - visible_height, 0)

    def scroll_down(self, visible_height: int, amount: int = 1) -> None:
        top = self.max_scroll(visible_height)
        if self.scroll_offset is None:
            if top > 0:
                self.scroll_offset = top
            return
        self.scroll_offset = min(self.scroll_offset + amount, top)

    def scroll_up(self, visible_height: int, amount: int = 1) -> None:
        """Scroll toward older lines; at the top, ask for more history."""
        if self.scroll_offset is None:
            self.scroll_offset = max(self.max_scroll(visible_height) - amount, 0)
            return
        if self.scroll_offset == 0:
            self.request_more_history()
            return
        self.scroll_offset = max(self.scroll_offset - amount, 0)

    def scroll_to_top(self) -> None:
        self.scroll_offset = 0

    def follow(self) -> None:
        self.scroll_offset = None

    def visible_window(self, visible_height: int) -> tuple[int, list[str]]:
        """First absolute index and the lines currently on screen."""
        if self.scroll_offset is None:
            start = self.max_scroll(visible_height)
        else:
            start = self.scroll_offset
        start = min(start, len(self.lines))
        end = min(start + visible_height, len(self.lines))
        return start, [self.lines[i] for i in range(start, end)]
