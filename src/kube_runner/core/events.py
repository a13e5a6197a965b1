"""Messages delivered to the orchestrator.

Watch streams carry ``WatchEvent`` values; every other background
operation reports through the result channel with a ``ChannelEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass, field

# =========================================================================
# Watch stream events
# =========================================================================


@dataclass(frozen=True)
class Refresh:
    """The snapshot cache changed."""


@dataclass(frozen=True)
class InitialListDone:
    """The first full list completed and the cache mirrors the cluster."""


@dataclass(frozen=True)
class WatchError:
    """A transient list/watch failure; the subscription retries on its own."""

    message: str


@dataclass(frozen=True)
class WatcherForbidden:
    """The credentials may not list or watch this kind in this namespace."""

    message: str = ""


WatchEvent = Refresh | InitialListDone | WatchError | WatcherForbidden

# =========================================================================
# Result channel events
# =========================================================================


@dataclass(frozen=True)
class LogLine:
    """One line from the live log follow started under ``generation``."""

    generation: int
    line: str


@dataclass(frozen=True)
class LogHistory:
    """A non-follow tail fetch issued under ``generation``."""

    generation: int
    lines: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class LogStreamEnded:
    """The live follow for ``generation`` finished or failed."""

    generation: int
    error: str | None = None


@dataclass(frozen=True)
class LogHistoryFailed:
    """A history fetch for ``generation`` failed."""

    generation: int
    error: str


@dataclass(frozen=True)
class ActionSucceeded:
    """A background action completed; shown as a success banner."""

    message: str


@dataclass(frozen=True)
class ActionFailed:
    """A background action failed; shown as an error banner."""

    message: str


@dataclass(frozen=True)
class ShellOutput:
    """Raw bytes read from the PTY of session ``session_id``."""

    session_id: int
    data: bytes


@dataclass(frozen=True)
class ShellExited:
    """The PTY of session ``session_id`` reached end of file."""

    session_id: int


@dataclass(frozen=True)
class DescribeReady:
    """Output of a describe call, split into lines."""

    lines: tuple[str, ...]


@dataclass(frozen=True)
class NamespacesLoaded:
    """Namespaces discovered for ``context``."""

    context: str
    namespaces: tuple[str, ...]


ChannelEvent = (
    LogLine
    | LogHistory
    | LogStreamEnded
    | LogHistoryFailed
    | ActionSucceeded
    | ActionFailed
    | ShellOutput
    | ShellExited
    | DescribeReady
    | NamespacesLoaded
)
