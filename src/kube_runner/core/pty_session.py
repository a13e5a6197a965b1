"""Embedded pseudo-terminal sessions.

Runs a command (``kubectl exec`` or ``kubectl edit``) on the slave end of a
PTY and pumps the master's output bytes into the result channel. The
orchestrator feeds those bytes into a pyte screen, which the renderer
draws as a character grid with a cursor.
"""

from __future__ import annotations

import errno
import fcntl
import itertools
import os
import pty
import struct
import subprocess
import termios
from collections.abc import Sequence

import pyte
import structlog

from kube_runner.core.channel import EventChannel
from kube_runner.core.events import ChannelEvent, ShellExited, ShellOutput
from kube_runner.core.tasks import CancelToken, TaskKind, TaskRegistry

logger = structlog.get_logger()

READ_CHUNK = 4096

_session_ids = itertools.count(1)


class PtySessionError(Exception):
    """Raised when a PTY or its child process cannot be started."""


def _set_winsize(fd: int, rows: int, cols: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


class PtySession:
    """One child process attached to a PTY, with its emulated screen.

    Example:
        ```python
        session = PtySession.open(["kubectl", "exec", "-it", "web-0", "--", "sh"], 24, 80)
        session.start_pump(registry, channel)
        session.write(b"ls\\r")
        session.feed(output_bytes)   # from ShellOutput events
        lines = session.display
        session.close()
        ```
    """

    def __init__(
        self,
        argv: Sequence[str],
        master_fd: int,
        process: subprocess.Popen[bytes],
        rows: int,
        cols: int,
    ) -> None:
        self.id = next(_session_ids)
        self.argv = list(argv)
        self._master_fd: int | None = master_fd
        self._process = process
        self.screen = pyte.Screen(cols, rows)
        self._stream = pyte.ByteStream(self.screen)

    @classmethod
    def open(cls, argv: Sequence[str], rows: int, cols: int) -> PtySession:
        """Spawn ``argv`` on a new PTY of the given size.

        Raises:
            PtySessionError: If the PTY cannot be opened or the command
                cannot be started.
        """
        try:
            master_fd, slave_fd = pty.openpty()
        except OSError as e:
            raise PtySessionError(f"Failed to open PTY: {e}") from e
        try:
            _set_winsize(slave_fd, rows, cols)
            env = os.environ.copy()
            env.setdefault("TERM", "xterm-256color")
            process = subprocess.Popen(
                list(argv),
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                start_new_session=True,
                env=env,
            )
        except OSError as e:
            os.close(master_fd)
            raise PtySessionError(f"Failed to spawn command: {e}") from e
        finally:
            os.close(slave_fd)
        logger.info("pty_session_started", argv=list(argv), rows=rows, cols=cols)
        return cls(argv, master_fd, process, rows, cols)

    @property
    def alive(self) -> bool:
        return self._master_fd is not None and self._process.poll() is None

    def start_pump(self, registry: TaskRegistry, channel: EventChannel[ChannelEvent]) -> None:
        """Read PTY output on a daemon thread registered as the shell pump."""
        fd = self._master_fd
        if fd is None:
            return
        session_id = self.id

        def pump(token: CancelToken) -> None:
            while not token.cancelled:
                try:
                    data = os.read(fd, READ_CHUNK)
                except OSError as e:
                    # EIO is how Linux reports that the slave side closed
                    if e.errno not in (errno.EIO, errno.EBADF):
                        logger.warning("pty_read_failed", error=str(e))
                    data = b""
                if not data:
                    channel.send(ShellExited(session_id))
                    return
                if not channel.send(ShellOutput(session_id, data)):
                    return

        registry.spawn_thread(TaskKind.SHELL_PUMP, pump)

    def write(self, data: bytes) -> None:
        """Send input bytes to the child; failures are logged and dropped."""
        if self._master_fd is None or not data:
            return
        try:
            os.write(self._master_fd, data)
        except OSError as e:
            logger.warning("pty_write_failed", error=str(e))

    def feed(self, data: bytes) -> None:
        """Interpret output bytes on the emulated screen."""
        self._stream.feed(data)

    def resize(self, rows: int, cols: int) -> None:
        if self._master_fd is None:
            return
        self.screen.resize(rows, cols)
        try:
            _set_winsize(self._master_fd, rows, cols)
        except OSError as e:
            logger.debug("pty_resize_failed", error=str(e))

    @property
    def display(self) -> list[str]:
        return list(self.screen.display)

    @property
    def cursor(self) -> tuple[int, int]:
        """(row, column) of the cursor."""
        return self.screen.cursor.y, self.screen.cursor.x

    def close(self) -> None:
        """Terminate the child and release the PTY."""
        if self._master_fd is None:
            return
        fd, self._master_fd = self._master_fd, None
        if self._process.poll() is None:
            self._process.terminate()
            try:
                self._process.wait(timeout=1)
            except subprocess.TimeoutExpired:
                self._process.kill()
        try:
            os.close(fd)
        except OSError as e:
            logger.debug("pty_close_failed", error=str(e))
        logger.info("pty_session_closed", argv=self.argv, returncode=self._process.returncode)
