"""kubectl CLI wrapper.

Covers the operations delegated to the kubectl binary rather than the API
client: describe output, namespace discovery when the API list is not
permitted, interactive exec/edit command lines for the embedded terminal,
and one-shot passthrough commands.
"""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Sequence
from pathlib import Path

import structlog

from kube_runner.integrations.kubernetes.exceptions import KubernetesError

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

KUBECTL_TIMEOUT_SECONDS = 60
NAMESPACE_JSONPATH = "jsonpath={.items[*].metadata.name}"


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class KubectlError(KubernetesError):
    """Base exception for kubectl invocations."""

    def __init__(
        self,
        message: str,
        stderr: str | None = None,
    ) -> None:
        super().__init__(message=message)
        self.stderr = stderr


class KubectlBinaryNotFoundError(KubectlError):
    """Raised when the kubectl binary is not found in PATH."""

    def __init__(self) -> None:
        super().__init__(message="kubectl binary not found in PATH")


class KubectlCommandError(KubectlError):
    """Raised when a kubectl command exits non-zero."""


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------


class KubectlClient:
    """Client for the kubectl CLI.

    The binary is located on first use so the interactive client starts
    even when kubectl is missing; only kubectl-backed actions fail.
    """

    def __init__(self, binary_path: str | None = None) -> None:
        self._binary_path = binary_path
        self._binary: str | None = None
        self._log = logger.bind(entity="kubectl")

    @property
    def binary(self) -> str:
        """Resolved path of the kubectl binary.

        Raises:
            KubectlBinaryNotFoundError: If not found.
        """
        if self._binary is None:
            self._binary = self._find_binary(self._binary_path)
        return self._binary

    @staticmethod
    def _find_binary(binary_path: str | None) -> str:
        if binary_path:
            path = Path(binary_path)
            if not path.exists():
                raise KubectlBinaryNotFoundError()
            return str(path.resolve())

        found = shutil.which("kubectl")
        if not found:
            raise KubectlBinaryNotFoundError()
        return found

    def _run(
        self,
        args: list[str],
        *,
        timeout: int = KUBECTL_TIMEOUT_SECONDS,
    ) -> subprocess.CompletedProcess[str]:
        """Run a kubectl command and capture its output.

        Raises:
            KubectlCommandError: On non-zero exit.
            KubectlError: On timeout or when the binary cannot be executed.
        """
        cmd = [self.binary, *args]
        self._log.debug("running_kubectl_command", args=args)

        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=timeout,
            )
        except subprocess.CalledProcessError as e:
            raise KubectlCommandError(
                message=e.stderr.strip() if e.stderr else f"exit code {e.returncode}",
                stderr=e.stderr,
            ) from e
        except subprocess.TimeoutExpired as e:
            raise KubectlError(message=f"kubectl timed out after {timeout}s") from e
        except OSError as e:
            raise KubectlError(message=str(e)) from e

    # -----------------------------------------------------------------------
    # Captured commands
    # -----------------------------------------------------------------------

    def describe(self, kind: str, name: str, namespace: str, context: str) -> list[str]:
        """``kubectl describe`` output split into lines."""
        result = self._run(["describe", kind, name, "-n", namespace, "--context", context])
        return result.stdout.splitlines()

    def get_namespace_names(self, context: str) -> list[str]:
        """Namespace names as kubectl sees them for ``context``."""
        result = self._run(
            ["get", "namespaces", "--context", context, "-o", NAMESPACE_JSONPATH]
        )
        return result.stdout.split()

    # -----------------------------------------------------------------------
    # Interactive command lines
    # -----------------------------------------------------------------------

    def exec_argv(self, pod: str, namespace: str, context: str) -> list[str]:
        """Command line for an interactive shell in ``pod``."""
        return [self.binary, "exec", "-it", pod, "-n", namespace, "--context", context, "--", "sh"]

    def edit_argv(self, kind: str, name: str, namespace: str, context: str) -> list[str]:
        """Command line for editing a resource in ``$EDITOR``."""
        return [self.binary, "edit", kind, name, "-n", namespace, "--context", context]

    # -----------------------------------------------------------------------
    # Passthrough
    # -----------------------------------------------------------------------

    def passthrough(self, args: Sequence[str]) -> int:
        """Run kubectl with inherited stdio; returns its exit status.

        Raises:
            KubectlBinaryNotFoundError: If kubectl is not installed.
            KubectlError: If the binary cannot be executed.
        """
        self._log.debug("running_kubectl_passthrough", args=list(args))
        try:
            completed = subprocess.run([self.binary, *args], check=False)
        except OSError as e:
            raise KubectlError(message=str(e)) from e
        return completed.returncode
