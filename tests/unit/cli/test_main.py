"""Unit tests for the kr command line."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from typer.testing import CliRunner

from kube_runner import __version__
from kube_runner.cli.main import app
from kube_runner.integrations.kubernetes.kubectl_client import (
    KubectlBinaryNotFoundError,
    KubectlError,
)

PASSTHROUGH = "kube_runner.integrations.kubernetes.kubectl_client.KubectlClient.passthrough"


@pytest.fixture(autouse=True)
def no_logging_setup() -> Iterator[MagicMock]:
    with patch("kube_runner.cli.main.configure_logging") as configure:
        yield configure


@pytest.mark.unit
class TestVersion:
    """Tests for --version."""

    def test_prints_version(self, cli_runner: CliRunner) -> None:
        """--version should print the version and exit cleanly."""
        result = cli_runner.invoke(app, ["--version"])

        assert result.exit_code == 0
        assert f"kr version {__version__}" in result.output


@pytest.mark.unit
class TestPassthrough:
    """Tests for -c passthrough mode."""

    def test_success(self, cli_runner: CliRunner) -> None:
        """A zero exit from kubectl should exit 0."""
        with patch(PASSTHROUGH, return_value=0) as passthrough:
            result = cli_runner.invoke(app, ["-c", "get pods -n 'my ns'"])

        assert result.exit_code == 0
        passthrough.assert_called_once_with(["get", "pods", "-n", "my ns"])

    def test_non_zero_status_propagates(self, cli_runner: CliRunner) -> None:
        """kubectl's non-zero status should become kr's exit code."""
        with patch(PASSTHROUGH, return_value=2):
            result = cli_runner.invoke(app, ["--command", "get nothing"])

        assert result.exit_code == 2
        assert "Command failed with status: 2" in result.output

    def test_unmatched_quotes(self, cli_runner: CliRunner) -> None:
        """An unparseable command should fail before running kubectl."""
        with patch(PASSTHROUGH) as passthrough:
            result = cli_runner.invoke(app, ["-c", "get pods 'oops"])

        assert result.exit_code == 1
        assert "unmatched quotes" in result.output
        passthrough.assert_not_called()

    def test_missing_kubectl(self, cli_runner: CliRunner) -> None:
        """A missing kubectl binary should report and exit 1."""
        with patch(PASSTHROUGH, side_effect=KubectlBinaryNotFoundError()):
            result = cli_runner.invoke(app, ["-c", "version"])

        assert result.exit_code == 1
        assert "Failed to execute kubectl" in result.output

    def test_exec_failure(self, cli_runner: CliRunner) -> None:
        """An OS-level exec failure should report and exit 1."""
        with patch(PASSTHROUGH, side_effect=KubectlError("permission denied")):
            result = cli_runner.invoke(app, ["-c", "version"])

        assert result.exit_code == 1

    def test_logging_keeps_console(
        self, cli_runner: CliRunner, no_logging_setup: MagicMock
    ) -> None:
        """Passthrough mode should log to the console."""
        with patch(PASSTHROUGH, return_value=0):
            cli_runner.invoke(app, ["-c", "version", "--debug"])

        no_logging_setup.assert_called_once_with(verbose=False, debug=True)


@pytest.mark.unit
class TestInteractive:
    """Tests for starting the full-screen client."""

    def test_connection_failure(self, cli_runner: CliRunner, no_logging_setup: MagicMock) -> None:
        """A cluster that cannot be reached should exit 1 before the UI starts."""
        from kube_runner.integrations.kubernetes.exceptions import KubernetesConnectionError

        with (
            patch(
                "kube_runner.integrations.kubernetes.KubernetesClient",
                side_effect=KubernetesConnectionError("no kubeconfig"),
            ),
            patch("kube_runner.tui.KubeRunnerApp") as app_cls,
        ):
            result = cli_runner.invoke(app, [])

        assert result.exit_code == 1
        assert "no kubeconfig" in result.output
        app_cls.assert_not_called()
        no_logging_setup.assert_called_once_with(verbose=False, debug=False, console=False)

    def test_invalid_configuration(
        self, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A malformed environment override should exit 1."""
        monkeypatch.setenv("KR_RETRY_ATTEMPTS", "lots")

        result = cli_runner.invoke(app, [])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_runs_app_and_closes_client(
        self, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch, tmp_path: Path
    ) -> None:
        """The app should run with the configured namespace and the client be closed."""
        monkeypatch.setenv("KR_NAMESPACE", "payments")
        monkeypatch.setenv("KR_STATE_DIR", str(tmp_path))

        with (
            patch("kube_runner.integrations.kubernetes.KubernetesClient") as client_cls,
            patch("kube_runner.tui.KubeRunnerApp") as app_cls,
        ):
            app_cls.return_value.return_code = None
            result = cli_runner.invoke(app, [])

        assert result.exit_code == 0
        assert app_cls.call_args.kwargs["namespace"] == "payments"
        app_cls.return_value.run.assert_called_once()
        client_cls.return_value.close.assert_called_once()
