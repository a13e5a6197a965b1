"""Shared pytest fixtures for kube_runner tests."""

from __future__ import annotations

import logging
import os
from unittest.mock import MagicMock

import pytest
from typer.testing import CliRunner

from kube_runner.core.logs import LogSession
from kube_runner.core.session import Session


class RecordingLogSource:
    """LogSource that records the reads a LogSession asks for."""

    def __init__(self) -> None:
        self.follows: list[tuple[str, str, int, int]] = []
        self.fetches: list[tuple[str, str, int, int]] = []
        self.stops = 0

    def start_follow(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        self.follows.append((pod, namespace, generation, tail_lines))

    def fetch_history(self, pod: str, namespace: str, generation: int, tail_lines: int) -> None:
        self.fetches.append((pod, namespace, generation, tail_lines))

    def stop(self) -> None:
        self.stops += 1


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Clear KR_ prefixed environment variables for each test."""
    for key in list(os.environ.keys()):
        if key.startswith("KR_"):
            monkeypatch.delenv(key, raising=False)


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Typer CLI test runner."""
    return CliRunner()


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Mock KubernetesClient whose retry decorator calls straight through."""
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.get_current_context.return_value = "dev"
    mock_client.make_retry_decorator.return_value = lambda func: func
    return mock_client


@pytest.fixture
def log_source() -> RecordingLogSource:
    return RecordingLogSource()


@pytest.fixture
def log_session(log_source: RecordingLogSource) -> LogSession:
    """A LogSession with a small capacity, viewing pod 'web-0'."""
    log = LogSession(log_source, capacity=10, tail_step=3)
    log.start("web-0", "default")
    return log


@pytest.fixture
def session(log_session: LogSession) -> Session:
    return Session(log_session, namespace="default", context="dev")


@pytest.fixture
def capture_logs(caplog: pytest.LogCaptureFixture) -> pytest.LogCaptureFixture:
    """Fixture to capture log output."""
    caplog.set_level(logging.DEBUG)
    return caplog
