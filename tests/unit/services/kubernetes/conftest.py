"""Shared fixtures for Kubernetes service tests."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from kube_runner.integrations.kubernetes.client import KubernetesClient


@pytest.fixture
def mock_k8s_client() -> MagicMock:
    """Create a mock Kubernetes client with real error translation.

    Provides pre-configured sub-mocks for the API groups the managers use:
    core_v1 and apps_v1. Retries call straight through.
    """
    mock_client = MagicMock()
    mock_client.default_namespace = "default"
    mock_client.make_retry_decorator.return_value = lambda func: func
    mock_client.translate_api_exception.side_effect = KubernetesClient.translate_api_exception
    return mock_client
