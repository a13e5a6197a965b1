"""Unit tests for NamespaceManager."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from kubernetes.client import ApiException

from kube_runner.integrations.kubernetes.exceptions import KubernetesAuthError
from kube_runner.services.kubernetes.namespace_manager import NamespaceManager


@pytest.fixture
def namespace_manager(mock_k8s_client: MagicMock) -> NamespaceManager:
    """Create a NamespaceManager instance with mocked client."""
    return NamespaceManager(mock_k8s_client)


def namespace(name: str | None) -> SimpleNamespace:
    return SimpleNamespace(metadata=SimpleNamespace(name=name))


class TestNamespaceManager:
    """Tests for namespace listing."""

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_list_names(
        self, namespace_manager: NamespaceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Should return names in API order, skipping unnamed entries."""
        mock_k8s_client.core_v1.list_namespace.return_value = SimpleNamespace(
            items=[namespace("kube-system"), namespace(None), namespace("default")]
        )

        assert namespace_manager.list_namespace_names() == ["kube-system", "default"]

    @pytest.mark.unit
    @pytest.mark.kubernetes
    def test_forbidden(
        self, namespace_manager: NamespaceManager, mock_k8s_client: MagicMock
    ) -> None:
        """Should raise KubernetesAuthError when listing is not permitted."""
        mock_k8s_client.core_v1.list_namespace.side_effect = ApiException(
            status=403, reason="Forbidden"
        )

        with pytest.raises(KubernetesAuthError):
            namespace_manager.list_namespace_names()
