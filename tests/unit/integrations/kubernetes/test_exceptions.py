"""Unit tests for Kubernetes exception types."""

from __future__ import annotations

import pytest

from kube_runner.integrations.kubernetes.exceptions import (
    KubernetesAuthError,
    KubernetesConflictError,
    KubernetesConnectionError,
    KubernetesError,
    KubernetesNotFoundError,
    KubernetesTimeoutError,
    KubernetesValidationError,
)
from kube_runner.integrations.kubernetes.kubectl_client import (
    KubectlBinaryNotFoundError,
    KubectlCommandError,
    KubectlError,
)


class TestKubernetesError:
    """Tests for the base error."""

    @pytest.mark.unit
    def test_str_includes_status_and_location(self) -> None:
        error = KubernetesError(
            "boom",
            status_code=500,
            resource_type="Pod",
            resource_name="web-0",
            namespace="default",
        )
        assert str(error) == "boom (status: 500) [Pod/web-0 in default]"

    @pytest.mark.unit
    def test_str_plain_message(self) -> None:
        assert str(KubernetesError("boom")) == "boom"


class TestSubclasses:
    """Tests for the specific error types."""

    @pytest.mark.unit
    def test_not_found_message(self) -> None:
        error = KubernetesNotFoundError(resource_type="Secret", resource_name="db")
        assert error.message == "Secret 'db' not found"
        assert error.status_code == 404

    @pytest.mark.unit
    def test_conflict_message(self) -> None:
        error = KubernetesConflictError(
            resource_type="Deployment", resource_name="api", namespace="prod"
        )
        assert error.message == "Deployment 'api' was modified concurrently in namespace 'prod'"
        assert error.status_code == 409

    @pytest.mark.unit
    def test_auth_forbidden(self) -> None:
        assert KubernetesAuthError(status_code=403).forbidden
        assert not KubernetesAuthError().forbidden

    @pytest.mark.unit
    def test_connection_and_timeout_keep_cause(self) -> None:
        cause = OSError("reset")
        assert KubernetesConnectionError(original_error=cause).original_error is cause
        assert KubernetesTimeoutError(original_error=cause).original_error is cause

    @pytest.mark.unit
    def test_validation_default_status(self) -> None:
        assert KubernetesValidationError().status_code == 422

    @pytest.mark.unit
    @pytest.mark.parametrize(
        "error",
        [
            KubernetesAuthError(),
            KubernetesNotFoundError(),
            KubectlBinaryNotFoundError(),
            KubectlCommandError("exit code 1"),
        ],
    )
    def test_hierarchy(self, error: KubernetesError) -> None:
        assert isinstance(error, KubernetesError)

    @pytest.mark.unit
    def test_kubectl_error_keeps_stderr(self) -> None:
        error = KubectlError("failed", stderr="error: not found\n")
        assert error.stderr == "error: not found\n"
        assert str(KubectlBinaryNotFoundError()) == "kubectl binary not found in PATH"
