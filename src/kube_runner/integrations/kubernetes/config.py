"""Kubernetes connection and runtime configuration models."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_STATE_DIR = "~/.config/kr"


class KubernetesDefaultsConfig(BaseModel):
    """Default settings for one-shot cluster operations."""

    model_config = ConfigDict(extra="forbid")

    retry_attempts: int = 3

    @field_validator("retry_attempts")
    @classmethod
    def validate_retry_attempts(cls, v: int) -> int:
        """Validate retry_attempts is non-negative."""
        if v < 0:
            raise ValueError("retry_attempts must be non-negative")
        return v


class KubeRunnerConfig(BaseModel):
    """Complete runtime configuration for the interactive client."""

    model_config = ConfigDict(extra="forbid")

    kubeconfig: str | None = None
    context: str | None = None
    namespace: str | None = None
    state_dir: str = Field(default=DEFAULT_STATE_DIR, validate_default=True)
    defaults: KubernetesDefaultsConfig = KubernetesDefaultsConfig()

    @field_validator("kubeconfig")
    @classmethod
    def validate_kubeconfig(cls, v: str | None) -> str | None:
        """Expand ~ in kubeconfig path."""
        if v is None:
            return None
        return str(Path(v).expanduser())

    @field_validator("state_dir")
    @classmethod
    def validate_state_dir(cls, v: str) -> str:
        """Expand ~ in the settings directory."""
        return str(Path(v).expanduser())

    @field_validator("namespace")
    @classmethod
    def validate_namespace(cls, v: str | None) -> str | None:
        """Treat an empty namespace override as unset."""
        return v or None

    @classmethod
    def from_env(cls, base_config: dict[str, Any] | None = None) -> KubeRunnerConfig:
        """Create configuration with environment variable overrides.

        Environment variables take precedence over base_config values.

        Supported environment variables:
            KR_KUBECONFIG: Kubeconfig path (defaults to the client library lookup)
            KR_CONTEXT: Initial kubeconfig context
            KR_NAMESPACE: Initial namespace
            KR_RETRY_ATTEMPTS: Retries for one-shot API calls
            KR_STATE_DIR: Directory holding the local settings file
        """
        config_dict = base_config.copy() if base_config else {}
        if "defaults" not in config_dict:
            config_dict["defaults"] = {}

        if kubeconfig := os.environ.get("KR_KUBECONFIG"):
            config_dict["kubeconfig"] = kubeconfig

        if context := os.environ.get("KR_CONTEXT"):
            config_dict["context"] = context

        if namespace := os.environ.get("KR_NAMESPACE"):
            config_dict["namespace"] = namespace

        if retries := os.environ.get("KR_RETRY_ATTEMPTS"):
            config_dict["defaults"]["retry_attempts"] = int(retries)

        if state_dir := os.environ.get("KR_STATE_DIR"):
            config_dict["state_dir"] = state_dir

        return cls.model_validate(config_dict)

    @property
    def state_path(self) -> Path:
        """Path of the JSON settings file."""
        return Path(self.state_dir) / "state.json"
