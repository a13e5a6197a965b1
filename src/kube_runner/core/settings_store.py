"""Local settings: namespaces remembered per kubeconfig context.

Stored as ``state.json`` in the state directory::

    {"namespaces": {"prod": ["default", "payments"]}}
"""

from __future__ import annotations

import os
from pathlib import Path

import structlog
from pydantic import BaseModel, Field, ValidationError

logger = structlog.get_logger()


class SettingsState(BaseModel):
    """Persisted settings document."""

    namespaces: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Known namespaces keyed by context name",
    )


class SettingsStore:
    """Load and save ``SettingsState`` at a fixed path.

    A missing or unreadable file loads as empty settings. Saves go through
    a temporary file renamed into place so a crash never leaves a partial
    document behind.
    """

    def __init__(self, path: Path) -> None:
        self._path = path
        self.state = SettingsState()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> SettingsState:
        """Read the settings file, replacing the in-memory state."""
        try:
            self.state = SettingsState.model_validate_json(self._path.read_text())
        except FileNotFoundError:
            self.state = SettingsState()
        except (OSError, ValidationError, ValueError) as e:
            logger.warning("settings_unreadable", path=str(self._path), error=str(e))
            self.state = SettingsState()
        return self.state

    def save(self) -> None:
        """Write the settings atomically with owner-only permissions."""
        directory = self._path.parent
        try:
            directory.mkdir(parents=True, exist_ok=True)
            directory.chmod(0o700)
            tmp = self._path.with_suffix(".tmp")
            fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(self.state.model_dump_json(indent=2))
            tmp.chmod(0o600)
            os.replace(tmp, self._path)
        except OSError as e:
            logger.warning("settings_save_failed", path=str(self._path), error=str(e))
            return
        logger.debug("settings_saved", path=str(self._path))

    def get_namespaces(self, context: str) -> list[str]:
        return list(self.state.namespaces.get(context, []))

    def add_namespace(self, context: str, namespace: str) -> list[str]:
        """Remember one namespace for ``context``; returns the sorted list."""
        entry = self.state.namespaces.setdefault(context, [])
        if namespace not in entry:
            entry.append(namespace)
            entry.sort()
        return list(entry)

    def merge_namespaces(self, context: str, discovered: list[str]) -> list[str]:
        """Union discovered namespaces into memory; returns the sorted list."""
        entry = self.state.namespaces.setdefault(context, [])
        for ns in discovered:
            if ns not in entry:
                entry.append(ns)
        entry.sort()
        return list(entry)
