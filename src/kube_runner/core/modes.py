"""Interaction modes and pending destructive actions."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Mode(Enum):
    """The single active interaction mode; decides what a key press means."""

    LIST = "list"
    FILTER_INPUT = "filter_input"
    SECRET_DECODE = "secret_decode"
    CONTEXT_SELECT = "context_select"
    NAMESPACE_SELECT = "namespace_select"
    SCALE_INPUT = "scale_input"
    CONFIRM = "confirm"
    SHELL_VIEW = "shell_view"
    DESCRIBE_VIEW = "describe_view"
    LOG_VIEW = "log_view"
    LOG_SEARCH_INPUT = "log_search_input"
    STATUS_FILTER = "status_filter"

    @property
    def is_log_mode(self) -> bool:
        """Whether the log pane is on screen."""
        return self in (Mode.LOG_VIEW, Mode.LOG_SEARCH_INPUT)


@dataclass(frozen=True)
class DeleteResource:
    """Delete one or more pods or deployments."""

    count: int
    kind: str
    names: tuple[str, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        if self.count == 1:
            name = self.names[0] if self.names else "?"
            return f"Delete {self.kind} '{name}'?"
        return f"Delete {self.count} {self.kind}?\n{', '.join(self.names)}"


@dataclass(frozen=True)
class RestartDeployment:
    """Rollout restart of one deployment."""

    name: str

    @property
    def message(self) -> str:
        return f"Rollout restart '{self.name}'?"


@dataclass(frozen=True)
class ScaleDeployment:
    """Scale one deployment to a replica count."""

    name: str
    replicas: int

    @property
    def message(self) -> str:
        if self.replicas == 0:
            return f"Scale '{self.name}' to 0 replicas?\nThis will stop all pods."
        return f"Scale '{self.name}' to {self.replicas} replicas?"


PendingAction = DeleteResource | RestartDeployment | ScaleDeployment
