"""Resource kinds and immutable resource snapshots.

A ``ResourceItem`` is one of ``PodItem``, ``DeploymentItem`` or
``SecretItem``: frozen projections of the API objects held by the watch
cache. Items are replaced wholesale on every cache change, never mutated.
"""

from __future__ import annotations

import base64
import binascii
from datetime import UTC, datetime
from enum import Enum
from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field

UNKNOWN_PHASE = "Unknown"


class ResourceKind(Enum):
    """Resource kinds shown as tabs, in tab order."""

    POD = "Pods"
    DEPLOYMENT = "Deployments"
    SECRET = "Secrets"

    @property
    def plural(self) -> str:
        """Lowercase plural used in messages ("pods")."""
        return self.value.lower()

    @property
    def singular(self) -> str:
        """kubectl resource name ("pod")."""
        return self.plural[:-1]

    def next(self) -> ResourceKind:
        """Following tab, wrapping around."""
        order = RESOURCE_KIND_ORDER
        return order[(order.index(self) + 1) % len(order)]

    def previous(self) -> ResourceKind:
        """Preceding tab, wrapping around."""
        order = RESOURCE_KIND_ORDER
        return order[(order.index(self) - 1) % len(order)]


RESOURCE_KIND_ORDER = list(ResourceKind)


def format_age(timestamp: datetime | None, now: datetime | None = None) -> str:
    """Compact age of a resource: ``45s``, ``7m``, ``3h`` or ``5d``.

    Returns ``?`` when the timestamp is missing.
    """
    if timestamp is None:
        return "?"
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    seconds = max(int(((now or datetime.now(UTC)) - timestamp).total_seconds()), 0)
    if seconds >= 86400:
        return f"{seconds // 86400}d"
    if seconds >= 3600:
        return f"{seconds // 3600}h"
    if seconds >= 60:
        return f"{seconds // 60}m"
    return f"{seconds}s"


def _safe_get(obj: Any, *attrs: str, default: Any = None) -> Any:
    """Safely traverse nested attributes on kubernetes SDK objects."""
    current = obj
    for attr in attrs:
        if current is None:
            return default
        current = getattr(current, attr, None)
    return current if current is not None else default


class ResourceSnapshot(BaseModel):
    """Fields shared by every resource snapshot."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: ClassVar[ResourceKind]

    name: str = Field(default="", description="Resource name")
    namespace: str | None = Field(default=None, description="Resource namespace")
    uid: str | None = Field(default=None, description="Kubernetes UID")
    creation_timestamp: datetime | None = Field(default=None, description="Creation time")

    @property
    def age(self) -> str:
        """Human-readable age string."""
        return format_age(self.creation_timestamp)

    @staticmethod
    def _metadata(obj: Any) -> dict[str, Any]:
        return {
            "name": _safe_get(obj, "metadata", "name", default=""),
            "namespace": _safe_get(obj, "metadata", "namespace"),
            "uid": _safe_get(obj, "metadata", "uid"),
            "creation_timestamp": _safe_get(obj, "metadata", "creation_timestamp"),
        }


class PodItem(ResourceSnapshot):
    """Pod snapshot."""

    kind: ClassVar[ResourceKind] = ResourceKind.POD

    phase: str = Field(default=UNKNOWN_PHASE, description="Pod phase")
    ready_count: int = Field(default=0, description="Number of ready containers")
    total_count: int = Field(default=0, description="Number of containers in the spec")
    restarts: int = Field(default=0, description="Total container restarts")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> PodItem:
        """Create from a kubernetes V1Pod object."""
        statuses = _safe_get(obj, "status", "container_statuses") or []
        return cls(
            **cls._metadata(obj),
            phase=_safe_get(obj, "status", "phase") or UNKNOWN_PHASE,
            ready_count=sum(1 for cs in statuses if getattr(cs, "ready", False)),
            total_count=len(_safe_get(obj, "spec", "containers") or []),
            restarts=sum(getattr(cs, "restart_count", 0) or 0 for cs in statuses),
        )


class DeploymentItem(ResourceSnapshot):
    """Deployment snapshot."""

    kind: ClassVar[ResourceKind] = ResourceKind.DEPLOYMENT

    replicas: int = Field(default=0, description="Current replicas")
    ready_replicas: int = Field(default=0, description="Ready replicas")
    updated_replicas: int = Field(default=0, description="Up-to-date replicas")
    available_replicas: int = Field(default=0, description="Available replicas")

    @classmethod
    def from_k8s_object(cls, obj: Any) -> DeploymentItem:
        """Create from a kubernetes V1Deployment object."""
        return cls(
            **cls._metadata(obj),
            replicas=_safe_get(obj, "status", "replicas", default=0),
            ready_replicas=_safe_get(obj, "status", "ready_replicas", default=0),
            updated_replicas=_safe_get(obj, "status", "updated_replicas", default=0),
            available_replicas=_safe_get(obj, "status", "available_replicas", default=0),
        )


class SecretItem(ResourceSnapshot):
    """Secret snapshot.

    ``data`` keeps the base64 values exactly as served; they are decoded
    only when the user opens the secret.
    """

    kind: ClassVar[ResourceKind] = ResourceKind.SECRET

    type: str = Field(default="Opaque", description="Secret type")
    data: dict[str, str] = Field(default_factory=dict, description="Base64-encoded values")

    @property
    def data_keys(self) -> list[str]:
        """Sorted key names."""
        return sorted(self.data)

    def decoded(self) -> list[tuple[str, str]]:
        """Decode values to text; undecodable or non-UTF-8 values become ``<binary>``."""
        result = []
        for key in self.data_keys:
            try:
                value = base64.b64decode(self.data[key], validate=True).decode("utf-8")
            except (binascii.Error, UnicodeDecodeError, ValueError):
                value = "<binary>"
            result.append((key, value))
        return result

    @classmethod
    def from_k8s_object(cls, obj: Any) -> SecretItem:
        """Create from a kubernetes V1Secret object."""
        return cls(
            **cls._metadata(obj),
            type=getattr(obj, "type", None) or "Opaque",
            data=dict(getattr(obj, "data", None) or {}),
        )


ResourceItem = PodItem | DeploymentItem | SecretItem

_ITEM_TYPES: dict[ResourceKind, type[PodItem] | type[DeploymentItem] | type[SecretItem]] = {
    ResourceKind.POD: PodItem,
    ResourceKind.DEPLOYMENT: DeploymentItem,
    ResourceKind.SECRET: SecretItem,
}


def item_from_k8s(kind: ResourceKind, obj: Any) -> ResourceItem:
    """Project an API object of ``kind`` into its snapshot type."""
    return _ITEM_TYPES[kind].from_k8s_object(obj)
