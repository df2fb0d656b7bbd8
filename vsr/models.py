from __future__ import annotations

import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


UNIQUE_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9\-\.]{0,200}$")
VERSION_RE = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9\-\._]{0,62}$")


def validate_unique_name(name: str) -> None:
    if not UNIQUE_NAME_RE.match(name):
        raise ValueError("Invalid unique name. Use lowercase letters/numbers, '-' and '.', starting alphanumeric.")


def validate_version(version: str) -> None:
    if not VERSION_RE.match(version):
        raise ValueError("Invalid version string. Use letters/numbers and -._ (max 63 chars).")


class LifecycleStatus(str, Enum):
    MISSING = "missing"
    INITIALIZING = "initializing"
    RUNNING = "running"
    IGNORED_MISSING = "ignored-missing"


class OwnerRef(BaseModel):
    """The owning resource of an override object, as `namespace/name`."""

    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str

    @property
    def token(self) -> str:
        return f"{self.namespace}/{self.name}"

    @classmethod
    def parse(cls, token: str) -> OwnerRef | None:
        """Parse a `namespace/name` token; None for anything malformed."""
        namespace, sep, name = token.partition("/")
        if not sep or not namespace or not name or "/" in name:
            return None
        return cls(namespace=namespace, name=name)


class Subset(BaseModel):
    name: str
    labels: dict[str, str] = Field(default_factory=dict)


class RoutingObject(BaseModel):
    name: str
    namespace: str
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    host: str
    subsets: list[Subset] = Field(default_factory=list)
    # Store-assigned; None means "unknown" and disables conflict checks on update.
    resource_version: str | None = None

    def subset_with(self, label: str, value: str) -> Subset | None:
        for s in self.subsets:
            if s.labels.get(label) == value:
                return s
        return None


class ResourceStatus(BaseModel):
    name: str
    namespace: str
    status: LifecycleStatus


class ReconcileRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    namespace: str
    name: str


class EventType(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    GENERIC = "generic"


class WatchEvent(BaseModel):
    type: EventType
    # Either a RoutingObject or a raw object with `metadata.annotations`.
    object: RoutingObject | dict[str, Any]
    old_object: RoutingObject | dict[str, Any] | None = Field(None, description="Previous snapshot (update only)")


class OverrideRequest(BaseModel):
    owner_namespace: str = Field(..., description="Namespace of the owning resource")
    owner_name: str = Field(..., description="Name of the owning resource")
    unique_name: str = Field(..., description="Prefix for override object names")
    unique_version: str = Field(..., description="Version the override subset routes to, e.g. v2")
    namespace: str = Field(..., description="Namespace holding the routing objects")
    service_hosts: list[str] = Field(..., min_length=1)
    version_label: str | None = Field(None, description="Defaults to VSR_VERSION_LABEL")
    default_version: str | None = Field(None, description="Defaults to VSR_DEFAULT_VERSION")


class ReleaseRequest(BaseModel):
    owner_namespace: str
    owner_name: str
    unique_name: str
    namespace: str
    service_hosts: list[str] = Field(..., min_length=1)
