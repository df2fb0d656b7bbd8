from __future__ import annotations

from threading import Event, Lock
from typing import Protocol

from .models import RoutingObject


class ReconcileError(Exception):
    pass


class NotFound(ReconcileError):
    pass


class AlreadyExists(ReconcileError):
    pass


class Conflict(ReconcileError):
    """The object changed since it was read."""


class Cancelled(ReconcileError):
    pass


class StoreFailure(ReconcileError):
    """A store call failed; carries the host and operation it failed for."""

    def __init__(self, host: str, operation: str, cause: BaseException | None = None):
        self.host = host
        self.operation = operation
        self.cause = cause
        detail = f": {type(cause).__name__}: {cause}" if cause is not None else ""
        super().__init__(f"{operation} failed for host '{host}'{detail}")


class Store(Protocol):
    """The object-store calls the reconciler needs. All calls block."""

    def get(self, namespace: str, name: str) -> RoutingObject: ...

    def list(self, namespace: str) -> list[RoutingObject]: ...

    def create(self, obj: RoutingObject) -> None: ...

    def update(self, obj: RoutingObject) -> None:
        """Write back a read object; raises `Conflict` if it changed meanwhile."""


def check_cancel(cancel: Event | None) -> None:
    if cancel is not None and cancel.is_set():
        raise Cancelled("reconciliation cancelled")


class MemoryStore:
    """In-process store. `list` returns objects in insertion order.

    Every write bumps the object's resource version; an update carrying a stale
    version raises `Conflict`.
    """

    def __init__(self, objects: list[RoutingObject] | None = None) -> None:
        self.lock = Lock()
        self._objects: dict[tuple[str, str], RoutingObject] = {}
        self._revision = 0
        for o in objects or []:
            self._put(o)

    def _put(self, obj: RoutingObject) -> None:
        self._revision += 1
        self._objects[(obj.namespace, obj.name)] = obj.model_copy(
            deep=True, update={"resource_version": str(self._revision)}
        )

    def get(self, namespace: str, name: str) -> RoutingObject:
        with self.lock:
            found = self._objects.get((namespace, name))
            if found is None:
                raise NotFound(f"{namespace}/{name}")
            return found.model_copy(deep=True)

    def list(self, namespace: str) -> list[RoutingObject]:
        with self.lock:
            return [o.model_copy(deep=True) for (ns, _), o in self._objects.items() if ns == namespace]

    def create(self, obj: RoutingObject) -> None:
        with self.lock:
            if (obj.namespace, obj.name) in self._objects:
                raise AlreadyExists(f"{obj.namespace}/{obj.name}")
            self._put(obj)

    def update(self, obj: RoutingObject) -> None:
        with self.lock:
            current = self._objects.get((obj.namespace, obj.name))
            if current is None:
                raise NotFound(f"{obj.namespace}/{obj.name}")
            if obj.resource_version is not None and obj.resource_version != current.resource_version:
                raise Conflict(
                    f"{obj.namespace}/{obj.name}: have {obj.resource_version}, store has {current.resource_version}"
                )
            self._put(obj)
