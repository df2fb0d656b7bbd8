"""Multi-owner index stored as an annotation on routing objects.

Several owners can share one override object. Each owner is recorded as a
`namespace/name` token in a single comma-joined annotation value, and watch
events on the object are fanned out into one reconcile request per owner.
"""
from __future__ import annotations

from typing import Any, Iterable, Iterator, Protocol

from .models import EventType, OwnerRef, ReconcileRequest, RoutingObject
from .settings import settings


class OwnerSet:
    """Ordered, duplicate-free set of owners with a lenient decoder."""

    def __init__(self, owners: Iterable[OwnerRef] = ()) -> None:
        self._owners: dict[str, OwnerRef] = {}
        for o in owners:
            self.add(o)

    @classmethod
    def parse(cls, raw: str | None) -> OwnerSet:
        """Decode an annotation value.

        Empty tokens and tokens without a `namespace/name` shape are skipped;
        decoding never raises.
        """
        out = cls()
        for token in (raw or "").split(","):
            owner = OwnerRef.parse(token.strip())
            if owner is not None:
                out.add(owner)
        return out

    def add(self, owner: OwnerRef) -> bool:
        if owner.token in self._owners:
            return False
        self._owners[owner.token] = owner
        return True

    def discard(self, owner: OwnerRef) -> bool:
        return self._owners.pop(owner.token, None) is not None

    def encode(self) -> str:
        return ",".join(self._owners)

    def __contains__(self, owner: object) -> bool:
        return isinstance(owner, OwnerRef) and owner.token in self._owners

    def __iter__(self) -> Iterator[OwnerRef]:
        return iter(list(self._owners.values()))

    def __len__(self) -> int:
        return len(self._owners)


def _annotations(obj: RoutingObject | dict[str, Any]) -> dict[str, str]:
    if isinstance(obj, RoutingObject):
        return obj.annotations
    meta = obj.setdefault("metadata", {})
    if meta.get("annotations") is None:
        meta["annotations"] = {}
    return meta["annotations"]


def _read(obj: RoutingObject | dict[str, Any], key: str | None) -> OwnerSet:
    if isinstance(obj, dict):
        raw = ((obj.get("metadata") or {}).get("annotations") or {}).get(key or settings.owner_annotation)
    else:
        raw = obj.annotations.get(key or settings.owner_annotation)
    return OwnerSet.parse(raw)


def owners_of(obj: RoutingObject | dict[str, Any], key: str | None = None) -> list[OwnerRef]:
    return list(_read(obj, key))


def has_owner(owner: OwnerRef, obj: RoutingObject | dict[str, Any], key: str | None = None) -> bool:
    return owner in _read(obj, key)


def add_owner(owner: OwnerRef, obj: RoutingObject | dict[str, Any], key: str | None = None) -> bool:
    """Record `owner` on `obj`.

    Returns False, leaving `obj` untouched, if it was already present. A write
    re-encodes the whole value, dropping malformed tokens.
    """
    owners = _read(obj, key)
    if not owners.add(owner):
        return False
    _annotations(obj)[key or settings.owner_annotation] = owners.encode()
    return True


def remove_owner(owner: OwnerRef, obj: RoutingObject | dict[str, Any], key: str | None = None) -> bool:
    """Drop `owner` from `obj`. Returns False (and leaves `obj` alone) if absent.

    Removing the last owner keeps the key with an empty value.
    """
    owners = _read(obj, key)
    if not owners.discard(owner):
        return False
    _annotations(obj)[key or settings.owner_annotation] = owners.encode()
    return True


def fan_out(
    event_type: EventType | str,
    obj: RoutingObject | dict[str, Any],
    old_obj: RoutingObject | dict[str, Any] | None = None,
    key: str | None = None,
) -> list[ReconcileRequest]:
    """Convert a watch event into one reconcile request per owner.

    Update events consult both snapshots so owners added or removed by the
    update are reconciled as well.
    """
    snapshots = [obj]
    if EventType(event_type) is EventType.UPDATE and old_obj is not None:
        snapshots.append(old_obj)

    seen = OwnerSet()
    for snap in snapshots:
        for owner in _read(snap, key):
            seen.add(owner)
    return [ReconcileRequest(namespace=o.namespace, name=o.name) for o in seen]


class RequestQueue(Protocol):
    def add(self, item: ReconcileRequest) -> None: ...


class EnqueueRequestForAnnotation:
    """Watch handler pushing fan-out results onto a work queue."""

    def __init__(self, queue: RequestQueue, key: str | None = None) -> None:
        self.queue = queue
        self.key = key

    def create(self, obj: RoutingObject | dict[str, Any]) -> None:
        self._push(fan_out(EventType.CREATE, obj, key=self.key))

    def update(self, old_obj: RoutingObject | dict[str, Any], new_obj: RoutingObject | dict[str, Any]) -> None:
        self._push(fan_out(EventType.UPDATE, new_obj, old_obj, key=self.key))

    def delete(self, obj: RoutingObject | dict[str, Any]) -> None:
        self._push(fan_out(EventType.DELETE, obj, key=self.key))

    def generic(self, obj: RoutingObject | dict[str, Any]) -> None:
        self._push(fan_out(EventType.GENERIC, obj, key=self.key))

    def _push(self, requests: list[ReconcileRequest]) -> None:
        for r in requests:
            self.queue.add(r)
