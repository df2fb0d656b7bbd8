from __future__ import annotations

from typing import Any

from kubernetes import client, config
from kubernetes.client.rest import ApiException

from .models import RoutingObject, Subset
from .settings import settings
from .store import AlreadyExists, Conflict, NotFound


def load_kube_config() -> None:
    if settings.kube_in_cluster:
        config.load_incluster_config()
    else:
        config.load_kube_config()


def from_manifest(item: dict[str, Any]) -> RoutingObject:
    meta = item.get("metadata") or {}
    spec = item.get("spec") or {}
    return RoutingObject(
        name=meta.get("name", ""),
        namespace=meta.get("namespace", ""),
        labels=meta.get("labels") or {},
        annotations=meta.get("annotations") or {},
        host=spec.get("host", ""),
        subsets=[Subset(name=s.get("name", ""), labels=s.get("labels") or {}) for s in spec.get("subsets") or []],
        resource_version=meta.get("resourceVersion"),
    )


def to_manifest(obj: RoutingObject) -> dict[str, Any]:
    return {
        "apiVersion": f"{settings.kube_group}/{settings.kube_version}",
        "kind": settings.kube_kind,
        "metadata": {
            "name": obj.name,
            "namespace": obj.namespace,
            "labels": dict(obj.labels),
            "annotations": dict(obj.annotations),
        },
        "spec": {
            "host": obj.host,
            "subsets": [{"name": s.name, "labels": dict(s.labels)} for s in obj.subsets],
        },
    }


def _translate(e: ApiException, what: str, on_conflict: type[Exception] = AlreadyExists) -> None:
    if e.status == 404:
        raise NotFound(what) from e
    if e.status == 409:
        raise on_conflict(what) from e


class KubernetesStore:
    """Store backed by namespaced custom objects (Istio DestinationRules by default)."""

    def __init__(self, api: client.CustomObjectsApi | None = None):
        self.api = api or client.CustomObjectsApi()
        self.group = settings.kube_group
        self.version = settings.kube_version
        self.plural = settings.kube_plural

    def get(self, namespace: str, name: str) -> RoutingObject:
        try:
            item = self.api.get_namespaced_custom_object(self.group, self.version, namespace, self.plural, name)
        except ApiException as e:
            _translate(e, f"{namespace}/{name}")
            raise
        return from_manifest(item)

    def list(self, namespace: str) -> list[RoutingObject]:
        result = self.api.list_namespaced_custom_object(self.group, self.version, namespace, self.plural)
        return [from_manifest(i) for i in result.get("items", [])]

    def create(self, obj: RoutingObject) -> None:
        try:
            self.api.create_namespaced_custom_object(
                self.group, self.version, obj.namespace, self.plural, to_manifest(obj)
            )
        except ApiException as e:
            _translate(e, f"{obj.namespace}/{obj.name}")
            raise

    def update(self, obj: RoutingObject) -> None:
        # Existing objects only ever change their annotations. With a
        # resourceVersion the API server rejects the patch (409) if the object
        # moved on since it was read.
        metadata: dict[str, Any] = {"annotations": dict(obj.annotations)}
        if obj.resource_version is not None:
            metadata["resourceVersion"] = obj.resource_version
        body = {"metadata": metadata}
        try:
            self.api.patch_namespaced_custom_object(
                self.group, self.version, obj.namespace, self.plural, obj.name, body
            )
        except ApiException as e:
            _translate(e, f"{obj.namespace}/{obj.name}", on_conflict=Conflict)
            raise
