"""Baseline lookup and override generation for service hosts."""
from __future__ import annotations

from dataclasses import dataclass
from threading import Event

from . import db
from .models import RoutingObject, Subset
from .store import Store, StoreFailure, check_cancel


def _short_host(host: str, namespace: str) -> str:
    for suffix in (f".{namespace}.svc.cluster.local", f".{namespace}.svc", f".{namespace}"):
        if host.endswith(suffix) and len(host) > len(suffix):
            return host[: -len(suffix)]
    return host


def match_namespaced_host(host: str, namespace: str, declared_host: str, declared_namespace: str) -> bool:
    """Whether `declared_host` (on an object in `declared_namespace`) names `host`.

    Short names and `name.namespace` forms are equivalent in either direction,
    but only within `namespace`.
    """
    if host == declared_host:
        return True
    if declared_namespace != namespace:
        return False
    return _short_host(host, namespace) == _short_host(declared_host, namespace)


def override_name(unique_name: str, service_host: str) -> str:
    return f"{unique_name}-{service_host}"


@dataclass(frozen=True)
class Located:
    baseline: RoutingObject


@dataclass(frozen=True)
class IgnorableMissing:
    """No baseline carrying the default version exists for `host`."""

    host: str
    namespace: str
    default_version: str


Resolution = Located | IgnorableMissing


class HostResolver:
    def __init__(self, store: Store, namespace: str, version_label: str, default_version: str):
        self.store = store
        self.namespace = namespace
        self.version_label = version_label
        self.default_version = default_version

    def locate(self, service_host: str, cancel: Event | None = None) -> Resolution:
        check_cancel(cancel)
        try:
            candidates = self.store.list(self.namespace)
        except Exception as e:
            raise StoreFailure(service_host, "list routing objects", e) from e

        for obj in candidates:
            if not match_namespaced_host(service_host, self.namespace, obj.host, obj.namespace):
                continue
            if obj.subset_with(self.version_label, self.default_version) is not None:
                return Located(obj)

        db.log_event(
            "INFO",
            f"No routing object with {self.version_label}={self.default_version} in namespace {self.namespace}",
            host=service_host,
        )
        return IgnorableMissing(service_host, self.namespace, self.default_version)


class OverrideRuleGenerator:
    """Builds version-scoped override objects. Has no side effects."""

    def __init__(self, resolver: HostResolver, unique_name: str, unique_version: str, version_label: str):
        self.resolver = resolver
        self.unique_name = unique_name
        self.unique_version = unique_version
        self.version_label = version_label

    def generate(self, service_host: str, cancel: Event | None = None) -> RoutingObject | IgnorableMissing:
        found = self.resolver.locate(service_host, cancel)
        if isinstance(found, IgnorableMissing):
            return found
        return RoutingObject(
            name=override_name(self.unique_name, service_host),
            namespace=self.resolver.namespace,
            labels={self.version_label: self.unique_version},
            host=found.baseline.host,
            subsets=[
                Subset(name=self.unique_version, labels={self.version_label: self.unique_version}),
            ],
        )
