from __future__ import annotations

from threading import Event
from typing import Iterable

from . import annotations, db
from .models import LifecycleStatus, OwnerRef, ResourceStatus, validate_unique_name, validate_version
from .resolver import HostResolver, IgnorableMissing, OverrideRuleGenerator, override_name
from .runtime import HandleResult, LifecycleTracker, status_for
from .settings import settings
from .store import Conflict, NotFound, ReconcileError, Store, StoreFailure, check_cancel


class InvariantViolation(ReconcileError):
    pass


class RoutingOverrideHandler:
    """Creates and tracks the override routing objects of one owner.

    One override object is kept per service host, named
    `<unique_name>-<service_host>`, routing to `unique_version`. Hosts with no
    baseline for the default version are ignored rather than failed, but a
    pass that leaves no host active is an error.
    """

    def __init__(
        self,
        store: Store,
        owner: OwnerRef,
        unique_name: str,
        unique_version: str,
        namespace: str,
        service_hosts: list[str],
        version_label: str | None = None,
        default_version: str | None = None,
        annotation_key: str | None = None,
        tracker: LifecycleTracker | None = None,
    ):
        validate_unique_name(unique_name)
        validate_version(unique_version)
        self.store = store
        self.owner = owner
        self.unique_name = unique_name
        self.unique_version = unique_version
        self.namespace = namespace
        self.service_hosts = list(service_hosts)
        self.version_label = version_label or settings.version_label
        self.default_version = default_version or settings.default_version
        self.annotation_key = annotation_key or settings.owner_annotation
        self.tracker = tracker or LifecycleTracker()

        self.resolver = HostResolver(store, namespace, self.version_label, self.default_version)
        self.generator = OverrideRuleGenerator(self.resolver, unique_name, unique_version, self.version_label)

    @property
    def subset(self) -> str:
        return self.unique_name

    @property
    def hosts(self) -> list[str]:
        return list(self.tracker.active_hosts)

    def handle(self, cancel: Event | None = None) -> HandleResult:
        self.tracker.begin_pass()
        for host in self.service_hosts:
            name = override_name(self.unique_name, host)
            if self._exists(host, name, cancel):
                self.tracker.mark_active(host)
                continue
            self._create_missing(host, name, cancel)

        if not self.tracker.active_hosts:
            msg = f"no base routing objects were found for subset: {self.unique_name}"
            if self.tracker.ignored_missing:
                msg += f" (ignored missing hosts: {', '.join(self.tracker.ignored_missing)})"
            db.log_event("ERROR", msg, subset=self.unique_name)
            raise InvariantViolation(msg)
        return self.tracker.result()

    def get_status(self, cancel: Event | None = None, ignored: Iterable[str] | None = None) -> list[ResourceStatus]:
        """Report one status per configured host.

        Hosts missing an override are reported as ignored-missing when listed
        in `ignored`; without it, the hosts ignored by earlier `handle` calls
        on this instance are used.
        """
        ignored_hosts = set(ignored) if ignored is not None else set(self.tracker.ignored_missing)
        statuses: list[ResourceStatus] = []
        for host in self.service_hosts:
            name = override_name(self.unique_name, host)
            exists = self._exists(host, name, cancel)
            statuses.append(
                ResourceStatus(name=name, namespace=self.namespace, status=status_for(exists, host in ignored_hosts))
            )
        return statuses

    def apply_status(self, statuses: list[ResourceStatus]) -> None:
        for s in statuses:
            db.add_status_entry(self.unique_name, s)

    def release(self, cancel: Event | None = None) -> list[str]:
        return release_owner(
            self.store, self.owner, self.unique_name, self.namespace, self.service_hosts, self.annotation_key, cancel
        )

    def _exists(self, host: str, name: str, cancel: Event | None) -> bool:
        check_cancel(cancel)
        try:
            self.store.get(self.namespace, name)
        except NotFound:
            return False
        except Exception as e:
            raise StoreFailure(host, f"get routing object {name}", e) from e
        return True

    def _create_missing(self, host: str, name: str, cancel: Event | None) -> None:
        try:
            db.add_status_entry(
                self.unique_name,
                ResourceStatus(name=name, namespace=self.namespace, status=LifecycleStatus.INITIALIZING),
            )
        except Exception as e:
            raise StoreFailure(host, "record initializing status", e) from e

        new_obj = self.generator.generate(host, cancel)
        if isinstance(new_obj, IgnorableMissing):
            if self.tracker.mark_ignored(host):
                db.log_event("INFO", "Added hostname to list of ignored missing", subset=self.unique_name, host=host)
            return

        annotations.add_owner(self.owner, new_obj, key=self.annotation_key)
        db.log_event("INFO", f"Deploying override routing object {name}", subset=self.unique_name, host=host)
        check_cancel(cancel)
        try:
            self.store.create(new_obj)
        except Exception as e:
            raise StoreFailure(host, f"create routing object {name}", e) from e
        self.tracker.mark_active(host)


RELEASE_CONFLICT_RETRIES = 5


def release_owner(
    store: Store,
    owner: OwnerRef,
    unique_name: str,
    namespace: str,
    service_hosts: list[str],
    annotation_key: str | None = None,
    cancel: Event | None = None,
) -> list[str]:
    """Remove `owner` from the override objects of `service_hosts`.

    Returns the names of objects left without any owner. Objects are never
    deleted here. Writes are conditional on the version that was read; on a
    conflict the object is re-read and the removal retried.
    """
    emptied: list[str] = []
    for host in service_hosts:
        name = override_name(unique_name, host)
        if _release_one(store, owner, host, namespace, name, annotation_key, cancel):
            emptied.append(name)
    return emptied


def _release_one(
    store: Store,
    owner: OwnerRef,
    host: str,
    namespace: str,
    name: str,
    annotation_key: str | None,
    cancel: Event | None,
) -> bool:
    """Returns True if the object was left without owners by this release."""
    for attempt in range(1, RELEASE_CONFLICT_RETRIES + 1):
        check_cancel(cancel)
        try:
            obj = store.get(namespace, name)
        except NotFound:
            return False
        except Exception as e:
            raise StoreFailure(host, f"get routing object {name}", e) from e

        if not annotations.remove_owner(owner, obj, key=annotation_key):
            return False
        check_cancel(cancel)
        try:
            store.update(obj)
        except Conflict as e:
            if attempt == RELEASE_CONFLICT_RETRIES:
                raise StoreFailure(host, f"update routing object {name}", e) from e
            db.log_event("WARN", f"Conflict releasing {owner.token} from {name}, retrying", host=host)
            continue
        except Exception as e:
            raise StoreFailure(host, f"update routing object {name}", e) from e
        db.log_event("INFO", f"Released {owner.token} from {name}", host=host)
        return not annotations.owners_of(obj, key=annotation_key)
    return False
