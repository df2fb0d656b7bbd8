from __future__ import annotations

from dataclasses import dataclass, field

from .models import LifecycleStatus


@dataclass(frozen=True)
class HandleResult:
    active_hosts: list[str]
    ignored_missing: list[str] = field(default_factory=list)


class LifecycleTracker:
    """Per-cycle host state for one handler instance.

    Active hosts are rebuilt on every pass; ignored-missing hosts accumulate for
    the lifetime of the tracker, each recorded once.
    """

    def __init__(self) -> None:
        self.active_hosts: list[str] = []
        self._ignored: dict[str, None] = {}

    def begin_pass(self) -> None:
        self.active_hosts = []

    def mark_active(self, host: str) -> None:
        self.active_hosts.append(host)

    def mark_ignored(self, host: str) -> bool:
        """Returns True the first time `host` is ignored."""
        if host in self._ignored:
            return False
        self._ignored[host] = None
        return True

    def is_ignored(self, host: str) -> bool:
        return host in self._ignored

    @property
    def ignored_missing(self) -> list[str]:
        return list(self._ignored)

    def result(self) -> HandleResult:
        # A host ignored earlier may have become active since.
        active = list(self.active_hosts)
        return HandleResult(active_hosts=active, ignored_missing=[h for h in self._ignored if h not in active])


def status_for(exists: bool, ignored: bool) -> LifecycleStatus:
    if exists:
        return LifecycleStatus.RUNNING
    if ignored:
        return LifecycleStatus.IGNORED_MISSING
    return LifecycleStatus.MISSING
