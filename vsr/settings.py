from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("VSR_DB_PATH", "vsr.db")
    version_label: str = os.getenv("VSR_VERSION_LABEL", "version")
    default_version: str = os.getenv("VSR_DEFAULT_VERSION", "shared")
    # Comma-joined `namespace/name` owners are stored under this key.
    owner_annotation: str = os.getenv("VSR_OWNER_ANNOTATION", "vsr.io/owners")

    # Store backend: memory|kubernetes
    store_backend: str = os.getenv("VSR_STORE_BACKEND", "memory")
    kube_in_cluster: bool = _env_bool("VSR_KUBE_IN_CLUSTER", False)
    kube_group: str = os.getenv("VSR_KUBE_GROUP", "networking.istio.io")
    kube_version: str = os.getenv("VSR_KUBE_VERSION", "v1alpha3")
    kube_plural: str = os.getenv("VSR_KUBE_PLURAL", "destinationrules")
    kube_kind: str = os.getenv("VSR_KUBE_KIND", "DestinationRule")

    # API
    admin_user: str = os.getenv("VSR_ADMIN_USER", "admin")
    admin_password: str = os.getenv("VSR_ADMIN_PASSWORD", "change-me")
    api_timeout_s: int = _env_int("VSR_API_TIMEOUT_S", 30)


settings = Settings()
