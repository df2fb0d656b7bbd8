from __future__ import annotations

import secrets
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from vsr import annotations, db
from vsr.kube_store import KubernetesStore, load_kube_config
from vsr.models import OverrideRequest, OwnerRef, ReleaseRequest, WatchEvent
from vsr.reconciler import InvariantViolation, RoutingOverrideHandler, release_owner
from vsr.settings import settings
from vsr.store import Cancelled, MemoryStore, Store, StoreFailure

_store: Store | None = None


def get_store() -> Store:
    global _store
    if _store is None:
        if settings.store_backend == "kubernetes":
            load_kube_config()
            _store = KubernetesStore()
        else:
            _store = MemoryStore()
    return _store


@asynccontextmanager
async def lifespan(_app: FastAPI):
    db.init_db()
    db.log_event("INFO", f"API started (store backend: {settings.store_backend})")
    yield


app = FastAPI(title="Versioned Subset Reconciler", lifespan=lifespan)
security = HTTPBasic()


def get_current_username(credentials: HTTPBasicCredentials = Depends(security)) -> str:
    if not (
        secrets.compare_digest(credentials.username, settings.admin_user)
        and secrets.compare_digest(credentials.password, settings.admin_password)
    ):
        raise HTTPException(status_code=401, detail="Invalid credentials", headers={"WWW-Authenticate": "Basic"})
    return credentials.username


@app.get("/health")
def health() -> dict:
    return {"status": "healthy"}


@app.post("/overrides")
def reconcile_overrides(
    req: OverrideRequest,
    store: Store = Depends(get_store),
    username: str = Depends(get_current_username),
) -> dict:
    try:
        handler = RoutingOverrideHandler(
            store,
            owner=OwnerRef(namespace=req.owner_namespace, name=req.owner_name),
            unique_name=req.unique_name,
            unique_version=req.unique_version,
            namespace=req.namespace,
            service_hosts=req.service_hosts,
            version_label=req.version_label,
            default_version=req.default_version,
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    db.log_event("INFO", f"Reconcile requested by {username}", subset=req.unique_name)
    try:
        result = handler.handle()
    except InvariantViolation as e:
        # Still publish statuses so ignored hosts are visible.
        try:
            handler.apply_status(handler.get_status())
        except StoreFailure as failure:
            raise HTTPException(status_code=502, detail=str(failure))
        raise HTTPException(status_code=409, detail=str(e))
    except StoreFailure as e:
        raise HTTPException(status_code=502, detail=str(e))
    except Cancelled as e:
        raise HTTPException(status_code=503, detail=str(e))

    try:
        statuses = handler.get_status(ignored=result.ignored_missing)
    except StoreFailure as e:
        raise HTTPException(status_code=502, detail=str(e))
    handler.apply_status(statuses)
    return {
        "subset": handler.subset,
        "active_hosts": result.active_hosts,
        "ignored_missing": result.ignored_missing,
        "statuses": [s.model_dump(mode="json") for s in statuses],
    }


@app.post("/overrides/release")
def release_overrides(
    req: ReleaseRequest,
    store: Store = Depends(get_store),
    username: str = Depends(get_current_username),
) -> dict:
    owner = OwnerRef(namespace=req.owner_namespace, name=req.owner_name)
    db.log_event("INFO", f"Release of {owner.token} requested by {username}", subset=req.unique_name)
    try:
        emptied = release_owner(store, owner, req.unique_name, req.namespace, req.service_hosts)
    except StoreFailure as e:
        raise HTTPException(status_code=502, detail=str(e))
    return {"owner": owner.token, "emptied": emptied}


@app.get("/status/{subset}")
def subset_status(subset: str) -> list[dict]:
    return [s.model_dump(mode="json") for s in db.list_status(subset)]


@app.post("/watch")
def watch_event(event: WatchEvent) -> list[dict]:
    requests = annotations.fan_out(event.type, event.object, event.old_object)
    return [r.model_dump() for r in requests]


@app.get("/events")
def events(limit: int = 100) -> list[dict]:
    if limit < 1 or limit > 1000:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="limit must be between 1 and 1000")
    return db.latest_events(limit)
