import importlib.util
import os

import pytest
from fastapi.testclient import TestClient

from vsr.store import MemoryStore


def _import_main_module(project_root):
    """Import main.py as a module without requiring it to be installed as a package."""
    main_path = os.path.join(project_root, "main.py")
    spec = importlib.util.spec_from_file_location("vsr_api_main", main_path)
    mod = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(mod)  # type: ignore[attr-defined]
    return mod


@pytest.fixture
def api(shop_store):
    project_root = os.path.dirname(os.path.dirname(__file__))
    main = _import_main_module(project_root)
    main.app.dependency_overrides[main.get_store] = lambda: shop_store
    with TestClient(main.app) as client:
        client.auth = (main.settings.admin_user, main.settings.admin_password)
        yield client


def _payload(**overrides):
    body = {
        "owner_namespace": "envs",
        "owner_name": "dyn-env",
        "unique_name": "dyn-env",
        "unique_version": "v2",
        "namespace": "shop",
        "service_hosts": ["payments", "orders"],
        "version_label": "version",
        "default_version": "v1",
    }
    body.update(overrides)
    return body


def test_health(api):
    r = api.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "healthy"}


def test_overrides_require_basic_auth(api):
    r = api.post("/overrides", json=_payload(), auth=("admin", "wrong"))
    assert r.status_code == 401


def test_overrides_end_to_end(api, shop_store):
    r = api.post("/overrides", json=_payload())
    assert r.status_code == 200
    body = r.json()
    assert body["subset"] == "dyn-env"
    assert body["active_hosts"] == ["payments"]
    assert body["ignored_missing"] == ["orders"]
    assert body["statuses"] == [
        {"name": "dyn-env-payments", "namespace": "shop", "status": "running"},
        {"name": "dyn-env-orders", "namespace": "shop", "status": "ignored-missing"},
    ]
    assert shop_store.get("shop", "dyn-env-payments").host == "payments"

    r = api.get("/status/dyn-env")
    assert r.status_code == 200
    assert [s["status"] for s in r.json()] == ["running", "ignored-missing"]


def test_overrides_all_ignored_conflict(api):
    r = api.post("/overrides", json=_payload(service_hosts=["orders"]))
    assert r.status_code == 409
    assert "dyn-env" in r.json()["detail"]

    r = api.get("/status/dyn-env")
    assert r.json() == [{"name": "dyn-env-orders", "namespace": "shop", "status": "ignored-missing"}]


def test_overrides_invalid_version(api):
    r = api.post("/overrides", json=_payload(unique_version="not a version"))
    assert r.status_code == 422


def test_overrides_store_failure(api, shop_store, monkeypatch):
    def boom(obj):
        raise RuntimeError("api unavailable")

    monkeypatch.setattr(shop_store, "create", boom)
    r = api.post("/overrides", json=_payload())
    assert r.status_code == 502
    assert "payments" in r.json()["detail"]


def test_release(api, shop_store):
    api.post("/overrides", json=_payload())
    r = api.post(
        "/overrides/release",
        json={
            "owner_namespace": "envs",
            "owner_name": "dyn-env",
            "unique_name": "dyn-env",
            "namespace": "shop",
            "service_hosts": ["payments", "orders"],
        },
    )
    assert r.status_code == 200
    assert r.json() == {"owner": "envs/dyn-env", "emptied": ["dyn-env-payments"]}


def test_watch_fan_out(api):
    event = {
        "type": "update",
        "object": {
            "name": "dyn-env-payments",
            "namespace": "shop",
            "host": "payments",
            "annotations": {"vsr.io/owners": "envs/a"},
        },
        "old_object": {"metadata": {"annotations": {"vsr.io/owners": "envs/b,broken"}}},
    }
    r = api.post("/watch", json=event)
    assert r.status_code == 200
    assert r.json() == [{"namespace": "envs", "name": "a"}, {"namespace": "envs", "name": "b"}]


def test_events_endpoint(api):
    api.post("/overrides", json=_payload())
    r = api.get("/events", params={"limit": 5})
    assert r.status_code == 200
    rows = r.json()
    assert 0 < len(rows) <= 5
    assert all({"ts", "level", "message"} <= set(row) for row in rows)

    assert api.get("/events", params={"limit": 0}).status_code == 400


def test_default_store_is_memory():
    project_root = os.path.dirname(os.path.dirname(__file__))
    main = _import_main_module(project_root)
    assert isinstance(main.get_store(), MemoryStore)
    assert main.get_store() is main.get_store()


def test_overrides_all_ignored_status_failure(api, shop_store, monkeypatch):
    real_get = shop_store.get
    calls = []

    def flaky_get(namespace, name):
        calls.append(name)
        if len(calls) > 1:
            raise TimeoutError("api timed out")
        return real_get(namespace, name)

    monkeypatch.setattr(shop_store, "get", flaky_get)
    r = api.post("/overrides", json=_payload(service_hosts=["orders"]))
    assert r.status_code == 502
    assert "orders" in r.json()["detail"]
