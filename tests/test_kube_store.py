import pytest
from kubernetes.client.rest import ApiException

from vsr.kube_store import KubernetesStore, from_manifest, to_manifest
from vsr.models import RoutingObject, Subset
from vsr.store import AlreadyExists, Conflict, NotFound

MANIFEST = {
    "apiVersion": "networking.istio.io/v1alpha3",
    "kind": "DestinationRule",
    "metadata": {"name": "payments", "namespace": "shop", "labels": None},
    "spec": {"host": "payments.shop", "subsets": [{"name": "v1", "labels": {"version": "v1"}}, {"name": "bare"}]},
}


class _FakeCustomObjectsApi:
    def __init__(self, items=None, error=None):
        self.items = items or []
        self.error = error
        self.calls = []

    def get_namespaced_custom_object(self, group, version, namespace, plural, name):
        self.calls.append(("get", group, version, namespace, plural, name))
        if self.error:
            raise self.error
        return self.items[0]

    def list_namespaced_custom_object(self, group, version, namespace, plural):
        self.calls.append(("list", group, version, namespace, plural))
        return {"items": self.items}

    def create_namespaced_custom_object(self, group, version, namespace, plural, body):
        self.calls.append(("create", namespace, body))
        if self.error:
            raise self.error

    def patch_namespaced_custom_object(self, group, version, namespace, plural, name, body):
        self.calls.append(("patch", namespace, name, body))
        if self.error:
            raise self.error


def test_from_manifest_tolerates_missing_fields():
    obj = from_manifest(MANIFEST)
    assert obj.name == "payments"
    assert obj.labels == {}
    assert obj.annotations == {}
    assert obj.host == "payments.shop"
    assert [s.labels for s in obj.subsets] == [{"version": "v1"}, {}]


def test_to_manifest_shape():
    obj = RoutingObject(
        name="dyn-env-payments",
        namespace="shop",
        labels={"version": "v2"},
        annotations={"vsr.io/owners": "envs/dyn-env"},
        host="payments",
        subsets=[Subset(name="v2", labels={"version": "v2"})],
    )
    m = to_manifest(obj)
    assert m["apiVersion"] == "networking.istio.io/v1alpha3"
    assert m["kind"] == "DestinationRule"
    assert m["metadata"]["annotations"] == {"vsr.io/owners": "envs/dyn-env"}
    assert m["spec"] == {"host": "payments", "subsets": [{"name": "v2", "labels": {"version": "v2"}}]}


def test_get_and_list():
    api = _FakeCustomObjectsApi(items=[MANIFEST])
    store = KubernetesStore(api)
    assert store.get("shop", "payments").host == "payments.shop"
    assert [o.name for o in store.list("shop")] == ["payments"]
    assert api.calls[0] == ("get", "networking.istio.io", "v1alpha3", "shop", "destinationrules", "payments")


@pytest.mark.parametrize("status,expected", [(404, NotFound), (409, AlreadyExists)])
def test_api_errors_are_translated(status, expected):
    store = KubernetesStore(_FakeCustomObjectsApi(error=ApiException(status=status, reason="x")))
    with pytest.raises(expected):
        store.get("shop", "payments")
    with pytest.raises(expected):
        store.create(from_manifest(MANIFEST))


def test_other_api_errors_propagate():
    store = KubernetesStore(_FakeCustomObjectsApi(error=ApiException(status=500, reason="boom")))
    with pytest.raises(ApiException):
        store.get("shop", "payments")


def test_update_patches_annotations_only():
    api = _FakeCustomObjectsApi()
    obj = from_manifest(MANIFEST)
    obj.annotations["vsr.io/owners"] = ""
    KubernetesStore(api).update(obj)
    assert api.calls == [("patch", "shop", "payments", {"metadata": {"annotations": {"vsr.io/owners": ""}}})]


def test_update_is_conditional_on_resource_version():
    api = _FakeCustomObjectsApi()
    manifest = {**MANIFEST, "metadata": {**MANIFEST["metadata"], "resourceVersion": "42"}}
    obj = from_manifest(manifest)
    assert obj.resource_version == "42"
    KubernetesStore(api).update(obj)
    assert api.calls[0][3] == {"metadata": {"annotations": {}, "resourceVersion": "42"}}


def test_update_conflict_is_translated():
    store = KubernetesStore(_FakeCustomObjectsApi(error=ApiException(status=409, reason="Conflict")))
    with pytest.raises(Conflict):
        store.update(from_manifest(MANIFEST))
