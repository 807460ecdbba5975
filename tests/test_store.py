"""Tests for the cluster object stores."""

import pytest

from gslbfed.objects import IngressHostMeta, RouteMeta, SvcMeta
from gslbfed.store import (
    ClusterStore,
    Stores,
    add_or_update_ingress_store,
    add_or_update_lb_svc_store,
    add_or_update_route_store,
    delete_from_ingress_store,
    delete_from_lb_svc_store,
    delete_from_route_store,
)


def route(name="r1", namespace="default", cluster="cluster1", hostname="route.com"):
    return RouteMeta(cluster=cluster, name=name, namespace=namespace, hostname=hostname,
                     ip_addr="10.0.0.1", paths=["/"])


class TestClusterStore:
    """Tests for the three level store."""

    @pytest.fixture
    def store(self):
        return ClusterStore("accepted-route")

    def test_add_and_get(self, store):
        r = route()
        store.add_or_update(r, "cluster1", "default", "r1")
        assert store.get_cluster_ns_obj("cluster1", "default", "r1") is r
        assert store.get_cluster_ns_obj("cluster2", "default", "r1") is None
        assert len(store) == 1

    def test_update_replaces(self, store):
        store.add_or_update(route(), "cluster1", "default", "r1")
        newer = route(hostname="new.com")
        store.add_or_update(newer, "cluster1", "default", "r1")
        assert store.get_cluster_ns_obj("cluster1", "default", "r1").hostname == "new.com"
        assert len(store) == 1

    def test_delete_returns_removed_and_prunes(self, store):
        r = route()
        store.add_or_update(r, "cluster1", "default", "r1")

        assert store.delete_cluster_ns_obj("cluster1", "default", "r1") is r
        assert store.delete_cluster_ns_obj("cluster1", "default", "r1") is None
        assert store.get_all_cluster_ns_objects() == []
        assert store.get_all_objects_for("cluster1") == []

    def test_delete_unknown(self, store):
        assert store.delete_cluster_ns_obj("nope", "default", "r1") is None
        store.add_or_update(route(), "cluster1", "default", "r1")
        assert store.delete_cluster_ns_obj("cluster1", "other", "r1") is None
        assert len(store) == 1

    def test_listing(self, store):
        store.add_or_update(route("r1"), "cluster1", "default", "r1")
        store.add_or_update(route("r2", namespace="prod"), "cluster1", "prod", "r2")
        store.add_or_update(route("r3", cluster="cluster2"), "cluster2", "default", "r3")

        names = sorted(name for _, _, name, _ in store.get_all_cluster_ns_objects())
        assert names == ["r1", "r2", "r3"]
        assert sorted(o.name for o in store.get_all_objects_for("cluster1")) == ["r1", "r2"]
        assert [o.name for o in store.get_all_objects_for("cluster1", "prod")] == ["r2"]
        assert len(store.get_objects_by_hostname("route.com")) == 3
        assert store.get_objects_by_hostname("other.com") == []

    def test_snapshot_is_safe_to_mutate_during_iteration(self, store):
        store.add_or_update(route("r1"), "cluster1", "default", "r1")
        store.add_or_update(route("r2"), "cluster1", "default", "r2")
        for cluster, ns, name, _ in store.get_all_cluster_ns_objects():
            store.delete_cluster_ns_obj(cluster, ns, name)
        assert len(store) == 0


class TestStoreHelpers:
    """Tests for the per-kind helpers."""

    def test_stores_per_kind(self):
        stores = Stores()
        assert stores.accepted_store("Ingress").name == "accepted-ingress"
        assert stores.rejected_store("LBSvc").name == "rejected-lbsvc"
        assert stores.accepted_store("Route") is not stores.rejected_store("Route")

    def test_ingress_helpers(self):
        store = ClusterStore("accepted-ingress")
        ihm = IngressHostMeta(cluster="cluster1", ing_name="ing1", obj_name="ing1/foo.com",
                              namespace="default", hostname="foo.com", ip_addr="10.0.0.1")
        add_or_update_ingress_store(store, ihm, "cluster1")
        assert store.get_cluster_ns_obj("cluster1", "default", "ing1/foo.com") is ihm
        assert delete_from_ingress_store(store, ihm, "cluster1") is ihm
        assert len(store) == 0

    def test_route_and_service_helpers(self):
        store = ClusterStore("accepted")
        add_or_update_route_store(store, route(), "cluster1")
        svc = SvcMeta(cluster="cluster1", name="svc1", namespace="default", hostname="", ip_addr="10.0.0.2")
        add_or_update_lb_svc_store(store, svc, "cluster1")

        assert delete_from_route_store(store, "default", "r1", "cluster1") is not None
        assert delete_from_lb_svc_store(store, "default", "svc1", "cluster1") is svc
        assert len(store) == 0

    def test_helpers_tolerate_missing_store(self):
        assert delete_from_route_store(None, "default", "r1", "cluster1") is None
        assert delete_from_lb_svc_store(None, "default", "svc1", "cluster1") is None
