"""Tests for the global filter engine."""

import pytest

from gslbfed.exceptions import FilterStateError, NoTrafficWeightError
from gslbfed.filter import (
    FilterReason,
    GDPObj,
    GlobalFilter,
    is_traffic_weight_changed,
    single_label,
)
from gslbfed.models import GlobalDeploymentPolicy
from gslbfed.objects import RouteMeta


def make_gdp(app=None, ns=None, clusters=("cluster1", "cluster2"), split=None, name="gdp"):
    match_rules = {}
    if app is not None:
        match_rules["appSelector"] = {"label": app}
    if ns is not None:
        match_rules["namespaceSelector"] = {"label": ns}
    return GlobalDeploymentPolicy.model_validate({
        "metadata": {"name": name, "namespace": "avi-system"},
        "spec": {
            "matchRules": match_rules,
            "matchClusters": list(clusters),
            "trafficSplit": [{"cluster": c, "weight": w} for c, w in (split or {}).items()],
        },
    })


def make_route(cluster="cluster1", namespace="default", labels=None):
    return RouteMeta(cluster=cluster, name="r1", namespace=namespace, hostname="route.com",
                     ip_addr="10.0.0.1", labels=labels if labels is not None else {"app": "gslb"})


class TestSingleLabel:

    def test_one_pair(self):
        label = single_label({"app": "gslb"})
        assert (label.key, label.value) == ("app", "gslb")

    @pytest.mark.parametrize("labels", [{}, {"a": "1", "b": "2"}])
    def test_zero_or_many_pairs_are_absent(self, labels):
        assert single_label(labels) is None


class TestEvaluation:
    """The filter decision and its reason, in evaluation order."""

    def test_empty_filter_rejects(self):
        gf = GlobalFilter()
        assert gf.evaluate(make_route()) == (False, FilterReason.CLUSTER_NOT_SELECTED)

    def test_cluster_not_selected(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}, clusters=["cluster2"]))
        assert gf.evaluate(make_route()) == (False, FilterReason.CLUSTER_NOT_SELECTED)

    def test_no_selector_rejects(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp())
        assert gf.evaluate(make_route()) == (False, FilterReason.NO_SELECTOR)

    def test_app_selector(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}))
        assert gf.evaluate(make_route()) == (True, FilterReason.APP_SELECTED)
        assert gf.evaluate(make_route(labels={"app": "other"})) == (False, FilterReason.APP_SELECTOR_MISMATCH)
        assert gf.evaluate(make_route(labels={})) == (False, FilterReason.APP_SELECTOR_MISMATCH)

    def test_multi_label_app_selector_is_ignored(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb", "tier": "web"}))
        assert gf.evaluate(make_route()) == (False, FilterReason.NO_SELECTOR)

    def test_namespace_selector(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(ns={"gslb": "true"}))
        assert gf.evaluate(make_route()) == (False, FilterReason.NO_NAMESPACES_FOR_CLUSTER)

        gf.add_ns_to_ns_filter("cluster1", "other")
        assert gf.evaluate(make_route()) == (False, FilterReason.NAMESPACE_NOT_SELECTED)

        gf.add_ns_to_ns_filter("cluster1", "default")
        assert gf.evaluate(make_route()) == (True, FilterReason.NAMESPACE_SELECTED)

        gf.delete_ns_from_ns_filter("cluster1", "default")
        assert gf.evaluate(make_route()) == (False, FilterReason.NAMESPACE_NOT_SELECTED)

    def test_namespace_and_app_selectors(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}, ns={"gslb": "true"}))
        gf.add_ns_to_ns_filter("cluster1", "default")

        assert gf.evaluate(make_route()) == (True, FilterReason.NAMESPACE_AND_APP_SELECTED)
        assert gf.evaluate(make_route(labels={"app": "x"})) == (False, FilterReason.APP_SELECTOR_MISMATCH)

    def test_namespaces_are_per_cluster(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(ns={"gslb": "true"}))
        gf.add_ns_to_ns_filter("cluster1", "default")
        assert gf.apply_filter(make_route(cluster="cluster1")) is True
        assert gf.apply_filter(make_route(cluster="cluster2")) is False


class TestFilterState:
    """Tests for filter mutation and accessors."""

    def test_labels_absent(self):
        gf = GlobalFilter()
        with pytest.raises(FilterStateError):
            gf.get_ns_filter_label()
        with pytest.raises(FilterStateError):
            gf.get_app_filter_label()

    def test_add_ns_without_ns_filter(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}))
        with pytest.raises(FilterStateError):
            gf.add_ns_to_ns_filter("cluster1", "default")
        with pytest.raises(FilterStateError):
            gf.delete_ns_from_ns_filter("cluster1", "default")

    def test_labels(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}, ns={"gslb": "true"}))
        assert gf.get_app_filter_label().key == "app"
        assert gf.get_ns_filter_label().value == "true"

    def test_cluster_allowed(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(clusters=["cluster1"]))
        assert gf.is_cluster_allowed("cluster1")
        assert not gf.is_cluster_allowed("cluster2")

    def test_traffic_weight(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(split={"cluster1": 8}))
        assert gf.get_traffic_weight("default", "cluster1") == 8
        with pytest.raises(NoTrafficWeightError) as exc_info:
            gf.get_traffic_weight("default", "cluster2")
        assert exc_info.value.cluster == "cluster2"

    def test_delete_resets(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}, ns={"gslb": "true"}, split={"cluster1": 1}))
        gf.delete_from_global_filter()

        snapshot = gf.snapshot()
        assert snapshot.app_filter is None
        assert snapshot.ns_filter is None
        assert snapshot.applicable_clusters == []
        assert snapshot.traffic_split == {}
        assert gf.get_checksum() == 0

    def test_snapshot(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(app={"app": "gslb"}, ns={"gslb": "true"}, split={"cluster1": 3}))
        gf.add_ns_to_ns_filter("cluster1", "default")

        snapshot = gf.snapshot()
        assert snapshot.app_filter == {"key": "app", "value": "gslb"}
        assert snapshot.ns_filter == {"key": "gslb", "value": "true"}
        assert snapshot.selected_namespaces == {"cluster1": ["default"]}
        assert snapshot.traffic_split == {"cluster1": 3}
        assert snapshot.checksum == gf.get_checksum()


class TestChecksum:
    """Tests for the filter checksum."""

    def test_empty_filter_checksum(self):
        assert GlobalFilter().get_checksum() == 0

    def test_order_independent(self):
        a, b = GlobalFilter(), GlobalFilter()
        a.add_to_filter(make_gdp(app={"app": "gslb"}, clusters=["cluster1", "cluster2"],
                                 split={"cluster1": 8, "cluster2": 2}))
        b.add_to_filter(make_gdp(app={"app": "gslb"}, clusters=["cluster2", "cluster1"],
                                 split={"cluster2": 2, "cluster1": 8}))
        assert a.get_checksum() == b.get_checksum()

    @pytest.mark.parametrize("other", [
        dict(app={"app": "other"}),
        dict(app={"app": "gslb"}, ns={"gslb": "true"}),
        dict(app={"app": "gslb"}, clusters=["cluster1"]),
        dict(app={"app": "gslb"}, split={"cluster1": 5}),
    ])
    def test_meaningful_change(self, other):
        a, b = GlobalFilter(), GlobalFilter()
        a.add_to_filter(make_gdp(app={"app": "gslb"}))
        b.add_to_filter(make_gdp(**other))
        assert a.get_checksum() != b.get_checksum()

    def test_selected_namespaces_not_in_checksum(self):
        gf = GlobalFilter()
        gf.add_to_filter(make_gdp(ns={"gslb": "true"}))
        before = gf.get_checksum()
        gf.add_ns_to_ns_filter("cluster1", "default")
        assert gf.get_checksum() == before


class TestUpdate:
    """Tests for policy updates."""

    def test_equivalent_policy_is_no_change(self):
        gf = GlobalFilter()
        old = make_gdp(app={"app": "gslb"}, clusters=["cluster1", "cluster2"], split={"cluster1": 1, "cluster2": 2})
        new = make_gdp(app={"app": "gslb"}, clusters=["cluster2", "cluster1"], split={"cluster2": 2, "cluster1": 1})
        gf.add_to_filter(old)
        checksum = gf.get_checksum()

        assert gf.update_global_filter(old, new) == (False, False)
        assert gf.get_checksum() == checksum

    def test_weight_change(self):
        gf = GlobalFilter()
        old = make_gdp(app={"app": "gslb"}, split={"cluster1": 1, "cluster2": 2})
        new = make_gdp(app={"app": "gslb"}, split={"cluster1": 5, "cluster2": 2})
        gf.add_to_filter(old)

        assert gf.update_global_filter(old, new) == (True, True)
        assert gf.get_traffic_weight("default", "cluster1") == 5

    def test_selector_change(self):
        gf = GlobalFilter()
        old = make_gdp(app={"app": "gslb"})
        new = make_gdp(app={"app": "other"})
        gf.add_to_filter(old)

        assert gf.update_global_filter(old, new) == (True, False)
        assert gf.get_app_filter_label().value == "other"

    def test_same_ns_selector_keeps_selected_namespaces(self):
        gf = GlobalFilter()
        old = make_gdp(ns={"gslb": "true"}, clusters=["cluster1"])
        gf.add_to_filter(old)
        gf.add_ns_to_ns_filter("cluster1", "default")

        gf.update_global_filter(old, make_gdp(ns={"gslb": "true"}, clusters=["cluster1", "cluster2"]))
        assert gf.snapshot().selected_namespaces == {"cluster1": ["default"]}

    def test_new_ns_selector_drops_selected_namespaces(self):
        gf = GlobalFilter()
        old = make_gdp(ns={"gslb": "true"})
        gf.add_to_filter(old)
        gf.add_ns_to_ns_filter("cluster1", "default")

        gf.update_global_filter(old, make_gdp(ns={"gslb": "yes"}))
        assert gf.snapshot().selected_namespaces == {}


class TestTrafficWeightChanged:

    def test_same_weights_any_order(self):
        old = make_gdp(split={"cluster1": 1, "cluster2": 2})
        new = make_gdp(split={"cluster2": 2, "cluster1": 1})
        assert is_traffic_weight_changed(new, old) is False

    def test_length_differs(self):
        assert is_traffic_weight_changed(make_gdp(split={"cluster1": 1}), make_gdp()) is True

    def test_cluster_replaced(self):
        assert is_traffic_weight_changed(make_gdp(split={"cluster3": 1}), make_gdp(split={"cluster1": 1})) is True

    def test_weight_differs(self):
        assert is_traffic_weight_changed(make_gdp(split={"cluster1": 2}), make_gdp(split={"cluster1": 1})) is True


class TestGDPObj:

    def test_pointer(self):
        gdp_obj = GDPObj()
        assert gdp_obj.is_empty()
        gdp_obj.set("gdp", "avi-system")
        assert gdp_obj.get() == ("gdp", "avi-system")
        assert not gdp_obj.is_empty()
        gdp_obj.clear()
        assert gdp_obj.is_empty()
