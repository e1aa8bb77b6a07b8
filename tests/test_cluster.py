import pytest

from bfeapi.basic import BFECluster, BFEClusterStorager, Product
from bfeapi.cluster import (
    BLACK_HOLE,
    ROUTE_ADVANCED_MODE_CLUSTER_ID,
    ROUTE_ADVANCED_MODE_CLUSTER_NAME_4DP,
    Cluster,
    ClusterBasic,
    ClusterBasicTimeouts,
    ClusterFilter,
    ClusterManager,
    ClusterParam,
    ClusterPassiveHealthCheck,
    ClusterStickySessions,
    ClusterStorager,
    append_advanced_rule_cluster,
    clusters_by_id,
    clusters_by_name,
    new_bfe_cluster_conf,
)
from bfeapi.sub_cluster import SubCluster, SubClusterStorager
from bfeapi.txn import TxnStorager
from bfeapi.xerror import (
    KIND_DEPENDENT_UNREADY,
    KIND_EXISTED_DATA,
    KIND_MODEL,
    KIND_PARAM,
    ApiError,
    resolve,
)


class FakeTxn(TxnStorager):
    def atom_execute(self, do):
        return do()


class FakeClusterStorager(ClusterStorager):
    def __init__(self, clusters=()):
        self.clusters = list(clusters)
        self.created = []
        self.updates = []
        self.binds = []
        self.deleted = []

    def fetch_cluster(self, param):
        found = self.fetch_cluster_list(param)
        return found[0] if found else None

    def fetch_cluster_list(self, param):
        if param is None or param.name is None:
            return list(self.clusters)
        return [c for c in self.clusters if c.name == param.name]

    def cluster_update(self, product, old, param):
        self.updates.append((old, param))

    def cluster_create(self, product, param, sub_clusters):
        self.created.append(param)
        return 42

    def cluster_delete(self, product, cluster):
        self.deleted.append(cluster)

    def bind_sub_cluster(self, cluster, append_sub_clusters, unbind_sub_clusters):
        self.binds.append((cluster, append_sub_clusters, unbind_sub_clusters))


class FakeSubClusterStorager(SubClusterStorager):
    def __init__(self, sub_clusters=()):
        self.sub_clusters = list(sub_clusters)

    def fetch_sub_cluster_list(self, param):
        if param is None or param.names is None:
            return list(self.sub_clusters)
        return [s for s in self.sub_clusters if s.name in param.names]

    def create_sub_cluster(self, param):
        raise AssertionError("unused")

    def delete_sub_cluster(self, sub_cluster):
        raise AssertionError("unused")

    def update_sub_cluster(self, sub_cluster, param):
        raise AssertionError("unused")


class FakeBFEClusterStorager(BFEClusterStorager):
    def __init__(self, names):
        self.clusters = [BFECluster(id=i, name=n) for i, n in enumerate(names, 1)]

    def delete_bfe_cluster(self, cluster):
        raise AssertionError("unused")

    def create_bfe_cluster(self, param):
        raise AssertionError("unused")

    def fetch_bfe_clusters(self, param):
        return list(self.clusters)


PRODUCT = Product(id=7, name="demo")


def make_manager(clusters=(), sub_clusters=(), bfe=("bj", "sh"), **kwargs):
    storager = FakeClusterStorager(clusters)
    manager = ClusterManager(
        FakeTxn(),
        storager,
        FakeSubClusterStorager(sub_clusters),
        FakeBFEClusterStorager(bfe),
        **kwargs,
    )
    return manager, storager


def ready(name, cluster_id=0):
    return SubCluster(id=hash(name) % 1000, name=name, ready=True, cluster_id=cluster_id)


def test_sub_cluster_names_keep_order():
    cluster = Cluster(sub_clusters=[ready("b"), ready("a")])
    assert cluster.sub_cluster_names() == ["b", "a"]


def test_cluster_maps():
    one, two = Cluster(id=1, name="x"), Cluster(id=2, name="y")
    assert clusters_by_name([one, two]) == {"x": one, "y": two}
    assert clusters_by_id([one, two]) == {1: one, 2: two}


def test_append_advanced_rule_cluster_does_not_mutate():
    original = [Cluster(id=3, name="c")]
    result = append_advanced_rule_cluster(original)
    assert len(original) == 1
    assert result[0] is original[0]
    assert result[-1].id == ROUTE_ADVANCED_MODE_CLUSTER_ID
    assert result[-1].name == ROUTE_ADVANCED_MODE_CLUSTER_NAME_4DP


def test_backend_check_carries_fields():
    check = ClusterPassiveHealthCheck(
        schema="http", interval=3, failnum=5, statuscode=200, host="h", uri="/u"
    )
    conf = check.to_backend_check()
    assert conf["Schem"] == "http"
    assert conf["CheckInterval"] == 3
    assert conf["FailNum"] == 5
    assert conf["StatusCode"] == 200
    assert conf["Host"] == "h"
    assert conf["Uri"] == "/u"


def test_new_bfe_cluster_conf_skips_system_clusters():
    cluster = Cluster(
        name="web",
        basic=ClusterBasic(timeouts=ClusterBasicTimeouts(timeout_conn_serv=11)),
        sticky_sessions=ClusterStickySessions(hash_header="X-Id"),
    )
    conf = new_bfe_cluster_conf("v1", append_advanced_rule_cluster([cluster]))
    assert conf["Version"] == "v1"
    assert list(conf["Config"]) == ["web"]
    web = conf["Config"]["web"]
    assert web["BackendConf"]["TimeoutConnSrv"] == 11
    assert web["BackendConf"]["Protocol"] == "http"
    assert web["GslbBasic"]["BalanceMode"] == "WRR"
    assert web["GslbBasic"]["HashConf"]["HashHeader"] == "X-Id"
    assert web["CheckConf"] is None


def test_create_cluster_rejects_existing_name():
    manager, _ = make_manager(clusters=[Cluster(name="web")], sub_clusters=[ready("a")])
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, ClusterParam(name="web", sub_clusters=["a"]))
    assert info.value.kind == KIND_EXISTED_DATA
    assert resolve(info.value).err_no == 555


def test_create_cluster_needs_sub_clusters():
    manager, _ = make_manager()
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, ClusterParam(name="web", sub_clusters=[]))
    assert info.value.kind == KIND_MODEL


def test_create_cluster_builds_default_scheduler():
    subs = [ready("a"), ready("b"), ready("c")]
    manager, storager = make_manager(sub_clusters=subs)
    param = ClusterParam(name="web", sub_clusters=["a", "b", "c"])
    manager.create_cluster(PRODUCT, param)

    assert param.product_id == PRODUCT.id
    assert set(param.scheduler) == {"bj", "sh"}
    for row in param.scheduler.values():
        assert sum(row.values()) == 100
        assert set(row) == {BLACK_HOLE, "a", "b", "c"}
        assert row["a"] == row["b"] == row["c"]
    assert storager.created == [param]
    bound_cluster, append, unbind = storager.binds[0]
    assert bound_cluster.id == 42
    assert [s.name for s in append] == ["a", "b", "c"]
    assert unbind is None


def test_create_cluster_rejects_bad_total():
    manager, storager = make_manager(sub_clusters=[ready("a")])
    param = ClusterParam(
        name="web",
        sub_clusters=["a"],
        scheduler={"bj": {"a": 50}, "sh": {"a": 100}},
    )
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, param)
    assert info.value.kind == KIND_PARAM
    assert resolve(info.value).err_no == 422
    assert storager.created == []


def test_create_cluster_rejects_missing_bfe_cluster():
    manager, _ = make_manager(sub_clusters=[ready("a")])
    param = ClusterParam(name="web", sub_clusters=["a"], scheduler={"bj": {"a": 100}})
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, param)
    assert info.value.kind == KIND_PARAM


def test_create_cluster_accepts_valid_manual_scheduler():
    manager, storager = make_manager(sub_clusters=[ready("a")])
    scheduler = {"bj": {"a": 100}, "sh": {"a": 60, BLACK_HOLE: 40}}
    param = ClusterParam(name="web", sub_clusters=["a"], scheduler=scheduler)
    manager.create_cluster(PRODUCT, param)
    assert storager.created[0].scheduler == scheduler


def test_sub_cluster_mounted_elsewhere_is_rejected():
    manager, _ = make_manager(sub_clusters=[ready("a", cluster_id=9)])
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, ClusterParam(name="web", sub_clusters=["a"]))
    assert info.value.kind == KIND_MODEL


def test_unready_sub_cluster_depends_on_flag():
    unready = SubCluster(name="a", ready=False)
    manager, _ = make_manager(sub_clusters=[unready])
    with pytest.raises(ApiError) as info:
        manager.create_cluster(PRODUCT, ClusterParam(name="web", sub_clusters=["a"]))
    assert info.value.kind == KIND_DEPENDENT_UNREADY
    assert resolve(info.value).err_no == 510

    lenient, storager = make_manager(sub_clusters=[unready], ignore_status_check=True)
    lenient.create_cluster(PRODUCT, ClusterParam(name="web", sub_clusters=["a"]))
    assert len(storager.created) == 1


def test_update_cluster_checks_scheduler():
    old = Cluster(name="web", sub_clusters=[ready("a")])
    manager, storager = make_manager()
    with pytest.raises(ApiError) as info:
        manager.update_cluster(
            PRODUCT, old, ClusterParam(scheduler={"bj": {"zz": 100}, "sh": {"a": 100}})
        )
    assert info.value.kind == KIND_PARAM
    assert storager.updates == []

    good = ClusterParam(scheduler={"bj": {"a": 100}, "sh": {"a": 100}})
    manager.update_cluster(PRODUCT, old, good)
    assert storager.updates == [(old, good)]


def test_rebind_without_change_does_nothing():
    cluster = Cluster(name="web", sub_clusters=[ready("a")])
    manager, storager = make_manager()
    manager.rebind_sub_cluster(PRODUCT, cluster, ["a"])
    assert storager.updates == [] and storager.binds == []


def test_rebind_refuses_unbinding_loaded_sub_cluster():
    cluster = Cluster(
        name="web",
        sub_clusters=[ready("a"), ready("b")],
        scheduler={"bj": {"a": 50, "b": 50}},
    )
    manager, storager = make_manager(sub_clusters=[ready("a"), ready("c")])
    with pytest.raises(ApiError) as info:
        manager.rebind_sub_cluster(PRODUCT, cluster, ["a", "c"])
    assert info.value.kind == KIND_MODEL
    assert storager.binds == []


def test_rebind_moves_sub_clusters():
    a, b, c = ready("a"), ready("b"), ready("c")
    cluster = Cluster(
        id=5,
        name="web",
        sub_clusters=[a, b],
        scheduler={"bj": {"a": 100, "b": 0}},
    )
    manager, storager = make_manager(sub_clusters=[a, c])
    manager.rebind_sub_cluster(PRODUCT, cluster, ["a", "c"])

    (updated, param), = storager.updates
    assert updated is cluster
    assert param.scheduler == {"bj": {"a": 100, "c": 0}}
    (bound, append, unbind), = storager.binds
    assert bound is cluster
    assert append == [c]
    assert unbind == [b]


def test_delete_cluster_runs_checkers_first():
    cluster = Cluster(id=5, name="web", sub_clusters=[ready("a")])
    seen = []

    def checker(product, target):
        seen.append((product, target))

    manager, storager = make_manager(delete_checkers={"rules": checker})
    manager.delete_cluster(PRODUCT, cluster)
    assert seen == [(PRODUCT, cluster)]
    assert storager.binds == [(cluster, None, cluster.sub_clusters)]
    assert storager.deleted == [cluster]


def test_delete_cluster_stops_on_checker_error():
    def refuse(product, target):
        raise ValueError("in use")

    manager, storager = make_manager(delete_checkers={"rules": refuse})
    with pytest.raises(ValueError):
        manager.delete_cluster(PRODUCT, Cluster(name="web"))
    assert storager.deleted == []


def test_fetch_cluster_first_or_none():
    one, two = Cluster(id=1, name="x"), Cluster(id=2, name="y")
    manager, _ = make_manager(clusters=[one, two])
    assert manager.fetch_cluster(None) is one
    assert manager.fetch_cluster(ClusterFilter(name="y")) is two
    assert manager.fetch_cluster(ClusterFilter(name="missing")) is None