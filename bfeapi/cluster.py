"""Clusters: records, storage contract, load-balance checks and the manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Callable, Iterable, Mapping

from bfeapi.basic import BFEClusterStorager, Product, bfe_cluster_name_map
from bfeapi.containers import subtract
from bfeapi.sub_cluster import (
    SubCluster,
    SubClusterFilter,
    SubClusterStorager,
    sub_clusters_by_name,
)
from bfeapi.txn import TxnStorager
from bfeapi.version_control import VersionControlManager
from bfeapi.xerror import (
    wrap_dependent_unready_error_with_msg,
    wrap_model_error_with_msg,
    wrap_param_error_with_msg,
    wrap_record_existed,
)

CLUSTER_HASH_STRATEGY_CLIENT_ID_ONLY = 0
CLUSTER_HASH_STRATEGY_CLIENT_IP_ONLY = 1
CLUSTER_HASH_STRATEGY_CLIENT_ID_PREFERED = 2

CLUSTER_HEALTH_CHECK_HTTP = "http"
CLUSTER_HEALTH_CHECK_TCP = "tcp"
CLUSTER_HEALTH_CHECK_SCHEMAS = frozenset(
    {CLUSTER_HEALTH_CHECK_HTTP, CLUSTER_HEALTH_CHECK_TCP}
)

CLUSTER_STICK_TYPE_SUB_CLUSTER = "SUB_CLUSTER"
CLUSTER_STICK_TYPE_INSTANCE = "INSTANCE"

CLUSTER_DEFAULT_REQ_FLUSH_INTERVAL = 0
# -1: write the response directly instead of flushing on a timer
CLUSTER_DEFAULT_RES_FLUSH_INTERVAL = -1

RESOURCE_CLUSTER_RULE = "cluster_rule"
BLACK_HOLE = "GSLB_BLACKHOLE"

UNMOUNTED_CLUSTER_ID = -1
ROUTE_ADVANCED_MODE_CLUSTER_NAME_4DP = "ADVANCED_MODE"
ROUTE_ADVANCED_MODE_CLUSTER_NAME = "GO_TO_ADVANCED_RULES"
ROUTE_ADVANCED_MODE_CLUSTER_ID = -1

SYSTEM_KEEP_ROUTE_NAMES = frozenset(
    {ROUTE_ADVANCED_MODE_CLUSTER_NAME, ROUTE_ADVANCED_MODE_CLUSTER_NAME_4DP}
)


@dataclass
class ClusterBasicConnection:
    max_idle_conn_per_rs: int = 0
    cancel_on_client_close: bool = False


@dataclass
class ClusterBasicBuffers:
    req_write_buffer_size: int = 0
    req_flush_interval: int = 0
    res_flush_interval: int = 0


@dataclass
class ClusterBasicRetries:
    max_retry_in_subcluster: int = 0
    max_retry_cross_subcluster: int = 0


@dataclass
class ClusterBasicTimeouts:
    timeout_conn_serv: int = 0
    timeout_response_header: int = 0
    timeout_readbody_client: int = 0
    timeout_read_client_again: int = 0
    timeout_write_client: int = 0


@dataclass
class ClusterBasic:
    connection: ClusterBasicConnection = field(default_factory=ClusterBasicConnection)
    retries: ClusterBasicRetries = field(default_factory=ClusterBasicRetries)
    buffers: ClusterBasicBuffers = field(default_factory=ClusterBasicBuffers)
    timeouts: ClusterBasicTimeouts = field(default_factory=ClusterBasicTimeouts)


@dataclass
class ClusterStickySessions:
    session_sticky: bool = False
    hash_strategy: int = 0
    hash_header: str = ""


@dataclass
class ClusterPassiveHealthCheck:
    schema: str = ""
    interval: int = 0
    failnum: int = 0
    statuscode: int = 0
    host: str = ""
    uri: str = ""

    def to_backend_check(self) -> dict:
        """The backend check section of the exported cluster config."""
        return {
            "Schem": self.schema,
            "Uri": self.uri,
            "Host": self.host,
            "FailNum": self.failnum,
            "CheckInterval": self.interval,
            "StatusCode": self.statuscode,
        }


@dataclass
class Cluster:
    """A routing target made of sub clusters and a load-balance matrix."""

    id: int = 0
    name: str = ""
    description: str = ""
    ready: bool = False
    product_id: int = 0
    basic: ClusterBasic | None = None
    sticky_sessions: ClusterStickySessions | None = None
    sub_clusters: list[SubCluster] = field(default_factory=list)
    scheduler: dict[str, dict[str, int]] | None = None
    passive_health_check: ClusterPassiveHealthCheck | None = None

    def sub_cluster_names(self) -> list[str]:
        return [one.name for one in self.sub_clusters]


@dataclass
class ClusterFilter:
    id: int | None = None
    ids: list[int] | None = None
    names: list[str] | None = None
    name: str | None = None
    product: Product | None = None


@dataclass
class ClusterParam:
    id: int | None = None
    name: str | None = None
    product_id: int | None = None
    description: str | None = None
    basic: ClusterBasic | None = None
    sticky_sessions: ClusterStickySessions | None = None
    sub_clusters: list[str] | None = None
    scheduler: dict[str, dict[str, int]] | None = None
    passive_health_check: ClusterPassiveHealthCheck | None = None


def clusters_by_name(clusters: Iterable[Cluster]) -> dict[str, Cluster]:
    return {one.name: one for one in clusters}


def clusters_by_id(clusters: Iterable[Cluster]) -> dict[int, Cluster]:
    return {one.id: one for one in clusters}


class ClusterStorager(ABC):
    @abstractmethod
    def fetch_cluster(self, param: ClusterFilter | None) -> Cluster | None:
        """Return the cluster matching param, or None."""

    @abstractmethod
    def fetch_cluster_list(self, param: ClusterFilter | None) -> list[Cluster]:
        """Return the clusters matching param."""

    @abstractmethod
    def cluster_update(self, product: Product, old: Cluster, param: ClusterParam) -> None:
        """Apply param to old."""

    @abstractmethod
    def cluster_create(
        self, product: Product, param: ClusterParam, sub_clusters: list[SubCluster]
    ) -> int:
        """Store a new cluster and return its id."""

    @abstractmethod
    def cluster_delete(self, product: Product, cluster: Cluster) -> None:
        """Remove cluster."""

    @abstractmethod
    def bind_sub_cluster(
        self,
        cluster: Cluster,
        append_sub_clusters: list[SubCluster] | None,
        unbind_sub_clusters: list[SubCluster] | None,
    ) -> None:
        """Mount and unmount sub clusters on cluster."""


DeleteChecker = Callable[[Product, Cluster], None]


class ClusterManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: ClusterStorager,
        sub_cluster_storager: SubClusterStorager,
        bfe_cluster_storager: BFEClusterStorager,
        version_control_manager: VersionControlManager | None = None,
        delete_checkers: Mapping[str, DeleteChecker] | None = None,
        ignore_status_check: bool = False,
    ):
        self._txn = txn
        self._storager = storager
        self._sub_cluster_storager = sub_cluster_storager
        self._bfe_cluster_storager = bfe_cluster_storager
        self._version_control_manager = version_control_manager
        self._delete_checkers = dict(delete_checkers or {})
        self._ignore_status_check = ignore_status_check

    def fetch_cluster_list(self, param: ClusterFilter | None) -> list[Cluster]:
        return self._txn.atom_execute(lambda: self._storager.fetch_cluster_list(param))

    def fetch_cluster(self, param: ClusterFilter | None) -> Cluster | None:
        """Return the first matching cluster, or None."""
        found = self.fetch_cluster_list(param)
        return found[0] if found else None

    def create_cluster(self, product: Product, param: ClusterParam) -> None:
        """Create a cluster over free, ready sub clusters of product."""
        param.product_id = product.id

        def do() -> None:
            if self._storager.fetch_cluster_list(ClusterFilter(name=param.name)):
                raise wrap_record_existed("cluster")

            binding = self._sub_cluster_storager.fetch_sub_cluster_list(
                SubClusterFilter(names=param.sub_clusters, product=product)
            )
            self._check_binding_sub_clusters(None, param.sub_clusters or [], binding)
            self._check_manual_lb(None, param)

            if param.scheduler is None:
                param.scheduler = self._default_scheduler(binding)

            cluster_id = self._storager.cluster_create(product, param, binding)
            self._storager.bind_sub_cluster(Cluster(id=cluster_id), binding, None)

        self._txn.atom_execute(do)

    def _default_scheduler(self, sub_clusters: list[SubCluster]) -> dict[str, dict[str, int]]:
        bfe_clusters = self._bfe_cluster_storager.fetch_bfe_clusters(None)
        rate = 100 // len(sub_clusters)
        remainder = 100 - rate * len(sub_clusters)
        matrix = {}
        for bfe_cluster in bfe_clusters:
            row = {BLACK_HOLE: remainder}
            for sub_cluster in sub_clusters:
                row[sub_cluster.name] = rate
            matrix[bfe_cluster.name] = row
        return matrix

    def _check_manual_lb(self, old: Cluster | None, param: ClusterParam) -> None:
        if param.scheduler is None:
            return

        bfe_clusters = self._bfe_cluster_storager.fetch_bfe_clusters(None)
        matrix = param.scheduler
        if len(bfe_clusters) != len(matrix):
            raise wrap_param_error_with_msg(
                "LbMatrix Config Illegal, Want All BFE Cluster Exist"
            )

        sub_clusters = param.sub_clusters
        if sub_clusters is None and old is not None:
            sub_clusters = old.sub_cluster_names()
        sub_clusters = sub_clusters or []

        known = bfe_cluster_name_map(bfe_clusters)
        for bfe_name, row in matrix.items():
            if bfe_name not in known:
                raise wrap_param_error_with_msg(
                    "LbMatrix Config Illegal, BFE Cluster %s Not Exist", bfe_name
                )

            total = 0
            for sub_name, rate in row.items():
                if sub_name != BLACK_HOLE and sub_name not in sub_clusters:
                    raise wrap_param_error_with_msg(
                        "LbMatrix Config Illegal, SubCluster %s Not In BFE Cluster %s Config",
                        bfe_name,
                        sub_name,
                    )
                if rate < 0:
                    raise wrap_param_error_with_msg(
                        "LbMatrix Config Illegal, BFE Cluster %s Rate Must Bigger Than 0, Got %d",
                        bfe_name,
                        rate,
                    )
                total += rate
            if total != 100:
                raise wrap_param_error_with_msg(
                    "LbMatrix Config Illegal, BFE Cluster %s Total Rate Is %d, Want 100",
                    bfe_name,
                    total,
                )

            for sub_name in sub_clusters:
                if sub_name not in row:
                    raise wrap_param_error_with_msg(
                        "LbMatrix Config Illegal, SubCluster %s Not In BFE Cluster %s Config",
                        bfe_name,
                        sub_name,
                    )

    def _check_binding_sub_clusters(
        self,
        cluster: Cluster | None,
        binding_names: Iterable[str],
        binding: list[SubCluster],
    ) -> None:
        if not binding:
            raise wrap_model_error_with_msg("Cluster Want At Least On SubCluster")

        old_cluster_id = cluster.id if cluster is not None else 0
        by_name = sub_clusters_by_name(binding)
        for name in binding_names:
            sub_cluster = by_name.get(name)
            if sub_cluster is None:
                raise wrap_model_error_with_msg("SubCluster %s Not Exist", name)
            if sub_cluster.cluster_id != old_cluster_id and sub_cluster.cluster_id > 0:
                raise wrap_model_error_with_msg(
                    "SubCluster %s be Mounted With Cluster %d", name, sub_cluster.cluster_id
                )
            if not self._ignore_status_check and not sub_cluster.ready:
                raise wrap_dependent_unready_error_with_msg("SubCluster %s Not Ready", name)

    def update_cluster(self, product: Product, old_data: Cluster, param: ClusterParam) -> None:
        """Update a cluster after checking any new load-balance matrix."""

        def do() -> None:
            self._check_manual_lb(old_data, param)
            self._storager.cluster_update(product, old_data, param)

        self._txn.atom_execute(do)

    @staticmethod
    def _rebound_matrix(
        cluster: Cluster, unbind: list[str], append: list[str]
    ) -> dict[str, dict[str, int]]:
        unbind_set = set(unbind)
        matrix: dict[str, dict[str, int]] = {}
        for bfe_name, row in (cluster.scheduler or {}).items():
            new_row: dict[str, int] = {}
            for sub_name, rate in row.items():
                if sub_name in unbind_set:
                    if rate != 0:
                        raise wrap_model_error_with_msg(
                            "BFE Cluster %s, SubCluster: %s Rate is %d, Set to 0 Before Unbind",
                            bfe_name,
                            sub_name,
                            rate,
                        )
                else:
                    new_row[sub_name] = rate
            if row:
                for sub_name in append:
                    new_row[sub_name] = 0
            matrix[bfe_name] = new_row
        return matrix

    def rebind_sub_cluster(
        self, product: Product, cluster: Cluster, binding_sub_cluster_names: list[str]
    ) -> None:
        """Mount exactly the named sub clusters; unmounted ones must carry no traffic."""
        current = cluster.sub_cluster_names()
        unbind_names = subtract(current, binding_sub_cluster_names)
        append_names = subtract(binding_sub_cluster_names, current)
        if not unbind_names and not append_names:
            return

        matrix = self._rebound_matrix(cluster, unbind_names, append_names)

        def do() -> None:
            binding = self._sub_cluster_storager.fetch_sub_cluster_list(
                SubClusterFilter(names=binding_sub_cluster_names, product=product)
            )
            self._check_binding_sub_clusters(cluster, binding_sub_cluster_names, binding)
            self._storager.cluster_update(product, cluster, ClusterParam(scheduler=matrix))

            mounted = sub_clusters_by_name(cluster.sub_clusters)
            unbind = [mounted.get(name) for name in unbind_names]
            fetched = sub_clusters_by_name(binding)
            append = [fetched.get(name) for name in append_names]
            self._storager.bind_sub_cluster(cluster, append, unbind)

        self._txn.atom_execute(do)

    def delete_cluster(self, product: Product, cluster: Cluster) -> None:
        """Delete a cluster once every delete checker lets it go."""

        def do() -> None:
            for checker in self._delete_checkers.values():
                checker(product, cluster)
            self._storager.bind_sub_cluster(cluster, None, cluster.sub_clusters)
            self._storager.cluster_delete(product, cluster)

        self._txn.atom_execute(do)


def append_advanced_rule_cluster(clusters: Iterable[Cluster]) -> list[Cluster]:
    """The clusters followed by the placeholder for advanced-mode routing."""
    return [
        *clusters,
        Cluster(
            id=ROUTE_ADVANCED_MODE_CLUSTER_ID, name=ROUTE_ADVANCED_MODE_CLUSTER_NAME_4DP
        ),
    ]


def new_bfe_cluster_conf(version: str, clusters: Iterable[Cluster]) -> dict:
    """The data-plane cluster configuration for the given clusters."""
    config = {}
    for cluster in clusters:
        if cluster.name in SYSTEM_KEEP_ROUTE_NAMES:
            continue
        basic = cluster.basic or ClusterBasic()
        sticky = cluster.sticky_sessions or ClusterStickySessions()
        check = cluster.passive_health_check
        config[cluster.name] = {
            "BackendConf": {
                "Protocol": "http",
                "TimeoutConnSrv": basic.timeouts.timeout_conn_serv,
                "TimeoutResponseHeader": basic.timeouts.timeout_response_header,
                "MaxIdleConnsPerHost": basic.connection.max_idle_conn_per_rs,
            },
            "CheckConf": check.to_backend_check() if check is not None else None,
            "GslbBasic": {
                "CrossRetry": basic.retries.max_retry_cross_subcluster,
                "RetryMax": basic.retries.max_retry_in_subcluster,
                "HashConf": {
                    "HashStrategy": sticky.hash_strategy,
                    "HashHeader": sticky.hash_header,
                    "SessionSticky": sticky.session_sticky,
                },
                "BalanceMode": "WRR",
            },
            "ClusterBasic": {
                "TimeoutReadClient": basic.timeouts.timeout_readbody_client,
                "TimeoutWriteClient": basic.timeouts.timeout_write_client,
                "TimeoutReadClientAgain": basic.timeouts.timeout_read_client_again,
                "ReqWriteBufferSize": basic.buffers.req_write_buffer_size,
                "ReqFlushInterval": basic.buffers.req_flush_interval,
                "ResFlushInterval": basic.buffers.res_flush_interval,
                "CancelOnClientClose": basic.connection.cancel_on_client_close,
            },
        }
    return {"Version": version, "Config": config}