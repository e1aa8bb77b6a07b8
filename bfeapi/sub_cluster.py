"""Sub clusters: groups of instances from one pool that a cluster mounts."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

from bfeapi.basic import BUILDIN_PRODUCT_ID, Product
from bfeapi.txn import TxnStorager
from bfeapi.xerror import (
    wrap_model_error_with_msg,
    wrap_param_error_with_msg,
    wrap_record_existed,
)


@dataclass(frozen=True)
class _ClusterRef:
    id: int
    name: str


UNBOUND_CLUSTER = _ClusterRef(id=-1, name="unbinding")


@dataclass
class SubCluster:
    """A named slice of a pool that can be mounted on a cluster."""

    id: int = 0
    name: str = ""
    cluster_id: int = 0
    product_id: int = 0
    product_name: str = ""
    instance_pool: Any = None
    capacity: int = 0
    enabled: bool = False
    ready: bool = False
    description: str = ""


@dataclass
class SubClusterFilter:
    id: int | None = None
    name: str | None = None
    names: list[str] | None = None
    instance_pool: Any = None
    pool_ids: list[int] | None = None
    product: Product | None = None
    cluster_ids: list[int] | None = None


@dataclass
class SubClusterParam:
    id: int | None = None
    name: str | None = None
    pool_id: int | None = None
    pool_name: str | None = None
    instance_pool: Any = None
    product: Product | None = None
    cluster_name: str | None = None
    cluster: Any = None
    cluster_ids: list[int] | None = None
    description: str | None = None


class SubClusterStorager(ABC):
    @abstractmethod
    def fetch_sub_cluster_list(self, param: SubClusterFilter | None) -> list[SubCluster]:
        """Return the sub clusters matching param."""

    @abstractmethod
    def create_sub_cluster(self, param: SubClusterParam) -> None:
        """Store a new sub cluster."""

    @abstractmethod
    def delete_sub_cluster(self, sub_cluster: SubCluster) -> None:
        """Remove sub_cluster."""

    @abstractmethod
    def update_sub_cluster(self, sub_cluster: SubCluster, param: SubClusterParam) -> None:
        """Apply param to sub_cluster."""


class SubClusterManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: SubClusterStorager,
        product_storager=None,
        pool_storager=None,
        cluster_storager=None,
    ):
        self._txn = txn
        self._storager = storager
        self._product_storager = product_storager
        self._pool_storager = pool_storager
        self._cluster_storager = cluster_storager

    def sub_cluster_list(self, param: SubClusterFilter | None) -> list[SubCluster]:
        return self._txn.atom_execute(
            lambda: self._storager.fetch_sub_cluster_list(param)
        )

    def fetch_sub_cluster(self, param: SubClusterFilter | None) -> SubCluster | None:
        """Return the first matching sub cluster, or None."""
        found = self._storager.fetch_sub_cluster_list(param)
        return found[0] if found else None

    def create_sub_cluster(self, product: Product, param: SubClusterParam) -> None:
        """Create an unmounted sub cluster over a pool the product may use."""

        def do() -> None:
            existing = self._storager.fetch_sub_cluster_list(
                SubClusterFilter(name=param.name, product=product)
            )
            if existing:
                raise wrap_record_existed("SubCluster")

            pool = self._pool_storager.fetch_pool(param.pool_name)
            if pool is None:
                raise wrap_param_error_with_msg("Pool Not Exist")

            owner = pool.product
            if (
                owner is not None
                and owner.id != product.id
                and owner.id != BUILDIN_PRODUCT_ID
            ):
                raise wrap_param_error_with_msg("Pool Not Valid")

            param.instance_pool = pool
            param.cluster = UNBOUND_CLUSTER
            param.product = product
            self._storager.create_sub_cluster(param)

        self._txn.atom_execute(do)

    def delete_sub_cluster(self, sub_cluster: SubCluster) -> None:
        """Delete a sub cluster that no cluster mounts."""
        if sub_cluster.cluster_id > 0:
            raise wrap_model_error_with_msg(
                "SubCluster %s be Mounted With Cluster %d",
                sub_cluster.name,
                sub_cluster.cluster_id,
            )
        self._txn.atom_execute(lambda: self._storager.delete_sub_cluster(sub_cluster))

    def update_sub_cluster(self, sub_cluster: SubCluster, param: SubClusterParam) -> None:
        self._txn.atom_execute(
            lambda: self._storager.update_sub_cluster(sub_cluster, param)
        )


def sub_clusters_by_name(sub_clusters: Iterable[SubCluster]) -> dict[str, SubCluster]:
    return {one.name: one for one in sub_clusters}


def sub_clusters_by_id(sub_clusters: Iterable[SubCluster]) -> dict[int, SubCluster]:
    return {one.id: one for one in sub_clusters}


def sub_cluster_ids(sub_clusters: Iterable[SubCluster]) -> list[int]:
    return [one.id for one in sub_clusters]


def sub_cluster_names(sub_clusters: Iterable[SubCluster]) -> list[str]:
    return [one.name for one in sub_clusters]