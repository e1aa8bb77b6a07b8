"""Instance pools: records, storage contract and the manager that guards them."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterable

from bfeapi.basic import BUILDIN_PRODUCT, BFEClusterFilter, BFEClusterStorager, Product
from bfeapi.sub_cluster import SubClusterFilter, SubClusterStorager
from bfeapi.txn import TxnStorager
from bfeapi.xerror import (
    wrap_model_error_with_msg,
    wrap_param_error_with_msg,
    wrap_record_existed,
    wrap_record_not_exist,
)

POOL_TAG_BFE = 1
POOL_TAG_PRODUCT = 2


@dataclass
class PoolFilter:
    name: str | None = None
    ids: list[int] | None = None
    id: int | None = None
    product_id: int | None = None


@dataclass
class Instance:
    """One backend address in a pool."""

    host_name: str = ""
    ip: str = ""
    port: int = 0
    ports: dict[str, int] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)
    weight: int = 0
    disable: bool = False

    def ip_with_port(self) -> str:
        """Address as ip:port, falling back to the "Default" named port."""
        if self.port == 0:
            self.port = self.ports.get("Default", 0)
        return f"{self.ip}:{self.port}"


@dataclass
class PoolParam:
    id: int | None = None
    name: str | None = None
    product_id: int | None = None
    instances: list[Instance] | None = None
    tag: int | None = None


@dataclass
class Pool:
    """A named set of instances owned by a product."""

    id: int = 0
    name: str = ""
    ready: bool = False
    product: Product | None = None
    instances: list[Instance] = field(default_factory=list)
    tag: int = 0


class PoolStorager(ABC):
    @abstractmethod
    def fetch_pool(self, name: str) -> Pool | None:
        """Return the pool with this full name, or None."""

    @abstractmethod
    def fetch_pools(self, param: PoolFilter | None) -> list[Pool]:
        """Return the pools matching param."""

    @abstractmethod
    def create_pool(self, product: Product, data: PoolParam) -> Pool:
        """Store a new pool for product and return it."""

    @abstractmethod
    def update_pool(self, old_data: Pool, diff: PoolParam) -> None:
        """Apply diff to old_data."""

    @abstractmethod
    def delete_pool(self, pool: Pool) -> None:
        """Remove pool."""


def pool_real_name(product_name: str, pool_name: str) -> str:
    """Full pool name, prefixed with the product name unless already prefixed."""
    prefix, sep, _ = pool_name.partition(".")
    if sep:
        if prefix != product_name:
            raise wrap_param_error_with_msg("Pool Name Must Use Product Name as Prefix")
        return pool_name
    return f"{product_name}.{pool_name}"


class PoolManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: PoolStorager,
        bfe_cluster_storager: BFEClusterStorager,
        sub_cluster_storager: SubClusterStorager,
    ):
        self._txn = txn
        self._storager = storager
        self._bfe_cluster_storager = bfe_cluster_storager
        self._sub_cluster_storager = sub_cluster_storager

    def fetch_pool_by_name(self, name: str) -> Pool | None:
        return self._txn.atom_execute(lambda: self._storager.fetch_pool(name))

    def fetch_bfe_pool(self, name: str) -> Pool | None:
        return self.fetch_product_pool(BUILDIN_PRODUCT, name)

    def fetch_product_pool(self, product: Product, name: str) -> Pool | None:
        real_name = pool_real_name(product.name, name)
        return self._txn.atom_execute(lambda: self._storager.fetch_pool(real_name))

    def fetch_bfe_pools(self) -> list[Pool]:
        return self.fetch_product_pools(BUILDIN_PRODUCT)

    def fetch_product_pools(self, product: Product) -> list[Pool]:
        return self._txn.atom_execute(
            lambda: self._storager.fetch_pools(PoolFilter(product_id=product.id))
        )

    def can_delete(self, pool: Pool) -> None:
        """Raise unless no BFE cluster and no sub cluster refers to the pool."""
        bfe_clusters = self._bfe_cluster_storager.fetch_bfe_clusters(
            BFEClusterFilter(pool=pool.name)
        )
        if bfe_clusters:
            raise wrap_model_error_with_msg(
                "BFECluster %s Refer To This Pool", bfe_clusters[0].name
            )

        sub_clusters = self._sub_cluster_storager.fetch_sub_cluster_list(
            SubClusterFilter(instance_pool=pool)
        )
        if sub_clusters:
            raise wrap_model_error_with_msg(
                "SubCluster %s Refer To This Pool", sub_clusters[0].name
            )

    def delete_bfe_pool(self, name: str) -> Pool:
        return self.delete_product_pool(BUILDIN_PRODUCT, name)

    def delete_product_pool(self, product: Product, name: str) -> Pool:
        """Delete an unreferenced pool of product and return it."""
        real_name = pool_real_name(product.name, name)

        def do() -> Pool:
            one = self._storager.fetch_pool(real_name)
            if one is None:
                raise wrap_record_not_exist("Pool")
            self.can_delete(one)
            self._storager.delete_pool(one)
            return one

        return self._txn.atom_execute(do)

    def create_bfe_pool(self, pool: PoolParam) -> Pool:
        pool.tag = POOL_TAG_BFE
        return self.create_product_pool(BUILDIN_PRODUCT, pool)

    def create_product_pool(self, product: Product, pool: PoolParam) -> Pool:
        """Create a pool under its full name, refusing names already taken."""
        pool.name = pool_real_name(product.name, pool.name)
        if pool.tag is None:
            pool.tag = POOL_TAG_PRODUCT

        def do() -> Pool:
            if self._storager.fetch_pool(pool.name) is not None:
                raise wrap_record_existed()
            return self._storager.create_pool(product, pool)

        return self._txn.atom_execute(do)

    def update_bfe_pool(self, pool: Pool, diff: PoolParam) -> None:
        self.update_product_pool(BUILDIN_PRODUCT, pool, diff)

    def update_product_pool(self, product: Product, pool: Pool, diff: PoolParam) -> None:
        self._txn.atom_execute(lambda: self._storager.update_pool(pool, diff))

    def get_pool_by_name(self, pool_name: str | None) -> Pool | None:
        """Return the pool with this full name; an empty name is a parameter error."""

        def do() -> Pool | None:
            if not pool_name:
                raise wrap_param_error_with_msg("Pool Name Illegal")
            return self._storager.fetch_pool(pool_name)

        return self._txn.atom_execute(do)


def pools_by_id(pools: Iterable[Pool]) -> dict[int, Pool]:
    return {one.id: one for one in pools}