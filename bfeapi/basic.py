"""Products, BFE clusters and extra files: records, storage contracts and managers."""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Iterator

from bfeapi.txn import TxnStorager
from bfeapi.xerror import (
    wrap_model_error_with_msg,
    wrap_param_error_with_msg,
    wrap_record_existed,
    wrap_record_not_exist,
)

RESOURCE_PRODUCT = "product"
BUILDIN_PRODUCT_ID = 1


@dataclass
class Product:
    """A product that owns domains, clusters and rules."""

    id: int = 0
    name: str = ""
    description: str = ""
    mail_list: list[str] = field(default_factory=list)
    phone_list: list[str] = field(default_factory=list)
    contact_person_list: list[str] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None


BUILDIN_PRODUCT = Product(id=BUILDIN_PRODUCT_ID, name="BFE")
PROXY_PRODUCT = Product(id=BUILDIN_PRODUCT_ID, name="proxy")


@dataclass
class ProductFilter:
    id: int | None = None
    ne_id: int | None = None
    ids: list[int] | None = None
    name: str | None = None


@dataclass
class ProductParam:
    id: int | None = None
    name: str | None = None
    description: str | None = None
    mail_list: list[str] | None = None
    phone_list: list[str] | None = None
    contact_person_list: list[str] | None = None


_current_product: ContextVar[Product | None] = ContextVar(
    "current_product", default=None
)


@contextmanager
def product_context(product: Product) -> Iterator[Product]:
    """Make product the current product for the duration of the block."""
    token = _current_product.set(product)
    try:
        yield product
    finally:
        _current_product.reset(token)


def current_product() -> Product:
    """Return the current product; raise a parameter error when none is set."""
    product = _current_product.get()
    if product is None:
        raise wrap_param_error_with_msg("Fail To Get Product")
    return product


class ProductStorager(ABC):
    @abstractmethod
    def fetch_products(self, param: ProductFilter | None) -> list[Product]:
        """Return the products matching param."""

    @abstractmethod
    def delete_product(self, product: Product) -> None:
        """Remove product."""

    @abstractmethod
    def create_product(self, param: ProductParam) -> None:
        """Store a new product."""

    @abstractmethod
    def update_product(self, product: Product, param: ProductParam) -> None:
        """Apply param to product."""


class ProductManager:
    def __init__(self, txn: TxnStorager, storager: ProductStorager):
        self._txn = txn
        self._storager = storager

    def fetch_products(self, param: ProductFilter | None) -> list[Product]:
        return self._txn.atom_execute(lambda: self._storager.fetch_products(param))

    def delete_product(self, product: Product) -> None:
        """Delete a product; the build-in product cannot be deleted."""
        if product.id == BUILDIN_PRODUCT_ID:
            raise wrap_model_error_with_msg("Cant Delete Build-in Product")
        self._txn.atom_execute(lambda: self._storager.delete_product(product))

    def create_product(self, param: ProductParam) -> None:
        """Create a product whose name is not taken yet."""

        def do() -> None:
            if self._storager.fetch_products(ProductFilter(name=param.name)):
                raise wrap_record_existed("Product")
            self._storager.create_product(param)

        self._txn.atom_execute(do)

    def update_product(self, product: Product, new_val: ProductParam) -> None:
        """Update a product; the build-in product cannot be changed."""
        if product.id == BUILDIN_PRODUCT_ID:
            raise wrap_model_error_with_msg("Cant Delete Build-in Product")
        self._txn.atom_execute(lambda: self._storager.update_product(product, new_val))


def product_id_to_name(products: Iterable[Product]) -> dict[int, str]:
    return {product.id: product.name for product in products}


def product_id_map(products: Iterable[Product]) -> dict[int, Product]:
    return {product.id: product for product in products}


@dataclass
class BFECluster:
    """A cluster of BFE instances serving traffic."""

    id: int = 0
    name: str = ""
    pool: str = ""
    enabled: bool = False
    exempt_traffic_check: bool = False
    capacity: int = 0


@dataclass
class BFEClusterParam:
    name: str | None = None
    pool: str | None = None
    capacity: int | None = None


@dataclass
class BFEClusterFilter:
    name: str | None = None
    pool: str | None = None


class BFEClusterStorager(ABC):
    @abstractmethod
    def delete_bfe_cluster(self, cluster: BFECluster) -> None:
        """Remove cluster."""

    @abstractmethod
    def create_bfe_cluster(self, param: BFEClusterParam) -> None:
        """Store a new BFE cluster."""

    @abstractmethod
    def fetch_bfe_clusters(self, param: BFEClusterFilter | None) -> list[BFECluster]:
        """Return the BFE clusters matching param."""


class BFEClusterManager:
    def __init__(self, txn: TxnStorager, storager: BFEClusterStorager):
        self._txn = txn
        self._storager = storager

    def fetch_bfe_clusters(self, param: BFEClusterFilter | None) -> list[BFECluster]:
        return self._txn.atom_execute(lambda: self._storager.fetch_bfe_clusters(param))

    def create_bfe_cluster(self, param: BFEClusterParam) -> None:
        """Create a BFE cluster whose name is not taken yet."""

        def do() -> None:
            if self._storager.fetch_bfe_clusters(BFEClusterFilter(name=param.name)):
                raise wrap_record_existed("BFE Cluster")
            self._storager.create_bfe_cluster(param)

        self._txn.atom_execute(do)

    def delete_bfe_cluster(self, param: BFEClusterParam) -> None:
        """Delete the BFE cluster named by param."""

        def do() -> None:
            found = self._storager.fetch_bfe_clusters(BFEClusterFilter(name=param.name))
            if not found:
                raise wrap_record_not_exist("BFE Cluster")
            self._storager.delete_bfe_cluster(found[0])

        self._txn.atom_execute(do)


def bfe_cluster_id_to_name(clusters: Iterable[BFECluster]) -> dict[int, str]:
    return {cluster.id: cluster.name for cluster in clusters}


def bfe_cluster_id_map(clusters: Iterable[BFECluster]) -> dict[int, BFECluster]:
    return {cluster.id: cluster for cluster in clusters}


def bfe_cluster_name_map(clusters: Iterable[BFECluster]) -> dict[str, BFECluster]:
    return {cluster.name: cluster for cluster in clusters}


@dataclass
class ExtraFile:
    """A file shipped alongside exported configuration."""

    id: int = 0
    name: str = ""
    product_id: int = 0
    description: str = ""
    md5: bytes = b""
    content: bytes = b""


@dataclass
class ExtraFileParam:
    name: str | None = None
    description: str | None = None
    md5: bytes | None = None
    content: bytes | None = None


@dataclass
class ExtraFileFilter:
    name: str | None = None
    names: list[str] | None = None


class ExtraFileStorager(ABC):
    @abstractmethod
    def create_extra_file(self, product: Product, *params: ExtraFileParam) -> None:
        """Store the given files for product."""

    @abstractmethod
    def delete_extra_file(self, param: ExtraFileFilter) -> None:
        """Remove the files matching param."""

    @abstractmethod
    def fetch_extra_files(self, param: ExtraFileFilter) -> list[ExtraFile]:
        """Return the files matching param."""


def extra_file_path(module_dir: str, product: Product, file_name: str) -> str:
    """Path of a product's extra file under module_dir."""
    file_name = file_name.replace(os.sep, "_")
    return f"{module_dir}/{product.name.lower()}/{file_name}"


class ExtraFileManager:
    def __init__(self, storager: ExtraFileStorager):
        self._storager = storager

    def fetch_extra_file(self, file_name: str) -> ExtraFile | None:
        """Return the file with this name, or None."""
        found = self._storager.fetch_extra_files(ExtraFileFilter(name=file_name))
        return found[0] if found else None