"""Product route rules: records, conversion, storage contract and the manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from bfeapi.basic import Product
from bfeapi.cluster import (
    ROUTE_ADVANCED_MODE_CLUSTER_ID,
    SYSTEM_KEEP_ROUTE_NAMES,
    Cluster,
    ClusterFilter,
    ClusterStorager,
    append_advanced_rule_cluster,
    clusters_by_name,
)
from bfeapi.txn import TxnStorager
from bfeapi.xerror import wrap_model_error_with_msg, wrap_param_error_with_msg

DEFAULT_EXPRESSION = "default_t()"


@dataclass
class BasicRouteRule:
    host_names: list[str] = field(default_factory=list)
    paths: list[str] = field(default_factory=list)
    cluster_name: str = ""
    cluster_id: int = 0
    description: str = ""


@dataclass
class AdvanceRouteRule:
    name: str = ""
    description: str = ""
    expression: str = ""
    cluster_name: str = ""
    cluster_id: int = 0


@dataclass
class RouteRuleCase:
    description: str = ""
    url: str = ""
    method: str = ""
    header: dict[str, str] = field(default_factory=dict)
    expect_cluster: str = ""


@dataclass
class HostUsedInfo:
    type: str = ""
    detail: str = ""


@dataclass
class ProductRouteRuleConvertResult:
    basic_route_rule_files: list[dict] = field(default_factory=list)
    advanced_route_rule_files: list[dict] = field(default_factory=list)
    refer_cluster_names: list[str] = field(default_factory=list)


@dataclass
class ProductRouteRule:
    """The basic and advanced route rules of one product."""

    basic_route_rules: list[BasicRouteRule] = field(default_factory=list)
    advance_route_rules: list[AdvanceRouteRule] = field(default_factory=list)
    route_cases: list[RouteRuleCase] = field(default_factory=list)

    def host_be_used(self, host: str) -> HostUsedInfo | None:
        """Describe the first rule that refers to host, or None."""
        for rule in self.basic_route_rules:
            if host in rule.host_names:
                return HostUsedInfo(type="BasicConditionExpression", detail=host)

        keyword = f'req_host_in("{host}")'
        for rule in self.advance_route_rules:
            if keyword in rule.expression:
                return HostUsedInfo(
                    type="AdvanceConditionExpression", detail=rule.expression
                )
        return None

    def convert(self) -> ProductRouteRuleConvertResult:
        """Data-plane rule files and the names of the clusters they refer to."""
        if (
            not self.advance_route_rules
            or self.advance_route_rules[-1].expression != DEFAULT_EXPRESSION
        ):
            raise wrap_param_error_with_msg(
                "Last ForwardRule Expression Must Be default_t()"
            )

        refer: dict[str, bool] = {}
        basic_files = []
        for rule in self.basic_route_rules:
            refer[rule.cluster_name] = True
            basic_files.append(
                {
                    "Hostname": rule.host_names,
                    "Path": rule.paths,
                    "ClusterName": rule.cluster_name,
                }
            )

        advanced_files = []
        for rule in self.advance_route_rules:
            refer[rule.cluster_name] = True
            advanced_files.append(
                {"Cond": rule.expression, "ClusterName": rule.cluster_name}
            )

        return ProductRouteRuleConvertResult(
            basic_route_rule_files=basic_files,
            advanced_route_rule_files=advanced_files,
            refer_cluster_names=list(refer),
        )


class RouteRuleStorager(ABC):
    @abstractmethod
    def upsert_product_rule(self, product: Product, rule: ProductRouteRule) -> None:
        """Store the rules of product, replacing existing ones."""

    @abstractmethod
    def fetch_product_rule(
        self, product: Product, cluster_list: list[Cluster]
    ) -> ProductRouteRule | None:
        """Return the rules of product."""

    @abstractmethod
    def fetch_rout_rules(
        self, products: list[Product] | None, cluster_list: list[Cluster]
    ) -> dict[int, ProductRouteRule] | None:
        """Return the rules referring to cluster_list, keyed by product id."""


class RouteRuleManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: RouteRuleStorager,
        cluster_storager: ClusterStorager,
        product_storager=None,
        version_control_manager=None,
        domain_storager=None,
        ignore_status_check: bool = False,
    ):
        self._txn = txn
        self._storager = storager
        self._cluster_storager = cluster_storager
        self._product_storager = product_storager
        self._version_control_manager = version_control_manager
        self._domain_storager = domain_storager
        self._ignore_status_check = ignore_status_check

    def fetch_product_rule(self, product: Product) -> ProductRouteRule | None:
        """The route rules of product, or None when it has none."""

        def do() -> ProductRouteRule | None:
            clusters = self._cluster_storager.fetch_cluster_list(
                ClusterFilter(product=product)
            )
            clusters = append_advanced_rule_cluster(clusters)
            rules = self._storager.fetch_rout_rules([product], clusters) or {}
            return rules.get(product.id)

        return self._txn.atom_execute(do)

    def upsert_product_rule(self, product: Product, rule: ProductRouteRule) -> None:
        """Check that every referred cluster exists and is ready, then store."""
        converted = rule.convert()

        def do() -> None:
            cluster_map: dict[str, Cluster] = {}
            refer = converted.refer_cluster_names
            if refer:
                clusters = self._cluster_storager.fetch_cluster_list(
                    ClusterFilter(names=refer, product=product)
                )
                cluster_map = clusters_by_name(append_advanced_rule_cluster(clusters))
                for name in refer:
                    if name in SYSTEM_KEEP_ROUTE_NAMES:
                        continue
                    cluster = cluster_map.get(name)
                    if cluster is None:
                        raise wrap_model_error_with_msg("Cluster %s Not Exist", name)
                    if not self._ignore_status_check and not cluster.ready:
                        raise wrap_model_error_with_msg("Cluster %s Not Ready", name)

            def cluster_id(name: str) -> int:
                cluster = cluster_map.get(name)
                return cluster.id if cluster is not None else ROUTE_ADVANCED_MODE_CLUSTER_ID

            for one in rule.advance_route_rules:
                one.cluster_id = cluster_id(one.cluster_name)
            for one in rule.basic_route_rules:
                one.cluster_id = cluster_id(one.cluster_name)

            self._storager.upsert_product_rule(product, rule)

        self._txn.atom_execute(do)

    def cluster_delete_checker(self, product: Product, cluster: Cluster) -> None:
        """Raise when a rule of product still routes to cluster."""
        rules = self._storager.fetch_rout_rules([product], [cluster]) or {}
        rule = rules.get(product.id)
        if rule is None:
            return
        if rule.advance_route_rules:
            raise wrap_model_error_with_msg(
                "Rule %s Refer To This Cluster", rule.advance_route_rules[0].name
            )
        if rule.basic_route_rules:
            raise wrap_model_error_with_msg(
                "Rule %s Refer To This Cluster", rule.basic_route_rules[0].description
            )