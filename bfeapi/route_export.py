"""Export of the route table, host table and cluster config as one unit."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

from bfeapi.basic import ProductStorager, product_id_map
from bfeapi.cluster import ClusterStorager, append_advanced_rule_cluster, new_bfe_cluster_conf
from bfeapi.containers import sorted_keys
from bfeapi.domain import DomainStorager, new_host_table_conf
from bfeapi.route_rule import ProductRouteRule, RouteRuleStorager
from bfeapi.version_control import (
    ZERO_VERSION,
    ExportData,
    VersionControlManager,
    VersionValuable,
)
from bfeapi.xerror import wrap_dirty_data_error_with_msg

CONFIG_TOPIC_ROUTE_RULE = "route_rule"


@dataclass
class RouteRuleExportData(VersionValuable):
    """Host table, route table and cluster config sharing one version."""

    version: str = ""
    host_table: dict = field(default_factory=dict)
    route_table: dict = field(default_factory=dict)
    cluster_conf: dict = field(default_factory=dict)

    def update_version(self, version: str) -> None:
        self.version = version
        self.route_table["Version"] = version
        self.host_table["Version"] = version
        self.cluster_conf["Version"] = version

    def to_dict(self) -> dict:
        return {
            "Version": self.version,
            "HostTable": self.host_table,
            "RouteTable": self.route_table,
            "ClusterConf": self.cluster_conf,
        }


def new_route_table_file(
    version: str,
    product_names: Mapping[int, str],
    route_rules: Mapping[int, ProductRouteRule] | None,
) -> dict:
    """The data-plane route table, products in ascending id order."""
    basic_rule: dict[str, list[dict]] = {}
    advanced_rule: dict[str, list[dict]] = {}
    route_rules = route_rules or {}

    for pid in sorted_keys(product_names):
        rule = route_rules.get(pid)
        if rule is None:
            continue
        name = product_names[pid]
        basic_rule[name] = [
            {
                "Hostname": one.host_names,
                "Path": one.paths,
                "ClusterName": one.cluster_name,
            }
            for one in rule.basic_route_rules
        ]
        advanced_rule[name] = [
            {"Cond": one.expression, "ClusterName": one.cluster_name}
            for one in rule.advance_route_rules
        ]

    return {"Version": version, "BasicRule": basic_rule, "ProductRule": advanced_rule}


class RouteRuleExporter:
    """Exports the routing configuration under version control."""

    def __init__(
        self,
        storager: RouteRuleStorager,
        domain_storager: DomainStorager,
        cluster_storager: ClusterStorager,
        product_storager: ProductStorager,
        version_control_manager: VersionControlManager,
    ):
        self._storager = storager
        self._domain_storager = domain_storager
        self._cluster_storager = cluster_storager
        self._product_storager = product_storager
        self._version_control_manager = version_control_manager

    def _generate(self) -> ExportData:
        domains = self._domain_storager.fetch_domains(None)
        clusters = append_advanced_rule_cluster(
            self._cluster_storager.fetch_cluster_list(None)
        )
        route_rules = self._storager.fetch_rout_rules(None, clusters)
        products = product_id_map(self._product_storager.fetch_products(None))

        product_names: dict[int, str] = {}
        for domain in domains:
            product = products.get(domain.product_id)
            if product is None:
                raise wrap_dirty_data_error_with_msg(
                    "Domain refer Not Exist Product %d", domain.product_id
                )
            product_names[domain.product_id] = product.name

        data = RouteRuleExportData(
            version=ZERO_VERSION,
            route_table=new_route_table_file(ZERO_VERSION, product_names, route_rules),
            host_table=new_host_table_conf(ZERO_VERSION, product_names, domains),
            cluster_conf=new_bfe_cluster_conf(ZERO_VERSION, clusters),
        )
        return ExportData(topic=CONFIG_TOPIC_ROUTE_RULE, data_without_version=data)

    def export_route_rule(self, last_version: str) -> RouteRuleExportData | None:
        """The routing config, or None when last_version is already current."""
        export_data = self._version_control_manager.export_config(
            CONFIG_TOPIC_ROUTE_RULE, self._generate
        )
        conf = export_data.data_without_version
        if conf.version == last_version:
            return None
        return conf