"""Domains: records, storage contract, host table and the manager."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Mapping

from bfeapi.basic import Product
from bfeapi.route_rule import HostUsedInfo, RouteRuleManager
from bfeapi.txn import TxnStorager
from bfeapi.xerror import (
    wrap_dependent_unready_error_with_msg,
    wrap_model_error_with_msg,
    wrap_record_existed,
)

DEFAULT_PRODUCT = "bfe"


@dataclass
class Domain:
    """A host name owned by a product."""

    id: int = 0
    product_id: int = 0
    name: str = ""
    using_advanced_redirect: int = 0
    using_advanced_hsts: int = 0


@dataclass
class DomainFilter:
    product: Product | None = None
    name: str | None = None


@dataclass
class DomainParam:
    product_id: int | None = None
    name: str | None = None
    using_advanced_redirect: int | None = None
    using_advanced_hsts: int | None = None


def new_host_table_conf(
    version: str, product_names: Mapping[int, str], domains: Iterable[Domain]
) -> dict:
    """The data-plane host table: host tags per product and hosts per tag."""
    tag_to_hosts: dict[str, list[str]] = {}
    product_to_tags: dict[str, dict[str, bool]] = {DEFAULT_PRODUCT: {}}

    for domain in sorted(domains, key=lambda one: one.product_id):
        product_name = product_names.get(domain.product_id, "")
        tag = product_name.lower()
        tag_to_hosts.setdefault(tag, []).append(domain.name)
        product_to_tags.setdefault(product_name, {})[tag] = True

    return {
        "Version": version,
        "DefaultProduct": DEFAULT_PRODUCT,
        "Hosts": tag_to_hosts,
        "HostTags": {product: list(tags) for product, tags in product_to_tags.items()},
    }


def domain_match(pattern: str, domain: str) -> bool:
    """Whether domain matches pattern, whose first label may be "*"."""
    domain = domain.removesuffix(".")
    pattern = pattern.removesuffix(".")
    if not pattern or not domain:
        return False

    pattern_parts = pattern.split(".")
    host_parts = domain.split(".")
    if len(pattern_parts) != len(host_parts):
        return False

    for index, (pattern_part, host_part) in enumerate(zip(pattern_parts, host_parts)):
        if index == 0 and pattern_part == "*":
            continue
        if pattern_part != host_part:
            return False
    return True


class DomainStorager(ABC):
    @abstractmethod
    def fetch_domains(self, param: DomainFilter | None) -> list[Domain]:
        """Return the domains matching param."""

    @abstractmethod
    def create_domain(self, product: Product, param: DomainParam) -> None:
        """Store a new domain for product."""

    @abstractmethod
    def delete_domain(self, product: Product, domain: Domain) -> None:
        """Remove domain."""


@dataclass
class DomainBeUsedInfo:
    """What still refers to a domain."""

    domain: Domain
    has_https_config: bool = False
    rout_rule: HostUsedInfo | None = None

    def __str__(self) -> str:
        name = self.domain.name
        if self.rout_rule is not None:
            return (
                f"Domain {name} Be Used By {self.rout_rule.type} "
                f"Rule {self.rout_rule.detail}"
            )
        if self.has_https_config:
            return f"Domain {name} Be Used By HTTPS Config"
        return ""

    def dependent(self) -> tuple[str, str]:
        """The kind and name of what uses the domain."""
        if self.rout_rule is not None:
            return self.rout_rule.type, self.rout_rule.detail
        if self.has_https_config:
            return "DomainHttpsConfig", ""
        return "", ""


class DomainManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: DomainStorager,
        route_rule_manager: RouteRuleManager,
    ):
        self._txn = txn
        self._storager = storager
        self._route_rule_manager = route_rule_manager

    def domain_list(self, param: DomainFilter | None) -> list[Domain]:
        return self._txn.atom_execute(lambda: self._storager.fetch_domains(param))

    def create_domain(self, product: Product, param: DomainParam) -> None:
        """Create a domain that neither exists nor overlaps a wildcard domain."""

        def do() -> None:
            param.product_id = product.id
            name = param.name
            for old in self._storager.fetch_domains(None):
                if old.name == name:
                    raise wrap_record_existed("Domain")
                pattern, host = name, old.name
                if "*" not in name:
                    pattern, host = old.name, name
                if domain_match(pattern, host):
                    raise wrap_model_error_with_msg(
                        "Domain Name %s Be Covered By Wildcard Domain %s", host, pattern
                    )
            self._storager.create_domain(product, param)

        self._txn.atom_execute(do)

    def delete_domain(self, product: Product, domain: Domain) -> None:
        """Delete a domain nothing refers to any more."""
        used = self.be_used(product, domain)
        if used is not None:
            raise wrap_dependent_unready_error_with_msg(str(used))
        self._txn.atom_execute(lambda: self._storager.delete_domain(product, domain))

    def be_used(self, product: Product, domain: Domain) -> DomainBeUsedInfo | None:
        """Describe what refers to domain, or None."""
        if domain.using_advanced_hsts != 0 or domain.using_advanced_redirect != 0:
            return DomainBeUsedInfo(domain=domain, has_https_config=True)

        rule = self._route_rule_manager.fetch_product_rule(product)
        if rule is None:
            return None
        use_info = rule.host_be_used(domain.name)
        if use_info is not None:
            return DomainBeUsedInfo(domain=domain, rout_rule=use_info)
        return None