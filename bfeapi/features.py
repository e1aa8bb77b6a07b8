"""Features, actions and the permissions each scope grants."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntFlag
from typing import Iterable

SCOPE_ALWAYS_ALLOWED = "Allowed"
SCOPE_SYSTEM = "System"
SCOPE_PRODUCT = "Product"
SCOPE_SUPPORT = "Support"


class Action(IntFlag):
    """Bit set of operations on a feature."""

    DENY = 1
    READ = 2
    READ_ALL = 4
    UPDATE = 8
    CREATE = 16
    DELETE = 32
    EXPORT = 64

    def grant(self, other: Action) -> Action:
        """This set with other's bits added."""
        return Action(int(self) | int(other))

    def revoke(self, other: Action) -> Action:
        """This set with other's bits removed."""
        return Action(int(self) & ~int(other))

    def is_allowed(self, other: Action) -> bool:
        """Whether any bit of other is in this set."""
        return int(self) & int(other) != 0


class Feature(str, Enum):
    """A resource area that access is granted on."""

    PROXY_POOL = "ProxyPool"
    BFE_CLUSTER = "BFECluster"
    BFE_POOL = "BFEPool"
    AREA = "Area"
    DOMAIN = "Domain"
    PRODUCT = "Product"
    EXTRA_FILE = "ExtraFile"

    PRODUCT_POOL = "ProductPool"
    ROUTE = "Route"
    SUB_CLUSTER = "SubCluster"
    PRODUCT_CLUSTER = "ProductCluster"
    TRAFFIC = "Traffic"
    CERT = "Cert"
    ACTIVE_HEALTH_CHECK = "ActiveHealthCheck"

    PRODUCT_USER = "AuthProductUser"
    USER = "User"
    TOKEN = "Token"

    NLB_POOL = "NLBPool"
    NLB_CLUSTER = "NLBCluster"


@dataclass
class FeatureAuthorization:
    """The feature and the action a request needs."""

    feature: Feature
    action: Action


@dataclass
class Authorization:
    """What an endpoint requires of its visitor."""

    feature_authorizer: FeatureAuthorization
    validate_product: bool = False


def new_feature_authorization(feature: Feature, action: Action) -> Authorization:
    return Authorization(FeatureAuthorization(feature, action))


def new_product_feature_authorization(feature: Feature, action: Action) -> Authorization:
    """An authorization that also requires access to the current product."""
    authorization = new_feature_authorization(feature, action)
    authorization.validate_product = True
    return authorization


FA = new_feature_authorization
FAP = new_product_feature_authorization


_ACTION_PRODUCT_NORMAL = (
    Action.DENY.grant(Action.READ)
    .grant(Action.UPDATE)
    .grant(Action.CREATE)
    .grant(Action.READ_ALL)
    .grant(Action.DELETE)
)

_ACTION_ALL = _ACTION_PRODUCT_NORMAL.grant(Action.EXPORT)

_SYSTEM_FEATURES = (
    Feature.PROXY_POOL,
    Feature.BFE_CLUSTER,
    Feature.BFE_POOL,
    Feature.AREA,
    Feature.DOMAIN,
    Feature.PRODUCT,
    Feature.PRODUCT_POOL,
    Feature.ROUTE,
    Feature.SUB_CLUSTER,
    Feature.PRODUCT_CLUSTER,
    Feature.TRAFFIC,
    Feature.CERT,
    Feature.ACTIVE_HEALTH_CHECK,
    Feature.PRODUCT_USER,
    Feature.USER,
    Feature.TOKEN,
    Feature.NLB_POOL,
    Feature.NLB_CLUSTER,
)

_SCOPE_TO_PERMISSION: dict[str, dict[Feature, Action]] = {
    SCOPE_SYSTEM: {feature: _ACTION_ALL for feature in _SYSTEM_FEATURES},
    SCOPE_PRODUCT: {
        Feature.USER: Action.READ_ALL,
        Feature.TOKEN: Action.READ_ALL,
        Feature.PROXY_POOL: _ACTION_PRODUCT_NORMAL.grant(Action.READ_ALL),
        Feature.BFE_CLUSTER: _ACTION_PRODUCT_NORMAL,
        Feature.BFE_POOL: _ACTION_PRODUCT_NORMAL,
        Feature.AREA: _ACTION_PRODUCT_NORMAL.grant(Action.READ_ALL),
        Feature.DOMAIN: _ACTION_PRODUCT_NORMAL.grant(Action.READ_ALL),
        Feature.PRODUCT: _ACTION_PRODUCT_NORMAL.grant(Action.READ_ALL),
        Feature.PRODUCT_POOL: _ACTION_PRODUCT_NORMAL,
        Feature.ROUTE: _ACTION_PRODUCT_NORMAL,
        Feature.SUB_CLUSTER: _ACTION_PRODUCT_NORMAL,
        Feature.PRODUCT_CLUSTER: _ACTION_PRODUCT_NORMAL,
        Feature.TRAFFIC: _ACTION_PRODUCT_NORMAL,
        Feature.CERT: _ACTION_PRODUCT_NORMAL,
        Feature.ACTIVE_HEALTH_CHECK: _ACTION_PRODUCT_NORMAL,
        Feature.PRODUCT_USER: _ACTION_PRODUCT_NORMAL,
        Feature.NLB_POOL: _ACTION_PRODUCT_NORMAL,
        Feature.NLB_CLUSTER: _ACTION_PRODUCT_NORMAL,
    },
    SCOPE_SUPPORT: {
        Feature.PROXY_POOL: Action.EXPORT,
        Feature.ROUTE: Action.EXPORT,
        Feature.CERT: Action.EXPORT,
        Feature.ACTIVE_HEALTH_CHECK: Action.EXPORT,
        Feature.EXTRA_FILE: Action.EXPORT,
    },
}


def scope_permissions(scope: str) -> dict[Feature, Action]:
    """The actions a scope allows per feature; empty for an unknown scope."""
    return dict(_SCOPE_TO_PERMISSION.get(scope, {}))


def is_feature_granted(scopes: Iterable[str], authorization: Authorization) -> bool:
    """Whether any of the scopes allows the feature action authorization asks for."""
    wanted = authorization.feature_authorizer
    for scope in scopes:
        action = _SCOPE_TO_PERMISSION.get(scope, {}).get(wanted.feature)
        if action is not None and action.is_allowed(wanted.action):
            return True
    return False