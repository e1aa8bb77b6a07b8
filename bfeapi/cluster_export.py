"""Cluster table and GSLB load-balance configuration for the data plane."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from bfeapi.cluster import Cluster, ClusterStorager
from bfeapi.version_control import (
    ZERO_VERSION,
    ExportData,
    VersionControlManager,
    VersionValuable,
)
from bfeapi.xerror import wrap_param_error_with_msg

CONFIG_TOPIC_CLUSTER_TABLE = "cluster_table"
CONFIG_TOPIC_GSLB = "gslb"
GSLB_HOSTNAME = "gslb.manual.com"


@dataclass
class ClusterTableConf(VersionValuable):
    """Backend instances per sub cluster, per cluster."""

    version: str = ""
    config: dict[str, dict[str, list[dict]]] = field(default_factory=dict)

    def update_version(self, version: str) -> None:
        self.version = version

    def to_dict(self) -> dict:
        return {"Version": self.version, "Config": self.config}


@dataclass
class GSLBConf(VersionValuable):
    """Load-balance weights of every cluster for one BFE cluster."""

    version: str = ""
    clusters: dict[str, dict[str, int]] = field(default_factory=dict)
    hostname: str = GSLB_HOSTNAME
    ts: str | None = None

    def update_version(self, version: str) -> None:
        self.version = version
        self.ts = version

    def to_dict(self) -> dict:
        return {
            "Version": self.version,
            "Clusters": self.clusters,
            "Hostname": self.hostname,
            "Ts": self.ts,
        }


def build_cluster_table_conf(clusters: Iterable[Cluster]) -> ClusterTableConf:
    """Build the cluster table at the zero version."""
    config: dict[str, dict[str, list[dict]]] = {}
    for cluster in clusters:
        backends: dict[str, list[dict]] = {}
        for sub_cluster in cluster.sub_clusters:
            pool = sub_cluster.instance_pool
            if pool is None or not pool.instances:
                continue
            backends[sub_cluster.name] = [
                {
                    "Name": instance.host_name,
                    "Addr": instance.ip,
                    "Port": instance.port,
                    "Weight": int(instance.weight),
                }
                for instance in pool.instances
            ]
        config[cluster.name] = backends

    conf = ClusterTableConf(config=config)
    conf.update_version(ZERO_VERSION)
    return conf


def build_gslb_conf(clusters: Iterable[Cluster], bfe_cluster_name: str) -> GSLBConf:
    """Build the GSLB config of one BFE cluster at the zero version."""
    gslb_clusters: dict[str, dict[str, int]] = {}
    for cluster in clusters:
        scheduler = cluster.scheduler
        if not scheduler:
            continue
        row = scheduler.get(bfe_cluster_name)
        if row is None:
            raise wrap_param_error_with_msg("BFECluster %s Not Exist", bfe_cluster_name)
        gslb_clusters[cluster.name] = row

    conf = GSLBConf(clusters=gslb_clusters)
    conf.update_version(ZERO_VERSION)
    return conf


class ClusterExporter:
    """Publishes cluster configuration under version control."""

    def __init__(
        self, storager: ClusterStorager, version_control_manager: VersionControlManager
    ):
        self._storager = storager
        self._version_control_manager = version_control_manager

    def export_cluster_table(self, last_version: str) -> ClusterTableConf | None:
        """The cluster table, or None when last_version is already current."""

        def generate() -> ExportData:
            clusters = self._storager.fetch_cluster_list(None)
            return ExportData(
                topic=CONFIG_TOPIC_CLUSTER_TABLE,
                data_without_version=build_cluster_table_conf(clusters),
            )

        export_data = self._version_control_manager.export_config(
            CONFIG_TOPIC_CLUSTER_TABLE, generate
        )
        conf = export_data.data_without_version
        if conf.version == last_version:
            return None
        return conf

    def export_gslb(self, last_version: str, bfe_cluster_name: str) -> GSLBConf | None:
        """The GSLB config of a BFE cluster, or None when last_version is current."""
        topic = f"{CONFIG_TOPIC_GSLB}.{bfe_cluster_name}"

        def generate() -> ExportData:
            clusters = self._storager.fetch_cluster_list(None)
            return ExportData(
                topic=topic,
                data_without_version=build_gslb_conf(clusters, bfe_cluster_name),
            )

        export_data = self._version_control_manager.export_config(topic, generate)
        conf = export_data.data_without_version
        if conf.version == last_version:
            return None
        return conf