"""Export of the server certificate configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from bfeapi.version_control import ZERO_VERSION, VersionValuable
from bfeapi.xerror import wrap_dirty_data_error_with_msg

CONFIG_TOPIC_SERVER_CERT = "certificate"
TLS_CONF_DIR = "tls_conf"


def _versioned_path(path: str, version: str, label: str) -> str:
    i = path.find("/")
    if i == -1:
        raise wrap_dirty_data_error_with_msg("%s must has /, path: %s", label, path)
    return f"{TLS_CONF_DIR}_{version}{path[i:]}"


@dataclass
class ServerCertConf(VersionValuable):
    """Certificate file locations per certificate name, plus the default one."""

    version: str = ""
    default: str = ""
    cert_conf: dict[str, dict[str, str]] = field(default_factory=dict)

    def update_version(self, version: str) -> None:
        """Stamp the version and move every file under the versioned TLS dir."""
        self.version = version
        updated = {}
        for name, files in self.cert_conf.items():
            updated[name] = {
                "ServerCertFile": _versioned_path(
                    files["ServerCertFile"], version, "ServerCertFile"
                ),
                "ServerKeyFile": _versioned_path(
                    files["ServerKeyFile"], version, "ServerKeyFile"
                ),
            }
        self.cert_conf = updated

    def to_dict(self) -> dict:
        return {
            "Version": self.version,
            "Config": {
                "Default": self.default,
                "CertConf": {name: dict(files) for name, files in self.cert_conf.items()},
            },
        }


def build_server_cert_conf(certificates: Iterable) -> ServerCertConf:
    """Build the configuration from certificate records, at the zero version."""
    default = ""
    cert_conf = {}
    for cert in certificates:
        if cert.is_default:
            default = cert.cert_name
        cert_conf[cert.cert_name] = {
            "ServerCertFile": cert.cert_file_path,
            "ServerKeyFile": cert.key_file_path,
        }
    conf = ServerCertConf(default=default, cert_conf=cert_conf)
    conf.update_version(ZERO_VERSION)
    return conf