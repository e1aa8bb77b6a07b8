"""TLS certificates: validation, storage contract and the manager."""

from __future__ import annotations

import base64
import binascii
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Iterator

from cryptography import x509
from cryptography.hazmat.primitives import serialization

from bfeapi.basic import (
    BUILDIN_PRODUCT,
    ExtraFileFilter,
    ExtraFileParam,
    ExtraFileStorager,
    Product,
    extra_file_path,
)
from bfeapi.cert_export import (
    CONFIG_TOPIC_SERVER_CERT,
    TLS_CONF_DIR,
    ServerCertConf,
    build_server_cert_conf,
)
from bfeapi.txn import TxnStorager
from bfeapi.version_control import ExportData, VersionControlManager
from bfeapi.xerror import (
    wrap_model_error_with_msg,
    wrap_param_error_with_msg,
    wrap_record_existed,
)


@dataclass
class Certificate:
    """A stored certificate and key pair."""

    cert_name: str = ""
    description: str = ""
    is_default: bool = False
    cert_file_name: str = ""
    cert_file_path: str = ""
    key_file_name: str = ""
    key_file_path: str = ""
    expired_date: str = ""
    products: list[Product] = field(default_factory=list)


@dataclass
class CertificateFilter:
    cert_name: str | None = None
    is_default: bool | None = None


@dataclass
class CertificateParam:
    cert_name: str | None = None
    description: str | None = None
    is_default: bool | None = None
    cert_file_name: str | None = None
    cert_file_path: str | None = None
    cert_file_content: str | None = None
    key_file_name: str | None = None
    key_file_content: str | None = None
    key_file_path: str | None = None
    expired_date: str | None = None


class CertificateStorager(ABC):
    @abstractmethod
    def fetch_certificates(self, param: CertificateFilter | None) -> list[Certificate]:
        """Return the certificates matching param."""

    @abstractmethod
    def delete_certificate(self, certificate: Certificate) -> None:
        """Remove certificate."""

    @abstractmethod
    def create_certificate(self, param: CertificateParam) -> None:
        """Store a new certificate."""

    @abstractmethod
    def update_certificate(self, certificate: Certificate, param: CertificateParam) -> None:
        """Apply param to certificate."""


_PEM_BLOCK = re.compile(
    r"(?:^|\n)-----BEGIN ([^\r\n]*?)-----\r?\n(.*?)-----END \1-----", re.S
)


def _pem_blocks(text: str) -> Iterator[tuple[str, bytes]]:
    """Yield (type, DER bytes) for each well-formed PEM block, in order."""
    for match in _PEM_BLOCK.finditer(text):
        lines = [line for line in match.group(2).splitlines() if ":" not in line]
        body = "".join("".join(lines).split())
        try:
            der = base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            continue
        yield match.group(1), der


def _is_private_key_type(block_type: str) -> bool:
    return block_type == "PRIVATE KEY" or block_type.endswith(" PRIVATE KEY")


def _public_der(public_key) -> bytes:
    return public_key.public_bytes(
        serialization.Encoding.DER, serialization.PublicFormat.SubjectPublicKeyInfo
    )


def _check_key_pair(cert_pem: str, key_pem: str) -> None:
    certs = [der for kind, der in _pem_blocks(cert_pem) if kind == "CERTIFICATE"]
    if not certs:
        raise ValueError("tls: failed to find any PEM data in certificate input")

    key_der = next(
        (der for kind, der in _pem_blocks(key_pem) if _is_private_key_type(kind)), None
    )
    if key_der is None:
        raise ValueError("tls: failed to find any PEM data in key input")

    try:
        key = serialization.load_der_private_key(key_der, password=None)
    except (ValueError, TypeError) as exc:
        raise ValueError("tls: failed to parse private key") from exc

    try:
        leaf = x509.load_der_x509_certificate(certs[0])
    except ValueError as exc:
        raise ValueError(f"tls: failed to parse certificate: {exc}") from exc

    if _public_der(leaf.public_key()) != _public_der(key.public_key()):
        raise ValueError("tls: private key does not match public key")


def validate_cert_pair(
    cert_file_name: str, cert_file_content: str, key_file_name: str, key_file_content: str
) -> None:
    """Raise unless the contents are a PEM certificate chain and its matching key."""
    for kind, _ in _pem_blocks(cert_file_content):
        if kind != "CERTIFICATE":
            raise wrap_param_error_with_msg("Certificate File Format Must Be PEM")

    first_key = next(_pem_blocks(key_file_content), None)
    if first_key is None or not _is_private_key_type(first_key[0]):
        raise wrap_param_error_with_msg("Certificate Private Key File Format Must Be PEM")

    _check_key_pair(cert_file_content, key_file_content)


class CertificateManager:
    def __init__(
        self,
        txn: TxnStorager,
        storager: CertificateStorager,
        version_control_manager: VersionControlManager,
        extra_file_storager: ExtraFileStorager,
    ):
        self._txn = txn
        self._storager = storager
        self._version_control_manager = version_control_manager
        self._extra_file_storager = extra_file_storager

    def fetch_certificates(self, param: CertificateFilter | None) -> list[Certificate]:
        return self._txn.atom_execute(lambda: self._storager.fetch_certificates(param))

    def delete_certificate(self, certificate: Certificate) -> None:
        """Delete a non-default certificate no product refers to, with its files."""
        if certificate.is_default:
            raise wrap_model_error_with_msg("Cant Delete Default Certificate")
        if certificate.products:
            raise wrap_model_error_with_msg("Cant Delete Certificate Be Refer By Product")

        def do() -> None:
            self._extra_file_storager.delete_extra_file(
                ExtraFileFilter(
                    names=[certificate.cert_file_path, certificate.key_file_path]
                )
            )
            self._storager.delete_certificate(certificate)

        self._txn.atom_execute(do)

    def create_certificate(self, param: CertificateParam) -> None:
        """Validate and store a certificate with its files, keeping one default."""
        validate_cert_pair(
            param.cert_file_name,
            param.cert_file_content,
            param.key_file_name,
            param.key_file_content,
        )

        names = [param.cert_file_name, param.key_file_name]
        seen: set[str] = set()
        for name in names:
            if name in seen:
                raise wrap_param_error_with_msg("Certificate File Name %s Existed", name)
            seen.add(name)

        def do() -> None:
            default_certificate = None
            for one in self._storager.fetch_certificates(None):
                if one.cert_name == param.cert_name:
                    raise wrap_record_existed("Certification")
                for name in names:
                    if one.cert_file_name == name or one.key_file_name == name:
                        raise wrap_model_error_with_msg(
                            "Certificate File Name %s By Used By %s", name, one.cert_name
                        )
                if one.is_default:
                    default_certificate = one

            if default_certificate is None and not param.is_default:
                raise wrap_model_error_with_msg("Must Has Default Certificate")
            if param.is_default and default_certificate is not None:
                self._storager.update_certificate(
                    default_certificate, CertificateParam(is_default=False)
                )

            param.cert_file_path = extra_file_path(
                TLS_CONF_DIR, BUILDIN_PRODUCT, param.cert_file_name
            )
            param.key_file_path = extra_file_path(
                TLS_CONF_DIR, BUILDIN_PRODUCT, param.key_file_name
            )

            self._extra_file_storager.create_extra_file(
                BUILDIN_PRODUCT,
                ExtraFileParam(
                    name=param.cert_file_path,
                    content=param.cert_file_content.encode("utf-8"),
                ),
                ExtraFileParam(
                    name=param.key_file_path,
                    content=param.key_file_content.encode("utf-8"),
                ),
            )
            self._storager.create_certificate(param)

        self._txn.atom_execute(do)

    def update_as_default_certificate(self, cert: Certificate) -> None:
        """Make cert the default certificate, demoting the current default."""
        if cert.is_default:
            return

        def do() -> None:
            current = self._storager.fetch_certificates(CertificateFilter(is_default=True))
            if current:
                self._storager.update_certificate(
                    current[0], CertificateParam(is_default=False)
                )
            self._storager.update_certificate(cert, CertificateParam(is_default=True))

        self._txn.atom_execute(do)

    def export_server_cert(self, last_version: str) -> ServerCertConf | None:
        """Export the certificate config, or None if last_version is current."""

        def generate() -> ExportData:
            certificates = self._storager.fetch_certificates(None)
            return ExportData(
                topic=CONFIG_TOPIC_SERVER_CERT,
                data_without_version=build_server_cert_conf(certificates),
            )

        export_data = self._version_control_manager.export_config(
            CONFIG_TOPIC_SERVER_CERT, generate
        )
        conf = export_data.data_without_version
        if conf.version == last_version:
            return None
        return conf