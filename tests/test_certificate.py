from datetime import datetime

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from bfeapi.basic import ExtraFileStorager
from bfeapi.certificate import (
    Certificate,
    CertificateManager,
    CertificateParam,
    CertificateStorager,
    validate_cert_pair,
)
from bfeapi.txn import TxnStorager
from bfeapi.version_control import VersionControlManager, VersionControlStorager
from bfeapi.xerror import KIND_EXISTED_DATA, KIND_MODEL, KIND_PARAM, ApiError

EXPORT_VERSION = "20210101000000"


def make_pair():
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "example.com")])
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(1)
        .not_valid_before(datetime(2020, 1, 1))
        .not_valid_after(datetime(2030, 1, 1))
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode()
    key_pem = key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()
    return cert_pem, key_pem


class DirectTxn(TxnStorager):
    def atom_execute(self, do):
        return do()


class MemoryCerts(CertificateStorager):
    def __init__(self, certs=()):
        self.certs = list(certs)

    def fetch_certificates(self, param):
        if param is None or param.is_default is None:
            return list(self.certs)
        return [c for c in self.certs if c.is_default == param.is_default]

    def delete_certificate(self, certificate):
        self.certs.remove(certificate)

    def create_certificate(self, param):
        self.certs.append(
            Certificate(
                cert_name=param.cert_name,
                is_default=bool(param.is_default),
                cert_file_name=param.cert_file_name,
                cert_file_path=param.cert_file_path,
                key_file_name=param.key_file_name,
                key_file_path=param.key_file_path,
            )
        )

    def update_certificate(self, certificate, param):
        if param.is_default is not None:
            certificate.is_default = param.is_default


class MemoryFiles(ExtraFileStorager):
    def __init__(self):
        self.files = {}
        self.deleted = []

    def create_extra_file(self, product, *params):
        for p in params:
            self.files[p.name] = p.content

    def delete_extra_file(self, param):
        self.deleted.append(list(param.names))
        for name in param.names:
            self.files.pop(name, None)

    def fetch_extra_files(self, param):
        return []


class FixedVersions(VersionControlStorager):
    def upsert_config_last_exported_version(self, export_data):
        return EXPORT_VERSION


def make_manager(certs=()):
    storage, files = MemoryCerts(certs), MemoryFiles()
    vcm = VersionControlManager(DirectTxn(), FixedVersions())
    return CertificateManager(DirectTxn(), storage, vcm, files), storage, files


def new_param(name, is_default=None):
    cert_pem, key_pem = make_pair()
    return CertificateParam(
        cert_name=name,
        is_default=is_default,
        cert_file_name=f"{name}.crt",
        cert_file_content=cert_pem,
        key_file_name=f"{name}.key",
        key_file_content=key_pem,
    )


def test_validate_rejects_mismatched_key():
    cert_pem, _ = make_pair()
    _, other_key = make_pair()
    with pytest.raises(ValueError, match="does not match"):
        validate_cert_pair("a.crt", cert_pem, "a.key", other_key)


def test_validate_rejects_non_certificate_block_in_cert_file():
    cert_pem, key_pem = make_pair()
    with pytest.raises(ApiError) as info:
        validate_cert_pair("a.crt", cert_pem + key_pem, "a.key", key_pem)
    assert info.value.kind == KIND_PARAM
    assert "Certificate File Format Must Be PEM" in str(info.value)


def test_validate_rejects_key_that_is_not_pem():
    cert_pem, _ = make_pair()
    with pytest.raises(ApiError) as info:
        validate_cert_pair("a.crt", cert_pem, "a.key", "not a key")
    assert "Private Key File Format Must Be PEM" in str(info.value)


def test_validate_rejects_certificate_as_key():
    cert_pem, _ = make_pair()
    with pytest.raises(ApiError) as info:
        validate_cert_pair("a.crt", cert_pem, "a.key", cert_pem)
    assert info.value.kind == KIND_PARAM


def test_first_certificate_must_be_default():
    manager, storage, _ = make_manager()
    with pytest.raises(ApiError) as info:
        manager.create_certificate(new_param("site"))
    assert info.value.kind == KIND_MODEL
    assert storage.certs == []


def test_create_default_certificate_stores_files():
    manager, storage, files = make_manager()
    param = new_param("site", is_default=True)
    manager.create_certificate(param)
    assert [c.cert_name for c in storage.certs] == ["site"]
    assert param.cert_file_path == "tls_conf/bfe/site.crt"
    assert files.files[param.cert_file_path] == param.cert_file_content.encode()
    assert files.files[param.key_file_path] == param.key_file_content.encode()


def test_new_default_demotes_old_default():
    old = Certificate(cert_name="old", is_default=True, cert_file_name="o.crt", key_file_name="o.key")
    manager, storage, _ = make_manager([old])
    manager.create_certificate(new_param("site", is_default=True))
    assert old.is_default is False
    assert storage.certs[-1].is_default is True


def test_duplicate_certificate_name_raises():
    old = Certificate(cert_name="site", is_default=True, cert_file_name="o.crt", key_file_name="o.key")
    manager, _, _ = make_manager([old])
    with pytest.raises(ApiError) as info:
        manager.create_certificate(new_param("site"))
    assert info.value.kind == KIND_EXISTED_DATA


def test_file_name_in_use_raises():
    old = Certificate(cert_name="old", is_default=True, cert_file_name="site.crt", key_file_name="o.key")
    manager, _, _ = make_manager([old])
    with pytest.raises(ApiError) as info:
        manager.create_certificate(new_param("site"))
    assert "site.crt" in str(info.value)


def test_same_cert_and_key_file_name_raises():
    manager, _, _ = make_manager()
    param = new_param("site", is_default=True)
    param.key_file_name = param.cert_file_name
    with pytest.raises(ApiError) as info:
        manager.create_certificate(param)
    assert info.value.kind == KIND_PARAM


def test_delete_default_certificate_raises():
    cert = Certificate(cert_name="site", is_default=True)
    manager, storage, _ = make_manager([cert])
    with pytest.raises(ApiError):
        manager.delete_certificate(cert)
    assert storage.certs == [cert]


def test_delete_referenced_certificate_raises():
    from bfeapi.basic import Product

    cert = Certificate(cert_name="site", products=[Product(id=3, name="shop")])
    manager, _, _ = make_manager([cert])
    with pytest.raises(ApiError) as info:
        manager.delete_certificate(cert)
    assert "Refer By Product" in str(info.value)


def test_delete_certificate_removes_files():
    cert = Certificate(cert_name="site", cert_file_path="tls_conf/bfe/a", key_file_path="tls_conf/bfe/b")
    manager, storage, files = make_manager([cert])
    manager.delete_certificate(cert)
    assert storage.certs == []
    assert files.deleted == [["tls_conf/bfe/a", "tls_conf/bfe/b"]]


def test_update_as_default_swaps_default():
    old = Certificate(cert_name="old", is_default=True)
    new = Certificate(cert_name="new")
    manager, _, _ = make_manager([old, new])
    manager.update_as_default_certificate(new)
    assert (old.is_default, new.is_default) == (False, True)


def test_export_server_cert_stamps_version():
    cert = Certificate(
        cert_name="site",
        is_default=True,
        cert_file_path="tls_conf/bfe/site.crt",
        key_file_path="tls_conf/bfe/site.key",
    )
    manager, _, _ = make_manager([cert])
    conf = manager.export_server_cert("")
    assert conf.version == EXPORT_VERSION
    assert conf.default == "site"
    assert conf.cert_conf["site"]["ServerCertFile"] == f"tls_conf_{EXPORT_VERSION}/bfe/site.crt"


def test_export_server_cert_unchanged_returns_none():
    manager, _, _ = make_manager([Certificate(cert_name="site", cert_file_path="x/a", key_file_path="x/b")])
    assert manager.export_server_cert(EXPORT_VERSION) is None