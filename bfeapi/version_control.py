"""Versioning of exported configuration snapshots."""

from __future__ import annotations

import dataclasses
import hashlib
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from bfeapi.txn import TxnStorager


def version(t: datetime) -> str:
    """Render a time as a YYYYMMDDhhmmss version string."""
    return (
        f"{t.year:04d}{t.month:02d}{t.day:02d}"
        f"{t.hour:02d}{t.minute:02d}{t.second:02d}"
    )


ZERO_VERSION = version(datetime.min)


def _jsonable(data):
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if dataclasses.is_dataclass(data) and not isinstance(data, type):
        return dataclasses.asdict(data)
    return data


def sign(data) -> str:
    """MD5 hex digest of the data's JSON form."""
    payload = json.dumps(
        _jsonable(data), sort_keys=True, separators=(",", ":"), default=str
    )
    return hashlib.md5(payload.encode("utf-8")).hexdigest()


class VersionValuable(ABC):
    """Data that carries a version stamp."""

    @abstractmethod
    def update_version(self, version: str) -> None:
        """Stamp the data with version."""


@dataclass
class ExportData:
    """A generated configuration and the version it was exported under."""

    topic: str
    data_without_version: VersionValuable
    version: str = ""
    data_sign_without_version: str = ""

    def calculate_version(self) -> str:
        self.version = version(datetime.now())
        return self.version


class VersionControlStorager(ABC):
    @abstractmethod
    def upsert_config_last_exported_version(self, export_data: ExportData) -> str:
        """Return the stored version, creating a new one if the config changed."""


class VersionControlManager:
    def __init__(self, txn: TxnStorager, storager: VersionControlStorager):
        self._txn = txn
        self._storager = storager

    def export_config(
        self, config_topic: str, generator: Callable[[], ExportData]
    ) -> ExportData:
        """Generate a config, sign it without a version, and stamp its version."""

        def do() -> ExportData:
            export_data = generator()
            export_data.data_without_version.update_version(ZERO_VERSION)
            export_data.data_sign_without_version = sign(
                export_data.data_without_version
            )
            export_data.version = self._storager.upsert_config_last_exported_version(
                export_data
            )
            export_data.data_without_version.update_version(export_data.version)
            return export_data

        return self._txn.atom_execute(do)