"""Durable domain -> certificate record mapping backed by metadata.json."""

import json
import logging
from contextlib import AbstractContextManager, nullcontext
from pathlib import Path

from .file_utils import atomic_write_text, exclusive_lock
from .models import MetadataRecord

logger = logging.getLogger(__name__)


class MetadataStore:
    """Reads and writes ``{"certificates": {domain: record}}``.

    Mutations are read-modify-write cycles under the config-root lock and are
    committed with an atomic rename.
    """

    def __init__(self, metadata_path: Path, lock_path: Path) -> None:
        """Initialize store.

        Args:
            metadata_path: Location of metadata.json
            lock_path: Lock file shared with the CA and certificate writers
        """
        self.metadata_path = metadata_path
        self.lock_path = lock_path

    def _read(self) -> dict[str, MetadataRecord]:
        if not self.metadata_path.exists():
            return {}
        document = json.loads(self.metadata_path.read_text(encoding="utf-8"))
        certificates = document.get("certificates", {})
        if not isinstance(certificates, dict):
            raise ValueError(f"malformed metadata document: {self.metadata_path}")
        return certificates

    def _write(self, certificates: dict[str, MetadataRecord]) -> None:
        atomic_write_text(
            self.metadata_path,
            json.dumps({"certificates": certificates}, indent=2) + "\n",
        )

    def all(self) -> dict[str, MetadataRecord]:
        """Return every record; an unreadable document yields an empty mapping."""
        try:
            return self._read()
        except (OSError, ValueError) as e:
            logger.warning("Could not read metadata %s: %s", self.metadata_path, e)
            return {}

    def get(self, domain: str) -> MetadataRecord | None:
        return self.all().get(domain)

    def _guard(self, lock: bool) -> AbstractContextManager:
        return exclusive_lock(self.lock_path) if lock else nullcontext()

    def upsert(self, domain: str, record: MetadataRecord, lock: bool = True) -> None:
        """Insert or replace the record for ``domain``.

        Pass ``lock=False`` only while already holding the config-root lock.
        """
        with self._guard(lock):
            certificates = self._read()
            certificates[domain] = record
            self._write(certificates)

    def remove(self, domain: str, lock: bool = True) -> bool:
        """Drop the record for ``domain``.

        Returns:
            True if a record was removed, False if there was none
        """
        with self._guard(lock):
            certificates = self._read()
            if domain not in certificates:
                return False
            del certificates[domain]
            self._write(certificates)
            return True
