"""Records and result models for certificate, trust and hosts operations."""

import enum
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import TypedDict


class MetadataRecord(TypedDict):
    """Per-domain entry of metadata.json."""

    created: str
    sans: list[str]
    duration: int
    expiresAt: str


@dataclass
class CAInfo:
    """Read-only summary of the CA certificate."""

    subject: str
    valid_from: datetime
    valid_to: datetime
    serial_number: str
    is_expired: bool
    days_until_expiry: int
    is_expiring_soon: bool


@dataclass
class CARegenerationResult:
    """Result from CA regeneration.

    Backup paths are None when there was no previous CA to back up.
    """

    info: CAInfo
    backup_key_path: Path | None
    backup_cert_path: Path | None


@dataclass
class CertificatePaths:
    """On-disk artifacts for one domain plus a ready-to-use nginx server block."""

    certificate: Path
    private_key: Path
    fullchain: Path
    ca_certificate: Path
    nginx_config: str

    def as_dict(self) -> dict[str, Path]:
        return {
            "certificate": self.certificate,
            "privateKey": self.private_key,
            "fullchain": self.fullchain,
            "caCertificate": self.ca_certificate,
        }


@dataclass
class TrustStatus:
    """CA presence and a best-guess at system trust installation."""

    exists: bool
    installed: bool


class TrustOutcome(enum.Enum):
    FULLY_SUCCEEDED = "fully_succeeded"
    PARTIAL_SUCCESS = "partial_success"
    FAILED = "failed"


@dataclass
class TrustInstallResult:
    """Outcome of a trust installation.

    ``reason`` explains a partial success (browser step failed) or a failure.
    """

    outcome: TrustOutcome
    message: str
    reason: str = ""

    @property
    def success(self) -> bool:
        return self.outcome is not TrustOutcome.FAILED


@dataclass
class HostsBackup:
    """A hosts-file snapshot written by the helper before a mutation."""

    filename: str
    timestamp: str
    date: datetime
    size: int
    path: Path
