"""Configuration dataclasses for the local certificate authority."""

import os
from dataclasses import dataclass, field
from pathlib import Path

from cryptography import x509
from cryptography.x509 import oid

ENV_CONFIG_DIR = "DOBLE_SEAL_CONFIG_DIR"
ENV_ALLOW_USER_HELPER = "DOBLE_SEAL_ALLOW_USER_HELPER"


def _default_config_root() -> Path:
    return Path.home() / ".config" / "doble-seal"


@dataclass
class SealConfig:
    """Paths, CA identity and subprocess settings for one installation.

    Every service object is built from one of these; tests point
    ``config_root`` at a temporary directory to get an isolated instance.
    """

    config_root: Path = field(default_factory=_default_config_root)

    # CA identity
    country: str = "ES"
    state: str = "Local"
    locality: str = "Local"
    organization: str = "DobleSeal"
    organizational_unit: str = "Local Development"
    ca_common_name: str = "DobleSeal Local CA"
    leaf_organization: str = "Local Development"
    ca_validity_years: int = 10
    default_duration_days: int = 365
    key_size: int = 2048
    expiring_soon_days: int = 30

    # Privilege elevation wrapper prepended to every privileged command
    elevation_command: tuple[str, ...] = ("pkexec",)
    command_timeout: float = 120.0
    helper_timeout: float = 120.0

    # Trust stores
    os_release_path: Path = Path("/etc/os-release")
    system_trust_dir: Path = Path("/etc/ssl/certs")
    trust_anchor_name: str = "doble-seal-ca.crt"
    trust_markers: tuple[str, ...] = ("doble-seal-ca", "DobleSeal")
    nss_db_dir: Path = field(default_factory=lambda: Path.home() / ".pki" / "nssdb")
    browser_candidates: tuple[Path, ...] = (
        Path("/opt/google/chrome/chrome"),
        Path("/usr/bin/google-chrome"),
        Path("/usr/bin/google-chrome-stable"),
        Path("/usr/bin/chromium"),
        Path("/usr/bin/chromium-browser"),
        Path("/snap/bin/chromium"),
    )
    certutil_candidates: tuple[Path, ...] = (
        Path("/usr/bin/certutil"),
        Path("/usr/local/bin/certutil"),
    )

    # Hosts helper
    system_helper_path: Path = Path("/usr/local/bin/doble-seal-hosts-helper")
    helper_source: Path | None = None
    allow_user_helper: bool = False
    # The root helper writes here under the invoking user's home, whatever config_root is
    hosts_backup_dir: Path = field(
        default_factory=lambda: Path.home() / ".config" / "doble-seal" / "hosts-backups"
    )

    @property
    def ca_dir(self) -> Path:
        return self.config_root / "ca"

    @property
    def ca_key_path(self) -> Path:
        return self.ca_dir / "ca-key.pem"

    @property
    def ca_cert_path(self) -> Path:
        return self.ca_dir / "ca-cert.pem"

    @property
    def ca_backup_dir(self) -> Path:
        return self.ca_dir / "backups"

    @property
    def certs_dir(self) -> Path:
        return self.config_root / "certificates"

    @property
    def metadata_path(self) -> Path:
        return self.config_root / "metadata.json"

    @property
    def user_helper_path(self) -> Path:
        return self.config_root / "hosts-helper"

    @property
    def lock_path(self) -> Path:
        return self.config_root / ".lock"

    @classmethod
    def from_env(cls) -> "SealConfig":
        """Build a config honouring ``DOBLE_SEAL_*`` environment overrides."""
        config = cls()
        config_dir = os.environ.get(ENV_CONFIG_DIR)
        if config_dir:
            config.config_root = Path(config_dir).expanduser()
        allow_user = os.environ.get(ENV_ALLOW_USER_HELPER, "")
        config.allow_user_helper = allow_user.lower() in {"1", "true", "yes"}
        return config

    def ca_distinguished_name(self) -> "DistinguishedName":
        return DistinguishedName(
            country=self.country,
            state=self.state,
            locality=self.locality,
            organization=self.organization,
            organizational_unit=self.organizational_unit,
            common_name=self.ca_common_name,
        )

    def leaf_distinguished_name(self, domain: str) -> "DistinguishedName":
        return DistinguishedName(
            country=self.country,
            state=self.state,
            locality=self.locality,
            organization=self.leaf_organization,
            organizational_unit=None,
            common_name=domain,
        )


@dataclass
class DistinguishedName:
    """X.509 Subject Distinguished Name."""

    country: str
    state: str
    locality: str
    organization: str
    organizational_unit: str | None
    common_name: str

    def to_x509_name(self) -> x509.Name:
        """Convert to cryptography x509.Name for certificate generation."""
        attributes = [
            x509.NameAttribute(oid.NameOID.COMMON_NAME, self.common_name),
            x509.NameAttribute(oid.NameOID.COUNTRY_NAME, self.country),
            x509.NameAttribute(oid.NameOID.STATE_OR_PROVINCE_NAME, self.state),
            x509.NameAttribute(oid.NameOID.LOCALITY_NAME, self.locality),
            x509.NameAttribute(oid.NameOID.ORGANIZATION_NAME, self.organization),
        ]
        if self.organizational_unit:
            attributes.append(
                x509.NameAttribute(oid.NameOID.ORGANIZATIONAL_UNIT_NAME, self.organizational_unit)
            )
        return x509.Name(attributes)
