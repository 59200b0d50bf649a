"""Root CA lifecycle: generate, load, regenerate and inspect."""

import logging
import math
import shutil
from datetime import UTC, datetime

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .cert_utils import (
    deserialize_certificate,
    deserialize_private_key,
    generate_private_key,
    get_certificate_serial_hex,
    get_common_name,
    serialize_certificate,
    serialize_private_key,
)
from .certificate_builder import CertificateBuilder
from .config import SealConfig
from .errors import ArtifactError
from .file_utils import atomic_write_bytes, exclusive_lock
from .models import CAInfo, CARegenerationResult

logger = logging.getLogger(__name__)


def backup_timestamp(now: datetime | None = None) -> str:
    """Filesystem-safe UTC timestamp used in backup file names."""
    now = now or datetime.now(UTC)
    return now.strftime("%Y-%m-%dT%H-%M-%S-%fZ")


class CAStore:
    """Owns the root CA key pair and self-signed certificate under ``ca/``."""

    def __init__(self, config: SealConfig) -> None:
        """Initialize CA store with configuration.

        Args:
            config: Paths, CA identity and validity settings
        """
        self.config = config

    def exists(self) -> bool:
        return self.config.ca_key_path.exists() and self.config.ca_cert_path.exists()

    def _generate_unlocked(self) -> tuple[RSAPrivateKey, x509.Certificate]:
        key = generate_private_key(self.config.key_size)
        cert = CertificateBuilder.build_root_ca(
            subject_dn=self.config.ca_distinguished_name(),
            private_key=key,
            validity_years=self.config.ca_validity_years,
        )
        atomic_write_bytes(self.config.ca_key_path, serialize_private_key(key), mode=0o600)
        atomic_write_bytes(self.config.ca_cert_path, serialize_certificate(cert))
        logger.info("Generated CA %s (serial %s)", get_common_name(cert), get_certificate_serial_hex(cert))
        return key, cert

    def generate(self) -> tuple[RSAPrivateKey, x509.Certificate]:
        """Create a new CA key and certificate, overwriting any existing files.

        Returns:
            Tuple of (ca_key, ca_cert)
        """
        with exclusive_lock(self.config.lock_path):
            return self._generate_unlocked()

    def load(self) -> tuple[RSAPrivateKey, x509.Certificate]:
        """Load the CA, generating it first if either file is missing.

        Returns:
            Tuple of (ca_key, ca_cert)

        Raises:
            ArtifactError: If the files exist but cannot be parsed
        """
        with exclusive_lock(self.config.lock_path):
            if not self.exists():
                logger.info("No CA found under %s, generating one", self.config.ca_dir)
                return self._generate_unlocked()
            key_pem = self.config.ca_key_path.read_bytes()
            cert_pem = self.config.ca_cert_path.read_bytes()

        try:
            key = deserialize_private_key(key_pem)
            cert = deserialize_certificate(cert_pem)
        except (ValueError, TypeError) as e:
            raise ArtifactError(f"CA files under {self.config.ca_dir} are unreadable: {e}") from e
        return key, cert

    def regenerate(self) -> CARegenerationResult:
        """Back up the current CA (if any) and generate a replacement.

        Leaf certificates issued by the previous CA are not re-signed; they stop
        validating once the new CA is the one installed in trust stores.

        Returns:
            CARegenerationResult with backup paths and the new CA info
        """
        backup_key_path = None
        backup_cert_path = None

        with exclusive_lock(self.config.lock_path):
            if self.exists():
                timestamp = backup_timestamp()
                backup_dir = self.config.ca_backup_dir
                backup_dir.mkdir(parents=True, exist_ok=True)
                backup_key_path = backup_dir / f"ca-key-{timestamp}.pem"
                backup_cert_path = backup_dir / f"ca-cert-{timestamp}.pem"
                shutil.copy2(self.config.ca_key_path, backup_key_path)
                shutil.copy2(self.config.ca_cert_path, backup_cert_path)
                backup_key_path.chmod(0o600)
                logger.info("Backed up previous CA with timestamp %s", timestamp)

            _, cert = self._generate_unlocked()

        return CARegenerationResult(
            info=self._describe(cert),
            backup_key_path=backup_key_path,
            backup_cert_path=backup_cert_path,
        )

    def info(self) -> CAInfo | None:
        """Describe the CA certificate, or return None when there is none."""
        if not self.config.ca_cert_path.exists():
            return None
        try:
            cert = deserialize_certificate(self.config.ca_cert_path.read_bytes())
        except ValueError as e:
            raise ArtifactError(f"CA certificate is unreadable: {e}") from e
        return self._describe(cert)

    def _describe(self, cert: x509.Certificate, now: datetime | None = None) -> CAInfo:
        now = now or datetime.now(UTC)
        not_after = cert.not_valid_after_utc
        days_until_expiry = math.ceil((not_after - now).total_seconds() / 86400)
        return CAInfo(
            subject=get_common_name(cert),
            valid_from=cert.not_valid_before_utc,
            valid_to=not_after,
            serial_number=get_certificate_serial_hex(cert),
            is_expired=now > not_after,
            days_until_expiry=days_until_expiry,
            is_expiring_soon=0 < days_until_expiry <= self.config.expiring_soon_days,
        )
