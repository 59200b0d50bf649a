"""Leaf certificate issuance, deletion, regeneration and lookup."""

import logging
import shutil
import tempfile
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from .ca_store import CAStore
from .cert_utils import (
    deserialize_certificate,
    generate_private_key,
    get_certificate_serial_hex,
    get_common_name,
    is_issued_by,
    serialize_certificate,
    serialize_private_key,
)
from .certificate_builder import CertificateBuilder
from .config import SealConfig
from .errors import NotFoundError
from .file_utils import atomic_write_bytes, exclusive_lock
from .metadata_store import MetadataStore
from .models import CertificatePaths, MetadataRecord
from .process import CommandRunner
from .templates import render_nginx_config, render_readme
from .validation import validate_domain, validate_domains, validate_duration

logger = logging.getLogger(__name__)

PRIVATE_KEY_FILE = "private-key.pem"
CERTIFICATE_FILE = "certificate.pem"
FULLCHAIN_FILE = "fullchain.pem"
README_FILE = "README.md"


class CertificateIssuer:
    """Issues leaf certificates signed by the local CA and keeps metadata.json in sync."""

    def __init__(
        self,
        config: SealConfig,
        ca_store: CAStore | None = None,
        metadata: MetadataStore | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        """Initialize issuer.

        Args:
            config: Paths and defaults
            ca_store: CA store to sign with (built from config if omitted)
            metadata: Metadata store (built from config if omitted)
            runner: Subprocess runner used by export
        """
        self.config = config
        self.ca_store = ca_store or CAStore(config)
        self.metadata = metadata or MetadataStore(config.metadata_path, config.lock_path)
        self.runner = runner or CommandRunner(timeout=config.command_timeout)

    @staticmethod
    def validate_domain(domain: str) -> str:
        return validate_domain(domain)

    def domain_dir(self, domain: str) -> Path:
        return self.config.certs_dir / domain

    def _build(
        self, domain: str, sans: list[str], duration_days: int
    ) -> tuple[RSAPrivateKey, x509.Certificate, datetime, str]:
        ca_key, ca_cert = self.ca_store.load()
        key = generate_private_key(self.config.key_size)
        created = datetime.now(UTC)
        cert = CertificateBuilder.build_leaf_certificate(
            subject_dn=self.config.leaf_distinguished_name(domain),
            public_key=key.public_key(),
            dns_names=[domain, *sans],
            issuer_cert=ca_cert,
            issuer_key=ca_key,
            validity_days=duration_days,
            not_before=created,
        )
        return key, cert, created, get_common_name(ca_cert)

    def _write_artifacts(
        self,
        target_dir: Path,
        final_dir: Path,
        domain: str,
        sans: list[str],
        duration_days: int,
        key: RSAPrivateKey,
        cert: x509.Certificate,
        created: datetime,
        ca_name: str,
    ) -> None:
        target_dir.mkdir(parents=True, exist_ok=True)
        cert_pem = serialize_certificate(cert)
        atomic_write_bytes(target_dir / PRIVATE_KEY_FILE, serialize_private_key(key), mode=0o600)
        atomic_write_bytes(target_dir / CERTIFICATE_FILE, cert_pem)
        # No intermediates, so the chain is the leaf alone
        atomic_write_bytes(target_dir / FULLCHAIN_FILE, cert_pem)

        try:
            readme = render_readme(
                domain=domain,
                sans=sans,
                duration_days=duration_days,
                created=created,
                certificate=final_dir / CERTIFICATE_FILE,
                private_key=final_dir / PRIVATE_KEY_FILE,
                ca_name=ca_name,
            )
            (target_dir / README_FILE).write_text(readme, encoding="utf-8")
        except OSError as e:
            logger.warning("Could not write setup notes for %s: %s", domain, e)

    @staticmethod
    def _record(sans: list[str], duration_days: int, created: datetime) -> MetadataRecord:
        return MetadataRecord(
            created=created.isoformat(),
            sans=list(sans),
            duration=duration_days,
            expiresAt=(created + timedelta(days=duration_days)).isoformat(),
        )

    def _commit(
        self,
        domain: str,
        san_list: list[str],
        duration: int,
        key: RSAPrivateKey,
        cert: x509.Certificate,
        created: datetime,
        ca_name: str,
    ) -> MetadataRecord:
        """Stage the artifacts, then swap the directory and record under one lock.

        Concurrent issuers for the same domain each publish a complete key and
        certificate pair; the last swap wins for both files and metadata. If
        anything fails, the previous directory and record are kept.
        """
        record = self._record(san_list, duration, created)
        final_dir = self.domain_dir(domain)
        self.config.certs_dir.mkdir(parents=True, exist_ok=True)
        staging_dir = Path(tempfile.mkdtemp(prefix=f".{domain}.staging-", dir=self.config.certs_dir))
        previous_dir = staging_dir.with_name(staging_dir.name.replace(".staging-", ".previous-"))

        try:
            self._write_artifacts(
                staging_dir, final_dir, domain, san_list, duration, key, cert, created, ca_name
            )
            with exclusive_lock(self.config.lock_path):
                if final_dir.exists():
                    final_dir.rename(previous_dir)
                try:
                    staging_dir.rename(final_dir)
                    self.metadata.upsert(domain, record, lock=False)
                except Exception:
                    logger.error("Could not store certificate for %s, restoring previous one", domain)
                    if final_dir.exists() and not staging_dir.exists():
                        shutil.rmtree(final_dir)
                    if previous_dir.exists():
                        previous_dir.rename(final_dir)
                    raise
        finally:
            if staging_dir.exists():
                shutil.rmtree(staging_dir)

        if previous_dir.exists():
            shutil.rmtree(previous_dir)
        return record

    def issue(
        self,
        domain: str,
        sans: Sequence[str] = (),
        duration_days: int | None = None,
    ) -> MetadataRecord:
        """Issue (or re-issue) a certificate for ``domain``.

        Args:
            domain: Primary DNS name, used as CN and first SAN
            sans: Additional DNS names, kept in the given order
            duration_days: Validity in days (config default when omitted)

        Returns:
            The metadata record stored for the domain

        Raises:
            ValidationError: If the domain, any SAN or the duration is invalid
            ArtifactError: If the CA files are unreadable
        """
        san_list = validate_domains(domain, list(sans))
        duration = validate_duration(
            self.config.default_duration_days if duration_days is None else duration_days
        )

        logger.info("Issuing certificate for %s", domain)
        key, cert, created, ca_name = self._build(domain, san_list, duration)
        record = self._commit(domain, san_list, duration, key, cert, created, ca_name)
        logger.info("Issued %s (serial %s)", domain, get_certificate_serial_hex(cert))
        return record

    def delete(self, domain: str) -> None:
        """Remove the certificate directory and metadata record; missing ones are fine."""
        validate_domain(domain)
        domain_dir = self.domain_dir(domain)
        with exclusive_lock(self.config.lock_path):
            if domain_dir.exists():
                shutil.rmtree(domain_dir)
            removed = self.metadata.remove(domain, lock=False)
        if removed:
            logger.info("Deleted certificate for %s", domain)

    def regenerate(
        self,
        domain: str,
        sans: Sequence[str] = (),
        duration_days: int | None = None,
    ) -> MetadataRecord:
        """Replace the certificate for ``domain`` without a window where it is missing.

        The new artifacts are written to a staging directory and swapped in by
        rename. If anything fails, the previous directory and record are restored.

        Returns:
            The new metadata record
        """
        san_list = validate_domains(domain, list(sans))
        duration = validate_duration(
            self.config.default_duration_days if duration_days is None else duration_days
        )

        logger.info("Regenerating certificate for %s", domain)
        key, cert, created, ca_name = self._build(domain, san_list, duration)
        record = self._commit(domain, san_list, duration, key, cert, created, ca_name)
        logger.info("Regenerated %s (serial %s)", domain, get_certificate_serial_hex(cert))
        return record

    def list_certificates(self) -> dict[str, MetadataRecord]:
        """Return all metadata records; never raises."""
        return self.metadata.all()

    def paths(self, domain: str) -> CertificatePaths:
        """Resolve the artifacts for ``domain`` and render an nginx server block.

        Raises:
            ValidationError: If the domain is invalid
            NotFoundError: Naming the first artifact that does not exist
        """
        validate_domain(domain)
        domain_dir = self.domain_dir(domain)
        if not domain_dir.is_dir():
            raise NotFoundError(f"no certificate found for {domain}")

        artifacts = {
            "certificate": domain_dir / CERTIFICATE_FILE,
            "private key": domain_dir / PRIVATE_KEY_FILE,
            "fullchain": domain_dir / FULLCHAIN_FILE,
            "CA certificate": self.config.ca_cert_path,
        }
        for name, path in artifacts.items():
            if not path.exists():
                raise NotFoundError(f"{name} file not found: {path}")

        return CertificatePaths(
            certificate=artifacts["certificate"],
            private_key=artifacts["private key"],
            fullchain=artifacts["fullchain"],
            ca_certificate=artifacts["CA certificate"],
            nginx_config=render_nginx_config(
                domain, artifacts["certificate"], artifacts["private key"]
            ),
        )

    def export(self, domain: str, destination: Path) -> Path:
        """Zip the domain directory to ``destination`` with the system zip utility.

        Raises:
            NotFoundError: If there is no certificate for the domain
            CommandError: If zip exits non-zero
        """
        validate_domain(domain)
        if not self.domain_dir(domain).is_dir():
            raise NotFoundError(f"no certificate found for {domain}")

        destination = destination.expanduser().resolve()
        self.runner.check(
            ["zip", "-r", str(destination), domain],
            cwd=str(self.config.certs_dir),
        )
        logger.info("Exported %s to %s", domain, destination)
        return destination

    def untrusted_domains(self) -> list[str]:
        """Domains whose certificate does not verify against the current CA.

        After a CA regeneration every previously issued certificate ends up here;
        re-issue them to restore trust.
        """
        records = self.list_certificates()
        if not self.ca_store.exists():
            return sorted(records)

        _, ca_cert = self.ca_store.load()
        stale = []
        for domain in sorted(records):
            cert_path = self.domain_dir(domain) / CERTIFICATE_FILE
            try:
                cert = deserialize_certificate(cert_path.read_bytes())
            except (OSError, ValueError):
                stale.append(domain)
                continue
            if not is_issued_by(cert, ca_cert):
                stale.append(domain)
        return stale
