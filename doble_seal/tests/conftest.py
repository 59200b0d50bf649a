"""Test fixtures for doble_seal tests."""

from collections.abc import Callable, Sequence
from pathlib import Path

import pytest
from cryptography import x509
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey

from doble_seal.lib.ca_store import CAStore
from doble_seal.lib.cert_utils import generate_private_key
from doble_seal.lib.certificate_builder import CertificateBuilder
from doble_seal.lib.certificate_issuer import CertificateIssuer
from doble_seal.lib.config import DistinguishedName, SealConfig
from doble_seal.lib.errors import CommandError
from doble_seal.lib.metadata_store import MetadataStore
from doble_seal.lib.process import CommandResult


class FakeRunner:
    """Stands in for CommandRunner: records argv and answers from a handler.

    The handler receives ``(argv, input_text)`` and returns
    ``(returncode, stdout, stderr)``; by default every command succeeds silently.
    """

    def __init__(
        self,
        handler: Callable[[list[str], str | None], tuple[int, str, str]] | None = None,
    ) -> None:
        self.handler = handler or (lambda argv, input_text: (0, "", ""))
        self.calls: list[list[str]] = []
        self.inputs: list[str | None] = []

    def run(
        self,
        args: Sequence[str],
        input_text: str | None = None,
        timeout: float | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        argv = [str(arg) for arg in args]
        self.calls.append(argv)
        self.inputs.append(input_text)
        returncode, stdout, stderr = self.handler(argv, input_text)
        return CommandResult(args=argv, returncode=returncode, stdout=stdout, stderr=stderr)

    def check(
        self,
        args: Sequence[str],
        input_text: str | None = None,
        timeout: float | None = None,
        cwd: str | None = None,
    ) -> CommandResult:
        result = self.run(args, input_text=input_text, timeout=timeout, cwd=cwd)
        if not result.ok:
            raise CommandError(
                f"{result.args[0]} failed", returncode=result.returncode, stderr=result.stderr
            )
        return result


@pytest.fixture
def seal_config(tmp_path: Path) -> SealConfig:
    """Return an isolated config rooted in a temporary directory."""
    trust_dir = tmp_path / "etc-ssl-certs"
    trust_dir.mkdir()
    return SealConfig(
        config_root=tmp_path / "config",
        key_size=2048,
        elevation_command=("pkexec",),
        os_release_path=tmp_path / "os-release",
        system_trust_dir=trust_dir,
        nss_db_dir=tmp_path / "nssdb",
        browser_candidates=(tmp_path / "bin" / "chromium",),
        certutil_candidates=(tmp_path / "bin" / "certutil",),
        system_helper_path=tmp_path / "usr-local-bin" / "doble-seal-hosts-helper",
        hosts_backup_dir=tmp_path / "config" / "hosts-backups",
        command_timeout=30.0,
        helper_timeout=30.0,
    )


@pytest.fixture
def ca_store(seal_config: SealConfig) -> CAStore:
    return CAStore(seal_config)


@pytest.fixture
def metadata_store(seal_config: SealConfig) -> MetadataStore:
    return MetadataStore(seal_config.metadata_path, seal_config.lock_path)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def issuer(seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner) -> CertificateIssuer:
    """Return issuer sharing the test CA store and a recording runner."""
    return CertificateIssuer(seal_config, ca_store=ca_store, runner=fake_runner)


@pytest.fixture
def ca_key() -> RSAPrivateKey:
    """Generate RSA private key for a standalone CA."""
    return generate_private_key(key_size=2048)


@pytest.fixture
def ca_dn() -> DistinguishedName:
    """Return test CA distinguished name."""
    return DistinguishedName(
        country="ES",
        state="Local",
        locality="Local",
        organization="Test Org",
        organizational_unit="Test Unit",
        common_name="Test Local CA",
    )


@pytest.fixture
def ca_cert(ca_key: RSAPrivateKey, ca_dn: DistinguishedName) -> x509.Certificate:
    """Generate self-signed CA certificate."""
    return CertificateBuilder.build_root_ca(
        subject_dn=ca_dn,
        private_key=ca_key,
        validity_years=1,
    )


@pytest.fixture
def leaf_key() -> RSAPrivateKey:
    return generate_private_key(key_size=2048)


@pytest.fixture
def leaf_cert(
    leaf_key: RSAPrivateKey,
    ca_cert: x509.Certificate,
    ca_key: RSAPrivateKey,
) -> x509.Certificate:
    """Generate leaf certificate for dev.local signed by the test CA."""
    return CertificateBuilder.build_leaf_certificate(
        subject_dn=DistinguishedName(
            country="ES",
            state="Local",
            locality="Local",
            organization="Local Development",
            organizational_unit=None,
            common_name="dev.local",
        ),
        public_key=leaf_key.public_key(),
        dns_names=["dev.local", "api.dev.local"],
        issuer_cert=ca_cert,
        issuer_key=ca_key,
        validity_days=30,
    )
