"""X.509 construction for the local root CA and the leaf certificates it signs."""

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, RSAPublicKey
from cryptography.x509.oid import ExtendedKeyUsageOID

from .cert_utils import generate_serial_number
from .config import DistinguishedName

_KEY_USAGE_FLAGS = (
    "digital_signature",
    "content_commitment",
    "key_encipherment",
    "data_encipherment",
    "key_agreement",
    "key_cert_sign",
    "crl_sign",
    "encipher_only",
    "decipher_only",
)


def key_usage(*enabled: str) -> x509.KeyUsage:
    """KeyUsage with only the named flags set."""
    unknown = set(enabled) - set(_KEY_USAGE_FLAGS)
    if unknown:
        raise ValueError(f"unknown key usage flags: {sorted(unknown)}")
    return x509.KeyUsage(**{flag: flag in enabled for flag in _KEY_USAGE_FLAGS})


def _base_builder(
    subject: x509.Name,
    issuer: x509.Name,
    public_key: RSAPublicKey,
    not_before: datetime,
    lifetime: timedelta,
) -> x509.CertificateBuilder:
    return (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(public_key)
        .serial_number(generate_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_before + lifetime)
    )


class CertificateBuilder:
    """Builds the self-signed root CA and the TLS leaf certificates it signs."""

    @staticmethod
    def build_root_ca(
        subject_dn: DistinguishedName,
        private_key: RSAPrivateKey,
        validity_years: int,
        not_before: datetime | None = None,
    ) -> x509.Certificate:
        """Build self-signed Root CA certificate.

        Args:
            subject_dn: Distinguished name used as both subject and issuer
            private_key: RSA private key for signing
            validity_years: Validity in 365-day years
            not_before: Start of validity (defaults to now, UTC)

        Returns:
            Self-signed X.509 certificate with CA extensions
        """
        name = subject_dn.to_x509_name()
        public_key = private_key.public_key()

        builder = (
            _base_builder(
                name,
                name,
                public_key,
                not_before or datetime.now(UTC),
                timedelta(days=validity_years * 365),
            )
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
            .add_extension(key_usage("key_cert_sign", "crl_sign"), critical=True)
            .add_extension(x509.SubjectKeyIdentifier.from_public_key(public_key), critical=False)
        )
        return builder.sign(private_key, hashes.SHA256())

    @staticmethod
    def build_leaf_certificate(
        subject_dn: DistinguishedName,
        public_key: RSAPublicKey,
        dns_names: Sequence[str],
        issuer_cert: x509.Certificate,
        issuer_key: RSAPrivateKey,
        validity_days: int,
        not_before: datetime | None = None,
    ) -> x509.Certificate:
        """Build a TLS server/client certificate signed by the CA.

        Args:
            subject_dn: Subject with the primary domain as CN
            public_key: Leaf public key
            dns_names: subjectAltName DNS entries, primary domain first
            issuer_cert: CA certificate (issuer name is copied from its subject)
            issuer_key: CA private key for signing
            validity_days: Validity in days
            not_before: Start of validity (defaults to now, UTC)

        Returns:
            X.509 end-entity certificate signed by the CA
        """
        builder = (
            _base_builder(
                subject_dn.to_x509_name(),
                issuer_cert.subject,
                public_key,
                not_before or datetime.now(UTC),
                timedelta(days=validity_days),
            )
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .add_extension(key_usage("digital_signature", "key_encipherment"), critical=False)
            .add_extension(
                x509.ExtendedKeyUsage(
                    [ExtendedKeyUsageOID.SERVER_AUTH, ExtendedKeyUsageOID.CLIENT_AUTH]
                ),
                critical=False,
            )
            .add_extension(
                x509.SubjectAlternativeName([x509.DNSName(name) for name in dns_names]),
                critical=False,
            )
            .add_extension(
                x509.AuthorityKeyIdentifier.from_issuer_public_key(issuer_key.public_key()),
                critical=False,
            )
        )
        return builder.sign(issuer_key, hashes.SHA256())
