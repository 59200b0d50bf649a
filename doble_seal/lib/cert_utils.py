"""Certificate utility functions for key generation, serialization, and inspection."""

import uuid

from cryptography import x509
from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey


def generate_private_key(key_size: int = 2048) -> RSAPrivateKey:
    """Generate RSA private key with specified size."""
    return rsa.generate_private_key(
        public_exponent=65537,
        key_size=key_size,
    )


def serialize_private_key(key: RSAPrivateKey) -> bytes:
    """Serialize private key to PEM format (PKCS8, no encryption)."""
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


def deserialize_private_key(pem_data: bytes) -> RSAPrivateKey:
    """Deserialize private key from PEM bytes."""
    key = serialization.load_pem_private_key(pem_data, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("expected RSA private key")
    return key


def serialize_certificate(cert: x509.Certificate) -> bytes:
    """Serialize certificate to PEM format."""
    return cert.public_bytes(serialization.Encoding.PEM)


def deserialize_certificate(pem_data: bytes) -> x509.Certificate:
    """Deserialize certificate from PEM bytes."""
    return x509.load_pem_x509_certificate(pem_data)


def generate_serial_number() -> int:
    """Random 128-bit serial; unlike a timestamp, two issues in the same instant never collide."""
    return uuid.uuid4().int


def get_certificate_serial_hex(cert: x509.Certificate) -> str:
    """Return certificate serial number as hex with colons (e.g., 3A:F2:B1:...)."""
    serial_hex = f"{cert.serial_number:X}"
    if len(serial_hex) % 2 != 0:
        serial_hex = "0" + serial_hex
    return ":".join(serial_hex[i : i + 2] for i in range(0, len(serial_hex), 2))


def get_common_name(cert: x509.Certificate) -> str:
    """Return the subject CN, or the RFC 4514 subject string if there is none."""
    attributes = cert.subject.get_attributes_for_oid(x509.NameOID.COMMON_NAME)
    if not attributes:
        return cert.subject.rfc4514_string()
    cn = attributes[0].value
    if not isinstance(cn, str):
        raise ValueError("CN must be string")
    return cn


def get_dns_names(cert: x509.Certificate) -> list[str]:
    """Return the DNS entries of the subjectAltName extension in certificate order."""
    try:
        san = cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value
    except x509.ExtensionNotFound:
        return []
    return san.get_values_for_type(x509.DNSName)


def is_issued_by(cert: x509.Certificate, issuer_cert: x509.Certificate) -> bool:
    """Verify ``cert`` carries a valid signature from ``issuer_cert``'s key.

    Returns True if the issuer name matches and the signature verifies.
    """
    try:
        cert.verify_directly_issued_by(issuer_cert)
        return True
    except (ValueError, TypeError, InvalidSignature):
        return False
