"""Input validation for domain names and IPv4 addresses.

Values checked here end up in file paths and in the argument list of
privileged subprocesses, so both the certificate and hosts services call
these before doing anything else.
"""

import re

from .errors import ValidationError

DOMAIN_PATTERN = re.compile(
    r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
SHELL_METACHARACTERS = re.compile(r"[;&|`$(){}\[\]<>]")
IPV4_PATTERN = re.compile(
    r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)$"
)


def validate_domain(domain: str) -> str:
    """Check a DNS name against the label grammar and the metacharacter denylist.

    Args:
        domain: Candidate domain name

    Returns:
        The domain unchanged, for call chaining

    Raises:
        ValidationError: If the name is malformed or contains shell metacharacters
    """
    if not isinstance(domain, str) or not domain:
        raise ValidationError(f"invalid domain name: {domain!r}")
    if SHELL_METACHARACTERS.search(domain):
        raise ValidationError(f"domain name contains disallowed characters: {domain!r}")
    # fullmatch so a trailing newline cannot slip past "$"
    if not DOMAIN_PATTERN.fullmatch(domain):
        raise ValidationError(f"invalid domain name: {domain!r}")
    return domain


def validate_domains(domain: str, sans: list[str] | tuple[str, ...]) -> list[str]:
    """Validate the primary domain and every SAN, returning the SANs as a list."""
    validate_domain(domain)
    return [validate_domain(san) for san in sans]


def validate_ipv4(ip: str) -> str:
    """Accept dotted-decimal IPv4 only (each octet 0-255)."""
    if not isinstance(ip, str) or not IPV4_PATTERN.fullmatch(ip):
        raise ValidationError(f"invalid IPv4 address: {ip!r}")
    return ip


def validate_duration(duration_days: int) -> int:
    """Certificate lifetimes are a positive whole number of days."""
    if isinstance(duration_days, bool) or not isinstance(duration_days, int) or duration_days < 1:
        raise ValidationError(f"duration must be a positive number of days: {duration_days!r}")
    return duration_days
