"""Request/response schema for the privileged hosts helper.

The helper reads exactly one JSON object from stdin and writes one JSON
object (or plain text) to stdout. Requests form a closed set; each one is a
frozen dataclass that knows its wire form.
"""

import json
import re
from dataclasses import dataclass, field
from typing import Any, ClassVar

from .errors import CommandError

DEFAULT_HOST_IP = "127.0.0.1"
DEFAULT_HELPER_VERSION = "1.0.0"
VERSION_MARKER = re.compile(r"""^HELPER_VERSION\s*=\s*["']([^"']+)["']""", re.MULTILINE)


@dataclass(frozen=True)
class HelperRequest:
    """Base for helper requests; subclasses set ``action`` and their fields."""

    action: ClassVar[str]

    def payload(self) -> dict[str, str]:
        return {"action": self.action}

    def to_json(self) -> str:
        return json.dumps(self.payload())


@dataclass(frozen=True)
class AddRequest(HelperRequest):
    action: ClassVar[str] = "add"
    domain: str
    ip: str = DEFAULT_HOST_IP

    def payload(self) -> dict[str, str]:
        return {"action": self.action, "domain": self.domain, "ip": self.ip}


@dataclass(frozen=True)
class RemoveRequest(HelperRequest):
    action: ClassVar[str] = "remove"
    domain: str

    def payload(self) -> dict[str, str]:
        return {"action": self.action, "domain": self.domain}


@dataclass(frozen=True)
class ListRequest(HelperRequest):
    action: ClassVar[str] = "list"


@dataclass(frozen=True)
class CleanupRequest(HelperRequest):
    action: ClassVar[str] = "cleanup"


@dataclass(frozen=True)
class RestoreRequest(HelperRequest):
    action: ClassVar[str] = "restore"
    backup_file: str

    def payload(self) -> dict[str, str]:
        return {"action": self.action, "backupFile": self.backup_file}


@dataclass(frozen=True)
class VersionRequest(HelperRequest):
    action: ClassVar[str] = "version"


@dataclass
class HelperResponse:
    """Decoded helper output.

    ``data`` keeps every field the helper returned besides success/message,
    e.g. ``hosts`` for list or ``version`` for version.
    """

    success: bool
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)


def decode_response(returncode: int, stdout: str, stderr: str) -> HelperResponse:
    """Single decode path for helper output.

    Args:
        returncode: Helper (or elevation wrapper) exit code
        stdout: Captured standard output
        stderr: Captured standard error

    Returns:
        HelperResponse; non-JSON output on success is wrapped as the message

    Raises:
        CommandError: On a non-zero exit, carrying the captured stderr
    """
    if returncode != 0:
        detail = stderr.strip() or stdout.strip() or "unknown error"
        raise CommandError(
            f"hosts helper failed (rc={returncode}): {detail}",
            returncode=returncode,
            stderr=stderr,
        )

    try:
        parsed = json.loads(stdout)
    except ValueError:
        return HelperResponse(success=True, message=stdout.strip())

    if not isinstance(parsed, dict):
        return HelperResponse(success=True, message=stdout.strip())

    data = {k: v for k, v in parsed.items() if k not in {"success", "message"}}
    return HelperResponse(
        success=bool(parsed.get("success", True)),
        message=str(parsed.get("message", "")),
        data=data,
    )


def parse_version(version: str) -> tuple[int, ...]:
    """Split a dotted version into integers; non-numeric fields count as 0."""
    parts = []
    for part in version.strip().lstrip("v").split("."):
        digits = re.match(r"\d+", part)
        parts.append(int(digits.group()) if digits else 0)
    return tuple(parts)


def compare_versions(left: str, right: str) -> int:
    """Field-wise numeric comparison, missing trailing fields treated as 0.

    Returns:
        1 if left > right, -1 if left < right, 0 if equal
    """
    a, b = parse_version(left), parse_version(right)
    width = max(len(a), len(b))
    a += (0,) * (width - len(a))
    b += (0,) * (width - len(b))
    return (a > b) - (a < b)


def read_version_marker(source: str) -> str:
    """Extract ``HELPER_VERSION = "x.y.z"`` from helper source text."""
    match = VERSION_MARKER.search(source)
    return match.group(1) if match else DEFAULT_HELPER_VERSION
