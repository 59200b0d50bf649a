"""Error taxonomy shared by the certificate, trust and hosts services."""

import subprocess


class SealError(Exception):
    """Base class for every error raised by doble-seal services."""


class ValidationError(SealError, ValueError):
    """Malformed domain, IP address, duration or disallowed characters.

    Always raised before any filesystem or subprocess side effect.
    """


class ArtifactError(SealError, OSError):
    """CA or certificate files are missing or cannot be parsed."""


class NotFoundError(SealError, FileNotFoundError):
    """Operation on an unknown domain, artifact, backup or tool."""


class CommandError(SealError, subprocess.SubprocessError):
    """A subprocess (helper, elevation tool, certutil, zip) exited non-zero."""

    def __init__(self, message: str, returncode: int | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


class CommandTimeoutError(CommandError):
    """A subprocess did not finish within its timeout and was killed."""


class HelperUnavailableError(SealError):
    """No hosts helper could be resolved or installed under the current policy."""
