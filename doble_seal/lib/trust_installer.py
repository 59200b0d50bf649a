"""Installs the local CA into the OS trust store and the Chromium NSS database."""

import enum
import logging
import os
from dataclasses import dataclass
from pathlib import Path

from .ca_store import CAStore
from .config import SealConfig
from .errors import CommandError, NotFoundError, SealError
from .models import TrustInstallResult, TrustOutcome, TrustStatus
from .process import CommandRunner

logger = logging.getLogger(__name__)

NSS_TRUST_FLAGS = "CT,C,C"
# certutil -N exits 255 when the database already exists
NSS_INIT_OK_CODES = {0, 255}


class OSFamily(enum.Enum):
    DEBIAN = "debian"
    RHEL = "rhel"
    ARCH = "arch"


@dataclass(frozen=True)
class TrustAnchorLayout:
    """Where a distribution family keeps extra CA anchors and how it rebuilds the bundle."""

    anchor_dir: Path
    refresh_command: str


ANCHOR_LAYOUTS = {
    OSFamily.DEBIAN: TrustAnchorLayout(Path("/usr/local/share/ca-certificates"), "update-ca-certificates"),
    OSFamily.RHEL: TrustAnchorLayout(Path("/etc/pki/ca-trust/source/anchors"), "update-ca-trust extract"),
    OSFamily.ARCH: TrustAnchorLayout(Path("/etc/ca-certificates/trust-source/anchors"), "trust extract-compat"),
}

_FAMILY_MARKERS = (
    (OSFamily.DEBIAN, ("debian", "ubuntu")),
    (OSFamily.RHEL, ("fedora", "rhel", "centos", "rocky", "almalinux")),
    (OSFamily.ARCH, ("arch", "manjaro", "endeavouros")),
)


def detect_os_family(os_release: str) -> OSFamily | None:
    """Pick the distribution family from /etc/os-release content.

    Only the ``ID`` and ``ID_LIKE`` values are considered, so marketing text in
    ``PRETTY_NAME`` does not cause false matches.
    """
    ids: list[str] = []
    for line in os_release.splitlines():
        key, _, value = line.partition("=")
        if key.strip() in {"ID", "ID_LIKE"}:
            ids.extend(value.strip().strip("\"'").lower().split())

    for family, markers in _FAMILY_MARKERS:
        if any(marker in ids for marker in markers):
            return family
    return None


class TrustInstaller:
    """System and browser trust installation for the CA certificate."""

    def __init__(
        self,
        config: SealConfig,
        ca_store: CAStore | None = None,
        runner: CommandRunner | None = None,
    ) -> None:
        self.config = config
        self.ca_store = ca_store or CAStore(config)
        self.runner = runner or CommandRunner(timeout=config.command_timeout)

    def status(self) -> TrustStatus:
        """Report CA presence and whether it appears in the system trust directory.

        ``installed`` is a filename heuristic and can under-report.
        """
        if not self.config.ca_cert_path.exists():
            return TrustStatus(exists=False, installed=False)

        try:
            entries = os.listdir(self.config.system_trust_dir)
        except OSError as e:
            logger.warning("Could not list %s: %s", self.config.system_trust_dir, e)
            return TrustStatus(exists=True, installed=False)

        installed = any(
            marker in entry for entry in entries for marker in self.config.trust_markers
        )
        return TrustStatus(exists=True, installed=installed)

    def install_system(self) -> TrustInstallResult:
        """Copy the CA into the system anchors and refresh, then try the browser.

        Copy and refresh share one elevation prompt. A browser failure only
        downgrades the result to PARTIAL_SUCCESS, including filesystem errors
        around the NSS database.

        Returns:
            TrustInstallResult describing the outcome
        """
        self.ca_store.load()

        try:
            os_release = self.config.os_release_path.read_text(encoding="utf-8")
        except OSError as e:
            return TrustInstallResult(
                outcome=TrustOutcome.FAILED,
                message="Could not detect the operating system",
                reason=str(e),
            )

        family = detect_os_family(os_release)
        if family is None:
            return TrustInstallResult(
                outcome=TrustOutcome.FAILED,
                message="Unsupported distribution",
                reason=f"no known ID/ID_LIKE marker in {self.config.os_release_path}",
            )

        layout = ANCHOR_LAYOUTS[family]
        anchor_path = layout.anchor_dir / self.config.trust_anchor_name
        # Paths travel as positional parameters ($0, $1), never inside the script text
        script = f'cp "$0" "$1" && {layout.refresh_command}'
        args = [
            *self.config.elevation_command,
            "sh",
            "-c",
            script,
            str(self.config.ca_cert_path),
            str(anchor_path),
        ]

        logger.info("Installing CA into %s trust store at %s", family.value, anchor_path)
        result = self.runner.run(args)
        if not result.ok:
            logger.error("System trust installation failed (rc=%s): %s", result.returncode, result.stderr.strip())
            return TrustInstallResult(
                outcome=TrustOutcome.FAILED,
                message=f"Error installing CA (rc={result.returncode})",
                reason=result.stderr.strip(),
            )

        try:
            self.install_browser_trust()
        except (SealError, OSError) as e:
            logger.warning("Browser trust installation skipped: %s", e)
            return TrustInstallResult(
                outcome=TrustOutcome.PARTIAL_SUCCESS,
                message="CA installed in the system trust store (browser not configured)",
                reason=str(e),
            )

        return TrustInstallResult(
            outcome=TrustOutcome.FULLY_SUCCEEDED,
            message="CA installed in the system trust store and browser",
        )

    @staticmethod
    def _first_existing(candidates: tuple[Path, ...]) -> Path | None:
        for candidate in candidates:
            if candidate.exists():
                return candidate
        return None

    def install_browser_trust(self) -> TrustInstallResult:
        """Import the CA into the current user's NSS database used by Chrome/Chromium.

        Runs unprivileged.

        Raises:
            NotFoundError: If no browser or no certutil binary is installed
            CommandError: If initialising the database or importing fails
        """
        if self._first_existing(self.config.browser_candidates) is None:
            raise NotFoundError("Chrome/Chromium not found")

        certutil = self._first_existing(self.config.certutil_candidates)
        if certutil is None:
            raise NotFoundError("certutil not found; install libnss3-tools (nss-tools on Fedora)")

        self.ca_store.load()
        nss_dir = self.config.nss_db_dir
        db = f"sql:{nss_dir}"
        label = self.config.ca_common_name

        if not nss_dir.exists():
            nss_dir.mkdir(parents=True, exist_ok=True)
            init = self.runner.run([str(certutil), "-N", "-d", db, "--empty-password"])
            if init.returncode not in NSS_INIT_OK_CODES:
                raise CommandError(
                    f"Error initialising NSS database (rc={init.returncode})",
                    returncode=init.returncode,
                    stderr=init.stderr,
                )

        # An earlier import under the same label would make -A fail
        removed = self.runner.run([str(certutil), "-D", "-n", label, "-d", db])
        if removed.ok:
            logger.info("Removed previous %s entry from %s", label, nss_dir)

        self.runner.check(
            [
                str(certutil),
                "-A",
                "-n",
                label,
                "-t",
                NSS_TRUST_FLAGS,
                "-i",
                str(self.config.ca_cert_path),
                "-d",
                db,
            ]
        )
        logger.info("CA added to browser NSS database %s", nss_dir)
        return TrustInstallResult(
            outcome=TrustOutcome.FULLY_SUCCEEDED,
            message="CA added to Chrome/Chromium",
        )
