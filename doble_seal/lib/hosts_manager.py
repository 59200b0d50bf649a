"""Hosts-file management through the elevated helper process.

The application never writes the hosts file itself. Each operation validates
its input, makes sure a helper of the current version is installed, and sends
one request to it under the elevation wrapper.
"""

import logging
import re
import shutil
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .config import SealConfig
from .errors import HelperUnavailableError, NotFoundError, SealError
from .hosts_protocol import (
    DEFAULT_HELPER_VERSION,
    DEFAULT_HOST_IP,
    AddRequest,
    CleanupRequest,
    HelperRequest,
    HelperResponse,
    ListRequest,
    RemoveRequest,
    RestoreRequest,
    VersionRequest,
    compare_versions,
    decode_response,
    read_version_marker,
)
from .models import HostsBackup
from .process import CommandRunner
from .validation import validate_domain, validate_ipv4

logger = logging.getLogger(__name__)

BACKUP_FILENAME = re.compile(r"^hosts\.backup\.(?P<timestamp>.+)\.txt$")
BUNDLED_HELPER = Path(__file__).resolve().parent.parent / "helpers" / "hosts_helper.py"

HelperUpdateCallback = Callable[[str, str], None]


class HostsManager:
    """Client side of the hosts helper protocol."""

    def __init__(
        self,
        config: SealConfig,
        runner: CommandRunner | None = None,
        on_helper_updated: HelperUpdateCallback | None = None,
    ) -> None:
        """Initialize hosts manager.

        Args:
            config: Helper paths, elevation command, timeouts and fallback policy
            runner: Subprocess runner (replaced by a fake in tests)
            on_helper_updated: Called with (old_version, new_version) after an upgrade
        """
        self.config = config
        self.runner = runner or CommandRunner(timeout=config.helper_timeout)
        self.on_helper_updated = on_helper_updated
        self._helper_path: Path | None = None

    @property
    def helper_source(self) -> Path:
        return self.config.helper_source or BUNDLED_HELPER

    # Helper resolution and installation

    def _installed_helper(self) -> Path | None:
        if self.config.system_helper_path.exists():
            return self.config.system_helper_path
        user_helper = self.config.user_helper_path
        if user_helper.exists():
            if self.config.allow_user_helper:
                return user_helper
            logger.warning(
                "Ignoring per-user helper %s: per-user helpers are disabled", user_helper
            )
        return None

    def _install_system_helper(self, source: Path) -> None:
        self.runner.check(
            [
                *self.config.elevation_command,
                "install",
                "-m",
                "0755",
                str(source),
                str(self.config.system_helper_path),
            ]
        )

    def _install_user_helper(self, source: Path) -> None:
        target = self.config.user_helper_path
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        target.chmod(0o755)

    def install_helper(self) -> Path:
        """Install the bundled helper, system-wide first.

        Falls back to a per-user copy only when ``allow_user_helper`` is set.

        Returns:
            Path of the installed helper

        Raises:
            HelperUnavailableError: If the source is missing or no install succeeded
        """
        source = self.helper_source
        if not source.is_file():
            raise HelperUnavailableError(f"helper source not found: {source}")

        try:
            self._install_system_helper(source)
            logger.info("Installed hosts helper at %s", self.config.system_helper_path)
            return self.config.system_helper_path
        except SealError as e:
            if not self.config.allow_user_helper:
                raise HelperUnavailableError(
                    f"system helper installation failed and per-user helpers are disabled: {e}"
                ) from e
            logger.warning("System helper installation failed (%s), installing per-user copy", e)

        self._install_user_helper(source)
        logger.info("Installed per-user hosts helper at %s", self.config.user_helper_path)
        return self.config.user_helper_path

    def installed_version(self, helper: Path) -> str:
        """Ask ``helper`` for its version; any failure counts as 1.0.0."""
        try:
            response = self._invoke(VersionRequest(), helper)
        except SealError as e:
            logger.warning("Could not query helper version: %s", e)
            return DEFAULT_HELPER_VERSION
        version = response.data.get("version")
        return str(version) if response.success and version else DEFAULT_HELPER_VERSION

    def candidate_version(self) -> str:
        try:
            return read_version_marker(self.helper_source.read_text(encoding="utf-8"))
        except OSError:
            return DEFAULT_HELPER_VERSION

    def update_helper(self, helper: Path) -> bool:
        """Replace ``helper`` when the bundled source carries a newer version.

        Returns:
            True if the helper was replaced
        """
        if not self.helper_source.is_file():
            return False

        current = self.installed_version(helper)
        candidate = self.candidate_version()
        if compare_versions(candidate, current) <= 0:
            return False

        logger.info("Updating hosts helper from v%s to v%s", current, candidate)
        if helper == self.config.system_helper_path:
            self._install_system_helper(self.helper_source)
        else:
            self._install_user_helper(self.helper_source)

        if self.on_helper_updated is not None:
            self.on_helper_updated(current, candidate)
        return True

    def resolve_helper(self) -> Path:
        """Locate (installing if needed) an up-to-date helper; cached per instance."""
        if self._helper_path is not None:
            return self._helper_path

        helper = self._installed_helper()
        if helper is None:
            logger.info("Hosts helper not found, installing")
            helper = self.install_helper()
        else:
            try:
                self.update_helper(helper)
            except SealError as e:
                logger.warning("Hosts helper update failed, keeping current copy: %s", e)

        self._helper_path = helper
        return helper

    # Invocation

    def _invoke(self, request: HelperRequest, helper: Path) -> HelperResponse:
        result = self.runner.run(
            [*self.config.elevation_command, str(helper)],
            input_text=request.to_json(),
            timeout=self.config.helper_timeout,
        )
        return decode_response(result.returncode, result.stdout, result.stderr)

    def call(self, request: HelperRequest) -> HelperResponse:
        """Send ``request`` to the resolved helper.

        Raises:
            CommandError: If the helper exits non-zero (CommandTimeoutError on timeout)
            HelperUnavailableError: If no helper can be resolved
        """
        return self._invoke(request, self.resolve_helper())

    # Actions

    def add_host(self, domain: str, ip: str = DEFAULT_HOST_IP) -> HelperResponse:
        validate_domain(domain)
        validate_ipv4(ip)
        logger.info("Adding %s -> %s to hosts file", domain, ip)
        return self.call(AddRequest(domain=domain, ip=ip))

    def remove_host(self, domain: str) -> HelperResponse:
        validate_domain(domain)
        logger.info("Removing %s from hosts file", domain)
        return self.call(RemoveRequest(domain=domain))

    def list_hosts(self) -> list[dict[str, Any]]:
        """Entries the helper added (tagged lines), as ``{"ip", "domain"}`` dicts."""
        response = self.call(ListRequest())
        hosts = response.data.get("hosts", [])
        return hosts if isinstance(hosts, list) else []

    def cleanup_duplicates(self) -> HelperResponse:
        logger.info("Removing duplicate hosts entries")
        return self.call(CleanupRequest())

    def restore_backup(self, backup_path: Path | str) -> HelperResponse:
        """Overwrite the hosts file from one of our backups.

        Raises:
            NotFoundError: If the path is not an existing backup in the backup directory
        """
        path = Path(backup_path)
        if (
            not BACKUP_FILENAME.match(path.name)
            or path.resolve().parent != self.config.hosts_backup_dir.resolve()
            or not path.is_file()
        ):
            raise NotFoundError(f"hosts backup not found: {backup_path}")
        logger.info("Restoring hosts file from %s", path.name)
        return self.call(RestoreRequest(backup_file=str(path.resolve())))

    def list_backups(self) -> list[HostsBackup]:
        """Backups in the backup directory, newest first by modification time."""
        backup_dir = self.config.hosts_backup_dir
        try:
            entries = list(backup_dir.iterdir())
        except OSError:
            return []

        backups = []
        for entry in entries:
            match = BACKUP_FILENAME.match(entry.name)
            if match is None or not entry.is_file():
                continue
            stat = entry.stat()
            backups.append(
                HostsBackup(
                    filename=entry.name,
                    timestamp=match.group("timestamp"),
                    date=datetime.fromtimestamp(stat.st_mtime, UTC),
                    size=stat.st_size,
                    path=entry,
                )
            )

        backups.sort(key=lambda backup: backup.date, reverse=True)
        return backups
