"""Tests for the trust installer."""

from pathlib import Path

import pytest

from conftest import FakeRunner
from doble_seal.lib.ca_store import CAStore
from doble_seal.lib.config import SealConfig
from doble_seal.lib.errors import CommandError, NotFoundError
from doble_seal.lib.models import TrustOutcome
from doble_seal.lib.trust_installer import OSFamily, TrustInstaller, detect_os_family

UBUNTU_RELEASE = """\
NAME="Ubuntu"
VERSION="24.04 LTS (Noble Numbat)"
ID=ubuntu
ID_LIKE=debian
PRETTY_NAME="Ubuntu 24.04 LTS"
"""


def _touch(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("#!/bin/sh\n")


def _installer(config: SealConfig, ca_store: CAStore, runner: FakeRunner) -> TrustInstaller:
    return TrustInstaller(config, ca_store=ca_store, runner=runner)


class TestDetectOSFamily:
    """Tests for detect_os_family."""

    @pytest.mark.parametrize(
        ("content", "family"),
        [
            (UBUNTU_RELEASE, OSFamily.DEBIAN),
            ("ID=debian\n", OSFamily.DEBIAN),
            ('ID="fedora"\n', OSFamily.RHEL),
            ('ID="rocky"\nID_LIKE="rhel centos fedora"\n', OSFamily.RHEL),
            ("ID=arch\n", OSFamily.ARCH),
            ("ID=manjaro\nID_LIKE=arch\n", OSFamily.ARCH),
        ],
    )
    def test_known_families(self, content: str, family: OSFamily) -> None:
        assert detect_os_family(content) is family

    def test_unknown_family(self) -> None:
        assert detect_os_family("ID=alpine\n") is None

    def test_ignores_pretty_name(self) -> None:
        """Only ID and ID_LIKE count."""
        assert detect_os_family('ID=gentoo\nPRETTY_NAME="Not debian"\n') is None


class TestStatus:
    """Tests for TrustInstaller.status."""

    def test_no_ca(self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner) -> None:
        status = _installer(seal_config, ca_store, fake_runner).status()
        assert not status.exists
        assert not status.installed

    def test_ca_not_installed(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        ca_store.generate()
        status = _installer(seal_config, ca_store, fake_runner).status()
        assert status.exists
        assert not status.installed

    def test_ca_installed(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        ca_store.generate()
        (seal_config.system_trust_dir / "doble-seal-ca.pem").write_text("")
        status = _installer(seal_config, ca_store, fake_runner).status()
        assert status.installed


class TestInstallSystem:
    """Tests for TrustInstaller.install_system."""

    def test_missing_os_release_fails(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        result = _installer(seal_config, ca_store, fake_runner).install_system()
        assert result.outcome is TrustOutcome.FAILED
        assert not result.success
        assert fake_runner.calls == []

    def test_unsupported_distribution_fails(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        seal_config.os_release_path.write_text("ID=alpine\n")
        result = _installer(seal_config, ca_store, fake_runner).install_system()
        assert result.outcome is TrustOutcome.FAILED
        assert fake_runner.calls == []

    def test_copy_and_refresh_in_one_elevated_call(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        seal_config.os_release_path.write_text(UBUNTU_RELEASE)
        _installer(seal_config, ca_store, fake_runner).install_system()

        argv = fake_runner.calls[0]
        assert argv[:3] == ["pkexec", "sh", "-c"]
        assert argv[3] == 'cp "$0" "$1" && update-ca-certificates'
        assert argv[4] == str(seal_config.ca_cert_path)
        assert argv[5] == "/usr/local/share/ca-certificates/doble-seal-ca.crt"

    def test_elevated_failure_reports_stderr(
        self, seal_config: SealConfig, ca_store: CAStore
    ) -> None:
        seal_config.os_release_path.write_text("ID=fedora\n")
        runner = FakeRunner(lambda argv, input_text: (126, "", "Not authorized"))
        result = _installer(seal_config, ca_store, runner).install_system()
        assert result.outcome is TrustOutcome.FAILED
        assert result.reason == "Not authorized"
        assert len(runner.calls) == 1

    def test_no_browser_is_partial_success(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        seal_config.os_release_path.write_text(UBUNTU_RELEASE)
        result = _installer(seal_config, ca_store, fake_runner).install_system()
        assert result.outcome is TrustOutcome.PARTIAL_SUCCESS
        assert result.success
        assert "Chrome/Chromium not found" in result.reason

    def test_browser_success_is_full_success(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        seal_config.os_release_path.write_text(UBUNTU_RELEASE)
        _touch(seal_config.browser_candidates[0])
        _touch(seal_config.certutil_candidates[0])
        result = _installer(seal_config, ca_store, fake_runner).install_system()
        assert result.outcome is TrustOutcome.FULLY_SUCCEEDED

    def test_unwritable_nss_location_is_partial_success(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner, tmp_path: Path
    ) -> None:
        """A filesystem error while preparing the browser database keeps the system install."""
        seal_config.os_release_path.write_text(UBUNTU_RELEASE)
        _touch(seal_config.browser_candidates[0])
        _touch(seal_config.certutil_candidates[0])
        blocker = tmp_path / "pki"
        blocker.write_text("not a directory")
        seal_config.nss_db_dir = blocker / "nssdb"

        result = _installer(seal_config, ca_store, fake_runner).install_system()

        assert result.outcome is TrustOutcome.PARTIAL_SUCCESS
        assert result.success
        assert len(fake_runner.calls) == 1


class TestInstallBrowserTrust:
    """Tests for TrustInstaller.install_browser_trust."""

    def test_no_browser(self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner) -> None:
        with pytest.raises(NotFoundError, match="Chrome/Chromium not found"):
            _installer(seal_config, ca_store, fake_runner).install_browser_trust()

    def test_no_certutil(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        _touch(seal_config.browser_candidates[0])
        with pytest.raises(NotFoundError, match="libnss3-tools"):
            _installer(seal_config, ca_store, fake_runner).install_browser_trust()
        assert fake_runner.calls == []

    def test_initialises_database_then_imports(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        _touch(seal_config.browser_candidates[0])
        certutil = seal_config.certutil_candidates[0]
        _touch(certutil)
        db = f"sql:{seal_config.nss_db_dir}"

        result = _installer(seal_config, ca_store, fake_runner).install_browser_trust()

        assert result.outcome is TrustOutcome.FULLY_SUCCEEDED
        assert [argv[1] for argv in fake_runner.calls] == ["-N", "-D", "-A"]
        assert fake_runner.calls[0] == [str(certutil), "-N", "-d", db, "--empty-password"]
        add = fake_runner.calls[2]
        assert add[add.index("-t") + 1] == "CT,C,C"
        assert add[add.index("-i") + 1] == str(seal_config.ca_cert_path)
        assert add[add.index("-n") + 1] == seal_config.ca_common_name

    def test_existing_database_skips_init(
        self, seal_config: SealConfig, ca_store: CAStore, fake_runner: FakeRunner
    ) -> None:
        _touch(seal_config.browser_candidates[0])
        _touch(seal_config.certutil_candidates[0])
        seal_config.nss_db_dir.mkdir(parents=True)
        _installer(seal_config, ca_store, fake_runner).install_browser_trust()
        assert [argv[1] for argv in fake_runner.calls] == ["-D", "-A"]

    def test_import_failure_raises(self, seal_config: SealConfig, ca_store: CAStore) -> None:
        _touch(seal_config.browser_candidates[0])
        _touch(seal_config.certutil_candidates[0])
        seal_config.nss_db_dir.mkdir(parents=True)

        def handler(argv: list[str], input_text: str | None) -> tuple[int, str, str]:
            if "-A" in argv:
                return 1, "", "SEC_ERROR_BAD_DATABASE"
            return 0, "", ""

        with pytest.raises(CommandError) as excinfo:
            _installer(seal_config, ca_store, FakeRunner(handler)).install_browser_trust()
        assert "SEC_ERROR_BAD_DATABASE" in excinfo.value.stderr
