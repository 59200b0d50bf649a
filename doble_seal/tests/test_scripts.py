"""Smoke tests for the command-line entry points."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest

from doble_seal.lib.errors import NotFoundError
from doble_seal.lib.hosts_protocol import HelperResponse
from doble_seal.lib.models import TrustInstallResult, TrustOutcome
from doble_seal.scripts import authority, certificates, hosts


@pytest.fixture
def config_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    root = tmp_path / "config"
    monkeypatch.setenv("DOBLE_SEAL_CONFIG_DIR", str(root))
    monkeypatch.delenv("DOBLE_SEAL_ALLOW_USER_HELPER", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    return root


class TestCertificatesCommand:
    """Tests for doble-seal-certs."""

    def test_create_list_delete(self, config_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert certificates.main(["create", "dev.local", "--san", "api.dev.local", "--days", "30"]) == 0
        assert (config_dir / "certificates" / "dev.local" / "certificate.pem").exists()

        capsys.readouterr()
        assert certificates.main(["list"]) == 0
        listed = json.loads(capsys.readouterr().out)
        assert listed["dev.local"]["sans"] == ["api.dev.local"]
        assert listed["dev.local"]["duration"] == 30

        assert certificates.main(["paths", "dev.local"]) == 0
        out = capsys.readouterr().out
        assert "privateKey:" in out
        assert "server_name dev.local;" in out

        assert certificates.main(["delete", "dev.local"]) == 0
        assert not (config_dir / "certificates" / "dev.local").exists()

    def test_invalid_domain_fails(self, config_dir: Path) -> None:
        assert certificates.main(["create", "bad;domain"]) == 1
        assert not (config_dir / "certificates").exists()

    def test_paths_unknown_domain_fails(self, config_dir: Path) -> None:
        assert certificates.main(["paths", "unknown.test"]) == 1


class TestAuthorityCommand:
    """Tests for doble-seal-ca."""

    def test_info_without_ca(self, config_dir: Path) -> None:
        assert authority.main(["info"]) == 0
        assert not (config_dir / "ca").exists()

    def test_regenerate_creates_ca(self, config_dir: Path) -> None:
        assert authority.main(["regenerate"]) == 0
        assert (config_dir / "ca" / "ca-cert.pem").exists()
        assert authority.main(["info"]) == 0

    def test_status(self, config_dir: Path) -> None:
        assert authority.main(["status"]) == 0

    def test_install_failure_exits_non_zero(self, config_dir: Path) -> None:
        failed = TrustInstallResult(outcome=TrustOutcome.FAILED, message="Error installing CA", reason="denied")
        with patch("doble_seal.scripts.authority.TrustInstaller.install_system", return_value=failed):
            assert authority.main(["install"]) == 1

    def test_partial_install_succeeds(self, config_dir: Path) -> None:
        partial = TrustInstallResult(
            outcome=TrustOutcome.PARTIAL_SUCCESS,
            message="CA installed in the system trust store (browser not configured)",
            reason="Chrome/Chromium not found",
        )
        with patch("doble_seal.scripts.authority.TrustInstaller.install_system", return_value=partial):
            assert authority.main(["install"]) == 0

    def test_browser_tool_missing_exits_non_zero(self, config_dir: Path) -> None:
        with patch(
            "doble_seal.scripts.authority.TrustInstaller.install_browser_trust",
            side_effect=NotFoundError("certutil not found"),
        ):
            assert authority.main(["install-browser"]) == 1


class TestHostsCommand:
    """Tests for doble-seal-hosts paths that never run the real helper."""

    def test_invalid_domain_fails(self, config_dir: Path) -> None:
        assert hosts.main(["add", "bad;domain"]) == 1

    def test_invalid_ip_fails(self, config_dir: Path) -> None:
        assert hosts.main(["add", "dev.local", "--ip", "300.0.0.1"]) == 1

    def test_list_backups_empty(self, config_dir: Path, capsys: pytest.CaptureFixture[str]) -> None:
        assert hosts.main(["list-backups"]) == 0
        assert capsys.readouterr().out == ""

    def test_restore_unknown_backup_fails(self, config_dir: Path, tmp_path: Path) -> None:
        backups = tmp_path / "home" / ".config" / "doble-seal" / "hosts-backups"
        assert hosts.main(["restore", str(backups / "hosts.backup.x.txt")]) == 1

    @pytest.mark.parametrize(
        ("argv", "method"),
        [
            (["add", "dev.local"], "add_host"),
            (["remove", "dev.local"], "remove_host"),
            (["cleanup"], "cleanup_duplicates"),
        ],
    )
    def test_helper_refusal_exits_non_zero(
        self, config_dir: Path, argv: list[str], method: str
    ) -> None:
        """A helper answer with success false is a failure even when it exited 0."""
        refused = HelperResponse(success=False, message="hosts file is read-only")
        with patch(f"doble_seal.scripts.hosts.HostsManager.{method}", return_value=refused):
            assert hosts.main(argv) == 1

    def test_helper_success_exits_zero(self, config_dir: Path) -> None:
        done = HelperResponse(success=True, message="added 127.0.0.1 dev.local")
        with patch("doble_seal.scripts.hosts.HostsManager.add_host", return_value=done):
            assert hosts.main(["add", "dev.local"]) == 0

    def test_unknown_command_exits(self) -> None:
        with pytest.raises(SystemExit):
            hosts.main(["format"])
