#!/usr/bin/env python3
"""Inspect, regenerate and install the local certificate authority."""

import argparse
import sys

from doble_seal.lib.ca_store import CAStore
from doble_seal.lib.certificate_issuer import CertificateIssuer
from doble_seal.lib.config import SealConfig
from doble_seal.lib.errors import SealError
from doble_seal.lib.logging_config import LOGGER
from doble_seal.lib.models import TrustOutcome
from doble_seal.lib.trust_installer import TrustInstaller


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage the local certificate authority")
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("status", help="Show whether the CA exists and looks installed")
    commands.add_parser("info", help="Show CA subject, validity and expiry")
    commands.add_parser("regenerate", help="Back up and replace the CA")
    commands.add_parser("install", help="Install the CA system-wide (and in Chrome if possible)")
    commands.add_parser("install-browser", help="Install the CA in Chrome/Chromium only")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run a CA command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    try:
        config = SealConfig.from_env()
        ca_store = CAStore(config)
        installer = TrustInstaller(config, ca_store=ca_store)

        if args.command == "status":
            status = installer.status()
            LOGGER.info("CA exists: %s, installed: %s", status.exists, status.installed)

        elif args.command == "info":
            info = ca_store.info()
            if info is None:
                LOGGER.info("No CA has been generated yet")
                return 0
            LOGGER.info("Subject: %s", info.subject)
            LOGGER.info("  Valid: %s -> %s", info.valid_from.isoformat(), info.valid_to.isoformat())
            LOGGER.info("  Serial: %s", info.serial_number)
            LOGGER.info("  Days until expiry: %d", info.days_until_expiry)
            if info.is_expired:
                LOGGER.warning("CA has expired; run regenerate")
            elif info.is_expiring_soon:
                LOGGER.warning("CA expires in %d days", info.days_until_expiry)

        elif args.command == "regenerate":
            result = ca_store.regenerate()
            if result.backup_cert_path is not None:
                LOGGER.info("Previous CA backed up to %s", result.backup_cert_path)
            LOGGER.info("New CA serial: %s", result.info.serial_number)
            LOGGER.warning("The new CA must be installed again before browsers trust it")
            stale = CertificateIssuer(config, ca_store=ca_store).untrusted_domains()
            if stale:
                LOGGER.warning("Certificates signed by the previous CA: %s", ", ".join(stale))

        elif args.command == "install":
            result = installer.install_system()
            if result.outcome is TrustOutcome.FAILED:
                LOGGER.error("%s: %s", result.message, result.reason)
                return 1
            LOGGER.info(result.message)
            if result.outcome is TrustOutcome.PARTIAL_SUCCESS:
                LOGGER.warning("Browser step: %s", result.reason)

        elif args.command == "install-browser":
            result = installer.install_browser_trust()
            LOGGER.info(result.message)

        return 0

    except SealError as e:
        LOGGER.error("CA %s failed: %s", args.command, e)
        return 1
    except OSError as e:
        LOGGER.error("Filesystem error during %s: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
