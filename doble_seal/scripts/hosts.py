#!/usr/bin/env python3
"""Edit the system hosts file through the privileged helper."""

import argparse
import sys
from pathlib import Path

from doble_seal.lib.config import SealConfig
from doble_seal.lib.errors import SealError
from doble_seal.lib.hosts_manager import HostsManager
from doble_seal.lib.hosts_protocol import DEFAULT_HOST_IP, HelperResponse
from doble_seal.lib.logging_config import LOGGER


def _announce_update(old_version: str, new_version: str) -> None:
    LOGGER.info("Hosts helper updated from v%s to v%s", old_version, new_version)


def _report(response: HelperResponse, done: str) -> int:
    if not response.success:
        LOGGER.error("Hosts helper refused the change: %s", response.message or "no reason given")
        return 1
    LOGGER.info(response.message or done)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage hosts file entries")
    commands = parser.add_subparsers(dest="command", required=True)

    add = commands.add_parser("add", help="Map a domain to an IP address")
    add.add_argument("domain")
    add.add_argument("--ip", default=DEFAULT_HOST_IP, help=f"IPv4 address (default: {DEFAULT_HOST_IP})")

    remove = commands.add_parser("remove", help="Remove every line naming a domain")
    remove.add_argument("domain")

    commands.add_parser("list", help="List entries added by doble-seal")
    commands.add_parser("list-backups", help="List hosts file backups, newest first")
    commands.add_parser("cleanup", help="Remove duplicate lines")

    restore = commands.add_parser("restore", help="Restore the hosts file from a backup")
    restore.add_argument("backup", type=Path, help="Backup file path")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run a hosts command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    try:
        manager = HostsManager(SealConfig.from_env(), on_helper_updated=_announce_update)

        if args.command == "add":
            return _report(manager.add_host(args.domain, args.ip), f"Added {args.domain}")
        elif args.command == "remove":
            return _report(manager.remove_host(args.domain), f"Removed {args.domain}")
        elif args.command == "list":
            for entry in manager.list_hosts():
                print(f"{entry.get('ip')} {entry.get('domain')}")
        elif args.command == "list-backups":
            for backup in manager.list_backups():
                print(f"{backup.date.isoformat()}  {backup.size:>8}  {backup.path}")
        elif args.command == "cleanup":
            return _report(manager.cleanup_duplicates(), "Duplicates removed")
        elif args.command == "restore":
            return _report(manager.restore_backup(args.backup), "Hosts file restored")
        return 0

    except SealError as e:
        LOGGER.error("Hosts %s failed: %s", args.command, e)
        return 1
    except OSError as e:
        LOGGER.error("Filesystem error during %s: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
