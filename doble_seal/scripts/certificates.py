#!/usr/bin/env python3
"""Issue, list, delete, export and regenerate development certificates."""

import argparse
import json
import sys
from pathlib import Path

from doble_seal.lib.certificate_issuer import CertificateIssuer
from doble_seal.lib.config import SealConfig
from doble_seal.lib.errors import NotFoundError, SealError, ValidationError
from doble_seal.lib.logging_config import LOGGER


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Manage development TLS certificates")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("list", help="List issued certificates")

    for name, help_text in (
        ("create", "Issue a certificate"),
        ("regenerate", "Replace an existing certificate"),
    ):
        command = commands.add_parser(name, help=help_text)
        command.add_argument("domain", help="Primary domain (CN and first SAN)")
        command.add_argument(
            "--san",
            action="append",
            default=[],
            dest="sans",
            help="Additional DNS name (repeatable, order preserved)",
        )
        command.add_argument(
            "--days",
            type=int,
            default=None,
            help="Validity in days (default: 365)",
        )

    delete = commands.add_parser("delete", help="Delete a certificate")
    delete.add_argument("domain")

    paths = commands.add_parser("paths", help="Show artifact paths and an nginx config")
    paths.add_argument("domain")

    export = commands.add_parser("export", help="Zip a certificate directory")
    export.add_argument("domain")
    export.add_argument("--output", type=Path, required=True, help="Destination .zip file")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run a certificate command.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    args = build_parser().parse_args(argv)

    try:
        issuer = CertificateIssuer(SealConfig.from_env())

        if args.command == "list":
            print(json.dumps(issuer.list_certificates(), indent=2))
        elif args.command == "create":
            record = issuer.issue(args.domain, args.sans, args.days)
            LOGGER.info("Certificate created for %s, expires %s", args.domain, record["expiresAt"])
        elif args.command == "regenerate":
            record = issuer.regenerate(args.domain, args.sans, args.days)
            LOGGER.info("Certificate regenerated for %s, expires %s", args.domain, record["expiresAt"])
        elif args.command == "delete":
            issuer.delete(args.domain)
            LOGGER.info("Certificate deleted for %s", args.domain)
        elif args.command == "paths":
            paths = issuer.paths(args.domain)
            for name, path in paths.as_dict().items():
                print(f"{name}: {path}")
            print()
            print(paths.nginx_config)
        elif args.command == "export":
            destination = issuer.export(args.domain, args.output)
            LOGGER.info("Certificate exported to %s", destination)
        return 0

    except ValidationError as e:
        LOGGER.error("Invalid input: %s", e)
        return 1
    except NotFoundError as e:
        LOGGER.error("Not found: %s", e)
        return 1
    except SealError as e:
        LOGGER.error("Certificate %s failed: %s", args.command, e)
        return 1
    except OSError as e:
        LOGGER.error("Filesystem error during %s: %s", args.command, e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
