"""Command-line entry point.

Usage::

    mail2print -h imap.example.com -u printer@example.com -P secret -p Office_Laser -i -d
    python -m mail2print -h imap.example.com -u user -P secret -o /var/spool/mail2print
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Sequence
from pathlib import Path

import structlog
from pydantic import ValidationError

from .config import ImapConfig, Mail2PrintConfig
from .errors import ConfigurationError, Mail2PrintError
from .logging import setup_logging
from .supervisor import Supervisor

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_USAGE = 1
EXIT_RUNTIME = 2


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on bad arguments."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        print(f"{self.prog}: error: {message}", file=sys.stderr)
        sys.exit(EXIT_USAGE)


def build_parser() -> argparse.ArgumentParser:
    # -h is the IMAP host, so help is only available as --help
    parser = _ArgumentParser(
        prog="mail2print",
        description="Print and/or save attachments of unread mails from an IMAP inbox.",
        add_help=False,
    )
    parser.add_argument("--help", action="help", help="Show this help message and exit")
    parser.add_argument("-h", "--host", required=True, help="IMAP server")
    parser.add_argument("-u", "--username", required=True, help="Username for the IMAP account")
    parser.add_argument("-P", "--password", required=True, help="Password for the IMAP account")
    parser.add_argument(
        "-p", "--printer",
        help="Printer to use. If not specified, files won't be printed",
    )
    parser.add_argument(
        "-o", "--output-folder",
        type=Path,
        help="Folder where to save attachments",
    )
    parser.add_argument(
        "-i", "--idle-mode",
        action="store_true",
        help="Use IMAP IDLE to wait for new messages",
    )
    parser.add_argument(
        "-d", "--delete",
        action="store_true",
        help="Delete mails after successful processing",
    )
    parser.add_argument(
        "-c", "--convert-office-files",
        action="store_true",
        help="Use LibreOffice to convert office documents",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> Mail2PrintConfig:
    """Build the immutable configuration; raises pydantic ``ValidationError``."""
    overrides: dict[str, object] = {
        "idle_mode": args.idle_mode,
        "delete": args.delete,
        "convert_office_files": args.convert_office_files,
    }
    if args.printer is not None:
        overrides["printer"] = args.printer
    if args.output_folder is not None:
        overrides["output_folder"] = args.output_folder
    return Mail2PrintConfig(
        imap=ImapConfig(host=args.host, username=args.username, password=args.password),
        **overrides,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = config_from_args(args)
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "config"
            print(f"mail2print: {location}: {error['msg']}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        json=config.log_json,
        level=config.log_level,
        imap_host=config.imap.host,
        mailbox=config.imap.mailbox,
    )

    try:
        supervisor = Supervisor.from_config(config)
    except ConfigurationError as exc:
        logger.error("configuration_error", error=str(exc))
        return EXIT_USAGE

    try:
        asyncio.run(supervisor.run())
    except Mail2PrintError as exc:
        logger.error("mail2print_failed", error=str(exc))
        return EXIT_RUNTIME
    except Exception:
        logger.exception("mail2print_crashed")
        return EXIT_RUNTIME
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
