"""Command-line interface for Bill Scanner.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

import structlog

from bill_scanner import __version__
from bill_scanner.agent.scanner import ServiceScanAgent, filter_existing
from bill_scanner.catalog import SECTION_LABELS, search_presets, suggested_presets
from bill_scanner.config import Settings, get_settings
from bill_scanner.exceptions import AuthenticationError, BillScannerError
from bill_scanner.extraction import InvoiceExtractor
from bill_scanner.gmail.client import GmailClient
from bill_scanner.ledger import ProcessedMessageLedger
from bill_scanner.models import DetectedService, ServicePreset
from bill_scanner.ollama.client import OllamaClient

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="bill-scanner", description="Bill Scanner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # Scan
    scan_parser = subparsers.add_parser("scan", help="Scan a Gmail mailbox for recurring bills")
    scan_parser.add_argument("--user", required=True, help="User id the ledger records messages under")
    scan_parser.add_argument("--city", default=None, help="Household city, restricts regional providers")
    scan_parser.add_argument(
        "--newer-than",
        default=None,
        help="Gmail lookback window such as 7d or 3m (default: settings default_newer_than)",
    )
    scan_parser.add_argument(
        "--access-token",
        default=None,
        help="Gmail bearer access token (default: BILL_SCANNER_GMAIL_ACCESS_TOKEN)",
    )
    scan_parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite ledger database (default: settings ledger_db_path)",
    )
    scan_parser.add_argument(
        "--existing",
        action="append",
        default=[],
        metavar="NAME",
        help="Service title or provider already tracked; repeatable",
    )
    scan_parser.add_argument("--json", action="store_true", help="Print results as JSON")

    # Ledger
    ledger_parser = subparsers.add_parser("ledger", help="Inspect the processed-message ledger")
    ledger_sub = ledger_parser.add_subparsers(dest="ledger_command", required=True)

    stats_parser = ledger_sub.add_parser("stats", help="Show how many messages a user has processed")
    stats_parser.add_argument("--user", required=True, help="User id")
    stats_parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help="Path to the SQLite ledger database (default: settings ledger_db_path)",
    )

    # Catalog
    catalog_parser = subparsers.add_parser("catalog", help="Browse the service catalog")
    catalog_sub = catalog_parser.add_subparsers(dest="catalog_command", required=True)

    list_parser = catalog_sub.add_parser("list", help="List services applicable to a city")
    list_parser.add_argument("--city", default=None, help="Household city")

    search_parser = catalog_sub.add_parser("search", help="Search services by name or provider")
    search_parser.add_argument("query", help="Search text")
    search_parser.add_argument("--city", default=None, help="Household city")

    return parser


def _print_service(service: DetectedService) -> None:
    amount = "-" if service.last_amount is None else f"{service.currency.value} {service.last_amount:,.2f}"
    due = service.due_date.isoformat() if service.due_date else "-"
    print(
        f"{service.name}\t{service.category.value}\t{service.frequency.value}\t"
        f"{amount}\tdue {due}\t{service.email_count} emails\t{service.sender_email}"
    )


def _print_preset(preset: ServicePreset) -> None:
    regions = ", ".join(preset.regions) if preset.regions else "nationwide"
    print(f"- {preset.name} ({preset.provider_label}) [{preset.frequency.value}, {regions}]")


async def _cmd_scan(args: argparse.Namespace, settings: Settings) -> int:
    ledger = ProcessedMessageLedger(args.db or settings.ledger_db_path)
    ledger.initialize()

    gmail = GmailClient(args.access_token, settings)
    completion = OllamaClient(settings) if settings.llm_enabled else None
    extractor = InvoiceExtractor(completion, settings)
    agent = ServiceScanAgent(gmail, extractor, ledger, settings)

    try:
        detected = await agent.scan(args.user, args.city, args.newer_than)
    except AuthenticationError as exc:
        logger.error("scan_authentication_failed", error=str(exc))
        print("Gmail rejected the access token; obtain a new one and retry.", file=sys.stderr)
        return 1

    new, tracked = filter_existing(detected, args.existing, args.existing)

    if args.json:
        print(
            json.dumps(
                {
                    "detected": [s.model_dump(mode="json") for s in new],
                    "already_tracked": [s.model_dump(mode="json") for s in tracked],
                },
                ensure_ascii=False,
                indent=2,
            )
        )
        return 0

    print(f"Detected {len(new)} new services ({len(tracked)} already tracked)")
    for service in new:
        _print_service(service)
    return 0


def _cmd_ledger_stats(args: argparse.Namespace, settings: Settings) -> int:
    db_path: Path = args.db or settings.ledger_db_path
    ledger = ProcessedMessageLedger(db_path)
    ledger.initialize()

    print(f"Processed messages for {args.user}: {ledger.count(args.user)} ({db_path})")
    return 0


def _cmd_catalog_list(args: argparse.Namespace) -> int:
    for section, presets in suggested_presets(args.city).items():
        print(f"\n{SECTION_LABELS[section]}:")
        for preset in presets:
            _print_preset(preset)
    return 0


def _cmd_catalog_search(args: argparse.Namespace) -> int:
    results = search_presets(args.query, args.city)
    if not results:
        print(f"No services match {args.query!r}")
        return 1
    for preset in results:
        _print_preset(preset)
    return 0


def _configure_logging(settings: Settings) -> None:
    level = logging.DEBUG if settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        # stdout carries command output; logs go to stderr.
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
    )


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Bill Scanner CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    _configure_logging(settings)

    logger.info("bill_scanner_started", version=__version__, debug=settings.debug)

    parser = _build_parser()
    parsed = parser.parse_args(args)

    try:
        if parsed.command == "scan":
            return asyncio.run(_cmd_scan(parsed, settings))
        if parsed.command == "ledger" and parsed.ledger_command == "stats":
            return _cmd_ledger_stats(parsed, settings)
        if parsed.command == "catalog":
            if parsed.catalog_command == "list":
                return _cmd_catalog_list(parsed)
            if parsed.catalog_command == "search":
                return _cmd_catalog_search(parsed)
    except BillScannerError as exc:
        logger.error("command_failed", command=parsed.command, error=str(exc))
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
