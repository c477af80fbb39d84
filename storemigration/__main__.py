#!/usr/bin/env python3
"""
Run the legacy store migration from the command line.

The migration outcome never changes the exit status; only invalid arguments
or configuration do.
"""

import argparse
import json
import sys
from typing import List, Optional

from .config import Config
from .exceptions import ConfigError
from .loggers import setup_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="storemigration",
        description="Copy the legacy embedded store into the new store, once.",
    )
    parser.add_argument("--config", help="Path to a JSON configuration file")
    parser.add_argument("--source-url", help="Locator of the legacy store, e.g. jdbc:h2:file:/data/app")
    parser.add_argument("--destination", help="Path of the new sqlite store")
    parser.add_argument("--batch-size", type=int, help="Rows per insert batch")
    parser.add_argument(
        "--marker-policy",
        choices=["always", "on_success"],
        help="Write the migration marker after every attempt or only after a complete one",
    )
    parser.add_argument(
        "--schema-location",
        action="append",
        dest="schema_locations",
        help="Directory holding V<n>__*.sql upgrade scripts for the legacy store (repeatable)",
    )
    parser.add_argument("--log-level", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--log-file", help="Also write logs to this file")
    parser.add_argument("--status", action="store_true", help="Print the migration state and exit")
    parser.add_argument("--save-config", metavar="FILE", help="Write the effective configuration to FILE and exit")
    parser.add_argument("--serve", action="store_true", help="Serve the status API after running")
    parser.add_argument("--host", default="127.0.0.1", help="Status API host (with --serve)")
    parser.add_argument("--port", type=int, default=8765, help="Status API port (with --serve)")
    return parser


def load_config(args: argparse.Namespace) -> Config:
    config = Config(args.config)
    if args.source_url:
        config.migration.source_url = args.source_url
    if args.destination:
        config.migration.destination_path = args.destination
    if args.batch_size is not None:
        config.migration.batch_size = args.batch_size
    if args.marker_policy:
        config.migration.marker_policy = args.marker_policy
    if args.schema_locations:
        config.migration.schema_locations = list(args.schema_locations)
    if args.log_level:
        config.logging.level = args.log_level.upper()
    if args.log_file:
        config.logging.file = args.log_file
    config.validate()
    return config


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args)
    except ConfigError as exc:
        parser.error(str(exc))

    if args.save_config:
        config.save(args.save_config)
        print(f"Configuration written to {args.save_config}")
        return 0

    setup_logging(level=config.logging.level, log_file=config.logging.file, console=config.logging.console)

    # Imported late so logging is configured before the service modules log
    from .services.migration_service import MigrationService

    service = MigrationService(config)
    if not args.status:
        service.run_at_startup()

    print(json.dumps(service.get_migration_info(), indent=2))

    if args.serve:
        from aiohttp import web

        from .api.routes import create_app

        web.run_app(create_app(service), host=args.host, port=args.port)

    return 0


if __name__ == "__main__":
    sys.exit(main())
