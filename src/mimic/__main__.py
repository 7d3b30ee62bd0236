"""Mimic Copy-Trading Bot - Entry Point

Usage:
    python -m mimic [--config PATH] [--dry-run | --live] [--log-level LEVEL]

Commands:
    run     - Start copying the source wallet (default)
    status  - Show stored trade counts per lifecycle state
    version - Show version

Examples:
    python -m mimic
    python -m mimic --config config/production.toml --live
    python -m mimic --log-level DEBUG
    python -m mimic status
"""

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Any, Optional

from mimic import __version__


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="mimic",
        description="Polymarket copy-trading bot",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Mimic {__version__}",
    )

    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (TOML)",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        default=None,
        help="Simulate order submission (default)",
    )
    mode.add_argument(
        "--live",
        dest="dry_run",
        action="store_false",
        help="Send real orders to the exchange",
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default=None,
        help="Log level",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")
    subparsers.add_parser("run", help="Start the copy-trading loops")
    subparsers.add_parser("status", help="Show trade counts per lifecycle state")
    subparsers.add_parser("version", help="Show version")

    return parser.parse_args(argv)


def build_overrides(args: argparse.Namespace) -> dict[str, Any]:
    """Command-line flags as config overrides."""
    overrides: dict[str, Any] = {}
    if args.dry_run is not None:
        overrides["mimic.dry_run"] = args.dry_run
    if args.log_level:
        overrides["mimic.log_level"] = args.log_level
    return overrides


def load_config(args: argparse.Namespace):
    from mimic.app import default_config_path
    from mimic.core.config import ConfigManager

    config_path = args.config if args.config else default_config_path()
    return ConfigManager(config_path, overrides=build_overrides(args))


async def run_bot(args: argparse.Namespace) -> int:
    """Run the copy-trading bot."""
    import structlog

    from mimic.app import MimicApp
    from mimic.core.retry import ConfigError

    config = load_config(args)
    try:
        app = MimicApp(config)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    log = structlog.get_logger()
    log.info(
        "config_loaded",
        config=str(config.config_path) if config.config_path else "defaults",
        dry_run=app.dry_run,
    )

    try:
        await app.run_forever()
        return 0
    except Exception as e:
        log.error("fatal_error", error=str(e), error_type=type(e).__name__)
        return 1


async def show_status(args: argparse.Namespace) -> int:
    """Print trade counts per lifecycle state."""
    from mimic.app import trade_status

    config = load_config(args)
    counts = await trade_status(config)
    total = sum(counts.values())
    for state, count in counts.items():
        print(f"{state.value:<10} {count}")
    print(f"{'total':<10} {total}")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "version":
        print(f"Mimic {__version__}")
        return 0

    if args.command == "status":
        return asyncio.run(show_status(args))

    # Default: run the bot
    return asyncio.run(run_bot(args))


if __name__ == "__main__":
    sys.exit(main())
