"""
Indexer - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line entry point of the indexer process.

- Loads configuration from environment (.env) or a YAML file
- Command-line flags override either source
- Exit codes: 0 clean stop, 1 fatal error, 130 interrupted

============================================================
USAGE
============================================================
python -m indexer --node-url http://localhost:8545 --min-height 1000
python -m indexer --config indexer.yaml --single-cycle
python -m indexer --database-url sqlite:///uptime.db --init-db

============================================================
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from core.exceptions import ConfigurationError, StartupError
from indexer.config import IndexerConfig
from indexer.scheduler import create_driver, setup_logging
from storage.database import DatabaseInitializationError


logger = logging.getLogger(__name__)


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rpc-uptime-indexer",
        description="Validator registry indexer and RPC uptime prober",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Every option can also be set through the environment (NODE_URL,
MIN_CHAIN_HEIGHT, DATABASE_URL, ...) or a .env file.

Examples:
  %(prog)s --node-url http://localhost:8545 --min-height 1000
  %(prog)s --config indexer.yaml --single-cycle
        """,
    )

    # --------------------------------------------------------
    # Chain / Network
    # --------------------------------------------------------
    chain_group = parser.add_argument_group("Chain Options")

    chain_group.add_argument(
        "--network",
        type=str,
        metavar="NAME",
        help="Network name rows are partitioned by (default: mainnet)",
    )

    chain_group.add_argument(
        "--node-url",
        type=str,
        metavar="URL",
        help="Celo node JSON-RPC URL",
    )

    chain_group.add_argument(
        "--external-node-url",
        type=str,
        metavar="URL",
        help="Fallback node used when a read against --node-url fails",
    )

    chain_group.add_argument(
        "--min-height",
        type=int,
        metavar="HEIGHT",
        help="Block height the chain must reach before the first cycle",
    )

    # --------------------------------------------------------
    # Execution Options
    # --------------------------------------------------------
    execution_group = parser.add_argument_group("Execution Options")

    execution_group.add_argument(
        "--interval",
        type=int,
        metavar="SECONDS",
        help="Cycle interval in seconds (default: 300)",
    )

    execution_group.add_argument(
        "--single-cycle",
        action="store_true",
        help="Run a single cycle and exit (no loop)",
    )

    # --------------------------------------------------------
    # Storage
    # --------------------------------------------------------
    storage_group = parser.add_argument_group("Storage Options")

    storage_group.add_argument(
        "--database-url",
        type=str,
        metavar="URL",
        help="SQLAlchemy database URL",
    )

    storage_group.add_argument(
        "--init-db",
        action="store_true",
        help="Create missing tables before starting",
    )

    # --------------------------------------------------------
    # Configuration / Logging
    # --------------------------------------------------------
    parser.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML config file (replaces environment variables)",
    )

    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Logging format (default: text)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 0.1.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if args.interval is not None and args.interval < 1:
        errors.append("--interval must be at least 1 second")

    if args.min_height is not None and args.min_height < 1:
        errors.append("--min-height must be a positive block height")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> IndexerConfig:
    """
    Build configuration from the config source plus CLI overrides.

    Raises:
        ConfigurationError: Unreadable config file or bad values
    """
    if args.config:
        config = IndexerConfig.from_yaml(args.config)
    else:
        config = IndexerConfig.from_env()

    overrides: Dict[str, Any] = {
        "network_name": args.network,
        "database_url": args.database_url,
        "node_url": args.node_url,
        "external_node_url": args.external_node_url,
        "min_chain_height": args.min_height,
        "cycle_interval_seconds": args.interval,
        "log_level": args.log_level,
        "log_format": args.log_format,
    }
    return config.merge(overrides)


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(config: IndexerConfig, args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    try:
        driver = create_driver(config)
    except ConfigurationError as e:
        logger.critical(e.to_log_format())
        return 1

    try:
        if args.init_db:
            driver.database.create_all()

        if args.single_cycle:
            result = await driver.run_once()
            if result is None:
                return 1
            print(json.dumps(result.to_dict(), indent=2))
            return 0 if result.success else 1

        await driver.run_forever()
        return 0

    except (ConfigurationError, StartupError) as e:
        logger.critical(e.to_log_format())
        return 1
    except DatabaseInitializationError as e:
        logger.critical(f"Database initialization failed: {e}")
        return 1
    except asyncio.CancelledError:
        logger.info("Interrupted")
        return 130
    finally:
        await driver.close()


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    try:
        config = build_config(args)
    except ConfigurationError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    errors = config.validate()
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 1

    setup_logging(config.log_level, config.log_format)

    try:
        return asyncio.run(async_main(config, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
