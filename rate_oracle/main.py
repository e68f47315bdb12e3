#!/usr/bin/env python3
"""DOR Rate Oracle.

Collects interest rates from TESR, mETH, SOFR, Aave USDT and Ondo USDY,
computes the weighted Decentralized Offered Rate and pushes the rates to the
DOORRateOracle contract.

Configure via CLI options or environment variables (CLI takes precedence).
"""

import argparse
import asyncio
import logging
import os
import sys

from .src.CircuitBreaker import CircuitBreaker
from .src.collectors import SourceCollector, get_all_collectors
from .src.ContractUtility import NETWORKS
from .src.OracleRunner import OracleContext, OracleRunner
from .src.RatePusher import RatePusher
from .src.RateStore import JsonlRateStore, MemoryRateStore
from .src.RegistryClient import Web3RegistryClient
from .src.RetryExecutor import RetryPolicy

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

GWEI = 10**9


def _optional_float(value: str | None) -> float | None:
    return float(value) if value else None


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser with environment variable defaults."""
    parser = argparse.ArgumentParser(
        description="DOR Rate Oracle: weighted reference rate publisher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Networks:
  {', '.join(NETWORKS)}

Examples:
  # Run one cycle (collect and push)
  python -m rate_oracle.main --oracle-address 0x...

  # Dry run: collect, compute and print the projection without submitting
  python -m rate_oracle.main --dry-run

  # Push every 6 hours
  python -m rate_oracle.main --schedule --update-period 21600

Environment variables (CLI args take precedence):
  NETWORK, RPC_URL, ORACLE_ADDRESS, PRIVATE_KEY, UPDATE_PERIOD,
  FETCH_TIMEOUT, MAX_RETRY_DELAY, MAX_GAS_PRICE_GWEI, GAS_LIMIT_MULTIPLIER,
  HISTORY_FILE
""",
    )

    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--dry-run",
        dest="dry_run",
        action="store_true",
        help="Collect and compute the DOR, print the projected change, submit nothing",
    )
    mode.add_argument(
        "--schedule",
        action="store_true",
        help="Run cycles forever, one every --update-period seconds",
    )

    parser.add_argument(
        "--network",
        type=str,
        help=f"Network to connect to ({', '.join(NETWORKS)})",
        default=os.environ.get("NETWORK") or "mantle-sepolia",
    )

    parser.add_argument(
        "--oracle-address",
        dest="oracle_address",
        type=str,
        help="Address of the DOORRateOracle contract (required unless --dry-run)",
        default=os.environ.get("ORACLE_ADDRESS"),
    )

    parser.add_argument(
        "--update-period",
        dest="update_period",
        type=int,
        help="Seconds between scheduled cycles (minimum: 60, default: 21600)",
        default=int(os.environ.get("UPDATE_PERIOD") or str(OracleRunner.DEFAULT_UPDATE_PERIOD)),
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for individual source requests in seconds (default: 10.0)",
        default=float(os.environ.get("FETCH_TIMEOUT") or "10.0"),
    )

    parser.add_argument(
        "--max-retry-delay",
        dest="max_retry_delay",
        type=float,
        help="Cap on the backoff delay between source fetch retries (default: 10.0)",
        default=float(os.environ.get("MAX_RETRY_DELAY") or "10.0"),
    )

    parser.add_argument(
        "--max-gas-price-gwei",
        dest="max_gas_price_gwei",
        type=float,
        help="Refuse to push above this gas price in gwei (default: no cap)",
        default=_optional_float(os.environ.get("MAX_GAS_PRICE_GWEI")),
    )

    parser.add_argument(
        "--gas-multiplier",
        dest="gas_multiplier",
        type=float,
        help="Safety factor applied to the gas estimate (default: 1.2)",
        default=float(os.environ.get("GAS_LIMIT_MULTIPLIER") or "1.2"),
    )

    parser.add_argument(
        "--history-file",
        dest="history_file",
        type=str,
        help="Append cycle records to this JSON lines file (default: in-memory only)",
        default=os.environ.get("HISTORY_FILE"),
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser


def build_runner(args: argparse.Namespace, private_key: str | None) -> OracleRunner:
    """Wire the oracle components from parsed arguments.

    :param args: Parsed command line arguments.
    :param private_key: Updater private key.
    :returns: Configured OracleRunner.
    """
    registry = None
    if args.oracle_address:
        registry = Web3RegistryClient.from_network(
            args.network, args.oracle_address, private_key=private_key
        )
    store = (
        JsonlRateStore(args.history_file) if args.history_file else MemoryRateStore()
    )
    context = OracleContext(
        registry=registry,
        circuit_breaker=CircuitBreaker(),
        store=store,
    )

    max_gas_price = None
    if args.max_gas_price_gwei is not None:
        max_gas_price = int(args.max_gas_price_gwei * GWEI)

    pusher = None
    if registry is not None:
        pusher = RatePusher(
            registry,
            context.circuit_breaker,
            gas_limit_multiplier=args.gas_multiplier,
            max_gas_price=max_gas_price,
        )

    collectors = get_all_collectors(
        timeout=args.fetch_timeout,
        retry_policy=RetryPolicy(
            max_attempts=3,
            base_delay=1.0,
            max_delay=args.max_retry_delay,
            multiplier=2.0,
        ),
    )
    return OracleRunner(context, collectors, pusher=pusher)


async def run(args: argparse.Namespace, runner: OracleRunner) -> bool:
    """Run the selected mode.

    :returns: True if the (last) cycle succeeded.
    """
    try:
        if args.schedule:
            await runner.run_forever(period=args.update_period)
            return True

        result = await runner.run_cycle(dry_run=args.dry_run)
        return result.success
    finally:
        # Clean up shared HTTP client
        await SourceCollector.close_shared_client()


def main() -> None:
    """Main entry point for the DOR Rate Oracle CLI."""
    parser = build_parser()
    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    # Validate arguments
    if args.update_period < 60:
        parser.error("--update-period must be at least 60 seconds")

    if args.fetch_timeout <= 0:
        parser.error("--fetch-timeout must be positive")

    if args.gas_multiplier < 1.0:
        parser.error("--gas-multiplier must be at least 1.0")

    if not args.oracle_address and not args.dry_run:
        parser.error("--oracle-address (or ORACLE_ADDRESS) is required")

    private_key = os.environ.get("PRIVATE_KEY")
    if not private_key and not args.dry_run and args.network != "localnet":
        parser.error("PRIVATE_KEY must be set to push updates")

    mode = "schedule" if args.schedule else "dry-run" if args.dry_run else "run"

    # Log configuration
    logger.info("=" * 60)
    logger.info("DOR Rate Oracle")
    logger.info("=" * 60)
    logger.info(f"Network:           {args.network}")
    logger.info(f"Oracle:            {args.oracle_address or 'not set'}")
    logger.info(f"Mode:              {mode}")
    if args.schedule:
        logger.info(f"Update Period:     {args.update_period}s")
    logger.info(f"Fetch Timeout:     {args.fetch_timeout}s")
    logger.info(
        f"Max Gas Price:     {args.max_gas_price_gwei} gwei"
        if args.max_gas_price_gwei is not None
        else "Max Gas Price:     no cap"
    )
    logger.info(f"History:           {args.history_file or 'in-memory'}")
    logger.info("=" * 60)

    try:
        runner = build_runner(args, private_key)
        ok = asyncio.run(run(args, runner))
    except KeyboardInterrupt:
        logger.info("Shutting down...")
        return
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        sys.exit(1)

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    main()
