#!/usr/bin/env python3
"""
Flash Arbitrage Engine Runner

Usage:
    # Continuous scanning and mempool watching, dry-run (simulate only)
    python run_engine.py --config configs/engine.example.yaml

    # One scan, then exit
    python run_engine.py --config configs/engine.example.yaml --once

    # Submit bundles to relays (needs the private key env var set)
    python run_engine.py --config configs/engine.example.yaml --live
"""

import argparse
import asyncio
import logging
import signal
import sys

from dotenv import load_dotenv

import logging_config
from flash_arbitrage.config_loader import load_engine_config, resolve_private_key
from flash_arbitrage.engine import ArbitrageEngine
from flash_arbitrage.exceptions import FlashArbitrageError
from flash_arbitrage.metrics import EngineMetrics

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the flash arbitrage engine")
    parser.add_argument("--config", required=True, help="Path to engine YAML configuration")
    parser.add_argument("--once", action="store_true", help="Run a single route scan and exit")
    parser.add_argument(
        "--no-mempool", action="store_true", help="Disable the mempool back-run watcher"
    )
    mode_group = parser.add_mutually_exclusive_group()
    mode_group.add_argument(
        "--live", action="store_true", help="Submit validated bundles to relays"
    )
    mode_group.add_argument(
        "--dry-run", action="store_true", help="Simulate and validate only (overrides config)"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    args = parse_args(argv)

    if args.debug:
        logging_config.setup_debug()
    else:
        logging_config.setup()

    load_dotenv()

    try:
        config = load_engine_config(args.config)
    except FlashArbitrageError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    if args.no_mempool:
        config = config.model_copy(
            update={"mempool": config.mempool.model_copy(update={"enabled": False})}
        )

    dry_run = None
    if args.live:
        dry_run = False
    elif args.dry_run:
        dry_run = True

    metrics = EngineMetrics() if config.metrics.enabled else None
    try:
        engine = ArbitrageEngine(
            config,
            private_key=resolve_private_key(config),
            dry_run=dry_run,
            metrics=metrics,
        )
    except FlashArbitrageError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, engine.stop)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    logger.info(f"Starting engine ({'dry-run' if engine.dry_run else 'LIVE'})")
    try:
        await engine.run(once=args.once)
    except FlashArbitrageError as e:
        logger.error(f"Engine stopped: {type(e).__name__}: {e}")
        return 1
    except Exception:
        logger.exception("Engine crashed")
        return 1
    finally:
        await engine.close()

    logger.info("Engine stopped")
    return 0


def cli() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    cli()
