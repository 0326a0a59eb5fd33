"""
Logging configuration for the engine CLI.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

# Third-party loggers that flood INFO with per-request lines
NOISY_LOGGERS = ("aiohttp.access", "aiohttp.client", "web3", "urllib3", "asyncio")


def setup(level=logging.INFO):
    """
    Configure root logging: one stdout handler with a
    ``time | level | name:line | message`` format.
    """
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-7s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%H:%M:%S",
    )
    console.setFormatter(formatter)
    root.addHandler(console)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    logging.getLogger("__main__").setLevel(level)
    logging.getLogger("flash_arbitrage").setLevel(level)


def setup_minimal():
    """
    Only warnings and errors.
    Good for production or when you only care about problems.
    """
    setup(level=logging.WARNING)


def setup_debug():
    """
    Verbose logging for debugging, including HTTP client chatter.
    """
    setup(level=logging.DEBUG)
    logging.getLogger("aiohttp.client").setLevel(logging.DEBUG)
