"""Tests for the command line runner and logging setup."""

import logging

import pytest

import logging_config
import run_engine


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestLoggingConfig:
    """Test root logger configuration"""

    def test_setup_single_stdout_handler(self, restore_root_logger):
        logging_config.setup()
        root = restore_root_logger

        assert root.level == logging.INFO
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0], logging.StreamHandler)
        assert logging.getLogger("web3").level == logging.WARNING

    def test_setup_minimal(self, restore_root_logger):
        logging_config.setup_minimal()
        assert restore_root_logger.level == logging.WARNING
        assert logging.getLogger("flash_arbitrage").level == logging.WARNING

    def test_setup_debug(self, restore_root_logger):
        logging_config.setup_debug()
        assert restore_root_logger.level == logging.DEBUG
        assert logging.getLogger("aiohttp.client").level == logging.DEBUG
        assert logging.getLogger("urllib3").level == logging.WARNING


class TestArgs:
    """Test argument parsing"""

    def test_defaults(self):
        args = run_engine.parse_args(["--config", "engine.yaml"])
        assert args.config == "engine.yaml"
        assert not args.once
        assert not args.no_mempool
        assert not args.live
        assert not args.dry_run

    def test_flags(self):
        args = run_engine.parse_args(["--config", "e.yaml", "--once", "--no-mempool", "--live"])
        assert args.once and args.no_mempool and args.live

    def test_config_required(self):
        with pytest.raises(SystemExit):
            run_engine.parse_args([])

    def test_live_and_dry_run_exclusive(self):
        with pytest.raises(SystemExit):
            run_engine.parse_args(["--config", "e.yaml", "--live", "--dry-run"])


@pytest.mark.asyncio
async def test_main_missing_config(restore_root_logger):
    """Test that a missing config file exits with status 1."""
    assert await run_engine.main(["--config", "/non/existent/engine.yaml"]) == 1
