"""
Main entry point for the martingrid engine.
Loads configuration, connects the exchange and market stream, and runs the
trading loop until SIGINT/SIGTERM.
"""

import argparse
import asyncio
import importlib
import os
import signal
import sys
from pathlib import Path

from martingrid.api.exceptions import ConfigurationError, InterruptSignal
from martingrid.api.exchange_client import CCXTExchangeClient
from martingrid.api.market_stream import CCXTMarketStream
from martingrid.config.manager import ConfigManager
from martingrid.config.schemas import StrategyConfig
from martingrid.orchestrator.market_analysis import IMarketAnalyzer
from martingrid.orchestrator.trading_engine import TradingEngine
from martingrid.utils.logger import get_logger, setup_logging

logger = get_logger(__name__)


def load_analyzer(
    target: str, exchange: CCXTExchangeClient, config: StrategyConfig
) -> IMarketAnalyzer:
    """
    Build the market analyzer named by ``module:factory``.

    The factory is called with the exchange client and the strategy config.

    Raises:
        ConfigurationError: bad target or the result is not an analyzer
    """
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Analyzer must be given as module:factory, got {target!r}")
    try:
        factory = getattr(importlib.import_module(module_name), attr)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load analyzer {target}: {e}") from e

    analyzer = factory(exchange, config)
    if not isinstance(analyzer, IMarketAnalyzer):
        raise ConfigurationError(f"{target} did not return an object with analyze(symbol)")
    return analyzer


class MartingridApplication:
    """Owns the process-level resources and the shutdown event."""

    def __init__(self, config_path: Path, analyzer_target: str) -> None:
        self.config_path = config_path
        self.analyzer_target = analyzer_target
        self.config: StrategyConfig | None = None
        self.exchange: CCXTExchangeClient | None = None
        self.stream: CCXTMarketStream | None = None
        self.engine: TradingEngine | None = None
        self.interrupt: InterruptSignal | None = None
        self._shutdown = asyncio.Event()

    def request_shutdown(self, signal_name: str) -> None:
        if self.interrupt is None:
            self.interrupt = InterruptSignal(signal_name)
        logger.info("signal_received", signal=signal_name)
        self._shutdown.set()

    def install_signal_handlers(self) -> None:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self.request_shutdown, sig.name)
            except NotImplementedError:
                # Windows event loops; KeyboardInterrupt still reaches main()
                logger.debug("signal_handler_unavailable", signal=sig.name)

    async def initialize(self) -> None:
        self.config = ConfigManager(self.config_path).load()
        logging_config = self.config.logging
        setup_logging(
            log_level=logging_config.level,
            log_dir=logging_config.log_dir,
            log_to_console=logging_config.log_to_console,
            log_to_file=logging_config.log_to_file,
            json_logs=logging_config.json_logs,
        )

        exchange_config = self.config.exchange
        self.exchange = CCXTExchangeClient(
            exchange_id=exchange_config.name,
            api_key=exchange_config.api_key,
            api_secret=exchange_config.api_secret,
            testnet=exchange_config.testnet,
            rate_limit_per_minute=exchange_config.rate_limit_per_minute,
            timeout_seconds=exchange_config.order_timeout_seconds,
        )
        await self.exchange.initialize()

        analyzer = load_analyzer(self.analyzer_target, self.exchange, self.config)
        self.engine = TradingEngine(self.config, self.exchange, analyzer)

        self.stream = CCXTMarketStream(exchange_config.name, testnet=exchange_config.testnet)
        self.stream.on_tick(self.engine.on_tick)
        for symbol in self.config.portfolio.symbol_universe:
            await self.stream.subscribe_ticks(symbol)

        logger.info(
            "application_initialized",
            strategy=self.config.name,
            exchange=exchange_config.name,
            testnet=exchange_config.testnet,
        )

    async def run(self) -> None:
        if self.engine is None or self.stream is None:
            raise RuntimeError("initialize() must be called before run()")

        stream_task = asyncio.create_task(self.stream.run(self._shutdown))
        try:
            await self.engine.run(self._shutdown)
        finally:
            self._shutdown.set()
            await stream_task

        if self.interrupt is not None:
            raise self.interrupt

    async def cleanup(self) -> None:
        if self.stream is not None:
            await self.stream.close()
        if self.exchange is not None:
            await self.exchange.close()
        logger.info("application_stopped")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="martingrid", description=__doc__)
    parser.add_argument(
        "--config",
        type=Path,
        default=Path(os.getenv("CONFIG_PATH", "configs/strategy.yaml")),
        help="Strategy YAML file (env: CONFIG_PATH)",
    )
    parser.add_argument(
        "--analyzer",
        default=os.getenv("MARTINGRID_ANALYZER", ""),
        help="Market analyzer factory as module:callable (env: MARTINGRID_ANALYZER)",
    )
    return parser.parse_args(argv)


async def run_application(args: argparse.Namespace) -> int:
    app = MartingridApplication(args.config, args.analyzer)
    try:
        await app.initialize()
        app.install_signal_handlers()
        await app.run()
    except InterruptSignal as e:
        logger.info("graceful_shutdown_complete", reason=str(e))
    except ConfigurationError as e:
        logger.error("configuration_error", error=str(e))
        return 2
    except Exception as e:
        logger.error("application_error", error=str(e), exc_info=True)
        return 1
    finally:
        await app.cleanup()
    return 0


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    try:
        code = asyncio.run(run_application(args))
    except KeyboardInterrupt:
        logger.info("keyboard_interrupt_received")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
