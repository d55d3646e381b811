"""
Deposit Transfer Watcher - host entry point

Usage:
    python -m deposit_transfer --config deposit_config.yaml
"""

import argparse
import asyncio
import signal
import sys
from typing import Callable, Dict, Optional

import ccxt.async_support as ccxt
from loguru import logger

from .config import WatcherConfig, load_config
from .errors import ConfigError, TransientExternalFailure, UnsupportedCapabilityError
from .exchange_service import CcxtDepositService
from .log_setup import configure_logging
from .notifier import CompositeNotifier, LogNotifier, Notifier, WebhookNotifier
from .watcher import ID, DepositTransferWatcher

# Watchers this host knows how to build, by id
WATCHER_FACTORIES: Dict[str, Callable[..., DepositTransferWatcher]] = {
    ID: DepositTransferWatcher,
}


def build_notifier(config: WatcherConfig) -> Notifier:
    if config.webhook_url:
        return CompositeNotifier([LogNotifier(), WebhookNotifier(config.webhook_url)])
    return LogNotifier()


async def graceful_shutdown(
    service: CcxtDepositService,
    notifier: Optional[Notifier] = None,
    timeout: float = 15.0
):
    """
    Close exchange and notifier connections

    Args:
        service: Exchange service to close
        notifier: Notifier to close (if it holds a session)
        timeout: Maximum time to wait for shutdown (seconds)
    """
    logger.info("Starting graceful shutdown...")

    try:
        await asyncio.wait_for(service.close(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning(f"Exchange close timeout after {timeout}s")

    if notifier is not None and hasattr(notifier, 'close'):
        try:
            await asyncio.wait_for(notifier.close(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Notifier close timeout after {timeout}s")

    logger.info("✓ Graceful shutdown complete")


async def run(config: WatcherConfig, watcher_id: str = ID) -> int:
    """
    Build and run a watcher until SIGINT/SIGTERM

    Returns:
        Process exit code: 0 after a clean stop, 1 when the exchange session
        could not be opened, 2 for an unusable configuration
    """
    service = CcxtDepositService(
        config.exchange,
        api_credentials=config.credentials,
        margin_account=config.margin_account,
        retry_policy=config.retry
    )
    notifier = build_notifier(config)
    stop_event = asyncio.Event()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            # add_signal_handler is unavailable on Windows event loops
            pass

    try:
        await service.initialize()
        watcher = WATCHER_FACTORIES[watcher_id](config, service, notifier=notifier)
        await watcher.run(stop_event)
        return 0

    except (ConfigError, UnsupportedCapabilityError) as e:
        logger.error(f"✗ {e}")
        return 2

    except (ccxt.BaseError, TransientExternalFailure) as e:
        logger.error(f"✗ Unable to open {config.exchange} session: {e}")
        return 1

    finally:
        await graceful_shutdown(service, notifier)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(
        prog="deposit_transfer",
        description="Move confirmed deposits from the spot account into the margin account"
    )
    parser.add_argument('--config', '-c', default='deposit_config.yaml', help='Path to YAML config')
    parser.add_argument('--log-level', default=None, help='Override logging.level from the config')
    args = parser.parse_args(argv)

    configure_logging()

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error(f"✗ {e}")
        return 2

    configure_logging(
        level=args.log_level or config.logging.level,
        log_file=config.logging.file,
        rotation=config.logging.rotation,
        retention=config.logging.retention
    )

    return asyncio.run(run(config))


if __name__ == "__main__":
    sys.exit(main())
