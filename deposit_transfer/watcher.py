"""
Deposit Transfer Watcher

Periodically scans deposit history and moves newly confirmed deposits from
the spot account into the margin account, once per deposit.

Per poll and per asset:
1. Scan the trailing history window
2. Reconcile it into the watchlist and release gate-passed deposits
3. Transfer the released batch (settle delay, rate-limited balance check,
   balance-capped margin transfer)
"""

import asyncio
from datetime import timedelta
from typing import List, Optional

from loguru import logger

from .config import WatcherConfig
from .errors import UnsupportedCapabilityError
from .history_scanner import DepositHistoryScanner
from .notifier import LogNotifier, Notifier
from .rate_limiter import AsyncRateLimiter
from .transfer_executor import TransferExecutor, TransferOutcome
from .watchlist import DepositWatchlist

ID = "deposit2transfer"


class DepositTransferWatcher:
    """
    Cancellable periodic deposit watcher for one exchange session

    Runs one check immediately, then one every `config.interval` seconds
    until stopped. A check that is still running when the next one is due
    makes that tick a no-op, so two passes never race on the watchlist.
    """

    def __init__(
        self,
        config: WatcherConfig,
        service,
        notifier: Optional[Notifier] = None,
        watchlist: Optional[DepositWatchlist] = None,
        scanner: Optional[DepositHistoryScanner] = None,
        executor: Optional[TransferExecutor] = None
    ):
        """
        Initialize watcher

        Args:
            config: Watcher configuration
            service: Exchange service (history, balance and transfer calls)
            notifier: Notification sink (defaults to the log)
            watchlist: Deposit watchlist (a fresh one by default)
            scanner: History scanner (built from service by default)
            executor: Transfer executor (built from service by default)
        """
        self.config = config
        self.service = service
        self.notifier = notifier or LogNotifier()
        self.watchlist = watchlist if watchlist is not None else DepositWatchlist()
        self.scanner = scanner or DepositHistoryScanner(service, retry_policy=config.retry)
        self.executor = executor or TransferExecutor(
            service,
            notifier=self.notifier,
            retry_policy=config.retry,
            transfer_delay=config.transfer_delay,
            watchlist=self.watchlist if config.requeue_on_balance_failure else None
        )

        self._pass_lock = asyncio.Lock()
        self._stop_event: Optional[asyncio.Event] = None

    def instance_id(self) -> str:
        return f"{ID}-{','.join(self.config.assets)}"

    def validate(self):
        """
        Check that the exchange session can do what the watcher needs

        Raises:
            UnsupportedCapabilityError
        """
        if not self.service.supports_margin_transfer():
            raise UnsupportedCapabilityError(self.config.exchange, "margin transfer")

        if not self.service.supports_deposit_history():
            raise UnsupportedCapabilityError(self.config.exchange, "deposit history query")

    async def run(self, stop_event: Optional[asyncio.Event] = None):
        """
        Run the watcher until stop_event is set or the task is cancelled

        Args:
            stop_event: Event that ends the loop after the current check
        """
        self.validate()
        self._stop_event = stop_event or asyncio.Event()

        with logger.contextualize(strategy=ID, exchange=self.config.exchange):
            logger.info(
                f"Starting {self.instance_id()} on {self.config.exchange} "
                f"(interval {self.config.interval}s, transfer delay {self.config.transfer_delay}s)"
            )

            while not self._stop_event.is_set():
                await self._tick()

                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self.config.interval)
                except asyncio.TimeoutError:
                    continue

            logger.info(f"Stopped {self.instance_id()}")

    def stop(self):
        if self._stop_event is not None:
            self._stop_event.set()

    async def _tick(self):
        try:
            await self.check_deposits()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # a broken pass must not end the schedule
            logger.exception(f"Unexpected error while checking deposits: {e}")

    async def check_deposits(self) -> List[TransferOutcome]:
        """
        Run one reconciliation pass over all assets

        Returns:
            Transfer outcomes of this pass
        """
        if self._pass_lock.locked():
            logger.warning("previous deposit check is still running, skip this tick")
            return []

        async with self._pass_lock:
            limiter = AsyncRateLimiter(self.config.balance_rate_limit)
            outcomes = []

            for asset in self.config.assets:
                with logger.contextualize(asset=asset):
                    outcomes.extend(await self._check_asset(asset, limiter))

            return outcomes

    async def _check_asset(self, asset: str, limiter: AsyncRateLimiter) -> List[TransferOutcome]:
        logger.debug(f"checking {asset} deposits...")

        try:
            deposits = await self.scanner.scan(asset, timedelta(seconds=self.config.lookback))
        except Exception as e:
            logger.error(f"✗ unable to scan {asset} deposit history: {e}")
            return []

        released = await self.watchlist.reconcile_and_release(asset, deposits)

        if not released:
            logger.debug(f"no {asset} deposit found")
            return []

        logger.info(f"found {len(released)} {asset} deposits")
        return await self.executor.execute(asset, released, limiter)
