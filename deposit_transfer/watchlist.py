"""
Deposit Watchlist

In-memory state of the watcher:
- watching deposits, keyed by (asset, transaction id)
- per-asset watermark of the latest deposit time already scanned

A deposit enters the watchlist when first seen as pending/credited, or as
success strictly after the asset's watermark. It leaves the watchlist when the
confirmation gate releases it, or when it turns rejected/canceled.
Success deposits seen on the very first scan of an asset are presumed settled
before the watcher started and are never watched.
"""

import asyncio
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .confirmation_gate import is_release_ready
from .deposit import Deposit, DepositStatus, TERMINAL_STATUSES


class DepositWatchlist:
    """
    Deposit watchlist with watermark-based deduplication

    Features:
    - Idempotent reconciliation over overlapping history windows
    - Ascending-time processing regardless of source order
    - Confirmation-gated release, removal and hand-off in one step
    - Deterministic release order (time, transaction id)

    All mutations of a reconcile-then-release sequence must happen while
    holding `lock`; reconcile_and_release() does that for callers.
    """

    def __init__(self):
        self._watching: Dict[Tuple[str, str], Deposit] = {}
        self._last_deposit_times: Dict[str, datetime] = {}
        self.lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._watching)

    def __contains__(self, deposit: Deposit) -> bool:
        return (deposit.asset, deposit.transaction_id) in self._watching

    def is_watching(self, asset: str, transaction_id: str) -> bool:
        return (asset, transaction_id) in self._watching

    def get(self, asset: str, transaction_id: str) -> Optional[Deposit]:
        return self._watching.get((asset, transaction_id))

    def watching(self, asset: Optional[str] = None) -> List[Deposit]:
        """Watched deposits (optionally for one asset), oldest first"""
        deposits = [
            d for d in self._watching.values()
            if asset is None or d.asset == asset
        ]
        return sorted(deposits, key=lambda d: (d.time, d.transaction_id))

    def last_deposit_time(self, asset: str) -> Optional[datetime]:
        return self._last_deposit_times.get(asset)

    def reconcile(self, asset: str, deposits: Iterable[Deposit]):
        """
        Merge a scanned history window into the watchlist

        Args:
            asset: Asset the window was scanned for
            deposits: Deposit records in any order, duplicates allowed
        """
        ordered = sorted(deposits, key=lambda d: d.time)
        last_time = self._last_deposit_times.get(asset)

        for deposit in ordered:
            logger.debug(f"checking deposit: {deposit}")

            if deposit.asset != asset:
                continue

            key = (asset, deposit.transaction_id)

            if key in self._watching:
                if deposit.status in TERMINAL_STATUSES:
                    logger.info(f"dropping {deposit.status.value} deposit: {deposit.transaction_id}")
                    del self._watching[key]
                else:
                    # refresh: status and confirmation may have advanced
                    self._watching[key] = deposit
                continue

            if deposit.status == DepositStatus.SUCCESS:
                if last_time is None:
                    # ignore all initial deposits that are already in success status
                    logger.info(f"ignored success deposit: {deposit.transaction_id} {deposit}")
                elif deposit.time > last_time:
                    logger.info(f"adding new success deposit: {deposit.transaction_id}")
                    self._watching[key] = deposit
                else:
                    logger.debug(f"ignored settled success deposit: {deposit.transaction_id}")

            elif deposit.status in (DepositStatus.CREDITED, DepositStatus.PENDING):
                logger.info(f"adding {deposit.status.value} deposit: {deposit.transaction_id}")
                self._watching[key] = deposit

        if ordered:
            batch_last = ordered[-1].time
            if last_time is None or batch_last > last_time:
                self._last_deposit_times[asset] = batch_last

    def release_ready(self, asset: str) -> List[Deposit]:
        """
        Remove and return the success deposits that passed the confirmation gate

        Args:
            asset: Asset to release deposits for

        Returns:
            Released deposits ordered by (time, transaction id)
        """
        released = []

        for deposit in self.watching(asset):
            if deposit.status != DepositStatus.SUCCESS:
                continue

            logger.info(f"found pending -> success deposit: {deposit}")

            if not is_release_ready(deposit):
                current, required = deposit.get_current_confirmation()
                logger.info(
                    f"deposit {deposit.transaction_id} unlock confirm {deposit.unlock_confirm} is not reached, "
                    f"current: {current}, required: {required}, skip this round"
                )
                continue

            released.append(deposit)
            del self._watching[(asset, deposit.transaction_id)]

        return released

    async def reconcile_and_release(self, asset: str, deposits: Iterable[Deposit]) -> List[Deposit]:
        """Reconcile a scanned window and release ready deposits atomically"""
        async with self.lock:
            self.reconcile(asset, deposits)
            return self.release_ready(asset)

    async def requeue(self, deposit: Deposit):
        """
        Put back a released deposit that was never transferred

        The deposit is re-gated on the next poll. A newer record already
        tracked for the same transaction is kept.
        """
        async with self.lock:
            key = (deposit.asset, deposit.transaction_id)
            if key not in self._watching:
                logger.info(f"requeued deposit for next poll: {deposit.transaction_id}")
                self._watching[key] = deposit
