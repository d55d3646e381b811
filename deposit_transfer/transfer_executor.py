"""
Transfer Executor

Moves released deposits from the spot account into the margin account:
1. Settle delay (once per batch)
2. Rate-limited spot balance query
3. Amount capped at the available balance
4. Margin transfer with retry
5. Notification of the outcome
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional

from loguru import logger

from .deposit import Deposit
from .exchange_service import TransferDirection
from .notifier import LogNotifier, Notifier
from .rate_limiter import AsyncRateLimiter
from .retry import RetryPolicy, call_with_retry

TRANSFERRED = 'transferred'
INSUFFICIENT_BALANCE = 'insufficient_balance'
BALANCE_QUERY_FAILED = 'balance_query_failed'
TRANSFER_FAILED = 'transfer_failed'


@dataclass
class TransferOutcome:
    """Result of handling one released deposit"""
    deposit: Deposit
    status: str
    amount: Decimal = Decimal('0')
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status == TRANSFERRED

    def to_dict(self) -> Dict:
        return {
            'transaction_id': self.deposit.transaction_id,
            'asset': self.deposit.asset,
            'deposit_amount': str(self.deposit.amount),
            'status': self.status,
            'amount': str(self.amount),
            'error_message': self.error_message,
        }


class TransferExecutor:
    """
    Transfer released deposits into the margin account

    A balance query failure leaves the deposit un-transferred; with a
    watchlist attached it is requeued and re-gated on the next poll.
    A transfer failure is never requeued, since the transfer may have
    gone through on the exchange side.
    """

    def __init__(
        self,
        service,
        notifier: Optional[Notifier] = None,
        retry_policy: Optional[RetryPolicy] = None,
        transfer_delay: float = 3.0,
        watchlist=None
    ):
        """
        Initialize transfer executor

        Args:
            service: Object providing query_available_balance() and transfer_to_margin_account()
            notifier: Notification sink
            retry_policy: Retry policy for exchange calls
            transfer_delay: Settle delay in seconds before each batch
            watchlist: Watchlist to requeue deposits into on balance query failure
        """
        self.service = service
        self.notifier = notifier or LogNotifier()
        self.retry_policy = retry_policy or RetryPolicy()
        self.transfer_delay = transfer_delay
        self.watchlist = watchlist

    async def execute(
        self,
        asset: str,
        deposits: List[Deposit],
        limiter: AsyncRateLimiter
    ) -> List[TransferOutcome]:
        """
        Transfer a released batch of one asset

        Args:
            asset: Asset symbol
            deposits: Deposits released this poll
            limiter: Rate limiter shared by the whole poll

        Returns:
            One outcome per processed deposit
        """
        if not deposits:
            return []

        if self.transfer_delay > 0:
            logger.info(f"delaying transfer for {self.transfer_delay}s...")
            await asyncio.sleep(self.transfer_delay)

        outcomes = []
        for deposit in deposits:
            logger.info(f"found succeeded {asset} deposit: {deposit}")
            outcomes.append(await self.transfer_deposit(deposit, limiter))

        return outcomes

    async def transfer_deposit(self, deposit: Deposit, limiter: AsyncRateLimiter) -> TransferOutcome:
        asset = deposit.asset

        await limiter.acquire()

        try:
            balance = await call_with_retry(
                lambda: self.service.query_available_balance(asset),
                self.retry_policy,
                f"{asset} spot balance query"
            )
        except Exception as e:
            logger.error(f"✗ unable to query spot account for deposit {deposit.transaction_id}: {e}")
            await self.notifier.notify(
                f"Found succeeded deposit {deposit.amount} {asset}, but the spot balance query failed: {str(e)[:200]}",
                kind=BALANCE_QUERY_FAILED,
                asset=asset,
                amount=deposit.amount,
                transaction_id=deposit.transaction_id,
            )
            if self.watchlist is not None:
                await self.watchlist.requeue(deposit)
            return TransferOutcome(deposit, BALANCE_QUERY_FAILED, error_message=str(e))

        logger.info(f"spot account balance {asset}: {balance.available} {balance.currency}")
        amount = min(balance.available, deposit.amount)

        if amount <= 0:
            await self.notifier.notify(
                f"Found succeeded deposit {deposit.amount} {asset}, but the balance "
                f"{balance.available} {balance.currency} is insufficient, skip transferring",
                kind=INSUFFICIENT_BALANCE,
                asset=asset,
                amount=deposit.amount,
                available=balance.available,
                transaction_id=deposit.transaction_id,
            )
            return TransferOutcome(deposit, INSUFFICIENT_BALANCE, amount=Decimal('0'))

        await self.notifier.notify(
            f"Found succeeded deposit {deposit.amount} {asset}, transferring {amount} {asset} into the margin account",
            kind='transfer_initiated',
            asset=asset,
            amount=amount,
            transaction_id=deposit.transaction_id,
        )

        try:
            await call_with_retry(
                lambda: self.service.transfer_to_margin_account(asset, amount, TransferDirection.IN),
                self.retry_policy,
                f"{asset} margin transfer"
            )
        except Exception as e:
            logger.error(f"✗ unable to transfer deposit {deposit.transaction_id} into the margin account: {e}")
            await self.notifier.notify(
                f"Failed to transfer {amount} {asset} of deposit {deposit.transaction_id} "
                f"into the margin account: {str(e)[:200]}",
                kind=TRANSFER_FAILED,
                asset=asset,
                amount=amount,
                transaction_id=deposit.transaction_id,
            )
            return TransferOutcome(deposit, TRANSFER_FAILED, amount=amount, error_message=str(e))

        await self.notifier.notify(
            f"Transferred {amount} {asset} of deposit {deposit.transaction_id} into the margin account",
            kind='transfer_succeeded',
            asset=asset,
            amount=amount,
            transaction_id=deposit.transaction_id,
        )
        return TransferOutcome(deposit, TRANSFERRED, amount=amount)
