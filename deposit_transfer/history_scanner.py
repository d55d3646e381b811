"""
Deposit History Scanner

Re-queries a fixed trailing window of deposit history on every poll. The
windows overlap on purpose: a deposit's pending -> success transition is seen
without keeping any cursor between polls.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from loguru import logger

from .deposit import Deposit
from .retry import RetryPolicy, call_with_retry


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class DepositHistoryScanner:
    """Fetch a rolling window of deposit history, oldest first"""

    def __init__(
        self,
        service,
        retry_policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        """
        Initialize scanner

        Args:
            service: Object providing query_deposit_history(asset, since, until)
            retry_policy: Retry policy for the history query
            clock: Returns the current UTC time
        """
        self.service = service
        self.retry_policy = retry_policy or RetryPolicy()
        self.clock = clock

    async def scan(self, asset: str, lookback: timedelta) -> List[Deposit]:
        """
        Scan the deposit history of an asset

        Args:
            asset: Asset symbol
            lookback: Window length ending now

        Returns:
            Deposits sorted by time ascending

        Raises:
            TransientExternalFailure: history query kept failing
        """
        logger.debug(f"scanning {asset} deposit history...")

        now = self.clock()
        since = now - lookback

        deposits = await call_with_retry(
            lambda: self.service.query_deposit_history(asset, since, now),
            self.retry_policy,
            f"{asset} deposit history query"
        )

        # sort the recent deposit records in ascending order
        return sorted(deposits or [], key=lambda d: d.time)
