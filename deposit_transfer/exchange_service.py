"""
Exchange Service

CCXT-backed adapter providing what the watcher needs from an exchange session:
- deposit history query
- spot (holding account) balance query
- spot <-> margin account transfer
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional

import ccxt.async_support as ccxt
from loguru import logger

from .deposit import Deposit, to_decimal
from .errors import ConfigError, UnsupportedCapabilityError
from .retry import RetryPolicy, call_with_retry


class TransferDirection(str, Enum):
    """Margin transfer direction"""
    IN = "in"    # spot -> margin
    OUT = "out"  # margin -> spot


@dataclass
class Balance:
    """Holding account balance of one currency"""
    currency: str
    available: Decimal


class CcxtDepositService:
    """
    Deposit/balance/transfer operations on one exchange session

    Features:
    - Capability check before the watcher starts
    - Deposit history normalized into Deposit records
    - Spot balance lookup
    - Internal transfer between spot and margin accounts
    """

    def __init__(
        self,
        exchange_name: str,
        api_credentials: Optional[Dict[str, str]] = None,
        margin_account: str = "margin",
        exchange: Optional[ccxt.Exchange] = None,
        retry_policy: Optional[RetryPolicy] = None
    ):
        """
        Initialize exchange service

        Args:
            exchange_name: CCXT exchange id (e.g. 'binance')
            api_credentials: apiKey, secret and optional password
            margin_account: CCXT account name to transfer into ('margin', 'cross', 'isolated', ...)
            exchange: Pre-built exchange instance (skips construction in initialize())
            retry_policy: Retry policy for loading markets at startup
        """
        self.exchange_name = exchange_name
        self.api_credentials = api_credentials or {}
        self.margin_account = margin_account
        self.exchange = exchange
        self.retry_policy = retry_policy or RetryPolicy()

    async def initialize(self):
        """
        Connect to the exchange and check required capabilities

        Raises:
            ConfigError: unknown exchange id
            UnsupportedCapabilityError: deposit history or transfer not supported
            TransientExternalFailure: markets kept failing to load
        """
        if self.exchange is None:
            if self.exchange_name not in ccxt.exchanges:
                raise ConfigError(f"unknown exchange: {self.exchange_name}")

            try:
                exchange_class = getattr(ccxt, self.exchange_name)
                config = {
                    'enableRateLimit': True,
                    'apiKey': self.api_credentials.get('apiKey'),
                    'secret': self.api_credentials.get('secret'),
                    'options': {'defaultType': 'spot'}
                }

                # Add password for exchanges that need it
                if 'password' in self.api_credentials:
                    config['password'] = self.api_credentials['password']

                self.exchange = exchange_class(config)
                await call_with_retry(
                    self.exchange.load_markets,
                    self.retry_policy,
                    f"{self.exchange_name} market loading"
                )
                logger.info(f"✓ Initialized {self.exchange_name} exchange")

            except Exception as e:
                logger.error(f"✗ Failed to initialize {self.exchange_name}: {e}")
                raise

        if not self.supports_margin_transfer():
            raise UnsupportedCapabilityError(self.exchange_name, "margin transfer")

        if not self.supports_deposit_history():
            raise UnsupportedCapabilityError(self.exchange_name, "deposit history query")

    def supports_deposit_history(self) -> bool:
        return bool(self.exchange is not None and self.exchange.has.get('fetchDeposits'))

    def supports_margin_transfer(self) -> bool:
        return bool(self.exchange is not None and self.exchange.has.get('transfer'))

    async def query_deposit_history(
        self,
        asset: str,
        since: datetime,
        until: datetime
    ) -> List[Deposit]:
        """
        Fetch deposit records of an asset inside a time window

        Args:
            asset: Asset symbol
            since: Window start
            until: Window end

        Returns:
            Deposits in exchange order
        """
        since_ms = int(since.timestamp() * 1000)
        until_ms = int(until.timestamp() * 1000)

        records = await self.exchange.fetch_deposits(
            code=asset,
            since=since_ms,
            params={'endTime': until_ms}
        )

        deposits = []
        for record in records or []:
            deposit = Deposit.from_ccxt(self.exchange_name, record)
            if deposit.asset != asset or deposit.time > until:
                continue
            if not deposit.transaction_id:
                # no id to dedup on
                logger.warning(f"skipping {asset} deposit without transaction id: {deposit}")
                continue
            deposits.append(deposit)

        logger.debug(f"Fetched {len(deposits)} {asset} deposits from {self.exchange_name}")
        return deposits

    async def query_available_balance(self, asset: str) -> Balance:
        """
        Fetch the available spot balance of an asset

        A currency missing from the balance response counts as zero.
        """
        balance = await self.exchange.fetch_balance({'type': 'spot'})
        free = (balance.get('free') or {}).get(asset)
        return Balance(currency=asset, available=to_decimal(free))

    async def transfer_to_margin_account(
        self,
        asset: str,
        amount: Decimal,
        direction: TransferDirection = TransferDirection.IN
    ):
        """
        Transfer between the spot and margin accounts

        Args:
            asset: Asset symbol
            amount: Amount to move
            direction: IN moves spot -> margin, OUT moves margin -> spot
        """
        if direction == TransferDirection.IN:
            from_account, to_account = 'spot', self.margin_account
        else:
            from_account, to_account = self.margin_account, 'spot'

        result = await self.exchange.transfer(asset, float(amount), from_account, to_account)
        logger.info(f"✓ Transferred {amount} {asset} {from_account} -> {to_account} (id: {(result or {}).get('id')})")

    async def close(self):
        """Close the exchange connection, tolerating shutdown-time transport errors"""
        if self.exchange is None:
            return

        try:
            await self.exchange.close()

            # Give SSL transports time to complete cleanup callbacks
            await asyncio.sleep(0.25)

            logger.debug(f"✓ Closed {self.exchange_name} connection")
        except (RuntimeError, ConnectionError, OSError) as e:
            error_str = str(e)
            if any(msg in error_str for msg in [
                "Event loop is closed",
                "Cannot write to closing transport",
                "Transport is closing",
                "Broken pipe",
                "Connection reset"
            ]):
                logger.debug(f"{self.exchange_name} connection already closed")
            else:
                logger.warning(f"Error closing {self.exchange_name}: {e}")
