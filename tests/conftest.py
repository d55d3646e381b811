"""
Shared fixtures for deposit transfer tests

Provides an in-memory exchange service, a recording notifier and deposit
factories so tests never touch a real exchange.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import pytest

from deposit_transfer.config import WatcherConfig
from deposit_transfer.deposit import Deposit, DepositStatus
from deposit_transfer.exchange_service import Balance, TransferDirection
from deposit_transfer.notifier import Notifier
from deposit_transfer.retry import RetryPolicy

BASE_TIME = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_deposit(
    transaction_id: str,
    status: DepositStatus = DepositStatus.PENDING,
    amount: str = "100",
    asset: str = "USDT",
    minutes: int = 0,
    confirmation: str = "",
    unlock_confirm: int = 0,
) -> Deposit:
    return Deposit(
        asset=asset,
        amount=Decimal(amount),
        transaction_id=transaction_id,
        status=status,
        time=BASE_TIME + timedelta(minutes=minutes),
        address="0xdeadbeef",
        exchange="binance",
        unlock_confirm=unlock_confirm,
        confirmation=confirmation,
    )


class FakeDepositService:
    """In-memory stand-in for CcxtDepositService"""

    def __init__(self):
        self.history: Dict[str, List[Deposit]] = {}
        self.balances: Dict[str, Decimal] = {}
        self.transfers: List[Tuple[str, Decimal, TransferDirection]] = []

        self.history_errors: Dict[str, List[Exception]] = {}
        self.balance_errors: List[Exception] = []
        self.transfer_errors: List[Exception] = []

        self.history_calls: List[Tuple[str, datetime, datetime]] = []
        self.balance_calls: List[str] = []

        self.can_transfer = True
        self.can_query_history = True

    def supports_margin_transfer(self) -> bool:
        return self.can_transfer

    def supports_deposit_history(self) -> bool:
        return self.can_query_history

    async def query_deposit_history(self, asset: str, since: datetime, until: datetime) -> List[Deposit]:
        self.history_calls.append((asset, since, until))
        errors = self.history_errors.get(asset)
        if errors:
            raise errors.pop(0)
        return list(self.history.get(asset, []))

    async def query_available_balance(self, asset: str) -> Balance:
        self.balance_calls.append(asset)
        if self.balance_errors:
            raise self.balance_errors.pop(0)
        return Balance(currency=asset, available=self.balances.get(asset, Decimal("0")))

    async def transfer_to_margin_account(self, asset: str, amount: Decimal, direction: TransferDirection):
        if self.transfer_errors:
            raise self.transfer_errors.pop(0)
        self.transfers.append((asset, amount, direction))


class RecordingNotifier(Notifier):
    """Keeps every notification for assertions"""

    def __init__(self):
        self.messages: List[Tuple[str, Dict[str, Any]]] = []

    async def notify(self, message: str, **fields: Any):
        self.messages.append((message, fields))

    def kinds(self) -> List[str]:
        return [fields.get("kind") for _, fields in self.messages]


@pytest.fixture
def service():
    return FakeDepositService()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def fast_retry():
    return RetryPolicy(max_attempts=3, initial_delay=0, max_delay=0)


@pytest.fixture
def watcher_config(fast_retry):
    return WatcherConfig(
        exchange="binance",
        assets=["USDT", "BTC"],
        interval=60,
        transfer_delay=0,
        balance_rate_limit=0,
        retry=fast_retry,
    )
