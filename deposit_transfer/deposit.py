"""
Deposit Model

Deposit records as reported by an exchange's deposit history, normalized from
CCXT's unified deposit structure.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class DepositStatus(str, Enum):
    """Deposit status (string values match the exchange wire format)"""
    PENDING = "pending"
    REJECTED = "rejected"
    SUCCESS = "success"
    CANCELLED = "canceled"
    # created but can not withdraw
    CREDITED = "credited"


# Binance /sapi/v1/capital/deposit/hisrec status codes
BINANCE_DEPOSIT_STATUS = {
    0: DepositStatus.PENDING,
    6: DepositStatus.CREDITED,
    8: DepositStatus.PENDING,  # waiting user confirm
    1: DepositStatus.SUCCESS,
    2: DepositStatus.REJECTED,
    7: DepositStatus.REJECTED,  # wrong deposit
}

# CCXT unified transaction status
CCXT_DEPOSIT_STATUS = {
    'pending': DepositStatus.PENDING,
    'ok': DepositStatus.SUCCESS,
    'failed': DepositStatus.REJECTED,
    'canceled': DepositStatus.CANCELLED,
}

TERMINAL_STATUSES = (DepositStatus.REJECTED, DepositStatus.CANCELLED)


def to_decimal(value: Any) -> Decimal:
    """Convert an exchange number (float, int, str, None) to Decimal"""
    if value is None:
        return Decimal('0')
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal('0')


def _cutstr(s: str, max_len: int, head: int, tail: int) -> str:
    if len(s) > max_len:
        return s[:head] + "..." + s[-tail:]
    return s


@dataclass
class Deposit:
    """Deposit record"""
    asset: str
    amount: Decimal
    transaction_id: str
    status: DepositStatus
    time: datetime
    address: str = ""
    address_tag: str = ""
    exchange: str = ""

    # Required confirm for unlock balance
    unlock_confirm: int = 0

    # Confirmation format = "current/required", for example: "7/16"
    confirmation: str = ""

    info: Dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    def get_current_confirmation(self) -> Tuple[int, int]:
        """
        Parse the confirmation progress

        Returns:
            Tuple of (current, required); (0, 0) when absent or malformed
        """
        if not self.confirmation:
            return 0, 0

        parts = self.confirmation.split("/")
        if len(parts) < 2:
            return 0, 0

        try:
            current = int(parts[0].strip())
            required = int(parts[1].strip())
        except ValueError:
            return 0, 0

        return current, required

    @property
    def object_id(self) -> str:
        return f"deposit-{self.exchange}-{self.asset}-{self.address}-{self.transaction_id}"

    def __str__(self) -> str:
        o = f"{self.exchange} deposit {self.asset} {self.amount} <- "

        if self.address_tag:
            o += f"{self.address} (tag: {self.address_tag}) at {self.time.isoformat()}"
        else:
            o += f"{self.address} at {self.time.isoformat()}"

        if self.transaction_id:
            o += f" txID: {_cutstr(self.transaction_id, 12, 4, 4)}"
        if self.status:
            o += f" status: {self.status.value}"

        return o

    @classmethod
    def from_ccxt(cls, exchange_name: str, data: Dict[str, Any]) -> 'Deposit':
        """
        Build a deposit from a CCXT unified deposit structure

        Args:
            exchange_name: Exchange the record came from
            data: Result item of exchange.fetch_deposits()

        Returns:
            Deposit
        """
        info = data.get('info') or {}

        timestamp = data.get('timestamp')
        if timestamp is None:
            timestamp = info.get('insertTime') or 0
        time = datetime.fromtimestamp(int(timestamp) / 1000, tz=timezone.utc)

        confirmation = info.get('confirmTimes') or info.get('confirmations') or ""
        try:
            unlock_confirm = int(info.get('unlockConfirm') or 0)
        except (TypeError, ValueError):
            unlock_confirm = 0

        transaction_id = data.get('txid') or data.get('id') or info.get('txId') or info.get('id') or ''

        return cls(
            asset=str(data.get('currency') or info.get('coin') or '').upper(),
            amount=to_decimal(data.get('amount')),
            transaction_id=str(transaction_id),
            status=parse_deposit_status(exchange_name, data.get('status'), info),
            time=time,
            address=data.get('address') or '',
            address_tag=data.get('tag') or '',
            exchange=exchange_name,
            unlock_confirm=unlock_confirm,
            confirmation=str(confirmation),
            info=info,
        )


def parse_deposit_status(
    exchange_name: str,
    unified_status: Optional[str],
    info: Dict[str, Any]
) -> DepositStatus:
    """
    Map an exchange deposit status to DepositStatus

    Raw Binance status codes win over the CCXT unified status, since the
    unified status folds "credited" into "pending".
    """
    raw = info.get('status') if info else None
    if exchange_name == 'binance' and raw is not None:
        try:
            code = int(raw)
        except (TypeError, ValueError):
            code = None
        if code in BINANCE_DEPOSIT_STATUS:
            return BINANCE_DEPOSIT_STATUS[code]

    return CCXT_DEPOSIT_STATUS.get(unified_status or '', DepositStatus.PENDING)
