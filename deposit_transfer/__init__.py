"""
Deposit Transfer Watcher

Moves newly confirmed deposits from the spot account into the margin account,
exactly once per deposit.

Components:
- deposit: Deposit record, status and confirmation parsing
- history_scanner: Rolling-window deposit history scan
- watchlist: Deduplicating watchlist with per-asset watermark
- confirmation_gate: Unlock-confirmation release decision
- transfer_executor: Balance-capped, retried margin transfer
- rate_limiter: Balance query throttling
- retry: Injected exponential backoff policy
- exchange_service: CCXT exchange adapter
- notifier: Log and webhook notifications
- watcher: Cancellable periodic job tying it all together

Deposit lifecycle:
1. First seen pending/credited -> watched
2. First seen success after the asset watermark -> watched
3. First seen success on the first scan -> ignored (settled before start)
4. Watched success with enough confirmations -> released and transferred
5. Watched deposit turning rejected/canceled -> dropped
"""

from .deposit import (
    Deposit,
    DepositStatus,
)
from .confirmation_gate import is_release_ready
from .watchlist import DepositWatchlist
from .history_scanner import DepositHistoryScanner
from .rate_limiter import AsyncRateLimiter
from .retry import (
    RetryPolicy,
    call_with_retry,
)
from .exchange_service import (
    Balance,
    CcxtDepositService,
    TransferDirection,
)
from .notifier import (
    Notifier,
    LogNotifier,
    WebhookNotifier,
    CompositeNotifier,
)
from .transfer_executor import (
    TransferExecutor,
    TransferOutcome,
)
from .config import (
    WatcherConfig,
    load_config,
)
from .errors import (
    DepositTransferError,
    UnsupportedCapabilityError,
    TransientExternalFailure,
    ConfigError,
)
from .watcher import DepositTransferWatcher

__all__ = [
    # Model
    'Deposit',
    'DepositStatus',

    # Reconciliation
    'is_release_ready',
    'DepositWatchlist',
    'DepositHistoryScanner',

    # Transfer
    'TransferExecutor',
    'TransferOutcome',
    'AsyncRateLimiter',
    'RetryPolicy',
    'call_with_retry',

    # Exchange
    'Balance',
    'CcxtDepositService',
    'TransferDirection',

    # Notifications
    'Notifier',
    'LogNotifier',
    'WebhookNotifier',
    'CompositeNotifier',

    # Configuration
    'WatcherConfig',
    'load_config',

    # Errors
    'DepositTransferError',
    'UnsupportedCapabilityError',
    'TransientExternalFailure',
    'ConfigError',

    # Watcher
    'DepositTransferWatcher',
]

__version__ = '1.0.0'
