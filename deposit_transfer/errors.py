"""
Deposit Transfer Errors

Every failure in this package is terminal to the operation, not the instance:
- UnsupportedCapabilityError: exchange session cannot do what we need (fatal at start)
- TransientExternalFailure: retries exhausted on an exchange call (operation skipped)
- ConfigError: invalid configuration (fatal at start)
"""

from typing import Optional


class DepositTransferError(Exception):
    """Base error for the deposit transfer watcher"""


class UnsupportedCapabilityError(DepositTransferError):
    """Exchange session lacks a capability required by the watcher"""

    def __init__(self, exchange: str, capability: str):
        self.exchange = exchange
        self.capability = capability
        super().__init__(f"exchange session {exchange} does not support {capability}")


class TransientExternalFailure(DepositTransferError):
    """An external call kept failing after the retry policy was exhausted"""

    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException] = None):
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error
        message = f"{operation} failed after {attempts} attempt(s)"
        if last_error is not None:
            message += f": {str(last_error)[:200]}"
        super().__init__(message)


class ConfigError(DepositTransferError):
    """Invalid watcher configuration"""
