"""
Confirmation Gate

Decides whether a successful deposit has enough network confirmations for its
funds to be moved.
"""

from .deposit import Deposit


def is_release_ready(deposit: Deposit) -> bool:
    """
    Check whether a success deposit may be released for transfer

    A deposit without confirmation data is released immediately. Otherwise it
    is held until the current confirmation count reaches the unlock threshold.

    Args:
        deposit: Tracked deposit in success status

    Returns:
        True when the deposit can be transferred
    """
    current, required = deposit.get_current_confirmation()
    if required > 0 and deposit.unlock_confirm > 0 and current < deposit.unlock_confirm:
        return False

    return True
