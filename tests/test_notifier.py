from unittest.mock import AsyncMock

import pytest

from deposit_transfer.notifier import CompositeNotifier, LogNotifier, Notifier, WebhookNotifier

from conftest import RecordingNotifier


@pytest.mark.asyncio
async def test_base_notifier_is_abstract():
    with pytest.raises(NotImplementedError):
        await Notifier().notify("hello")


@pytest.mark.asyncio
async def test_log_notifier_accepts_fields():
    await LogNotifier().notify("Transferred 100 USDT", kind="transfer_succeeded", asset="USDT")


@pytest.mark.asyncio
async def test_composite_fans_out_in_order():
    first, second = RecordingNotifier(), RecordingNotifier()
    composite = CompositeNotifier([first, second])

    await composite.notify("balance insufficient", kind="insufficient_balance", asset="BTC")

    assert first.messages == second.messages == [
        ("balance insufficient", {"kind": "insufficient_balance", "asset": "BTC"})
    ]


@pytest.mark.asyncio
async def test_composite_closes_notifiers_with_sessions():
    webhook = WebhookNotifier("https://hooks.example.com/deposit")
    webhook.close = AsyncMock()
    composite = CompositeNotifier([LogNotifier(), webhook])

    await composite.close()

    webhook.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_webhook_delivery_failure_is_swallowed():
    # nothing listens on the discard port
    webhook = WebhookNotifier("http://127.0.0.1:9/hook", timeout=2)

    try:
        await webhook.notify("Transferred 1 BTC", kind="transfer_succeeded")
    finally:
        await webhook.close()
