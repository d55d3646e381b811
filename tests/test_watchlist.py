"""
Watchlist reconciliation tests

Covers dedup idempotence, watermark gating, ordering independence,
confirmation-gated release and terminal status handling.
"""

import pytest

from deposit_transfer.deposit import DepositStatus
from deposit_transfer.watchlist import DepositWatchlist

from conftest import BASE_TIME, make_deposit

SUCCESS = DepositStatus.SUCCESS
PENDING = DepositStatus.PENDING


def _ids(deposits):
    return [d.transaction_id for d in deposits]


class TestReconcile:
    def test_pending_and_credited_are_watched_on_first_sight(self):
        watchlist = DepositWatchlist()

        watchlist.reconcile("USDT", [
            make_deposit("tx1", status=PENDING),
            make_deposit("tx2", status=DepositStatus.CREDITED, minutes=1),
        ])

        assert watchlist.is_watching("USDT", "tx1")
        assert watchlist.is_watching("USDT", "tx2")
        assert len(watchlist) == 2

    def test_first_scan_success_is_ignored(self):
        watchlist = DepositWatchlist()

        watchlist.reconcile("BTC", [make_deposit("tx2", status=SUCCESS, asset="BTC")])

        assert len(watchlist) == 0
        assert watchlist.last_deposit_time("BTC") == BASE_TIME

    def test_success_at_or_before_watermark_is_ignored(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("old", status=PENDING, minutes=10)])

        watchlist.reconcile("USDT", [
            make_deposit("older", status=SUCCESS, minutes=5),
            make_deposit("same", status=SUCCESS, minutes=10),
        ])

        assert not watchlist.is_watching("USDT", "older")
        assert not watchlist.is_watching("USDT", "same")

    def test_success_after_watermark_is_watched(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("old", status=SUCCESS)])

        watchlist.reconcile("USDT", [
            make_deposit("old", status=SUCCESS),
            make_deposit("new", status=SUCCESS, minutes=1),
        ])

        assert not watchlist.is_watching("USDT", "old")
        assert watchlist.is_watching("USDT", "new")

    def test_rejected_and_cancelled_are_not_added(self):
        watchlist = DepositWatchlist()

        watchlist.reconcile("USDT", [
            make_deposit("r", status=DepositStatus.REJECTED),
            make_deposit("c", status=DepositStatus.CANCELLED, minutes=1),
        ])

        assert len(watchlist) == 0
        assert watchlist.last_deposit_time("USDT") is not None

    def test_tracked_deposit_turning_rejected_is_dropped(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("tx1", status=PENDING)])

        watchlist.reconcile("USDT", [make_deposit("tx1", status=DepositStatus.REJECTED)])

        assert not watchlist.is_watching("USDT", "tx1")

        # seen again as rejected: never re-added
        watchlist.reconcile("USDT", [make_deposit("tx1", status=DepositStatus.REJECTED)])
        assert len(watchlist) == 0

    def test_tracked_deposit_is_refreshed(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("tx1", status=PENDING, confirmation="1/16")])

        watchlist.reconcile("USDT", [make_deposit("tx1", status=PENDING, confirmation="9/16")])

        assert watchlist.get("USDT", "tx1").confirmation == "9/16"
        assert len(watchlist) == 1

    def test_other_assets_are_skipped(self):
        watchlist = DepositWatchlist()

        watchlist.reconcile("USDT", [make_deposit("tx1", status=PENDING, asset="BTC")])

        assert len(watchlist) == 0

    def test_watermark_never_moves_backwards(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("a", status=PENDING, minutes=30)])

        watchlist.reconcile("USDT", [make_deposit("b", status=PENDING, minutes=5)])

        assert watchlist.last_deposit_time("USDT") == make_deposit("a", minutes=30).time

    def test_empty_batch_keeps_watermark_unset(self):
        watchlist = DepositWatchlist()

        watchlist.reconcile("USDT", [])

        assert watchlist.last_deposit_time("USDT") is None

    def test_reconcile_is_idempotent(self):
        events = [
            make_deposit("a", status=PENDING),
            make_deposit("b", status=SUCCESS, minutes=1),
            make_deposit("c", status=DepositStatus.CREDITED, minutes=2),
        ]
        watchlist = DepositWatchlist()

        watchlist.reconcile("USDT", events)
        first = _ids(watchlist.watching("USDT"))
        watchlist.reconcile("USDT", events)

        assert _ids(watchlist.watching("USDT")) == first
        assert first == ["a", "c"]

    def test_ordering_independence(self):
        unordered = DepositWatchlist()
        ordered = DepositWatchlist()
        for watchlist in (unordered, ordered):
            watchlist.reconcile("USDT", [make_deposit("seed", status=PENDING, minutes=-10)])

        unordered.reconcile("USDT", [
            make_deposit("B", status=SUCCESS, minutes=2),
            make_deposit("A", status=PENDING, minutes=1),
        ])
        ordered.reconcile("USDT", [
            make_deposit("A", status=PENDING, minutes=1),
            make_deposit("B", status=SUCCESS, minutes=2),
        ])

        assert _ids(unordered.watching()) == _ids(ordered.watching()) == ["seed", "A", "B"]
        assert unordered.last_deposit_time("USDT") == ordered.last_deposit_time("USDT")


class TestRelease:
    def test_release_removes_ready_success_deposits_in_time_order(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [
            make_deposit("late", status=PENDING, minutes=2),
            make_deposit("early", status=PENDING, minutes=1),
            make_deposit("waiting", status=PENDING, minutes=3),
        ])
        watchlist.reconcile("USDT", [
            make_deposit("late", status=SUCCESS, minutes=2),
            make_deposit("early", status=SUCCESS, minutes=1),
            make_deposit("waiting", status=PENDING, minutes=3),
        ])

        released = watchlist.release_ready("USDT")

        assert _ids(released) == ["early", "late"]
        assert _ids(watchlist.watching()) == ["waiting"]

    def test_gate_holds_deposit_until_threshold(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("tx1", status=PENDING, confirmation="1/16", unlock_confirm=12)])

        for current in (3, 7, 11):
            watchlist.reconcile("USDT", [
                make_deposit("tx1", status=SUCCESS, confirmation=f"{current}/16", unlock_confirm=12)
            ])
            assert watchlist.release_ready("USDT") == []
            assert watchlist.is_watching("USDT", "tx1")

        watchlist.reconcile("USDT", [make_deposit("tx1", status=SUCCESS, confirmation="12/16", unlock_confirm=12)])
        assert _ids(watchlist.release_ready("USDT")) == ["tx1"]

        # re-observed after release: never released again
        watchlist.reconcile("USDT", [make_deposit("tx1", status=SUCCESS, confirmation="16/16", unlock_confirm=12)])
        assert watchlist.release_ready("USDT") == []
        assert len(watchlist) == 0

    def test_release_is_scoped_to_asset(self):
        watchlist = DepositWatchlist()
        watchlist.reconcile("USDT", [make_deposit("u", status=PENDING)])
        watchlist.reconcile("BTC", [make_deposit("b", status=PENDING, asset="BTC")])
        watchlist.reconcile("USDT", [make_deposit("u", status=SUCCESS)])
        watchlist.reconcile("BTC", [make_deposit("b", status=SUCCESS, asset="BTC")])

        assert _ids(watchlist.release_ready("USDT")) == ["u"]
        assert watchlist.is_watching("BTC", "b")

    @pytest.mark.asyncio
    async def test_reconcile_and_release(self):
        watchlist = DepositWatchlist()
        await watchlist.reconcile_and_release("USDT", [make_deposit("tx1", status=PENDING)])

        released = await watchlist.reconcile_and_release("USDT", [make_deposit("tx1", status=SUCCESS)])
        again = await watchlist.reconcile_and_release("USDT", [make_deposit("tx1", status=SUCCESS)])

        assert _ids(released) == ["tx1"]
        assert again == []

    @pytest.mark.asyncio
    async def test_requeue_puts_released_deposit_back(self):
        watchlist = DepositWatchlist()
        await watchlist.reconcile_and_release("USDT", [make_deposit("tx1", status=PENDING)])
        released = await watchlist.reconcile_and_release("USDT", [make_deposit("tx1", status=SUCCESS)])

        await watchlist.requeue(released[0])

        assert watchlist.is_watching("USDT", "tx1")
        assert _ids(watchlist.release_ready("USDT")) == ["tx1"]
