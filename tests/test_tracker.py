import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from exit_sentinel.errors import ExecutionError, ExecutionStep, QuoteUnavailable
from exit_sentinel.executor import SwapExecutor
from exit_sentinel.models import (
    AlreadyLiquidated,
    Confirmation,
    MarketObservation,
    RetryPolicy,
    RouterKind,
    SellReason,
    TrackerState,
)
from exit_sentinel.tracker import AssetTracker

from tests.conftest import TOKEN_A

CONFIRMATION = Confirmation(
    asset_id=TOKEN_A,
    block_number=42,
    tx_hash="0xsell",
    router=RouterKind.DEX,
    amount_in=100,
    min_output=99,
    expected_output=100,
)


def make_tracker(policy, sleep_recorder, outcomes, max_attempts=3):
    executor = MagicMock(spec=SwapExecutor)
    executor.liquidate = AsyncMock(side_effect=outcomes)
    tracker = AssetTracker(
        policy=policy,
        executor=executor,
        retry_policy=RetryPolicy(max_attempts=max_attempts, backoff_unit_sec=2),
        sleep=sleep_recorder,
    )
    return tracker, executor


def observe(price, symbol="tcg"):
    return MarketObservation(symbol=symbol, asset_id=TOKEN_A, price=Decimal(price))


def test_hold_keeps_watching(policy, sleep_recorder):
    tracker, executor = make_tracker(policy, sleep_recorder, [])
    state = asyncio.run(tracker.on_observation(observe("0.0001")))

    assert state is TrackerState.WATCHING
    assert tracker.asset.last_price == Decimal("0.0001")
    executor.liquidate.assert_not_awaited()


def test_take_profit_sells_and_becomes_terminal(policy, sleep_recorder):
    tracker, executor = make_tracker(policy, sleep_recorder, [CONFIRMATION])
    state = asyncio.run(tracker.on_observation(observe("0.00026")))

    assert state is TrackerState.SOLD
    assert tracker.is_terminal
    assert tracker.asset.terminal_reason == SellReason.TAKE_PROFIT.value
    assert tracker.asset.confirmation is CONFIRMATION
    executor.liquidate.assert_awaited_once_with(TOKEN_A)
    assert sleep_recorder.delays == []


def test_already_liquidated_is_terminal(policy, sleep_recorder):
    tracker, _ = make_tracker(policy, sleep_recorder, [AlreadyLiquidated(TOKEN_A)])
    state = asyncio.run(tracker.on_observation(observe("0.00001")))

    assert state is TrackerState.ALREADY_SOLD
    assert tracker.asset.trigger_reason is SellReason.STOP_LOSS
    assert tracker.is_terminal


def test_retry_bound_then_failed_then_rearmed(policy, sleep_recorder):
    error = ExecutionError(ExecutionStep.SWAP, "reverted", asset_id=TOKEN_A, tx_hash="0xbad")
    tracker, executor = make_tracker(policy, sleep_recorder, [error] * 3)

    state = asyncio.run(tracker.on_observation(observe("0.00026")))

    assert state is TrackerState.LIQUIDATION_FAILED
    assert not tracker.is_terminal
    assert executor.liquidate.await_count == 3
    assert sleep_recorder.delays == [2, 4]
    assert tracker.asset.retry_count == 3
    assert tracker.asset.failed_events == 1
    assert "0xbad" in tracker.asset.last_error

    tracker.rearm()
    assert tracker.state is TrackerState.WATCHING
    assert tracker.asset.retry_count == 0


def test_failed_tracker_retries_on_next_trigger(policy, sleep_recorder):
    failure = QuoteUnavailable("zero output", asset_id=TOKEN_A)
    tracker, executor = make_tracker(policy, sleep_recorder, [failure, failure, CONFIRMATION], max_attempts=2)

    assert asyncio.run(tracker.on_observation(observe("0.00026"))) is TrackerState.LIQUIDATION_FAILED
    assert asyncio.run(tracker.on_observation(observe("0.00030"))) is TrackerState.SOLD
    assert executor.liquidate.await_count == 3


def test_failed_tracker_holding_price_returns_to_watching(policy, sleep_recorder):
    failure = ExecutionError(ExecutionStep.APPROVE, "timeout")
    tracker, _ = make_tracker(policy, sleep_recorder, [failure], max_attempts=1)

    asyncio.run(tracker.on_observation(observe("0.00026")))
    assert asyncio.run(tracker.on_observation(observe("0.0001"))) is TrackerState.WATCHING


def test_unexpected_exception_counts_as_failed_attempt(policy, sleep_recorder):
    tracker, executor = make_tracker(policy, sleep_recorder, [KeyError("boom"), CONFIRMATION])
    assert asyncio.run(tracker.on_observation(observe("0.00026"))) is TrackerState.SOLD
    assert executor.liquidate.await_count == 2
    assert sleep_recorder.delays == [2]


def test_terminal_tracker_is_never_reevaluated(policy, sleep_recorder):
    tracker, executor = make_tracker(policy, sleep_recorder, [CONFIRMATION])
    asyncio.run(tracker.on_observation(observe("0.00026")))

    for price in ("0.00001", "0.0009", "0.0001"):
        assert asyncio.run(tracker.on_observation(observe(price))) is TrackerState.SOLD

    executor.liquidate.assert_awaited_once()
    assert tracker.asset.last_price == Decimal("0.00026")


def test_symbol_matching_is_case_insensitive(policy, sleep_recorder):
    tracker, _ = make_tracker(policy, sleep_recorder, [])
    assert tracker.matches("tcg")
    assert tracker.matches(" TcG ")
    assert not tracker.matches("TCGX")
