"""Per-asset state machine driving liquidation with bounded retries."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable

from exit_sentinel.errors import ExecutionError
from exit_sentinel.evaluator import evaluate
from exit_sentinel.executor import SwapExecutor
from exit_sentinel.models import (
    AlreadyLiquidated,
    AssetPolicy,
    MarketObservation,
    RetryPolicy,
    SellReason,
    TrackedAsset,
    TrackerState,
)


class AssetTracker:
    """Owns one TrackedAsset.

    WATCHING -> SELLING -> SOLD | ALREADY_SOLD | LIQUIDATION_FAILED.
    LIQUIDATION_FAILED is re-armed to WATCHING on the next cycle; SOLD and
    ALREADY_SOLD are final and never evaluated again.
    """

    def __init__(
        self,
        policy: AssetPolicy,
        executor: SwapExecutor,
        retry_policy: RetryPolicy,
        logger: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.asset = TrackedAsset(policy=policy)
        self.executor = executor
        self.retry_policy = retry_policy
        self.logger = logger
        self.sleep = sleep

    @property
    def policy(self) -> AssetPolicy:
        return self.asset.policy

    @property
    def symbol(self) -> str:
        return self.asset.policy.symbol

    @property
    def state(self) -> TrackerState:
        return self.asset.state

    @property
    def is_terminal(self) -> bool:
        return self.asset.is_terminal

    def matches(self, symbol: str) -> bool:
        return symbol.strip().upper() == self.asset.policy.key

    def rearm(self) -> None:
        if self.asset.state is TrackerState.LIQUIDATION_FAILED:
            self.asset.state = TrackerState.WATCHING
            self.asset.retry_count = 0
            self.asset.trigger_reason = None
            self._info("Tracker {}: re-armed after failed liquidation", self.symbol)

    async def on_observation(self, observation: MarketObservation) -> TrackerState:
        if self.is_terminal:
            return self.asset.state
        self.rearm()

        self.asset.last_price = observation.price
        self.asset.asset_id = observation.asset_id

        decision = evaluate(self.asset.policy, observation.price)
        if not decision.is_sell:
            return self.asset.state

        self._warning(
            "Tracker {}: {} triggered at price={} (tp={} sl={})",
            self.symbol,
            decision.reason.value,
            observation.price,
            self.policy.take_profit_price,
            self.policy.stop_loss_price,
        )
        return await self._liquidate(observation.asset_id, decision.reason)

    async def _liquidate(self, asset_id: str, reason: SellReason) -> TrackerState:
        asset = self.asset
        asset.state = TrackerState.SELLING
        asset.trigger_reason = reason
        max_attempts = self.retry_policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            asset.retry_count = attempt
            try:
                result = await self.executor.liquidate(asset_id)
            except ExecutionError as exc:
                asset.last_error = str(exc)
                self._error(
                    "Tracker {}: attempt {}/{} failed step={} tx={} err={}",
                    self.symbol,
                    attempt,
                    max_attempts,
                    exc.step.value,
                    exc.tx_hash,
                    exc,
                )
            except Exception as exc:  # noqa: BLE001
                asset.last_error = str(exc)
                self._error("Tracker {}: attempt {}/{} crashed err={}", self.symbol, attempt, max_attempts, exc)
            else:
                if isinstance(result, AlreadyLiquidated):
                    asset.state = TrackerState.ALREADY_SOLD
                    asset.terminal_reason = "already_liquidated"
                    self._info("Tracker {}: nothing left to sell, marking already sold", self.symbol)
                else:
                    asset.state = TrackerState.SOLD
                    asset.terminal_reason = reason.value
                    asset.confirmation = result
                    self._info(
                        "Tracker {}: SOLD ALL reason={} tx={} block={}",
                        self.symbol,
                        reason.value,
                        result.tx_hash,
                        result.block_number,
                    )
                return asset.state

            if attempt < max_attempts:
                await self.sleep(self.retry_policy.delay_for(attempt))

        asset.state = TrackerState.LIQUIDATION_FAILED
        asset.failed_events += 1
        self._error(
            "Tracker {}: liquidation failed after {} attempts, will retry on next trigger",
            self.symbol,
            max_attempts,
        )
        return asset.state

    def _info(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "info"):
            self.logger.info(message, *args)

    def _warning(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "warning"):
            self.logger.warning(message, *args)
        elif self.logger is not None and hasattr(self.logger, "info"):
            self.logger.info(message, *args)

    def _error(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "error"):
            self.logger.error(message, *args)
