"""Fixed-period orchestrator feeding market batches into asset trackers."""

from __future__ import annotations

import asyncio
import time
from typing import Any, Awaitable, Callable

from exit_sentinel.chain_client import ChainClient
from exit_sentinel.errors import FeedError
from exit_sentinel.evaluator import describe
from exit_sentinel.market_feed import MarketDataSource
from exit_sentinel.models import MarketObservation
from exit_sentinel.tracker import AssetTracker


class PollLoop:
    def __init__(
        self,
        source: MarketDataSource,
        trackers: list[AssetTracker],
        chain_client: ChainClient | None = None,
        interval_sec: float = 7.0,
        logger: Any | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.source = source
        self.trackers = trackers
        self.chain_client = chain_client
        self.interval_sec = interval_sec
        self.logger = logger
        self.sleep = sleep
        self.clock = clock

    def all_terminal(self) -> bool:
        return all(tracker.is_terminal for tracker in self.trackers)

    async def run(self) -> int:
        """Cycle until every tracker is terminal, then return exit code 0."""
        while True:
            started = self.clock()
            try:
                if not await self.run_cycle():
                    break
            except Exception as exc:  # noqa: BLE001
                self._error("PollLoop cycle error: {}", exc)

            if self.all_terminal():
                break

            elapsed = self.clock() - started
            if elapsed > self.interval_sec:
                self._warning("PollLoop cycle took {:.2f}s (> {}s interval)", elapsed, self.interval_sec)
            await self.sleep(max(0.0, self.interval_sec - elapsed))

        self._info("All tracked assets liquidated. Bot stopping.")
        return 0

    async def run_cycle(self) -> bool:
        """Run one fetch/evaluate pass. Returns False when nothing is left to track."""
        for tracker in self.trackers:
            tracker.rearm()
        if self.all_terminal():
            return False

        try:
            observations = await self.source.fetch()
        except FeedError as exc:
            self._error(
                "Feed error (consecutive={} total={}): {}",
                self.source.health.consecutive_errors,
                self.source.health.total_errors,
                exc,
            )
            return True

        for tracker in self.trackers:
            if tracker.is_terminal:
                continue
            observation = next((obs for obs in observations if tracker.matches(obs.symbol)), None)
            if observation is None:
                self._info("{} not in latest trades", tracker.symbol)
                continue
            await self._drive(tracker, observation)

        return not self.all_terminal()

    async def _drive(self, tracker: AssetTracker, observation: MarketObservation) -> None:
        if self.chain_client is not None:
            self.chain_client.apply_market_price(observation.asset_id, observation.price)
        try:
            self._info("{}", describe(tracker.policy, observation))
            state = await tracker.on_observation(observation)
        except Exception as exc:  # noqa: BLE001
            self._error("PollLoop: tracker {} failed: {}", tracker.symbol, exc)
            return
        if tracker.is_terminal:
            self._info("PollLoop: {} reached terminal state {}", tracker.symbol, state.value)

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
