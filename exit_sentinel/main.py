"""Application entrypoint."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from exit_sentinel.chain_client import ChainClient
from exit_sentinel.config import AppConfig, load_config
from exit_sentinel.executor import SwapExecutor
from exit_sentinel.logger import setup_logger
from exit_sentinel.market_feed import MarketDataSource
from exit_sentinel.poll_loop import PollLoop
from exit_sentinel.quoter import RouteQuoter
from exit_sentinel.tracker import AssetTracker

ROOT_DIR = Path(__file__).resolve().parents[1]


def build_loop(config: AppConfig, chain_client: ChainClient, logger) -> PollLoop:
    quoter = RouteQuoter(chain_client, config.contracts, config.execution.slippage_bps)
    executor = SwapExecutor(
        chain_client=chain_client,
        quoter=quoter,
        deadline_sec=config.execution.deadline_sec,
        logger=logger,
    )
    retry_policy = config.execution.retry_policy()
    trackers = [
        AssetTracker(policy=policy, executor=executor, retry_policy=retry_policy, logger=logger)
        for policy in config.policies()
    ]
    return PollLoop(
        source=MarketDataSource(config.feed, logger=logger),
        trackers=trackers,
        chain_client=chain_client,
        interval_sec=config.polling.interval_sec,
        logger=logger,
    )


async def run(config_path: Path | None = None) -> int:
    logger = setup_logger(ROOT_DIR / "logs")

    try:
        config = load_config(config_path or ROOT_DIR / "config.yml")
        chain_client = ChainClient(config, logger=logger)
    except ValueError as exc:  # ConfigError or a malformed private key
        logger.error("Startup aborted: {}", exc)
        return 0

    loop = build_loop(config, chain_client, logger)

    logger.info("Wallet: {} mode={}", chain_client.address, config.mode)
    for tracker in loop.trackers:
        policy = tracker.policy
        logger.info(
            "Take profit: sell all {} when price >= ${} ({}x)",
            policy.symbol,
            policy.take_profit_price,
            policy.take_profit_multiplier,
        )
        logger.info(
            "Stop loss:   sell all {} when price <= ${} (-{}%)",
            policy.symbol,
            policy.stop_loss_price,
            policy.stop_loss_fraction * 100,
        )
    logger.info("Polling every {}s...", config.polling.interval_sec)

    if not await chain_client.test_connection():
        logger.warning("RPC connection check failed; continuing, attempts will be retried")

    try:
        return await loop.run()
    finally:
        await logger.complete()


def main() -> None:
    try:
        code = asyncio.run(run())
    except KeyboardInterrupt:
        code = 0
    sys.exit(code)


if __name__ == "__main__":
    main()
