"""Sell exactly one whole token to verify routing and approvals end to end."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

from exit_sentinel.chain_client import ChainClient
from exit_sentinel.config import AppConfig, load_config
from exit_sentinel.errors import ExecutionError
from exit_sentinel.executor import SwapExecutor
from exit_sentinel.logger import setup_logger
from exit_sentinel.models import AlreadyLiquidated
from exit_sentinel.quoter import RouteQuoter

ROOT_DIR = Path(__file__).resolve().parents[1]


async def smoke_sell(config: AppConfig, chain_client: ChainClient, logger) -> int:
    token = config.smoke_sell.token_address
    try:
        symbol, decimals, balance = await asyncio.gather(
            chain_client.symbol(token),
            chain_client.decimals(token),
            chain_client.balance_of(token),
        )
    except Exception as exc:  # noqa: BLE001
        logger.error("Sell failed: could not read token {}: {}", token, exc)
        return 1
    logger.info("Token: {} ({} decimals) balance={}", symbol, decimals, balance)

    if balance == 0:
        logger.info("No {} tokens in wallet. Nothing to sell.", symbol)
        return 0

    amount = 10**decimals
    if amount > balance:
        logger.error("Balance too low to sell 1 {}. You have {} base units", symbol, balance)
        return 1

    quoter = RouteQuoter(chain_client, config.contracts, config.smoke_sell.slippage_bps)
    executor = SwapExecutor(chain_client, quoter, deadline_sec=config.execution.deadline_sec, logger=logger)
    try:
        result = await executor.liquidate(token, amount=amount)
    except ExecutionError as exc:
        logger.error("Sell failed: {}", exc)
        return 1

    if isinstance(result, AlreadyLiquidated):
        logger.info("Balance vanished before the sell. Nothing to do.")
        return 0

    logger.info(
        "Test sell of 1 {} complete via {} tx={} block={}",
        symbol,
        result.router.value,
        result.tx_hash,
        result.block_number,
    )
    return 0


async def run(config_path: Path | None = None) -> int:
    logger = setup_logger(ROOT_DIR / "logs")
    try:
        config = load_config(config_path or ROOT_DIR / "config.yml")
        chain_client = ChainClient(config, logger=logger)
    except ValueError as exc:  # ConfigError or a malformed private key
        logger.error("Startup aborted: {}", exc)
        return 0

    logger.info("Wallet: {} mode={}", chain_client.address, config.mode)
    if chain_client.paper is not None:
        chain_client.apply_market_price(config.smoke_sell.token_address, config.smoke_sell.paper_price_usd)
    try:
        return await smoke_sell(config, chain_client, logger)
    finally:
        await logger.complete()


def main() -> None:
    sys.exit(asyncio.run(run()))


if __name__ == "__main__":
    main()
