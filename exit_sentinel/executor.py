"""Balance check, approval and routed sell for a single liquidation attempt."""

from __future__ import annotations

import time
from typing import Any, Callable

from exit_sentinel.chain_client import ChainClient
from exit_sentinel.errors import ExecutionError, ExecutionStep, TransactionFailed
from exit_sentinel.models import AlreadyLiquidated, Confirmation, SellRequest
from exit_sentinel.quoter import RouteQuoter


class SwapExecutor:
    """Runs one attempt end to end.

    Balance and allowance are read on every attempt because a previous
    attempt may have approved but not sold, or someone may have sold the
    position out-of-band in the meantime.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        quoter: RouteQuoter,
        deadline_sec: int = 300,
        logger: Any | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.chain_client = chain_client
        self.quoter = quoter
        self.deadline_sec = deadline_sec
        self.logger = logger
        self.clock = clock

    async def liquidate(
        self,
        asset_id: str,
        amount: int | None = None,
        slippage_bps: int | None = None,
    ) -> Confirmation | AlreadyLiquidated:
        request = await self.prepare(asset_id, amount=amount, slippage_bps=slippage_bps)
        if isinstance(request, AlreadyLiquidated):
            return request
        return await self.execute(request)

    async def prepare(
        self,
        asset_id: str,
        amount: int | None = None,
        slippage_bps: int | None = None,
    ) -> SellRequest | AlreadyLiquidated:
        try:
            balance = await self.chain_client.balance_of(asset_id)
        except Exception as exc:  # noqa: BLE001
            raise ExecutionError(ExecutionStep.BALANCE, f"balance read failed: {exc}", asset_id=asset_id) from exc

        if balance <= 0:
            self._info("Executor: no balance to sell asset={}", asset_id)
            return AlreadyLiquidated(asset_id=asset_id)

        sell_amount = balance if amount is None else int(amount)
        if sell_amount <= 0 or sell_amount > balance:
            raise ExecutionError(
                ExecutionStep.BALANCE,
                f"requested amount {sell_amount} not within balance {balance}",
                asset_id=asset_id,
            )

        quote = await self.quoter.quote(asset_id, sell_amount, slippage_bps=slippage_bps)
        self._info(
            "Executor: asset={} amount={} expected_out={} min_out={} router={}",
            asset_id,
            sell_amount,
            quote.expected_output,
            quote.min_output,
            quote.router.value,
        )
        return SellRequest(
            asset_id=asset_id,
            amount=sell_amount,
            min_output=quote.min_output,
            deadline=int(self.clock()) + self.deadline_sec,
            recipient=self.chain_client.address,
            quote=quote,
        )

    async def execute(self, request: SellRequest) -> Confirmation:
        router_address = request.quote.router_address
        approval_tx_hash = await self._ensure_allowance(request)

        try:
            receipt = await self.chain_client.sell(
                router=router_address,
                token=request.asset_id,
                amount_in=request.amount,
                amount_out_min=request.min_output,
                recipient=request.recipient,
                deadline=request.deadline,
            )
        except TransactionFailed as exc:
            raise ExecutionError(
                ExecutionStep.SWAP, f"sell failed: {exc}", asset_id=request.asset_id, tx_hash=exc.tx_hash
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise ExecutionError(ExecutionStep.SWAP, f"sell failed: {exc}", asset_id=request.asset_id) from exc

        self._info("Executor: sell confirmed asset={} tx={} block={}", request.asset_id, receipt.tx_hash, receipt.block_number)
        return Confirmation(
            asset_id=request.asset_id,
            block_number=receipt.block_number,
            tx_hash=receipt.tx_hash,
            router=request.quote.router,
            amount_in=request.amount,
            min_output=request.min_output,
            expected_output=request.quote.expected_output,
            approval_tx_hash=approval_tx_hash,
        )

    async def _ensure_allowance(self, request: SellRequest) -> str | None:
        spender = request.quote.router_address
        try:
            current = await self.chain_client.allowance(request.asset_id, spender)
        except Exception as exc:  # noqa: BLE001
            raise ExecutionError(
                ExecutionStep.ALLOWANCE, f"allowance read failed: {exc}", asset_id=request.asset_id
            ) from exc

        if current >= request.amount:
            return None

        self._info("Executor: approving asset={} spender={} amount={}", request.asset_id, spender, request.amount)
        try:
            receipt = await self.chain_client.approve(request.asset_id, spender, request.amount)
        except TransactionFailed as exc:
            raise ExecutionError(
                ExecutionStep.APPROVE, f"approve failed: {exc}", asset_id=request.asset_id, tx_hash=exc.tx_hash
            ) from exc
        except Exception as exc:  # noqa: BLE001
            raise ExecutionError(ExecutionStep.APPROVE, f"approve failed: {exc}", asset_id=request.asset_id) from exc

        self._info("Executor: approved asset={} tx={}", request.asset_id, receipt.tx_hash)
        return receipt.tx_hash

    def _info(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "info"):
            self.logger.info(message, *args)
