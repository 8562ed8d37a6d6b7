"""Unified ledger client wrapper (paper/live)."""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from eth_account import Account
from web3 import Web3

from exit_sentinel.abi import ERC20_ABI, LENS_ABI, ROUTER_ABI
from exit_sentinel.config import AppConfig, ContractsConfig, PaperConfig
from exit_sentinel.errors import TransactionFailed

PAPER_ACCOUNT = "0x000000000000000000000000000000000000dEaD"


@dataclass(slots=True)
class TxReceipt:
    tx_hash: str
    block_number: int
    gas_used: int = 0


class PaperLedger:
    """In-memory ledger that prices lens quotes from the last observed feed price."""

    def __init__(self, contracts: ContractsConfig, paper: PaperConfig, account: str = PAPER_ACCOUNT) -> None:
        self.contracts = contracts
        self.paper = paper
        self.address = account
        self.native_balance = 0
        self._balances: dict[str, int] = {}
        self._allowances: dict[tuple[str, str], int] = {}
        self._prices: dict[str, Decimal] = {}
        self._block = 1
        self._lock = asyncio.Lock()

    async def test_connection(self) -> bool:
        return True

    def set_balance(self, token: str, amount: int) -> None:
        self._balances[token.lower()] = int(amount)

    async def balance_of(self, token: str) -> int:
        return self._balances.setdefault(token.lower(), self.paper.initial_balance)

    async def allowance(self, token: str, spender: str) -> int:
        return self._allowances.get((token.lower(), spender.lower()), 0)

    async def decimals(self, token: str) -> int:
        return self.paper.token_decimals

    async def symbol(self, token: str) -> str:
        return token[:8].upper()

    async def get_amount_out(self, token: str, amount_in: int, is_buy: bool = False) -> tuple[str, int]:
        price = self._prices.get(token.lower())
        if price is None:
            raise ValueError("market price unavailable")
        units = Decimal(amount_in) / (Decimal(10) ** self.paper.token_decimals)
        native = units * price / self.paper.native_price_usd
        return self.contracts.bonding_curve_router, int(native * (Decimal(10) ** 18))

    async def approve(self, token: str, spender: str, amount: int) -> TxReceipt:
        async with self._lock:
            self._allowances[(token.lower(), spender.lower())] = int(amount)
            return self._next_receipt()

    async def sell(
        self,
        router: str,
        token: str,
        amount_in: int,
        amount_out_min: int,
        recipient: str,
        deadline: int,
    ) -> TxReceipt:
        async with self._lock:
            tx_hash = self._tx_hash()
            key = token.lower()
            if deadline < int(time.time()):
                raise TransactionFailed("reverted: deadline expired", tx_hash=tx_hash)
            if self._allowances.get((key, router.lower()), 0) < amount_in:
                raise TransactionFailed("reverted: insufficient allowance", tx_hash=tx_hash)
            if self._balances.get(key, 0) < amount_in:
                raise TransactionFailed("reverted: insufficient balance", tx_hash=tx_hash)

            _, amount_out = await self.get_amount_out(token, amount_in)
            if amount_out < amount_out_min:
                raise TransactionFailed("reverted: slippage exceeded", tx_hash=tx_hash)

            self._balances[key] -= amount_in
            self._allowances[(key, router.lower())] -= amount_in
            self.native_balance += amount_out
            return self._next_receipt(tx_hash)

    def apply_market_price(self, token: str, price: Decimal) -> None:
        self._prices[token.lower()] = Decimal(price)

    def _tx_hash(self) -> str:
        return "0x" + uuid.uuid4().hex + uuid.uuid4().hex

    def _next_receipt(self, tx_hash: str | None = None) -> TxReceipt:
        self._block += 1
        return TxReceipt(tx_hash=tx_hash or self._tx_hash(), block_number=self._block)


class Web3Ledger:
    """Signs and submits transactions through a JSON-RPC node."""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        contracts: ContractsConfig,
        chain_id: int | None = None,
        receipt_timeout_sec: int = 120,
        logger: Any | None = None,
    ) -> None:
        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.contracts = contracts
        self.chain_id = chain_id
        self.receipt_timeout_sec = receipt_timeout_sec
        self.logger = logger
        self._lock = asyncio.Lock()
        self._lens = self.w3.eth.contract(address=self._checksum(contracts.lens), abi=LENS_ABI)

    async def test_connection(self) -> bool:
        try:
            await asyncio.to_thread(lambda: self.w3.eth.block_number)
            return True
        except Exception as exc:  # noqa: BLE001
            self._log_error("test_connection", exc)
            return False

    async def balance_of(self, token: str) -> int:
        contract = self._token(token)
        return int(await asyncio.to_thread(contract.functions.balanceOf(self.address).call))

    async def allowance(self, token: str, spender: str) -> int:
        contract = self._token(token)
        call = contract.functions.allowance(self.address, self._checksum(spender)).call
        return int(await asyncio.to_thread(call))

    async def decimals(self, token: str) -> int:
        return int(await asyncio.to_thread(self._token(token).functions.decimals().call))

    async def symbol(self, token: str) -> str:
        return str(await asyncio.to_thread(self._token(token).functions.symbol().call))

    async def get_amount_out(self, token: str, amount_in: int, is_buy: bool = False) -> tuple[str, int]:
        call = self._lens.functions.getAmountOut(self._checksum(token), int(amount_in), is_buy).call
        router, amount_out = await asyncio.to_thread(call)
        return str(router), int(amount_out)

    async def approve(self, token: str, spender: str, amount: int) -> TxReceipt:
        fn = self._token(token).functions.approve(self._checksum(spender), int(amount))
        return await self._transact(fn)

    async def sell(
        self,
        router: str,
        token: str,
        amount_in: int,
        amount_out_min: int,
        recipient: str,
        deadline: int,
    ) -> TxReceipt:
        contract = self.w3.eth.contract(address=self._checksum(router), abi=ROUTER_ABI)
        params = (
            int(amount_in),
            int(amount_out_min),
            self._checksum(token),
            self._checksum(recipient),
            int(deadline),
        )
        return await self._transact(contract.functions.sell(params))

    def apply_market_price(self, token: str, price: Decimal) -> None:
        return None

    async def _transact(self, fn) -> TxReceipt:
        async with self._lock:
            return await asyncio.to_thread(self._transact_sync, fn)

    def _transact_sync(self, fn) -> TxReceipt:
        nonce = self.w3.eth.get_transaction_count(self.address, "pending")
        chain_id = self.chain_id or self.w3.eth.chain_id
        tx = fn.build_transaction({"from": self.address, "nonce": nonce, "chainId": chain_id})
        signed = self.account.sign_transaction(tx)
        tx_hash = Web3.to_hex(self.w3.eth.send_raw_transaction(signed.raw_transaction))
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout_sec)
        except Exception as exc:  # noqa: BLE001
            raise TransactionFailed(f"receipt not available: {exc}", tx_hash=tx_hash) from exc
        if int(receipt["status"]) != 1:
            raise TransactionFailed(f"reverted in block {receipt['blockNumber']}", tx_hash=tx_hash)
        return TxReceipt(
            tx_hash=tx_hash,
            block_number=int(receipt["blockNumber"]),
            gas_used=int(receipt.get("gasUsed") or 0),
        )

    def _token(self, token: str):
        return self.w3.eth.contract(address=self._checksum(token), abi=ERC20_ABI)

    def _checksum(self, address: str) -> str:
        return self.w3.to_checksum_address(address)

    def _log_error(self, scope: str, exc: Exception) -> None:
        if self.logger is not None and hasattr(self.logger, "error"):
            self.logger.error("RPC client error [{}]: {}", scope, exc)


class ChainClient:
    """Common wrapper so callers do not depend on paper/live implementation."""

    def __init__(self, config: AppConfig, logger: Any | None = None) -> None:
        self.mode = config.mode
        self.contracts = config.contracts
        if config.mode == "live":
            chain = config.chain
            if not chain.rpc_url or not chain.private_key:
                raise ValueError("Live mode requires rpc_url and private_key")
            self._client: Any = Web3Ledger(
                rpc_url=chain.rpc_url,
                private_key=chain.private_key,
                contracts=config.contracts,
                chain_id=chain.chain_id,
                receipt_timeout_sec=chain.receipt_timeout_sec,
                logger=logger,
            )
        else:
            self._client = PaperLedger(contracts=config.contracts, paper=config.paper)

    @property
    def address(self) -> str:
        return self._client.address

    @property
    def paper(self) -> PaperLedger | None:
        return self._client if isinstance(self._client, PaperLedger) else None

    async def test_connection(self) -> bool:
        return await self._client.test_connection()

    async def balance_of(self, token: str) -> int:
        return await self._client.balance_of(token)

    async def allowance(self, token: str, spender: str) -> int:
        return await self._client.allowance(token, spender)

    async def decimals(self, token: str) -> int:
        return await self._client.decimals(token)

    async def symbol(self, token: str) -> str:
        return await self._client.symbol(token)

    async def get_amount_out(self, token: str, amount_in: int, is_buy: bool = False) -> tuple[str, int]:
        return await self._client.get_amount_out(token, amount_in, is_buy)

    async def approve(self, token: str, spender: str, amount: int) -> TxReceipt:
        return await self._client.approve(token, spender, amount)

    async def sell(
        self,
        router: str,
        token: str,
        amount_in: int,
        amount_out_min: int,
        recipient: str,
        deadline: int,
    ) -> TxReceipt:
        return await self._client.sell(router, token, amount_in, amount_out_min, recipient, deadline)

    def apply_market_price(self, token: str, price: Decimal) -> None:
        if hasattr(self._client, "apply_market_price"):
            self._client.apply_market_price(token, price)
