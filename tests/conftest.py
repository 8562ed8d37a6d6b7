"""Shared fixtures for exit-sentinel tests."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from exit_sentinel.chain_client import ChainClient, TxReceipt
from exit_sentinel.config import AppConfig
from exit_sentinel.models import AssetPolicy

TOKEN_A = "0x" + "11" * 20
TOKEN_B = "0x" + "22" * 20
BONDING = "0x6F6B8F1a20703309951a5127c45B49b1CD981A22"
DEX = "0x0B79d71AE99528D1dB24A4148b5f4F865cc2b137"


class SleepRecorder:
    """Awaitable stand-in for asyncio.sleep that records requested delays."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


@pytest.fixture
def app_config():
    return AppConfig.model_validate(
        {
            "mode": "paper",
            "execution": {"slippage_bps": 100, "max_attempts": 3, "backoff_unit_sec": 2},
            "assets": [
                {
                    "symbol": "TCG",
                    "entry_price": "0.0001",
                    "take_profit_multiplier": "2.5",
                    "stop_loss_fraction": "0.2",
                },
                {
                    "symbol": "MOON",
                    "entry_price": "0.5",
                    "take_profit_multiplier": "3",
                    "stop_loss_fraction": "0.5",
                },
            ],
        }
    )


@pytest.fixture
def policy():
    return AssetPolicy(
        symbol="TCG",
        entry_price=Decimal("0.0001"),
        take_profit_multiplier=Decimal("2.5"),
        stop_loss_fraction=Decimal("0.2"),
    )


@pytest.fixture
def paper_client(app_config):
    return ChainClient(app_config)


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def mock_chain():
    """Chain client double with a healthy default path through every step."""
    chain = MagicMock(spec=ChainClient)
    chain.address = "0x" + "aa" * 20
    chain.balance_of = AsyncMock(return_value=5_000)
    chain.allowance = AsyncMock(return_value=0)
    chain.get_amount_out = AsyncMock(return_value=(BONDING, 10_000))
    chain.approve = AsyncMock(return_value=TxReceipt(tx_hash="0xapprove", block_number=10))
    chain.sell = AsyncMock(return_value=TxReceipt(tx_hash="0xsell", block_number=11))
    return chain
