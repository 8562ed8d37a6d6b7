"""Exception types shared by the feed, quoter and executor."""

from __future__ import annotations

from enum import Enum


class ConfigError(ValueError):
    """Raised at startup when configuration or credentials are unusable."""


class PolicyError(ValueError):
    """Raised when an asset policy violates stop_loss < entry < take_profit."""


class FeedError(RuntimeError):
    """Transport or payload-shape failure of the market feed."""


class TransactionFailed(RuntimeError):
    """A submitted transaction reverted or its receipt never arrived."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class ExecutionStep(str, Enum):
    BALANCE = "balance"
    QUOTE = "quote"
    ALLOWANCE = "allowance"
    APPROVE = "approve"
    SWAP = "swap"


class ExecutionError(RuntimeError):
    def __init__(
        self,
        step: ExecutionStep,
        message: str,
        asset_id: str | None = None,
        tx_hash: str | None = None,
    ) -> None:
        super().__init__(message)
        self.step = step
        self.asset_id = asset_id
        self.tx_hash = tx_hash

    def __str__(self) -> str:
        text = f"[{self.step.value}] {self.args[0]}"
        if self.tx_hash:
            text += f" tx={self.tx_hash}"
        return text


class QuoteUnavailable(ExecutionError):
    def __init__(self, message: str, asset_id: str | None = None) -> None:
        super().__init__(ExecutionStep.QUOTE, message, asset_id=asset_id)
