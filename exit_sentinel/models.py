"""Domain models for threshold tracking and liquidation."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from exit_sentinel.errors import PolicyError


class SellReason(str, Enum):
    TAKE_PROFIT = "take_profit"
    STOP_LOSS = "stop_loss"


class Action(str, Enum):
    HOLD = "hold"
    SELL = "sell"


class TrackerState(str, Enum):
    WATCHING = "watching"
    SELLING = "selling"
    SOLD = "sold"
    ALREADY_SOLD = "already_sold"
    LIQUIDATION_FAILED = "liquidation_failed"


TERMINAL_STATES = frozenset({TrackerState.SOLD, TrackerState.ALREADY_SOLD})


class RouterKind(str, Enum):
    BONDING_CURVE = "bonding_curve"
    DEX = "dex"


@dataclass(frozen=True, slots=True)
class AssetPolicy:
    symbol: str
    entry_price: Decimal
    take_profit_multiplier: Decimal
    stop_loss_fraction: Decimal
    take_profit_price: Decimal = field(init=False)
    stop_loss_price: Decimal = field(init=False)

    def __post_init__(self) -> None:
        symbol = (self.symbol or "").strip()
        if not symbol:
            raise PolicyError("symbol must not be empty")
        entry = Decimal(str(self.entry_price))
        multiplier = Decimal(str(self.take_profit_multiplier))
        fraction = Decimal(str(self.stop_loss_fraction))
        if entry <= 0:
            raise PolicyError(f"{symbol}: entry_price must be positive, got {entry}")
        if multiplier <= 1:
            raise PolicyError(f"{symbol}: take_profit_multiplier must be > 1, got {multiplier}")
        if not 0 < fraction < 1:
            raise PolicyError(f"{symbol}: stop_loss_fraction must be in (0, 1), got {fraction}")

        take_profit = entry * multiplier
        stop_loss = entry * (1 - fraction)
        if not stop_loss < entry < take_profit:
            raise PolicyError(f"{symbol}: expected stop_loss < entry < take_profit")

        object.__setattr__(self, "symbol", symbol)
        object.__setattr__(self, "entry_price", entry)
        object.__setattr__(self, "take_profit_multiplier", multiplier)
        object.__setattr__(self, "stop_loss_fraction", fraction)
        object.__setattr__(self, "take_profit_price", take_profit)
        object.__setattr__(self, "stop_loss_price", stop_loss)

    @property
    def key(self) -> str:
        return self.symbol.upper()


@dataclass(slots=True)
class MarketObservation:
    symbol: str
    asset_id: str
    price: Decimal
    percent_change: Decimal = Decimal("0")


@dataclass(frozen=True, slots=True)
class Decision:
    action: Action
    reason: SellReason | None = None

    @property
    def is_sell(self) -> bool:
        return self.action is Action.SELL


HOLD = Decision(Action.HOLD)


@dataclass(frozen=True, slots=True)
class Quote:
    router: RouterKind
    router_address: str
    expected_output: int
    min_output: int


@dataclass(frozen=True, slots=True)
class SellRequest:
    asset_id: str
    amount: int
    min_output: int
    deadline: int
    recipient: str
    quote: Quote


@dataclass(frozen=True, slots=True)
class Confirmation:
    asset_id: str
    block_number: int
    tx_hash: str
    router: RouterKind
    amount_in: int
    min_output: int
    expected_output: int
    approval_tx_hash: str | None = None


@dataclass(frozen=True, slots=True)
class AlreadyLiquidated:
    asset_id: str


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """Fixed attempt budget with linear backoff between attempts."""

    max_attempts: int = 3
    backoff_unit_sec: float = 5.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.backoff_unit_sec < 0:
            raise ValueError("backoff_unit_sec must be >= 0")

    def delay_for(self, attempt: int) -> float:
        return attempt * self.backoff_unit_sec


@dataclass(slots=True)
class TrackedAsset:
    policy: AssetPolicy
    state: TrackerState = TrackerState.WATCHING
    retry_count: int = 0
    last_price: Decimal | None = None
    terminal_reason: str | None = None
    asset_id: str | None = None
    trigger_reason: SellReason | None = None
    last_error: str | None = None
    failed_events: int = 0
    confirmation: Confirmation | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
