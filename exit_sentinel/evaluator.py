"""Take-profit / stop-loss threshold evaluation."""

from __future__ import annotations

from decimal import Decimal

from exit_sentinel.models import HOLD, Action, AssetPolicy, Decision, MarketObservation, SellReason


def evaluate(policy: AssetPolicy, current_price: Decimal) -> Decision:
    """Return SELL when a threshold is crossed; take-profit is checked first."""
    price = Decimal(str(current_price))
    if price < 0:
        raise ValueError(f"price must be >= 0, got {price}")
    if price >= policy.take_profit_price:
        return Decision(Action.SELL, SellReason.TAKE_PROFIT)
    if price <= policy.stop_loss_price:
        return Decision(Action.SELL, SellReason.STOP_LOSS)
    return HOLD


def describe(policy: AssetPolicy, observation: MarketObservation) -> str:
    pct = observation.percent_change
    sign = "+" if pct >= 0 else ""
    ratio = observation.price / policy.entry_price
    line = f"{observation.symbol} | ${observation.price} | {sign}{pct:.2f}% | {ratio:.2f}x"

    decision = evaluate(policy, observation.price)
    if decision.reason is SellReason.TAKE_PROFIT:
        line += " <<< TAKE PROFIT"
    elif decision.reason is SellReason.STOP_LOSS:
        line += " <<< STOP LOSS"
    return line
