"""Route quotes for sell-side swaps."""

from __future__ import annotations

from exit_sentinel.chain_client import ChainClient
from exit_sentinel.config import ContractsConfig
from exit_sentinel.errors import QuoteUnavailable
from exit_sentinel.models import Quote, RouterKind

BPS_DENOMINATOR = 10_000


def min_output_for(expected_output: int, slippage_bps: int) -> int:
    if not 0 <= slippage_bps <= BPS_DENOMINATOR:
        raise ValueError(f"slippage_bps must be within 0..{BPS_DENOMINATOR}, got {slippage_bps}")
    return (int(expected_output) * (BPS_DENOMINATOR - slippage_bps)) // BPS_DENOMINATOR


class RouteQuoter:
    """Asks the lens which router takes the sell and what it pays. Never cached."""

    def __init__(self, chain_client: ChainClient, contracts: ContractsConfig, slippage_bps: int) -> None:
        self.chain_client = chain_client
        self.slippage_bps = slippage_bps
        self._routers = {
            contracts.bonding_curve_router.lower(): RouterKind.BONDING_CURVE,
            contracts.dex_router.lower(): RouterKind.DEX,
        }

    async def quote(self, asset_id: str, amount: int, slippage_bps: int | None = None) -> Quote:
        try:
            router_address, expected_output = await self.chain_client.get_amount_out(asset_id, amount, False)
        except Exception as exc:  # noqa: BLE001
            raise QuoteUnavailable(f"lens lookup failed: {exc}", asset_id=asset_id) from exc

        expected_output = int(expected_output)
        if expected_output <= 0:
            raise QuoteUnavailable(f"lens returned non-positive output {expected_output}", asset_id=asset_id)

        router = self._routers.get(str(router_address).lower())
        if router is None:
            raise QuoteUnavailable(f"lens returned unknown router {router_address}", asset_id=asset_id)

        bps = self.slippage_bps if slippage_bps is None else slippage_bps
        return Quote(
            router=router,
            router_address=str(router_address),
            expected_output=expected_output,
            min_output=min_output_for(expected_output, bps),
        )
