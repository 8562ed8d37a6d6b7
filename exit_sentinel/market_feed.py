"""Latest-trade feed client with rotating request headers."""

from __future__ import annotations

import asyncio
import http.client
import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from exit_sentinel.config import FeedConfig
from exit_sentinel.errors import FeedError
from exit_sentinel.models import MarketObservation


@dataclass(slots=True)
class FeedHealth:
    consecutive_errors: int = 0
    total_errors: int = 0
    total_batches: int = 0
    last_error: str | None = None


class MarketDataSource:
    """Fetches one batch of market observations per call.

    The user-agent rotation index and the failure counters live on the
    instance so the orchestrator can inspect them without any module state.
    """

    def __init__(self, config: FeedConfig, logger: Any | None = None) -> None:
        self.config = config
        self.logger = logger
        self.health = FeedHealth()
        self._ua_index = 0

    def next_headers(self) -> dict[str, str]:
        agents = self.config.user_agents
        ua = agents[self._ua_index % len(agents)]
        self._ua_index += 1
        return {
            "accept": "application/json",
            "accept-language": "en-US,en;q=0.9",
            "content-type": "application/json",
            "priority": "u=1, i",
            "sec-ch-ua": '"Not(A:Brand";v="8", "Chromium";v="144", "Google Chrome";v="144"',
            "sec-ch-ua-mobile": "?0",
            "sec-ch-ua-platform": '"macOS"',
            "sec-fetch-dest": "empty",
            "sec-fetch-mode": "cors",
            "sec-fetch-site": "cross-site",
            "Referer": self.config.referer,
            "user-agent": ua,
        }

    async def fetch(self) -> list[MarketObservation]:
        headers = self.next_headers()
        try:
            payload = await asyncio.to_thread(self._request_sync, headers)
            observations = self.parse(payload)
        except FeedError as exc:
            self.health.consecutive_errors += 1
            self.health.total_errors += 1
            self.health.last_error = str(exc)
            raise

        self.health.consecutive_errors = 0
        self.health.total_batches += 1
        return observations

    def parse(self, payload: Any) -> list[MarketObservation]:
        if not isinstance(payload, dict) or not isinstance(payload.get("tokens"), list):
            raise FeedError("bad response shape: missing 'tokens' list")

        observations: list[MarketObservation] = []
        for entry in payload["tokens"]:
            observation = self._parse_entry(entry)
            if observation is not None:
                observations.append(observation)
        return observations

    def _parse_entry(self, entry: Any) -> MarketObservation | None:
        try:
            token_info = entry["token_info"]
            market_info = entry["market_info"]
            symbol = str(token_info["symbol"]).strip()
            asset_id = str(token_info["token_id"]).strip()
            price = Decimal(str(market_info["price_usd"]))
            percent = Decimal(str(entry.get("percent") or 0))
        except (KeyError, TypeError, AttributeError, InvalidOperation) as exc:
            self._debug("Feed: skip malformed entry err={}", exc)
            return None

        if not symbol or not asset_id or not price.is_finite() or price < 0:
            self._debug("Feed: skip entry with invalid fields symbol={} price={}", symbol, price)
            return None
        if not percent.is_finite():
            percent = Decimal("0")
        return MarketObservation(symbol=symbol, asset_id=asset_id, price=price, percent_change=percent)

    def _request_sync(self, headers: dict[str, str]) -> Any:
        req = Request(url=self.config.url, method="GET", headers=headers)
        try:
            with urlopen(req, timeout=self.config.timeout_sec) as resp:
                raw = resp.read().decode("utf-8")
        except HTTPError as exc:
            raise FeedError(f"API {exc.code}") from exc
        except URLError as exc:
            raise FeedError(f"URLError: {exc.reason}") from exc
        except TimeoutError as exc:
            raise FeedError(f"timeout: {exc}") from exc
        except (OSError, http.client.HTTPException) as exc:
            raise FeedError(f"transport: {exc!r}") from exc
        except UnicodeDecodeError as exc:
            raise FeedError(f"undecodable body: {exc}") from exc

        try:
            return json.loads(raw or "null")
        except json.JSONDecodeError as exc:
            raise FeedError(f"invalid JSON: {exc}") from exc

    def _debug(self, message: str, *args: object) -> None:
        if self.logger is not None and hasattr(self.logger, "debug"):
            self.logger.debug(message, *args)
