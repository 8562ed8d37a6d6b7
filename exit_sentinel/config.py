"""Configuration loading and validation."""

from __future__ import annotations

import os
from decimal import Decimal
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from exit_sentinel.errors import ConfigError, PolicyError
from exit_sentinel.models import AssetPolicy, RetryPolicy

_ADDRESS = r"^0x[0-9a-fA-F]{40}$"

DEFAULT_USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/143.0.0.0 Safari/537.36",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10.15; rv:133.0) Gecko/20100101 Firefox/133.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_5) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/18.4 Safari/605.1.15",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36 Edg/144.0.0.0",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/144.0.0.0 Safari/537.36 Edg/144.0.0.0",
]


class ChainConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rpc_url: str | None = None
    private_key: str | None = None
    chain_id: int | None = Field(default=None, ge=1)
    receipt_timeout_sec: int = Field(default=120, ge=1)


class ContractsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    lens: str = Field(default="0x7e78A8DE94f21804F7a17F4E8BF9EC2c872187ea", pattern=_ADDRESS)
    bonding_curve_router: str = Field(default="0x6F6B8F1a20703309951a5127c45B49b1CD981A22", pattern=_ADDRESS)
    dex_router: str = Field(default="0x0B79d71AE99528D1dB24A4148b5f4F865cc2b137", pattern=_ADDRESS)


class FeedConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    url: str = "https://api.nadapp.net/order/latest_trade?page=1&limit=30&is_nsfw=false"
    timeout_sec: float = Field(default=10, gt=0)
    referer: str = "https://nad.fun/"
    user_agents: list[str] = Field(default_factory=lambda: list(DEFAULT_USER_AGENTS), min_length=1)


class ExecutionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    slippage_bps: int = Field(default=100, ge=0, le=10_000)
    deadline_sec: int = Field(default=300, ge=1)
    max_attempts: int = Field(default=3, ge=1)
    backoff_unit_sec: float = Field(default=5, ge=0)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, backoff_unit_sec=self.backoff_unit_sec)


class PollingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    interval_sec: float = Field(default=7, gt=0)


class AssetConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str = Field(min_length=1)
    entry_price: Decimal = Field(gt=0)
    take_profit_multiplier: Decimal = Field(default=Decimal("2.5"))
    stop_loss_fraction: Decimal = Field(default=Decimal("0.2"))

    def to_policy(self) -> AssetPolicy:
        return AssetPolicy(
            symbol=self.symbol,
            entry_price=self.entry_price,
            take_profit_multiplier=self.take_profit_multiplier,
            stop_loss_fraction=self.stop_loss_fraction,
        )


class PaperConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    initial_balance: int = Field(default=1_000 * 10**18, ge=0)
    native_price_usd: Decimal = Field(default=Decimal("1"), gt=0)
    token_decimals: int = Field(default=18, ge=0, le=36)


class SmokeSellConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    symbol: str = "TCG"
    token_address: str = Field(default="0x94CF69B5b13E621cB11f5153724AFb58c7337777", pattern=_ADDRESS)
    slippage_bps: int = Field(default=300, ge=0, le=10_000)
    paper_price_usd: Decimal = Field(default=Decimal("0.0001"), gt=0)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    mode: str = Field(default="paper", pattern=r"^(paper|live)$")
    chain: ChainConfig = Field(default_factory=ChainConfig)
    contracts: ContractsConfig = Field(default_factory=ContractsConfig)
    feed: FeedConfig = Field(default_factory=FeedConfig)
    execution: ExecutionConfig = Field(default_factory=ExecutionConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    assets: list[AssetConfig] = Field(min_length=1)
    paper: PaperConfig = Field(default_factory=PaperConfig)
    smoke_sell: SmokeSellConfig = Field(default_factory=SmokeSellConfig)

    @field_validator("assets")
    @classmethod
    def _unique_symbols(cls, assets: list[AssetConfig]) -> list[AssetConfig]:
        seen: set[str] = set()
        for asset in assets:
            key = asset.symbol.strip().upper()
            if key in seen:
                raise ValueError(f"duplicate asset symbol '{asset.symbol}'")
            seen.add(key)
        return assets

    @model_validator(mode="after")
    def _live_needs_credentials(self) -> "AppConfig":
        if self.mode == "live" and (not self.chain.rpc_url or not self.chain.private_key):
            raise ValueError("live mode requires chain.rpc_url and chain.private_key (or RPC_URL / PRIVATE_KEY)")
        return self

    def policies(self) -> list[AssetPolicy]:
        return [asset.to_policy() for asset in self.assets]


def _apply_env_credentials(raw_data: dict) -> dict:
    chain = dict(raw_data.get("chain") or {})
    rpc_url = os.getenv("RPC_URL")
    private_key = os.getenv("PRIVATE_KEY")
    if rpc_url:
        chain["rpc_url"] = rpc_url
    if private_key:
        chain["private_key"] = private_key
    if chain:
        raw_data["chain"] = chain
    return raw_data


def load_config(path: str | Path = "config.yml", env_file: str | Path | None = None) -> AppConfig:
    """Load configuration from YAML file, overlay env credentials and validate schema."""
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigError(
            f"Config file '{config_path}' not found. Copy config.yml.example to config.yml first."
        )

    load_dotenv(env_file)

    with config_path.open("r", encoding="utf-8") as fh:
        try:
            raw_data = yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in '{config_path}': {exc}") from exc

    if not isinstance(raw_data, dict):
        raise ConfigError(f"Invalid config '{config_path}': top level must be a mapping")

    try:
        config = AppConfig.model_validate(_apply_env_credentials(raw_data))
        config.policies()
    except (ValidationError, PolicyError) as exc:
        raise ConfigError(f"Invalid config '{config_path}': {exc}") from exc
    return config
