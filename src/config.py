from __future__ import annotations

from functools import cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseSettings):
    etherscan_api_key: str = ""
    etherscan_base_url: str = "https://api.etherscan.io/v2/api"
    etherscan_page_size: int = Field(default=10_000, gt=0)

    coingecko_api_key: str | None = None
    coingecko_base_url: str | None = None

    chain_id: int = 1
    price_platform: str = "ethereum"
    native_coin_id: str = "ethereum"

    request_timeout_seconds: float = Field(default=5.0, gt=0, lt=10)
    max_concurrent_price_requests: int = Field(default=4, ge=1, le=8)
    price_window_padding_minutes: int = Field(default=60, ge=0)

    database_url: str = "sqlite:///cost_basis.db"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@cache
def config() -> AppSettings:
    return AppSettings()
