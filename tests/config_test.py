from __future__ import annotations

import pytest
from pydantic import ValidationError

from config import AppSettings


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ETHERSCAN_API_KEY", raising=False)
    settings = AppSettings(_env_file=None)

    assert settings.etherscan_api_key == ""
    assert settings.chain_id == 1
    assert settings.request_timeout_seconds == 5.0
    assert settings.max_concurrent_price_requests == 4
    assert settings.price_window_padding_minutes == 60


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ETHERSCAN_API_KEY", "abc")
    monkeypatch.setenv("MAX_CONCURRENT_PRICE_REQUESTS", "8")

    settings = AppSettings(_env_file=None)

    assert settings.etherscan_api_key == "abc"
    assert settings.max_concurrent_price_requests == 8


@pytest.mark.parametrize(
    "overrides",
    [
        {"request_timeout_seconds": 10},
        {"request_timeout_seconds": 0},
        {"max_concurrent_price_requests": 0},
        {"max_concurrent_price_requests": 9},
        {"etherscan_page_size": 0},
    ],
)
def test_out_of_range_values_rejected(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        AppSettings(_env_file=None, **overrides)
