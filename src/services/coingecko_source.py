from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any

import requests
from requests import Response
from requests.adapters import HTTPAdapter
from urllib3.util import Retry

from config import config
from domain.pricing import HistoricalPricePoint, HistoricalPriceSource, PriceAsset
from errors import NetworkError, ProviderError

from .symbol_cache import SingleFlightCache

logger = logging.getLogger(__name__)

FREE_BASE_URL = "https://api.coingecko.com/api/v3"
PRO_BASE_URL = "https://pro-api.coingecko.com/api/v3"
PROVIDER = "CoinGecko"


class _CoinGeckoClient:
    def __init__(
        self,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float = 5.0,
        session: requests.Session | None = None,
        retry_attempts: int = 3,
        retry_backoff_seconds: float = 1,
    ) -> None:
        self.api_key = api_key or None
        self.base_url = (base_url or (PRO_BASE_URL if self.api_key else FREE_BASE_URL)).rstrip("/")
        self.timeout = timeout
        self._session = session or requests.Session()

        retry = Retry(
            total=retry_attempts,
            backoff_factor=retry_backoff_seconds,
            status_forcelist={429},
            allowed_methods={"GET"},
        )
        adapter = HTTPAdapter(max_retries=retry)
        self._session.mount("https://", adapter)
        self._session.mount("http://", adapter)

    def market_chart_range(self, *, path: str, start: datetime, end: datetime) -> list[HistoricalPricePoint]:
        params = {
            "vs_currency": "usd",
            "from": int(start.timestamp()),
            "to": int(end.timestamp()),
        }
        payload = self._request(path, params=params)
        if not isinstance(payload, dict):
            raise NetworkError("CoinGecko returned unexpected payload type", payload=payload)

        points: list[HistoricalPricePoint] = []
        for entry in payload.get("prices") or []:
            point = self._parse_price_entry(entry)
            if point is not None:
                points.append(point)
        points.sort(key=lambda point: point.timestamp)
        return points

    def coins_list(self) -> list[dict[str, Any]]:
        payload = self._request("/coins/list")
        if not isinstance(payload, list):
            raise NetworkError("CoinGecko returned unexpected coins list payload", payload=payload)
        return [entry for entry in payload if isinstance(entry, dict)]

    def _request(self, path: str, *, params: dict[str, Any] | None = None) -> Any:
        url = f"{self.base_url}{path}"
        headers = {"x-cg-pro-api-key": self.api_key} if self.api_key else {}
        try:
            response = self._session.request("GET", url, params=params, timeout=self.timeout, headers=headers)
            response.raise_for_status()
        except requests.HTTPError as exc:
            resp = exc.response
            message, payload_err = self._extract_error(resp)
            raise NetworkError(message, status_code=getattr(resp, "status_code", None), payload=payload_err) from exc
        except requests.RequestException as exc:
            status_code = getattr(getattr(exc, "response", None), "status_code", None)
            raise NetworkError("CoinGecko request failed", status_code=status_code) from exc

        try:
            payload = response.json()
        except ValueError as exc:
            raise NetworkError("CoinGecko returned invalid JSON", payload=response.text) from exc

        if isinstance(payload, dict):
            status = payload.get("status")
            error = payload.get("error") or (status.get("error_message") if isinstance(status, dict) else None)
            if error:
                raise ProviderError(str(error), provider=PROVIDER, payload=payload)
        return payload

    @staticmethod
    def _parse_price_entry(entry: Any) -> HistoricalPricePoint | None:
        if not isinstance(entry, (list, tuple)) or len(entry) < 2 or entry[1] is None:
            return None
        try:
            timestamp = datetime.fromtimestamp(int(entry[0]) / 1000, tz=timezone.utc)
            price = Decimal(str(entry[1]))
        except (ValueError, TypeError, OverflowError, OSError, InvalidOperation):
            logger.debug("Skipping malformed CoinGecko price entry %r", entry)
            return None
        if not price.is_finite():
            return None
        return HistoricalPricePoint(timestamp=timestamp, price_usd=price)

    @staticmethod
    def _extract_error(response: Response | None) -> tuple[str, Any]:
        message = "CoinGecko request failed"
        if response is None:
            return message, None
        try:
            payload = response.json()
            if isinstance(payload, dict) and payload.get("error"):
                message = str(payload["error"])
        except ValueError:
            payload = response.text
        return message, payload


class CoinGeckoSource(HistoricalPriceSource):
    def __init__(
        self,
        *,
        client: _CoinGeckoClient | None = None,
        platform: str = "ethereum",
        native_coin_id: str = "ethereum",
    ) -> None:
        if not platform:
            raise ValueError("platform must be provided")
        if not native_coin_id:
            raise ValueError("native_coin_id must be provided")

        self.client = client or _CoinGeckoClient()
        self.platform = platform.strip().lower()
        self.native_coin_id = native_coin_id
        self.symbol_ids: SingleFlightCache[dict[str, str]] = SingleFlightCache(self._load_symbol_ids)

    def price_series(self, asset: PriceAsset, start: datetime, end: datetime) -> list[HistoricalPricePoint]:
        if asset.contract_address is None:
            return self.client.market_chart_range(
                path=f"/coins/{self.native_coin_id}/market_chart/range", start=start, end=end
            )

        contract = asset.contract_address.strip().lower()
        try:
            return self.client.market_chart_range(
                path=f"/coins/{self.platform}/contract/{contract}/market_chart/range", start=start, end=end
            )
        except NetworkError as exc:
            coin_id = self._coin_id_for_symbol(asset.symbol) if exc.status_code == 404 else None
            if coin_id is None:
                raise
            logger.info("Contract %s not indexed on %s, using coin id %s", contract, self.platform, coin_id)
            return self.client.market_chart_range(path=f"/coins/{coin_id}/market_chart/range", start=start, end=end)

    def _coin_id_for_symbol(self, symbol: str) -> str | None:
        if not symbol:
            return None
        return self.symbol_ids.get().get(symbol.strip().lower())

    def _load_symbol_ids(self) -> dict[str, str]:
        mapping: dict[str, str] = {}
        for coin in self.client.coins_list():
            symbol = str(coin.get("symbol") or "").lower()
            coin_id = coin.get("id")
            # First coin per symbol wins.
            if symbol and coin_id and symbol not in mapping:
                mapping[symbol] = str(coin_id)
        logger.info("Loaded %d CoinGecko symbols", len(mapping))
        return mapping


def build_default_source() -> CoinGeckoSource:
    settings = config()
    client = _CoinGeckoClient(
        api_key=settings.coingecko_api_key,
        base_url=settings.coingecko_base_url,
        timeout=settings.request_timeout_seconds,
    )
    return CoinGeckoSource(client=client, platform=settings.price_platform, native_coin_id=settings.native_coin_id)


__all__ = ["CoinGeckoSource", "build_default_source"]
