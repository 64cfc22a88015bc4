from __future__ import annotations

import logging
from collections import defaultdict
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable

from domain.pricing import HistoricalPricePoint, HistoricalPriceSource, PriceAsset, nearest_price_at_or_before
from errors import NetworkError, ProviderError

logger = logging.getLogger(__name__)

PriceKey = tuple[PriceAsset, datetime]

DEFAULT_MAX_WORKERS = 4
DEFAULT_WINDOW_PADDING = timedelta(hours=1)


class HistoricalPriceBatchResolver:
    """Resolve many (asset, timestamp) prices with one series request per asset.

    Each asset gets a single window spanning its earliest and latest requested
    timestamp, padded on both sides. Requests for different assets run on a
    bounded thread pool; a failure for one asset resolves only that asset's
    timestamps to None.
    """

    def __init__(
        self,
        source: HistoricalPriceSource,
        *,
        max_workers: int = DEFAULT_MAX_WORKERS,
        window_padding: timedelta = DEFAULT_WINDOW_PADDING,
    ) -> None:
        if max_workers <= 0:
            raise ValueError("max_workers must be > 0")
        self.source = source
        self.max_workers = max_workers
        self.window_padding = window_padding

    def resolve(self, requests: Iterable[PriceKey]) -> dict[PriceKey, Decimal | None]:
        timestamps_by_asset: dict[PriceAsset, set[datetime]] = defaultdict(set)
        for asset, timestamp in requests:
            timestamps_by_asset[asset].add(timestamp)

        if not timestamps_by_asset:
            return {}

        workers = min(self.max_workers, len(timestamps_by_asset))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="price-series") as executor:
            futures = {
                asset: executor.submit(self._fetch_series, asset, timestamps)
                for asset, timestamps in timestamps_by_asset.items()
            }
            series_by_asset = {asset: future.result() for asset, future in futures.items()}

        resolved: dict[PriceKey, Decimal | None] = {}
        for asset, timestamps in timestamps_by_asset.items():
            points = series_by_asset[asset]
            for timestamp in timestamps:
                resolved[(asset, timestamp)] = nearest_price_at_or_before(points, timestamp)
        return resolved

    def _fetch_series(self, asset: PriceAsset, timestamps: set[datetime]) -> list[HistoricalPricePoint]:
        start = min(timestamps) - self.window_padding
        end = max(timestamps) + self.window_padding
        try:
            points = self.source.price_series(asset, start, end)
        except (NetworkError, ProviderError) as exc:
            logger.warning(
                "Price series unavailable for asset=%s (%s); %d timestamp(s) left unpriced",
                asset.key,
                exc,
                len(timestamps),
            )
            return []
        except (ValueError, TypeError, ArithmeticError) as exc:
            logger.warning("Malformed price series for asset=%s (%r); treating as unavailable", asset.key, exc)
            return []

        points = [point for point in points if point.price_usd.is_finite()]
        if not points:
            logger.warning("Empty price series for asset=%s between %s and %s", asset.key, start, end)
        return sorted(points, key=lambda point: point.timestamp)


__all__ = ["HistoricalPriceBatchResolver", "PriceKey"]
