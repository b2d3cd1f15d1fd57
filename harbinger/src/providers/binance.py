"""Binance candle provider.

Endpoint: https://api.binance.com/api/v3/klines?symbol={BASEQUOTE}&interval=1m
Auth: none
Order: newest candle last
Rows: [open_time, open, high, low, close, volume, close_time, ...], times in ms
"""

import logging

from ..Candle import Candle
from ..errors import UpstreamError
from .base import BaseCandleProvider, register_provider

logger = logging.getLogger(__name__)


@register_provider
class BinanceCandleProvider(BaseCandleProvider):
    """Provider for the public Binance klines API.

    Binance omits the dash in symbols ("XTZ-USD" becomes "XTZUSD").
    """

    name = "binance"
    BASE_URL = "https://api.binance.com"
    LATEST_INDEX = -1

    INTERVAL = "1m"

    async def _fetch_candle(self, asset_name: str) -> Candle:
        symbol = asset_name.replace("-", "")
        url = f"{self.BASE_URL}/api/v3/klines"

        response = await self._get(url, params={"symbol": symbol, "interval": self.INTERVAL})
        row = self._select_latest(self._json(response))

        try:
            open_time, open_, high, low, close, volume, close_time = row[:7]
            start_timestamp = round(int(open_time) / 1000)
            end_timestamp = round(int(close_time) / 1000)
        except (ValueError, TypeError) as e:
            raise UpstreamError(f"[binance] Failed to parse candle for {symbol}: {e}") from e

        return self._build_candle(
            asset_name,
            start_timestamp=start_timestamp,
            end_timestamp=end_timestamp,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
        )
