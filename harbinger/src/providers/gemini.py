"""Gemini candle provider.

Endpoint: https://api.gemini.com/v2/candles/{basequote}/1m
Auth: none
Order: read as newest candle last (see LATEST_INDEX)
Rows: [time, open, high, low, close, volume], time in ms
"""

import logging

from ..Candle import Candle
from ..errors import UpstreamError
from .base import GRANULARITY_SECONDS, BaseCandleProvider, register_provider

logger = logging.getLogger(__name__)


@register_provider
class GeminiCandleProvider(BaseCandleProvider):
    """Provider for the public Gemini v2 candles API.

    Gemini omits the dash in symbols ("XTZ-USD" becomes "xtzusd").
    """

    name = "gemini"
    BASE_URL = "https://api.gemini.com"
    LATEST_INDEX = -1

    TIME_FRAME = "1m"

    async def _fetch_candle(self, asset_name: str) -> Candle:
        symbol = asset_name.replace("-", "").lower()
        url = f"{self.BASE_URL}/v2/candles/{symbol}/{self.TIME_FRAME}"

        response = await self._get(url)
        row = self._select_latest(self._json(response))

        try:
            time_ms, open_, high, low, close, volume = row[:6]
            start_timestamp = round(int(time_ms) / 1000)
        except (ValueError, TypeError) as e:
            raise UpstreamError(f"[gemini] Failed to parse candle for {symbol}: {e}") from e

        return self._build_candle(
            asset_name,
            start_timestamp=start_timestamp,
            end_timestamp=start_timestamp + GRANULARITY_SECONDS,
            open=open_,
            high=high,
            low=low,
            close=close,
            volume=volume,
        )
