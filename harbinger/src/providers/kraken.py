"""Kraken candle provider.

Endpoint: https://api.kraken.com/0/public/OHLC?pair={BASEQUOTE}&interval=1
Auth: none
Order: newest candle last
Rows: [time, open, high, low, close, vwap, volume, count], time in seconds
"""

import logging
from typing import Any

from ..Candle import Candle
from ..errors import UpstreamError
from .base import GRANULARITY_SECONDS, BaseCandleProvider, register_provider

logger = logging.getLogger(__name__)


@register_provider
class KrakenCandleProvider(BaseCandleProvider):
    """Provider for the public Kraken OHLC API.

    Kraken omits the dash in pair names and may answer under its own
    spelling of the pair (e.g. "XTZUSD" comes back as "XTZUSD" but
    "XBTUSD" as "XXBTZUSD").
    """

    name = "kraken"
    BASE_URL = "https://api.kraken.com"
    LATEST_INDEX = -1

    # Interval in minutes.
    INTERVAL = 1

    async def _fetch_candle(self, asset_name: str) -> Candle:
        pair = asset_name.replace("-", "")
        url = f"{self.BASE_URL}/0/public/OHLC"

        response = await self._post(url, params={"pair": pair, "interval": self.INTERVAL})
        data = self._json(response)
        rows = self._rows_for_pair(data, pair)
        row = self._select_latest(rows)

        try:
            start_timestamp = round(float(row[0]))
            open_, high, low, close = row[1:5]
            volume = row[6]
        except (ValueError, TypeError, IndexError) as e:
            raise UpstreamError(f"[kraken] Failed to parse candle for {pair}: {e}") from e

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

    def _rows_for_pair(self, data: Any, pair: str) -> Any:
        """Extract the candle rows for a pair from a Kraken response.

        :raises UpstreamError: If Kraken reported errors or no rows.
        """
        if not isinstance(data, dict):
            raise UpstreamError(f"[kraken] Unexpected response for {pair}: {data!r:.200}")
        if data.get("error"):
            raise UpstreamError(f"[kraken] API error for {pair}: {data['error']}")

        result = data.get("result")
        if not isinstance(result, dict):
            raise UpstreamError(f"[kraken] No result for {pair}")

        if pair in result:
            return result[pair]

        # Kraken sometimes answers under its own pair name, e.g. XXBTZUSD
        pair_keys = [key for key in result if key != "last"]
        if len(pair_keys) == 1:
            logger.debug(f"[kraken] Using result key {pair_keys[0]} for {pair}")
            return result[pair_keys[0]]

        raise UpstreamError(f"[kraken] No candles for {pair} in result keys {pair_keys}")
