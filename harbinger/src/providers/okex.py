"""OKEx candle provider.

Endpoint: https://www.okex.com/api/spot/v3/instruments/{ASSET}/candles?granularity=60
Auth: none
Order: read as newest candle last (see LATEST_INDEX)
Rows: [iso_time, open, high, low, close, volume], values as strings
"""

import logging
from datetime import datetime, timezone

from ..Candle import Candle
from ..errors import UpstreamError
from .base import GRANULARITY_SECONDS, BaseCandleProvider, register_provider

logger = logging.getLogger(__name__)


def parse_iso_timestamp(value: str) -> int:
    """Parse an ISO-8601 timestamp (e.g. "2020-05-01T12:00:00.000Z") to Unix seconds.

    Naive timestamps are read as UTC.
    """
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


@register_provider
class OkexCandleProvider(BaseCandleProvider):
    """Provider for the public OKEx spot v3 candles API.

    OKEx uses the dashed asset spelling ("XTZ-USD") as is.
    """

    name = "okex"
    BASE_URL = "https://www.okex.com"
    LATEST_INDEX = -1

    async def _fetch_candle(self, asset_name: str) -> Candle:
        url = f"{self.BASE_URL}/api/spot/v3/instruments/{asset_name}/candles"

        response = await self._get(url, params={"granularity": GRANULARITY_SECONDS})
        row = self._select_latest(self._json(response))

        try:
            start_iso, open_, high, low, close, volume = row[:6]
            start_timestamp = parse_iso_timestamp(start_iso)
        except (ValueError, TypeError, AttributeError) as e:
            raise UpstreamError(f"[okex] Failed to parse candle for {asset_name}: {e}") from e

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
