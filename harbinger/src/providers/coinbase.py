"""Coinbase Exchange candle provider.

Endpoint: https://api.exchange.coinbase.com/products/{ASSET}/candles?granularity=60
Auth: API key (HMAC-SHA256 signed CB-ACCESS-* headers)
Order: newest candle first
Rows: [time, low, high, open, close, volume], time in seconds

The API is known to drop requests under load, so this provider retries up to
10 times with a 1 second pause by default.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import logging
import time
from collections.abc import Mapping
from typing import Any

from ..Candle import Candle
from ..errors import ProviderConfigError, UpstreamError
from .base import GRANULARITY_SECONDS, BaseCandleProvider, RetryPolicy, register_provider

logger = logging.getLogger(__name__)


@register_provider
class CoinbaseCandleProvider(BaseCandleProvider):
    """Provider for the authenticated Coinbase Exchange candles API.

    :ivar api_key_id: Coinbase API key ID.
    :ivar api_key_secret: Base64 encoded Coinbase API secret.
    :ivar api_key_passphrase: Coinbase API key passphrase.
    """

    name = "coinbase"
    BASE_URL = "https://api.exchange.coinbase.com"
    LATEST_INDEX = 0

    DEFAULT_RETRY_POLICY = RetryPolicy(max_attempts=10, delay_seconds=1.0)

    def __init__(
        self,
        api_key_id: str,
        api_key_secret: str,
        api_key_passphrase: str,
        **kwargs: Any,
    ):
        """Initialize with Coinbase API credentials.

        :param api_key_id: Coinbase API key ID.
        :param api_key_secret: Base64 encoded API secret.
        :param api_key_passphrase: API key passphrase.
        :raises ProviderConfigError: If a credential is empty or the secret
            is not valid base64.
        """
        if not (api_key_id and api_key_secret and api_key_passphrase):
            raise ProviderConfigError(
                "Coinbase provider requires an API key ID, secret and passphrase"
            )
        try:
            self._secret_key = base64.b64decode(api_key_secret, validate=True)
        except binascii.Error as e:
            raise ProviderConfigError("Coinbase API secret must be base64 encoded") from e
        super().__init__(**kwargs)
        self.api_key_id = api_key_id
        self.api_key_secret = api_key_secret
        self.api_key_passphrase = api_key_passphrase

    @classmethod
    def from_environ(cls, environ: Mapping[str, str], **kwargs: Any) -> CoinbaseCandleProvider:
        """Build the provider from COINBASE_API_KEY_* variables."""
        return cls(
            api_key_id=environ.get("COINBASE_API_KEY_ID", ""),
            api_key_secret=environ.get("COINBASE_API_KEY_SECRET", ""),
            api_key_passphrase=environ.get("COINBASE_API_KEY_PASSPHRASE", ""),
            **kwargs,
        )

    @staticmethod
    def make_request_path(asset_name: str) -> str:
        """Build the request path for an asset, e.g. "XTZ-USD"."""
        return f"/products/{asset_name}/candles?granularity={GRANULARITY_SECONDS}"

    def sign_request(self, timestamp: str, method: str, request_path: str) -> str:
        """Compute the CB-ACCESS-SIGN header value.

        :param timestamp: Request timestamp in seconds, as sent in the headers.
        :param method: HTTP method.
        :param request_path: Path including the query string.
        :returns: Base64 encoded HMAC-SHA256 signature.
        """
        message = f"{timestamp}{method}{request_path}".encode("utf-8")
        digest = hmac.new(self._secret_key, message, hashlib.sha256).digest()
        return base64.b64encode(digest).decode("ascii")

    async def _fetch_candle(self, asset_name: str) -> Candle:
        request_path = self.make_request_path(asset_name)
        timestamp = str(time.time())
        headers = {
            "CB-ACCESS-KEY": self.api_key_id,
            "CB-ACCESS-SIGN": self.sign_request(timestamp, "GET", request_path),
            "CB-ACCESS-TIMESTAMP": timestamp,
            "CB-ACCESS-PASSPHRASE": self.api_key_passphrase,
        }

        response = await self._get(self.BASE_URL + request_path, headers=headers)
        row = self._select_latest(self._json(response))

        try:
            start, low, high, open_, close, volume = row[:6]
            start_timestamp = int(start)
        except (ValueError, TypeError) as e:
            raise UpstreamError(f"[coinbase] Failed to parse candle for {asset_name}: {e}") from e

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
