"""Base candle provider interface and shared HTTP client management.

All candle providers inherit from BaseCandleProvider and implement
``_fetch_candle()``, which issues the upstream request(s) and maps the
exchange-specific response onto a :class:`~harbinger.src.Candle.Candle`.
A shared httpx.AsyncClient is used across all providers to avoid connection
overhead.

.. code-block:: python

    @register_provider
    class MyProvider(BaseCandleProvider):
        name = "myexchange"
        BASE_URL = "https://api.example.com"
        LATEST_INDEX = -1  # newest candle is last

        async def _fetch_candle(self, asset_name: str) -> Candle:
            response = await self._get(f"{self.BASE_URL}/candles/{asset_name}")
            row = self._select_latest(response.json())
            ...
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, ClassVar

import httpx

from ..Candle import Candle, scale
from ..errors import CandleUnavailable, UpstreamError, UpstreamTimeout

logger = logging.getLogger(__name__)

# User agent sent to every upstream API.
USER_AGENT = "harbinger-signer"

# Nominal candle duration in seconds.
GRANULARITY_SECONDS = 60


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry-with-sleep around a single upstream call.

    :ivar max_attempts: Total attempts, including the first one.
    :ivar delay_seconds: Sleep before the second attempt.
    :ivar backoff_multiplier: Factor applied to the delay after each attempt.
    """

    max_attempts: int = 1
    delay_seconds: float = 1.0
    backoff_multiplier: float = 1.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")

    def delay(self, attempt: int) -> float:
        """Return the sleep after the given (zero-based) failed attempt."""
        return self.delay_seconds * (self.backoff_multiplier ** attempt)


class BaseCandleProvider(ABC):
    """Abstract base class for candle providers.

    Subclasses must implement:
        - name: Class variable identifying the source (e.g., "coinbase")
        - BASE_URL: Upstream base URL, reported as the provider name
        - _fetch_candle(): Async method fetching one candle for an asset

    :cvar name: Unique identifier for this provider.
    :cvar LATEST_INDEX: Position of the most recent candle in the upstream
        list (0 for newest-first sources, -1 for newest-last sources).
    :cvar DEFAULT_TIMEOUT: Default HTTP request timeout in seconds.
    :cvar DEFAULT_RETRY_POLICY: Retry policy used when none is given.
    :ivar timeout: Request timeout in seconds.
    :ivar retry_policy: Retry policy applied by get_candle().
    """

    # Class-level shared HTTP client
    _shared_client: ClassVar[httpx.AsyncClient | None] = None

    # Provider identification
    name: ClassVar[str] = ""
    BASE_URL: ClassVar[str] = ""

    LATEST_INDEX: ClassVar[int] = -1

    DEFAULT_TIMEOUT = 10.0
    DEFAULT_RETRY_POLICY: ClassVar[RetryPolicy] = RetryPolicy()

    def __init__(
        self,
        timeout: float | None = None,
        retry_policy: RetryPolicy | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize the provider.

        :param timeout: Request timeout in seconds (default: 10).
        :param retry_policy: Retry policy (default: DEFAULT_RETRY_POLICY).
        :param client: Optional HTTP client to use instead of the shared one.
        """
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self.retry_policy = retry_policy or self.DEFAULT_RETRY_POLICY
        self._client = client

    @classmethod
    def from_environ(cls, environ: Mapping[str, str], **kwargs: Any) -> BaseCandleProvider:
        """Build the provider, reading any credentials it needs from environ.

        :param environ: Environment mapping.
        :param kwargs: Extra constructor arguments (timeout, retry_policy).
        :returns: Provider instance.
        """
        return cls(**kwargs)

    @classmethod
    def get_shared_client(cls) -> httpx.AsyncClient:
        """Get or create the shared HTTP client.

        :returns: Shared httpx.AsyncClient instance.
        """
        if (
            BaseCandleProvider._shared_client is None
            or BaseCandleProvider._shared_client.is_closed
        ):
            BaseCandleProvider._shared_client = httpx.AsyncClient(
                timeout=httpx.Timeout(30.0, connect=10.0),
                limits=httpx.Limits(max_connections=50, max_keepalive_connections=20),
                headers={"User-Agent": USER_AGENT, "Accept": "application/json"},
                follow_redirects=True,
            )
        return BaseCandleProvider._shared_client

    @classmethod
    async def close_shared_client(cls) -> None:
        """Close the shared HTTP client."""
        client = BaseCandleProvider._shared_client
        if client is not None and not client.is_closed:
            await client.aclose()
        BaseCandleProvider._shared_client = None

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client if self._client is not None else self.get_shared_client()

    def get_provider_name(self) -> str:
        """Describe where candles are pulled from.

        :returns: The upstream base URL.
        """
        return self.BASE_URL

    async def get_candle(self, asset_name: str) -> Candle:
        """Retrieve the most recent candle for an asset.

        Applies the provider's retry policy around ``_fetch_candle()``.

        :param asset_name: Asset pair, e.g. "XTZ-USD".
        :returns: The normalized candle.
        :raises UpstreamError: On failure when the policy allows one attempt.
        :raises CandleUnavailable: When every retry attempt failed.
        """
        policy = self.retry_policy
        if policy.max_attempts == 1:
            return await self._fetch_candle(asset_name)

        last_error: UpstreamError | None = None
        for attempt in range(policy.max_attempts):
            logger.debug(
                f"[{self.name}] Fetching {asset_name} "
                f"(attempt {attempt + 1}/{policy.max_attempts})"
            )
            try:
                return await self._fetch_candle(asset_name)
            except UpstreamError as e:
                last_error = e
                logger.warning(
                    f"[{self.name}] Attempt {attempt + 1}/{policy.max_attempts} "
                    f"for {asset_name} failed: {e}"
                )
            if attempt + 1 < policy.max_attempts:
                await asyncio.sleep(policy.delay(attempt))

        raise CandleUnavailable(asset_name, policy.max_attempts) from last_error

    @abstractmethod
    async def _fetch_candle(self, asset_name: str) -> Candle:
        """Issue the upstream request(s) for one candle.

        :param asset_name: Asset pair, e.g. "XTZ-USD".
        :returns: The normalized candle.
        :raises UpstreamError: On HTTP, transport or parse failure.
        """
        pass

    def _select_latest(self, rows: Any) -> Any:
        """Pick the most recent candle row from an upstream list.

        :param rows: Decoded upstream candle list.
        :returns: The row at LATEST_INDEX.
        :raises UpstreamError: If rows is not a non-empty list.
        """
        if not isinstance(rows, list):
            raise UpstreamError(f"[{self.name}] Expected a list of candles, got {rows!r:.200}")
        if not rows:
            raise UpstreamError(f"[{self.name}] No candles returned")
        return rows[self.LATEST_INDEX]

    def _build_candle(
        self,
        asset_name: str,
        start_timestamp: int,
        end_timestamp: int,
        open: Any,
        high: Any,
        low: Any,
        close: Any,
        volume: Any,
    ) -> Candle:
        """Scale raw upstream values into a Candle.

        :raises UpstreamError: If a value is not a non-negative number.
        """
        try:
            values = [scale(v) for v in (open, high, low, close, volume)]
        except ValueError as e:
            raise UpstreamError(f"[{self.name}] Invalid candle value: {e}") from e
        if any(v < 0 for v in values):
            raise UpstreamError(f"[{self.name}] Negative candle value for {asset_name}")
        if end_timestamp <= start_timestamp:
            raise UpstreamError(
                f"[{self.name}] Candle for {asset_name} ends before it starts"
            )
        return Candle(asset_name, start_timestamp, end_timestamp, *values)

    async def _get(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP GET request.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises UpstreamError: On non-2xx response or network errors.
        :raises UpstreamTimeout: On timeout.
        """
        return await self._request("GET", url, params=params, headers=headers)

    async def _post(
        self,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        """Make an HTTP POST request.

        :param url: Request URL.
        :param params: Optional query parameters.
        :param headers: Optional request headers.
        :returns: httpx.Response object.
        :raises UpstreamError: On non-2xx response or network errors.
        :raises UpstreamTimeout: On timeout.
        """
        return await self._request("POST", url, params=params, headers=headers)

    async def _request(
        self,
        method: str,
        url: str,
        *,
        params: dict | None = None,
        headers: dict | None = None,
    ) -> httpx.Response:
        try:
            response = await self.client.request(
                method,
                url,
                params=params,
                headers=headers,
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise UpstreamTimeout(f"[{self.name}] Request timeout: {e}") from e
        except httpx.RequestError as e:
            raise UpstreamError(f"[{self.name}] Request failed: {e}") from e

        if not response.is_success:
            logger.debug(
                "HTTP %s %s failed with status %s: %s",
                method,
                url,
                response.status_code,
                response.text[:200],
            )
            raise UpstreamError(
                response.text,
                status_code=response.status_code,
                body=response.text,
            )
        return response

    def _json(self, response: httpx.Response) -> Any:
        """Decode a JSON response body.

        :raises UpstreamError: If the body is not valid JSON.
        """
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamError(
                f"[{self.name}] Invalid JSON response: {e}", body=response.text
            ) from e


# Registry of available providers (populated by subclass imports)
PROVIDER_REGISTRY: dict[str, type[BaseCandleProvider]] = {}


def register_provider(cls: type[BaseCandleProvider]) -> type[BaseCandleProvider]:
    """Decorator to register a provider class in the global registry.

    :param cls: Provider class to register.
    :returns: The registered class (unchanged).
    :raises ValueError: If provider has no name defined.
    """
    if not cls.name:
        raise ValueError(f"Provider {cls.__name__} must define a 'name' class variable")
    PROVIDER_REGISTRY[cls.name] = cls
    return cls


def get_provider(name: str, **kwargs: Any) -> BaseCandleProvider:
    """Get a provider instance by name.

    :param name: Provider name (e.g., "coinbase", "binance"), case-insensitive.
    :param kwargs: Constructor arguments.
    :returns: Provider instance.
    :raises ValueError: If provider name is unknown.
    """
    return _provider_class(name)(**kwargs)


def provider_from_environ(
    name: str, environ: Mapping[str, str], **kwargs: Any
) -> BaseCandleProvider:
    """Get a provider instance by name, reading its credentials from environ.

    :param name: Provider name, case-insensitive.
    :param environ: Environment mapping.
    :param kwargs: Extra constructor arguments.
    :returns: Provider instance.
    :raises ValueError: If provider name is unknown.
    :raises ProviderConfigError: If the provider's credentials are missing.
    """
    return _provider_class(name).from_environ(environ, **kwargs)


def get_available_providers() -> list[str]:
    """Get list of available provider names.

    :returns: Sorted list of registered provider names.
    """
    return sorted(PROVIDER_REGISTRY.keys())


def _provider_class(name: str) -> type[BaseCandleProvider]:
    key = name.lower()
    if key not in PROVIDER_REGISTRY:
        available = ", ".join(get_available_providers())
        raise ValueError(f"Unknown candle provider '{name}'. Available: {available}")
    return PROVIDER_REGISTRY[key]
