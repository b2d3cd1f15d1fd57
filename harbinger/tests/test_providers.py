"""Unit tests for candle providers."""

import base64
import hashlib
import hmac
from collections.abc import Callable
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from harbinger.src.errors import (
    CandleUnavailable,
    ProviderConfigError,
    UpstreamError,
    UpstreamTimeout,
)
from harbinger.src.providers import (
    BaseCandleProvider,
    BinanceCandleProvider,
    CoinbaseCandleProvider,
    GeminiCandleProvider,
    KrakenCandleProvider,
    OkexCandleProvider,
    RetryPolicy,
    get_available_providers,
    get_provider,
    provider_from_environ,
)

COINBASE_SECRET = base64.b64encode(b"coinbase-secret").decode()


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def json_handler(payload, requests: list | None = None, status_code: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(request)
        return httpx.Response(status_code, json=payload)

    return handler


def coinbase(client: httpx.AsyncClient, **kwargs) -> CoinbaseCandleProvider:
    return CoinbaseCandleProvider(
        api_key_id="key-id",
        api_key_secret=COINBASE_SECRET,
        api_key_passphrase="passphrase",
        client=client,
        **kwargs,
    )


class TestRetryPolicy:
    """Test RetryPolicy validation and delays."""

    def test_defaults(self) -> None:
        """Default policy makes a single attempt."""
        assert RetryPolicy().max_attempts == 1

    def test_backoff(self) -> None:
        """Delay grows by the multiplier after each attempt."""
        policy = RetryPolicy(max_attempts=4, delay_seconds=0.5, backoff_multiplier=2.0)
        assert [policy.delay(i) for i in range(3)] == [0.5, 1.0, 2.0]

    @pytest.mark.parametrize(
        "kwargs",
        [{"max_attempts": 0}, {"delay_seconds": -1}, {"backoff_multiplier": 0.5}],
    )
    def test_invalid(self, kwargs: dict) -> None:
        """Nonsensical policies are rejected."""
        with pytest.raises(ValueError):
            RetryPolicy(**kwargs)


class TestRegistry:
    """Test the provider registry."""

    def test_available_providers(self) -> None:
        """All exchanges are registered."""
        assert get_available_providers() == ["binance", "coinbase", "gemini", "kraken", "okex"]

    def test_get_provider_case_insensitive(self) -> None:
        """Provider names are matched case-insensitively."""
        assert isinstance(get_provider("BINANCE"), BinanceCandleProvider)
        assert isinstance(get_provider("Kraken"), KrakenCandleProvider)

    def test_unknown_provider(self) -> None:
        """Unknown names raise ValueError."""
        with pytest.raises(ValueError, match="Unknown candle provider"):
            get_provider("bitstamp")

    def test_provider_name_is_base_url(self) -> None:
        """Providers report their upstream base URL."""
        assert get_provider("gemini").get_provider_name() == "https://api.gemini.com"
        assert get_provider("okex").get_provider_name() == "https://www.okex.com"

    def test_from_environ_passes_options(self) -> None:
        """Timeout and retry policy are forwarded to the provider."""
        policy = RetryPolicy(max_attempts=3)
        provider = provider_from_environ("binance", {}, timeout=2.5, retry_policy=policy)
        assert provider.timeout == 2.5
        assert provider.retry_policy is policy


class TestBinance:
    """Test the Binance provider."""

    @pytest.mark.asyncio
    async def test_latest_candle(self) -> None:
        """The last kline is used and millisecond times are converted."""
        requests: list[httpx.Request] = []
        payload = [
            [1_000_000, "1.0", "1.2", "0.9", "1.1", "10", 1_059_999],
            [1_060_000, "1.1", "1.3", "1.0", "1.2", "20.5", 1_119_999],
        ]
        provider = BinanceCandleProvider(client=mock_client(json_handler(payload, requests)))

        candle = await provider.get_candle("XTZ-USD")

        assert requests[0].url.path == "/api/v3/klines"
        assert requests[0].url.params["symbol"] == "XTZUSD"
        assert requests[0].url.params["interval"] == "1m"
        assert candle.asset_name == "XTZ-USD"
        assert candle.start_timestamp == 1060
        assert candle.end_timestamp == 1120
        assert (candle.open, candle.high, candle.low, candle.close) == (
            1_100_000,
            1_300_000,
            1_000_000,
            1_200_000,
        )
        assert candle.volume == 20_500_000

    @pytest.mark.asyncio
    async def test_http_error_carries_body(self) -> None:
        """Non-2xx responses raise UpstreamError with status and body."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, text="slow down")

        provider = BinanceCandleProvider(client=mock_client(handler))

        with pytest.raises(UpstreamError) as exc_info:
            await provider.get_candle("XTZ-USD")

        assert exc_info.value.status_code == 429
        assert exc_info.value.body == "slow down"

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Transport timeouts raise UpstreamTimeout."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        provider = BinanceCandleProvider(client=mock_client(handler))

        with pytest.raises(UpstreamTimeout):
            await provider.get_candle("XTZ-USD")

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Transport failures raise UpstreamError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        provider = BinanceCandleProvider(client=mock_client(handler))

        with pytest.raises(UpstreamError, match="Request failed"):
            await provider.get_candle("XTZ-USD")

    @pytest.mark.asyncio
    async def test_empty_list(self) -> None:
        """An empty candle list is an upstream failure."""
        provider = BinanceCandleProvider(client=mock_client(json_handler([])))

        with pytest.raises(UpstreamError, match="No candles"):
            await provider.get_candle("XTZ-USD")

    @pytest.mark.asyncio
    async def test_invalid_json(self) -> None:
        """Non JSON bodies are an upstream failure."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="<html>")

        provider = BinanceCandleProvider(client=mock_client(handler))

        with pytest.raises(UpstreamError, match="Invalid JSON"):
            await provider.get_candle("XTZ-USD")

    @pytest.mark.asyncio
    async def test_non_numeric_value(self) -> None:
        """Unparseable prices are an upstream failure."""
        payload = [[1_000_000, "abc", "1.2", "0.9", "1.1", "10", 1_059_999]]
        provider = BinanceCandleProvider(client=mock_client(json_handler(payload)))

        with pytest.raises(UpstreamError, match="Invalid candle value"):
            await provider.get_candle("XTZ-USD")


class TestCoinbase:
    """Test the Coinbase provider."""

    @pytest.mark.asyncio
    async def test_latest_candle_and_auth(self) -> None:
        """The first row is newest and requests carry signed headers."""
        requests: list[httpx.Request] = []
        payload = [
            [1060, 0.9, 1.3, 1.0, 1.25, 42.0],
            [1000, 0.8, 1.2, 0.9, 1.0, 40.0],
        ]
        provider = coinbase(mock_client(json_handler(payload, requests)))

        candle = await provider.get_candle("XTZ-USD")

        assert candle.start_timestamp == 1060
        assert candle.end_timestamp == 1120
        assert candle.open == 1_000_000
        assert candle.high == 1_300_000
        assert candle.low == 900_000
        assert candle.close == 1_250_000
        assert candle.volume == 42_000_000

        request = requests[0]
        assert request.url.raw_path == b"/products/XTZ-USD/candles?granularity=60"
        assert request.headers["CB-ACCESS-KEY"] == "key-id"
        assert request.headers["CB-ACCESS-PASSPHRASE"] == "passphrase"

        timestamp = request.headers["CB-ACCESS-TIMESTAMP"]
        message = f"{timestamp}GET/products/XTZ-USD/candles?granularity=60".encode()
        expected = base64.b64encode(
            hmac.new(b"coinbase-secret", message, hashlib.sha256).digest()
        ).decode()
        assert request.headers["CB-ACCESS-SIGN"] == expected

    @pytest.mark.asyncio
    async def test_retries_until_success(self) -> None:
        """Failed attempts are retried after a pause."""
        responses = iter(
            [
                httpx.Response(503, text="unavailable"),
                httpx.Response(503, text="unavailable"),
                httpx.Response(200, json=[[1060, 1, 1, 1, 1, 1]]),
            ]
        )
        provider = coinbase(mock_client(lambda request: next(responses)))

        with patch("harbinger.src.providers.base.asyncio.sleep", new=AsyncMock()) as sleep:
            candle = await provider.get_candle("XTZ-USD")

        assert candle.start_timestamp == 1060
        assert sleep.await_count == 2
        sleep.assert_awaited_with(1.0)

    @pytest.mark.asyncio
    async def test_exhausted_retries(self) -> None:
        """Exhausting the budget raises CandleUnavailable."""
        calls: list[httpx.Request] = []
        provider = coinbase(mock_client(json_handler({"message": "busy"}, calls, 500)))

        with patch("harbinger.src.providers.base.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(CandleUnavailable) as exc_info:
                await provider.get_candle("XTZ-USD")

        assert len(calls) == 10
        assert sleep.await_count == 9
        assert exc_info.value.attempts == 10
        assert str(exc_info.value) == "Could not get candle for XTZ-USD after 10 attempts"
        assert isinstance(exc_info.value.__cause__, UpstreamError)

    @pytest.mark.asyncio
    async def test_policy_override(self) -> None:
        """A single attempt policy surfaces the upstream error directly."""
        provider = coinbase(
            mock_client(json_handler({}, status_code=500)),
            retry_policy=RetryPolicy(max_attempts=1),
        )

        with pytest.raises(UpstreamError):
            await provider.get_candle("XTZ-USD")

    def test_missing_credentials(self) -> None:
        """Building without credentials raises ProviderConfigError."""
        with pytest.raises(ProviderConfigError):
            provider_from_environ("coinbase", {})

    def test_invalid_secret(self) -> None:
        """The secret must be base64."""
        with pytest.raises(ProviderConfigError, match="base64"):
            CoinbaseCandleProvider("key-id", "not base64!", "passphrase")

    def test_from_environ(self) -> None:
        """Credentials are read from COINBASE_API_KEY_* variables."""
        provider = provider_from_environ(
            "coinbase",
            {
                "COINBASE_API_KEY_ID": "key-id",
                "COINBASE_API_KEY_SECRET": COINBASE_SECRET,
                "COINBASE_API_KEY_PASSPHRASE": "passphrase",
            },
        )
        assert isinstance(provider, CoinbaseCandleProvider)
        assert provider.retry_policy.max_attempts == 10


class TestGemini:
    """Test the Gemini provider."""

    @pytest.mark.asyncio
    async def test_latest_candle(self) -> None:
        """Lowercase symbol without dash and millisecond times."""
        requests: list[httpx.Request] = []
        payload = [
            [1_000_000, 1.0, 1.2, 0.9, 1.1, 10],
            [1_060_000, 1.1, 1.3, 1.0, 1.2, 20],
        ]
        provider = GeminiCandleProvider(client=mock_client(json_handler(payload, requests)))

        candle = await provider.get_candle("XTZ-USD")

        assert requests[0].url.path == "/v2/candles/xtzusd/1m"
        assert candle.start_timestamp == 1060
        assert candle.end_timestamp == 1120
        assert candle.close == 1_200_000


class TestKraken:
    """Test the Kraken provider."""

    @pytest.mark.asyncio
    async def test_latest_candle(self) -> None:
        """Rows are read from the pair's result key via POST."""
        requests: list[httpx.Request] = []
        payload = {
            "error": [],
            "result": {
                "XTZUSD": [
                    [1000, "1.0", "1.2", "0.9", "1.1", "1.05", "10", 5],
                    [1060, "1.1", "1.3", "1.0", "1.2", "1.15", "20", 7],
                ],
                "last": 1060,
            },
        }
        provider = KrakenCandleProvider(client=mock_client(json_handler(payload, requests)))

        candle = await provider.get_candle("XTZ-USD")

        assert requests[0].method == "POST"
        assert requests[0].url.params["pair"] == "XTZUSD"
        assert requests[0].url.params["interval"] == "1"
        assert candle.start_timestamp == 1060
        assert candle.end_timestamp == 1120
        assert candle.open == 1_100_000
        assert candle.volume == 20_000_000

    @pytest.mark.asyncio
    async def test_renamed_pair(self) -> None:
        """Kraken's own spelling of the pair is accepted."""
        payload = {
            "error": [],
            "result": {"XXBTZUSD": [[1060, "1", "1", "1", "1", "1", "1", 1]], "last": 1060},
        }
        provider = KrakenCandleProvider(client=mock_client(json_handler(payload)))

        candle = await provider.get_candle("XBT-USD")

        assert candle.asset_name == "XBT-USD"

    @pytest.mark.asyncio
    async def test_api_error(self) -> None:
        """Errors in the response body are upstream failures."""
        payload = {"error": ["EQuery:Unknown asset pair"]}
        provider = KrakenCandleProvider(client=mock_client(json_handler(payload)))

        with pytest.raises(UpstreamError, match="Unknown asset pair"):
            await provider.get_candle("FOO-BAR")


class TestOkex:
    """Test the OKEx provider."""

    @pytest.mark.asyncio
    async def test_latest_candle(self) -> None:
        """ISO timestamps are converted to Unix seconds."""
        requests: list[httpx.Request] = []
        payload = [
            ["1970-01-01T00:16:40.000Z", "1.0", "1.2", "0.9", "1.1", "10"],
            ["1970-01-01T00:17:40.000Z", "1.1", "1.3", "1.0", "1.2", "20"],
        ]
        provider = OkexCandleProvider(client=mock_client(json_handler(payload, requests)))

        candle = await provider.get_candle("XTZ-USD")

        assert requests[0].url.path == "/api/spot/v3/instruments/XTZ-USD/candles"
        assert requests[0].url.params["granularity"] == "60"
        assert candle.start_timestamp == 1060
        assert candle.end_timestamp == 1120

    @pytest.mark.asyncio
    async def test_bad_timestamp(self) -> None:
        """Unparseable timestamps are upstream failures."""
        payload = [["yesterday", "1", "1", "1", "1", "1"]]
        provider = OkexCandleProvider(client=mock_client(json_handler(payload)))

        with pytest.raises(UpstreamError, match="Failed to parse"):
            await provider.get_candle("XTZ-USD")


class TestSharedClient:
    """Test shared client management."""

    @pytest.mark.asyncio
    async def test_shared_client_reused(self) -> None:
        """Providers share one client until it is closed."""
        first = BaseCandleProvider.get_shared_client()
        assert BaseCandleProvider.get_shared_client() is first

        await BaseCandleProvider.close_shared_client()

        second = BaseCandleProvider.get_shared_client()
        assert second is not first
        await BaseCandleProvider.close_shared_client()

