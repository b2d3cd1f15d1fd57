"""Environment based configuration of the oracle pipeline.

.. code-block:: python

    >>> config = OracleConfig.from_environ({
    ...     "ASSETS": "XTZ-USD,BTC-USD",
    ...     "CANDLE_PROVIDER": "BINANCE",
    ...     "REMOTE_SIGNER_URL": "http://localhost:6732",
    ...     "REMOTE_SIGNER_KEY_HASH": "tz2...",
    ... })
    >>> config.assets
    ['BTC-USD', 'XTZ-USD']
"""

from __future__ import annotations

import logging
import math
import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from .errors import ConfigurationError
from .providers import BaseCandleProvider, RetryPolicy, get_available_providers, provider_from_environ

logger = logging.getLogger(__name__)


def parse_assets(assets_str: str | None) -> list[str]:
    """Parse a comma-separated asset list, sorted.

    :param assets_str: e.g. "XTZ-USD,BTC-USD".
    :returns: Sorted list of asset names.
    :raises ConfigurationError: If no asset is defined.
    """
    if not assets_str:
        raise ConfigurationError("No asset list defined. Please check your configuration")
    assets = [a.strip() for a in assets_str.split(",") if a.strip()]
    if not assets:
        raise ConfigurationError("No asset list defined. Please check your configuration")
    return sorted(assets)


def _parse_float(
    environ: Mapping[str, str], name: str, default: float, allow_zero: bool = False
) -> float:
    value = environ.get(name)
    if not value:
        return default
    try:
        parsed = float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e
    if not math.isfinite(parsed) or parsed < 0 or (parsed == 0 and not allow_zero):
        raise ConfigurationError(f"{name} must be a positive finite number, got {value!r}")
    return parsed


@dataclass
class OracleConfig:
    """Validated settings for one pipeline invocation.

    :ivar assets: Sorted asset names.
    :ivar candle_provider: Registered provider name.
    :ivar signer_url: Remote signer base URL.
    :ivar signer_key_hash: Public key hash of the signing key.
    :ivar fetch_timeout: Upstream request timeout in seconds.
    :ivar signer_timeout: Remote signer request timeout in seconds.
    :ivar retry_policy: Override of the provider's default retry policy.
    :ivar environ: Environment the provider reads its credentials from.
    """

    assets: list[str]
    candle_provider: str
    signer_url: str
    signer_key_hash: str
    fetch_timeout: float = 10.0
    signer_timeout: float = 10.0
    retry_policy: RetryPolicy | None = None
    environ: Mapping[str, str] = field(default_factory=dict, repr=False)

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> OracleConfig:
        """Load settings from environment variables.

        :param environ: Environment mapping (default: os.environ).
        :returns: Validated configuration.
        :raises ConfigurationError: If a setting is missing or invalid.
        """
        if environ is None:
            environ = os.environ

        assets = parse_assets(environ.get("ASSETS"))

        provider = (environ.get("CANDLE_PROVIDER") or "").strip().lower()
        available = get_available_providers()
        if provider not in available:
            raise ConfigurationError(
                f"Unknown CANDLE_PROVIDER passed in env var: {environ.get('CANDLE_PROVIDER')}. "
                f"Available: {', '.join(available)}"
            )

        signer_url = environ.get("REMOTE_SIGNER_URL")
        signer_key_hash = environ.get("REMOTE_SIGNER_KEY_HASH")
        if not signer_url or not signer_key_hash:
            raise ConfigurationError(
                "Fatal: Missing an input to create Signer. Please check your configuration."
            )

        retry_policy = None
        if environ.get("RETRY_MAX_ATTEMPTS"):
            try:
                retry_policy = RetryPolicy(
                    max_attempts=int(environ["RETRY_MAX_ATTEMPTS"]),
                    delay_seconds=_parse_float(environ, "RETRY_DELAY", 1.0, allow_zero=True),
                )
            except ValueError as e:
                raise ConfigurationError(f"Invalid retry settings: {e}") from e
        elif environ.get("RETRY_DELAY"):
            raise ConfigurationError("RETRY_DELAY requires RETRY_MAX_ATTEMPTS to be set")

        return cls(
            assets=assets,
            candle_provider=provider,
            signer_url=signer_url,
            signer_key_hash=signer_key_hash,
            fetch_timeout=_parse_float(environ, "FETCH_TIMEOUT", 10.0),
            signer_timeout=_parse_float(environ, "SIGNER_TIMEOUT", 10.0),
            retry_policy=retry_policy,
            environ=environ,
        )

    def build_candle_provider(self) -> BaseCandleProvider:
        """Create the configured candle provider.

        :raises ProviderConfigError: If the provider's credentials are missing.
        """
        return provider_from_environ(
            self.candle_provider,
            self.environ,
            timeout=self.fetch_timeout,
            retry_policy=self.retry_policy,
        )
