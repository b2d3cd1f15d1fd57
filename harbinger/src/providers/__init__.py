"""
Candle providers for multiple exchanges.

This module provides a unified interface for fetching the latest one minute
candle of an asset pair from various exchange APIs.

Usage:
    from harbinger.src.providers import get_provider, get_available_providers

    # Get list of available providers
    available = get_available_providers()
    # ['binance', 'coinbase', 'gemini', 'kraken', 'okex']

    # Create a provider instance
    provider = get_provider("binance")
    candle = await provider.get_candle("XTZ-USD")

    # For providers requiring credentials
    provider = provider_from_environ("coinbase", os.environ)
"""

# Import base classes and utilities
from .base import (
    PROVIDER_REGISTRY,
    BaseCandleProvider,
    RetryPolicy,
    get_available_providers,
    get_provider,
    provider_from_environ,
    register_provider,
)

# Import all provider implementations to trigger registration
from .binance import BinanceCandleProvider
from .coinbase import CoinbaseCandleProvider
from .gemini import GeminiCandleProvider
from .kraken import KrakenCandleProvider
from .okex import OkexCandleProvider

__all__ = [
    # Base classes
    "BaseCandleProvider",
    "RetryPolicy",
    # Registry functions
    "register_provider",
    "get_provider",
    "provider_from_environ",
    "get_available_providers",
    "PROVIDER_REGISTRY",
    # Provider implementations
    "BinanceCandleProvider",
    "CoinbaseCandleProvider",
    "GeminiCandleProvider",
    "KrakenCandleProvider",
    "OkexCandleProvider",
]
