"""
Harbinger Signer - Signed Candle Feed Module

This module provides signed OHLCV candles for an on-chain price oracle:
- Candle: Canonical candle record with 6 digit fixed-point values
- providers: Per-exchange candle providers with optional retry
- MichelsonPacker: Canonical binary encoding of oracle messages
- Signer / RemoteSigner: Signing through a remote key custodian
- OracleService: oracle(), revoke() and info() operations
"""

from .Candle import SCALE, Candle, scale
from .errors import (
    CandleUnavailable,
    ConfigurationError,
    EncodingError,
    OracleError,
    ProviderConfigError,
    SigningError,
    SigningTimeout,
    UpstreamError,
    UpstreamTimeout,
)
from .MichelsonPacker import MichelsonPacker, MichelsonSchema, pack
from .OracleService import OracleService
from .RemoteSigner import RemoteSigner
from .Signer import Signer

__all__ = [
    "SCALE",
    "Candle",
    "CandleUnavailable",
    "ConfigurationError",
    "EncodingError",
    "MichelsonPacker",
    "MichelsonSchema",
    "OracleError",
    "OracleService",
    "ProviderConfigError",
    "RemoteSigner",
    "Signer",
    "SigningError",
    "SigningTimeout",
    "UpstreamError",
    "UpstreamTimeout",
    "pack",
    "scale",
]
