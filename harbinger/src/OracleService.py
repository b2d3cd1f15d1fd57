"""OracleService: composes a candle provider and a signer into the oracle API.

Operations:
    - oracle(): fetch, pack and sign the latest candle of every asset
    - revoke(): sign the sentinel that disables the oracle key on-chain
    - info(): describe the feed

A failing feed for one asset only removes that asset from the response;
packing and signing failures abort the whole operation.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from .errors import CandleUnavailable, ConfigurationError, UpstreamError
from .MichelsonPacker import MichelsonPacker, MichelsonSchema, quote

if TYPE_CHECKING:
    from .Candle import Candle
    from .providers import BaseCandleProvider
    from .Signer import Signer

logger = logging.getLogger(__name__)

# Revoke message: no replacement key.
REVOKE_MESSAGE = "None"


class OracleService:
    """Oracle operations over a fixed list of assets.

    :ivar asset_names: Assets served, in order.
    :ivar candle_provider: Source of candles.
    :ivar signer: Signer for packed messages.
    """

    def __init__(
        self,
        asset_names: list[str],
        candle_provider: BaseCandleProvider,
        signer: Signer,
    ) -> None:
        """Initialize the oracle service.

        :param asset_names: Asset names to serve (e.g. ["BTC-USD", "XTZ-USD"]).
        :param candle_provider: Provider for candles.
        :param signer: Signer that signs packed messages.
        :raises ConfigurationError: If the asset list is empty or malformed,
            or the provider or signer is missing.
        """
        if not asset_names:
            raise ConfigurationError("At least one asset name must be specified")
        invalid = [a for a in asset_names if not isinstance(a, str) or not a.strip()]
        if invalid:
            raise ConfigurationError(f"Invalid asset names: {invalid}")
        if candle_provider is None:
            raise ConfigurationError("A candle provider is required")
        if signer is None:
            raise ConfigurationError("A signer is required")

        self.asset_names = list(asset_names)
        self.candle_provider = candle_provider
        self.signer = signer

    async def oracle(self) -> dict[str, Any]:
        """Fetch, pack and sign the latest candle of every asset.

        :returns: Dict with ``timestamp`` (latest candle start), ``messages``
            (hex packed candles), ``signatures`` (aligned with messages) and
            ``prices`` (asset name to display midpoint). ``prices`` is keyed by
            name, so a duplicated asset yields one price but one message and
            signature per occurrence.
        :raises EncodingError: If a candle cannot be packed.
        :raises SigningError: If a message cannot be signed.
        """
        candles = await self._fetch_candles()

        packed = [self.pack_candle(candle) for candle in candles]

        signatures = await self._sign_all(packed)

        timestamp = max((c.start_timestamp for c in candles), default=0)
        prices = {c.asset_name: c.midpoint() for c in candles}

        logger.info(
            f"Signed {len(candles)}/{len(self.asset_names)} candles "
            f"(timestamp={timestamp})"
        )
        return {
            "timestamp": timestamp,
            "messages": [p.hex() for p in packed],
            "signatures": signatures,
            "prices": prices,
        }

    async def revoke(self) -> str:
        """Sign the revoke sentinel.

        :returns: The signature alone.
        :raises EncodingError: If the sentinel cannot be packed.
        :raises SigningError: If the sentinel cannot be signed.
        """
        signature = await self.signer.sign(self.revoke_payload())
        logger.info("Signed revoke message")
        return signature

    async def info(self) -> dict[str, Any]:
        """Describe the feed.

        :returns: Dict with ``dataFeed``, ``assetNames`` and ``publicKey``.
        """
        return {
            "dataFeed": self.candle_provider.get_provider_name(),
            "assetNames": self.asset_names,
            "publicKey": self.signer.get_public_key(),
        }

    @staticmethod
    def revoke_payload() -> bytes:
        """Return the packed revoke sentinel."""
        return MichelsonPacker.pack(REVOKE_MESSAGE, MichelsonSchema.REVOKE)

    @staticmethod
    def render_candle(candle: Candle) -> str:
        """Render a candle as a Michelson pair-tree literal.

        Field order: asset name, start, end, open, high, low, close, volume.
        """
        return (
            f"Pair {quote(candle.asset_name)} (Pair {candle.start_timestamp} "
            f"(Pair {candle.end_timestamp} (Pair {candle.open} (Pair {candle.high} "
            f"(Pair {candle.low} (Pair {candle.close} {candle.volume}))))))"
        )

    @classmethod
    def pack_candle(cls, candle: Candle) -> bytes:
        """Pack a candle under the candle schema."""
        michelson = cls.render_candle(candle)
        logger.debug(f"Packing {michelson}")
        return MichelsonPacker.pack(michelson, MichelsonSchema.CANDLE)

    async def _sign_all(self, packed: list[bytes]) -> list[str]:
        """Sign messages concurrently, cancelling the rest on the first failure.

        :returns: Signatures in message order.
        """
        tasks = [asyncio.ensure_future(self.signer.sign(p)) for p in packed]
        try:
            # gather keeps submission order, so signatures[i] signs packed[i]
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def _fetch_candles(self) -> list[Candle]:
        """Fetch candles for all assets concurrently, skipping failed assets.

        :returns: Candles in asset list order, without the failed assets.
        """
        results = await asyncio.gather(
            *(self.candle_provider.get_candle(name) for name in self.asset_names),
            return_exceptions=True,
        )

        candles: list[Candle] = []
        for asset_name, result in zip(self.asset_names, results, strict=True):
            if isinstance(result, (UpstreamError, CandleUnavailable)):
                logger.warning(f"Unable to produce a candle for {asset_name}: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            candles.append(result)
        return candles
