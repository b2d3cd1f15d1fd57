"""RemoteSigner: Signer backed by a Tezos remote signer daemon.

Speaks the remote signer HTTP protocol implemented by ``octez-signer`` and
compatible key custodians (HSM or cloud KMS gateways):

    GET  /keys/{key_hash}              -> {"public_key": "sppk..."}
    POST /keys/{key_hash}  "05..."     -> {"signature": "spsig1..."}
"""

from __future__ import annotations

import logging

import httpx

from .base58check import (
    SIGNATURE_PREFIXES,
    b58check_decode,
    b58check_encode,
    key_prefix,
)
from .errors import SigningError, SigningTimeout
from .Signer import Signer

logger = logging.getLogger(__name__)


class RemoteSigner(Signer):
    """Signer implementation for a remote signer daemon.

    Use :meth:`from_url` to build one; it resolves the public key once.
    Requests are not retried.

    :ivar url: Base URL of the remote signer.
    :ivar key_hash: Public key hash identifying the signing key.
    :ivar timeout: Request timeout in seconds.
    """

    DEFAULT_TIMEOUT = 10.0

    def __init__(
        self,
        url: str,
        key_hash: str,
        public_key: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the signer with an already resolved public key.

        :param url: Base URL of the remote signer.
        :param key_hash: Public key hash of the signing key (tz1/tz2/tz3).
        :param public_key: Base58check public key of the signing key.
        :param timeout: Request timeout in seconds (default: 10).
        :param client: Optional HTTP client; a private one is created otherwise.
        :raises SigningError: If the public key is malformed.
        """
        self.url = url.rstrip("/")
        self.key_hash = key_hash
        self.timeout = timeout or self.DEFAULT_TIMEOUT
        self._client = client
        self._public_key = self._validate_public_key(public_key)
        self._key_prefix = key_prefix(self._public_key)

    @classmethod
    async def from_url(
        cls,
        url: str,
        key_hash: str,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> RemoteSigner:
        """Build a signer, fetching the public key from the remote signer.

        :param url: Base URL of the remote signer.
        :param key_hash: Public key hash of the signing key.
        :param timeout: Request timeout in seconds.
        :param client: Optional HTTP client.
        :returns: A ready RemoteSigner.
        :raises SigningError: If the public key cannot be resolved.
        """
        signer_url = url.rstrip("/")
        response = await cls._request(
            client, "GET", f"{signer_url}/keys/{key_hash}", timeout or cls.DEFAULT_TIMEOUT
        )
        public_key = cls._field(response, "public_key")
        logger.info(f"Resolved public key {public_key} for {key_hash}")
        return cls(signer_url, key_hash, public_key, timeout=timeout, client=client)

    def get_public_key(self) -> str:
        """Return the base58check public key resolved at construction."""
        return self._public_key

    async def sign(self, data: bytes) -> str:
        """Sign bytes with the remote key.

        :param data: Bytes to sign.
        :returns: Signature with the curve-specific prefix (edsig, spsig1, p2sig).
        :raises SigningError: If the signer is unreachable, refuses or answers
            with a malformed signature.
        :raises SigningTimeout: If the request times out.
        """
        logger.debug(f"Signing {len(data)} bytes with {self.key_hash}")
        response = await self._request(
            self._client,
            "POST",
            f"{self.url}/keys/{self.key_hash}",
            self.timeout,
            json=data.hex(),
        )
        return self._normalize_signature(self._field(response, "signature"))

    def _normalize_signature(self, signature: str) -> str:
        """Return the signature with the prefix matching the key's curve.

        A generic ``sig...`` signature is re-encoded with the curve prefix.
        """
        expected = SIGNATURE_PREFIXES[self._key_prefix]
        try:
            if signature.startswith(expected):
                b58check_decode(signature, expected)
                return signature
            if signature.startswith("sig"):
                raw = b58check_decode(signature, "sig")
                return b58check_encode(raw, expected)
        except ValueError as e:
            raise SigningError(f"Remote signer returned an invalid signature: {e}") from e
        raise SigningError(
            f"Remote signer returned a signature that is not '{expected}' or 'sig': "
            f"{signature[:8]}..."
        )

    @staticmethod
    def _validate_public_key(public_key: str) -> str:
        try:
            prefix = key_prefix(public_key)
            b58check_decode(public_key, prefix)
        except ValueError as e:
            raise SigningError(f"Invalid public key from remote signer: {e}") from e
        return public_key

    @staticmethod
    def _field(response: httpx.Response, name: str) -> str:
        try:
            value = response.json()[name]
        except (ValueError, KeyError, TypeError) as e:
            raise SigningError(
                f"Malformed remote signer response: {response.text[:200]}"
            ) from e
        if not isinstance(value, str):
            raise SigningError(f"Malformed remote signer response: {name}={value!r}")
        return value

    @staticmethod
    async def _request(
        client: httpx.AsyncClient | None,
        method: str,
        url: str,
        timeout: float,
        json: str | None = None,
    ) -> httpx.Response:
        """Issue one request to the remote signer.

        :raises SigningTimeout: On timeout.
        :raises SigningError: On network errors or non-2xx responses.
        """
        try:
            if client is not None:
                response = await client.request(method, url, json=json, timeout=timeout)
            else:
                async with httpx.AsyncClient() as own_client:
                    response = await own_client.request(
                        method, url, json=json, timeout=timeout
                    )
        except httpx.TimeoutException as e:
            raise SigningTimeout(f"Remote signer timeout: {e}") from e
        except httpx.RequestError as e:
            raise SigningError(f"Remote signer unreachable: {e}") from e

        if not response.is_success:
            logger.warning(
                "Remote signer %s %s failed: %s %s",
                method,
                url,
                response.status_code,
                response.text[:200],
            )
            raise SigningError(
                f"Remote signer refused request: HTTP {response.status_code}: "
                f"{response.text[:200]}",
                status_code=response.status_code,
            )
        return response

