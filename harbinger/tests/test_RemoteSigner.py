"""Unit tests for RemoteSigner."""

import json

import httpx
import pytest

from harbinger.src.base58check import b58check_decode, b58check_encode
from harbinger.src.errors import SigningError, SigningTimeout
from harbinger.src.RemoteSigner import RemoteSigner

KEY_HASH = "tz2BFTyPeYRzxd5aiBchbXN3WCZhx7BqbMBq"
PUBLIC_KEY = b58check_encode(bytes([2]) + bytes(range(32)), "sppk")
RAW_SIGNATURE = bytes(range(64))
SIGNATURE = b58check_encode(RAW_SIGNATURE, "spsig1")


class FakeSignerDaemon:
    """In-memory remote signer answering over httpx.MockTransport."""

    def __init__(self, signature: str = SIGNATURE, public_key: str = PUBLIC_KEY):
        self.signature = signature
        self.public_key = public_key
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.path != f"/keys/{KEY_HASH}":
            return httpx.Response(404, text="unknown key")
        if request.method == "GET":
            return httpx.Response(200, json={"public_key": self.public_key})
        return httpx.Response(200, json={"signature": self.signature})

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class TestFromUrl:
    """Test building a RemoteSigner."""

    @pytest.mark.asyncio
    async def test_resolves_public_key(self) -> None:
        """The public key is fetched once at construction."""
        daemon = FakeSignerDaemon()

        signer = await RemoteSigner.from_url("http://signer:6732/", KEY_HASH, client=daemon.client())

        assert signer.get_public_key() == PUBLIC_KEY
        assert signer.url == "http://signer:6732"
        assert len(daemon.requests) == 1
        assert daemon.requests[0].method == "GET"

    @pytest.mark.asyncio
    async def test_unknown_key(self) -> None:
        """A refused key lookup raises SigningError with the status."""
        daemon = FakeSignerDaemon()

        with pytest.raises(SigningError) as exc_info:
            await RemoteSigner.from_url("http://signer:6732", "tz2unknown", client=daemon.client())

        assert exc_info.value.status_code == 404

    @pytest.mark.asyncio
    async def test_malformed_public_key(self) -> None:
        """Public keys that fail base58check are rejected."""
        daemon = FakeSignerDaemon(public_key="sppk-not-a-key")

        with pytest.raises(SigningError, match="Invalid public key"):
            await RemoteSigner.from_url("http://signer:6732", KEY_HASH, client=daemon.client())

    @pytest.mark.asyncio
    async def test_malformed_response(self) -> None:
        """Responses without the expected field are rejected."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"unexpected": True})

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))

        with pytest.raises(SigningError, match="Malformed remote signer response"):
            await RemoteSigner.from_url("http://signer:6732", KEY_HASH, client=client)


class TestSign:
    """Test signing through the remote signer."""

    @pytest.mark.asyncio
    async def test_sign_posts_hex(self) -> None:
        """Bytes are posted as a JSON hex string."""
        daemon = FakeSignerDaemon()
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=daemon.client())

        signature = await signer.sign(bytes.fromhex("050306"))

        assert signature == SIGNATURE
        request = daemon.requests[-1]
        assert request.method == "POST"
        assert json.loads(request.content) == "050306"

    @pytest.mark.asyncio
    async def test_generic_signature_reencoded(self) -> None:
        """A generic sig... signature is re-encoded with the curve prefix."""
        daemon = FakeSignerDaemon(signature=b58check_encode(RAW_SIGNATURE, "sig"))
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=daemon.client())

        signature = await signer.sign(b"\x05")

        assert signature.startswith("spsig1")
        assert b58check_decode(signature, "spsig1") == RAW_SIGNATURE

    @pytest.mark.asyncio
    async def test_wrong_curve_signature(self) -> None:
        """Signatures for another curve are rejected."""
        daemon = FakeSignerDaemon(signature=b58check_encode(RAW_SIGNATURE, "edsig"))
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=daemon.client())

        with pytest.raises(SigningError):
            await signer.sign(b"\x05")

    @pytest.mark.asyncio
    async def test_refused(self) -> None:
        """Non-2xx answers raise SigningError."""

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(403, text="forbidden")

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=client)

        with pytest.raises(SigningError, match="HTTP 403") as exc_info:
            await signer.sign(b"\x05")

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_timeout(self) -> None:
        """Timeouts raise SigningTimeout."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=client)

        with pytest.raises(SigningTimeout):
            await signer.sign(b"\x05")

    @pytest.mark.asyncio
    async def test_unreachable(self) -> None:
        """Connection failures raise SigningError."""

        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        signer = RemoteSigner("http://signer:6732", KEY_HASH, PUBLIC_KEY, client=client)

        with pytest.raises(SigningError, match="unreachable"):
            await signer.sign(b"\x05")
