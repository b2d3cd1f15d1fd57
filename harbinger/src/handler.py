"""Entry point handlers mapping oracle operations to HTTP responses.

Each handler builds a fresh :class:`OracleService` from the environment, runs
one operation and returns an API Gateway style response:

    {"statusCode": 200, "body": "..."}

Any error becomes a 500 response carrying the error message.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import IntEnum
from typing import Any

from .config import OracleConfig
from .OracleService import OracleService
from .providers import BaseCandleProvider
from .RemoteSigner import RemoteSigner

logger = logging.getLogger(__name__)

OPERATIONS = ("oracle", "revoke", "info")


class HttpResponseCode(IntEnum):
    """HTTP status codes returned by the handlers."""

    OK = 200
    SERVER_ERROR = 500


async def get_oracle_service(environ: Mapping[str, str] | None = None) -> OracleService:
    """Build an OracleService from environment variables.

    :param environ: Environment mapping (default: os.environ).
    :returns: A ready OracleService.
    :raises ConfigurationError: If the configuration is invalid.
    :raises SigningError: If the signer's public key cannot be resolved.
    """
    config = OracleConfig.from_environ(environ)
    candle_provider = config.build_candle_provider()
    signer = await RemoteSigner.from_url(
        config.signer_url,
        config.signer_key_hash,
        timeout=config.signer_timeout,
    )
    return OracleService(config.assets, candle_provider, signer)


async def handle(
    operation: str,
    service_factory: Callable[[], Awaitable[OracleService]] = get_oracle_service,
) -> dict[str, Any]:
    """Run one oracle operation and map the outcome to a response.

    :param operation: One of "oracle", "revoke", "info".
    :param service_factory: Coroutine function returning the OracleService.
    :returns: Dict with ``statusCode`` and ``body``.
    """
    try:
        if operation not in OPERATIONS:
            raise ValueError(f"Unknown operation '{operation}'")
        service = await service_factory()
        if operation == "revoke":
            body = await service.revoke()
        elif operation == "info":
            body = json.dumps(await service.info())
        else:
            body = json.dumps(await service.oracle())
        return {"statusCode": int(HttpResponseCode.OK), "body": body}
    except Exception as e:
        logger.exception(f"{operation} failed: {e}")
        return {"statusCode": int(HttpResponseCode.SERVER_ERROR), "body": f"Error: {e}"}
    finally:
        await BaseCandleProvider.close_shared_client()


def oracle(event: Any = None, context: Any = None) -> dict[str, Any]:
    """Handler for the oracle feed endpoint."""
    return asyncio.run(handle("oracle"))


def revoke(event: Any = None, context: Any = None) -> dict[str, Any]:
    """Handler for the revoke endpoint."""
    return asyncio.run(handle("revoke"))


def info(event: Any = None, context: Any = None) -> dict[str, Any]:
    """Handler for the info endpoint."""
    return asyncio.run(handle("info"))
