#!/usr/bin/env python3
"""Harbinger Signer.

Fetches the latest one minute candle of each configured asset pair, packs it
for the on-chain oracle contract and signs it with a remote signing key.

Configure with env vars or the CLI options below.
"""

import argparse
import asyncio
import json
import logging
import os
import sys

from .src.handler import OPERATIONS, HttpResponseCode, get_oracle_service, handle
from .src.providers import get_available_providers

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)


def build_environ(args: argparse.Namespace) -> dict[str, str]:
    """Overlay CLI options on the process environment.

    :param args: Parsed CLI arguments.
    :returns: Environment mapping used to build the pipeline.
    """
    environ = dict(os.environ)
    overrides = {
        "ASSETS": args.assets,
        "CANDLE_PROVIDER": args.provider,
        "REMOTE_SIGNER_URL": args.signer_url,
        "REMOTE_SIGNER_KEY_HASH": args.key_hash,
        "FETCH_TIMEOUT": args.fetch_timeout,
    }
    for key, value in overrides.items():
        if value is not None:
            environ[key] = str(value)
    return environ


def main() -> None:
    """Main entry point for the Harbinger Signer CLI."""
    available_providers = get_available_providers()

    parser = argparse.ArgumentParser(
        description="Harbinger Signer: signed OHLCV candles for an on-chain oracle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Available candle providers:
  {', '.join(available_providers)}

Examples:
  # Sign the latest XTZ-USD and BTC-USD candles from Binance
  python -m harbinger.main oracle --assets XTZ-USD,BTC-USD --provider binance \\
      --signer-url http://localhost:6732 --key-hash tz2...

  # Sign the revoke message
  python -m harbinger.main revoke

Environment variables (CLI args take precedence):
  ASSETS, CANDLE_PROVIDER, REMOTE_SIGNER_URL, REMOTE_SIGNER_KEY_HASH,
  FETCH_TIMEOUT, SIGNER_TIMEOUT, RETRY_MAX_ATTEMPTS, RETRY_DELAY,
  COINBASE_API_KEY_ID, COINBASE_API_KEY_SECRET, COINBASE_API_KEY_PASSPHRASE
""",
    )

    parser.add_argument(
        "operation",
        choices=OPERATIONS,
        help="Operation to run",
    )

    parser.add_argument(
        "--assets",
        type=str,
        help="Comma-separated asset pairs (e.g., XTZ-USD,BTC-USD)",
    )

    parser.add_argument(
        "--provider",
        type=str,
        help=f"Candle provider. Available: {', '.join(available_providers)}",
    )

    parser.add_argument(
        "--signer-url",
        dest="signer_url",
        type=str,
        help="Base URL of the remote signer",
    )

    parser.add_argument(
        "--key-hash",
        dest="key_hash",
        type=str,
        help="Public key hash of the signing key",
    )

    parser.add_argument(
        "--fetch-timeout",
        dest="fetch_timeout",
        type=float,
        help="Timeout for upstream candle requests in seconds (default: 10.0)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    args = parser.parse_args()

    # Configure logging level
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.provider and args.provider.lower() not in available_providers:
        parser.error(
            f"Unknown provider: {args.provider}. "
            f"Available: {', '.join(available_providers)}"
        )

    environ = build_environ(args)

    response = asyncio.run(
        handle(args.operation, lambda: get_oracle_service(environ))
    )

    body = response["body"]
    if args.operation != "revoke" and response["statusCode"] == HttpResponseCode.OK:
        body = json.dumps(json.loads(body), indent=2)
    print(body)

    if response["statusCode"] != HttpResponseCode.OK:
        sys.exit(1)


if __name__ == "__main__":
    main()
