"""Base58check encoding of Tezos keys and signatures.

Every encoded value starts with a fixed byte prefix identifying its kind
(public key, signature) and curve, followed by the payload and a four byte
double-SHA256 checksum.

.. code-block:: python

    >>> encoded = b58check_encode(bytes(64), "spsig1")
    >>> encoded.startswith("spsig1")
    True
    >>> b58check_decode(encoded, "spsig1") == bytes(64)
    True
"""

import base58

# Byte prefixes and payload lengths per encoded kind.
PREFIXES: dict[str, tuple[bytes, int]] = {
    "edpk": (bytes([13, 15, 37, 217]), 32),
    "sppk": (bytes([3, 254, 226, 86]), 33),
    "p2pk": (bytes([3, 178, 139, 127]), 33),
    "edsig": (bytes([9, 245, 205, 134, 18]), 64),
    "spsig1": (bytes([13, 115, 101, 19, 63]), 64),
    "p2sig": (bytes([54, 240, 44, 52]), 64),
    "sig": (bytes([4, 130, 43]), 64),
}

# Curve tags used by the binary key encoding, keyed by public key prefix.
KEY_CURVES: dict[str, int] = {
    "edpk": 0x00,
    "sppk": 0x01,
    "p2pk": 0x02,
}

# Signature prefix matching each public key prefix.
SIGNATURE_PREFIXES: dict[str, str] = {
    "edpk": "edsig",
    "sppk": "spsig1",
    "p2pk": "p2sig",
}


def b58check_encode(payload: bytes, prefix: str) -> str:
    """Encode a payload with the given Tezos prefix.

    :param payload: Raw bytes to encode.
    :param prefix: Prefix name, e.g. ``"sppk"``.
    :returns: Base58check encoded string.
    :raises ValueError: If the prefix is unknown or the length is wrong.
    """
    if prefix not in PREFIXES:
        raise ValueError(f"Unknown base58check prefix '{prefix}'")
    prefix_bytes, length = PREFIXES[prefix]
    if len(payload) != length:
        raise ValueError(
            f"Invalid payload length for {prefix}: {len(payload)} (expected {length})"
        )
    return base58.b58encode_check(prefix_bytes + payload).decode("ascii")


def b58check_decode(value: str, prefix: str) -> bytes:
    """Decode a base58check string carrying the given Tezos prefix.

    :param value: Encoded string, e.g. ``"sppk7..."``.
    :param prefix: Expected prefix name.
    :returns: Raw payload bytes without prefix and checksum.
    :raises ValueError: If the checksum, prefix or length is invalid.
    """
    if prefix not in PREFIXES:
        raise ValueError(f"Unknown base58check prefix '{prefix}'")
    if not value.startswith(prefix):
        raise ValueError(f"Expected a '{prefix}' value, got '{value[:8]}...'")
    prefix_bytes, length = PREFIXES[prefix]
    try:
        decoded = base58.b58decode_check(value)
    except ValueError as e:
        raise ValueError(f"Invalid base58check value: {e}") from e
    if not decoded.startswith(prefix_bytes) or len(decoded) != len(prefix_bytes) + length:
        raise ValueError(f"Malformed '{prefix}' value")
    return decoded[len(prefix_bytes):]


def key_prefix(public_key: str) -> str:
    """Return the prefix name of an encoded public key.

    :raises ValueError: If the key is not an ed25519, secp256k1 or p256 key.
    """
    for prefix in KEY_CURVES:
        if public_key.startswith(prefix):
            return prefix
    raise ValueError(f"Unsupported public key '{public_key[:8]}...'")


def encode_key(public_key: str) -> bytes:
    """Encode a public key to its binary form: curve tag followed by the key.

    :param public_key: Base58check public key.
    :returns: Tagged key bytes.
    :raises ValueError: If the key is malformed.
    """
    prefix = key_prefix(public_key)
    return bytes([KEY_CURVES[prefix]]) + b58check_decode(public_key, prefix)
