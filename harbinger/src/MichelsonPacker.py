"""MichelsonPacker: canonical binary encoding of oracle messages.

Messages are written as Michelson data literals (a right-leaning tree of
``Pair`` nodes) and packed the way the Tezos ``PACK`` instruction does, which
is what the oracle contract hashes and verifies signatures against:

    0x05 ++ binary_micheline(value)

Packing is typed: the literal is checked against a Michelson type so that,
for instance, a negative ``nat`` or a malformed ``key`` is rejected instead of
producing bytes the contract would never accept.

.. code-block:: python

    >>> MichelsonPacker.pack("None", MichelsonSchema.REVOKE).hex()
    '050306'
    >>> pack("Pair 1 2", "pair nat nat").hex()
    '05070700010002'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from .base58check import encode_key
from .errors import EncodingError

# Watermark of packed Michelson data.
PACK_PREFIX = b"\x05"

# Binary Micheline node tags.
TAG_INT = 0x00
TAG_STRING = 0x01
TAG_PRIM_0 = 0x03
TAG_PRIM_1 = 0x05
TAG_PRIM_2 = 0x07
TAG_BYTES = 0x0A

# Michelson primitive codes for the data constructors used here.
PRIM_CODES = {
    "False": 0x03,
    "Pair": 0x07,
    "None": 0x06,
    "Some": 0x09,
    "True": 0x0A,
    "Unit": 0x0B,
}

INT_TYPES = ("int", "nat", "timestamp")


class MichelsonSchema(str, Enum):
    """Michelson types of the messages the oracle contract accepts."""

    CANDLE = (
        "pair string (pair timestamp (pair timestamp "
        "(pair nat (pair nat (pair nat (pair nat nat))))))"
    )
    REVOKE = "option key"


@dataclass
class Node:
    """A parsed Michelson expression.

    ``kind`` is one of ``"int"``, ``"string"``, ``"bytes"`` or ``"prim"``.
    """

    kind: str
    value: int | str | bytes
    args: list[Node] = field(default_factory=list)

    def describe(self) -> str:
        if self.kind == "prim":
            return str(self.value)
        return f"{self.kind} {self.value!r}"


_TOKEN_RE = re.compile(
    r"""
    (?P<space>\s+)
    |(?P<lparen>\()
    |(?P<rparen>\))
    |(?P<string>"(?:[^"\\]|\\.)*")
    |(?P<bytes>0x[0-9a-fA-F]*)
    |(?P<int>-?\d+)
    |(?P<word>[A-Za-z_][A-Za-z0-9_]*)
    """,
    re.VERBOSE,
)

_ESCAPES = {'"': '"', "\\": "\\", "n": "\n", "r": "\r", "t": "\t", "b": "\b"}


def _tokenize(source: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(source):
        match = _TOKEN_RE.match(source, pos)
        if match is None:
            raise EncodingError(f"Unexpected character {source[pos]!r} at {pos}")
        kind = match.lastgroup
        if kind != "space":
            tokens.append((kind, match.group()))
        pos = match.end()
    return tokens


def _unescape(literal: str) -> str:
    body = literal[1:-1]
    out: list[str] = []
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\":
            escaped = body[i + 1]
            if escaped not in _ESCAPES:
                raise EncodingError(f"Invalid escape sequence \\{escaped}")
            out.append(_ESCAPES[escaped])
            i += 2
        else:
            out.append(char)
            i += 1
    return "".join(out)


class _Parser:
    """Recursive descent parser for Michelson expressions."""

    def __init__(self, source: str):
        self.tokens = _tokenize(source)
        self.pos = 0

    def parse(self) -> Node:
        if not self.tokens:
            raise EncodingError("Empty Michelson expression")
        node = self._expression()
        if self.pos != len(self.tokens):
            raise EncodingError(f"Unexpected token {self.tokens[self.pos][1]!r}")
        return node

    def _peek(self) -> tuple[str, str] | None:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _expression(self) -> Node:
        token = self._peek()
        if token is not None and token[0] == "word":
            self.pos += 1
            args = []
            while (next_token := self._peek()) is not None and next_token[0] != "rparen":
                args.append(self._term())
            return Node("prim", token[1], args)
        return self._term()

    def _term(self) -> Node:
        token = self._peek()
        if token is None:
            raise EncodingError("Unexpected end of Michelson expression")
        kind, text = token
        self.pos += 1
        if kind == "lparen":
            node = self._expression()
            closing = self._peek()
            if closing is None or closing[0] != "rparen":
                raise EncodingError("Unbalanced parentheses")
            self.pos += 1
            return node
        if kind == "int":
            return Node("int", int(text))
        if kind == "string":
            return Node("string", _unescape(text))
        if kind == "bytes":
            try:
                return Node("bytes", bytes.fromhex(text[2:]))
            except ValueError as e:
                raise EncodingError(f"Invalid bytes literal {text!r}") from e
        if kind == "word":
            return Node("prim", text)
        raise EncodingError(f"Unexpected token {text!r}")


def _zarith(value: int) -> bytes:
    """Encode a signed integer as a Micheline zarith number."""
    magnitude = abs(value)
    first = magnitude & 0x3F
    if value < 0:
        first |= 0x40
    magnitude >>= 6
    if magnitude:
        first |= 0x80
    out = bytearray([first])
    while magnitude:
        byte = magnitude & 0x7F
        magnitude >>= 7
        if magnitude:
            byte |= 0x80
        out.append(byte)
    return bytes(out)


def _length_prefixed(tag: int, payload: bytes) -> bytes:
    return bytes([tag]) + len(payload).to_bytes(4, "big") + payload


def _parse_timestamp(value: str) -> int:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError as e:
        raise EncodingError(f"Invalid timestamp {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return int(parsed.timestamp())


def _expect_prim(node: Node, names: tuple[str, ...], arity: int, type_name: str) -> str:
    if node.kind != "prim" or node.value not in names:
        raise EncodingError(f"Expected {type_name} value, got {node.describe()}")
    if len(node.args) != arity:
        raise EncodingError(
            f"{node.value} takes {arity} argument(s), got {len(node.args)}"
        )
    return str(node.value)


class MichelsonPacker:
    """Packs Michelson data literals against a Michelson type."""

    @classmethod
    def pack(cls, message: str, schema: MichelsonSchema | str) -> bytes:
        """Pack a Michelson literal to bytes.

        :param message: Michelson data, e.g. ``'Pair "XTZ-USD" (Pair 1 ...)'``.
        :param schema: Michelson type of the data.
        :returns: ``0x05`` followed by the binary encoding of the value.
        :raises EncodingError: If the message does not parse or type-check.
        """
        type_source = schema.value if isinstance(schema, MichelsonSchema) else schema
        try:
            value = _Parser(message).parse()
            value_type = _Parser(type_source).parse()
            return PACK_PREFIX + cls._encode(value, value_type)
        except RecursionError as e:
            raise EncodingError("Michelson expression nested too deeply") from e

    @classmethod
    def _encode(cls, node: Node, type_node: Node) -> bytes:
        if type_node.kind != "prim":
            raise EncodingError(f"Invalid type {type_node.describe()}")
        type_name = type_node.value
        type_args = type_node.args

        if type_name == "pair":
            if len(type_args) < 2:
                raise EncodingError("pair type takes at least 2 arguments")
            left_type = type_args[0]
            right_type = (
                type_args[1] if len(type_args) == 2 else Node("prim", "pair", type_args[1:])
            )
            _expect_prim(node, ("Pair",), 2, "pair")
            return (
                bytes([TAG_PRIM_2, PRIM_CODES["Pair"]])
                + cls._encode(node.args[0], left_type)
                + cls._encode(node.args[1], right_type)
            )

        if type_name == "option":
            if len(type_args) != 1:
                raise EncodingError("option type takes 1 argument")
            if node.kind == "prim" and node.value == "None":
                _expect_prim(node, ("None",), 0, "option")
                return bytes([TAG_PRIM_0, PRIM_CODES["None"]])
            _expect_prim(node, ("Some",), 1, "option")
            return bytes([TAG_PRIM_1, PRIM_CODES["Some"]]) + cls._encode(
                node.args[0], type_args[0]
            )

        if type_args:
            raise EncodingError(f"Type {type_name} takes no arguments")

        if type_name in INT_TYPES:
            if type_name == "timestamp" and node.kind == "string":
                return bytes([TAG_INT]) + _zarith(_parse_timestamp(str(node.value)))
            if node.kind != "int":
                raise EncodingError(f"Expected {type_name} value, got {node.describe()}")
            number = int(node.value)
            if type_name == "nat" and number < 0:
                raise EncodingError(f"Negative value {number} for type nat")
            return bytes([TAG_INT]) + _zarith(number)

        if type_name == "string":
            if node.kind != "string":
                raise EncodingError(f"Expected string value, got {node.describe()}")
            return _length_prefixed(TAG_STRING, str(node.value).encode("utf-8"))

        if type_name == "bytes":
            if node.kind != "bytes":
                raise EncodingError(f"Expected bytes value, got {node.describe()}")
            return _length_prefixed(TAG_BYTES, bytes(node.value))

        if type_name == "key":
            if node.kind == "bytes":
                return _length_prefixed(TAG_BYTES, bytes(node.value))
            if node.kind != "string":
                raise EncodingError(f"Expected key value, got {node.describe()}")
            try:
                key_bytes = encode_key(str(node.value))
            except ValueError as e:
                raise EncodingError(f"Invalid key {node.value!r}: {e}") from e
            return _length_prefixed(TAG_BYTES, key_bytes)

        if type_name == "bool":
            name = _expect_prim(node, ("True", "False"), 0, "bool")
            return bytes([TAG_PRIM_0, PRIM_CODES[name]])

        if type_name == "unit":
            _expect_prim(node, ("Unit",), 0, "unit")
            return bytes([TAG_PRIM_0, PRIM_CODES["Unit"]])

        raise EncodingError(f"Unsupported type {type_name}")


def quote(value: str) -> str:
    """Render a Python string as a Michelson string literal."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def pack(message: str, schema: MichelsonSchema | str) -> bytes:
    """Pack a Michelson literal under a schema. See :meth:`MichelsonPacker.pack`."""
    return MichelsonPacker.pack(message, schema)
