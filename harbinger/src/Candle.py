"""Candle: canonical OHLCV record signed by the oracle.

By convention every price and volume is a natural number carrying six digits
of fixed precision. For instance, $123.42 is expressed as ``123_420_000``.

.. code-block:: python

    >>> scale("123.42")
    123420000
    >>> candle = Candle("XTZ-USD", 1000, 1060, 1_000_000, 1_100_000,
    ...                 900_000, 1_050_000, 500_000)
    >>> candle.midpoint()
    '1.025'
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

# Number of decimal digits kept in scaled values.
SCALE = 6

SCALE_FACTOR = Decimal(10) ** SCALE


def scale(value: str | int | float) -> int:
    """Scale a decimal value to its fixed-point integer representation.

    Rounds half up on the decimal text of the value, so upstream strings
    such as ``"1.005"`` scale exactly.

    :param value: Decimal value as reported by an upstream source.
    :returns: ``round(value * 10**6)``.
    :raises ValueError: If the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        number = Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not number.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return int((number * SCALE_FACTOR).to_integral_value(rounding=ROUND_HALF_UP))


def unscale(value: int) -> Decimal:
    """Convert a scaled integer back to its decimal value."""
    return Decimal(value) / SCALE_FACTOR


@dataclass(frozen=True)
class Candle:
    """One OHLCV summary of a 60 second bucket for a trading pair.

    ``low <= open, close <= high`` holds for well-formed upstream data but is
    not checked here.

    :ivar asset_name: Asset pair, e.g. ``"XTZ-USD"``.
    :ivar start_timestamp: Unix seconds of the bucket start.
    :ivar end_timestamp: Unix seconds of the bucket end.
    :ivar open: Scaled open price.
    :ivar high: Scaled high price.
    :ivar low: Scaled low price.
    :ivar close: Scaled close price.
    :ivar volume: Scaled traded volume.
    """

    asset_name: str
    start_timestamp: int
    end_timestamp: int
    open: int
    high: int
    low: int
    close: int
    volume: int

    def midpoint(self) -> str:
        """Return ``(open + close) / 2`` as a plain decimal string.

        Display only; the signed payload carries the exact scaled values.
        """
        mid = unscale(self.open + self.close) / 2
        return format(mid, "f")
