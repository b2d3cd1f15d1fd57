"""Unit tests for Candle and fixed-point scaling."""

from decimal import Decimal

import pytest

from harbinger.src.Candle import SCALE, Candle, scale, unscale


def make_candle(open_: int, close: int) -> Candle:
    return Candle("XTZ-USD", 1000, 1060, open_, max(open_, close), min(open_, close), close, 1)


class TestScale:
    """Test fixed-point scaling."""

    def test_scale_digits(self) -> None:
        """Scaled values carry six decimal digits."""
        assert SCALE == 6
        assert scale("123.42") == 123_420_000
        assert scale(1) == 1_000_000
        assert scale("0") == 0

    def test_accepts_numeric_types(self) -> None:
        """Strings, ints and floats of the same value scale alike."""
        assert scale("2.5") == scale(2.5) == 2_500_000

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("1.0000005", 1_000_001),
            ("1.0000004", 1_000_000),
            ("1.005", 1_005_000),
            ("0.0000015", 2),
        ],
    )
    def test_rounds_half_up(self, value: str, expected: int) -> None:
        """Digits past the sixth are rounded half up."""
        assert scale(value) == expected

    def test_monotonic(self) -> None:
        """Larger inputs never scale to smaller integers."""
        values = ["0.1", "0.1000004", "0.1000005", "0.11", "1", "10.999999", "11"]
        scaled = [scale(v) for v in values]
        assert scaled == sorted(scaled)

    @pytest.mark.parametrize("value", ["abc", "", "NaN", "Infinity", None, True])
    def test_rejects_non_numbers(self, value) -> None:
        """Non numeric and non finite values are rejected."""
        with pytest.raises(ValueError):
            scale(value)

    def test_unscale(self) -> None:
        """unscale() inverts scale() for six digit values."""
        assert unscale(scale("1.234567")) == Decimal("1.234567")


class TestCandle:
    """Test the Candle record."""

    def test_midpoint(self) -> None:
        """Midpoint is the average of open and close."""
        assert make_candle(1_000_000, 1_050_000).midpoint() == "1.025"

    def test_midpoint_integral(self) -> None:
        """Integral midpoints render without a fractional part."""
        assert make_candle(2_000_000, 2_000_000).midpoint() == "2"

    def test_midpoint_half_unit(self) -> None:
        """Midpoints keep sub-unit precision."""
        assert make_candle(1, 2).midpoint() == "0.0000015"

    def test_frozen(self) -> None:
        """Candles are immutable."""
        candle = make_candle(1, 2)
        with pytest.raises(AttributeError):
            candle.open = 5
