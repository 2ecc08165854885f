"""Tests for technical indicators."""

import math

import pytest

from core.indicators import (
    bollinger_bands,
    ema,
    is_defined,
    last,
    macd,
    momentum,
    pearson_correlation,
    rsi,
    sma,
)


class TestSMA:
    """Tests for SMA calculation."""

    def test_sma_basic(self):
        """Test basic SMA calculation."""
        result = sma([float(i) for i in range(1, 11)], 3)

        # First 2 values should be NaN
        assert math.isnan(result[0])
        assert math.isnan(result[1])

        # 3rd value should be (1+2+3)/3 = 2
        assert result[2] == pytest.approx(2.0)
        assert result[3] == pytest.approx(3.0)
        assert result[-1] == pytest.approx(9.0)

    def test_sma_insufficient_data(self):
        result = sma([1.0, 2.0], 5)
        assert len(result) == 2
        assert all(math.isnan(v) for v in result)


class TestEMA:
    """Tests for EMA calculation."""

    def test_ema_seeded_with_first_value(self):
        result = ema([10.0, 20.0, 30.0], 3)

        # k = 2 / (3 + 1) = 0.5
        assert result[0] == pytest.approx(10.0)
        assert result[1] == pytest.approx(15.0)
        assert result[2] == pytest.approx(22.5)

    def test_ema_empty(self):
        assert ema([], 5) == []


class TestRSI:
    """Tests for RSI calculation."""

    def test_rsi_warmup_undefined(self):
        values = [float(i) for i in range(30)]
        result = rsi(values, 14)

        assert len(result) == 30
        assert all(math.isnan(v) for v in result[:14])
        assert is_defined(result[14])

    def test_rsi_bounds(self):
        values = [100 + (i % 7) * 3 - (i % 5) * 4 for i in range(60)]
        result = rsi(values)

        defined = [v for v in result if is_defined(v)]
        assert defined
        assert all(0 <= v <= 100 for v in defined)

    def test_rsi_only_gains_is_100(self):
        result = rsi([float(i) for i in range(20)])
        assert result[-1] == pytest.approx(100.0)

    def test_rsi_only_losses_is_0(self):
        result = rsi([float(100 - i) for i in range(20)])
        assert result[-1] == pytest.approx(0.0)

    def test_rsi_flat_window_is_neutral(self):
        result = rsi([50.0] * 20)
        assert result[-1] == pytest.approx(50.0)


class TestMACD:
    """Tests for MACD calculation."""

    def test_macd_components(self):
        values = [100 + i * 0.5 for i in range(40)]
        macd_line, signal_line, histogram = macd(values)

        assert len(macd_line) == len(signal_line) == len(histogram) == 40
        for m, s, h in zip(macd_line, signal_line, histogram):
            assert h == pytest.approx(m - s)
        # Rising series: fast EMA above slow EMA
        assert macd_line[-1] > 0

    def test_macd_flat_series_is_zero(self):
        _, _, histogram = macd([42.0] * 40)
        assert all(h == pytest.approx(0.0) for h in histogram)


class TestBollinger:
    """Tests for Bollinger Bands."""

    def test_bands_order_and_middle(self):
        values = [float(v) for v in [1, 3, 2, 5, 4, 6, 5, 7, 6, 8]]
        upper, middle, lower = bollinger_bands(values, period=5, num_std=2)

        assert math.isnan(upper[3])
        assert middle[4] == pytest.approx(3.0)
        for u, m, lo in zip(upper[4:], middle[4:], lower[4:]):
            assert u > m > lo

    def test_population_std(self):
        values = [2.0, 4.0, 4.0, 4.0, 5.0, 5.0, 7.0, 9.0]
        upper, middle, lower = bollinger_bands(values, period=8, num_std=1)

        # Population std of this series is exactly 2
        assert middle[-1] == pytest.approx(5.0)
        assert upper[-1] == pytest.approx(7.0)
        assert lower[-1] == pytest.approx(3.0)

    def test_flat_series_collapses(self):
        upper, middle, lower = bollinger_bands([10.0] * 25)
        assert upper[-1] == pytest.approx(10.0)
        assert lower[-1] == pytest.approx(10.0)


class TestMomentum:
    """Tests for Momentum."""

    def test_momentum_percent_change(self):
        values = [100.0] * 10 + [110.0]
        result = momentum(values, 10)

        assert all(math.isnan(v) for v in result[:10])
        assert result[10] == pytest.approx(10.0)

    def test_momentum_zero_base_undefined(self):
        result = momentum([0.0, 1.0, 2.0], 1)
        assert math.isnan(result[1])
        assert result[2] == pytest.approx(100.0)


class TestCorrelation:
    """Tests for Pearson correlation."""

    def test_perfect_positive(self):
        assert pearson_correlation([1, 2, 3, 4], [2, 4, 6, 8]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson_correlation([1, 2, 3, 4], [8, 6, 4, 2]) == pytest.approx(-1.0)

    def test_too_few_points(self):
        assert pearson_correlation([1, 2], [1, 2]) == 0.0

    def test_no_variance(self):
        assert pearson_correlation([1, 1, 1, 1], [1, 2, 3, 4]) == 0.0

    def test_common_prefix(self):
        assert pearson_correlation([1, 2, 3, 100], [1, 2, 3]) == pytest.approx(1.0)


class TestHelpers:
    def test_last(self):
        assert last([1.0, 2.0, 3.0]) == 3.0
        assert last([1.0, 2.0, 3.0], 2) == 2.0
        assert math.isnan(last([1.0], 2))

    def test_is_defined(self):
        assert is_defined(0.0)
        assert not is_defined(float("nan"))
        assert not is_defined(None)
