"""Technical indicators for signal generation.

All functions take an ordered, equally spaced sequence of floats and return
a list of the same length. Positions without enough history hold NaN, which
callers must skip (see ``is_defined``).
"""

import math
from typing import Sequence

import numpy as np

NAN = float("nan")


def _to_array(values: Sequence[float]) -> np.ndarray:
    return np.asarray(values, dtype=np.float64)


def _to_list(arr: np.ndarray) -> list[float]:
    return [float(v) for v in arr]


def is_defined(value: float | None) -> bool:
    """Check whether an indicator value is usable (not None / NaN)."""
    return value is not None and not math.isnan(value)


def sma(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Simple Moving Average.

    Args:
        values: Sequence of values
        period: SMA period

    Returns:
        List of SMA values (NaN for the first period-1 positions)
    """
    arr = _to_array(values)
    result = np.full(len(arr), np.nan)
    if period <= 0 or len(arr) < period:
        return _to_list(result)

    for i in range(period - 1, len(arr)):
        result[i] = np.mean(arr[i - period + 1 : i + 1])

    return _to_list(result)


def ema(values: Sequence[float], period: int) -> list[float]:
    """
    Calculate Exponential Moving Average.

    Seeded with the first value, no warm-up suppression:
    ema[i] = value[i] * k + ema[i-1] * (1 - k), k = 2 / (period + 1)

    Args:
        values: Sequence of values
        period: EMA period

    Returns:
        List of EMA values (same length as input)
    """
    arr = _to_array(values)
    if len(arr) == 0:
        return []

    k = 2.0 / (period + 1)
    result = np.empty_like(arr)
    result[0] = arr[0]
    for i in range(1, len(arr)):
        result[i] = arr[i] * k + result[i - 1] * (1 - k)

    return _to_list(result)


def rsi(values: Sequence[float], period: int = 14) -> list[float]:
    """
    Calculate Relative Strength Index with Wilder's smoothing.

    The first average gain/loss is the plain mean over the first ``period``
    deltas; later values are smoothed recursively. Undefined before index
    ``period``. A window with no losses reads 100; a window with neither
    gains nor losses reads 50.

    Args:
        values: Sequence of values
        period: RSI period

    Returns:
        List of RSI values in [0, 100] (NaN during warm-up)
    """
    arr = _to_array(values)
    result = np.full(len(arr), np.nan)
    if len(arr) < period + 1:
        return _to_list(result)

    deltas = np.diff(arr)
    gains = np.where(deltas > 0, deltas, 0.0)
    losses = np.where(deltas < 0, -deltas, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))
    result[period] = _rsi_value(avg_gain, avg_loss)

    for i in range(period + 1, len(arr)):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        result[i] = _rsi_value(avg_gain, avg_loss)

    return _to_list(result)


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 50.0 if avg_gain == 0 else 100.0
    return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)


def macd(
    values: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[list[float], list[float], list[float]]:
    """
    Calculate MACD.

    MACD line = EMA(fast) - EMA(slow), signal = EMA(signal) of the MACD line,
    histogram = MACD - signal.

    Returns:
        Tuple of (macd_line, signal_line, histogram)
    """
    fast_ema = _to_array(ema(values, fast))
    slow_ema = _to_array(ema(values, slow))
    macd_line = fast_ema - slow_ema
    signal_line = _to_array(ema(macd_line, signal))
    histogram = macd_line - signal_line
    return _to_list(macd_line), _to_list(signal_line), _to_list(histogram)


def bollinger_bands(
    values: Sequence[float],
    period: int = 20,
    num_std: float = 2.0,
) -> tuple[list[float], list[float], list[float]]:
    """
    Calculate Bollinger Bands.

    middle = SMA(period); upper/lower = middle +/- num_std * population
    standard deviation of the trailing window.

    Returns:
        Tuple of (upper, middle, lower)
    """
    arr = _to_array(values)
    middle = sma(values, period)
    upper = np.full(len(arr), np.nan)
    lower = np.full(len(arr), np.nan)

    for i in range(period - 1, len(arr)):
        std = float(np.std(arr[i - period + 1 : i + 1]))  # ddof=0
        upper[i] = middle[i] + num_std * std
        lower[i] = middle[i] - num_std * std

    return _to_list(upper), middle, _to_list(lower)


def momentum(values: Sequence[float], period: int = 10) -> list[float]:
    """
    Calculate Momentum as percent change versus ``period`` steps back.

    Undefined for the first ``period`` positions and where the reference
    value is zero.
    """
    arr = _to_array(values)
    result = np.full(len(arr), np.nan)

    for i in range(period, len(arr)):
        base = arr[i - period]
        if base != 0:
            result[i] = (arr[i] - base) / base * 100

    return _to_list(result)


def pearson_correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """
    Pearson correlation over the common prefix of two series.

    Returns 0 with fewer than 3 points or when either side has no variance.
    """
    n = min(len(x), len(y))
    if n < 3:
        return 0.0

    xa = _to_array(x[:n])
    ya = _to_array(y[:n])
    dx = xa - xa.mean()
    dy = ya - ya.mean()
    denom = math.sqrt(float(np.sum(dx * dx)) * float(np.sum(dy * dy)))
    if denom == 0:
        return 0.0
    return float(np.sum(dx * dy)) / denom


def last(values: Sequence[float], offset: int = 1) -> float:
    """Value ``offset`` positions from the end, NaN if out of range."""
    if len(values) < offset:
        return NAN
    return values[-offset]
