"""Technical indicators (pure math, no I/O)."""

from core.indicators.indicators import (
    NAN,
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

__all__ = [
    "NAN",
    "bollinger_bands",
    "ema",
    "is_defined",
    "last",
    "macd",
    "momentum",
    "pearson_correlation",
    "rsi",
    "sma",
]
