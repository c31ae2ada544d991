"""Point-in-time technical indicators over a closing-price sequence.

Every function answers "what is the indicator as of bar ``i``" and only
reads ``closes[0..i]``, so a strategy can evaluate it bar by bar without
look-ahead.  Where the history before ``i`` is too short for a full
window the RSI and SMA fall back to a named warm-up value instead of
failing.  EMA and MACD have no warm-up value: asking for them before a
full window exists is out of contract and raises
:class:`IndicatorRangeError`.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import pandas as pd


class IndicatorRangeError(ValueError):
    """Raised when an indicator is asked for a window the series cannot supply."""


def _window(data: Sequence[float], end: int, length: int) -> Sequence[float]:
    """Return ``data[end - length + 1 : end + 1]`` after checking its bounds."""
    if length <= 0:
        raise IndicatorRangeError(f"window length must be positive, got {length}")
    start = end - length + 1
    if start < 0:
        raise IndicatorRangeError(
            f"window of {length} bars ending at index {end} starts before the series"
        )
    if end >= len(data):
        raise IndicatorRangeError(
            f"index {end} is past the end of a series of {len(data)} bars"
        )
    return data[start:end + 1]


def warmup_rsi() -> float:
    """Neutral RSI reported while fewer than ``period`` changes are available."""
    return 50.0


def warmup_sma(closes: Sequence[float], i: int) -> float:
    """Price reported as the SMA while the window is not yet full: the bar's own close."""
    return closes[i]


def rsi(closes: Sequence[float], i: int, period: int = 14) -> float:
    """
    Relative Strength Index as of bar ``i``.

    Sums the ``period`` day-over-day changes ending at ``i`` (the first
    one is measured against the bar just before the window) into gains
    and losses.  A window without losses returns 100.
    """
    if i < period:
        return warmup_rsi()
    # one extra bar in front supplies the first comparison point
    window = _window(closes, i, period + 1)
    gain = 0.0
    loss = 0.0
    for prev, curr in zip(window[:-1], window[1:]):
        change = curr - prev
        if change > 0:
            gain += change
        else:
            loss -= change
    if loss == 0:
        return 100.0
    rs = gain / loss
    return 100 - (100 / (1 + rs))


def ema(data: Sequence[float], i: int, length: int) -> float:
    """
    Exponential moving average over the ``length`` samples ending at ``i``.

    The oldest sample of the window seeds the average, later samples are
    blended forward with ``k = 2 / (length + 1)``.  Requires
    ``i >= length - 1``.
    """
    window = _window(data, i, length)
    k = 2.0 / (length + 1)
    value = window[0]
    for sample in window[1:]:
        value = sample * k + value * (1 - k)
    return value


def macd(closes: Sequence[float], i: int, fast: int = 12, slow: int = 26) -> float:
    """MACD line: fast EMA minus slow EMA.  Requires ``i >= slow - 1``."""
    return ema(closes, i, fast) - ema(closes, i, slow)


def sma(closes: Sequence[float], i: int, period: int) -> float:
    """Simple moving average of the ``period`` closes ending at ``i`` inclusive."""
    if i < period:
        return warmup_sma(closes, i)
    window = _window(closes, i, period)
    return sum(window) / period


def indicator_frame(
    closes: Sequence[float],
    rsi_period: int = 14,
    sma_period: int = 20,
    macd_fast: int = 12,
    macd_slow: int = 26,
) -> pd.DataFrame:
    """
    Evaluate every indicator at every bar and return one row per bar.

    Columns are ``close``, ``rsi``, ``macd`` and ``sma``.  MACD stays NaN
    on the bars where it cannot be computed.
    """
    n = len(closes)
    rsi_values = np.array([rsi(closes, i, rsi_period) for i in range(n)], dtype=np.float64)
    sma_values = np.array([sma(closes, i, sma_period) for i in range(n)], dtype=np.float64)
    macd_values = np.full(n, np.nan, dtype=np.float64)
    for i in range(macd_slow - 1, n):
        macd_values[i] = macd(closes, i, macd_fast, macd_slow)
    return pd.DataFrame(
        {
            "close": np.asarray(closes, dtype=np.float64),
            "rsi": rsi_values,
            "macd": macd_values,
            "sma": sma_values,
        }
    )
