"""Core of the strategy engine.

This package provides point-in-time technical indicators, the entry
and exit rules of the RSI + MACD + SMA strategy, and a single-pass
backtester that turns a candle series into trade statistics.  All
functions are side‑effect free and deterministic when given the same
inputs.
"""

from .indicators import (
    IndicatorRangeError,
    warmup_rsi,
    warmup_sma,
    rsi,
    ema,
    macd,
    sma,
    indicator_frame,
)
from .rules import (
    StrategyParams,
    IndicatorSnapshot,
    snapshot,
    entry_signal,
    exit_signal,
)
from .backtester import (
    Candle,
    Trade,
    StrategyResult,
    run_strategy,
    candles_from_frame,
    trades_frame,
    plot_trades,
)

__all__ = [
    "IndicatorRangeError",
    "warmup_rsi",
    "warmup_sma",
    "rsi",
    "ema",
    "macd",
    "sma",
    "indicator_frame",
    "StrategyParams",
    "IndicatorSnapshot",
    "snapshot",
    "entry_signal",
    "exit_signal",
    "Candle",
    "Trade",
    "StrategyResult",
    "run_strategy",
    "candles_from_frame",
    "trades_frame",
    "plot_trades",
]
