"""
Entry and exit rules of the RSI + MACD + SMA strategy.

``StrategyParams`` holds the thresholds and indicator periods (its
defaults are the strategy as traded).  ``snapshot`` evaluates the
indicators at one bar and the two predicates turn a snapshot into a
decision:

* enter long when RSI is oversold, MACD is positive and price is above
  its SMA;
* exit when RSI has recovered past the exit level or price drops below
  its SMA.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from .indicators import macd, rsi, sma


@dataclass(frozen=True)
class StrategyParams:
    rsi_period: int = 14
    rsi_entry_below: float = 30.0
    rsi_exit_above: float = 60.0
    sma_period: int = 20
    macd_fast: int = 12
    macd_slow: int = 26
    warmup: int = 26

    def __post_init__(self) -> None:
        for name in ("rsi_period", "sma_period", "macd_fast", "macd_slow"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.macd_fast >= self.macd_slow:
            raise ValueError("macd_fast must be shorter than macd_slow")
        # the first evaluated bar must give every indicator a full window
        needed = max(self.macd_slow - 1, self.sma_period, self.rsi_period)
        if self.warmup < needed:
            raise ValueError(f"warmup must be at least {needed} bars, got {self.warmup}")


@dataclass(frozen=True)
class IndicatorSnapshot:
    index: int
    close: float
    rsi: float
    macd: float
    sma: float


def snapshot(closes: Sequence[float], i: int, params: StrategyParams) -> IndicatorSnapshot:
    """Evaluate the strategy's indicators as of bar ``i``."""
    return IndicatorSnapshot(
        index=i,
        close=closes[i],
        rsi=rsi(closes, i, params.rsi_period),
        macd=macd(closes, i, params.macd_fast, params.macd_slow),
        sma=sma(closes, i, params.sma_period),
    )


def entry_signal(snap: IndicatorSnapshot, params: StrategyParams) -> bool:
    """Oversold RSI, positive MACD and price above its SMA, all at once."""
    return snap.rsi < params.rsi_entry_below and snap.macd > 0 and snap.close > snap.sma


def exit_signal(snap: IndicatorSnapshot, params: StrategyParams) -> bool:
    """RSI above the exit level or price below its SMA."""
    return snap.rsi > params.rsi_exit_above or snap.close < snap.sma
