"""
Backtesting engine for the RSI + MACD + SMA strategy.

The engine is long-only and holds at most one position.  It walks the
candles once, starting after the indicator warm-up, and feeds each bar
through the entry/exit rules.  A position still open when the data runs
out is closed at the last close so every entry shows up in the results.
Besides the summary statistics it keeps the full trade log, which can
be turned into a DataFrame or drawn onto a price chart.
"""
from __future__ import annotations

import datetime as dt
import math
import os
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib
matplotlib.use("Agg")  # allow headless environments
import matplotlib.pyplot as plt

from .config import DEFAULT_PROFIT_THRESHOLD, get_logger
from .indicators import sma
from .rules import StrategyParams, entry_signal, exit_signal, snapshot

logger = get_logger("strategy_engine")


@dataclass
class Candle:
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    time: Optional[dt.datetime] = None


@dataclass
class Trade:
    entry_index: int
    exit_index: int
    entry_price: float
    exit_price: float
    return_fraction: float
    is_win: bool
    forced_close: bool = False


@dataclass
class StrategyResult:
    success_rate: float
    average_return_percent: float
    trade_count: int
    trades: List[Trade] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success_rate": self.success_rate,
            "average_return_percent": self.average_return_percent,
            "trade_count": self.trade_count,
            "trades": [asdict(t) for t in self.trades],
        }


def _closing_prices(candles: Sequence[Candle]) -> List[float]:
    closes = [float(c.close) for c in candles]
    for i, price in enumerate(closes):
        if not math.isfinite(price) or price <= 0:
            raise ValueError(f"close at index {i} must be a positive number, got {price}")
    return closes


def _close_trade(
    entry_index: int,
    entry_price: float,
    exit_index: int,
    exit_price: float,
    profit_threshold: float,
    forced: bool = False,
) -> Trade:
    ret = (exit_price - entry_price) / entry_price
    return Trade(
        entry_index=entry_index,
        exit_index=exit_index,
        entry_price=entry_price,
        exit_price=exit_price,
        return_fraction=ret,
        is_win=ret > profit_threshold,
        forced_close=forced,
    )


def run_strategy(
    candles: Sequence[Candle],
    profit_threshold: float = DEFAULT_PROFIT_THRESHOLD,
    params: Optional[StrategyParams] = None,
) -> StrategyResult:
    """
    Run the strategy over ``candles`` and summarise the trades.

    A trade counts as a win when its return fraction is strictly greater
    than ``profit_threshold``.  With no trades both percentages are 0.
    """
    params = params or StrategyParams()
    closes = _closing_prices(candles)

    trades: List[Trade] = []
    wins = 0
    total_return = 0.0
    in_position = False
    entry_price = 0.0
    entry_index = 0

    for i in range(params.warmup, len(closes)):
        snap = snapshot(closes, i, params)
        if not in_position and entry_signal(snap, params):
            in_position = True
            entry_price = closes[i]
            entry_index = i
            logger.debug("enter long at bar %d price=%.6f rsi=%.2f macd=%.6f sma=%.6f",
                         i, entry_price, snap.rsi, snap.macd, snap.sma)
        elif in_position and exit_signal(snap, params):
            trade = _close_trade(entry_index, entry_price, i, closes[i], profit_threshold)
            trades.append(trade)
            total_return += trade.return_fraction
            if trade.is_win:
                wins += 1
            in_position = False
            logger.debug("exit at bar %d price=%.6f return=%.4f", i, trade.exit_price, trade.return_fraction)

    if in_position:
        last = len(closes) - 1
        trade = _close_trade(entry_index, entry_price, last, closes[last], profit_threshold, forced=True)
        trades.append(trade)
        total_return += trade.return_fraction
        if trade.is_win:
            wins += 1
        logger.debug("forced close at bar %d price=%.6f return=%.4f", last, trade.exit_price, trade.return_fraction)

    count = len(trades)
    avg_return = (total_return / count) * 100 if count else 0.0
    success = wins / count * 100 if count else 0.0
    logger.info("strategy run: bars=%d trades=%d success=%.2f%% avg_return=%.4f%%",
                len(closes), count, success, avg_return)
    return StrategyResult(
        success_rate=success,
        average_return_percent=avg_return,
        trade_count=count,
        trades=trades,
    )


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """
    Build candles from an OHLC(V) frame.  Only ``close`` is required; the
    other price columns and a datetime index are carried along when present.
    """
    if "close" not in df.columns:
        raise ValueError("frame needs a 'close' column")
    has_time = isinstance(df.index, pd.DatetimeIndex)
    candles: List[Candle] = []
    for ts, row in df.iterrows():
        candles.append(
            Candle(
                close=float(row["close"]),
                open=float(row["open"]) if "open" in df.columns else None,
                high=float(row["high"]) if "high" in df.columns else None,
                low=float(row["low"]) if "low" in df.columns else None,
                volume=float(row["volume"]) if "volume" in df.columns else None,
                time=ts if has_time else None,
            )
        )
    return candles


def trades_frame(result: StrategyResult) -> pd.DataFrame:
    """Trade log as a DataFrame, one row per trade in execution order."""
    columns = ["entry_index", "exit_index", "entry_price", "exit_price",
               "return_fraction", "is_win", "forced_close"]
    return pd.DataFrame([asdict(t) for t in result.trades], columns=columns)


def _chart_path(output_dir: str, symbol: str) -> str:
    """PNG path for ``symbol``, always directly inside ``output_dir``."""
    safe = re.sub(r"[^A-Za-z0-9_.-]", "_", symbol) or "strategy"
    filepath = os.path.join(output_dir, f"{safe}_trades.png")
    if os.path.dirname(os.path.realpath(filepath)) != os.path.realpath(output_dir):
        raise ValueError(f"chart for symbol {symbol!r} would be written outside {output_dir}")
    return filepath


def plot_trades(
    candles: Sequence[Candle],
    result: StrategyResult,
    output_dir: str,
    symbol: str = "",
    params: Optional[StrategyParams] = None,
) -> str:
    """
    Draw the close price, its SMA and the trade entries/exits, save the
    chart as a PNG in ``output_dir`` and return the file path.
    """
    params = params or StrategyParams()
    closes = _closing_prices(candles)
    filepath = _chart_path(output_dir, symbol)
    x = np.arange(len(closes))
    sma_line = [sma(closes, i, params.sma_period) for i in range(len(closes))]

    fig, ax = plt.subplots(figsize=(8, 4))
    ax.plot(x, closes, label="Close", color="black")
    ax.plot(x, sma_line, linestyle="--", color="blue", alpha=0.6, label=f"SMA {params.sma_period}")
    if result.trades:
        ax.scatter([t.entry_index for t in result.trades], [t.entry_price for t in result.trades],
                   marker="^", color="green", label="Entry", zorder=3)
        ax.scatter([t.exit_index for t in result.trades], [t.exit_price for t in result.trades],
                   marker="v", color="red", label="Exit", zorder=3)
    ax.axvline(params.warmup, color="grey", linestyle=":", label="Warm-up end")
    ax.set_title(f"{symbol} trades: {result.trade_count}, success {result.success_rate:.1f}%".strip())
    ax.set_xlabel("Bar")
    ax.set_ylabel("Price")
    ax.legend(loc="upper left", fontsize=7)

    os.makedirs(output_dir, exist_ok=True)
    fig.tight_layout()
    fig.savefig(filepath)
    plt.close(fig)
    return filepath
