"""
FastAPI application exposing the strategy engine over HTTP.

Callers post the candles they already hold; the API never fetches
market data itself.  Endpoints compute the indicator series, run the
backtest and render a trade chart.  The API is stateless and can be
deployed independently of other services.
"""
from __future__ import annotations
import datetime as dt
import math
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field, validator

from strategy_core import (
    Candle,
    StrategyParams,
    indicator_frame,
    run_strategy,
    plot_trades,
)
from strategy_core.config import CHART_DIR, DEFAULT_PROFIT_THRESHOLD, get_logger

logger = get_logger("strategy_api")
app = FastAPI(title="Strategy Backtesting API")


# ----------------------------------------------------------------------
# Models
# ----------------------------------------------------------------------
class CandleIn(BaseModel):
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None
    time: Optional[dt.datetime] = None


class ParamsIn(BaseModel):
    rsi_period: int = Field(14, description="RSI look-back in bars")
    rsi_entry_below: float = Field(30.0, description="Enter only while RSI is below this")
    rsi_exit_above: float = Field(60.0, description="Exit once RSI rises above this")
    sma_period: int = Field(20, description="SMA look-back in bars")
    macd_fast: int = 12
    macd_slow: int = 26
    warmup: int = Field(26, description="Bars skipped before the first decision")


class IndicatorRequest(BaseModel):
    candles: List[CandleIn]
    params: ParamsIn = Field(default_factory=ParamsIn)

    @validator("candles")
    def validate_candles(cls, v):
        if not v:
            raise ValueError("candles must not be empty")
        return v


class BacktestRequest(BaseModel):
    """
    Request payload for running a backtest: the candle series, the
    return a trade must beat to count as a win, and optional overrides
    of the strategy parameters.
    """
    candles: List[CandleIn]
    profit_threshold: float = Field(
        DEFAULT_PROFIT_THRESHOLD, description="Return fraction a trade must exceed to win (0.01 = 1%)"
    )
    params: ParamsIn = Field(default_factory=ParamsIn)

    @validator("candles")
    def _validate_candles(cls, v):
        if not v:
            raise ValueError("candles must not be empty")
        return v


class ChartRequest(BacktestRequest):
    symbol: str = Field("", description="Label used in the chart title and file name")


def _to_candles(items: List[CandleIn]) -> List[Candle]:
    return [
        Candle(close=c.close, open=c.open, high=c.high, low=c.low, volume=c.volume, time=c.time)
        for c in items
    ]


def _to_params(p: ParamsIn) -> StrategyParams:
    try:
        return StrategyParams(**p.dict())
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def _nan_to_none(values: List[float]) -> List[Optional[float]]:
    return [None if math.isnan(x) else float(x) for x in values]


# ----------------------------------------------------------------------
# Endpoints
# ----------------------------------------------------------------------
@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/indicators/compute")
async def compute_indicators(req: IndicatorRequest):
    params = _to_params(req.params)
    closes = [c.close for c in req.candles]
    try:
        df = indicator_frame(
            closes,
            rsi_period=params.rsi_period,
            sma_period=params.sma_period,
            macd_fast=params.macd_fast,
            macd_slow=params.macd_slow,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Unhandled error in /indicators/compute")
        raise HTTPException(status_code=500, detail="Internal server error")
    return {col: _nan_to_none(df[col].tolist()) for col in df.columns}


@app.post("/backtest/run")
async def run_backtest(req: BacktestRequest):
    """Run the strategy over the posted candles and return its statistics and trade log."""
    params = _to_params(req.params)
    try:
        result = run_strategy(_to_candles(req.candles), req.profit_threshold, params)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Unhandled error in /backtest/run")
        raise HTTPException(status_code=500, detail="Internal server error")
    return result.to_dict()


@app.post("/backtest/chart")
async def backtest_chart(req: ChartRequest):
    """
    Run the backtest and save a chart of the trades under the configured
    chart directory.  Returns the statistics together with the chart path.
    """
    params = _to_params(req.params)
    candles = _to_candles(req.candles)
    try:
        result = run_strategy(candles, req.profit_threshold, params)
        path = plot_trades(candles, result, output_dir=CHART_DIR, symbol=req.symbol, params=params)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("Unhandled error in /backtest/chart")
        raise HTTPException(status_code=500, detail="Internal server error")
    payload: Dict[str, Any] = result.to_dict()
    payload["chart_path"] = path
    return payload
