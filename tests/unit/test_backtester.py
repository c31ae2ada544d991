import datetime as dt
import os
import sys

import pandas as pd
import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '../../services/strategy_engine_py')))

from strategy_core.backtester import (
    Candle,
    StrategyResult,
    candles_from_frame,
    plot_trades,
    run_strategy,
    trades_frame,
)

DECLINE_THEN_RALLY = [
    100, 98, 95, 93, 90, 88, 85, 83, 80, 78, 76, 74, 72, 70, 69, 68,
    90, 92, 95, 100, 105, 110, 115, 120, 125, 130, 135,
]

# flat at 100, a jump to 200 at bar 12, then one point lower every bar:
# at bar 26 RSI is 0, SMA20 is 169.75, MACD is positive and close is 186
JUMP_THEN_SLIDE = [100.0] * 12 + [200.0 - m for m in range(15)]


def _candles(closes):
    return [Candle(close=c) for c in closes]


def test_no_trades_when_rsi_never_oversold():
    result = run_strategy(_candles(DECLINE_THEN_RALLY), 0.01)
    assert result.trade_count == 0
    assert result.trades == []
    assert result.success_rate == 0
    assert result.average_return_percent == 0


def test_no_trades_on_falling_prices():
    result = run_strategy(_candles([200.0 - i for i in range(80)]), 0.0)
    assert result.trade_count == 0
    assert result.success_rate == 0.0
    assert result.average_return_percent == 0.0


def test_short_and_empty_series():
    assert run_strategy(_candles([100.0] * 26), 0.0).trade_count == 0
    assert run_strategy([], 0.0).trade_count == 0


def test_open_position_is_force_closed_at_last_close():
    result = run_strategy(_candles(JUMP_THEN_SLIDE), 0.0)
    assert result.trade_count == 1
    trade = result.trades[0]
    assert trade.entry_index == 26
    assert trade.entry_price == 186.0
    assert trade.exit_index == 26
    assert trade.exit_price == 186.0
    assert trade.forced_close
    assert trade.return_fraction == 0.0
    # a flat return does not beat a zero threshold
    assert not trade.is_win
    assert result.success_rate == 0.0
    assert result.average_return_percent == 0.0


def test_forced_close_win_depends_on_threshold():
    closes = JUMP_THEN_SLIDE + [187.0]
    loose = run_strategy(_candles(closes), 0.0)
    strict = run_strategy(_candles(closes), 0.01)
    for result in (loose, strict):
        assert result.trade_count == 1
        assert result.trades[0].forced_close
        assert result.trades[0].exit_index == 27
        assert result.average_return_percent == pytest.approx(100 / 186)
    assert loose.success_rate == 100.0
    assert strict.success_rate == 0.0


def test_exit_on_rsi_recovery():
    # bar 27: 13 one-point losses and a 44-point gain, RSI ~77
    result = run_strategy(_candles(JUMP_THEN_SLIDE + [230.0, 231.0]), 0.01)
    assert result.trade_count == 1
    trade = result.trades[0]
    assert (trade.entry_index, trade.exit_index) == (26, 27)
    assert trade.exit_price == 230.0
    assert not trade.forced_close
    assert trade.is_win
    assert trade.return_fraction == pytest.approx(44 / 186)
    assert result.success_rate == 100.0
    assert result.average_return_percent == pytest.approx(44 / 186 * 100)


def test_exit_below_sma_is_a_loss():
    result = run_strategy(_candles(JUMP_THEN_SLIDE + [150.0]), 0.0)
    assert result.trade_count == 1
    trade = result.trades[0]
    assert trade.exit_index == 27
    assert not trade.forced_close
    assert not trade.is_win
    assert trade.return_fraction == pytest.approx(-36 / 186)
    assert result.success_rate == 0.0
    assert result.average_return_percent == pytest.approx(-36 / 186 * 100)


def test_trade_count_matches_trade_log():
    closes = JUMP_THEN_SLIDE + [230.0] + JUMP_THEN_SLIDE[1:]
    result = run_strategy(_candles(closes), 0.0)
    assert result.trade_count == len(result.trades)
    for t in result.trades:
        assert t.entry_index >= 26
        assert t.exit_index >= t.entry_index


def test_repeated_runs_are_identical():
    closes = JUMP_THEN_SLIDE + [230.0, 220.0, 150.0] + JUMP_THEN_SLIDE
    first = run_strategy(_candles(closes), 0.01)
    second = run_strategy(_candles(closes), 0.01)
    assert first.to_dict() == second.to_dict()


@pytest.mark.parametrize("bad", [0.0, -5.0, float("nan"), float("inf")])
def test_rejects_non_positive_closes(bad):
    closes = [100.0] * 30
    closes[10] = bad
    with pytest.raises(ValueError):
        run_strategy(_candles(closes), 0.0)


def test_to_dict_shape():
    result = run_strategy(_candles(JUMP_THEN_SLIDE), 0.0)
    data = result.to_dict()
    assert set(data) == {"success_rate", "average_return_percent", "trade_count", "trades"}
    assert data["trades"][0]["entry_price"] == 186.0
    assert data["trades"][0]["forced_close"] is True


def test_candles_from_frame_carries_fields():
    idx = pd.date_range("2024-01-01", periods=3, freq="D")
    df = pd.DataFrame(
        {"open": [1.0, 2.0, 3.0], "high": [2.0, 3.0, 4.0], "low": [0.5, 1.5, 2.5],
         "close": [1.5, 2.5, 3.5], "volume": [10, 20, 30]},
        index=idx,
    )
    candles = candles_from_frame(df)
    assert [c.close for c in candles] == [1.5, 2.5, 3.5]
    assert candles[1].high == 3.0
    assert candles[2].volume == 30.0
    assert candles[0].time == idx[0]


def test_candles_from_frame_requires_close():
    with pytest.raises(ValueError):
        candles_from_frame(pd.DataFrame({"open": [1.0]}))


def test_trades_frame():
    result = run_strategy(_candles(JUMP_THEN_SLIDE + [230.0]), 0.01)
    df = trades_frame(result)
    assert len(df) == 1
    assert df.loc[0, "exit_price"] == 230.0
    assert list(trades_frame(StrategyResult(0.0, 0.0, 0)).columns) == list(df.columns)


def test_plot_trades_writes_png(tmp_path):
    candles = _candles(JUMP_THEN_SLIDE + [230.0])
    result = run_strategy(candles, 0.01)
    path = plot_trades(candles, result, output_dir=str(tmp_path), symbol="TEST")
    assert path.endswith("TEST_trades.png")
    assert os.path.getsize(path) > 0


@pytest.mark.parametrize("symbol", ["../escaped", "/tmp/abs", "a/../../b"])
def test_plot_trades_sanitises_symbol(tmp_path, symbol):
    chart_dir = tmp_path / "charts"
    candles = _candles(JUMP_THEN_SLIDE)
    result = run_strategy(candles, 0.0)
    path = plot_trades(candles, result, output_dir=str(chart_dir), symbol=symbol)
    assert os.path.dirname(os.path.realpath(path)) == os.path.realpath(chart_dir)
    assert os.path.exists(path)
    assert [p.name for p in tmp_path.iterdir()] == ["charts"]


def test_candle_accepts_datetime():
    when = dt.datetime(2024, 1, 1, 12, 0)
    candle = Candle(close=1.0, time=when)
    assert candle.time == when
