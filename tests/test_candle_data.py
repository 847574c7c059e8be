"""
Unit tests for the candle data provider and local candle files.

yfinance is never called over the network: the provider's module handle
is replaced with a MagicMock whose Ticker().history() returns a canned frame.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import json
from unittest.mock import MagicMock

import pandas as pd
import pytest

from chartforge.data.candle_data import CandleData, load_candles_file
from chartforge.patterns.candles import OHLCV


def make_history(n: int = 5) -> pd.DataFrame:
    """yfinance-shaped frame: capitalised columns, naive DatetimeIndex."""
    idx = pd.date_range("2024-01-01", periods=n, freq="D")
    return pd.DataFrame({
        "Open":      [100.0 + i for i in range(n)],
        "High":      [102.0 + i for i in range(n)],
        "Low":       [99.0 + i for i in range(n)],
        "Close":     [101.0 + i for i in range(n)],
        "Volume":    [1000.0 * (i + 1) for i in range(n)],
        "Dividends": [0.0] * n,
    }, index=idx)


def make_provider(history=None, error=None) -> CandleData:
    cd = CandleData()
    yf = MagicMock()
    if error is not None:
        yf.Ticker.return_value.history.side_effect = error
    else:
        yf.Ticker.return_value.history.return_value = history
    cd._yf = yf
    return cd


class TestGetCandles:
    def test_normalised_frame(self):
        cd = make_provider(make_history())
        df = cd.get_candles("AAPL", "1d", period="1mo")
        assert list(df.columns) == OHLCV + ["timestamp"]
        assert str(df.index.tz) == "UTC"
        assert df["timestamp"].iloc[0] == 1_704_067_200
        assert df["close"].iloc[-1] == 105.0
        cd._yf.Ticker.assert_called_once_with("AAPL")
        cd._yf.Ticker.return_value.history.assert_called_once_with(
            period="1mo", interval="1d", auto_adjust=True)

    @pytest.mark.parametrize("interval,period", [("5m", "60d"), ("1d", "2y"), ("1wk", "5y")])
    def test_default_period_follows_interval(self, interval, period):
        cd = make_provider(make_history())
        cd.get_candles("AAPL", interval)
        cd._yf.Ticker.return_value.history.assert_called_once_with(
            period=period, interval=interval, auto_adjust=True)

    def test_lookback_keeps_most_recent(self):
        df = make_provider(make_history(10)).get_candles("AAPL", lookback=3)
        assert len(df) == 3
        assert list(df["close"]) == [108.0, 109.0, 110.0]

    def test_unknown_interval_raises(self):
        with pytest.raises(ValueError, match="Unknown interval"):
            make_provider(make_history()).get_candles("AAPL", "2d")

    def test_fetch_error_returns_empty(self):
        cd = make_provider(error=RuntimeError("network down"))
        assert cd.get_candles("AAPL").empty

    def test_no_data_returns_empty(self):
        assert make_provider(pd.DataFrame()).get_candles("NOPE").empty

    def test_current_price(self):
        assert make_provider(make_history()).get_current_price("AAPL") == 105.0
        assert make_provider(pd.DataFrame()).get_current_price("AAPL") is None

    def test_scan_skips_empty(self):
        cd = make_provider(make_history())
        cd._yf.Ticker.side_effect = lambda s: MagicMock(**{
            "history.return_value": make_history() if s == "AAPL" else pd.DataFrame()})
        frames = cd.scan_symbols(["AAPL", "NOPE"])
        assert list(frames) == ["AAPL"]


class TestLoadCandlesFile:
    RECORDS = [
        {"t": 1, "o": 10.0, "h": 11.0, "l": 9.0, "c": 10.5, "v": 100},
        {"timestamp": 2, "open": 10.5, "high": 12.0, "low": 10.0, "close": 11.5, "volume": 150},
    ]

    def test_json_with_candles_key(self, tmp_path):
        path = tmp_path / "aapl.json"
        path.write_text(json.dumps({"symbol": "AAPL", "candles": self.RECORDS}))
        df = load_candles_file(path)
        assert list(df.columns) == OHLCV + ["timestamp"]
        assert list(df["timestamp"]) == [1, 2]
        assert list(df["close"]) == [10.5, 11.5]

    def test_json_bare_list_without_timestamps(self, tmp_path):
        records = [{k: v for k, v in r.items() if k not in ("t", "timestamp")} for r in self.RECORDS]
        path = tmp_path / "bars.json"
        path.write_text(json.dumps(records))
        assert list(load_candles_file(path)["timestamp"]) == [0, 1]

    def test_json_missing_field(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps([{"open": 1.0, "high": 2.0, "low": 0.5}]))
        with pytest.raises(ValueError, match="missing fields"):
            load_candles_file(path)

    def test_csv(self, tmp_path):
        path = tmp_path / "bars.csv"
        path.write_text("Open,High,Low,Close,Volume\n10,11,9,10.5,100\n10.5,12,10,11.5,150\n")
        df = load_candles_file(path)
        assert len(df) == 2
        assert list(df["timestamp"]) == [0, 1]
        assert df["high"].dtype == float

    def test_invalid_candles_rejected(self, tmp_path):
        path = tmp_path / "bars.csv"
        path.write_text("open,high,low,close,volume\n10,9,8,10.5,100\n")
        with pytest.raises(ValueError, match="malformed"):
            load_candles_file(path)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "bars.txt"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported"):
            load_candles_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_candles_file(tmp_path / "nope.json")
