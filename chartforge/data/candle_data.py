"""
Candle Data Provider — yfinance + local files

Supplies the OHLCV frames the pattern detectors read. Free, no auth
required; stocks, ETFs, indices and crypto tickers all work
("AAPL", "SPY", "^GSPC", "BTC-USD").

Frames come back with lowercase open/high/low/close/volume columns, a UTC
datetime index and an integer `timestamp` column (epoch seconds).

Fetch failures are logged and return an empty frame; the caller decides
whether to fall back (the scanner switches to mock data).

Files:
    load_candles_file("aapl.json")   {"symbol": "AAPL", "candles": [...]} or a bare list
    load_candles_file("aapl.csv")    header row with open,high,low,close,volume[,timestamp]
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from chartforge.patterns.candles import OHLCV, validate_candles

logger = logging.getLogger(__name__)

# interval → period fetched when the caller gives none
# (intraday intervals are capped by yfinance: 1m 7d, 5m–30m 60d, 1h 730d)
INTERVAL_DEFAULT_PERIOD = {
    "1m":  "7d",
    "5m":  "60d",
    "15m": "60d",
    "30m": "60d",
    "1h":  "2y",
    "1d":  "2y",
    "1wk": "5y",
    "1mo": "max",
}

# Keys accepted for each column in JSON candle records
_FIELD_ALIASES = {
    "timestamp": ("timestamp", "timeStamp", "time", "t"),
    "open":      ("open", "o"),
    "high":      ("high", "h"),
    "low":       ("low", "l"),
    "close":     ("close", "c"),
    "volume":    ("volume", "v"),
}


def _with_timestamp(df: pd.DataFrame) -> pd.DataFrame:
    """Add an epoch-seconds `timestamp` column from a UTC datetime index."""
    idx = df.index.tz_convert("UTC").tz_localize(None)
    df["timestamp"] = ((idx - pd.Timestamp("1970-01-01")) // pd.Timedelta(seconds=1)).astype("int64")
    return df


class CandleData:
    """
    Market candles via yfinance.

    Usage:
        cd = CandleData()
        df = cd.get_candles("AAPL", "1d", period="2y")
        frames = cd.scan_symbols(["AAPL", "MSFT"], "1wk", period="5y")
    """

    def __init__(self):
        try:
            import yfinance
            self._yf = yfinance
        except ImportError:
            raise ImportError("yfinance not installed. Run: pip install yfinance")

    def get_candles(
        self,
        symbol: str,
        interval: str = "1d",
        period: Optional[str] = None,
        lookback: Optional[int] = None,
    ) -> pd.DataFrame:
        """
        Fetch OHLCV candles for one ticker.

        Parameters
        ----------
        symbol : str      e.g. "AAPL"
        interval : str    "1m","5m","15m","30m","1h","1d","1wk","1mo"
        period : str      "1mo","6mo","1y","2y","5y","max", ...
                          None = INTERVAL_DEFAULT_PERIOD[interval]
        lookback : int    max candles to return (most recent), None = all

        Returns
        -------
        pd.DataFrame: open, high, low, close, volume, timestamp — datetime-indexed (UTC),
        empty on any failure
        """
        if interval not in INTERVAL_DEFAULT_PERIOD:
            raise ValueError(f"Unknown interval: {interval}. Use: {list(INTERVAL_DEFAULT_PERIOD.keys())}")
        if period is None:
            period = INTERVAL_DEFAULT_PERIOD[interval]

        try:
            ticker = self._yf.Ticker(symbol)
            df = ticker.history(period=period, interval=interval, auto_adjust=True)

            if df is None or df.empty:
                logger.warning(f"No data returned for {symbol} {interval} ({period})")
                return pd.DataFrame()

            df.columns = [c.lower() for c in df.columns]
            df = df[OHLCV].copy()

            if df.index.tz is None:
                df.index = df.index.tz_localize("UTC")
            else:
                df.index = df.index.tz_convert("UTC")

            df = df.sort_index().dropna()
            df = _with_timestamp(df)

            if lookback is not None and len(df) > lookback:
                df = df.iloc[-lookback:]
            logger.info(f"Fetched {len(df)} {interval} candles for {symbol}")
            return df

        except Exception as e:
            logger.error(f"Error fetching {symbol} {interval}: {e}")
            return pd.DataFrame()

    def get_current_price(self, symbol: str) -> Optional[float]:
        """Latest close, or None when nothing came back."""
        df = self.get_candles(symbol, "1d", period="5d", lookback=1)
        if not df.empty:
            return float(df["close"].iloc[-1])
        return None

    def scan_symbols(
        self,
        symbols: List[str],
        interval: str = "1d",
        period: Optional[str] = None,
        lookback: Optional[int] = None,
    ) -> Dict[str, pd.DataFrame]:
        """Fetch several tickers. Symbols with no data are skipped."""
        result = {}
        for symbol in symbols:
            df = self.get_candles(symbol, interval, period=period, lookback=lookback)
            if df.empty:
                logger.warning(f"Skipping {symbol}: no data")
                continue
            result[symbol] = df
        return result


# ── Local files ────────────────────────────────────────────────────────────

def _record_to_row(record: dict, position: int) -> dict:
    row = {}
    for column, keys in _FIELD_ALIASES.items():
        for key in keys:
            if key in record:
                row[column] = record[key]
                break
    missing = [c for c in OHLCV if c not in row]
    if missing:
        raise ValueError(f"candle #{position} missing fields: {missing}")
    row.setdefault("timestamp", position)
    return row


def load_candles_file(path) -> pd.DataFrame:
    """
    Read candles from a JSON or CSV file and validate them.

    Raises FileNotFoundError for a missing file and ValueError for an
    unsupported extension, malformed records or candles that break the
    OHLC invariants.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Candle file not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".json":
        with open(path) as f:
            payload = json.load(f)
        records = payload.get("candles") if isinstance(payload, dict) else payload
        if not isinstance(records, list):
            raise ValueError(f"{path}: expected a list of candles or {{'candles': [...]}}")
        rows = [_record_to_row(r, i) for i, r in enumerate(records)]
        df = pd.DataFrame(rows, columns=OHLCV + ["timestamp"])
    elif suffix == ".csv":
        df = pd.read_csv(path)
        df.columns = [str(c).strip().lower() for c in df.columns]
        missing = [c for c in OHLCV if c not in df.columns]
        if missing:
            raise ValueError(f"{path}: missing columns {missing}")
        if "timestamp" not in df.columns:
            df["timestamp"] = range(len(df))
        df = df[OHLCV + ["timestamp"]].copy()
    else:
        raise ValueError(f"Unsupported candle file type: {suffix or '(none)'} (use .json or .csv)")

    df[OHLCV] = df[OHLCV].astype(float)
    df["timestamp"] = df["timestamp"].astype("int64")
    validate_candles(df)
    logger.info(f"Loaded {len(df)} candles from {path}")
    return df
