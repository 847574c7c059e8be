"""
Candle records and frame conversion.

The detectors work on numpy arrays pulled out of a pandas DataFrame with
lowercase open/high/low/close/volume columns — the same frame shape the data
supplier returns. Callers holding a list of Candle records can pass that
instead; as_frame() converts either form.

The detection engine never validates candles. validate_candles() belongs to
the data-loading side (see chartforge/data/candle_data.py).
"""
from __future__ import annotations

from dataclasses import dataclass, asdict
from typing import Iterable, List, Sequence, Union

import numpy as np
import pandas as pd

OHLCV = ["open", "high", "low", "close", "volume"]


@dataclass(frozen=True)
class Candle:
    open:      float
    high:      float
    low:       float
    close:     float
    volume:    float
    timestamp: int     # epoch seconds

    def is_valid(self) -> bool:
        """high ≥ max(open, close), low ≤ min(open, close), volume ≥ 0."""
        return (
            self.high >= max(self.open, self.close)
            and self.low <= min(self.open, self.close)
            and self.volume >= 0
        )

    def to_dict(self) -> dict:
        return asdict(self)


CandleInput = Union[pd.DataFrame, Sequence[Candle]]


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """List of Candle → DataFrame with OHLCV + timestamp columns, 0..n-1 index."""
    rows = [c.to_dict() for c in candles]
    if not rows:
        return pd.DataFrame(columns=OHLCV + ["timestamp"])
    return pd.DataFrame(rows, columns=OHLCV + ["timestamp"])


def frame_to_candles(df: pd.DataFrame) -> List[Candle]:
    """DataFrame → list of Candle. Timestamps come from a `timestamp` column or a datetime index."""
    if df.empty:
        return []
    stamps = _timestamps(df)
    return [
        Candle(
            open=float(o), high=float(h), low=float(l), close=float(c),
            volume=float(v), timestamp=int(t),
        )
        for o, h, l, c, v, t in zip(
            df["open"].values, df["high"].values, df["low"].values,
            df["close"].values, df["volume"].values, stamps,
        )
    ]


def as_frame(data: CandleInput) -> pd.DataFrame:
    """Accept a DataFrame or a sequence of Candle; return a DataFrame the detectors can read."""
    if isinstance(data, pd.DataFrame):
        missing = [c for c in OHLCV if c not in data.columns]
        if missing:
            raise ValueError(f"candle frame missing columns: {missing}")
        return data
    return candles_to_frame(data)


@dataclass(frozen=True, eq=False)
class Bars:
    """Column arrays of one candle series, read-only for the length of a detection call."""
    opens:      np.ndarray
    highs:      np.ndarray
    lows:       np.ndarray
    closes:     np.ndarray
    volumes:    np.ndarray
    timestamps: np.ndarray

    def __len__(self) -> int:
        return len(self.closes)

    @classmethod
    def from_input(cls, data: Union["Bars", CandleInput]) -> "Bars":
        if isinstance(data, Bars):
            return data
        df = as_frame(data)
        return cls(
            opens=df["open"].to_numpy(dtype=float),
            highs=df["high"].to_numpy(dtype=float),
            lows=df["low"].to_numpy(dtype=float),
            closes=df["close"].to_numpy(dtype=float),
            volumes=df["volume"].to_numpy(dtype=float),
            timestamps=_timestamps(df),
        )


def validate_candles(df: pd.DataFrame) -> pd.DataFrame:
    """
    Check OHLC invariants on every row.

    Returns the frame unchanged when all rows are well formed.
    Raises ValueError listing (up to 5) offending row labels otherwise.
    """
    missing = [c for c in OHLCV if c not in df.columns]
    if missing:
        raise ValueError(f"candle frame missing columns: {missing}")
    if df.empty:
        return df

    body_hi = np.maximum(df["open"].values, df["close"].values)
    body_lo = np.minimum(df["open"].values, df["close"].values)
    bad = (
        (df["high"].values < body_hi)
        | (df["low"].values > body_lo)
        | (df["volume"].values < 0)
        | pd.isna(df[OHLCV]).any(axis=1).values
    )
    if bad.any():
        labels = df.index[bad][:5].tolist()
        raise ValueError(
            f"{int(bad.sum())} malformed candle(s) "
            f"(high < body, low > body, negative volume or NaN) at rows {labels}"
        )
    return df


def _timestamps(df: pd.DataFrame) -> np.ndarray:
    if "timestamp" in df.columns:
        return df["timestamp"].values.astype("int64")
    if isinstance(df.index, pd.DatetimeIndex):
        idx = df.index.tz_convert("UTC").tz_localize(None) if df.index.tz is not None else df.index
        secs = (idx - pd.Timestamp("1970-01-01")) // pd.Timedelta(seconds=1)
        return np.asarray(secs, dtype="int64")
    return np.arange(len(df), dtype="int64")
