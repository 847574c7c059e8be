"""
Synthetic candle series for demos and tests.

  generate_cup_and_handle()      U-shaped cup (75 %) + drifting handle (25 %), weekly bars
  generate_head_and_shoulders()  straight-legged shoulders 0.6 / head 1.0 / neckline 0.2 of the height, daily bars
  generate_trend()               straight line, no noise

Noise comes from numpy.random.default_rng(seed): the same seed always
produces the same series. Every bar satisfies the Candle invariants
(high ≥ max(open, close), low ≤ min(open, close), volume ≥ 0).
"""
from __future__ import annotations

import time
from typing import Optional

import numpy as np
import pandas as pd

from .candles import OHLCV

DAY_SECONDS = 24 * 60 * 60
WEEK_SECONDS = 7 * DAY_SECONDS

# Head & shoulders legs move this many percent of base price per bar
HS_LEG_SLOPE_PCT = 2.0


def _frame(opens, highs, lows, closes, volumes, end_timestamp: Optional[int],
           step_seconds: int) -> pd.DataFrame:
    n = len(closes)
    end = int(time.time()) if end_timestamp is None else int(end_timestamp)
    stamps = end - (n - 1 - np.arange(n)) * step_seconds
    df = pd.DataFrame({
        "open": opens, "high": highs, "low": lows,
        "close": closes, "volume": volumes,
    }, columns=OHLCV)
    df["timestamp"] = stamps.astype("int64")
    return df


def _bars_around(rng, prices, close_noise: float, open_noise: float, wick: float):
    """open/high/low/close around a price path; wicks always enclose the body."""
    prices = np.asarray(prices, dtype=float)
    n = len(prices)
    closes = prices + prices * close_noise * (rng.random(n) - 0.5)
    opens = closes + prices * open_noise * (rng.random(n) - 0.5)
    highs = np.maximum(opens, closes) * (1 + rng.random(n) * wick)
    lows = np.minimum(opens, closes) * (1 - rng.random(n) * wick)
    return opens, highs, lows, closes


def generate_cup_and_handle(
    base_price: float = 100.0,
    cup_depth: float = 20.0,
    total_periods: int = 50,
    seed: Optional[int] = None,
    end_timestamp: Optional[int] = None,
) -> pd.DataFrame:
    """
    Cup & handle series of exactly `total_periods` weekly bars.

    The cup falls `cup_depth` percent along a cosine and climbs back to the
    rim; the handle declines for 70 % of its length (at most
    min(12, cup_depth × 0.4) percent) and recovers 30 % of that decline.
    Volume is heavy at the rims, light mid-cup and lighter in the handle.
    """
    if total_periods < 2:
        raise ValueError(f"total_periods must be >= 2, got {total_periods}")
    rng = np.random.default_rng(seed)

    cup_periods = max(2, int(total_periods * 0.75))
    handle_periods = total_periods - cup_periods

    progress = np.arange(cup_periods) / (cup_periods - 1)
    angle = progress * 2 * np.pi
    cup_prices = base_price * (1 - (cup_depth / 100) * (1 - np.cos(angle)) / 2)
    o1, h1, l1, c1 = _bars_around(rng, cup_prices, 0.015, 0.01, 0.008)
    v1 = np.floor(1_000_000 * (0.7 + 0.6 * np.abs(np.cos(angle / 2)) + rng.random(cup_periods) * 0.2))

    if handle_periods:
        start = c1[-1]
        max_decline = min(12.0, cup_depth * 0.4) / 100 * 0.8
        hp = np.arange(handle_periods) / max(1, handle_periods - 1)
        mult = np.where(
            hp <= 0.7,
            1 - max_decline * (hp / 0.7),
            1 - max_decline * (1 - (hp - 0.7) / 0.3 * 0.3),
        )
        o2, h2, l2, c2 = _bars_around(rng, start * mult, 0.01, 0.005, 0.005)
        v2 = np.floor(700_000 * (0.8 + rng.random(handle_periods) * 0.4))
        o1, h1, l1, c1 = (np.concatenate(p) for p in ((o1, o2), (h1, h2), (l1, l2), (c1, c2)))
        v1 = np.concatenate((v1, v2))

    return _frame(o1, h1, l1, c1, v1, end_timestamp, WEEK_SECONDS)


def _shoulder_knots(total_periods: int, pattern_height: float):
    """
    Bar positions and heights (fraction of pattern_height) of the zig-zag
    base → LS → neck → HEAD → neck → RS → base, centred in the series.
    Each leg climbs or falls HS_LEG_SLOPE_PCT of base price per bar; series
    too short for that are compressed to fit.
    """
    heights = np.array([0.0, 0.6, 0.2, 1.0, 0.2, 0.6, 0.0])
    legs = np.maximum(2.0, np.round(np.abs(np.diff(heights)) * pattern_height / HS_LEG_SLOPE_PCT))
    offsets = np.concatenate(([0.0], np.cumsum(legs)))
    span = total_periods - 1
    if offsets[-1] > span:
        offsets = offsets * span / offsets[-1]
    lead = np.floor((span - offsets[-1]) / 2)
    return lead + offsets, heights


def generate_head_and_shoulders(
    base_price: float = 100.0,
    pattern_height: float = 20.0,
    total_periods: int = 60,
    seed: Optional[int] = None,
    end_timestamp: Optional[int] = None,
    inverse: bool = False,
) -> pd.DataFrame:
    """
    Head & shoulders series of exactly `total_periods` daily bars.

    Straight legs with sharp turns: shoulders at 0.6, neckline at 0.2 and
    the head at 1.0 of `pattern_height` percent above `base_price`, flat
    base before and after. Bar noise stays well under the 2 % swing
    prominence the detector asks for, so from about 40 bars up (at the
    default height) every seed yields a detectable formation.
    inverse=True mirrors the zig-zag below `base_price`.
    """
    if total_periods < 2:
        raise ValueError(f"total_periods must be >= 2, got {total_periods}")
    rng = np.random.default_rng(seed)

    knots, heights = _shoulder_knots(total_periods, pattern_height)
    idx = np.arange(total_periods)
    shape = np.interp(idx, knots, heights)
    sign = -1 if inverse else 1
    prices = base_price * (1 + sign * pattern_height / 100 * shape)
    opens, highs, lows, closes = _bars_around(rng, prices, 0.004, 0.003, 0.003)

    # light volume while the head forms, between the two neckline points
    head = (idx > knots[2]) & (idx < knots[4])
    volumes = np.floor(1_000_000 * np.where(
        head,
        0.7 + rng.random(total_periods) * 0.2,
        1.2 + rng.random(total_periods) * 0.3,
    ))
    return _frame(opens, highs, lows, closes, volumes, end_timestamp, DAY_SECONDS)


def generate_trend(start: float = 100.0, step: float = 1.0, periods: int = 60,
                   end_timestamp: Optional[int] = None) -> pd.DataFrame:
    """Noise-free linear series: close rises (or falls) by `step` every bar."""
    closes = start + step * np.arange(periods, dtype=float)
    opens = closes - step / 2
    highs = np.maximum(opens, closes) + abs(step) * 0.25
    lows = np.minimum(opens, closes) - abs(step) * 0.25
    volumes = np.full(periods, 1_000_000.0)
    return _frame(opens, highs, lows, closes, volumes, end_timestamp, DAY_SECONDS)
