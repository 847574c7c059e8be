"""
Cup & Handle Detector

Searches a candle series for a U-shaped decline-and-recovery (the cup)
followed immediately by a shallow drift or pullback (the handle), scores
the pair and derives breakout / target / stop levels.

Pipeline (per call, no state kept between calls):

  iter_cup_candidates()   every (start, duration) window that passes the
                          structural gates, lazily, in scan order:
                          start ascending, then duration ascending
  is_u_shaped()           U vs V test on the window's lows
  find_handle()           first handle duration after the cup that passes
  scoring.score_formation cup_handle_rules() → score, confidence, reasons
  levels.compute_levels   breakout / measured-move target / stop

Selection policy: SearchMode.FIRST (default) returns the first candidate in
scan order that passes every gate and scores ≥ MIN_PATTERN_SCORE. It is not
a global optimum. SearchMode.BEST scores every candidate and keeps the
highest (earliest on ties).

The search is O(n · max_cup_bars) windows. Long series with wide bar ranges
get slow; bound the input, the engine has no timeout of its own.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np

import chartforge.patterns.pattern_config as _cfg
from .candles import Bars, CandleInput
from .levels import BULLISH, FormationGeometry, compute_levels
from .result import CupHandleResult, Reason, SearchMode
from .scoring import cup_handle_rules, score_formation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CupFormation:
    start_index:  int
    bottom_index: int
    end_index:    int
    start_price:  float    # high of the first bar
    bottom_price: float    # lowest low in the window
    end_price:    float    # close of the last bar
    depth_pct:    float
    duration:     int      # end_index − start_index
    recovery_pct: float
    is_u_shaped:  bool


@dataclass(frozen=True)
class HandleFormation:
    start_index:     int
    end_index:       int
    start_price:     float    # close of the cup's last bar
    end_price:       float
    low_price:       float
    depth_pct:       float    # relative to start_price
    duration:        int      # bars in the handle
    volume_declined: bool


# ------------------------------------------------------------------ #
# Shape validation
# ------------------------------------------------------------------ #

def average_slope(prices) -> float:
    """Mean fractional change between consecutive prices. 0.0 for fewer than two."""
    p = np.asarray(prices, dtype=float)
    if len(p) < 2:
        return 0.0
    return float(np.mean(np.diff(p) / p[:-1]))


def is_u_shaped(lows, bottom_index: int) -> bool:
    """
    True if the lows around `bottom_index` form a U rather than a V.

    Both sides are read towards the bottom (the right side reversed) and
    their average per-bar slope must stay within CUP_MAX_SIDE_SLOPE. The
    bottom must also be flat: at least CUP_FLAT_BOTTOM_MIN_BARS bars within
    CUP_FLAT_BOTTOM_RADIUS of it sit within CUP_FLAT_BOTTOM_TOLERANCE of the
    bottom price.
    """
    lows = np.asarray(lows, dtype=float)
    n = len(lows)
    if n < _cfg.CUP_MIN_SHAPE_BARS or bottom_index < 2 or bottom_index >= n - 2:
        return False

    left_slope  = average_slope(lows[:bottom_index + 1])
    right_slope = average_slope(lows[bottom_index:][::-1])
    if abs(left_slope) > _cfg.CUP_MAX_SIDE_SLOPE or abs(right_slope) > _cfg.CUP_MAX_SIDE_SLOPE:
        return False

    bottom_price = lows[bottom_index]
    tolerance = bottom_price * _cfg.CUP_FLAT_BOTTOM_TOLERANCE
    lo = max(0, bottom_index - _cfg.CUP_FLAT_BOTTOM_RADIUS)
    hi = min(n - 1, bottom_index + _cfg.CUP_FLAT_BOTTOM_RADIUS)
    flat_bars = int(np.sum(np.abs(lows[lo:hi + 1] - bottom_price) <= tolerance))
    return flat_bars >= _cfg.CUP_FLAT_BOTTOM_MIN_BARS


# ------------------------------------------------------------------ #
# Cup search
# ------------------------------------------------------------------ #

def iter_cup_candidates(
    candles,
    min_cup_bars: Optional[int] = None,
    max_cup_bars: Optional[int] = None,
) -> Iterator[CupFormation]:
    """
    Yield every cup window that passes the structural gates, in scan order.

    A fresh generator restarts the scan; nothing is cached between calls.
    """
    bars = Bars.from_input(candles)
    min_cup_bars = _cfg.DEFAULT_MIN_CUP_BARS if min_cup_bars is None else min_cup_bars
    max_cup_bars = _cfg.DEFAULT_MAX_CUP_BARS if max_cup_bars is None else max_cup_bars

    highs, lows, closes = bars.highs, bars.lows, bars.closes
    n = len(bars)

    for start in range(0, n - min_cup_bars):
        start_high = float(highs[start])
        if start_high <= 0:
            continue

        # Running minimum over [start, start + duration]; strict < keeps the
        # first occurrence of the lowest low.
        bottom_index = start
        bottom_price = float(lows[start])
        for i in range(start + 1, min(start + min_cup_bars, n)):
            if lows[i] < bottom_price:
                bottom_price = float(lows[i])
                bottom_index = i

        for duration in range(min_cup_bars, max_cup_bars + 1):
            end = start + duration
            if end >= n:
                break
            if lows[end] < bottom_price:
                bottom_price = float(lows[end])
                bottom_index = end

            depth = (start_high - bottom_price) / start_high * 100
            if not (_cfg.CUP_MIN_DEPTH_PCT <= depth <= _cfg.CUP_MAX_DEPTH_PCT):
                continue

            end_price = float(closes[end])
            recovery = (end_price - bottom_price) / (start_high - bottom_price) * 100
            if recovery < _cfg.CUP_MIN_RECOVERY_PCT:
                continue

            # Bottom strictly interior, not within one bar of either rim
            if not (start + 1 < bottom_index < end - 1):
                continue

            if end_price < start_high * _cfg.CUP_MIN_END_RATIO:
                continue

            if not is_u_shaped(lows[start:end + 1], bottom_index - start):
                continue

            yield CupFormation(
                start_index=start,
                bottom_index=bottom_index,
                end_index=end,
                start_price=start_high,
                bottom_price=bottom_price,
                end_price=end_price,
                depth_pct=depth,
                duration=duration,
                recovery_pct=recovery,
                is_u_shaped=True,
            )


def find_cup_candidates(candles, min_cup_bars: Optional[int] = None,
                        max_cup_bars: Optional[int] = None) -> list:
    """Materialised iter_cup_candidates()."""
    return list(iter_cup_candidates(candles, min_cup_bars, max_cup_bars))


# ------------------------------------------------------------------ #
# Handle search
# ------------------------------------------------------------------ #

def volume_declined(volumes) -> bool:
    """
    Second-half average volume ≤ first-half average × HANDLE_VOLUME_TOLERANCE.
    Halves split by bar count; fewer than 3 bars never counts as declining.
    """
    v = np.asarray(volumes, dtype=float)
    if len(v) < 3:
        return False
    half = len(v) // 2
    return float(v[half:].mean()) <= float(v[:half].mean()) * _cfg.HANDLE_VOLUME_TOLERANCE


def find_handle(
    candles,
    cup: CupFormation,
    min_handle_bars: Optional[int] = None,
    max_handle_bars: Optional[int] = None,
) -> Optional[HandleFormation]:
    """
    First handle duration, starting the bar after the cup, that passes every
    hard constraint. Volume behaviour is recorded but never gates.
    Returns None when no duration qualifies.
    """
    bars = Bars.from_input(candles)
    min_handle_bars = _cfg.DEFAULT_MIN_HANDLE_BARS if min_handle_bars is None else min_handle_bars
    max_handle_bars = _cfg.DEFAULT_MAX_HANDLE_BARS if max_handle_bars is None else max_handle_bars

    lows, closes, volumes = bars.lows, bars.closes, bars.volumes
    n = len(bars)

    handle_start = cup.end_index + 1
    if handle_start >= n - min_handle_bars:
        return None

    cup_end_price = float(closes[cup.end_index])
    if cup_end_price <= 0:
        return None
    max_depth = min(_cfg.HANDLE_MAX_DEPTH_PCT, cup.depth_pct * _cfg.HANDLE_MAX_CUP_DEPTH_FRACTION)
    support = cup.bottom_price * _cfg.HANDLE_SUPPORT_RATIO

    for duration in range(min_handle_bars, max_handle_bars + 1):
        handle_end = handle_start + duration - 1
        if handle_end >= n:
            break

        handle_low = float(lows[handle_start:handle_end + 1].min())
        handle_end_price = float(closes[handle_end])

        depth = (cup_end_price - handle_low) / cup_end_price * 100
        drift = abs(cup_end_price - handle_end_price) / cup_end_price * 100

        if (
            _cfg.HANDLE_MIN_DEPTH_PCT <= depth <= max_depth
            and drift <= _cfg.HANDLE_MAX_DRIFT_PCT
            and handle_low >= support
            and handle_end_price >= handle_low * _cfg.HANDLE_MIN_CLOSE_ABOVE_LOW
        ):
            return HandleFormation(
                start_index=handle_start,
                end_index=handle_end,
                start_price=cup_end_price,
                end_price=handle_end_price,
                low_price=handle_low,
                depth_pct=depth,
                duration=duration,
                volume_declined=volume_declined(volumes[handle_start:handle_end + 1]),
            )

    return None


# ------------------------------------------------------------------ #
# Scoring + assembly
# ------------------------------------------------------------------ #

def assess_cup_and_handle(candles, cup: CupFormation, handle: HandleFormation) -> CupHandleResult:
    """Score one cup/handle pair and build its result (accepted or not)."""
    bars = Bars.from_input(candles)

    levels = compute_levels(FormationGeometry(
        direction=BULLISH,
        breakout_refs=(float(bars.highs[cup.start_index]), float(bars.highs[cup.end_index])),
        protective_refs=(handle.low_price, cup.bottom_price),
        depth=cup.start_price - cup.bottom_price,
    ))

    card = score_formation(cup_handle_rules(), {
        "cup_depth":       cup.depth_pct,
        "cup_duration":    cup.duration,
        "cup_shape":       cup.is_u_shaped,
        "handle_depth":    handle.depth_pct,
        "handle_duration": handle.duration,
        "handle_volume":   handle.volume_declined,
        "price_recovery":  cup.recovery_pct,
    })

    return CupHandleResult(
        is_pattern=card.accepted,
        confidence=card.confidence,
        score=card.score,
        breakout_level=levels.breakout,
        target_price=levels.target,
        stop_loss=levels.stop_loss,
        pattern_duration=cup.duration + handle.duration,
        volume_confirmed=handle.volume_declined,
        reasons=card.reasons,
        cup_start=cup.start_index,
        cup_bottom=cup.bottom_index,
        cup_end=cup.end_index,
        handle_start=handle.start_index,
        handle_end=handle.end_index,
        cup_depth=cup.depth_pct,
        handle_depth=handle.depth_pct,
        price_recovery=cup.recovery_pct,
    )


def _check_params(min_cup_bars, max_cup_bars, min_handle_bars, max_handle_bars) -> None:
    if min_cup_bars < 1 or max_cup_bars < min_cup_bars:
        raise ValueError(
            f"cup bar range must satisfy 1 <= min <= max, got {min_cup_bars}..{max_cup_bars}"
        )
    if min_handle_bars < 2 or max_handle_bars < min_handle_bars:
        raise ValueError(
            f"handle bar range must satisfy 2 <= min <= max, got {min_handle_bars}..{max_handle_bars}"
        )


def _no_pattern(message: str, scored: Optional[CupHandleResult] = None) -> CupHandleResult:
    reasons = scored.reasons if scored is not None else ()
    return CupHandleResult(
        score=scored.score if scored is not None else 0,
        reasons=reasons + (Reason("pattern", False, message),),
    )


def detect_cup_and_handle(
    candles: CandleInput,
    min_cup_bars: Optional[int] = None,
    max_cup_bars: Optional[int] = None,
    min_handle_bars: Optional[int] = None,
    max_handle_bars: Optional[int] = None,
    mode=SearchMode.FIRST,
) -> CupHandleResult:
    """
    Detect a cup & handle in `candles` (DataFrame or list of Candle).

    Bar ranges default to 15–130 (cup) and 5–25 (handle), see pattern_config.
    Never raises for market data it cannot use: short series, no cups and
    low scores all come back as `is_pattern=False` with reasons. Raises
    ValueError only for impossible bar ranges or an unknown mode.
    """
    min_cup_bars = _cfg.DEFAULT_MIN_CUP_BARS if min_cup_bars is None else min_cup_bars
    max_cup_bars = _cfg.DEFAULT_MAX_CUP_BARS if max_cup_bars is None else max_cup_bars
    min_handle_bars = _cfg.DEFAULT_MIN_HANDLE_BARS if min_handle_bars is None else min_handle_bars
    max_handle_bars = _cfg.DEFAULT_MAX_HANDLE_BARS if max_handle_bars is None else max_handle_bars
    _check_params(min_cup_bars, max_cup_bars, min_handle_bars, max_handle_bars)
    mode = SearchMode.parse(mode)

    bars = Bars.from_input(candles)
    if len(bars) < min_cup_bars + min_handle_bars + _cfg.CUP_DATA_MARGIN_BARS:
        return CupHandleResult(
            reasons=(Reason("data", False, "Insufficient data for pattern detection"),),
        )

    n_cups = 0
    n_handles = 0
    first_rejected: Optional[CupHandleResult] = None
    best: Optional[CupHandleResult] = None

    for cup in iter_cup_candidates(bars, min_cup_bars, max_cup_bars):
        n_cups += 1
        handle = find_handle(bars, cup, min_handle_bars, max_handle_bars)
        if handle is None:
            continue
        n_handles += 1

        result = assess_cup_and_handle(bars, cup, handle)
        if not result.is_pattern:
            if first_rejected is None:
                first_rejected = result
            continue
        if mode is SearchMode.FIRST:
            logger.info(
                f"Cup & handle: cup {cup.start_index}→{cup.bottom_index}→{cup.end_index}, "
                f"handle {handle.start_index}→{handle.end_index}, "
                f"score {result.score} ({result.confidence.value})"
            )
            return result
        if best is None or result.score > best.score:
            best = result

    logger.debug(f"Cup & handle scan: {n_cups} cup candidate(s), {n_handles} with a handle")

    if n_cups == 0:
        return _no_pattern("No valid cup formations found")
    if best is not None:
        logger.info(
            f"Cup & handle (best of {n_handles}): cup {best.cup_start}→{best.cup_end}, "
            f"score {best.score} ({best.confidence.value})"
        )
        return best
    return _no_pattern("No valid cup and handle patterns found", first_rejected)
