"""
Head & Shoulders Detector (and its inverse)

Three swing extremes with the middle one (the head) beyond the outer two
(the shoulders), and a neckline through the swing between each shoulder and
the head.

  classic   peaks on highs, neckline through the lows    → bearish
  inverse   troughs on lows, neckline through the highs  → bullish

Search:
  - Swing extremes are found once over the whole series with
    scipy.signal.argrelextrema (order HS_EXTREMUM_ORDER, strict) and kept
    when their prominence against the neighbouring bars reaches
    HS_MIN_PROMINENCE.
  - Windows [start, start + duration] are scanned start ascending, then
    duration ascending. A window sees the extremes lying at least
    HS_EXTREMUM_ORDER bars inside its edges, exactly what a per-window
    search would find.
  - A window needs ≥ 3 primary extremes (peaks, or troughs when inverse)
    and ≥ 2 of the other kind. Triples are tried in lexicographic order;
    the first one with a dominant head, matching shoulders and a neckline
    point on both sides becomes the window's candidate.
  - A (left, head, right) triple already yielded by an earlier window is
    not yielded again.

Scoring uses head_shoulders_rules() from scoring.py; levels use
levels.compute_levels(), so both families share one formula set.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import numpy as np
from scipy.signal import argrelextrema

import chartforge.patterns.pattern_config as _cfg
from .candles import Bars, CandleInput
from .levels import BEARISH, BULLISH, FormationGeometry, compute_levels, risk_reward
from .result import HeadShouldersResult, Reason, SearchMode
from .scoring import head_shoulders_rules, score_formation

logger = logging.getLogger(__name__)

PEAK   = "peak"
TROUGH = "trough"


@dataclass(frozen=True)
class ShouldersFormation:
    inverse:               bool
    left_shoulder_start:   int
    left_shoulder_peak:    int
    left_shoulder_end:     int
    head_start:            int
    head_peak:             int
    head_end:              int
    right_shoulder_start:  int
    right_shoulder_peak:   int
    right_shoulder_end:    int
    neckline_left:         int
    neckline_right:        int
    left_shoulder_height:  float    # extreme lows when inverse
    head_height:           float
    right_shoulder_height: float
    duration:              int

    @property
    def triple(self) -> Tuple[int, int, int]:
        return (self.left_shoulder_peak, self.head_peak, self.right_shoulder_peak)


# ------------------------------------------------------------------ #
# Swing extremes
# ------------------------------------------------------------------ #

def find_extrema(values, kind: str = PEAK, order: Optional[int] = None,
                 min_prominence: Optional[float] = None) -> np.ndarray:
    """
    Indices of strict local maxima (kind='peak') or minima (kind='trough').

    A peak must exceed every bar within `order` on both sides; its
    prominence (p − max(min(left), min(right))) / p must reach
    `min_prominence`. Troughs mirror this against max(left) / max(right).
    The first and last `order` bars are never extremes.
    """
    order = _cfg.HS_EXTREMUM_ORDER if order is None else order
    min_prominence = _cfg.HS_MIN_PROMINENCE if min_prominence is None else min_prominence
    v = np.asarray(values, dtype=float)
    n = len(v)
    if n < 2 * order + 1:
        return np.array([], dtype=int)

    if kind == PEAK:
        idx = argrelextrema(v, np.greater, order=order)[0]
    elif kind == TROUGH:
        idx = argrelextrema(v, np.less, order=order)[0]
    else:
        raise ValueError(f"unknown extremum kind: {kind!r}")

    keep = []
    for i in idx:
        if i < order or i >= n - order:
            continue
        left  = v[i - order:i]
        right = v[i + 1:i + order + 1]
        p = v[i]
        if kind == PEAK:
            if p <= 0:
                continue
            prominence = (p - max(left.min(), right.min())) / p
        else:
            ref = min(left.max(), right.max())
            if ref <= 0:
                continue
            prominence = (ref - p) / ref
        if prominence >= min_prominence:
            keep.append(int(i))
    return np.array(keep, dtype=int)


def _extreme_between(values, a: int, b: int, inverse: bool) -> int:
    """Index of the lowest low (highest high when inverse) strictly between a and b, or -1."""
    if b - a < 2:
        return -1
    seg = values[a + 1:b]
    # argmin/argmax return the first occurrence
    return a + 1 + int(np.argmax(seg) if inverse else np.argmin(seg))


def _first_triple(extremes, highs, lows, inverse: bool):
    """First (left, head, right, neck_left, neck_right) in lexicographic order, or None."""
    prices = lows if inverse else highs
    neck_prices = highs if inverse else lows
    margin = _cfg.HS_MIN_HEAD_MARGIN_PCT / 100

    m = len(extremes)
    for a in range(m - 2):
        for b in range(a + 1, m - 1):
            for c in range(b + 1, m):
                left, head, right = int(extremes[a]), int(extremes[b]), int(extremes[c])
                ls, hd, rs = prices[left], prices[head], prices[right]

                if inverse:
                    dominant = hd < ls * (1 - margin) and hd < rs * (1 - margin)
                else:
                    dominant = hd > ls * (1 + margin) and hd > rs * (1 + margin)
                if not dominant:
                    continue

                widest = max(ls, rs)
                if widest <= 0 or abs(ls - rs) / widest > _cfg.HS_SHOULDER_TOLERANCE:
                    continue

                neck_left = _extreme_between(neck_prices, left, head, inverse)
                neck_right = _extreme_between(neck_prices, head, right, inverse)
                if neck_left == -1 or neck_right == -1:
                    continue
                return left, head, right, neck_left, neck_right
    return None


# ------------------------------------------------------------------ #
# Candidate search
# ------------------------------------------------------------------ #

def iter_shoulder_candidates(
    candles,
    min_bars: Optional[int] = None,
    max_bars: Optional[int] = None,
    inverse: bool = False,
) -> Iterator[ShouldersFormation]:
    """Yield head & shoulders formations in scan order, one per distinct triple."""
    bars = Bars.from_input(candles)
    min_bars = _cfg.DEFAULT_HS_MIN_BARS if min_bars is None else min_bars
    max_bars = _cfg.DEFAULT_HS_MAX_BARS if max_bars is None else max_bars
    order = _cfg.HS_EXTREMUM_ORDER
    pad = _cfg.HS_SHOULDER_PAD_BARS

    highs, lows = bars.highs, bars.lows
    n = len(bars)

    peaks = find_extrema(highs, PEAK)
    troughs = find_extrema(lows, TROUGH)
    primary, secondary = (troughs, peaks) if inverse else (peaks, troughs)
    logger.debug(f"{'Inverse H&S' if inverse else 'H&S'} extrema: "
                 f"{len(peaks)} peak(s), {len(troughs)} trough(s) over {n} bars")

    seen = set()
    for start in range(0, n - min_bars):
        memo = {}
        for duration in range(min_bars, max_bars + 1):
            end = start + duration
            if end >= n:
                break

            lo = int(np.searchsorted(primary, start + order, side="left"))
            hi = int(np.searchsorted(primary, end - order, side="right"))
            if hi - lo < 3:
                continue
            s_lo = int(np.searchsorted(secondary, start + order, side="left"))
            s_hi = int(np.searchsorted(secondary, end - order, side="right"))
            if s_hi - s_lo < 2:
                continue

            if (lo, hi) not in memo:
                memo[(lo, hi)] = _first_triple(primary[lo:hi], highs, lows, inverse)
            found = memo[(lo, hi)]
            if found is None:
                continue

            left, head, right, neck_left, neck_right = found
            if (left, head, right) in seen:
                continue
            seen.add((left, head, right))

            prices = lows if inverse else highs
            ls_start = max(start, left - pad)
            rs_end = min(end, right + pad)
            yield ShouldersFormation(
                inverse=inverse,
                left_shoulder_start=ls_start,
                left_shoulder_peak=left,
                left_shoulder_end=neck_left,
                head_start=neck_left,
                head_peak=head,
                head_end=neck_right,
                right_shoulder_start=neck_right,
                right_shoulder_peak=right,
                right_shoulder_end=rs_end,
                neckline_left=neck_left,
                neckline_right=neck_right,
                left_shoulder_height=float(prices[left]),
                head_height=float(prices[head]),
                right_shoulder_height=float(prices[right]),
                duration=rs_end - ls_start + 1,
            )


def find_shoulder_candidates(candles, min_bars: Optional[int] = None,
                             max_bars: Optional[int] = None, inverse: bool = False) -> list:
    return list(iter_shoulder_candidates(candles, min_bars, max_bars, inverse))


def volume_supports(volumes, formation: ShouldersFormation) -> bool:
    """Head-segment mean volume below the left shoulder's, right shoulder's above the head's."""
    v = np.asarray(volumes, dtype=float)
    left = v[formation.left_shoulder_start:formation.left_shoulder_end + 1]
    head = v[formation.head_start:formation.head_end + 1]
    right = v[formation.right_shoulder_start:formation.right_shoulder_end + 1]
    if not len(left) or not len(head) or not len(right):
        return False
    return bool(head.mean() < left.mean() and right.mean() > head.mean())


# ------------------------------------------------------------------ #
# Scoring + assembly
# ------------------------------------------------------------------ #

def assess_head_and_shoulders(candles, formation: ShouldersFormation) -> HeadShouldersResult:
    """Score one formation and build its result (accepted or not)."""
    bars = Bars.from_input(candles)
    inverse = formation.inverse
    neck_prices = bars.highs if inverse else bars.lows

    p_left = float(neck_prices[formation.neckline_left])
    p_right = float(neck_prices[formation.neckline_right])
    slope = (p_right - p_left) / (formation.neckline_right - formation.neckline_left)
    slope_pct = abs(slope) / p_left * 100 if p_left else float("inf")

    ls, hd, rs = (formation.left_shoulder_height, formation.head_height,
                  formation.right_shoulder_height)
    if inverse:
        direction = BULLISH
        depth = min(p_left, p_right) - hd
        prominence = (min(ls, rs) - hd) / hd * 100 if hd else 0.0
    else:
        direction = BEARISH
        depth = hd - max(p_left, p_right)
        prominence = (hd - max(ls, rs)) / hd * 100

    levels = compute_levels(FormationGeometry(
        direction=direction,
        breakout_refs=(p_right,),
        protective_refs=(rs,),
        depth=depth,
    ))
    rr = risk_reward(direction, levels.breakout, levels.target, levels.stop_loss)
    volume_ok = volume_supports(bars.volumes, formation)

    card = score_formation(head_shoulders_rules(), {
        "head_prominence":   prominence,
        "shoulder_symmetry": abs(ls - rs) / max(ls, rs) * 100,
        "duration":          formation.duration,
        "neckline_slope":    slope_pct,
        "volume":            volume_ok,
        "risk_reward":       rr,
    })

    return HeadShouldersResult(
        pattern_type=_pattern_type(inverse),
        direction=direction,
        inverse=inverse,
        is_pattern=card.accepted,
        confidence=card.confidence,
        score=card.score,
        breakout_level=levels.breakout,
        target_price=levels.target,
        stop_loss=levels.stop_loss,
        pattern_duration=formation.duration,
        volume_confirmed=volume_ok,
        reasons=card.reasons,
        left_shoulder_start=formation.left_shoulder_start,
        left_shoulder_peak=formation.left_shoulder_peak,
        left_shoulder_end=formation.left_shoulder_end,
        head_start=formation.head_start,
        head_peak=formation.head_peak,
        head_end=formation.head_end,
        right_shoulder_start=formation.right_shoulder_start,
        right_shoulder_peak=formation.right_shoulder_peak,
        right_shoulder_end=formation.right_shoulder_end,
        neckline_left=formation.neckline_left,
        neckline_right=formation.neckline_right,
        neckline_slope=slope,
        left_shoulder_height=ls,
        head_height=hd,
        right_shoulder_height=rs,
    )


def _pattern_type(inverse: bool) -> str:
    return "inverse_head_and_shoulders" if inverse else "head_and_shoulders"


def _label(inverse: bool) -> str:
    return "inverse head and shoulders" if inverse else "head and shoulders"


def _empty(inverse: bool, reasons, score: int = 0) -> HeadShouldersResult:
    return HeadShouldersResult(
        pattern_type=_pattern_type(inverse),
        direction=BULLISH if inverse else BEARISH,
        inverse=inverse,
        score=score,
        reasons=tuple(reasons),
    )


def detect_head_and_shoulders(
    candles: CandleInput,
    min_bars: Optional[int] = None,
    max_bars: Optional[int] = None,
    inverse: bool = False,
    mode=SearchMode.FIRST,
) -> HeadShouldersResult:
    """
    Detect a head & shoulders top (or, with inverse=True, a bottom).

    Window lengths default to 20–100 bars. Like the cup detector, every
    market-data outcome is a result; ValueError only for an impossible bar
    range or an unknown mode.
    """
    min_bars = _cfg.DEFAULT_HS_MIN_BARS if min_bars is None else min_bars
    max_bars = _cfg.DEFAULT_HS_MAX_BARS if max_bars is None else max_bars
    if min_bars < 1 or max_bars < min_bars:
        raise ValueError(f"bar range must satisfy 1 <= min <= max, got {min_bars}..{max_bars}")
    mode = SearchMode.parse(mode)

    bars = Bars.from_input(candles)
    label = _label(inverse)
    if len(bars) < min_bars + _cfg.HS_DATA_MARGIN_BARS:
        return _empty(inverse, [Reason("data", False, "Insufficient data for pattern detection")])

    n_candidates = 0
    first_rejected: Optional[HeadShouldersResult] = None
    best: Optional[HeadShouldersResult] = None

    for formation in iter_shoulder_candidates(bars, min_bars, max_bars, inverse):
        n_candidates += 1
        result = assess_head_and_shoulders(bars, formation)
        if not result.is_pattern:
            if first_rejected is None:
                first_rejected = result
            continue
        if mode is SearchMode.FIRST:
            logger.info(
                f"{label.capitalize()}: shoulders {formation.left_shoulder_peak}/"
                f"{formation.right_shoulder_peak}, head {formation.head_peak}, "
                f"score {result.score} ({result.confidence.value})"
            )
            return result
        if best is None or result.score > best.score:
            best = result

    logger.debug(f"{label.capitalize()} scan: {n_candidates} candidate(s)")

    if n_candidates == 0:
        return _empty(inverse, [Reason("pattern", False, f"No valid {label} formations found")])
    if best is not None:
        logger.info(f"{label.capitalize()} (best of {n_candidates}): head {best.head_peak}, "
                    f"score {best.score} ({best.confidence.value})")
        return best
    return _empty(
        inverse,
        first_rejected.reasons + (Reason("pattern", False, f"No valid {label} patterns found"),),
        score=first_rejected.score,
    )


def detect_inverse_head_and_shoulders(
    candles: CandleInput,
    min_bars: Optional[int] = None,
    max_bars: Optional[int] = None,
    mode=SearchMode.FIRST,
) -> HeadShouldersResult:
    return detect_head_and_shoulders(candles, min_bars, max_bars, inverse=True, mode=mode)
