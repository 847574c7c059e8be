"""
levels.py — Shared trading-level math for every pattern family.

Single source of truth: cup_handle.py and head_shoulders.py both describe
their winning formation as a FormationGeometry and call compute_levels().
The formulas live here once so the two families cannot drift apart.

  direction   breakout                 target               stop
  ---------   ----------------------   ------------------   ----------------------------------
  bullish     max(breakout_refs)       breakout + depth     min(protective_refs) × (1 − buffer)
  bearish     min(breakout_refs)       breakout − depth     max(protective_refs) × (1 + buffer)

depth is the measured move: the height of the formation in price units
(cup rim − cup floor, head − neckline), projected beyond the breakout.

Cup & handle:
  breakout_refs   = (high at cup start, high at cup end)     → resistance
  protective_refs = (handle low, cup bottom low)
  depth           = cup start high − cup bottom low

Head & shoulders (bearish):
  breakout_refs   = (low at the right neckline point,)
  protective_refs = (right shoulder high,)
  depth           = head high − max(neckline lows)

Inverse head & shoulders (bullish): mirror of the above on highs/lows.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import chartforge.patterns.pattern_config as _cfg

BULLISH = "bullish"
BEARISH = "bearish"


@dataclass(frozen=True)
class FormationGeometry:
    direction:       str                  # 'bullish' or 'bearish'
    breakout_refs:   Tuple[float, ...]    # prices whose extreme is the breakout level
    protective_refs: Tuple[float, ...]    # prices the stop must sit beyond
    depth:           float                # measured-move height, price units
    stop_buffer:     Optional[float] = None   # None → pattern_config.STOP_BUFFER


@dataclass(frozen=True)
class TradingLevels:
    breakout:  float
    target:    float
    stop_loss: float


def compute_levels(geometry: FormationGeometry) -> TradingLevels:
    """Breakout, measured-move target and buffered stop for a validated formation."""
    if geometry.direction not in (BULLISH, BEARISH):
        raise ValueError(f"unknown direction: {geometry.direction!r}")
    if not geometry.breakout_refs or not geometry.protective_refs:
        raise ValueError("geometry needs at least one breakout and one protective reference")

    buffer = _cfg.STOP_BUFFER if geometry.stop_buffer is None else geometry.stop_buffer

    if geometry.direction == BULLISH:
        breakout = max(geometry.breakout_refs)
        target   = breakout + geometry.depth
        stop     = min(geometry.protective_refs) * (1 - buffer)
    else:
        breakout = min(geometry.breakout_refs)
        target   = breakout - geometry.depth
        stop     = max(geometry.protective_refs) * (1 + buffer)

    return TradingLevels(breakout=float(breakout), target=float(target), stop_loss=float(stop))


def risk_reward(direction: str, breakout: float, target: float, stop: float) -> float:
    """
    Reward / risk measured from the breakout level.
    Returns 0.0 when risk is zero or negative (stop on the wrong side).
    """
    if direction == BEARISH:
        risk   = stop - breakout
        reward = breakout - target
    else:
        risk   = breakout - stop
        reward = target - breakout
    return reward / risk if risk > 0 else 0.0
