"""
Scorer / Confidence Classifier

Turns a validated formation's measurements into a deterministic 0–100 score,
a three-tier confidence label and an ordered list of tagged reasons.

One scorer serves every pattern family. A family is described by a rule
table (cup_handle_rules(), head_shoulders_rules()); each Rule awards full
points, partial points or nothing for one measurement and always emits a
Reason, pass or fail. Weights and cutoffs come from pattern_config and are
read when the table is built, so levers apply on the next call.

Cup & handle (100):
  cup depth 20 · cup duration 15 · U-shape 15 · handle depth 15 ·
  handle duration 10 · handle volume 10 · price recovery 15

Head & shoulders (100):
  head prominence 25 · shoulder symmetry 20 · duration 15 ·
  neckline slope 15 · volume 15 · risk/reward 10

Confidence:
  score ≥ 80  →  HIGH
  score ≥ 60  →  MEDIUM
  else        →  LOW
Acceptance: score ≥ 50. Below that the formation is rejected even though it
passed every structural gate.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Sequence, Tuple

import chartforge.patterns.pattern_config as _cfg
from .result import Confidence, Reason


@dataclass(frozen=True)
class Rule:
    criterion:      str
    points:         int
    full:           Callable[[Any], bool]
    full_msg:       str                     # format strings, `{value}` available
    fail_msg:       str
    partial_points: int = 0
    partial:        Optional[Callable[[Any], bool]] = None
    partial_msg:    str = ""

    def evaluate(self, value) -> Reason:
        if self.full(value):
            return Reason(self.criterion, True, self.full_msg.format(value=value),
                          self.points, self.points)
        if self.partial is not None and self.partial(value):
            return Reason(self.criterion, True, self.partial_msg.format(value=value),
                          self.partial_points, self.points)
        return Reason(self.criterion, False, self.fail_msg.format(value=value),
                      0, self.points)


@dataclass(frozen=True)
class Scorecard:
    score:      int
    max_score:  int
    confidence: Confidence
    accepted:   bool
    reasons:    Tuple[Reason, ...]


def between(lo, hi) -> Callable[[Any], bool]:
    return lambda v: lo <= v <= hi


def at_least(lo) -> Callable[[Any], bool]:
    return lambda v: v >= lo


def at_most(hi) -> Callable[[Any], bool]:
    return lambda v: v <= hi


def below(hi) -> Callable[[Any], bool]:
    return lambda v: v < hi


def is_true(v) -> bool:
    return bool(v)


def classify_confidence(score: float) -> Confidence:
    if score >= _cfg.CONFIDENCE_HIGH_SCORE:
        return Confidence.HIGH
    if score >= _cfg.CONFIDENCE_MEDIUM_SCORE:
        return Confidence.MEDIUM
    return Confidence.LOW


def score_formation(rules: Sequence[Rule], measurements: Dict[str, Any]) -> Scorecard:
    """
    Apply every rule in order. A missing measurement is a programming error
    (KeyError), never a silent zero.
    """
    reasons = []
    score = 0
    max_score = 0
    for rule in rules:
        reason = rule.evaluate(measurements[rule.criterion])
        score += reason.points
        max_score += rule.points
        reasons.append(reason)

    accepted = score >= _cfg.MIN_PATTERN_SCORE
    if accepted:
        reasons.append(Reason("score", True, f"Pattern score: {score}/{max_score}"))
    else:
        reasons.append(Reason("score", False, f"Pattern score too low: {score}/{max_score}"))

    return Scorecard(
        score=score,
        max_score=max_score,
        confidence=classify_confidence(score),
        accepted=accepted,
        reasons=tuple(reasons),
    )


# ── Rule tables ────────────────────────────────────────────────────────────

def cup_handle_rules() -> Tuple[Rule, ...]:
    """Measurements: cup_depth, cup_duration, cup_shape, handle_depth,
    handle_duration, handle_volume, price_recovery."""
    c = _cfg
    return (
        Rule("cup_depth", c.CUP_DEPTH_POINTS, between(*c.CUP_DEPTH_OPTIMAL_PCT),
             "Cup depth optimal: {value:.1f}%", "Cup too deep: {value:.1f}%",
             c.CUP_DEPTH_PARTIAL_POINTS, below(c.CUP_MAX_DEPTH_PCT),
             "Cup depth acceptable: {value:.1f}%"),
        Rule("cup_duration", c.CUP_DURATION_POINTS, between(*c.CUP_DURATION_OPTIMAL_BARS),
             "Cup duration optimal: {value} periods", "Cup duration too short: {value} periods",
             c.CUP_DURATION_PARTIAL_POINTS, at_least(c.CUP_DURATION_MIN_BARS),
             "Cup duration acceptable: {value} periods"),
        Rule("cup_shape", c.CUP_SHAPE_POINTS, is_true,
             "Cup has proper U-shape formation", "Cup lacks proper U-shape formation"),
        Rule("handle_depth", c.HANDLE_DEPTH_POINTS, between(*c.HANDLE_DEPTH_OPTIMAL_PCT),
             "Handle depth optimal: {value:.1f}%", "Handle depth suboptimal: {value:.1f}%"),
        Rule("handle_duration", c.HANDLE_DURATION_POINTS, between(*c.HANDLE_DURATION_OPTIMAL_BARS),
             "Handle duration good: {value} periods", "Handle duration outside range: {value} periods"),
        Rule("handle_volume", c.HANDLE_VOLUME_POINTS, is_true,
             "Volume declines during handle formation", "Volume pattern not ideal during handle"),
        Rule("price_recovery", c.RECOVERY_POINTS, at_least(c.RECOVERY_FULL_PCT),
             "Strong price recovery: {value:.1f}%", "Weak price recovery: {value:.1f}%",
             c.RECOVERY_PARTIAL_POINTS, at_least(c.RECOVERY_PARTIAL_PCT),
             "Moderate price recovery: {value:.1f}%"),
    )


def head_shoulders_rules() -> Tuple[Rule, ...]:
    """Measurements: head_prominence, shoulder_symmetry, duration,
    neckline_slope, volume, risk_reward."""
    c = _cfg
    return (
        Rule("head_prominence", c.HS_PROMINENCE_POINTS, between(*c.HS_PROMINENCE_OPTIMAL_PCT),
             "Head prominence optimal: {value:.1f}%", "Head prominence too low: {value:.1f}%",
             c.HS_PROMINENCE_PARTIAL_POINTS, at_least(c.HS_PROMINENCE_MIN_PCT),
             "Head prominence acceptable: {value:.1f}%"),
        Rule("shoulder_symmetry", c.HS_SYMMETRY_POINTS, at_most(c.HS_SYMMETRY_FULL_PCT),
             "Shoulder symmetry excellent: {value:.1f}% difference",
             "Shoulder symmetry poor: {value:.1f}% difference",
             c.HS_SYMMETRY_PARTIAL_POINTS, at_most(c.HS_SYMMETRY_PARTIAL_PCT),
             "Shoulder symmetry good: {value:.1f}% difference"),
        Rule("duration", c.HS_DURATION_POINTS, between(*c.HS_DURATION_OPTIMAL_BARS),
             "Pattern duration optimal: {value} periods", "Pattern duration too short: {value} periods",
             c.HS_DURATION_PARTIAL_POINTS, at_least(c.HS_DURATION_MIN_BARS),
             "Pattern duration acceptable: {value} periods"),
        Rule("neckline_slope", c.HS_NECKLINE_POINTS, at_most(c.HS_NECKLINE_FULL_PCT),
             "Neckline slope ideal: {value:.2f}%", "Neckline slope too steep: {value:.2f}%",
             c.HS_NECKLINE_PARTIAL_POINTS, at_most(c.HS_NECKLINE_PARTIAL_PCT),
             "Neckline slope acceptable: {value:.2f}%"),
        Rule("volume", c.HS_VOLUME_POINTS, is_true,
             "Volume pattern supports the formation", "Volume pattern not ideal"),
        Rule("risk_reward", c.HS_RR_POINTS, at_least(c.HS_RR_FULL),
             "Favorable risk/reward ratio: {value:.2f}:1", "Poor risk/reward ratio: {value:.2f}:1",
             c.HS_RR_PARTIAL_POINTS, at_least(c.HS_RR_PARTIAL),
             "Moderate risk/reward ratio: {value:.2f}:1"),
    )
