"""
result.py — Canonical result records for pattern detection
===========================================================
Single source of truth for the data contract between the detectors and any
consumer (analysis layer, scanner CLI, tests).

Every detection call returns exactly one PatternResult subclass:

  CupHandleResult       — detect_cup_and_handle()
  HeadShouldersResult   — detect_head_and_shoulders()

Results are frozen. `is_pattern=False` is a normal, frequent outcome, not an
error: the reasons tuple explains why, and `score` is surfaced whenever a
formation got as far as scoring.

Reasons are tagged facts, not log lines:

  Reason(criterion="cup_depth", passed=True, detail="Cup depth optimal: 21.4%",
         points=20, max_points=20)

so a consumer can render, filter or assert on them without string parsing.
"""
from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import List, Tuple

from .levels import BEARISH, BULLISH, risk_reward


class Confidence(Enum):
    HIGH   = "HIGH"
    MEDIUM = "MEDIUM"
    LOW    = "LOW"


class SearchMode(Enum):
    FIRST = "first"    # first accepted candidate in scan order (default)
    BEST  = "best"     # highest score across all structural candidates

    @classmethod
    def parse(cls, mode) -> "SearchMode":
        if isinstance(mode, cls):
            return mode
        try:
            return cls(str(mode).lower())
        except ValueError:
            raise ValueError(f"unknown search mode {mode!r}; use 'first' or 'best'") from None


@dataclass(frozen=True)
class Reason:
    criterion:  str      # machine tag: 'cup_depth', 'data', 'score', ...
    passed:     bool
    detail:     str      # human-readable sentence
    points:     int = 0
    max_points: int = 0

    @property
    def partial(self) -> bool:
        """Passed, but with less than full credit."""
        return self.passed and self.points < self.max_points

    def __str__(self) -> str:
        if not self.passed:
            mark = "❌"
        elif self.partial:
            mark = "⚠️"
        else:
            mark = "✅"
        return f"{mark} {self.detail}"


@dataclass(frozen=True)
class PatternResult:
    """Fields shared by every pattern family."""
    pattern_type:     str = ""
    direction:        str = BULLISH
    is_pattern:       bool = False
    confidence:       Confidence = Confidence.LOW
    score:            int = 0
    breakout_level:   float = 0.0
    target_price:     float = 0.0
    stop_loss:        float = 0.0
    pattern_duration: int = 0
    volume_confirmed: bool = False
    reasons:          Tuple[Reason, ...] = field(default_factory=tuple)

    @property
    def risk(self) -> float:
        if self.direction == BEARISH:
            return self.stop_loss - self.breakout_level
        return self.breakout_level - self.stop_loss

    @property
    def reward(self) -> float:
        if self.direction == BEARISH:
            return self.breakout_level - self.target_price
        return self.target_price - self.breakout_level

    @property
    def risk_reward(self) -> float:
        if not self.is_pattern:
            return 0.0
        return risk_reward(self.direction, self.breakout_level, self.target_price, self.stop_loss)

    @property
    def messages(self) -> List[str]:
        """Plain detail strings, in order."""
        return [r.detail for r in self.reasons]

    def to_dict(self) -> dict:
        d = asdict(self)
        d["confidence"] = self.confidence.value
        d["reasons"] = [asdict(r) for r in self.reasons]
        d["risk_reward"] = round(self.risk_reward, 4)
        return d


@dataclass(frozen=True)
class CupHandleResult(PatternResult):
    pattern_type:   str = "cup_and_handle"
    cup_start:      int = -1
    cup_bottom:     int = -1
    cup_end:        int = -1
    handle_start:   int = -1
    handle_end:     int = -1
    cup_depth:      float = 0.0     # percent
    handle_depth:   float = 0.0     # percent
    price_recovery: float = 0.0     # percent of the cup decline won back


@dataclass(frozen=True)
class HeadShouldersResult(PatternResult):
    pattern_type:          str = "head_and_shoulders"
    direction:             str = BEARISH
    inverse:               bool = False
    left_shoulder_start:   int = -1
    left_shoulder_peak:    int = -1
    left_shoulder_end:     int = -1
    head_start:            int = -1
    head_peak:             int = -1
    head_end:              int = -1
    right_shoulder_start:  int = -1
    right_shoulder_peak:   int = -1
    right_shoulder_end:    int = -1
    neckline_left:         int = -1
    neckline_right:        int = -1
    neckline_slope:        float = 0.0
    left_shoulder_height:  float = 0.0
    head_height:           float = 0.0
    right_shoulder_height: float = 0.0
