"""
Pattern Analysis — recommendation, stage, strength and report lines

Reads a detection result (plus the candles it came from) and turns it into
something a trader can act on. Nothing here changes the verdict; it only
interprets it.

  recommend()        BUY / SELL / HOLD / WAIT from confidence + risk/reward
  pattern_stage()    where the last bar sits relative to the formation
  pattern_strength() 0–100 from confidence, risk/reward and volume
  analyze()          all of the above + interpretation + strategy text

Recommendation:
  HIGH   and R:R ≥ 2.0  →  BUY  (SELL for bearish formations)
  MEDIUM and R:R ≥ 1.5  →  HOLD
  else                  →  WAIT

Signal (stage-aware):
  BREAKOUT_READY and strength ≥ 70 and R:R ≥ 2.0  →  BUY / SELL
  BREAKOUT_READY and strength ≥ 50 and R:R ≥ 1.5  →  HOLD
  COMPLETED                                       →  HOLD
  else                                            →  WAIT

Usage:
    from chartforge.patterns.analysis import analyze_cup_and_handle
    report = analyze_cup_and_handle(df)
    print("\\n".join(report.lines()))
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List

import chartforge.patterns.pattern_config as _cfg
from .candles import Bars, CandleInput
from .cup_handle import detect_cup_and_handle
from .head_shoulders import detect_head_and_shoulders
from .levels import BEARISH
from .result import Confidence, CupHandleResult, HeadShouldersResult, PatternResult

BUY  = "BUY"
SELL = "SELL"
HOLD = "HOLD"
WAIT = "WAIT"


class Stage(Enum):
    NONE           = "NONE"
    CUP_FORMING    = "CUP_FORMING"
    HANDLE_FORMING = "HANDLE_FORMING"
    LEFT_SHOULDER  = "LEFT_SHOULDER"
    HEAD_FORMING   = "HEAD_FORMING"
    RIGHT_SHOULDER = "RIGHT_SHOULDER"
    BREAKOUT_READY = "BREAKOUT_READY"
    COMPLETED      = "COMPLETED"


@dataclass(frozen=True)
class TradingRecommendation:
    action:       str      # BUY / SELL / HOLD / WAIT
    confidence:   str      # HIGH / MEDIUM / LOW, or N/A with no pattern
    entry_price:  float
    stop_loss:    float
    target_price: float
    risk_reward:  float

    def to_dict(self) -> dict:
        return {
            "action":       self.action,
            "confidence":   self.confidence,
            "entry_price":  round(self.entry_price, 4),
            "stop_loss":    round(self.stop_loss, 4),
            "target_price": round(self.target_price, 4),
            "risk_reward":  round(self.risk_reward, 4),
        }


@dataclass(frozen=True)
class PatternAnalysis:
    result:         PatternResult
    recommendation: TradingRecommendation
    stage:          Stage
    strength:       int
    signal:         str
    interpretation: List[str] = field(default_factory=list)
    entry_plan:     str = "Wait for pattern formation"
    exit_plan:      str = "N/A"

    def to_dict(self) -> dict:
        return {
            "pattern":        self.result.to_dict(),
            "recommendation": self.recommendation.to_dict(),
            "stage":          self.stage.value,
            "strength":       self.strength,
            "signal":         self.signal,
            "interpretation": list(self.interpretation),
            "strategy":       {"entry": self.entry_plan, "exit": self.exit_plan},
        }

    def lines(self) -> List[str]:
        """Console report, one string per line."""
        r = self.result
        title = _title(r)
        out = [f"=== {title} Pattern Analysis ==="]

        if not r.is_pattern:
            out.append(f"❌ No valid {title.lower()} pattern detected")
            out.append("")
            out.append("Reasons:")
            out.extend(f"  {reason}" for reason in r.reasons)
            out.append("")
            out.append(f"💡 Recommendation: {self.recommendation.action}")
            return out

        out.append(f"✅ {title} pattern detected with {r.confidence.value} confidence")
        out.append("")
        out.append("📊 Pattern Details:")
        if isinstance(r, CupHandleResult):
            out.append(f"  Cup: bars {r.cup_start}→{r.cup_bottom}→{r.cup_end}, "
                       f"depth {r.cup_depth:.1f}%")
            out.append(f"  Handle: bars {r.handle_start}→{r.handle_end}, "
                       f"depth {r.handle_depth:.1f}%")
            out.append(f"  Price Recovery: {r.price_recovery:.1f}%")
        elif isinstance(r, HeadShouldersResult):
            out.append(f"  Left Shoulder: ${r.left_shoulder_height:.2f} (bar {r.left_shoulder_peak})")
            out.append(f"  Head: ${r.head_height:.2f} (bar {r.head_peak})")
            out.append(f"  Right Shoulder: ${r.right_shoulder_height:.2f} (bar {r.right_shoulder_peak})")
            out.append(f"  Neckline Slope: {r.neckline_slope:.4f}")
        out.append(f"  Pattern Duration: {r.pattern_duration} periods")
        out.append(f"  Volume Confirmation: {'Yes' if r.volume_confirmed else 'No'}")
        out.append(f"  Stage: {self.stage.value}  Strength: {self.strength}/100")
        out.append("")

        out.append("🎯 Trading Levels:")
        out.append(f"  Breakout (Entry): ${r.breakout_level:.2f}")
        out.append(f"  Target Price: ${r.target_price:.2f}")
        out.append(f"  Stop Loss: ${r.stop_loss:.2f}")
        out.append(f"  Risk/Reward Ratio: {r.risk_reward:.2f}:1")
        out.append("")

        out.append("✅ Pattern Validation:")
        out.extend(f"  {reason}" for reason in r.reasons)
        out.append("")

        out.append("💡 Trading Recommendation:")
        out.append(f"  Action: {self.recommendation.action}")
        out.append(f"  Confidence: {self.recommendation.confidence}")
        out.append(f"  Signal: {self.signal}")
        out.append(f"  Entry: {self.entry_plan}")
        out.append(f"  Exit: {self.exit_plan}")
        return out


def _title(result: PatternResult) -> str:
    if isinstance(result, HeadShouldersResult):
        return "Inverse Head and Shoulders" if result.inverse else "Head and Shoulders"
    return "Cup and Handle"


def _entry_action(result: PatternResult) -> str:
    return SELL if result.direction == BEARISH else BUY


# ── Recommendation ─────────────────────────────────────────────────────────

def recommend(result: PatternResult) -> TradingRecommendation:
    if not result.is_pattern:
        return TradingRecommendation(WAIT, "N/A", 0.0, 0.0, 0.0, 0.0)

    rr = result.risk_reward
    if result.confidence is Confidence.HIGH and rr >= _cfg.BUY_MIN_RR:
        action = _entry_action(result)
    elif result.confidence is Confidence.MEDIUM and rr >= _cfg.HOLD_MIN_RR:
        action = HOLD
    else:
        action = WAIT

    return TradingRecommendation(
        action=action,
        confidence=result.confidence.value,
        entry_price=result.breakout_level,
        stop_loss=result.stop_loss,
        target_price=result.target_price,
        risk_reward=rr,
    )


# ── Stage / strength ───────────────────────────────────────────────────────

def pattern_stage(result: PatternResult, candles: CandleInput) -> Stage:
    """
    Stage of the formation as of the last bar in `candles`.
    Past the formation, COMPLETED means the last close already broke out in
    the formation's direction; BREAKOUT_READY means it has not yet.
    """
    if not result.is_pattern:
        return Stage.NONE
    bars = Bars.from_input(candles)
    if not len(bars):
        return Stage.NONE
    last = len(bars) - 1

    if isinstance(result, CupHandleResult):
        if last <= result.cup_end:
            return Stage.CUP_FORMING
        if last <= result.handle_end:
            return Stage.HANDLE_FORMING
    elif isinstance(result, HeadShouldersResult):
        if last <= result.left_shoulder_end:
            return Stage.LEFT_SHOULDER
        if last <= result.head_end:
            return Stage.HEAD_FORMING
        if last <= result.right_shoulder_end:
            return Stage.RIGHT_SHOULDER

    close = float(bars.closes[last])
    if result.direction == BEARISH:
        broke_out = close <= result.breakout_level
    else:
        broke_out = close >= result.breakout_level
    return Stage.COMPLETED if broke_out else Stage.BREAKOUT_READY


def pattern_strength(result: PatternResult) -> int:
    """Confidence base (80/60/40) adjusted for risk/reward and volume, clamped 0–100."""
    if not result.is_pattern:
        return 0
    base = {Confidence.HIGH: 80, Confidence.MEDIUM: 60}.get(result.confidence, 40)

    rr = result.risk_reward
    if rr >= 3.0:
        base += 10
    elif rr >= 2.0:
        base += 5
    elif rr < 1.0:
        base -= 10

    base += 5 if result.volume_confirmed else -5
    return max(0, min(100, base))


def _signal(result: PatternResult, stage: Stage, strength: int) -> str:
    rr = result.risk_reward
    if stage is Stage.BREAKOUT_READY:
        if strength >= _cfg.SIGNAL_STRONG_STRENGTH and rr >= _cfg.BUY_MIN_RR:
            return _entry_action(result)
        if strength >= _cfg.SIGNAL_MODERATE_STRENGTH and rr >= _cfg.HOLD_MIN_RR:
            return HOLD
    if stage is Stage.COMPLETED:
        return HOLD
    return WAIT


_STAGE_NOTES = {
    Stage.CUP_FORMING:    "📊 Currently in cup formation phase",
    Stage.HANDLE_FORMING: "🔧 Currently in handle formation phase",
    Stage.LEFT_SHOULDER:  "📊 Currently in left shoulder formation phase",
    Stage.HEAD_FORMING:   "🔧 Currently in head formation phase",
    Stage.RIGHT_SHOULDER: "⚡ Currently in right shoulder formation phase",
    Stage.BREAKOUT_READY: "⚡ Pattern complete - ready for breakout",
    Stage.COMPLETED:      "🚀 Breakout completed - pattern fulfilled",
}


# ── Full analysis ──────────────────────────────────────────────────────────

def analyze(result: PatternResult, candles: CandleInput) -> PatternAnalysis:
    recommendation = recommend(result)

    if not result.is_pattern:
        return PatternAnalysis(
            result=result,
            recommendation=recommendation,
            stage=Stage.NONE,
            strength=0,
            signal=WAIT,
            interpretation=[f"No {_title(result)} pattern detected"] + result.messages,
        )

    stage = pattern_stage(result, candles)
    strength = pattern_strength(result)
    signal = _signal(result, stage, strength)
    rr = result.risk_reward
    bearish = result.direction == BEARISH

    notes = [f"✅ {_title(result)} pattern detected with {result.confidence.value} confidence"]
    if stage in _STAGE_NOTES:
        notes.append(_STAGE_NOTES[stage])
    if signal in (BUY, SELL):
        notes.append(f"🟢 Strong {'sell' if bearish else 'buy'} signal - "
                     f"high-quality pattern ready for breakout")
    elif signal == HOLD and stage is Stage.BREAKOUT_READY:
        notes.append("🟡 Moderate signal - pattern ready but wait for confirmation")
    elif signal == HOLD:
        notes.append("✅ Pattern completed - monitor for continuation")
    else:
        notes.append("⏳ Pattern forming - wait for completion")

    if isinstance(result, CupHandleResult):
        notes.append(f"📏 Cup depth: {result.cup_depth:.1f}%")
        notes.append(f"🔧 Handle depth: {result.handle_depth:.1f}%")
    elif isinstance(result, HeadShouldersResult):
        notes.append(f"📈 Head: ${result.head_height:.2f}, shoulders "
                     f"${result.left_shoulder_height:.2f} / ${result.right_shoulder_height:.2f}")
    notes.append(f"⏱️ Pattern duration: {result.pattern_duration} periods")
    notes.append(f"🎯 Risk/Reward ratio: {rr:.2f}:1")

    side = "short" if bearish else "long"
    beyond = "below" if bearish else "above"
    against = "above" if bearish else "below"
    if signal in (BUY, SELL):
        entry = f"Enter {side} position on breakout {beyond} ${result.breakout_level:.2f}"
        exit_ = f"Exit if price moves {against} ${result.stop_loss:.2f} or reaches target"
    elif signal == HOLD:
        entry = f"Monitor for breakout {beyond} ${result.breakout_level:.2f} with volume"
        exit_ = f"Exit if pattern fails {against} ${result.stop_loss:.2f}"
    else:
        entry = "Wait for pattern completion"
        exit_ = "Monitor pattern development"

    return PatternAnalysis(
        result=result,
        recommendation=recommendation,
        stage=stage,
        strength=strength,
        signal=signal,
        interpretation=notes,
        entry_plan=entry,
        exit_plan=exit_,
    )


def analyze_cup_and_handle(candles: CandleInput, **params) -> PatternAnalysis:
    """detect_cup_and_handle(candles, **params) followed by analyze()."""
    bars = Bars.from_input(candles)
    return analyze(detect_cup_and_handle(bars, **params), bars)


def analyze_head_and_shoulders(candles: CandleInput, inverse: bool = False,
                               **params) -> PatternAnalysis:
    bars = Bars.from_input(candles)
    return analyze(detect_head_and_shoulders(bars, inverse=inverse, **params), bars)
