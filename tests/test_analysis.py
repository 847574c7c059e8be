"""
Unit tests for the analysis layer: recommendation, stage, strength, signal.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import numpy as np
import pandas as pd
import pytest

import chartforge.patterns.pattern_config as _cfg
from chartforge.patterns.analysis import (
    BUY, SELL, HOLD, WAIT, Stage, analyze, analyze_cup_and_handle,
    analyze_head_and_shoulders, pattern_stage, pattern_strength, recommend,
)
from chartforge.patterns.head_shoulders import detect_head_and_shoulders
from chartforge.patterns.mock_data import generate_trend
from chartforge.patterns.result import Confidence, CupHandleResult, HeadShouldersResult
from chartforge.patterns.levels import BEARISH


@pytest.fixture(autouse=True)
def _stock_levers():
    _cfg.reset_levers()
    yield
    _cfg.reset_levers()


# ── Fixtures ────────────────────────────────────────────────────────────────

def make_bars(closes) -> pd.DataFrame:
    closes = np.asarray(closes, dtype=float)
    return pd.DataFrame({
        "open": closes, "high": closes * 1.01, "low": closes * 0.99,
        "close": closes, "volume": 1_000_000.0,
    })


def make_cup_series(extra=()) -> pd.DataFrame:
    i = np.arange(31)
    cup = 100 - 12.5 * (1 - np.cos(2 * np.pi * i / 30))
    return make_bars(np.concatenate([cup, [98, 96, 94, 93, 94, 95, 96, 97], list(extra)]))


def make_hs_series() -> pd.DataFrame:
    closes = np.interp(np.arange(51), [0, 8, 14, 22, 30, 36, 44, 50],
                       [100, 116, 104, 124, 104, 116, 100, 100])
    idx = np.arange(51)
    return pd.DataFrame({
        "open": closes, "high": closes + 0.5, "low": closes - 0.5, "close": closes,
        "volume": np.where(idx < 14, 1500.0, np.where(idx <= 30, 800.0, 1200.0)),
    })


def make_result(confidence=Confidence.HIGH, rr=3.0, volume=True, **kw) -> CupHandleResult:
    """Accepted cup result with breakout 100, stop 90 and the target set for `rr`."""
    fields = dict(
        is_pattern=True, confidence=confidence, score=85,
        breakout_level=100.0, stop_loss=90.0, target_price=100.0 + 10.0 * rr,
        volume_confirmed=volume, cup_start=0, cup_bottom=5, cup_end=10,
        handle_start=11, handle_end=20,
    )
    fields.update(kw)
    return CupHandleResult(**fields)


# ── Recommendation ─────────────────────────────────────────────────────────

class TestRecommend:
    def test_no_pattern(self):
        rec = recommend(CupHandleResult())
        assert rec.action == WAIT and rec.confidence == "N/A"
        assert (rec.entry_price, rec.stop_loss, rec.target_price, rec.risk_reward) == (0, 0, 0, 0)

    def test_high_confidence_good_rr_buys(self):
        rec = recommend(make_result(rr=2.0))
        assert rec.action == BUY
        assert rec.entry_price == 100.0 and rec.risk_reward == pytest.approx(2.0)

    def test_bearish_high_confidence_sells(self):
        r = HeadShouldersResult(is_pattern=True, confidence=Confidence.HIGH,
                                breakout_level=100.0, target_price=80.0, stop_loss=110.0)
        assert r.direction == BEARISH
        assert recommend(r).action == SELL

    def test_medium_confidence_holds(self):
        assert recommend(make_result(Confidence.MEDIUM, rr=1.5)).action == HOLD

    @pytest.mark.parametrize("confidence,rr", [
        (Confidence.HIGH, 1.9), (Confidence.MEDIUM, 1.4), (Confidence.LOW, 5.0),
    ])
    def test_otherwise_wait(self, confidence, rr):
        assert recommend(make_result(confidence, rr=rr)).action == WAIT


# ── Strength / stage ───────────────────────────────────────────────────────

class TestStrength:
    @pytest.mark.parametrize("confidence,rr,volume,expected", [
        (Confidence.HIGH,   3.0, True,  95),
        (Confidence.HIGH,   2.0, False, 80),
        (Confidence.MEDIUM, 1.5, True,  65),
        (Confidence.LOW,    0.5, False, 25),
    ])
    def test_formula(self, confidence, rr, volume, expected):
        assert pattern_strength(make_result(confidence, rr=rr, volume=volume)) == expected

    def test_no_pattern_is_zero(self):
        assert pattern_strength(CupHandleResult()) == 0


class TestStage:
    def test_cup_stages(self):
        r = make_result()
        assert pattern_stage(r, make_bars(np.full(8, 100.0))) is Stage.CUP_FORMING
        assert pattern_stage(r, make_bars(np.full(15, 100.0))) is Stage.HANDLE_FORMING
        assert pattern_stage(r, make_bars(np.full(25, 95.0))) is Stage.BREAKOUT_READY
        assert pattern_stage(r, make_bars(np.full(25, 101.0))) is Stage.COMPLETED

    def test_shoulder_stages(self):
        df = make_hs_series()
        r = detect_head_and_shoulders(df)
        assert pattern_stage(r, df.iloc[:12]) is Stage.LEFT_SHOULDER
        assert pattern_stage(r, df.iloc[:25]) is Stage.HEAD_FORMING
        assert pattern_stage(r, df.iloc[:35]) is Stage.RIGHT_SHOULDER
        # last close 100 is already below the 103.5 neckline
        assert pattern_stage(r, df) is Stage.COMPLETED

    def test_no_pattern(self):
        assert pattern_stage(CupHandleResult(), make_bars([1.0, 2.0])) is Stage.NONE


# ── Full analysis ──────────────────────────────────────────────────────────

class TestAnalyze:
    def test_breakout_ready_strong_signal(self):
        a = analyze(make_result(), make_bars(np.full(25, 95.0)))
        assert a.stage is Stage.BREAKOUT_READY
        assert a.strength == 95
        assert a.signal == BUY
        assert a.entry_plan == "Enter long position on breakout above $100.00"

    def test_completed_holds(self):
        a = analyze(make_result(), make_bars(np.full(25, 101.0)))
        assert a.signal == HOLD
        assert a.exit_plan.startswith("Exit if pattern fails below $90.00")

    def test_hand_built_cup(self):
        a = analyze_cup_and_handle(make_cup_series())
        assert a.result.is_pattern and a.result.confidence is Confidence.HIGH
        # risk/reward is below 1: 26.75 reward vs 28.2 risk
        assert a.result.risk_reward < 1.0
        assert a.recommendation.action == WAIT
        assert a.recommendation.confidence == "HIGH"
        assert a.strength == 75
        assert a.stage is Stage.BREAKOUT_READY
        assert a.signal == WAIT

    def test_cup_breakout_completed(self):
        a = analyze_cup_and_handle(make_cup_series(extra=[103.0]))
        assert a.stage is Stage.COMPLETED
        assert a.signal == HOLD

    def test_hand_built_head_and_shoulders(self):
        a = analyze_head_and_shoulders(make_hs_series())
        assert a.result.is_pattern
        assert a.strength == 85
        assert a.stage is Stage.COMPLETED
        assert a.signal == HOLD
        assert a.entry_plan.startswith("Monitor for breakout below $103.50")

    def test_no_pattern(self):
        a = analyze_cup_and_handle(generate_trend(100.0, 1.0, 60))
        assert a.stage is Stage.NONE and a.signal == WAIT and a.strength == 0
        assert a.recommendation.confidence == "N/A"
        assert a.interpretation == ["No Cup and Handle pattern detected",
                                    "No valid cup formations found"]

    def test_lines(self):
        lines = analyze_cup_and_handle(make_cup_series()).lines()
        assert lines[0] == "=== Cup and Handle Pattern Analysis ==="
        assert "  Action: WAIT" in lines
        assert any(l.startswith("  Breakout (Entry): $101.00") for l in lines)

    def test_lines_no_pattern(self):
        lines = analyze_head_and_shoulders(generate_trend(100.0, 1.0, 60), inverse=True).lines()
        assert lines[0] == "=== Inverse Head and Shoulders Pattern Analysis ==="
        assert "Reasons:" in lines

    def test_to_dict(self):
        d = analyze_cup_and_handle(make_cup_series()).to_dict()
        assert d["stage"] == "BREAKOUT_READY"
        assert d["recommendation"]["action"] == "WAIT"
        assert d["pattern"]["cup_end"] == 25
