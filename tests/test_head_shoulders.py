"""
Unit tests for the head & shoulders detector (classic and inverse).

The hand-built series is piecewise linear so every swing extreme is known:

  bar   0    8    14   22   30   36   44   50
  close 100  116  104  124  104  116  100  100
        ·    LS   neck HEAD neck RS   ·    flat

high = close + 0.5, low = close − 0.5.
"""
import sys, os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import numpy as np
import pandas as pd
import pytest

import chartforge.patterns.pattern_config as _cfg
from chartforge.patterns.head_shoulders import (
    PEAK, TROUGH, find_extrema, iter_shoulder_candidates, find_shoulder_candidates,
    volume_supports, detect_head_and_shoulders, detect_inverse_head_and_shoulders,
)
from chartforge.patterns.levels import BEARISH, BULLISH
from chartforge.patterns.mock_data import generate_head_and_shoulders, generate_trend
from chartforge.patterns.result import Confidence


@pytest.fixture(autouse=True)
def _stock_levers():
    _cfg.reset_levers()
    yield
    _cfg.reset_levers()


# ── Fixtures ────────────────────────────────────────────────────────────────

KNOTS_X = [0, 8, 14, 22, 30, 36, 44, 50]
KNOTS_Y = [100, 116, 104, 124, 104, 116, 100, 100]


def make_hs_bars(inverse: bool = False) -> pd.DataFrame:
    closes = np.interp(np.arange(51), KNOTS_X, KNOTS_Y)
    if inverse:
        closes = 200.0 - closes
    idx = np.arange(51)
    volumes = np.where(idx < 14, 1500.0, np.where(idx <= 30, 800.0, 1200.0))
    return pd.DataFrame({
        "open":   closes,
        "high":   closes + 0.5,
        "low":    closes - 0.5,
        "close":  closes,
        "volume": volumes,
    })


# ── Extrema ────────────────────────────────────────────────────────────────

class TestExtrema:
    def test_peaks_and_troughs_of_fixture(self):
        df = make_hs_bars()
        assert list(find_extrema(df["high"].values, PEAK)) == [8, 22, 36]
        assert list(find_extrema(df["low"].values, TROUGH)) == [14, 30]

    def test_requires_strictly_greater_neighbours(self):
        # Plateau top: no strict maximum
        assert list(find_extrema([1, 2, 5, 5, 2, 1, 0], PEAK)) == []

    def test_prominence_filter(self):
        values = [100, 100.5, 101, 100.5, 100]     # 1 % bump
        assert list(find_extrema(values, PEAK)) == []
        assert list(find_extrema(values, PEAK, min_prominence=0.005)) == [2]

    def test_edges_never_extremes(self):
        assert list(find_extrema([200, 100, 90, 100, 110], PEAK)) == []
        assert list(find_extrema([1, 2], PEAK)) == []

    def test_unknown_kind_raises(self):
        with pytest.raises(ValueError):
            find_extrema([1, 2, 3, 2, 1], "ridge")


# ── Candidate search ───────────────────────────────────────────────────────

class TestCandidates:
    def test_first_candidate(self):
        f = next(iter_shoulder_candidates(make_hs_bars()))
        assert (f.left_shoulder_peak, f.head_peak, f.right_shoulder_peak) == (8, 22, 36)
        assert (f.neckline_left, f.neckline_right) == (14, 30)
        # Window [0, 38] is the first to see the right shoulder two bars inside
        assert f.left_shoulder_start == 3
        assert f.right_shoulder_end == 38
        assert f.duration == 36
        assert f.head_height == pytest.approx(124.5)

    def test_triple_yielded_once(self):
        triples = [f.triple for f in iter_shoulder_candidates(make_hs_bars())]
        assert triples == [(8, 22, 36)]

    def test_segment_ordering(self):
        f = find_shoulder_candidates(make_hs_bars())[0]
        assert (f.left_shoulder_start < f.left_shoulder_peak < f.neckline_left
                < f.head_peak < f.neckline_right < f.right_shoulder_peak
                < f.right_shoulder_end)
        assert f.left_shoulder_end == f.head_start == f.neckline_left
        assert f.head_end == f.right_shoulder_start == f.neckline_right

    def test_shoulder_tolerance_lever(self):
        closes = np.interp(np.arange(51), KNOTS_X, [100, 116, 104, 124, 104, 112, 100, 100])
        df = pd.DataFrame({"open": closes, "high": closes + 0.5, "low": closes - 0.5,
                           "close": closes, "volume": 1000.0})
        # shoulders 116.5 vs 112.5: 3.4 % apart
        assert find_shoulder_candidates(df)
        _cfg.apply_levers({"HS_SHOULDER_TOLERANCE": 0.03})
        assert find_shoulder_candidates(df) == []

    def test_volume_supports(self):
        df = make_hs_bars()
        f = find_shoulder_candidates(df)[0]
        assert volume_supports(df["volume"].values, f) is True
        assert volume_supports(np.full(len(df), 1000.0), f) is False


# ── detect_head_and_shoulders ──────────────────────────────────────────────

class TestDetectHeadAndShoulders:
    def test_detects_hand_built_pattern(self):
        r = detect_head_and_shoulders(make_hs_bars())
        assert r.is_pattern
        assert r.direction == BEARISH and r.inverse is False
        assert r.pattern_type == "head_and_shoulders"
        assert (r.left_shoulder_peak, r.head_peak, r.right_shoulder_peak) == (8, 22, 36)
        assert r.score == 90
        assert r.confidence is Confidence.HIGH
        assert r.volume_confirmed is True
        assert r.neckline_slope == pytest.approx(0.0)

    def test_bearish_levels(self):
        r = detect_head_and_shoulders(make_hs_bars())
        assert r.breakout_level == pytest.approx(103.5)
        assert r.target_price == pytest.approx(103.5 - (124.5 - 103.5))
        assert r.stop_loss == pytest.approx(116.5 * 1.02)
        assert r.target_price < r.breakout_level < r.stop_loss
        assert r.risk_reward == pytest.approx(21.0 / (116.5 * 1.02 - 103.5))

    def test_reasons(self):
        r = detect_head_and_shoulders(make_hs_bars())
        by_criterion = {x.criterion: x for x in r.reasons}
        assert by_criterion["head_prominence"].points == 25
        assert by_criterion["shoulder_symmetry"].points == 20
        assert by_criterion["risk_reward"].passed is False
        assert r.messages[-1] == "Pattern score: 90/100"

    def test_idempotent(self):
        df = make_hs_bars()
        assert detect_head_and_shoulders(df) == detect_head_and_shoulders(df)

    def test_insufficient_data(self):
        df = make_hs_bars().iloc[:29]
        r = detect_head_and_shoulders(df)
        assert r.messages == ["Insufficient data for pattern detection"]
        assert r.head_peak == -1

    def test_trend_has_no_formations(self):
        r = detect_head_and_shoulders(generate_trend(100.0, 1.0, 80))
        assert not r.is_pattern
        assert r.messages == ["No valid head and shoulders formations found"]

    def test_rejected_candidate_score_surfaced(self):
        _cfg.apply_levers({"MIN_PATTERN_SCORE": 95})
        r = detect_head_and_shoulders(make_hs_bars())
        assert not r.is_pattern
        assert r.score == 90
        assert r.messages[-1] == "No valid head and shoulders patterns found"
        assert r.breakout_level == 0.0 and r.head_peak == -1

    def test_best_mode(self):
        r = detect_head_and_shoulders(make_hs_bars(), mode="best")
        assert r.is_pattern and r.score == 90

    def test_bad_bar_range_raises(self):
        with pytest.raises(ValueError):
            detect_head_and_shoulders(make_hs_bars(), min_bars=50, max_bars=20)

    @pytest.mark.parametrize("seed", [0, 1, 5, 42])
    def test_mock_series_detected(self, seed):
        df = generate_head_and_shoulders(seed=seed)
        assert len(df) == 60
        r = detect_head_and_shoulders(df)
        assert r.is_pattern
        # zig-zag knots: shoulders at bars 17 / 41, head at 29, neckline at 21 / 37
        assert (r.left_shoulder_peak, r.head_peak, r.right_shoulder_peak) == (17, 29, 41)
        assert (r.neckline_left, r.neckline_right) == (21, 37)
        assert r.confidence is Confidence.HIGH
        assert r.volume_confirmed is True
        assert r.target_price < r.breakout_level < r.stop_loss

    def test_longer_mock_series_detected(self):
        r = detect_head_and_shoulders(generate_head_and_shoulders(total_periods=100, seed=3))
        assert r.is_pattern
        assert r.head_peak == 49


class TestInverseHeadAndShoulders:
    def test_detects_mirrored_pattern(self):
        r = detect_inverse_head_and_shoulders(make_hs_bars(inverse=True))
        assert r.is_pattern
        assert r.inverse is True and r.direction == BULLISH
        assert r.pattern_type == "inverse_head_and_shoulders"
        assert (r.left_shoulder_peak, r.head_peak, r.right_shoulder_peak) == (8, 22, 36)
        assert r.head_height == pytest.approx(75.5)
        assert r.score == 90

    def test_bullish_levels(self):
        r = detect_inverse_head_and_shoulders(make_hs_bars(inverse=True))
        assert r.breakout_level == pytest.approx(96.5)
        assert r.target_price == pytest.approx(96.5 + (96.5 - 75.5))
        assert r.stop_loss == pytest.approx(83.5 * 0.98)
        assert r.stop_loss < r.breakout_level < r.target_price

    @pytest.mark.parametrize("seed", [0, 7])
    def test_inverse_mock_series_detected(self, seed):
        df = generate_head_and_shoulders(seed=seed, inverse=True)
        r = detect_inverse_head_and_shoulders(df)
        assert r.is_pattern and r.direction == BULLISH
        assert (r.left_shoulder_peak, r.head_peak, r.right_shoulder_peak) == (17, 29, 41)
        assert r.head_height < min(r.left_shoulder_height, r.right_shoulder_height)
        assert r.stop_loss < r.breakout_level < r.target_price

    def test_classic_series_has_no_inverse_formation(self):
        r = detect_head_and_shoulders(make_hs_bars(), inverse=True)
        assert not r.is_pattern
        assert r.messages == ["No valid inverse head and shoulders formations found"]
        assert r.direction == BULLISH
