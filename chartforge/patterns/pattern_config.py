"""
pattern_config.py — Single Source of Truth for All Detection Thresholds
========================================================================

THIS IS THE ONLY PLACE THESE CONSTANTS ARE DEFINED.

cup_handle.py, head_shoulders.py, scoring.py, levels.py and analysis.py all
import this module BY REFERENCE:

    import chartforge.patterns.pattern_config as _cfg

and read `_cfg.NAME` at call time. If you need to change a threshold, change
it HERE. Never hardcode a number inside a detector.

LEVER SYSTEM
============
Every threshold is a named lever. To run a one-off experiment without editing
source code, use the scanner's --lever and --profile flags:

    python -m scripts.scan_patterns --mock --lever CUP_FLAT_BOTTOM_MIN_BARS=2

    python -m scripts.scan_patterns --symbol AAPL --profile strict

Levers can also come from the environment (or <repo>/.env) as
CHARTFORGE_<LEVER>=value; see apply_env_levers().

apply_levers(overrides) patches module globals at runtime so every detector
sees the change on its next call. reset_levers() restores the defaults.
"""
import os as _os
import sys as _sys
from pathlib import Path as _Path

from dotenv import load_dotenv as _load_dotenv

_REPO_ROOT = _Path(__file__).resolve().parents[2]
_ENV_PREFIX = "CHARTFORGE_"

# ── Cup search window (bars) ───────────────────────────────────────────────
# Defaults for the detector call parameters. Units: bars (one candle each).
DEFAULT_MIN_CUP_BARS: int = 15
DEFAULT_MAX_CUP_BARS: int = 130
DEFAULT_MIN_HANDLE_BARS: int = 5
DEFAULT_MAX_HANDLE_BARS: int = 25

# Series shorter than min_cup + min_handle + this many bars is not searched.
CUP_DATA_MARGIN_BARS: int = 5

# ── Cup structural gates ──────────────────────────────────────────────────
# Depth is measured from the high of the first bar of the window to the
# lowest low inside it, as a percent of that high.
CUP_MIN_DEPTH_PCT: float = 10.0
CUP_MAX_DEPTH_PCT: float = 50.0

# How much of the decline the closing price of the last bar must win back.
CUP_MIN_RECOVERY_PCT: float = 60.0

# Last close must be at least this fraction of the starting high.
CUP_MIN_END_RATIO: float = 0.80

# ── Shape validator (U vs V) ──────────────────────────────────────────────
# Mean per-bar fractional change of lows on each side of the bottom.
# Either side steeper than this = V-shaped.
CUP_MAX_SIDE_SLOPE: float = 0.25

# Slices shorter than this are never U-shaped.
CUP_MIN_SHAPE_BARS: int = 7

# Flat bottom: bars within ±CUP_FLAT_BOTTOM_RADIUS of the bottom whose low is
# within CUP_FLAT_BOTTOM_TOLERANCE of the bottom price. The bottom bar itself
# counts, so 1 is always met; raise to 2+ to reject single-bar spikes.
CUP_FLAT_BOTTOM_RADIUS: int = 3
CUP_FLAT_BOTTOM_TOLERANCE: float = 0.03
CUP_FLAT_BOTTOM_MIN_BARS: int = 1

# ── Handle structural gates ───────────────────────────────────────────────
HANDLE_MAX_DEPTH_PCT: float = 20.0
HANDLE_MAX_CUP_DEPTH_FRACTION: float = 0.5   # handle depth ≤ half the cup depth
HANDLE_MIN_DEPTH_PCT: float = 0.1
HANDLE_MAX_DRIFT_PCT: float = 15.0           # |cup end close − handle end close|
HANDLE_SUPPORT_RATIO: float = 1.10           # handle low must stay ≥ cup bottom × this
HANDLE_MIN_CLOSE_ABOVE_LOW: float = 1.01     # last close ≥ handle low × this
HANDLE_VOLUME_TOLERANCE: float = 1.2         # 2nd-half avg vol ≤ 1st-half × this

# ── Cup & handle scoring (points out of 100) ──────────────────────────────
CUP_DEPTH_POINTS: int = 20
CUP_DEPTH_PARTIAL_POINTS: int = 10
CUP_DEPTH_OPTIMAL_PCT: tuple = (12.0, 33.0)

CUP_DURATION_POINTS: int = 15
CUP_DURATION_PARTIAL_POINTS: int = 10
CUP_DURATION_OPTIMAL_BARS: tuple = (15, 65)
CUP_DURATION_MIN_BARS: int = 7

CUP_SHAPE_POINTS: int = 15

HANDLE_DEPTH_POINTS: int = 15
HANDLE_DEPTH_OPTIMAL_PCT: tuple = (1.0, 15.0)

HANDLE_DURATION_POINTS: int = 10
HANDLE_DURATION_OPTIMAL_BARS: tuple = (5, 25)

HANDLE_VOLUME_POINTS: int = 10

RECOVERY_POINTS: int = 15
RECOVERY_PARTIAL_POINTS: int = 10
RECOVERY_FULL_PCT: float = 80.0
RECOVERY_PARTIAL_PCT: float = 60.0

# ── Head & shoulders search ───────────────────────────────────────────────
DEFAULT_HS_MIN_BARS: int = 20
DEFAULT_HS_MAX_BARS: int = 100
HS_DATA_MARGIN_BARS: int = 10

# Local extremum: strictly beyond HS_EXTREMUM_ORDER bars on each side, with
# at least HS_MIN_PROMINENCE fractional height over the neighbouring bars.
HS_EXTREMUM_ORDER: int = 2
HS_MIN_PROMINENCE: float = 0.02

# Head must exceed both shoulders by more than this percent (0 = strictly).
HS_MIN_HEAD_MARGIN_PCT: float = 0.0
# |left − right| / max(left, right) must not exceed this.
HS_SHOULDER_TOLERANCE: float = 0.15
# Bars of shoulder shown either side of a shoulder extreme.
HS_SHOULDER_PAD_BARS: int = 5

# ── Head & shoulders scoring (points out of 100) ──────────────────────────
HS_PROMINENCE_POINTS: int = 25
HS_PROMINENCE_PARTIAL_POINTS: int = 15
HS_PROMINENCE_OPTIMAL_PCT: tuple = (5.0, 25.0)
HS_PROMINENCE_MIN_PCT: float = 3.0

HS_SYMMETRY_POINTS: int = 20
HS_SYMMETRY_PARTIAL_POINTS: int = 15
HS_SYMMETRY_FULL_PCT: float = 10.0
HS_SYMMETRY_PARTIAL_PCT: float = 15.0

HS_DURATION_POINTS: int = 15
HS_DURATION_PARTIAL_POINTS: int = 10
HS_DURATION_OPTIMAL_BARS: tuple = (20, 100)
HS_DURATION_MIN_BARS: int = 15

HS_NECKLINE_POINTS: int = 15
HS_NECKLINE_PARTIAL_POINTS: int = 10
HS_NECKLINE_FULL_PCT: float = 2.0
HS_NECKLINE_PARTIAL_PCT: float = 5.0

HS_VOLUME_POINTS: int = 15

HS_RR_POINTS: int = 10
HS_RR_PARTIAL_POINTS: int = 5
HS_RR_FULL: float = 2.0
HS_RR_PARTIAL: float = 1.5

# ── Acceptance & confidence ───────────────────────────────────────────────
# Gates establish eligibility, the score establishes acceptance.
MIN_PATTERN_SCORE: int = 50
CONFIDENCE_HIGH_SCORE: int = 80
CONFIDENCE_MEDIUM_SCORE: int = 60

# ── Trading levels ────────────────────────────────────────────────────────
# Stop sits this fraction beyond the protective extreme (2% buffer).
STOP_BUFFER: float = 0.02

# ── Recommendation ────────────────────────────────────────────────────────
BUY_MIN_RR: float = 2.0      # HIGH confidence + R:R ≥ this → BUY (SELL if bearish)
HOLD_MIN_RR: float = 1.5     # MEDIUM confidence + R:R ≥ this → HOLD

# Strength → signal cutoffs used by the stage-aware analysis.
SIGNAL_STRONG_STRENGTH: int = 70
SIGNAL_MODERATE_STRENGTH: int = 50


# ══════════════════════════════════════════════════════════════════════════════
# LEVER RUNTIME SYSTEM
# ══════════════════════════════════════════════════════════════════════════════

def _lever_names() -> list:
    m = _sys.modules[__name__]
    return [
        k for k in vars(m)
        if k.isupper() and not k.startswith("_") and not callable(getattr(m, k))
    ]


def _coerce(existing, raw_val):
    if isinstance(existing, bool):
        if isinstance(raw_val, str):
            return raw_val.strip().lower() not in ("false", "0", "no", "off")
        return bool(raw_val)
    if isinstance(existing, float):
        return float(raw_val)
    if isinstance(existing, int):
        return int(raw_val)
    if isinstance(existing, tuple):
        if isinstance(raw_val, str):
            raw_val = [p for p in raw_val.replace(" ", "").split(",") if p]
        return tuple(type(existing[i])(v) for i, v in enumerate(raw_val))
    if isinstance(existing, str):
        return str(raw_val)
    return raw_val


def apply_levers(overrides: dict) -> dict:
    """
    Patch module-level constants at runtime.

    Because every detector imports this module BY REFERENCE, patched values
    are seen on the very next detection call — no reload needed.

    Type coercion is automatic based on the existing type of each constant.
    Booleans accept: True/False/true/false/1/0/yes/no.
    Range levers (tuples) accept a list or a "lo,hi" string.

    Returns the dict of applied overrides (useful for logging).
    Raises ValueError for unknown or non-overridable keys.

    Example:
        apply_levers({"CUP_FLAT_BOTTOM_MIN_BARS": 2, "MIN_PATTERN_SCORE": 60})
    """
    m = _sys.modules[__name__]
    applied = {}
    for key, raw_val in overrides.items():
        existing = getattr(m, key, _MISSING := object())
        if existing is _MISSING or key.startswith("_"):
            raise ValueError(f"apply_levers: unknown lever '{key}'")
        if callable(existing):
            raise ValueError(f"apply_levers: '{key}' is a function, not a lever")
        try:
            val = _coerce(existing, raw_val)
        except (TypeError, ValueError, IndexError) as e:
            raise ValueError(f"apply_levers: bad value for '{key}': {raw_val!r} ({e})") from e
        setattr(m, key, val)
        applied[key] = val
    return applied


def load_profile(profile_name: str) -> dict:
    """
    Load a named lever profile from profiles/<name>.json and apply it.
    Returns the dict of applied overrides.

    Profiles live in <repo>/profiles/.
    """
    import json
    profile_path = _REPO_ROOT / "profiles" / f"{profile_name}.json"
    if not profile_path.exists():
        available = sorted(p.stem for p in (_REPO_ROOT / "profiles").glob("*.json"))
        raise FileNotFoundError(
            f"Profile '{profile_name}' not found at {profile_path}. "
            f"Available: {available}"
        )
    with open(profile_path) as f:
        overrides = json.load(f)
    # Strip comment/metadata keys (anything starting with "_")
    overrides = {k: v for k, v in overrides.items() if not k.startswith("_")}
    return apply_levers(overrides)


def apply_env_levers(env_file=None) -> dict:
    """
    Apply CHARTFORGE_<LEVER>=value overrides from the process environment.

    <repo>/.env (or env_file) is loaded first with python-dotenv; variables
    already set in the environment win. Variables that do not name a lever
    (e.g. CHARTFORGE_LOG_LEVEL) are ignored.
    """
    _load_dotenv(env_file or _REPO_ROOT / ".env", override=False)
    names = set(_lever_names())
    overrides = {}
    for var, raw in _os.environ.items():
        if not var.startswith(_ENV_PREFIX):
            continue
        key = var[len(_ENV_PREFIX):]
        if key in names:
            overrides[key] = raw
    return apply_levers(overrides)


def reset_levers() -> None:
    """Restore every lever to the value it had at import time."""
    m = _sys.modules[__name__]
    for key, val in _DEFAULTS.items():
        setattr(m, key, val)


def get_lever_tags() -> list:
    """
    Short tags for every lever that differs from its default.

    Sorted, so `",".join(get_lever_tags())` is a stable run fingerprint.
    Empty list = stock configuration.
    """
    m = _sys.modules[__name__]
    tags = []
    for key, default in _DEFAULTS.items():
        current = getattr(m, key)
        if current != default:
            tags.append(f"{key.lower()}={current}")
    return sorted(tags)


_DEFAULTS = {k: getattr(_sys.modules[__name__], k) for k in _lever_names()}
