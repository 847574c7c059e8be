#!/usr/bin/env python3
"""
scan_patterns.py — Run the chart-pattern detectors on one candle series

Sources (pick one; default --mock):
  --symbol AAPL       fetch via yfinance (falls back to mock data on failure)
  --file candles.json local JSON / CSV file
  --mock              synthetic series from chartforge.patterns.mock_data

Usage:
  python3 -m scripts.scan_patterns --mock --seed 7
  python3 -m scripts.scan_patterns --symbol AAPL --interval 1wk --period 5y --pattern all
  python3 -m scripts.scan_patterns --file data/aapl.json --pattern hs --json
  python3 -m scripts.scan_patterns --mock --lever CUP_FLAT_BOTTOM_MIN_BARS=2 --mode best
"""
import argparse
import json
import logging
import os
import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parent.parent
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

import chartforge.patterns.pattern_config as _cfg
from chartforge.patterns import mock_data
from chartforge.patterns.analysis import analyze_cup_and_handle, analyze_head_and_shoulders

logger = logging.getLogger("scan_patterns")

PATTERNS = ("cup", "hs", "ihs", "all")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Chart pattern scanner — cup & handle, head & shoulders",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Lever system — override any pattern_config constant without editing source:
  --lever KEY=VALUE       Set one lever (repeat for multiple)
  --profile NAME          Load profiles/<name>.json (applied before --lever flags)
  CHARTFORGE_<LEVER>=...  Environment / .env overrides (applied first)

Examples:
  python3 -m scripts.scan_patterns --mock --pattern all
  python3 -m scripts.scan_patterns --symbol MSFT --profile strict
""")
    src = parser.add_mutually_exclusive_group()
    src.add_argument("--symbol", default=None, help="Ticker to fetch via yfinance")
    src.add_argument("--file",   default=None, help="JSON or CSV candle file")
    src.add_argument("--mock",   action="store_true", default=False,
                     help="Use generated data (default when no source is given)")
    parser.add_argument("--seed",     type=int, default=None, help="Mock data seed")
    parser.add_argument("--pattern",  choices=PATTERNS, default="cup",
                        help="cup | hs | ihs (inverse H&S) | all  (default: cup)")
    parser.add_argument("--mode",     choices=("first", "best"), default="first",
                        help="first = first accepted candidate (default), best = highest score")
    parser.add_argument("--interval", default="1d", help="yfinance interval (default: 1d)")
    parser.add_argument("--period",   default=None,
                        help="yfinance period (default: depends on --interval, 2y for 1d)")
    parser.add_argument("--profile",  default=None, help="Load profiles/<name>.json lever profile")
    parser.add_argument("--lever",    action="append", default=[], metavar="KEY=VALUE",
                        help="Override a pattern_config lever (e.g. --lever MIN_PATTERN_SCORE=60)")
    parser.add_argument("--json",     action="store_true", default=False,
                        help="Print analyses as JSON instead of the text report")
    parser.add_argument("--log-level", default=None,
                        help="DEBUG | INFO | WARNING | ERROR  (default: $CHARTFORGE_LOG_LEVEL or WARNING)")
    return parser


def _mock_candles(pattern: str, seed):
    if pattern in ("hs", "ihs"):
        return mock_data.generate_head_and_shoulders(seed=seed, inverse=(pattern == "ihs"))
    return mock_data.generate_cup_and_handle(seed=seed)


def load_candles(args):
    """(frame, source label) for the chosen source. Fetch failures fall back to mock data."""
    if args.file:
        from chartforge.data.candle_data import load_candles_file
        return load_candles_file(args.file), args.file

    if args.symbol:
        from chartforge.data.candle_data import CandleData
        try:
            df = CandleData().get_candles(args.symbol, args.interval, period=args.period)
        except ImportError as e:
            logger.warning(f"{e} — using mock data")
            df = None
        if df is not None and not df.empty:
            return df, args.symbol
        logger.warning(f"No candles for {args.symbol}; falling back to mock data")
        return _mock_candles(args.pattern, args.seed), f"{args.symbol} (mock fallback)"

    return _mock_candles(args.pattern, args.seed), "mock"


def run(df, pattern: str, mode: str) -> list:
    analyses = []
    if pattern in ("cup", "all"):
        analyses.append(analyze_cup_and_handle(df, mode=mode))
    if pattern in ("hs", "all"):
        analyses.append(analyze_head_and_shoulders(df, mode=mode))
    if pattern in ("ihs", "all"):
        analyses.append(analyze_head_and_shoulders(df, inverse=True, mode=mode))
    return analyses


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    level = (args.log_level or os.environ.get("CHARTFORGE_LOG_LEVEL") or "WARNING").upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING),
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    # ── Levers: env first, then profile, then --lever flags ───────────────────
    try:
        env_applied = _cfg.apply_env_levers()
    except ValueError as e:
        parser.error(str(e))
    if env_applied:
        logger.info(f"Env levers applied: {env_applied}")

    if args.profile:
        try:
            applied = _cfg.load_profile(args.profile)
            logger.info(f"Profile '{args.profile}' loaded: {applied}")
        except (FileNotFoundError, ValueError) as e:
            parser.error(str(e))

    if args.lever:
        overrides = {}
        for kv in args.lever:
            if "=" not in kv:
                parser.error(f"--lever must be KEY=VALUE, got: '{kv}'")
            k, v = kv.split("=", 1)
            overrides[k.strip()] = v.strip()
        try:
            applied = _cfg.apply_levers(overrides)
            logger.info(f"Levers applied: {applied}")
        except ValueError as e:
            parser.error(str(e))

    try:
        df, source = load_candles(args)
    except (FileNotFoundError, ValueError) as e:
        parser.error(str(e))

    analyses = run(df, args.pattern, args.mode)
    tags = _cfg.get_lever_tags()

    if args.json:
        print(json.dumps({
            "source":  source,
            "candles": len(df),
            "levers":  tags,
            "analyses": [a.to_dict() for a in analyses],
        }, indent=2, default=str))
        return 0

    print(f"Source: {source}  ({len(df)} candles)")
    if tags:
        print(f"Levers: {', '.join(tags)}")
    for analysis in analyses:
        print()
        print("\n".join(analysis.lines()))
    return 0


if __name__ == "__main__":
    sys.exit(main())
