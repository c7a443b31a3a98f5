"""
Session-length and highscore insights for exported scenario runs.

Reads a JSON export (a list of ``{"fileName", "stats"}`` records) and prints
a markdown report: recent sessions, per-run expectation tables, length
recommendations and next-highscore forecasts.

Run:  aimstats runs.json --gap 15 --metric score --save
"""

from __future__ import annotations

import argparse
import io
import sys
from collections import Counter
from datetime import datetime
from pathlib import Path

from .constants import DEFAULT_SESSION_GAP_MIN, FORECAST_SESSION_GAP_MIN, RunRecord
from .prediction import HighscorePrediction, predict_next_highscore
from .records import load_records
from .report import (
    print_forecasts, print_length_table, print_params, print_recommendations,
    print_sessions,
)
from .session_length import (
    LengthRecommendation, expected_avg_vs_length, expected_best_vs_length,
    expected_by_index, recommend_lengths,
)
from .sessions import collect_runs_by_session, group_runs_into_sessions


class _Tee:
    """Write to both stdout and a buffer."""
    def __init__(self, out, buf):
        self._out, self._buf = out, buf
    def write(self, s):
        self._out.write(s)
        self._buf.write(s)
    def flush(self):
        self._out.flush()
        self._buf.flush()


def _pick_scenarios(records: list[RunRecord], wanted: list[str] | None, top: int) -> list[str]:
    if wanted:
        return wanted
    counts = Counter(r.scenario for r in records)
    return [name for name, _ in counts.most_common(top)]


def run_report(records: list[RunRecord], args: argparse.Namespace):
    sessions = group_runs_into_sessions(records, args.gap)
    scenarios = _pick_scenarios(records, args.scenario, args.top)

    print("# Session Insights\n")
    print(f"**{datetime.now().strftime('%Y-%m-%d %H:%M')}**\n")
    print_params({
        "Runs": len(records),
        "Sessions": len(sessions),
        "Session gap": f"{args.gap:g}m",
        "Forecast gap": f"{args.forecast_gap:g}m",
        "Metric": args.metric,
    })
    print_sessions(sessions)

    recs: dict[str, LengthRecommendation] = {}
    preds: dict[str, HighscorePrediction] = {}
    for name in scenarios:
        runs = collect_runs_by_session(sessions, name)
        by_index = expected_by_index(runs, args.metric)
        best_vs_length = expected_best_vs_length(runs, args.metric)
        length_stats = expected_avg_vs_length(runs, args.metric) if args.prefix_stats else None
        print_length_table(name, args.metric, by_index, best_vs_length, length_stats)
        if runs:
            recs[name] = recommend_lengths(by_index, best_vs_length, length_stats)
        preds[name] = predict_next_highscore(records, name, args.forecast_gap)

    print_recommendations(recs)
    print_forecasts(preds)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="aimstats", description=__doc__.strip().splitlines()[0])
    p.add_argument("path", type=Path, help="JSON export of scenario runs")
    p.add_argument("--gap", type=float, default=DEFAULT_SESSION_GAP_MIN,
                   help="idle minutes that end a session (default: %(default)s)")
    p.add_argument("--forecast-gap", type=float, default=FORECAST_SESSION_GAP_MIN,
                   help="session gap used by the highscore forecast (default: %(default)s)")
    p.add_argument("--metric", choices=("score", "acc"), default="score")
    p.add_argument("--scenario", action="append",
                   help="scenario to analyse (repeatable; default: most played)")
    p.add_argument("--top", type=int, default=5, help="most-played scenarios to show")
    p.add_argument("--prefix-stats", action="store_true",
                   help="use per-length prefix averages for the recommendations")
    p.add_argument("--save", action="store_true",
                   help="also write the report to insights_<timestamp>.md")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        records, skipped = load_records(args.path)
    except (OSError, ValueError) as e:
        sys.stderr.write(f"aimstats: cannot read {args.path}: {e}\n")
        return 1
    if skipped:
        sys.stderr.write(f"  skipped {skipped} record(s) without a numeric score\n")
    undated = sum(1 for r in records if r.ts is None)
    if undated:
        sys.stderr.write(f"  {undated} record(s) have no parseable timestamp\n")

    if not args.save:
        run_report(records, args)
        return 0

    outpath = Path.cwd() / f"insights_{datetime.now().strftime('%Y-%m-%d_%H%M')}.md"
    buf = io.StringIO()
    orig_stdout = sys.stdout
    sys.stdout = _Tee(orig_stdout, buf)
    try:
        run_report(records, args)
    finally:
        sys.stdout = orig_stdout
    outpath.write_text(buf.getvalue())
    print(f"\nReport saved to {outpath}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
