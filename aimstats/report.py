from __future__ import annotations

from datetime import datetime

from .prediction import HighscorePrediction
from .session_length import ExpectationCurve, LengthRecommendation, LengthStats
from .sessions import Session


# ════════════════════════════════════════════════════════════════════════
#  OUTPUT / FORMATTING
# ════════════════════════════════════════════════════════════════════════


# (name, attr, format)
FORECAST_FIELDS: list[tuple[str, str, str]] = [
    ("Best", "best", ".0f"),
    ("Last", "last_score", ".0f"),
    ("Runs", "sample", "d"),
    ("Slope/run", "slope_per_run", "+.2f"),
    ("Slope/day", "slope_per_day", "+.2f"),
    ("Days idle", "last_played_days", ".1f"),
]


def _esc(s: str) -> str:
    return s.replace("|", "\\|")


def _fmt_ts(ms: float | None) -> str:
    if ms is None:
        return "-"
    return datetime.fromtimestamp(ms / 1000).strftime("%Y-%m-%d %H:%M")


def print_params(params: dict[str, object]):
    print("| Parameter | Value |")
    print("|-----------|-------|")
    for k, v in params.items():
        print(f"| {_esc(k)} | {v} |")
    print()


def print_sessions(sessions: list[Session], limit: int = 10):
    if not sessions:
        print("_No timestamped runs._\n")
        return

    print(f"\n### Recent Sessions ({len(sessions)} total)\n")
    print("| # | Start | Length | Runs | Avg run | Scenarios |")
    print("|--:|-------|-------:|-----:|--------:|-----------|")
    for s in sessions[-limit:][::-1]:
        mins = (s.end_ms - s.start_ms) / 60000
        names = ", ".join(_esc(n) for n in s.scenarios()[:3])
        if len(s.scenarios()) > 3:
            names += f" +{len(s.scenarios()) - 3}"
        avg_run = f"{s.mean_run_ms / 1000:.0f}s" if s.mean_run_ms else "-"
        print(f"| {s.id} | {_fmt_ts(s.start_ms)} | {mins:.0f}m | {len(s.runs)} | {avg_run} | {names} |")
    print()


def print_length_table(
    scenario: str,
    metric: str,
    by_index: ExpectationCurve,
    best_vs_length: list[float],
    length_stats: LengthStats | None = None,
):
    n = len(by_index.mean)
    if not n:
        return

    print(f"\n### {_esc(scenario)} — {metric} by run\n")
    header = "| Run | Mean | Std | Best ≤ L |"
    rule = "|----:|-----:|----:|---------:|"
    if length_stats is not None:
        header += " Avg ≤ L | P10-P90 | Sessions |"
        rule += "--------:|---------|---------:|"
    print(header)
    print(rule)

    peak = max(best_vs_length) if best_vs_length else None
    for j in range(n):
        best = best_vs_length[j] if j < len(best_vs_length) else 0.0
        best_s = f"{best:.1f}"
        if best == peak and best_vs_length.count(peak) == 1:
            best_s = f"**{best_s}**"
        row = f"| {j + 1} | {by_index.mean[j]:.1f} | {by_index.std[j]:.1f} | {best_s} |"
        if length_stats is not None:
            row += (
                f" {length_stats.mean[j]:.1f} | {length_stats.p10[j]:.1f}-"
                f"{length_stats.p90[j]:.1f} | {length_stats.count[j]} |"
            )
        print(row)
    print()


def print_recommendations(recs: dict[str, LengthRecommendation]):
    if not recs:
        return

    print("\n### Session Length Recommendations\n")
    print("| Scenario | Warm-up | Best avg | Consistent | Highscore |")
    print("|----------|--------:|---------:|-----------:|----------:|")
    for name, r in recs.items():
        print(
            f"| {_esc(name)} | {r.warmup_runs} | {r.optimal_avg_runs} "
            f"| {r.optimal_consistent_runs} | {r.optimal_highscore_runs} |"
        )
    print()


def print_forecasts(preds: dict[str, HighscorePrediction]):
    if not preds:
        return

    print("\n### Next Highscore\n")
    print("| Scenario | Runs | Range | Pause | ETA | Conf | "
          + " | ".join(name for name, _, _ in FORECAST_FIELDS) + " |")
    print("|----------|-----:|-------|------:|-----|------|"
          + "-------:|" * len(FORECAST_FIELDS))
    notes: list[str] = []
    for name, p in preds.items():
        runs = "-" if p.runs_expected is None else str(p.runs_expected)
        rng = "-" if p.runs_lo is None else f"{p.runs_lo}-{p.runs_hi}"
        pause = "-" if p.opt_pause_hours is None else f"{p.opt_pause_hours * 60:.0f}m"
        eta = p.eta_human if p.eta_ts is None else f"{p.eta_human} ({_fmt_ts(p.eta_ts)})"
        cells = [f"{getattr(p, attr):{fmt}}" for _, attr, fmt in FORECAST_FIELDS]
        print(f"| {_esc(name)} | {runs} | {rng} | {pause} | {eta} | {p.confidence} | "
              + " | ".join(cells) + " |")
        if p.reason:
            notes.append(f"- {name}: {p.reason}")
    print()
    if notes:
        print("\n".join(notes))
        print()
