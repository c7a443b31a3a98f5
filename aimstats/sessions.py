from __future__ import annotations

import math
from dataclasses import dataclass, field

from .constants import (
    DEFAULT_SESSION_GAP_MIN, FORECAST_SESSION_GAP_MIN, MINUTE_MS,
    HistoryPoint, RunRecord,
)
from .helpers import mean_or_zero


# ════════════════════════════════════════════════════════════════════════
#  SESSION GROUPING
# ════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class Session:
    id: int
    runs: list[RunRecord] = field(default_factory=list)

    @property
    def start_ms(self) -> float:
        return self.runs[0].ts if self.runs else 0.0

    @property
    def end_ms(self) -> float:
        return self.runs[-1].ts if self.runs else 0.0

    @property
    def mean_run_ms(self) -> float:
        """Mean run length over the runs that report one."""
        return mean_or_zero([r.duration_ms for r in self.runs if r.duration_ms > 0])

    def scenarios(self) -> list[str]:
        return sorted({r.scenario for r in self.runs})


def _chrono_key(rec: RunRecord) -> tuple:
    # all fields, so ties on ts still order the same
    return (
        rec.ts, rec.scenario, rec.score, rec.accuracy,
        rec.ttk is None, rec.ttk or 0.0, rec.file_name, rec.duration_ms,
    )


def group_runs_into_sessions(
    records: list[RunRecord], gap_minutes: float = DEFAULT_SESSION_GAP_MIN,
) -> list[Session]:
    """Split records into sessions wherever consecutive runs are more than
    ``gap_minutes`` apart. Records without a timestamp cannot be ordered and
    are left out."""
    gap_ms = gap_minutes * MINUTE_MS
    ordered = sorted((r for r in records if r.ts is not None), key=_chrono_key)

    sessions: list[Session] = []
    last_ts: float | None = None
    for rec in ordered:
        if last_ts is None or rec.ts - last_ts > gap_ms:
            sessions.append(Session(id=len(sessions) + 1))
        sessions[-1].runs.append(rec)
        last_ts = rec.ts
    return sessions


def collect_runs_by_session(sessions: list[Session], scenario: str) -> list[list[RunRecord]]:
    """Per session, the runs of ``scenario`` ordered oldest -> newest."""
    out: list[list[RunRecord]] = []
    for sess in sessions:
        runs = [r for r in sess.runs if r.scenario == scenario]
        if runs:
            out.append(sorted(runs, key=_chrono_key))
    return out


def session_averages(sessions: list[Session], scenario: str) -> dict[str, list[float]]:
    """Mean score, accuracy % and TTK per session (chronological) for one scenario."""
    out: dict[str, list[float]] = {"score": [], "acc": [], "ttk": []}
    for runs in collect_runs_by_session(sessions, scenario):
        out["score"].append(mean_or_zero([r.score for r in runs]))
        out["acc"].append(mean_or_zero([r.accuracy * 100 for r in runs]))
        out["ttk"].append(mean_or_zero([r.ttk if r.ttk is not None else 0.0 for r in runs]))
    return out


def collect_scenario_history(
    records: list[RunRecord],
    scenario: str | None,
    now_ms: float,
    gap_minutes: float = FORECAST_SESSION_GAP_MIN,
) -> list[HistoryPoint]:
    """Chronological (t, score, session_id) points for the forecaster.

    Unlike ``group_runs_into_sessions`` this keeps runs with no timestamp,
    placing them at ``now_ms``.
    """
    gap_ms = gap_minutes * MINUTE_MS
    raw = [
        (r.ts if r.ts is not None else now_ms, r.score)
        for r in records
        if (scenario is None or r.scenario == scenario) and math.isfinite(r.score)
    ]
    # stable on t alone: tied runs keep input order
    raw.sort(key=lambda p: p[0])

    hist: list[HistoryPoint] = []
    sid = 0
    last_t: float | None = None
    for t, score in raw:
        if last_t is None or t - last_t > gap_ms:
            sid += 1
        hist.append(HistoryPoint(t=t, score=score, session_id=sid))
        last_t = t
    return hist
