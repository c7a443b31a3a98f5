"""Highscore arrival forecasting.

Per-run score change within a session is modelled as a saturating function
of the pause before the run::

    delta(dt) = a * (1 - exp(-dt / tau)) + b

``tau`` is chosen from a log-spaced grid by weighted R², ``a`` and ``b`` by
weighted least squares. The model is then inverted to find the pause that
minimises ``runs(dt) * dt`` to reach a target slightly above the current
best. All durations inside the model are in days.
"""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from functools import reduce

import numpy as np

from .constants import (
    DAY_MS, FORECAST_SESSION_GAP_MIN, HALF_LIFE_DAYS, HALF_LIFE_RUNS, HOUR_MS,
    IQR_MIN_PAIRS, MAX_RUNS_REASONABLE, MIN_DAY_WEIGHT, MIN_HISTORY_RUNS,
    MINUTE_DAYS, NEAR_BEST_MARGIN, PAUSE_STEPS, RECENCY_FULL_DAYS,
    SIZE_FULL_PAIRS, TARGET_MARGIN, TAU_STEPS, Confidence, HistoryPoint, RunRecord,
)
from .helpers import (
    clamp, humanize_eta, quantile, recency_weights, round_half_up, weighted_lin_reg,
)
from .sessions import collect_scenario_history


@dataclass(slots=True)
class HighscorePrediction:
    eta_ts: float | None
    eta_human: str
    runs_expected: int | None
    runs_lo: int | None
    runs_hi: int | None
    opt_pause_hours: float | None
    confidence: Confidence
    sample: int
    best: float
    last_score: float
    last_played_days: float
    slope_per_day: float
    slope_per_run: float
    reason: str | None = None


@dataclass(slots=True, frozen=True)
class PauseFit:
    tau: float
    a: float
    b: float
    r2: float


@dataclass(slots=True, frozen=True)
class PauseOption:
    dt_days: float
    runs: float
    delta: float


# ════════════════════════════════════════════════════════════════════════
#  DELTA-VS-PAUSE MODEL
# ════════════════════════════════════════════════════════════════════════


def _gap_bounds(dt_days: list[float]) -> tuple[float, float]:
    safe = [d for d in dt_days if math.isfinite(d) and d > 0]
    if not safe:
        return 5 * MINUTE_DAYS, 2 / 24
    min_dt = max(MINUTE_DAYS, min(safe))
    max_dt = max(min_dt * 5, quantile(safe, 0.9))
    return min_dt, max_dt


def tau_grid(dt_days: list[float]) -> list[float]:
    """Candidate time constants, log-spaced from a third of the shortest
    pause to three times the long (P90) pause."""
    min_dt, max_dt = _gap_bounds(dt_days)
    return np.logspace(math.log10(min_dt / 3), math.log10(max_dt * 3), TAU_STEPS).tolist()


def expected_delta_at_pause(fit: PauseFit, dt_days: float) -> float:
    x = 1 - math.exp(-max(0.0, dt_days) / max(1e-6, fit.tau))
    return fit.a * x + fit.b


def fit_delta_vs_pause(dt_days: list[float], deltas: list[float], weights: list[float]) -> PauseFit:
    min_dt, max_dt = _gap_bounds(dt_days)
    dt = np.maximum(0.0, np.asarray(dt_days, dtype=float))

    def fit_at(tau: float) -> PauseFit:
        lf = weighted_lin_reg(1 - np.exp(-dt / tau), deltas, weights)
        return PauseFit(tau=tau, a=lf.b, b=lf.a, r2=lf.r2)

    initial = PauseFit(tau=math.sqrt(min_dt * max_dt), a=0.0, b=0.0, r2=0.0)
    return reduce(
        lambda best, cand: cand if cand.r2 > best.r2 else best,
        (fit_at(tau) for tau in tau_grid(dt_days)),
        initial,
    )


def find_optimal_pause_and_runs(
    deficit: float, fit: PauseFit, dt_min: float, dt_max: float, dt_step: float,
) -> PauseOption | None:
    """Pause in [dt_min, dt_max] minimising total time runs * pause."""
    best: PauseOption | None = None
    best_time = math.inf
    d = dt_min
    while d <= dt_max + 1e-9:
        delta = max(0.0, expected_delta_at_pause(fit, d))
        if delta > 1e-6:
            runs = deficit / delta
            total = runs * d
            if math.isfinite(total) and total < best_time:
                best, best_time = PauseOption(d, runs, delta), total
        d += dt_step
    return best


# ════════════════════════════════════════════════════════════════════════
#  FORECAST
# ════════════════════════════════════════════════════════════════════════


def _bucket(score: float) -> Confidence:
    if score > 0.6:
        return "high"
    return "med" if score > 0.3 else "low"


def _stability(mean_pos: float, std_pos: float) -> float:
    if mean_pos <= 1e-6:
        return 0.0
    return clamp(1 - min(2.0, std_pos / max(1.0, mean_pos)), 0, 1)


def _run_range(runs: int, widen: float) -> tuple[int, int]:
    lo = max(1, math.floor(runs * (1 - widen)))
    hi = max(lo + 1, math.ceil(runs * (1 + widen)))
    return lo, hi


def _within_session_pairs(hist: list[HistoryPoint]) -> tuple[list[float], list[float], list[float]]:
    """(pause days, score delta, recency weight) for adjacent runs of the same session."""
    n = len(hist)
    dt_days: list[float] = []
    deltas: list[float] = []
    weights: list[float] = []
    rw = recency_weights(n, HALF_LIFE_RUNS)
    for i in range(1, n):
        prev, cur = hist[i - 1], hist[i]
        if cur.session_id != prev.session_id:
            continue
        dt_days.append(max(MINUTE_DAYS, (cur.t - prev.t) / DAY_MS))
        deltas.append(cur.score - prev.score)
        weights.append(float(rw[i]))

    if len(deltas) >= IQR_MIN_PAIRS:
        q1, q3 = quantile(deltas, 0.25), quantile(deltas, 0.75)
        iqr = max(1.0, q3 - q1)
        deltas = np.clip(deltas, q1 - 1.5 * iqr, q3 + 1.5 * iqr).tolist()
    return dt_days, deltas, weights


def _trend_slopes(hist: list[HistoryPoint], now_ms: float) -> tuple[float, float]:
    """Diagnostic (per-run, per-day) score slopes with recency weighting."""
    n = len(hist)
    ys = [h.score for h in hist]
    slope_per_run = weighted_lin_reg(list(range(n)), ys, recency_weights(n, HALF_LIFE_RUNS)).b

    t0 = hist[0].t
    xs2, ys2, ws2 = [], [], []
    for h in hist:
        w = 0.5 ** ((now_ms - h.t) / (HALF_LIFE_DAYS * DAY_MS))
        if n > 40 and w < MIN_DAY_WEIGHT:
            continue
        xs2.append((h.t - t0) / DAY_MS)
        ys2.append(h.score)
        ws2.append(w)
    slope_per_day = weighted_lin_reg(xs2, ys2, ws2).b
    return slope_per_run, slope_per_day


def predict_next_highscore(
    records: list[RunRecord],
    scenario: str | None = None,
    gap_minutes: float = FORECAST_SESSION_GAP_MIN,
    now_ms: float | None = None,
) -> HighscorePrediction:
    """Forecast how many runs (and how long) until the scenario's record falls.

    Never raises on data problems: thin or flat histories come back with
    ``eta_ts=None``, low confidence and a ``reason``.
    """
    now = time.time() * 1000 if now_ms is None else now_ms
    hist = collect_scenario_history(records, scenario, now, gap_minutes)
    n = len(hist)
    if n < MIN_HISTORY_RUNS:
        return HighscorePrediction(
            eta_ts=None, eta_human="unknown", runs_expected=None, runs_lo=None,
            runs_hi=None, opt_pause_hours=None, confidence="low", sample=n,
            best=0.0, last_score=0.0, last_played_days=0.0, slope_per_day=0.0,
            slope_per_run=0.0, reason=f"Need at least {MIN_HISTORY_RUNS} runs",
        )

    best = max(h.score for h in hist)
    last = hist[-1]
    last_played_days = (now - last.t) / DAY_MS
    slope_per_run, slope_per_day = _trend_slopes(hist, now)
    diag = dict(
        sample=n, best=best, last_score=last.score, last_played_days=last_played_days,
        slope_per_day=slope_per_day, slope_per_run=slope_per_run,
    )

    dt_days, deltas, weights = _within_session_pairs(hist)
    have_pairs = len(dt_days) >= 2
    pos = np.maximum(0.0, np.asarray(deltas, dtype=float))
    mean_pos = float(pos.sum()) / max(1, pos.size)
    std_pos = math.sqrt(max(0.0, float(((pos - mean_pos) ** 2).sum()) / max(1, pos.size)))
    size_factor = min(1.0, len(dt_days) / SIZE_FULL_PAIRS)

    fit = (
        fit_delta_vs_pause(dt_days, deltas, weights) if have_pairs
        else PauseFit(tau=5 * MINUTE_DAYS, a=0.0, b=0.0, r2=0.0)
    )
    target = best + max(1, round_half_up(best * TARGET_MARGIN))
    deficit = target - last.score
    eps_improvement = max(1, round_half_up(best * NEAR_BEST_MARGIN))

    # Already at (or a hair under) the record: expect it within a run or two.
    if best - last.score <= eps_improvement:
        soon_pause_h = max(1, round_half_up(quantile(dt_days, 0.25) * 24))
        soon_ts = now + max(DAY_MS * 0.25, soon_pause_h * HOUR_MS)
        conf = clamp(0.4 * fit.r2 + 0.6 * size_factor, 0, 1)
        return HighscorePrediction(
            eta_ts=soon_ts, eta_human=humanize_eta(soon_ts - now), runs_expected=1,
            runs_lo=1, runs_hi=2, opt_pause_hours=float(soon_pause_h),
            confidence=_bucket(conf), **diag,
        )

    gap_days = gap_minutes * MINUTE_DAYS
    if have_pairs:
        dt_min = max(MINUTE_DAYS, quantile(dt_days, 0.1) * 0.7)
        dt_max = max(dt_min * 1.2, min(gap_days, quantile(dt_days, 0.9) * 1.4))
    else:
        dt_min = 2 * MINUTE_DAYS
        dt_max = min(gap_days, 15 * MINUTE_DAYS)
    dt_step = max(0.5 * MINUTE_DAYS, (dt_max - dt_min) / PAUSE_STEPS)
    opt = find_optimal_pause_and_runs(deficit, fit, dt_min, dt_max, dt_step)

    stability = _stability(mean_pos, std_pos)
    recency_penalty = clamp(last_played_days / RECENCY_FULL_DAYS, 0, 1)

    if opt is None or opt.runs > MAX_RUNS_REASONABLE or opt.delta < eps_improvement:
        # Model is no use here; fall back to average positive gain per run.
        med_dt = (quantile(dt_days, 0.5) if have_pairs else 0.0) or 5 * MINUTE_DAYS
        per_run = max(1e-6, mean_pos)
        runs_raw = deficit / per_run
        if (not math.isfinite(runs_raw) or runs_raw > MAX_RUNS_REASONABLE
                or per_run < eps_improvement * 0.25):
            return HighscorePrediction(
                eta_ts=None, eta_human="unknown", runs_expected=None, runs_lo=None,
                runs_hi=None, opt_pause_hours=None, confidence="low",
                reason="No upward trend detected yet", **diag,
            )
        runs = math.ceil(runs_raw)
        conf = clamp(
            0.15 + 0.55 * (0.6 * size_factor + 0.4 * stability) - 0.15 * recency_penalty, 0, 1,
        )
        lo, hi = _run_range(runs, 0.28 + 0.32 * (1 - conf) + 0.12 * (1 - stability))
        eta = now + max(1, runs) * med_dt * DAY_MS
        return HighscorePrediction(
            eta_ts=eta, eta_human=humanize_eta(eta - now), runs_expected=runs,
            runs_lo=lo, runs_hi=hi, opt_pause_hours=med_dt * 24,
            confidence=_bucket(conf), reason="Using robust recent trend", **diag,
        )

    runs = max(1, math.ceil(opt.runs))
    eta = now + runs * opt.dt_days * DAY_MS
    conf = clamp(
        0.15 + 0.55 * (0.7 * fit.r2 + 0.3 * size_factor)
        + 0.3 * stability - 0.2 * recency_penalty, 0, 1,
    )
    lo, hi = _run_range(runs, 0.22 + 0.30 * (1 - conf) + 0.12 * (1 - stability))
    return HighscorePrediction(
        eta_ts=eta, eta_human=humanize_eta(eta - now), runs_expected=runs,
        runs_lo=lo, runs_hi=hi,
        opt_pause_hours=max(1 / 60, min(opt.dt_days * 24, gap_minutes / 60)),
        confidence=_bucket(conf), **diag,
    )
