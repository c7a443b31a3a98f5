from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .constants import (
    CONSISTENCY_WINDOW, MARGINAL_GAIN_CUTOFF, PEAK_TOLERANCE, Metric, RunRecord,
)
from .helpers import median, percentile


# ════════════════════════════════════════════════════════════════════════
#  EXPECTATION CURVES
# ════════════════════════════════════════════════════════════════════════


@dataclass(slots=True)
class ExpectationCurve:
    mean: list[float]
    std: list[float]


@dataclass(slots=True)
class LengthStats:
    mean: list[float]
    min: list[float]
    max: list[float]
    std: list[float]
    p10: list[float]
    p90: list[float]
    count: list[int]


@dataclass(slots=True)
class LengthRecommendation:
    warmup_runs: int
    optimal_avg_runs: int
    optimal_consistent_runs: int
    optimal_highscore_runs: int


def metric_of(rec: RunRecord, metric: Metric) -> float:
    if metric == "score":
        v = rec.score
    elif metric == "acc":
        v = rec.accuracy * 100
    else:
        raise ValueError(f"unknown metric {metric!r}")
    return v if math.isfinite(v) else 0.0


def _max_len(runs: list[list[RunRecord]]) -> int:
    return max((len(r) for r in runs), default=0)


def expected_by_index(runs: list[list[RunRecord]], metric: Metric) -> ExpectationCurve:
    """Mean and population std of the j-th run of a session, for every j."""
    mean: list[float] = []
    std: list[float] = []
    for j in range(_max_len(runs)):
        vals = [metric_of(sess[j], metric) for sess in runs if j < len(sess)]
        if vals:
            mean.append(float(np.mean(vals)))
            std.append(float(np.std(vals)))
        else:
            mean.append(0.0)
            std.append(0.0)
    return ExpectationCurve(mean, std)


def expected_best_vs_length(runs: list[list[RunRecord]], metric: Metric) -> list[float]:
    """Average over sessions of the best value within the first L runs.

    Sessions shorter than L contribute their overall best, so the curve
    never decreases.
    """
    values = [[metric_of(r, metric) for r in sess] for sess in runs]
    curve: list[float] = []
    for length in range(1, _max_len(runs) + 1):
        bests = [max(v[:length]) for v in values if v]
        curve.append(float(np.mean(bests)) if bests else 0.0)
    return curve


def expected_avg_vs_length(runs: list[list[RunRecord]], metric: Metric) -> LengthStats:
    """Distribution of per-session averages over the first L runs.

    Only sessions with at least L runs count towards length L.
    """
    stats = LengthStats([], [], [], [], [], [], [])
    values = [[metric_of(r, metric) for r in sess] for sess in runs]

    for length in range(1, _max_len(runs) + 1):
        avgs = np.array([np.mean(v[:length]) for v in values if len(v) >= length])
        avgs = avgs[np.isfinite(avgs)]
        stats.count.append(int(avgs.size))
        if not avgs.size:
            for arr in (stats.mean, stats.min, stats.max, stats.std, stats.p10, stats.p90):
                arr.append(0.0)
            continue
        stats.mean.append(float(np.mean(avgs)))
        stats.min.append(float(np.min(avgs)))
        stats.max.append(float(np.max(avgs)))
        stats.std.append(float(np.std(avgs)))
        stats.p10.append(percentile(avgs, 10))
        stats.p90.append(percentile(avgs, 90))
    return stats


# ════════════════════════════════════════════════════════════════════════
#  RECOMMENDATIONS
# ════════════════════════════════════════════════════════════════════════


def _warmup(mean: list[float], std: list[float]) -> int:
    """First run where both the improvement rate and the spread have settled."""
    n = len(mean)
    slopes = [abs(mean[i] - mean[i - 1]) for i in range(1, n)]
    slope_med = median(slopes)
    std_med = median(std)
    for i in range(1, n):
        spread = std[i] if i < len(std) else std_med
        if slopes[i - 1] <= slope_med and spread <= std_med:
            return i + 1
    return 1


def _optimal_avg(mean: list[float], length_stats: LengthStats | None) -> int:
    if length_stats is not None and length_stats.mean:
        curve = length_stats.mean
        best_val = max(curve)
        eps = PEAK_TOLERANCE * (abs(best_val) or 1)
        for length, v in enumerate(curve, start=1):
            if best_val - v <= eps:
                return length
        return 1

    if not mean:
        return 1
    cum = (np.cumsum(mean) / np.arange(1, len(mean) + 1)).tolist()
    best_val = max(cum)
    eps = PEAK_TOLERANCE * (best_val or 1)
    for length, v in enumerate(cum, start=1):
        if best_val - v <= eps:
            return length
    return cum.index(best_val) + 1


def _consistency(std: list[float], length_stats: LengthStats | None) -> int:
    if length_stats is not None and length_stats.mean:
        variability = [max(0.0, hi - lo) for lo, hi in zip(length_stats.p10, length_stats.p90)]
    else:
        variability = list(std)
    var_med = median(variability)
    for length in range(2, len(variability) + 1):
        k = min(CONSISTENCY_WINDOW, length)
        if float(np.mean(variability[length - k:length])) <= var_med:
            return length
    return max(1, len(variability))


def _highscore(best_vs_length: list[float]) -> int:
    """Shortest length near the peak of the best-of-L curve after which
    one more run adds little."""
    if not best_vs_length:
        return 1
    curve = [v if math.isfinite(v) else 0.0 for v in best_vs_length]
    peak = max(curve)
    peak_len = curve.index(peak) + 1
    eps = PEAK_TOLERANCE * (peak or 1)
    for length, v in enumerate(curve, start=1):
        nxt = curve[length] if length < len(curve) else v
        marginal = (nxt - v) / peak if peak else 0.0
        if peak - v <= eps and marginal < MARGINAL_GAIN_CUTOFF:
            return length
    return peak_len


def recommend_lengths(
    by_index: ExpectationCurve,
    best_vs_length: list[float],
    length_stats: LengthStats | None = None,
) -> LengthRecommendation:
    """Warm-up, optimal-average, consistency and highscore session lengths.

    ``length_stats`` (from ``expected_avg_vs_length``) switches the average
    and consistency choices to per-length prefix statistics.
    """
    return LengthRecommendation(
        warmup_runs=_warmup(by_index.mean, by_index.std),
        optimal_avg_runs=_optimal_avg(by_index.mean, length_stats),
        optimal_consistent_runs=_consistency(by_index.std, length_stats),
        optimal_highscore_runs=_highscore(best_vs_length),
    )
