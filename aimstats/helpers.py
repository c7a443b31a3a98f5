from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from .constants import DAY_MS, MINUTE_MS

REL_EPS = 1e-12


# ════════════════════════════════════════════════════════════════════════
#  SHARED HELPERS
# ════════════════════════════════════════════════════════════════════════


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def round_half_up(x: float) -> int:
    return math.floor(x + 0.5)


def finite(values) -> np.ndarray:
    a = np.asarray(values, dtype=float)
    return a[np.isfinite(a)]


def median(values) -> float:
    v = finite(values)
    return float(np.median(v)) if v.size else 0.0


def percentile(values, p: float) -> float:
    """Nearest-rank percentile (rank = ceil(p/100 * n) - 1)."""
    v = np.sort(finite(values))
    n = v.size
    if not n:
        return 0.0
    rank = math.ceil(clamp(p, 0, 100) / 100 * n) - 1
    return float(v[min(n - 1, max(0, rank))])


def quantile(values, q: float) -> float:
    """Linearly interpolated quantile, 0 for empty input."""
    v = np.asarray(values, dtype=float)
    if not v.size:
        return 0.0
    return float(np.quantile(v, clamp(q, 0, 1)))


def mean_or_zero(values) -> float:
    v = np.asarray(values, dtype=float)
    return float(np.mean(v)) if v.size else 0.0


def recency_weights(n: int, half_life: float) -> np.ndarray:
    """weight_i = 0.5 ** ((n - 1 - i) / half_life); the newest entry weighs 1."""
    idx = np.arange(n, dtype=float)
    return np.power(0.5, (n - 1 - idx) / half_life)


# ── Weighted regression ────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class LinFit:
    a: float  # intercept
    b: float  # slope
    r2: float


def weighted_lin_reg(xs, ys, ws) -> LinFit:
    """Weighted least squares y = a + b·x with weighted R².

    Degenerate inputs (fewer than two points, zero weight, no x spread)
    produce zeros rather than NaN.
    """
    n = min(len(xs), len(ys), len(ws))
    if n < 2:
        return LinFit(0.0, 0.0, 0.0)
    x = np.asarray(xs[:n], dtype=float)
    y = np.asarray(ys[:n], dtype=float)
    w = np.asarray(ws[:n], dtype=float)

    sw = w.sum()
    swx = (w * x).sum()
    swy = (w * y).sum()
    swxx = (w * x * x).sum()
    swxy = (w * x * y).sum()

    # Spread below rounding noise counts as none (constant x or constant y).
    denom = sw * swxx - swx * swx
    b = (sw * swxy - swx * swy) / denom if denom > REL_EPS * sw * swxx else 0.0
    a = (swy - b * swx) / sw if sw != 0 else 0.0

    y_mean = swy / sw if sw != 0 else 0.0
    ss_res = float((w * (y - (a + b * x)) ** 2).sum())
    ss_tot = float((w * (y - y_mean) ** 2).sum())
    r2 = 1 - ss_res / ss_tot if ss_tot > REL_EPS * float((w * y * y).sum()) else 0.0
    return LinFit(float(a), float(b), float(r2))


# ── Formatting ─────────────────────────────────────────────────────


def humanize_eta(ms: float) -> str:
    if not math.isfinite(ms) or ms <= 0:
        return "soon"
    total_min = round_half_up(ms / MINUTE_MS)
    days = total_min // (DAY_MS // MINUTE_MS)
    hours = (total_min % (DAY_MS // MINUTE_MS)) // 60
    mins = total_min % 60
    if days <= 0:
        if hours <= 0:
            return f"{mins}m"
        return f"{hours}h {mins}m" if mins else f"{hours}h"
    if days < 7:
        if mins:
            return f"{days}d {hours}h {mins}m"
        return f"{days}d {hours}h" if hours else f"{days}d"
    weeks, rem_days = divmod(days, 7)
    return f"{weeks}w {rem_days}d" if rem_days else f"{weeks}w"
