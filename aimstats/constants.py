from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

# ── Constants ───────────────────────────────────────────────────────────

MINUTE_MS = 60 * 1000
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS
MINUTE_DAYS = 1 / (24 * 60)

DEFAULT_SESSION_GAP_MIN = 15  # app setting default
FORECAST_SESSION_GAP_MIN = 30

# Length recommender
PEAK_TOLERANCE = 0.01  # fraction of peak a shorter session may give up
MARGINAL_GAIN_CUTOFF = 0.02  # next-run gain below this fraction of peak = done
CONSISTENCY_WINDOW = 3

# Highscore forecaster
MIN_HISTORY_RUNS = 4
HALF_LIFE_RUNS = 6
HALF_LIFE_DAYS = 21
MIN_DAY_WEIGHT = 0.04  # only applied when history > 40 runs
TARGET_MARGIN = 0.003  # target = best + 0.3%
NEAR_BEST_MARGIN = 0.0002
IQR_MIN_PAIRS = 6
TAU_STEPS = 25
PAUSE_STEPS = 60
MAX_RUNS_REASONABLE = 500
SIZE_FULL_PAIRS = 24  # pair count at which sample size stops adding confidence
RECENCY_FULL_DAYS = 21

Metric = Literal["score", "acc"]
Confidence = Literal["low", "med", "high"]


# ── Data ────────────────────────────────────────────────────────────────


@dataclass(slots=True, frozen=True)
class RunRecord:
    scenario: str
    score: float
    accuracy: float  # hits / shots, 0..1
    ttk: float | None = None  # seconds
    ts: float | None = None  # epoch ms, None = unparseable
    duration_ms: float = 0.0
    file_name: str = ""


@dataclass(slots=True, frozen=True)
class HistoryPoint:
    t: float  # epoch ms
    score: float
    session_id: int
