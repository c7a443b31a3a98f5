"""Session-length and highscore-trend analytics for aim-trainer runs."""

from .constants import HistoryPoint, RunRecord
from .prediction import HighscorePrediction, fit_delta_vs_pause, predict_next_highscore
from .records import load_records, parse_record_timestamp, record_from_stats
from .session_length import (
    ExpectationCurve, LengthRecommendation, LengthStats, expected_avg_vs_length,
    expected_best_vs_length, expected_by_index, recommend_lengths,
)
from .sessions import Session, collect_runs_by_session, group_runs_into_sessions

__version__ = "0.1.0"
