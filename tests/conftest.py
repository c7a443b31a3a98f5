import pytest

from aimstats.constants import MINUTE_MS, RunRecord

BASE_MS = 1_700_000_000_000.0


def run_at(minute: float, score: float, scenario: str = "X", acc: float = 0.5) -> RunRecord:
    return RunRecord(scenario=scenario, score=score, accuracy=acc, ts=BASE_MS + minute * MINUTE_MS)


def session_of(start_minute: float, scores, scenario: str = "X", spacing: float = 3.0):
    return [run_at(start_minute + i * spacing, s, scenario) for i, s in enumerate(scores)]


@pytest.fixture
def two_sessions():
    """Scenario X: [100, 110, 105] then, a day later, [90, 120, 130]."""
    return session_of(0, [100, 110, 105]) + session_of(24 * 60, [90, 120, 130])
