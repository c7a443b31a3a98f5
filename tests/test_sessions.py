import random

from aimstats.constants import MINUTE_MS, RunRecord
from aimstats.session_length import expected_by_index
from aimstats.sessions import (
    collect_runs_by_session, collect_scenario_history, group_runs_into_sessions,
    session_averages,
)

from conftest import BASE_MS, run_at, session_of


def _partition(sessions):
    return [list(s.runs) for s in sessions]


def test_empty_input_gives_no_sessions():
    assert group_runs_into_sessions([], 15) == []


def test_gap_exactly_at_threshold_stays_in_session():
    a = run_at(0, 100)
    b = RunRecord(scenario="X", score=101, accuracy=0.5, ts=a.ts + 15 * MINUTE_MS)
    sessions = group_runs_into_sessions([a, b], 15)
    assert len(sessions) == 1
    assert [r.score for r in sessions[0].runs] == [100, 101]


def test_gap_one_ms_over_threshold_splits():
    a = run_at(0, 100)
    b = RunRecord(scenario="X", score=101, accuracy=0.5, ts=a.ts + 15 * MINUTE_MS + 1)
    sessions = group_runs_into_sessions([a, b], 15)
    assert [s.id for s in sessions] == [1, 2]


def test_grouping_ignores_input_order():
    records = (
        session_of(0, [10, 20, 30])
        + session_of(5, [7, 8], scenario="Y")
        + session_of(200, [40, 50])
        + [run_at(200, 45, "Y")]  # same timestamp as another run
    )
    expected = _partition(group_runs_into_sessions(records, 15))
    shuffled = records[:]
    random.Random(7).shuffle(shuffled)
    assert _partition(group_runs_into_sessions(shuffled, 15)) == expected
    assert _partition(group_runs_into_sessions(records, 15)) == expected
    assert len(expected) == 2


def test_untimestamped_records_are_excluded():
    undated = RunRecord(scenario="X", score=999, accuracy=0.5, ts=None)
    sessions = group_runs_into_sessions([undated, run_at(0, 1)], 15)
    assert len(sessions) == 1
    assert all(r.ts is not None for r in sessions[0].runs)


def test_gap_measured_on_full_stream():
    # X runs are 20 minutes apart but Y runs in between keep the session alive
    records = [run_at(0, 1), run_at(10, 5, "Y"), run_at(20, 2)]
    sessions = group_runs_into_sessions(records, 15)
    assert len(sessions) == 1
    assert collect_runs_by_session(sessions, "X") == [[records[0], records[2]]]


def test_collect_runs_by_session_skips_sessions_without_scenario(two_sessions):
    other = session_of(3 * 24 * 60, [1, 2], scenario="Y")
    sessions = group_runs_into_sessions(two_sessions + other, 15)
    runs = collect_runs_by_session(sessions, "X")
    assert [[r.score for r in s] for s in runs] == [[100, 110, 105], [90, 120, 130]]
    assert collect_runs_by_session(sessions, "missing") == []


def test_session_bounds_and_scenarios():
    records = session_of(0, [1, 2, 3]) + [run_at(1, 4, "B")]
    (sess,) = group_runs_into_sessions(records, 15)
    assert sess.start_ms == BASE_MS
    assert sess.end_ms == BASE_MS + 6 * MINUTE_MS
    assert sess.scenarios() == ["B", "X"]


def test_session_averages(two_sessions):
    sessions = group_runs_into_sessions(two_sessions, 15)
    avgs = session_averages(sessions, "X")
    assert avgs["score"] == [105.0, 340 / 3]
    assert avgs["acc"] == [50.0, 50.0]
    assert avgs["ttk"] == [0.0, 0.0]


def test_history_places_undated_runs_at_now():
    now = BASE_MS + 10_000 * MINUTE_MS
    records = session_of(0, [1, 2]) + [RunRecord(scenario="X", score=3, accuracy=0.5, ts=None)]
    hist = collect_scenario_history(records, "X", now, 30)
    assert [h.t for h in hist][-1] == now
    assert [h.session_id for h in hist] == [1, 1, 2]


def test_history_filters_scenario_and_non_finite_scores():
    records = session_of(0, [1, float("nan"), 3]) + session_of(1, [9], scenario="Y")
    hist = collect_scenario_history(records, "X", BASE_MS, 30)
    assert [h.score for h in hist] == [1, 3]


def test_tied_timestamps_order_identically_under_shuffle():
    low, high = run_at(0, 100, acc=0.2), run_at(0, 100, acc=0.9)
    records = [low, high, run_at(1, 100, acc=0.5)]
    means = set()
    for seed in range(10):
        shuffled = records[:]
        random.Random(seed).shuffle(shuffled)
        sessions = group_runs_into_sessions(shuffled, 15)
        assert _partition(sessions) == [[low, high, records[2]]]
        runs = collect_runs_by_session(sessions, "X")
        means.add(tuple(expected_by_index(runs, "acc").mean))
    assert len(means) == 1


def test_mean_run_length_ignores_unknown_durations():
    runs = [
        RunRecord(scenario="X", score=1, accuracy=0.5, ts=BASE_MS, duration_ms=40_000),
        RunRecord(scenario="X", score=2, accuracy=0.5, ts=BASE_MS + MINUTE_MS, duration_ms=60_000),
        RunRecord(scenario="X", score=3, accuracy=0.5, ts=BASE_MS + 2 * MINUTE_MS),
    ]
    (sess,) = group_runs_into_sessions(runs, 15)
    assert sess.mean_run_ms == 50_000
    (bare,) = group_runs_into_sessions(session_of(0, [1, 2]), 15)
    assert bare.mean_run_ms == 0.0


def test_history_keeps_input_order_for_tied_undated_runs():
    now = BASE_MS + 60 * MINUTE_MS
    undated = [RunRecord(scenario="X", score=s, accuracy=0.5, ts=None) for s in (130, 90)]
    hist = collect_scenario_history(session_of(0, [100, 120]) + undated, "X", now, 30)
    assert [h.score for h in hist] == [100, 120, 130, 90]
