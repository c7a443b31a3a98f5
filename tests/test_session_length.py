import numpy as np
import pytest

from aimstats.session_length import (
    ExpectationCurve, LengthStats, expected_avg_vs_length, expected_best_vs_length,
    expected_by_index, metric_of, recommend_lengths,
)
from aimstats.sessions import collect_runs_by_session, group_runs_into_sessions

from conftest import run_at, session_of


def _runs(*score_lists):
    return [session_of(i * 1000, scores) for i, scores in enumerate(score_lists)]


class TestExpectedByIndex:
    def test_shape_matches_longest_session(self):
        curve = expected_by_index(_runs([1, 2, 3, 4], [5], [6, 7]), "score")
        assert len(curve.mean) == len(curve.std) == 4

    def test_empty(self):
        curve = expected_by_index([], "score")
        assert curve.mean == [] and curve.std == []

    def test_population_std(self):
        curve = expected_by_index(_runs([10, 0], [20]), "score")
        assert curve.mean == [15.0, 0.0]
        assert curve.std == [5.0, 0.0]

    def test_accuracy_metric_is_percent(self):
        runs = [[run_at(0, 100, acc=0.42), run_at(3, 100, acc=0.5)]]
        assert expected_by_index(runs, "acc").mean == pytest.approx([42.0, 50.0])

    def test_unknown_metric_raises(self):
        with pytest.raises(ValueError):
            metric_of(run_at(0, 1), "ttk")


class TestBestVsLength:
    def test_running_max_example(self):
        curve = expected_best_vs_length(_runs([10, 20, 15], [5, 25]), "score")
        assert curve == [7.5, 22.5, 22.5]

    def test_non_decreasing(self):
        rng = np.random.default_rng(3)
        runs = _runs(*[rng.integers(0, 1000, size=rng.integers(1, 12)).tolist() for _ in range(20)])
        curve = expected_best_vs_length(runs, "score")
        assert all(b >= a for a, b in zip(curve, curve[1:]))

    def test_empty(self):
        assert expected_best_vs_length([], "score") == []


class TestAvgVsLength:
    def test_only_sessions_reaching_length_count(self):
        stats = expected_avg_vs_length(_runs([10, 20, 30], [40]), "score")
        assert stats.count == [2, 1, 1]
        assert stats.mean == [25.0, 15.0, 20.0]
        assert stats.min[0] == 10.0 and stats.max[0] == 40.0
        assert stats.std[0] == 15.0

    def test_nearest_rank_percentiles(self):
        stats = expected_avg_vs_length(_runs(*[[v] for v in range(1, 11)]), "score")
        assert stats.p10 == [1.0]
        assert stats.p90 == [9.0]


class TestRecommendLengths:
    def test_two_session_example(self, two_sessions):
        runs = collect_runs_by_session(group_runs_into_sessions(two_sessions, 15), "X")
        by_index = expected_by_index(runs, "score")
        assert by_index.mean == pytest.approx([95, 115, 117.5])

        rec = recommend_lengths(by_index, expected_best_vs_length(runs, "score"))
        assert rec.optimal_highscore_runs == 3
        assert rec.optimal_avg_runs == 3
        assert rec.optimal_consistent_runs == 2
        assert rec.warmup_runs == 1

    def test_empty_inputs_default_to_one(self):
        rec = recommend_lengths(ExpectationCurve([], []), [])
        assert (rec.warmup_runs, rec.optimal_avg_runs,
                rec.optimal_consistent_runs, rec.optimal_highscore_runs) == (1, 1, 1, 1)

    def test_all_zero_metrics(self):
        runs = _runs([0, 0, 0], [0, 0])
        rec = recommend_lengths(expected_by_index(runs, "score"), expected_best_vs_length(runs, "score"))
        for v in (rec.warmup_runs, rec.optimal_avg_runs,
                  rec.optimal_consistent_runs, rec.optimal_highscore_runs):
            assert 1 <= v <= 3

    @pytest.mark.parametrize("seed", range(8))
    def test_bounds(self, seed):
        rng = np.random.default_rng(seed)
        runs = _runs(*[(rng.normal(500, 60, size=rng.integers(1, 15))).tolist() for _ in range(12)])
        max_len = max(len(r) for r in runs)
        by_index = expected_by_index(runs, "score")
        best = expected_best_vs_length(runs, "score")
        for stats in (None, expected_avg_vs_length(runs, "score")):
            rec = recommend_lengths(by_index, best, stats)
            for v in (rec.warmup_runs, rec.optimal_avg_runs,
                      rec.optimal_consistent_runs, rec.optimal_highscore_runs):
                assert isinstance(v, int)
                assert 1 <= v <= max_len

    def test_warmup_detects_settling(self):
        mean = [50, 70, 80, 82, 83, 83, 84]
        std = [20, 15, 6, 5, 5, 4, 4]
        rec = recommend_lengths(ExpectationCurve(mean, std), [])
        # |slopes| 20,10,2,1,0,1 -> median 1.5; std median 5
        assert rec.warmup_runs == 5

    def test_highscore_diminishing_returns(self):
        rec = recommend_lengths(ExpectationCurve([1], [0]), [100, 150, 180, 199, 200, 200.5])
        assert rec.optimal_highscore_runs == 4

    def test_prefix_stats_variants(self):
        stats = LengthStats(
            mean=[90, 99.5, 100, 98],
            min=[0] * 4, max=[0] * 4, std=[0] * 4,
            p10=[50, 60, 80, 85],
            p90=[130, 120, 100, 95],
            count=[5, 5, 4, 2],
        )
        rec = recommend_lengths(ExpectationCurve([1, 1, 1, 1], [9, 9, 9, 9]), [1, 1, 1, 1], stats)
        assert rec.optimal_avg_runs == 2
        # interdecile widths 80,60,20,10 -> median 40; windows: 70, 53.3, 30
        assert rec.optimal_consistent_runs == 4
