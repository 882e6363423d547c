"""Tests for the Correlator — Pearson r on matched daily averages."""

from __future__ import annotations

import pytest
from conftest import TODAY, days_ago

from vitalog.domains.health.domain_logic.correlator import Correlator, interpret, pearson


@pytest.fixture
def correlator(health_repository):
    return Correlator(health_repository)


def _series(add_obs, metric_type, values, start_offset=0):
    for i, value in enumerate(values):
        add_obs(metric_type, value, days_ago(start_offset + i))


class TestPearson:
    def test_perfect_positive(self):
        assert pearson([1, 2, 3, 4, 5], [2, 4, 6, 8, 10]) == pytest.approx(1.0)

    def test_perfect_negative(self):
        assert pearson([1, 2, 3], [3, 2, 1]) == pytest.approx(-1.0)

    def test_constant_series_is_zero(self):
        assert pearson([5, 5, 5, 5], [1, 2, 3, 4]) == 0.0


class TestInterpret:
    @pytest.mark.parametrize(
        ("r", "expected"),
        [(0.1, "weak"), (-0.29, "weak"), (0.3, "moderate"), (-0.69, "moderate"),
         (0.7, "strong"), (-0.95, "strong")],
    )
    def test_bands(self, r, expected):
        assert interpret(r, 30) == expected

    def test_low_sample_note(self):
        assert interpret(0.8, 5) == "strong (low sample size: n=5)"


class TestCorrelate:
    def test_negative_correlation(self, correlator, add_obs):
        _series(add_obs, "sleep_hours", [8, 7, 6, 5, 4])
        _series(add_obs, "pain", [1, 2, 3, 4, 5])

        result = correlator.correlate("sleep_hours", "pain", today=TODAY)
        assert result.coefficient == -1.0
        assert result.data_points == 5
        assert result.interpretation == "strong (low sample size: n=5)"

    def test_only_matching_days_are_paired(self, correlator, add_obs):
        _series(add_obs, "sleep_hours", [8, 7, 6, 5])
        _series(add_obs, "pain", [1, 2, 3, 4], start_offset=2)

        result = correlator.correlate("sleep_hours", "pain", today=TODAY)
        assert result.data_points == 2
        assert result.interpretation == "insufficient data"
        assert result.coefficient == 0.0

    def test_same_day_values_are_averaged(self, correlator, add_obs):
        _series(add_obs, "water", [1000, 2000, 3000])
        _series(add_obs, "mood", [5, 6, 7])
        # Two more mood entries today average today's mood to 8
        add_obs("mood", 9, TODAY, hour=20)
        add_obs("mood", 10, TODAY, hour=21)

        result = correlator.correlate("water", "mood", today=TODAY)
        assert result.data_points == 3
        assert result.coefficient == pytest.approx(-0.5, abs=0.01)
        assert result.interpretation.startswith("moderate")

    def test_enough_pairs_drop_the_sample_note(self, correlator, add_obs):
        _series(add_obs, "steps", [float(i) for i in range(12)])
        _series(add_obs, "mood", [float(i) for i in range(12)])
        result = correlator.correlate("steps", "mood", today=TODAY)
        assert result.interpretation == "strong"
        assert result.data_points == 12

    def test_last_days_window(self, correlator, add_obs):
        _series(add_obs, "sleep_hours", [8, 7, 6, 5, 4, 3])
        _series(add_obs, "pain", [1, 2, 3, 4, 5, 6])

        result = correlator.correlate("sleep_hours", "pain", last_days=3, today=TODAY)
        assert result.data_points == 4

    def test_no_data(self, correlator):
        result = correlator.correlate("sleep_hours", "pain", today=TODAY)
        assert result.data_points == 0
        assert result.interpretation == "insufficient data"
