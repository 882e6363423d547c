"""Tests for the TrendAnalyzer — bucketing, slope and projection."""

from __future__ import annotations

from datetime import date

import pytest
from conftest import TODAY, at, days_ago

from vitalog.core.storage.models import Observation
from vitalog.domains.health.domain_logic.analytics_models import TrendPeriod
from vitalog.domains.health.domain_logic.trend_analyzer import (
    TrendAnalyzer,
    bucket_label,
    clamp_projection,
    linear_slope,
)


@pytest.fixture
def analyzer(health_repository):
    return TrendAnalyzer(health_repository)


class TestBucketLabel:
    def _obs(self, day: date) -> Observation:
        return Observation.new("weight", 80, timestamp=at(day))

    def test_daily(self):
        assert bucket_label(self._obs(TODAY), TrendPeriod.DAILY) == "2026-03-18"

    def test_weekly_uses_iso_week(self):
        assert bucket_label(self._obs(TODAY), TrendPeriod.WEEKLY) == "2026-W12"
        # Jan 1 2027 falls in ISO week 53 of 2026
        assert bucket_label(self._obs(date(2027, 1, 1)), TrendPeriod.WEEKLY) == "2026-W53"

    def test_monthly(self):
        assert bucket_label(self._obs(TODAY), TrendPeriod.MONTHLY) == "2026-03"


class TestHelpers:
    def test_slope_of_line(self):
        assert linear_slope([1.0, 3.0, 5.0, 7.0]) == pytest.approx(2.0)

    def test_slope_needs_two_points(self):
        assert linear_slope([5.0]) == 0.0

    def test_clamp_positive_series(self):
        assert clamp_projection(200.0, 100.0) == 150.0
        assert clamp_projection(-10.0, 100.0) == 50.0
        assert clamp_projection(120.0, 100.0) == 120.0

    def test_clamp_negative_series(self):
        assert clamp_projection(-200.0, -100.0) == -150.0
        assert clamp_projection(0.0, -100.0) == -50.0


class TestCompute:
    def test_no_history(self, analyzer):
        result = analyzer.compute("weight", TrendPeriod.WEEKLY)
        assert result.is_empty
        assert result.trend.direction == "stable"
        assert result.trend.rate == 0.0
        assert result.trend.projected_30d is None

    def test_single_bucket_projects_its_average(self, analyzer, add_obs):
        add_obs("weight", 80.0, hour=8)
        add_obs("weight", 81.0, hour=20)
        result = analyzer.compute("weight", TrendPeriod.DAILY)
        assert len(result.data) == 1
        assert result.data[0].avg == 80.5
        assert result.data[0].count == 2
        assert result.trend.direction == "stable"
        assert result.trend.projected_30d == 80.5

    def test_increasing_daily(self, analyzer, add_obs):
        for offset, value in zip(range(4, -1, -1), [80, 81, 82, 83, 84]):
            add_obs("weight", value, days_ago(offset))
        result = analyzer.compute("weight", TrendPeriod.DAILY)

        assert [b.label for b in result.data][0] == days_ago(4).isoformat()
        assert result.trend.direction == "increasing"
        assert result.trend.rate == 1.0
        assert result.trend.rate_unit == "per day"
        assert result.trend.projected_30d == 114.0

    def test_decreasing_projection_is_clamped(self, analyzer, add_obs):
        for offset, value in zip(range(2, -1, -1), [100, 98, 96]):
            add_obs("sleep_hours", value, days_ago(offset))
        result = analyzer.compute("sleep_hours", TrendPeriod.DAILY)

        assert result.trend.direction == "decreasing"
        assert result.trend.rate == -2.0
        assert result.trend.projected_30d == 48.0

    def test_flat_series_is_stable(self, analyzer, add_obs):
        for offset in range(5):
            add_obs("pain", 3, days_ago(offset))
        result = analyzer.compute("pain", TrendPeriod.DAILY)
        assert result.trend.direction == "stable"
        assert result.trend.projected_30d == 3.0

    def test_weekly_buckets_and_rate(self, analyzer, add_obs):
        # Three ISO weeks, one point per week rising by 1.4
        add_obs("weight", 80.0, days_ago(14))
        add_obs("weight", 81.4, days_ago(7))
        add_obs("weight", 82.8, TODAY)
        result = analyzer.compute("weight", TrendPeriod.WEEKLY)

        assert [b.label for b in result.data] == ["2026-W10", "2026-W11", "2026-W12"]
        assert result.trend.rate == 1.4
        assert result.trend.rate_unit == "per week"
        assert result.trend.projected_30d == pytest.approx(88.8, abs=0.05)

    def test_monthly_buckets(self, analyzer, add_obs):
        add_obs("weight", 80.0, date(2026, 1, 10))
        add_obs("weight", 82.0, date(2026, 1, 20))
        add_obs("weight", 79.0, date(2026, 2, 5))
        result = analyzer.compute("weight", TrendPeriod.MONTHLY)
        assert [(b.label, b.avg, b.min, b.max) for b in result.data] == [
            ("2026-01", 81.0, 80.0, 82.0),
            ("2026-02", 79.0, 79.0, 79.0),
        ]
        assert result.trend.rate_unit == "per month"

    def test_last_n_keeps_most_recent_buckets(self, analyzer, add_obs):
        for offset in range(20):
            add_obs("water", 1000 + offset, days_ago(offset))
        result = analyzer.compute("water", TrendPeriod.DAILY, last_n=5)
        assert len(result.data) == 5
        assert result.data[-1].label == TODAY.isoformat()

    def test_default_keeps_twelve_buckets(self, analyzer, add_obs):
        for offset in range(20):
            add_obs("water", 1000, days_ago(offset))
        assert len(analyzer.compute("water", TrendPeriod.DAILY).data) == 12

    def test_rate_rounds_half_away_from_zero(self, analyzer, add_obs):
        add_obs("pain", 1.0, days_ago(1))
        add_obs("pain", 1.25, TODAY)
        result = analyzer.compute("pain", TrendPeriod.DAILY)
        assert result.trend.direction == "increasing"
        assert result.trend.rate == 0.3

    def test_negative_rate_rounds_half_away_from_zero(self, analyzer, add_obs):
        add_obs("pain", 1.25, days_ago(1))
        add_obs("pain", 1.0, TODAY)
        assert analyzer.compute("pain", TrendPeriod.DAILY).trend.rate == -0.3

    def test_since_drops_older_history(self, analyzer, add_obs):
        add_obs("weight", 100.0, days_ago(30))
        add_obs("weight", 95.0, days_ago(20))
        add_obs("weight", 80.0, days_ago(3))
        add_obs("weight", 80.0, days_ago(1))
        result = analyzer.compute("weight", TrendPeriod.DAILY, since=days_ago(7))
        assert len(result.data) == 2
        assert result.trend.direction == "stable"
