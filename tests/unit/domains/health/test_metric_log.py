"""Tests for MetricLog — aliases, unit input, batches and views."""

from __future__ import annotations

import pytest
from conftest import TODAY, days_ago

from vitalog.core.errors import InvalidParameterError
from vitalog.domains.health.domain_logic.metric_log import MetricLog, split_tags


@pytest.fixture
def metric_log(health_repository):
    return MetricLog(health_repository, aliases={"w": "weight", "p": "pain"})


class TestSplitTags:
    def test_comma_string(self):
        assert split_tags("knee, run ,") == ["knee", "run"]

    def test_list(self):
        assert split_tags(["a", " ", "b "]) == ["a", "b"]

    def test_empty(self):
        assert split_tags(None) == []
        assert split_tags("") == []


class TestLog:
    def test_alias_resolved_before_storing(self, metric_log, health_repository):
        obs = metric_log.log("w", 82.4, note="after run", tags="morning")
        assert obs.metric_type == "weight"
        stored = health_repository.query_by_type("weight")[0]
        assert stored.value == 82.4
        assert stored.unit == "kg"
        assert stored.note == "after run"
        assert stored.tags == ("morning",)
        assert stored.source == "manual"

    def test_backdated_entry_at_noon(self, metric_log):
        obs = metric_log.log("pain", 4, on=days_ago(2))
        assert obs.day == days_ago(2)
        assert obs.timestamp.hour == 12

    def test_custom_source(self, metric_log):
        assert metric_log.log("steps", 9000, source="watch").source == "watch"

    def test_imperial_input_stored_metric(self, health_repository):
        log = MetricLog(health_repository, unit_system="imperial")
        obs = log.log("weight", 220.462)
        assert obs.value == pytest.approx(100.0)

        shown = log.display(obs)
        assert shown["value"] == 220.5
        assert shown["unit"] == "lbs"

    def test_unknown_type_keeps_its_unit_in_imperial(self, health_repository):
        log = MetricLog(health_repository, unit_system="imperial")
        shown = log.display(log.log("mood", 7))
        assert shown["value"] == 7.0
        assert shown["unit"] == "1-10"


class TestBatch:
    def test_json_batch(self, metric_log, health_repository):
        logged = metric_log.log_batch(
            '[{"type": "w", "value": 82}, {"type": "pain", "value": 3, "note": "knee"}]'
        )
        assert [o.metric_type for o in logged] == ["weight", "pain"]
        assert health_repository.count_observations() == 2

    def test_invalid_entry_stores_nothing(self, metric_log, health_repository):
        with pytest.raises(InvalidParameterError):
            metric_log.log_batch([{"type": "weight", "value": 82}, {"type": "pain"}])
        assert health_repository.count_observations() == 0

    def test_not_json(self, metric_log):
        with pytest.raises(InvalidParameterError):
            metric_log.log_batch("{not json")

    def test_not_a_list(self, metric_log):
        with pytest.raises(InvalidParameterError):
            metric_log.log_batch('{"type": "weight", "value": 82}')


class TestShow:
    def test_show_type_newest_first(self, metric_log, add_obs):
        for offset in range(5):
            add_obs("weight", 80 + offset, days_ago(offset))
        view = metric_log.show("w", last=3)
        assert view["type"] == "weight"
        assert [e["value"] for e in view["entries"]] == [80, 81, 82]

    def test_show_defaults_to_latest_only(self, metric_log, add_obs):
        add_obs("weight", 80, days_ago(1))
        add_obs("weight", 81)
        assert len(metric_log.show("weight")["entries"]) == 1

    def test_show_day(self, metric_log, add_obs):
        add_obs("weight", 80, days_ago(1))
        add_obs("pain", 3, hour=9)
        add_obs("water", 500, hour=10)
        view = metric_log.show(on=TODAY)
        assert view["date"] == TODAY.isoformat()
        assert [e["type"] for e in view["entries"]] == ["pain", "water"]
