"""Tests for CSV/JSON export and import of observations."""

from __future__ import annotations

import csv
import io
import json

import pytest
from conftest import TODAY, days_ago

from vitalog.core.storage.models import Category
from vitalog.domains.health.connectors.export_import import (
    CSV_COLUMNS,
    ImportFormatError,
    ObservationExporter,
    ObservationImporter,
)


@pytest.fixture
def exporter(health_repository):
    return ObservationExporter(health_repository)


@pytest.fixture
def importer(health_repository):
    return ObservationImporter(health_repository)


class TestExport:
    def test_csv_header_and_quoting(self, exporter, add_obs):
        add_obs("pain", 6, note='knee, "sharp"', tags=("knee", "run"))
        text = exporter.to_csv()

        rows = list(csv.reader(io.StringIO(text)))
        assert tuple(rows[0]) == CSV_COLUMNS
        assert rows[1][1:] == ["pain", "6.0", "0-10", 'knee, "sharp"', '["knee", "run"]', "manual"]

    def test_filters(self, exporter, add_obs):
        add_obs("weight", 80, days_ago(10))
        add_obs("weight", 81, days_ago(1))
        add_obs("pain", 2, days_ago(1))

        entries = json.loads(exporter.to_json("weight", from_date=days_ago(5), to_date=TODAY))
        assert [e["value"] for e in entries] == [81.0]
        assert entries[0]["category"] == "body"

    def test_empty_store(self, exporter):
        assert exporter.to_csv() == ",".join(CSV_COLUMNS) + "\n"
        assert json.loads(exporter.to_json()) == []


class TestRoundTrip:
    def _seed(self, add_obs):
        add_obs("weight", 82.35, days_ago(2), note="after run")
        add_obs("pain", 4, days_ago(1), tags=("knee",))
        add_obs("ibuprofen", 1, TODAY, source="med_take", category=Category.MEDICATION)

    @pytest.mark.parametrize("fmt", ["csv", "json"])
    def test_round_trip_preserves_entries(
        self, fmt, exporter, importer, health_repository, add_obs
    ):
        self._seed(add_obs)
        before = health_repository.query_all()
        payload = exporter.to_csv() if fmt == "csv" else exporter.to_json()

        health_repository.delete_all_data()
        count = importer.import_csv(payload) if fmt == "csv" else importer.import_json(payload)
        after = health_repository.query_all()

        assert count == 3

        def key(o):
            return (o.timestamp, o.metric_type, o.value, o.unit, o.note, o.tags, o.source,
                    o.category)

        assert [key(o) for o in after] == [key(o) for o in before]
        assert {o.id for o in after}.isdisjoint({o.id for o in before})


class TestImport:
    def test_missing_source_and_unit_get_defaults(self, importer, health_repository):
        importer.import_csv("timestamp,type,value\n2026-03-18T08:00:00Z,weight,80.5\n")
        obs = health_repository.query_all()[0]
        assert obs.source == "import"
        assert obs.unit == "kg"
        assert obs.day == TODAY

    def test_naive_timestamp_is_utc(self, importer, health_repository):
        importer.import_json('[{"timestamp": "2026-03-18T23:30:00", "type": "pain", "value": 2}]')
        assert health_repository.query_all()[0].day == TODAY

    def test_dose_source_imports_as_medication(self, importer, health_repository):
        importer.import_csv(
            "timestamp,type,value,unit,note,tags,source\n"
            "2026-03-18T12:00:00+00:00,ibuprofen,1,dose,,,med_take\n"
        )
        obs = health_repository.query_all()[0]
        assert obs.category is Category.MEDICATION
        assert obs.is_dose

    def test_comma_separated_tags(self, importer, health_repository):
        importer.import_json(
            '[{"timestamp": "2026-03-18T12:00:00Z", "type": "pain", "value": 3, '
            '"tags": "knee, run"}]'
        )
        assert health_repository.query_all()[0].tags == ("knee", "run")

    def test_blank_csv_lines_skipped(self, importer):
        payload = "timestamp,type,value\n2026-03-18T08:00:00Z,weight,80\n,,\n"
        assert importer.import_csv(payload) == 1

    @pytest.mark.parametrize(
        "payload",
        [
            "timestamp,type\n2026-03-18T08:00:00Z,weight\n",
            "timestamp,type,value\n2026-03-18T08:00:00Z,weight,80\nyesterday,pain,3\n",
            "timestamp,type,value\n2026-03-18T08:00:00Z,weight,heavy\n",
            "timestamp,type,value\n2026-03-18T08:00:00Z,,80\n",
        ],
    )
    def test_invalid_csv_stores_nothing(self, payload, importer, health_repository):
        with pytest.raises(ImportFormatError):
            importer.import_csv(payload)
        assert health_repository.count_observations() == 0

    @pytest.mark.parametrize(
        "payload",
        ["{not json", '{"type": "weight"}', "[1, 2]", '[{"type": "weight"}]'],
    )
    def test_invalid_json(self, payload, importer, health_repository):
        with pytest.raises(ImportFormatError):
            importer.import_json(payload)
        assert health_repository.count_observations() == 0

    def test_error_names_the_line(self, importer):
        payload = "timestamp,type,value\n2026-03-18T08:00:00Z,weight,80\nbad,pain,3\n"
        with pytest.raises(ImportFormatError, match="Line 3"):
            importer.import_csv(payload)
