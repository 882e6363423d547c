"""Shared test fixtures for vitalog tests."""

from __future__ import annotations

import sys
from datetime import date, datetime, timedelta, timezone
from pathlib import Path

import pytest

# ---------------------------------------------------------------------------
# Test hermeticity
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _force_hermetic_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ENCRYPTION_KEY", "")
    monkeypatch.setenv("DB_PATH", ":memory:")
    monkeypatch.setenv("UNIT_SYSTEM", "metric")
    monkeypatch.delenv("HEIGHT_CM", raising=False)

# Allow running tests without `pip install -e .` by making `src/` importable.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_SRC_DIR = _PROJECT_ROOT / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

from vitalog.core.storage.models import Category, Observation  # noqa: E402

# Fixed reference day for analytics tests (a Wednesday).
TODAY = date(2026, 3, 18)


def days_ago(n: int, today: date = TODAY) -> date:
    return today - timedelta(days=n)


def at(day: date, hour: int = 12, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# In-memory storage fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def health_db():
    """Create an in-memory HealthDatabase for testing."""
    from vitalog.core.storage.database import HealthDatabase

    db = HealthDatabase(":memory:")
    db.initialize()
    yield db
    db.close()


@pytest.fixture
def field_encryptor():
    """Create a FieldEncryptor with a test key."""
    from vitalog.core.storage.encryption import FieldEncryptor

    return FieldEncryptor(FieldEncryptor.generate_key())


@pytest.fixture
def health_repository(health_db, field_encryptor):
    """Create a HealthRepository backed by in-memory SQLite."""
    from vitalog.core.storage.repository import HealthRepository

    return HealthRepository(health_db, field_encryptor)


@pytest.fixture
def audit_logger(health_db):
    """Create an AuditLogger backed by in-memory SQLite."""
    from vitalog.core.audit.logger import AuditLogger

    return AuditLogger(health_db)


@pytest.fixture
def add_obs(health_repository):
    """Insert an observation on a given day and return it.

    Usage::

        add_obs("weight", 82.0, days_ago(3))
        add_obs("ibuprofen", 1, TODAY, source="med_take", category=Category.MEDICATION)
    """

    def _add(
        metric_type: str,
        value: float,
        day: date = TODAY,
        *,
        hour: int = 12,
        minute: int = 0,
        source: str = "manual",
        category: Category | None = None,
        note: str | None = None,
        tags: tuple[str, ...] = (),
    ) -> Observation:
        obs = Observation.new(
            metric_type,
            value,
            timestamp=at(day, hour, minute),
            category=category,
            note=note,
            tags=tags,
            source=source,
        )
        health_repository.insert_observation(obs)
        return obs

    return _add
