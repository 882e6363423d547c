"""Health data repository — the store surface the analytics read from.

The repository mediates between domain records (Observation, Medication,
Goal) and the SQLite database, using FieldEncryptor to encrypt/decrypt
free-text fields. Every write is committed immediately so the next read
in the same process sees it.
"""

from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any

from vitalog.core.storage.database import HealthDatabase
from vitalog.core.storage.encryption import FieldEncryptor
from vitalog.core.storage.models import (
    Category,
    Direction,
    Frequency,
    Goal,
    Medication,
    Observation,
    Timeframe,
)

logger = logging.getLogger(__name__)

_METRIC_COLUMNS = "id, timestamp, category, type, value, unit, note_enc, tags, source"
_INSERT_METRIC = f"INSERT INTO metrics ({_METRIC_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"


class RepositoryError(Exception):
    """Raised when repository operations fail."""


def _day_start(day: date) -> str:
    return f"{day.isoformat()}T00:00:00"


def _day_end_exclusive(day: date) -> str:
    return _day_start(day + timedelta(days=1))


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


class HealthRepository:
    """CRUD repository for observations, medications and goals.

    Usage::

        db = HealthDatabase(":memory:")
        db.initialize()
        encryptor = FieldEncryptor(key="...")
        repo = HealthRepository(db, encryptor)

        repo.insert_observation(Observation.new("weight", 82.4))
        history = repo.query_by_type("weight", limit=30)
    """

    def __init__(self, database: HealthDatabase, encryptor: FieldEncryptor) -> None:
        self._db = database
        self._enc = encryptor

    # ------------------------------------------------------------------
    # Observations
    # ------------------------------------------------------------------

    def insert_observation(self, observation: Observation) -> str:
        """Persist an observation and return its id."""
        conn = self._db.connection
        conn.execute(_INSERT_METRIC, self._observation_params(observation))
        conn.commit()
        logger.debug(
            "Saved observation %s (type=%s, source=%s)",
            observation.id,
            observation.metric_type,
            observation.source,
        )
        return observation.id

    def insert_observations(self, observations: list[Observation]) -> int:
        """Persist a batch in one transaction; nothing is stored if a row fails."""
        with self._db.transaction() as conn:
            conn.executemany(
                _INSERT_METRIC, [self._observation_params(obs) for obs in observations]
            )
        logger.debug("Saved %d observation(s) in one batch", len(observations))
        return len(observations)

    def query_by_type(self, metric_type: str, *, limit: int = 1) -> list[Observation]:
        """Most recent observations of one type, newest first."""
        rows = self._db.connection.execute(
            f"""SELECT {_METRIC_COLUMNS} FROM metrics
                WHERE type = ? ORDER BY timestamp DESC LIMIT ?""",
            (metric_type, limit),
        ).fetchall()
        return [self._row_to_observation(row) for row in rows]

    def query_by_type_asc(
        self, metric_type: str, *, limit: int | None = None
    ) -> list[Observation]:
        """Full (or first ``limit``) history of one type, oldest first."""
        rows = self._db.connection.execute(
            f"""SELECT {_METRIC_COLUMNS} FROM metrics
                WHERE type = ? ORDER BY timestamp ASC LIMIT ?""",
            (metric_type, -1 if limit is None else limit),
        ).fetchall()
        return [self._row_to_observation(row) for row in rows]

    def query_by_date(self, day: date) -> list[Observation]:
        """All observations on a single UTC calendar day, oldest first."""
        return self.query_by_date_range(day, day)

    def query_by_date_range(self, start: date, end: date) -> list[Observation]:
        """All observations between two UTC days (inclusive), oldest first."""
        return self.query_all(from_date=start, to_date=end)

    def query_all(
        self,
        metric_type: str | None = None,
        *,
        from_date: date | None = None,
        to_date: date | None = None,
    ) -> list[Observation]:
        """Query observations, optionally by type and inclusive day range.

        Returns:
            Observations in ascending timestamp order.
        """
        conditions: list[str] = []
        params: list[Any] = []

        if metric_type is not None:
            conditions.append("type = ?")
            params.append(metric_type)
        if from_date is not None:
            conditions.append("timestamp >= ?")
            params.append(_day_start(from_date))
        if to_date is not None:
            conditions.append("timestamp < ?")
            params.append(_day_end_exclusive(to_date))

        query = f"SELECT {_METRIC_COLUMNS} FROM metrics"
        if conditions:
            query += " WHERE " + " AND ".join(conditions)
        query += " ORDER BY timestamp ASC"

        rows = self._db.connection.execute(query, params).fetchall()
        return [self._row_to_observation(row) for row in rows]

    def distinct_metric_types(self) -> list[str]:
        """Every metric type present in the store, alphabetically."""
        rows = self._db.connection.execute(
            "SELECT DISTINCT type FROM metrics ORDER BY type"
        ).fetchall()
        return [row[0] for row in rows]

    def distinct_entry_dates(self, start: date, end: date) -> list[date]:
        """Days with at least one entry within ``[start, end]``, newest first."""
        rows = self._db.connection.execute(
            """SELECT DISTINCT substr(timestamp, 1, 10) AS d FROM metrics
               WHERE timestamp >= ? AND timestamp < ? ORDER BY d DESC""",
            (_day_start(start), _day_end_exclusive(end)),
        ).fetchall()
        return [date.fromisoformat(row[0]) for row in rows]

    def count_observations(self) -> int:
        row = self._db.connection.execute("SELECT COUNT(*) FROM metrics").fetchone()
        return row[0]

    # ------------------------------------------------------------------
    # Medications
    # ------------------------------------------------------------------

    def insert_medication(self, medication: Medication) -> None:
        """Persist a medication.

        Raises:
            sqlite3.IntegrityError: If an active medication with the same
                name already exists.
        """
        conn = self._db.connection
        conn.execute(
            """INSERT INTO medications
               (id, name, dose, dose_value, dose_unit, route, frequency, active,
                started_at, stopped_at, stop_reason_enc, note_enc, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                medication.id,
                medication.name,
                medication.dose,
                medication.dose_value,
                medication.dose_unit,
                medication.route,
                medication.frequency.value,
                int(medication.active),
                medication.started_at.isoformat(),
                _iso(medication.stopped_at),
                self._enc.encrypt_text(medication.stop_reason),
                self._enc.encrypt_text(medication.note),
                medication.created_at.isoformat(),
            ),
        )
        conn.commit()
        logger.info("Saved medication %s (%s)", medication.name, medication.frequency.value)

    def get_medication_by_name(self, name: str) -> Medication | None:
        """The active medication with this name, if any."""
        row = self._db.connection.execute(
            "SELECT * FROM medications WHERE name = ? AND active = 1", (name,)
        ).fetchone()
        return self._row_to_medication(row) if row is not None else None

    def get_medication_by_name_any(self, name: str) -> Medication | None:
        """The most recently started medication with this name, active or not."""
        row = self._db.connection.execute(
            """SELECT * FROM medications WHERE name = ?
               ORDER BY active DESC, started_at DESC LIMIT 1""",
            (name,),
        ).fetchone()
        return self._row_to_medication(row) if row is not None else None

    def list_medications(self, *, include_stopped: bool = False) -> list[Medication]:
        query = "SELECT * FROM medications"
        if not include_stopped:
            query += " WHERE active = 1"
        query += " ORDER BY name, started_at"
        rows = self._db.connection.execute(query).fetchall()
        return [self._row_to_medication(row) for row in rows]

    def stop_medication(
        self, name: str, stopped_at: datetime, reason: str | None = None
    ) -> bool:
        """Mark the active medication ``name`` as stopped.

        Returns:
            True if an active medication was found and stopped.
        """
        conn = self._db.connection
        cursor = conn.execute(
            """UPDATE medications SET active = 0, stopped_at = ?, stop_reason_enc = ?
               WHERE name = ? AND active = 1""",
            (stopped_at.isoformat(), self._enc.encrypt_text(reason), name),
        )
        conn.commit()
        if cursor.rowcount:
            logger.info("Stopped medication %s", name)
        return cursor.rowcount > 0

    def remove_medication(self, name: str) -> bool:
        """Delete every medication record named ``name``.

        Intake observations are history and are left untouched.
        """
        conn = self._db.connection
        cursor = conn.execute("DELETE FROM medications WHERE name = ?", (name,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Removed %d medication record(s) for %s", cursor.rowcount, name)
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Goals
    # ------------------------------------------------------------------

    def insert_goal(self, goal: Goal) -> None:
        conn = self._db.connection
        conn.execute(
            """INSERT INTO goals
               (id, metric_type, target_value, direction, timeframe, active, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)""",
            (
                goal.id,
                goal.metric_type,
                goal.target_value,
                goal.direction.value,
                goal.timeframe.value,
                int(goal.active),
                goal.created_at.isoformat(),
            ),
        )
        conn.commit()
        logger.info("Saved goal %s for %s", goal.id, goal.metric_type)

    def list_goals(self, *, active_only: bool = True) -> list[Goal]:
        query = "SELECT * FROM goals"
        if active_only:
            query += " WHERE active = 1"
        query += " ORDER BY created_at"
        rows = self._db.connection.execute(query).fetchall()
        return [self._row_to_goal(row) for row in rows]

    def get_goal_by_type(self, metric_type: str) -> Goal | None:
        """The active goal for a metric type, if any."""
        row = self._db.connection.execute(
            """SELECT * FROM goals WHERE metric_type = ? AND active = 1
               ORDER BY created_at DESC LIMIT 1""",
            (metric_type,),
        ).fetchone()
        return self._row_to_goal(row) if row is not None else None

    def deactivate_goal(self, goal_id: str) -> bool:
        """Soft-retire a goal by id. Returns True if an active goal changed."""
        return self._deactivate_goals("id = ?", goal_id)

    def deactivate_goals_by_type(self, metric_type: str) -> bool:
        """Soft-retire every active goal for a metric type."""
        return self._deactivate_goals("metric_type = ?", metric_type)

    def _deactivate_goals(self, where: str, param: str) -> bool:
        conn = self._db.connection
        cursor = conn.execute(
            f"UPDATE goals SET active = 0 WHERE {where} AND active = 1", (param,)
        )
        conn.commit()
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def delete_all_data(self) -> int:
        """Delete ALL health data — observations, medications and goals.

        Returns:
            Number of observation rows deleted.
        """
        count = self.count_observations()
        with self._db.transaction() as conn:
            conn.execute("DELETE FROM metrics")
            conn.execute("DELETE FROM medications")
            conn.execute("DELETE FROM goals")
        logger.warning("Deleted ALL health data: %d observations removed", count)
        return count

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _observation_params(self, observation: Observation) -> tuple[Any, ...]:
        return (
            observation.id,
            observation.timestamp.isoformat(),
            observation.category.value,
            observation.metric_type,
            observation.value,
            observation.unit,
            self._enc.encrypt_text(observation.note),
            json.dumps(list(observation.tags)) if observation.tags else None,
            observation.source,
        )

    def _row_to_observation(self, row: Any) -> Observation:
        tags: tuple[str, ...] = ()
        if row["tags"]:
            try:
                tags = tuple(json.loads(row["tags"]))
            except (json.JSONDecodeError, TypeError) as exc:
                raise RepositoryError(f"Corrupt tags on observation {row['id']}") from exc

        return Observation(
            id=row["id"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            metric_type=row["type"],
            value=row["value"],
            unit=row["unit"],
            category=Category.from_stored(row["category"]),
            note=self._enc.decrypt_text(row["note_enc"]),
            tags=tags,
            source=row["source"],
        )

    def _row_to_medication(self, row: Any) -> Medication:
        return Medication(
            id=row["id"],
            name=row["name"],
            frequency=Frequency.parse(row["frequency"]),
            route=row["route"],
            dose=row["dose"],
            dose_value=row["dose_value"],
            dose_unit=row["dose_unit"],
            active=bool(row["active"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            stopped_at=(
                datetime.fromisoformat(row["stopped_at"]) if row["stopped_at"] else None
            ),
            stop_reason=self._enc.decrypt_text(row["stop_reason_enc"]),
            note=self._enc.decrypt_text(row["note_enc"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    @staticmethod
    def _row_to_goal(row: Any) -> Goal:
        return Goal(
            id=row["id"],
            metric_type=row["metric_type"],
            target_value=row["target_value"],
            direction=Direction.parse(row["direction"]),
            timeframe=Timeframe.parse(row["timeframe"]),
            active=bool(row["active"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )
