"""Goal management and progress evaluation."""

from __future__ import annotations

import logging
from datetime import date

from vitalog.core.errors import GoalNotFoundError
from vitalog.core.storage.models import (
    Category,
    Direction,
    Goal,
    Observation,
    Timeframe,
    is_cumulative,
    utc_now,
)
from vitalog.core.storage.repository import HealthRepository
from vitalog.domains.health.domain_logic.adherence import week_start
from vitalog.domains.health.domain_logic.analytics_models import GoalStatus

logger = logging.getLogger(__name__)

# Recent entries inspected to tell a medication name from a regular metric
_MEDICATION_SAMPLE = 20
# Display-only closeness for ``equal`` progress text; is_met stays exact
_EQUAL_DISPLAY_TOLERANCE = 0.01


def _num(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def format_progress(goal: Goal, current: float) -> str:
    target = goal.target_value
    if goal.direction is Direction.BELOW:
        if current <= target:
            return f"at target ({_num(current)} <= {_num(target)})"
        return f"{_num(current - target)} to go ({_num(current)} → {_num(target)})"
    if goal.direction is Direction.ABOVE:
        if current >= target:
            return f"target met ({_num(current)} >= {_num(target)})"
        return f"{_num(target - current)} remaining ({_num(current)}/{_num(target)})"
    if abs(current - target) < _EQUAL_DISPLAY_TOLERANCE:
        return f"at target ({_num(current)})"
    return f"current: {_num(current)}, target: {_num(target)}"


class GoalEvaluator:
    """Sets, retires and evaluates metric goals.

    Usage::

        goals = GoalEvaluator(repository)
        goals.set_goal("water", 2000, "above", "daily")
        statuses = goals.goal_status()
    """

    def __init__(self, repository: HealthRepository) -> None:
        self._repo = repository

    def set_goal(
        self,
        metric_type: str,
        target_value: float,
        direction: str,
        timeframe: str,
    ) -> Goal:
        """Create a goal, soft-retiring the active goal for the same type.

        Raises:
            InvalidParameterError: If direction or timeframe do not parse.
        """
        goal = Goal.new(
            metric_type,
            target_value,
            Direction.parse(direction),
            Timeframe.parse(timeframe),
        )
        existing = self._repo.get_goal_by_type(metric_type)
        if existing is not None:
            self._repo.deactivate_goal(existing.id)
            logger.info("Retired goal %s for %s", existing.id, metric_type)
        self._repo.insert_goal(goal)
        return goal

    def remove_goal(self, id_or_type: str) -> None:
        """Retire a goal by id, falling back to the metric type."""
        if self._repo.deactivate_goal(id_or_type):
            return
        if not self._repo.deactivate_goals_by_type(id_or_type):
            raise GoalNotFoundError(id_or_type)

    def goal_status(
        self, metric_type: str | None = None, *, today: date | None = None
    ) -> list[GoalStatus]:
        """Evaluate every active goal (or the one for ``metric_type``)."""
        today = today or utc_now().date()
        statuses: list[GoalStatus] = []
        for goal in self._repo.list_goals():
            if metric_type is not None and goal.metric_type != metric_type:
                continue
            current = self.current_value(goal, today)
            statuses.append(
                GoalStatus(
                    id=goal.id,
                    metric_type=goal.metric_type,
                    target_value=goal.target_value,
                    direction=goal.direction.value,
                    timeframe=goal.timeframe.value,
                    current_value=current,
                    is_met=goal.is_met(current) if current is not None else False,
                    progress=format_progress(goal, current) if current is not None else None,
                )
            )
        return statuses

    def current_value(self, goal: Goal, today: date) -> float | None:
        """The value a goal is judged on for its timeframe.

        Cumulative types (and medication dose counts) are summed over the
        day or the ISO week to date; other types take the latest entry.
        Monthly goals always use the single most recent entry.
        """
        is_med = self._is_medication_type(goal.metric_type)

        def relevant(obs: Observation) -> bool:
            return (obs.category is Category.MEDICATION) == is_med

        if goal.timeframe is Timeframe.MONTHLY:
            recent = self._repo.query_by_type(goal.metric_type, limit=_MEDICATION_SAMPLE)
            latest = next((o for o in recent if relevant(o)), None)
            return latest.value if latest is not None else None

        start = today if goal.timeframe is Timeframe.DAILY else week_start(today)
        entries = [
            o
            for o in self._repo.query_all(goal.metric_type, from_date=start, to_date=today)
            if relevant(o)
        ]
        if not entries:
            return None
        if is_med or is_cumulative(goal.metric_type):
            return sum(o.value for o in entries)
        return entries[-1].value

    def _is_medication_type(self, metric_type: str) -> bool:
        recent = self._repo.query_by_type(metric_type, limit=_MEDICATION_SAMPLE)
        return bool(recent) and all(o.category is Category.MEDICATION for o in recent)
