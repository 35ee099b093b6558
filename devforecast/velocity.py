"""
Velocity and cycle-time statistics.

Uses completed sprints to derive team velocity, and completed items to
derive how long stories take from start to finish.
"""

import statistics
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from .config import ForecastConfig
from .models import Priority, Sprint, SprintStatus, WorkItem


@dataclass
class VelocityStats:
    """Historical velocity statistics."""
    average: float
    median: float
    std_dev: float
    min: float
    max: float
    trend: str  # "improving", "stable", "declining", "unknown"
    sprints_analyzed: int

    @property
    def variation_ratio(self) -> Optional[float]:
        """Coefficient of variation, None without enough history."""
        if self.sprints_analyzed < 2 or self.average <= 0:
            return None
        return self.std_dev / self.average

    def to_dict(self) -> dict:
        return {
            "average": round(self.average, 1),
            "median": self.median,
            "std_dev": round(self.std_dev, 1),
            "min": self.min,
            "max": self.max,
            "trend": self.trend,
            "sprints_analyzed": self.sprints_analyzed,
        }


@dataclass
class SprintVelocity:
    """Planned vs completed work for one sprint."""
    sprint_id: str
    sprint_name: str
    start_date: date
    end_date: date
    status: SprintStatus
    total_stories: int = 0
    completed_stories: int = 0
    planned_points: float = 0
    completed_points: float = 0

    @property
    def completion_rate(self) -> float:
        if self.total_stories == 0:
            return 0.0
        return self.completed_stories / self.total_stories * 100

    @property
    def counts_toward_velocity(self) -> bool:
        return self.status is SprintStatus.COMPLETED and self.completed_points > 0

    def to_dict(self) -> dict:
        return {
            "sprint_id": self.sprint_id,
            "sprint_name": self.sprint_name,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "status": self.status.value,
            "total_stories": self.total_stories,
            "completed_stories": self.completed_stories,
            "planned_points": self.planned_points,
            "completed_points": self.completed_points,
            "completion_rate": round(self.completion_rate, 1),
        }


def item_points(item: WorkItem, unestimated_points: float = 0.0) -> float:
    points = item.points
    return float(points) if points is not None else unestimated_points


TREND_THRESHOLD = 0.1


def velocity_trend(history: list[float]) -> str:
    """Later half of the history against the earlier half, "unknown" below four sprints."""
    if len(history) < 4:
        return "unknown"
    half = len(history) // 2
    earlier = statistics.fmean(history[:half])
    later = statistics.fmean(history[half:])
    if later > earlier * (1 + TREND_THRESHOLD):
        return "improving"
    if later < earlier * (1 - TREND_THRESHOLD):
        return "declining"
    return "stable"


def velocity_stats(rows: Iterable[SprintVelocity]) -> VelocityStats:
    """
    Velocity statistics over the sprint table.

    Only completed sprints that delivered points count. History runs
    oldest sprint first.
    """
    history = [
        r.completed_points
        for r in sorted(rows, key=lambda r: r.start_date)
        if r.counts_toward_velocity
    ]
    if not history:
        return VelocityStats(
            average=0, median=0, std_dev=0, min=0, max=0,
            trend="unknown", sprints_analyzed=0
        )

    return VelocityStats(
        average=statistics.fmean(history),
        median=statistics.median(history),
        std_dev=statistics.pstdev(history),
        min=min(history),
        max=max(history),
        trend=velocity_trend(history),
        sprints_analyzed=len(history)
    )


def sprint_velocity(
    items: Iterable[WorkItem],
    sprints: Iterable[Sprint],
    use_actual_dates: bool = False,
    unestimated_points: float = 0.0
) -> list[SprintVelocity]:
    """
    Planned and completed points per sprint, ordered by start date.

    With ``use_actual_dates`` a completed item counts toward the sprint
    whose date window contains its actual end date; otherwise it counts
    toward the sprint it is assigned to.
    """
    items = list(items)
    completed = [i for i in items if i.is_completed]
    rows = []

    for sprint in sorted(sprints, key=lambda s: (s.start_date, s.id)):
        planned = [i for i in items if i.sprint_id == sprint.id]
        if use_actual_dates:
            done = [i for i in completed if i.actual_end_date and sprint.contains(i.actual_end_date)]
        else:
            done = [i for i in completed if i.sprint_id == sprint.id]

        rows.append(SprintVelocity(
            sprint_id=sprint.id,
            sprint_name=sprint.name,
            start_date=sprint.start_date,
            end_date=sprint.end_date,
            status=sprint.status,
            total_stories=len(planned),
            completed_stories=len([i for i in planned if i.is_completed]),
            planned_points=sum(item_points(i, unestimated_points) for i in planned),
            completed_points=sum(item_points(i, unestimated_points) for i in done),
        ))

    return rows


def average_velocity(
    rows: list[SprintVelocity],
    config: ForecastConfig
) -> tuple[float, VelocityStats]:
    """
    Team velocity in points per sprint.

    The override is used verbatim when set. Otherwise the mean over
    completed sprints; sprints that completed nothing are left out rather
    than averaged in as zero.
    """
    stats = velocity_stats(rows)
    if config.velocity_override is not None:
        return config.velocity_override, stats
    return stats.average, stats


@dataclass
class CycleTimeStats:
    """Days from start to completion across completed items."""
    average: float = 0.0
    median: float = 0.0
    min: int = 0
    max: int = 0
    count: int = 0
    by_priority: dict[str, dict] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "average": self.average,
            "median": self.median,
            "min": self.min,
            "max": self.max,
            "count": self.count,
            "by_priority": self.by_priority,
        }


def cycle_time_days(item: WorkItem) -> Optional[int]:
    if not item.start_date or not item.actual_end_date:
        return None
    return abs((item.actual_end_date - item.start_date).days)


def _summarize(times: list[int]) -> dict:
    ordered = sorted(times)
    return {
        "average": round(sum(ordered) / len(ordered), 1),
        "median": ordered[len(ordered) // 2],
        "min": ordered[0],
        "max": ordered[-1],
        "count": len(ordered),
    }


def cycle_time_stats(items: Iterable[WorkItem]) -> CycleTimeStats:
    """Cycle-time statistics for completed items with start and end dates."""
    measured = []
    for item in items:
        days = cycle_time_days(item) if item.is_completed else None
        if days is not None:
            measured.append((item, days))

    if not measured:
        return CycleTimeStats()

    overall = _summarize([days for _, days in measured])
    by_priority = {}
    for priority in Priority:
        times = [days for item, days in measured if item.priority == priority]
        if times:
            by_priority[priority.value] = _summarize(times)

    return CycleTimeStats(by_priority=by_priority, **overall)
