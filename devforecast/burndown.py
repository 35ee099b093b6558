"""
Sprint Burndown

Remaining points over a sprint as a step function: an item's points burn
at the instant it completes, never before.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Union

from .models import Sprint, SprintStatus, WorkItem
from .velocity import item_points


@dataclass
class BurndownPoint:
    """One day of the burndown chart."""
    day: int
    date: date
    ideal: float
    remaining: Optional[float]  # None for days after the as-of date

    def to_dict(self) -> dict:
        return {
            "day": self.day,
            "date": self.date.isoformat(),
            "ideal": round(self.ideal, 2),
            "remaining": self.remaining,
        }


@dataclass
class SprintBurndown:
    """Burndown series for a single sprint."""
    sprint_id: str
    sprint_name: str
    total_points: float
    completions: list[tuple[date, str, float]] = field(default_factory=list)
    points: list[BurndownPoint] = field(default_factory=list)
    undated_completed_points: float = 0.0

    def remaining_at(self, instant: Union[date, datetime]) -> float:
        """Remaining points at ``instant``; an item completes at the start of its end date."""
        day = instant.date() if isinstance(instant, datetime) else instant
        burned = sum(points for completed_on, _, points in self.completions if completed_on <= day)
        return self.total_points - burned

    def to_dict(self) -> dict:
        return {
            "sprint_id": self.sprint_id,
            "sprint_name": self.sprint_name,
            "total_points": self.total_points,
            "undated_completed_points": self.undated_completed_points,
            "completions": [
                {"date": d.isoformat(), "story_id": story_id, "points": points}
                for d, story_id, points in self.completions
            ],
            "series": [p.to_dict() for p in self.points],
        }


def sprint_burndown(
    sprint: Sprint,
    items: Iterable[WorkItem],
    as_of: Optional[date] = None,
    unestimated_points: float = 0.0
) -> SprintBurndown:
    """
    Build the burndown series for ``sprint``.

    Args:
        sprint: Sprint to chart
        items: All work items; only those assigned to the sprint are used
        as_of: Days after this date have no remaining value
        unestimated_points: Points counted for unestimated items
    """
    sprint_items = [i for i in items if i.sprint_id == sprint.id]
    total = sum(item_points(i, unestimated_points) for i in sprint_items)

    completions = []
    undated = 0.0
    for item in sprint_items:
        if not item.is_completed:
            continue
        if item.actual_end_date is None:
            undated += item_points(item, unestimated_points)
            continue
        completions.append((item.actual_end_date, item.story_id, item_points(item, unestimated_points)))
    completions.sort()

    burndown = SprintBurndown(
        sprint_id=sprint.id,
        sprint_name=sprint.name,
        total_points=total,
        completions=completions,
        undated_completed_points=undated,
    )

    total_days = max(1, (sprint.end_date - sprint.start_date).days)
    for day in range(total_days + 1):
        current = sprint.start_date + timedelta(days=day)
        ideal = max(0.0, total - total / total_days * day)
        remaining = None if as_of is not None and current > as_of else burndown.remaining_at(current)
        burndown.points.append(BurndownPoint(day=day, date=current, ideal=ideal, remaining=remaining))

    return burndown


def select_sprint(sprints: Iterable[Sprint], sprint_id: Optional[str] = None) -> Optional[Sprint]:
    """
    Pick the sprint to chart: the requested one, else the active sprint,
    else the most recently completed one, else the earliest planned one.
    """
    sprints = list(sprints)
    if sprint_id is not None:
        return next((s for s in sprints if s.id == sprint_id), None)

    active = [s for s in sprints if s.status == SprintStatus.ACTIVE]
    if active:
        return min(active, key=lambda s: s.start_date)

    completed = [s for s in sprints if s.status == SprintStatus.COMPLETED]
    if completed:
        return max(completed, key=lambda s: s.end_date)

    planned = [s for s in sprints if s.status == SprintStatus.PLANNED]
    if planned:
        return min(planned, key=lambda s: s.start_date)
    return None
