"""
Timeline Builder

Walks the ordered queue of unfinished work items and converts story points
into calendar time, one cursor per assignee lane.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Iterable, Optional

from .calendar import MAX_SCAN_DAYS, WorkingCalendar
from .config import ForecastConfig
from .errors import ForecastComputationError
from .models import DevStatus, WorkItem


logger = logging.getLogger(__name__)

EPSILON = 1e-9

# How far past the cursor the builder will look for working time.
MAX_HORIZON_DAYS = 3660


@dataclass
class ScheduledItem:
    """Start/end instants assigned to one work item."""
    story_id: str
    story_number: int
    lane: str
    status: DevStatus
    points: float
    hours: float
    start: datetime
    end: datetime
    estimated: bool = True
    flags: list[str] = field(default_factory=list)
    blocked_reason: Optional[str] = None

    @property
    def is_blocked(self) -> bool:
        return self.status is DevStatus.BLOCKED

    def to_dict(self) -> dict:
        return {
            "story_id": self.story_id,
            "story_number": self.story_number,
            "lane": self.lane,
            "status": self.status.value,
            "points": self.points,
            "hours": round(self.hours, 2),
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "estimated": self.estimated,
            "flags": self.flags,
            "blocked_reason": self.blocked_reason,
        }


@dataclass
class Lane:
    """Ordered work for one assignee (or the shared Unassigned lane)."""
    key: str
    cursor: datetime
    items: list[ScheduledItem] = field(default_factory=list)
    unscheduled: list[WorkItem] = field(default_factory=list)
    stalled: bool = False

    @property
    def hours(self) -> float:
        return sum(i.hours for i in self.items)

    @property
    def points(self) -> float:
        return sum(i.points for i in self.items)

    @property
    def first_start(self) -> Optional[datetime]:
        return self.items[0].start if self.items else None

    @property
    def last_end(self) -> Optional[datetime]:
        return self.items[-1].end if self.items else None


@dataclass
class Timeline:
    """Result of a scheduling pass."""
    start: datetime
    items: list[ScheduledItem] = field(default_factory=list)
    lanes: dict[str, Lane] = field(default_factory=dict)
    unscheduled: list[WorkItem] = field(default_factory=list)
    truncated: list[WorkItem] = field(default_factory=list)
    degenerate: bool = False

    @property
    def end(self) -> Optional[datetime]:
        """Latest end across all lanes."""
        ends = [lane.last_end for lane in self.lanes.values() if lane.last_end is not None]
        return max(ends) if ends else None

    @property
    def stalled_lanes(self) -> list[Lane]:
        return [lane for lane in self.lanes.values() if lane.stalled]

    def for_story(self, story_id: str) -> Optional[ScheduledItem]:
        for item in self.items:
            if item.story_id == story_id:
                return item
        return None


def forecastable_items(items: Iterable[WorkItem]) -> list[WorkItem]:
    """Unfinished items in processing order."""
    return sorted((i for i in items if not i.is_completed), key=lambda i: i.queue_key)


class TimelineBuilder:
    """
    Converts a work queue into a calendar-aware timeline.

    Usage:
        builder = TimelineBuilder(calendar, config)
        timeline = builder.build(items, start=datetime(2025, 1, 6, 9, 0))
    """

    def __init__(self, calendar: WorkingCalendar, config: ForecastConfig):
        self.calendar = calendar
        self.config = config

    def effective_points(self, item: WorkItem) -> float:
        points = item.points
        return float(points) if points is not None else self.config.unestimated_points

    def required_hours(self, item: WorkItem) -> float:
        return self.effective_points(item) * self.config.hours_per_point

    def next_working(self, instant: datetime) -> Optional[datetime]:
        """
        Next working instant at or after ``instant``, scanning past long
        holiday runs in MAX_SCAN_DAYS windows. None when nothing is found
        within MAX_HORIZON_DAYS.
        """
        if self.calendar.is_degenerate:
            return None

        cursor = instant
        for _ in range(MAX_HORIZON_DAYS // MAX_SCAN_DAYS):
            candidate = self.calendar.advance_to_next_working(cursor)
            if self.calendar.is_working(candidate):
                return candidate
            cursor = datetime.combine(
                cursor.date() + timedelta(days=MAX_SCAN_DAYS), time.min, tzinfo=cursor.tzinfo
            )
        return None

    def consume(
        self,
        start: datetime,
        hours: float,
        factor: Optional[float] = None
    ) -> tuple[Optional[datetime], Optional[datetime]]:
        """
        Consume ``hours`` of work starting at ``start``.

        Each working clock hour delivers ``factor`` hours of work (the
        configured parallel work factor by default). A day whose remaining
        capacity is used up exactly ends the item at the next working
        instant, so ``end`` is always a working instant.

        Returns (begin, end); either is None when the calendar offers no
        working time to make progress.
        """
        factor = self.config.parallel_work_factor if factor is None else factor
        if factor <= 0:
            raise ForecastComputationError(f"Work factor must be positive, got {factor}")

        cursor = self.next_working(start)
        if cursor is None:
            return None, None
        begin = cursor

        remaining = hours
        for _ in range(MAX_HORIZON_DAYS):
            if remaining <= EPSILON:
                return begin, cursor

            _, day_end = self.calendar.window(cursor.date(), cursor.tzinfo)
            capacity = (day_end - cursor).total_seconds() / 3600 * factor

            if remaining < capacity - EPSILON:
                return begin, cursor + timedelta(hours=remaining / factor)

            remaining -= capacity
            cursor = self.next_working(day_end)
            if cursor is None:
                return begin, None

        raise ForecastComputationError(
            f"{hours:.1f} hours cannot be scheduled within {MAX_HORIZON_DAYS} days",
            metadata={"start": start.isoformat(), "hours": hours},
        )

    def build(self, items: Iterable[WorkItem], start: datetime) -> Timeline:
        """Schedule every unfinished item, lane by lane, in queue order."""
        queue = forecastable_items(items)
        timeline = Timeline(start=start, degenerate=self.calendar.is_degenerate)

        if len(queue) > self.config.max_items:
            timeline.truncated = queue[self.config.max_items:]
            queue = queue[:self.config.max_items]
            logger.warning(
                "Queue has %d items, scheduling the first %d",
                len(queue) + len(timeline.truncated), self.config.max_items
            )

        if timeline.degenerate:
            logger.warning("Working calendar has no working hours; nothing can be scheduled")

        for item in queue:
            lane = timeline.lanes.get(item.lane)
            if lane is None:
                lane = timeline.lanes[item.lane] = Lane(key=item.lane, cursor=start)

            if lane.stalled:
                lane.unscheduled.append(item)
                timeline.unscheduled.append(item)
                continue

            hours = self.required_hours(item)
            begin, end = self.consume(lane.cursor, hours)
            if begin is None or end is None:
                logger.warning("Lane %s stalled at %s: no working time available", lane.key, lane.cursor)
                lane.stalled = True
                lane.unscheduled.append(item)
                timeline.unscheduled.append(item)
                continue

            flags = []
            if not item.is_estimated:
                flags.append("unestimated")
            if item.is_blocked and self.config.account_for_blockers:
                flags.append("blocked")

            scheduled = ScheduledItem(
                story_id=item.story_id,
                story_number=item.story_number,
                lane=lane.key,
                status=item.status,
                points=self.effective_points(item),
                hours=hours,
                start=begin,
                end=end,
                estimated=item.is_estimated,
                flags=flags,
                blocked_reason=item.blocked_reason if item.is_blocked else None,
            )
            lane.items.append(scheduled)
            timeline.items.append(scheduled)
            lane.cursor = end
            logger.debug("Scheduled %s on %s: %s -> %s", item.story_id, lane.key, begin, end)

        return timeline
