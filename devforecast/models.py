"""
Work item, developer and sprint records consumed by the forecast engine.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional, Union


UNESTIMATED = "?"
UNASSIGNED = "Unassigned"


class DevStatus(Enum):
    """Development pipeline status of a work item."""
    ON_HOLD = "on-hold"
    READY_FOR_DEV = "ready-for-dev"
    IN_PROGRESS = "in-progress"
    BLOCKED = "blocked"
    READY_FOR_DEV_ENV_DEPLOY = "ready-for-dev-env-deploy"
    DEPLOYED_TO_DEV = "deployed-to-dev"
    READY_FOR_QA = "ready-for-qa"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self is DevStatus.COMPLETED


class Priority(Enum):
    """Informational priority. Never affects queue order."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class SprintStatus(Enum):
    PLANNED = "planned"
    ACTIVE = "active"
    COMPLETED = "completed"


StoryPoints = Union[int, str]


def parse_story_points(value) -> Optional[int]:
    """
    Parse a story point value.

    Returns None for the unestimated sentinel ("?", empty or missing).
    Raises ValueError for anything that is not a non-negative integer.
    """
    if value is None or value == "" or value == UNESTIMATED:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid story points: {value!r}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"Story points must be whole numbers: {value!r}")
        value = int(value)
    points = int(value)
    if points < 0:
        raise ValueError(f"Story points must not be negative: {value!r}")
    return points


@dataclass(frozen=True)
class WorkItem:
    """A user story tracked through the development pipeline."""
    story_id: str
    story_number: int
    status: DevStatus = DevStatus.READY_FOR_DEV
    story_points: StoryPoints = UNESTIMATED
    queue_position: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    assigned_developer_id: Optional[str] = None
    sprint_id: Optional[str] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    blocked_reason: Optional[str] = None
    dev_notes: Optional[str] = None

    @property
    def points(self) -> Optional[int]:
        """Parsed story points, None when unestimated."""
        return parse_story_points(self.story_points)

    @property
    def is_estimated(self) -> bool:
        return self.points is not None

    @property
    def is_completed(self) -> bool:
        return self.status.is_terminal

    @property
    def is_blocked(self) -> bool:
        return self.status is DevStatus.BLOCKED

    @property
    def queue_key(self) -> tuple[int, int, str]:
        """Processing order: queue position (falling back to story number), then story number."""
        position = self.queue_position if self.queue_position is not None else self.story_number
        return (position, self.story_number, self.story_id)

    @property
    def lane(self) -> str:
        return self.assigned_developer_id or UNASSIGNED


@dataclass(frozen=True)
class Developer:
    """A team member with optional capacity and rate."""
    id: str
    name: str
    capacity_points_per_sprint: Optional[float] = None
    hourly_rate: Optional[float] = None
    active: bool = True


@dataclass(frozen=True)
class Sprint:
    """A time-boxed iteration."""
    id: str
    name: str
    start_date: date
    end_date: date
    status: SprintStatus = SprintStatus.PLANNED
    capacity_points: Optional[float] = None

    @property
    def is_completed(self) -> bool:
        return self.status is SprintStatus.COMPLETED

    @property
    def length_days(self) -> int:
        return (self.end_date - self.start_date).days

    def contains(self, day: date) -> bool:
        return self.start_date <= day <= self.end_date
