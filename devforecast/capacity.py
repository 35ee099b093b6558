"""
Capacity Model

Per-developer rates and sprint capacity, plus the lane workload picture
used to spot overloaded queues.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .config import ForecastConfig
from .models import Developer, UNASSIGNED
from .scheduler import Timeline


class WorkloadStatus(Enum):
    """Lane load relative to the team average."""
    HEALTHY = "healthy"          # at or below average
    AT_CAPACITY = "at_capacity"  # above average
    OVERLOADED = "overloaded"    # above overload_ratio x average


class CapacityModel:
    """
    Rate and capacity lookups keyed by developer id.

    Unknown ids and the Unassigned lane fall back to the configured
    default rate and have no capacity.
    """

    def __init__(self, developers: Iterable[Developer], config: ForecastConfig):
        self.developers = {d.id: d for d in developers}
        self.config = config

    def get(self, developer_id: Optional[str]) -> Optional[Developer]:
        if not developer_id:
            return None
        return self.developers.get(developer_id)

    def rate_for(self, developer_id: Optional[str]) -> float:
        """Hourly rate, falling back to the default developer rate."""
        developer = self.get(developer_id)
        if developer is None or developer.hourly_rate is None:
            return self.config.default_developer_rate
        return developer.hourly_rate

    def capacity_for(self, developer_id: Optional[str]) -> Optional[float]:
        """Story points per sprint, or None when undefined."""
        developer = self.get(developer_id)
        return developer.capacity_points_per_sprint if developer else None

    def name_for(self, lane: str) -> str:
        developer = self.get(lane)
        return developer.name if developer else lane

    def is_active(self, lane: str) -> bool:
        """Unknown lanes and the Unassigned lane count as active."""
        developer = self.get(lane)
        return developer.active if developer else True

    def assignable(self) -> list[Developer]:
        """Developers that may receive new work."""
        return [d for d in self.developers.values() if d.active]

    def capacity_shares(self) -> dict[str, float]:
        """
        Each active developer's share of team sprint capacity.

        Developers with undefined capacity are left out.
        """
        capacities = {
            d.id: d.capacity_points_per_sprint
            for d in self.assignable()
            if d.capacity_points_per_sprint is not None
        }
        total = sum(capacities.values())
        if total <= 0:
            return {}
        return {dev_id: cap / total for dev_id, cap in capacities.items()}


@dataclass
class LaneWorkload:
    """Remaining work queued in one lane."""
    lane: str
    name: str
    item_count: int = 0
    points: float = 0.0
    hours: float = 0.0
    first_start: Optional[datetime] = None
    last_end: Optional[datetime] = None
    share_of_hours: float = 0.0
    load_ratio: float = 0.0
    capacity_points_per_sprint: Optional[float] = None
    capacity_share: Optional[float] = None
    active: bool = True
    stalled: bool = False
    status: WorkloadStatus = WorkloadStatus.HEALTHY

    @property
    def sprints_to_clear(self) -> Optional[float]:
        """Sprints needed to clear this lane at the developer's capacity."""
        if not self.capacity_points_per_sprint:
            return None
        return self.points / self.capacity_points_per_sprint

    def to_dict(self) -> dict:
        return {
            "lane": self.lane,
            "name": self.name,
            "items": self.item_count,
            "points": self.points,
            "hours": round(self.hours, 2),
            "first_start": self.first_start.isoformat() if self.first_start else None,
            "last_end": self.last_end.isoformat() if self.last_end else None,
            "share_of_hours": round(self.share_of_hours, 3),
            "load_ratio": round(self.load_ratio, 2),
            "capacity_share": round(self.capacity_share, 3) if self.capacity_share is not None else None,
            "sprints_to_clear": round(self.sprints_to_clear, 1) if self.sprints_to_clear is not None else None,
            "active": self.active,
            "stalled": self.stalled,
            "status": self.status.value,
        }


@dataclass
class WorkloadSummary:
    """Lane workloads for a timeline."""
    lanes: list[LaneWorkload] = field(default_factory=list)

    @property
    def total_hours(self) -> float:
        return sum(lane.hours for lane in self.lanes)

    @property
    def average_hours(self) -> float:
        if not self.lanes:
            return 0.0
        return self.total_hours / len(self.lanes)

    @property
    def overloaded(self) -> list[LaneWorkload]:
        return [lane for lane in self.lanes if lane.status == WorkloadStatus.OVERLOADED]

    @property
    def workload_variance(self) -> float:
        """Standard deviation of lane hours."""
        if len(self.lanes) < 2:
            return 0.0
        avg = self.average_hours
        variance = sum((lane.hours - avg) ** 2 for lane in self.lanes) / len(self.lanes)
        return variance ** 0.5

    def get(self, lane: str) -> Optional[LaneWorkload]:
        for workload in self.lanes:
            if workload.lane == lane:
                return workload
        return None

    def to_dict(self) -> dict:
        return {
            "total_hours": round(self.total_hours, 2),
            "average_hours": round(self.average_hours, 2),
            "variance": round(self.workload_variance, 2),
            "lanes": [lane.to_dict() for lane in self.lanes],
        }


def analyze_lanes(timeline: Timeline, capacity: CapacityModel, config: ForecastConfig) -> WorkloadSummary:
    """Build per-lane workloads and classify them against the team average."""
    shares = capacity.capacity_shares()
    workloads = []

    for key, lane in timeline.lanes.items():
        workloads.append(LaneWorkload(
            lane=key,
            name=capacity.name_for(key),
            item_count=len(lane.items) + len(lane.unscheduled),
            points=lane.points,
            hours=lane.hours,
            first_start=lane.first_start,
            last_end=lane.last_end,
            capacity_points_per_sprint=capacity.capacity_for(key),
            capacity_share=shares.get(key),
            active=capacity.is_active(key),
            stalled=lane.stalled,
        ))

    summary = WorkloadSummary(lanes=workloads)
    total, average = summary.total_hours, summary.average_hours

    for workload in workloads:
        workload.share_of_hours = workload.hours / total if total > 0 else 0.0
        workload.load_ratio = workload.hours / average if average > 0 else 0.0
        # A single lane has nothing to be disproportionate against.
        if len(workloads) >= 2 and workload.load_ratio > config.overload_ratio:
            workload.status = WorkloadStatus.OVERLOADED
        elif len(workloads) >= 2 and workload.load_ratio > 1.0:
            workload.status = WorkloadStatus.AT_CAPACITY

    workloads.sort(key=lambda w: w.hours, reverse=True)
    return summary


def suggest_rebalancing(summary: WorkloadSummary, capacity: CapacityModel) -> list[dict]:
    """
    Suggest moving work from overloaded lanes to the least loaded active developer.

    Returns:
        List of suggested reassignments
    """
    suggestions = []
    loads = {d.id: 0.0 for d in capacity.assignable()}
    for workload in summary.lanes:
        if workload.lane in loads:
            loads[workload.lane] = workload.hours

    for over in summary.overloaded:
        candidates = [(hours, dev_id) for dev_id, hours in loads.items() if dev_id != over.lane]
        if not candidates:
            continue
        target_hours, target = min(candidates)
        if over.hours - target_hours <= 0:
            continue

        label = over.name if over.lane != UNASSIGNED else "the Unassigned queue"
        target_name = capacity.name_for(target)
        suggestions.append({
            "from": over.lane,
            "to": target,
            "from_hours": round(over.hours, 1),
            "to_hours": round(target_hours, 1),
            "recommendation": (
                f"Rebalance {label}'s queue ({over.hours:.0f}h): consider moving work "
                f"to {target_name} ({target_hours:.0f}h queued)"
            ),
        })

    return suggestions
