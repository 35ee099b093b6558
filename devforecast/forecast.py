"""
Development Forecast

Turns the backlog, team calendar and velocity into a projected completion
date, per-item schedule, cost, burndown and a risk assessment.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterable, Optional

from .burndown import SprintBurndown, select_sprint, sprint_burndown
from .calendar import WorkingCalendar
from .capacity import CapacityModel, WorkloadSummary, analyze_lanes, suggest_rebalancing
from .config import ForecastConfig
from .costs import CostReport, build_cost_report
from .errors import ForecastComputationError
from .models import Developer, Sprint, UNASSIGNED, WorkItem
from .scheduler import ScheduledItem, Timeline, TimelineBuilder, forecastable_items
from .validation import ensure_valid
from .velocity import (
    CycleTimeStats,
    SprintVelocity,
    VelocityStats,
    average_velocity,
    cycle_time_stats,
    item_points,
    sprint_velocity,
)


logger = logging.getLogger(__name__)

# Assumed spread of sprint velocity when history is too short to measure it.
DEFAULT_VARIATION_RATIO = 0.2
MIN_VARIATION_RATIO = 0.1


class RiskLevel(Enum):
    """Project risk level."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class ForecastResult:
    """Development forecast for the remaining backlog."""
    generated_at: datetime
    projected_completion_date: Optional[datetime] = None
    base_completion_date: Optional[datetime] = None
    confidence_buffer_hours: float = 0.0

    total_remaining_points: float = 0.0
    total_remaining_hours: float = 0.0
    total_remaining_days: Optional[float] = 0.0
    average_velocity: float = 0.0
    velocity_stats: Optional[VelocityStats] = None
    sprint_velocity: list[SprintVelocity] = field(default_factory=list)

    risk_level: RiskLevel = RiskLevel.LOW
    bottlenecks: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)

    schedule: list[ScheduledItem] = field(default_factory=list)
    unscheduled_story_ids: list[str] = field(default_factory=list)
    truncated_story_ids: list[str] = field(default_factory=list)
    workload: Optional[WorkloadSummary] = None

    costs: Optional[CostReport] = None
    burndown: Optional[SprintBurndown] = None
    cycle_time: Optional[CycleTimeStats] = None

    error: Optional[str] = None

    @property
    def total_cost(self) -> float:
        return self.costs.total_cost if self.costs else 0.0

    @property
    def completed_cost(self) -> float:
        return self.costs.completed_cost if self.costs else 0.0

    @property
    def remaining_cost(self) -> float:
        return self.costs.remaining_cost if self.costs else 0.0

    @property
    def per_item_schedule(self) -> list[dict]:
        return [
            {"story_id": s.story_id, "start": s.start, "end": s.end}
            for s in self.schedule
        ]

    @property
    def monthly_cost_by_developer(self) -> dict[str, dict[str, float]]:
        return self.costs.by_developer if self.costs else {}

    def to_dict(self) -> dict:
        return {
            "generated_at": self.generated_at.isoformat(),
            "completion": {
                "projected": self.projected_completion_date.isoformat() if self.projected_completion_date else None,
                "base": self.base_completion_date.isoformat() if self.base_completion_date else None,
                "confidence_buffer_hours": round(self.confidence_buffer_hours, 2),
            },
            "remaining": {
                "points": self.total_remaining_points,
                "hours": round(self.total_remaining_hours, 2),
                "days": round(self.total_remaining_days, 2) if self.total_remaining_days is not None else None,
            },
            "velocity": {
                "average": round(self.average_velocity, 2),
                "stats": self.velocity_stats.to_dict() if self.velocity_stats else None,
                "sprints": [s.to_dict() for s in self.sprint_velocity],
            },
            "risk": {
                "level": self.risk_level.value,
                "bottlenecks": self.bottlenecks,
            },
            "recommendations": self.recommendations,
            "cost": {
                "total": round(self.total_cost, 2),
                "completed": round(self.completed_cost, 2),
                "remaining": round(self.remaining_cost, 2),
                "report": self.costs.to_dict() if self.costs else None,
            },
            "schedule": [s.to_dict() for s in self.schedule],
            "unscheduled": self.unscheduled_story_ids,
            "truncated": self.truncated_story_ids,
            "workload": self.workload.to_dict() if self.workload else None,
            "burndown": self.burndown.to_dict() if self.burndown else None,
            "cycle_time": self.cycle_time.to_dict() if self.cycle_time else None,
            "error": self.error,
        }


class ForecastEngine:
    """
    Forecasts delivery of the remaining backlog.

    The engine is a pure function of its inputs: it never mutates them and
    reads no clock other than the ``now`` it is given.

    Usage:
        engine = ForecastEngine(config=ForecastConfig(hours_per_point=4))
        result = engine.forecast(items, developers, sprints, now=datetime(2025, 1, 6, 9))
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        calendar: Optional[WorkingCalendar] = None
    ):
        self.config = config or ForecastConfig()
        self.calendar = calendar or WorkingCalendar()
        self.builder = TimelineBuilder(self.calendar, self.config)

    def forecast(
        self,
        items: Iterable[WorkItem],
        developers: Iterable[Developer] = (),
        sprints: Iterable[Sprint] = (),
        now: Optional[datetime] = None,
        sprint_id: Optional[str] = None
    ) -> ForecastResult:
        """
        Forecast the remaining backlog.

        Args:
            items: All work items, completed ones included
            developers: Team members (rates, capacity, active flag)
            sprints: Sprint history and plan
            now: Instant scheduling starts from (defaults to the current time)
            sprint_id: Sprint to chart the burndown for (defaults to the active sprint)

        Raises:
            ConfigValidationError: if a developer, sprint or work item record is invalid

        Computation faults are reported in ``ForecastResult.error``.
        """
        items = list(items)
        developers = list(developers)
        sprints = list(sprints)
        now = now or datetime.now()

        developers, sprints, items = ensure_valid(developers, sprints, items)

        try:
            return self._forecast(items, developers, sprints, now, sprint_id)
        except (ForecastComputationError, ArithmeticError, ValueError, TypeError) as e:
            logger.error("Forecast computation failed: %s", e)
            return ForecastResult(generated_at=now, risk_level=RiskLevel.HIGH, error=str(e))

    def _forecast(
        self,
        items: list[WorkItem],
        developers: list[Developer],
        sprints: list[Sprint],
        now: datetime,
        sprint_id: Optional[str]
    ) -> ForecastResult:
        config = self.config
        capacity = CapacityModel(developers, config)

        timeline = self.builder.build(items, now)
        remaining = forecastable_items(items)

        velocity_rows = sprint_velocity(items, sprints, config.use_actual_dates, config.unestimated_points)
        velocity, stats = average_velocity(velocity_rows, config)

        remaining_points = sum(item_points(i, config.unestimated_points) for i in remaining)
        remaining_hours = remaining_points * config.hours_per_point
        hours_per_day = self.calendar.average_hours_per_day * config.parallel_work_factor
        remaining_days = remaining_hours / hours_per_day if hours_per_day > 0 else None

        base_completion = timeline.end
        buffer_hours, projected = self.apply_confidence_buffer(timeline, base_completion, stats)

        workload = analyze_lanes(timeline, capacity, config)
        risk_level, bottlenecks = self.assess_risk(timeline, workload, remaining_hours, velocity)
        recommendations = self.generate_recommendations(
            remaining, timeline, workload, capacity, risk_level, velocity, stats
        )

        costs = build_cost_report(items, timeline, capacity, self.calendar, config)

        burndown = None
        sprint = select_sprint(sprints, sprint_id)
        if sprint is not None:
            burndown = sprint_burndown(sprint, items, now.date(), config.unestimated_points)

        for name, value in (
            ("remaining hours", remaining_hours),
            ("velocity", velocity),
            ("total cost", costs.total_cost),
        ):
            if not math.isfinite(value):
                raise ForecastComputationError(f"Non-finite {name}: {value}")

        return ForecastResult(
            generated_at=now,
            projected_completion_date=projected,
            base_completion_date=base_completion,
            confidence_buffer_hours=buffer_hours,
            total_remaining_points=remaining_points,
            total_remaining_hours=remaining_hours,
            total_remaining_days=remaining_days,
            average_velocity=velocity,
            velocity_stats=stats,
            sprint_velocity=velocity_rows,
            risk_level=risk_level,
            bottlenecks=bottlenecks,
            recommendations=recommendations,
            schedule=timeline.items,
            unscheduled_story_ids=[i.story_id for i in timeline.unscheduled],
            truncated_story_ids=[i.story_id for i in timeline.truncated],
            workload=workload,
            costs=costs,
            burndown=burndown,
            cycle_time=cycle_time_stats(items),
        )

    def buffer_factor(self, stats: VelocityStats) -> float:
        """
        Fraction of the remaining duration added as a confidence buffer.

        Grows with the confidence level and with historical velocity
        variation; 50% confidence adds nothing.
        """
        ratio = stats.variation_ratio
        if ratio is None:
            ratio = DEFAULT_VARIATION_RATIO
        return self.config.confidence_level.z_score * max(ratio, MIN_VARIATION_RATIO)

    def apply_confidence_buffer(
        self,
        timeline: Timeline,
        base_completion: Optional[datetime],
        stats: VelocityStats
    ) -> tuple[float, Optional[datetime]]:
        """Push the completion date out by the confidence buffer, in working hours."""
        if base_completion is None or not timeline.items:
            return 0.0, base_completion

        first_start = min(item.start for item in timeline.items)
        duration = self.calendar.working_hours_between(first_start, base_completion)
        buffer_hours = duration * self.buffer_factor(stats)
        if buffer_hours <= 0:
            return 0.0, base_completion

        # The buffer is calendar time, so it is not sped up by the parallel work factor.
        _, projected = self.builder.consume(base_completion, buffer_hours, factor=1.0)
        return buffer_hours, projected or base_completion

    def assess_risk(
        self,
        timeline: Timeline,
        workload: WorkloadSummary,
        remaining_hours: float,
        velocity: float
    ) -> tuple[RiskLevel, list[str]]:
        """
        Overall risk level plus the bottlenecks behind it.

        High: no working hours in the calendar, a stalled lane, or remaining
        work that needs more than ``high_risk_sprint_multiple`` sprint
        lengths at the current velocity. Medium: an overloaded lane.
        """
        config = self.config
        bottlenecks = []
        high = False

        if self.calendar.is_degenerate:
            high = True
            bottlenecks.append(
                "Working calendar has no working hours (all days disabled or zero-length); "
                "no work can be scheduled"
            )
        else:
            for lane in timeline.stalled_lanes:
                high = True
                bottlenecks.append(
                    f"{lane.key} lane cannot progress: no working time found for "
                    f"{len(lane.unscheduled)} queued items"
                )

        if velocity > 0 and remaining_hours > 0:
            hours_per_week = velocity * config.hours_per_point / config.sprint_length_weeks
            weeks_needed = remaining_hours / hours_per_week
            limit = config.high_risk_sprint_multiple * config.sprint_length_weeks
            if weeks_needed > limit:
                high = True
                bottlenecks.append(
                    f"Remaining work needs {weeks_needed:.1f} weeks at current velocity "
                    f"({velocity:.1f} pts/sprint), more than {limit:.0f} weeks"
                )

        for lane in workload.overloaded:
            bottlenecks.append(
                f"{lane.name} carries {lane.share_of_hours * 100:.0f}% of remaining hours "
                f"({lane.hours:.1f}h across {lane.item_count} items), "
                f"{lane.load_ratio:.1f}x the team average"
            )

        if config.account_for_blockers:
            for item in timeline.items:
                if "blocked" in item.flags:
                    reason = f": {item.blocked_reason}" if item.blocked_reason else ""
                    bottlenecks.append(f"Story #{item.story_number} is blocked{reason}")

        if high:
            level = RiskLevel.HIGH
        elif workload.overloaded:
            level = RiskLevel.MEDIUM
        else:
            level = RiskLevel.LOW
        return level, bottlenecks

    def generate_recommendations(
        self,
        remaining: list[WorkItem],
        timeline: Timeline,
        workload: WorkloadSummary,
        capacity: CapacityModel,
        risk_level: RiskLevel,
        velocity: float,
        stats: VelocityStats
    ) -> list[str]:
        config = self.config
        recommendations = []

        unestimated = [i for i in remaining if not i.is_estimated]
        if unestimated:
            if config.unestimated_points > 0:
                detail = f"currently scheduled at {config.unestimated_points:g} points each"
            else:
                detail = "currently scheduled with zero duration"
            recommendations.append(
                f"Estimate {len(unestimated)} unestimated items ({detail}) for a reliable forecast"
            )

        blocked = [i for i in remaining if i.is_blocked]
        if blocked and config.account_for_blockers:
            recommendations.append(f"Unblock {len(blocked)} blocked items to keep their lanes moving")

        unassigned = [i for i in remaining if i.lane == UNASSIGNED]
        if unassigned:
            recommendations.append(f"Assign {len(unassigned)} unassigned items to developers")

        for lane in workload.lanes:
            if not lane.active and lane.item_count:
                recommendations.append(
                    f"Reassign {lane.item_count} items queued for inactive developer {lane.name}"
                )

        for suggestion in suggest_rebalancing(workload, capacity):
            recommendations.append(suggestion["recommendation"])

        if timeline.truncated:
            recommendations.append(
                f"{len(timeline.truncated)} items beyond the {config.max_items}-item limit were not scheduled"
            )

        if remaining and velocity <= 0:
            recommendations.append(
                "No completed sprint history - complete a sprint or set a velocity override"
            )

        if stats.trend == "declining":
            recommendations.append("Team velocity is declining - investigate root cause")

        if risk_level == RiskLevel.HIGH:
            recommendations.append("High risk detected - consider reducing scope or extending timeline")

        return recommendations


# Convenience function
def calculate_development_forecast(
    items: Iterable[WorkItem],
    developers: Iterable[Developer] = (),
    sprints: Iterable[Sprint] = (),
    calendar: Optional[WorkingCalendar] = None,
    config: Optional[ForecastConfig] = None,
    now: Optional[datetime] = None,
    sprint_id: Optional[str] = None
) -> ForecastResult:
    """
    Quick function to forecast the remaining backlog.

    Example:
        result = calculate_development_forecast(
            items=stories,
            developers=team,
            sprints=sprints,
            now=datetime(2025, 1, 6, 9, 0)
        )

        print(f"Projected completion: {result.projected_completion_date}")
        print(f"Risk level: {result.risk_level.value}")
    """
    engine = ForecastEngine(config=config, calendar=calendar)
    return engine.forecast(items, developers, sprints, now=now, sprint_id=sprint_id)
