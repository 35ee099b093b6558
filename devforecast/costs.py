"""
Cost Reporter

Monthly developer cost: completed work is booked in the month it finished,
scheduled work is spread over the months its working hours fall in.
"""

import csv
import io
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable

from .calendar import WorkingCalendar
from .capacity import CapacityModel
from .config import ForecastConfig
from .models import UNASSIGNED, WorkItem
from .scheduler import ScheduledItem, Timeline
from .velocity import item_points


# Buckets for completed work with no date and queued work that could not be scheduled.
UNDATED = "undated"
UNSCHEDULED = "unscheduled"


def month_key(day: date) -> str:
    return f"{day.year}-{day.month:02d}"


def split_by_month(calendar: WorkingCalendar, scheduled: ScheduledItem) -> dict[str, float]:
    """
    Fraction of an item's working time falling in each calendar month.

    Zero-length items are booked entirely in their start month.
    """
    by_day = calendar.working_hours_by_day(scheduled.start, scheduled.end)
    total = sum(by_day.values())
    if total <= 0:
        return {month_key(scheduled.start.date()): 1.0}

    fractions: dict[str, float] = {}
    for day, hours in by_day.items():
        key = month_key(day)
        fractions[key] = fractions.get(key, 0.0) + hours / total
    return fractions


@dataclass
class CostReport:
    """Cost per developer per month."""
    by_developer: dict[str, dict[str, float]] = field(default_factory=dict)
    developer_names: dict[str, str] = field(default_factory=dict)
    completed_cost: float = 0.0
    remaining_cost: float = 0.0

    def add(self, developer: str, bucket: str, amount: float) -> None:
        months = self.by_developer.setdefault(developer, {})
        months[bucket] = months.get(bucket, 0.0) + amount

    @property
    def months(self) -> list[str]:
        """Calendar months in order, followed by any undated/unscheduled buckets."""
        keys = {k for months in self.by_developer.values() for k in months}
        special = [k for k in (UNDATED, UNSCHEDULED) if k in keys]
        return sorted(keys - set(special)) + special

    @property
    def monthly_totals(self) -> dict[str, float]:
        totals = {key: 0.0 for key in self.months}
        for months in self.by_developer.values():
            for key, amount in months.items():
                totals[key] += amount
        return totals

    @property
    def developer_totals(self) -> dict[str, float]:
        return {dev: sum(months.values()) for dev, months in self.by_developer.items()}

    @property
    def total_cost(self) -> float:
        return sum(self.developer_totals.values())

    @property
    def average_monthly(self) -> float:
        calendar_months = [v for k, v in self.monthly_totals.items() if k not in (UNDATED, UNSCHEDULED)]
        return sum(calendar_months) / len(calendar_months) if calendar_months else 0.0

    @property
    def peak_monthly(self) -> float:
        calendar_months = [v for k, v in self.monthly_totals.items() if k not in (UNDATED, UNSCHEDULED)]
        return max(calendar_months, default=0.0)

    def to_dict(self) -> dict:
        return {
            "months": self.months,
            "by_developer": {
                dev: {k: round(v, 2) for k, v in months.items()}
                for dev, months in self.by_developer.items()
            },
            "developer_names": self.developer_names,
            "developer_totals": {k: round(v, 2) for k, v in self.developer_totals.items()},
            "monthly_totals": {k: round(v, 2) for k, v in self.monthly_totals.items()},
            "total_cost": round(self.total_cost, 2),
            "completed_cost": round(self.completed_cost, 2),
            "remaining_cost": round(self.remaining_cost, 2),
            "average_monthly": round(self.average_monthly, 2),
            "peak_monthly": round(self.peak_monthly, 2),
        }

    def to_csv_rows(self) -> list[list[str]]:
        """Header, one row per developer (Unassigned only when non-zero), TOTAL row."""
        months = self.months
        rows = [["Developer"] + months]
        totals = self.developer_totals

        developers = [d for d in self.by_developer if d != UNASSIGNED]
        developers.sort(key=lambda d: self.developer_names.get(d, d))
        if totals.get(UNASSIGNED, 0) > 0:
            developers.append(UNASSIGNED)

        for dev in developers:
            costs = self.by_developer[dev]
            rows.append([self.developer_names.get(dev, dev)] + [f"{costs.get(m, 0.0):.2f}" for m in months])

        monthly = self.monthly_totals
        rows.append(["TOTAL"] + [f"{monthly[m]:.2f}" for m in months])
        return rows

    def to_csv(self) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
        writer.writerows(self.to_csv_rows())
        return buffer.getvalue()


def completed_month(item: WorkItem) -> str:
    day = item.actual_end_date or item.estimated_end_date or item.start_date
    return month_key(day) if day else UNDATED


def build_cost_report(
    items: Iterable[WorkItem],
    timeline: Timeline,
    capacity: CapacityModel,
    calendar: WorkingCalendar,
    config: ForecastConfig
) -> CostReport:
    """
    Cost every work item: completed items at their completion month,
    scheduled items spread across the months their working hours fall in,
    and unschedulable items in the UNSCHEDULED bucket.
    """
    report = CostReport()
    report.developer_names = {dev.id: dev.name for dev in capacity.developers.values()}
    report.developer_names[UNASSIGNED] = UNASSIGNED

    for item in items:
        if not item.is_completed:
            continue
        amount = item_points(item, config.unestimated_points) * config.hours_per_point * capacity.rate_for(item.lane)
        report.add(item.lane, completed_month(item), amount)
        report.completed_cost += amount

    for scheduled in timeline.items:
        amount = scheduled.hours * capacity.rate_for(scheduled.lane)
        fractions = split_by_month(calendar, scheduled)
        keys = sorted(fractions)
        # The last month takes the remainder so no cost is lost to rounding.
        booked = 0.0
        for key in keys[:-1]:
            share = amount * fractions[key]
            report.add(scheduled.lane, key, share)
            booked += share
        report.add(scheduled.lane, keys[-1], amount - booked)
        report.remaining_cost += amount

    for item in timeline.unscheduled + timeline.truncated:
        amount = item_points(item, config.unestimated_points) * config.hours_per_point * capacity.rate_for(item.lane)
        report.add(item.lane, UNSCHEDULED, amount)
        report.remaining_cost += amount

    return report
