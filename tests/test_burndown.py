"""
Tests for the sprint burndown reporter.
"""

from datetime import date, datetime

from devforecast.burndown import select_sprint, sprint_burndown
from devforecast.models import DevStatus, Sprint, SprintStatus, WorkItem


SPRINT = Sprint("s1", "Sprint 1", date(2025, 1, 6), date(2025, 1, 16), SprintStatus.ACTIVE)


def item(number, points, end=None, sprint_id="s1"):
    status = DevStatus.COMPLETED if end else DevStatus.IN_PROGRESS
    return WorkItem(
        story_id=f"S-{number}",
        story_number=number,
        story_points=points,
        status=status,
        sprint_id=sprint_id,
        actual_end_date=end,
    )


class TestSprintBurndown:
    """20 assigned points, 12 completed on day 5 of a 10-day sprint."""

    def items(self, last_done=None):
        return [
            item(1, 5, date(2025, 1, 11)),
            item(2, 7, date(2025, 1, 11)),
            item(3, 8, last_done),
            item(4, 13, date(2025, 1, 8), sprint_id="s2"),
        ]

    def test_remaining_is_step_function(self):
        burndown = sprint_burndown(SPRINT, self.items())
        series = burndown.points

        assert burndown.total_points == 20
        assert len(series) == 11
        assert series[0].remaining == 20
        assert series[4].remaining == 20
        assert series[5].remaining == 8
        assert series[10].remaining == 8

    def test_zero_only_after_last_completion(self):
        burndown = sprint_burndown(SPRINT, self.items(last_done=date(2025, 1, 14)))
        remaining = [p.remaining for p in burndown.points]

        assert remaining[7] == 8
        assert remaining[8] == 0
        assert all(r > 0 for r in remaining[:8])
        assert burndown.remaining_at(datetime(2025, 1, 13, 23, 59)) == 8

    def test_ideal_line(self):
        series = sprint_burndown(SPRINT, self.items()).points
        assert series[0].ideal == 20
        assert series[5].ideal == 10
        assert series[10].ideal == 0

    def test_days_after_as_of_have_no_actual(self):
        series = sprint_burndown(SPRINT, self.items(), as_of=date(2025, 1, 13)).points
        assert series[7].remaining == 8
        assert series[8].remaining is None
        assert series[8].ideal == 4

    def test_undated_completion_tracked(self):
        items = [item(1, 5), WorkItem("S-9", 9, story_points=3, status=DevStatus.COMPLETED, sprint_id="s1")]
        burndown = sprint_burndown(SPRINT, items)
        assert burndown.undated_completed_points == 3
        assert burndown.points[-1].remaining == 8

    def test_to_dict(self):
        data = sprint_burndown(SPRINT, self.items()).to_dict()
        assert data["sprint_id"] == "s1"
        assert data["series"][0] == {"day": 0, "date": "2025-01-06", "ideal": 20, "remaining": 20}
        assert [c["story_id"] for c in data["completions"]] == ["S-1", "S-2"]


class TestSelectSprint:
    """Tests for choosing which sprint to chart."""

    def test_explicit_id(self):
        sprints = [SPRINT, Sprint("s0", "Sprint 0", date(2024, 12, 16), date(2024, 12, 27), SprintStatus.COMPLETED)]
        assert select_sprint(sprints, "s0").id == "s0"
        assert select_sprint(sprints, "missing") is None

    def test_prefers_active(self):
        sprints = [
            Sprint("s0", "Sprint 0", date(2024, 12, 16), date(2024, 12, 27), SprintStatus.COMPLETED),
            SPRINT,
        ]
        assert select_sprint(sprints).id == "s1"

    def test_latest_completed_without_active(self):
        sprints = [
            Sprint("a", "A", date(2024, 12, 2), date(2024, 12, 13), SprintStatus.COMPLETED),
            Sprint("b", "B", date(2024, 12, 16), date(2024, 12, 27), SprintStatus.COMPLETED),
            Sprint("c", "C", date(2025, 1, 6), date(2025, 1, 17), SprintStatus.PLANNED),
        ]
        assert select_sprint(sprints).id == "b"

    def test_no_sprints(self):
        assert select_sprint([]) is None
