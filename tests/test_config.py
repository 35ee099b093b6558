"""
Tests for forecast configuration, settings loading and record validation.
"""

import pytest
from datetime import date
from pydantic import ValidationError

from devforecast.config import (
    ConfidenceLevel,
    ForecastConfig,
    Settings,
    load_forecast_config,
)
from devforecast.errors import ConfigValidationError
from devforecast.models import DevStatus, parse_story_points
from devforecast.validation import (
    developers_from_dicts,
    sprints_from_dicts,
    work_items_from_dicts,
)


class TestForecastConfig:
    """Tests for forecast parameter validation."""

    def test_defaults(self):
        config = ForecastConfig()
        assert config.hours_per_point == 4.0
        assert config.default_developer_rate == 60.0
        assert config.parallel_work_factor == 1.0
        assert config.confidence_level == ConfidenceLevel.P50
        assert config.velocity_override is None
        assert config.sprint_length_weeks == 2.0

    @pytest.mark.parametrize("field, value", [
        ("hours_per_point", 0.25),
        ("hours_per_point", 41),
        ("parallel_work_factor", 0),
        ("parallel_work_factor", -1),
        ("parallel_work_factor", 6),
        ("default_developer_rate", -5),
        ("velocity_override", 0),
    ])
    def test_out_of_range_rejected(self, field, value):
        with pytest.raises(ConfigValidationError) as exc:
            load_forecast_config({field: value})
        assert exc.value.fields == [f"forecast.{field}"]

    def test_values_not_clamped(self):
        with pytest.raises(ConfigValidationError):
            load_forecast_config({"hours_per_point": 100})

    def test_confidence_from_string(self):
        config = load_forecast_config({"confidence_level": "90"})
        assert config.confidence_level == ConfidenceLevel.P90

    def test_unsupported_confidence_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            load_forecast_config({"confidence_level": 80})
        assert exc.value.fields == ["forecast.confidence_level"]

    def test_buffer_z_scores_increase(self):
        scores = [level.z_score for level in ConfidenceLevel]
        assert scores == sorted(scores)
        assert ConfidenceLevel.P50.z_score == 0

    def test_config_is_frozen(self):
        config = ForecastConfig()
        with pytest.raises(ValidationError):
            config.hours_per_point = 8

    def test_error_message_lists_fields(self):
        with pytest.raises(ConfigValidationError) as exc:
            load_forecast_config({"hours_per_point": 0, "parallel_work_factor": 10})
        assert set(exc.value.fields) == {"forecast.hours_per_point", "forecast.parallel_work_factor"}
        assert "Invalid configuration" in str(exc.value)
        assert exc.value.category == "validation"


class TestRecordValidation:
    """Tests for developer, sprint and work item validation."""

    def test_sprint_end_must_follow_start(self):
        with pytest.raises(ConfigValidationError) as exc:
            sprints_from_dicts([
                {"id": "s1", "name": "Sprint 1", "start_date": "2025-01-10", "end_date": "2025-01-10"},
            ])
        assert exc.value.fields == ["sprints.0.end_date"]

    def test_sprint_missing_date(self):
        with pytest.raises(ConfigValidationError) as exc:
            sprints_from_dicts([{"id": "s1", "name": "Sprint 1", "start_date": "2025-01-10"}])
        assert exc.value.fields == ["sprints.0.end_date"]

    def test_valid_sprints(self):
        sprints = sprints_from_dicts([
            {"id": "s1", "name": "Sprint 1", "start_date": "2025-01-06", "end_date": "2025-01-17",
             "status": "completed"},
        ])
        assert sprints[0].is_completed
        assert sprints[0].length_days == 11

    def test_duplicate_developer_id(self):
        with pytest.raises(ConfigValidationError) as exc:
            developers_from_dicts([
                {"id": "dev-1", "name": "Alice"},
                {"id": "dev-1", "name": "Alice again"},
            ])
        assert exc.value.fields == ["developers.1.id"]

    def test_negative_rate_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            developers_from_dicts([{"id": "dev-1", "name": "Alice", "hourly_rate": -10}])
        assert exc.value.fields == ["developers.0.hourly_rate"]

    def test_developer_defaults(self):
        developers = developers_from_dicts([{"id": 7, "name": "Carol"}])
        assert developers[0].id == "7"
        assert developers[0].active
        assert developers[0].hourly_rate is None

    def test_numeric_strings_coerced(self):
        developers = developers_from_dicts([
            {"id": "dev-1", "name": "Alice", "hourly_rate": "75", "capacity_points_per_sprint": "20"},
        ])
        assert developers[0].hourly_rate == 75.0
        assert developers[0].capacity_points_per_sprint == 20.0

    def test_non_numeric_fields_reported(self):
        with pytest.raises(ConfigValidationError) as exc:
            developers_from_dicts([
                {"id": "dev-1", "name": "Alice", "capacity_points_per_sprint": "x"},
                {"id": "dev-2", "name": "Bob", "hourly_rate": "lots"},
            ])
        assert exc.value.fields == [
            "developers.0.capacity_points_per_sprint",
            "developers.1.hourly_rate",
        ]

    def test_sprint_capacity_must_be_numeric(self):
        with pytest.raises(ConfigValidationError) as exc:
            sprints_from_dicts([
                {"id": "s1", "name": "S1", "start_date": "2025-01-06", "end_date": "2025-01-17",
                 "capacity_points": "plenty"},
            ])
        assert exc.value.fields == ["sprints.0.capacity_points"]

    @pytest.mark.parametrize("value, expected", [
        ("false", False),
        ("true", True),
        (0, False),
        (False, False),
        (None, True),
    ])
    def test_active_flag_parsed(self, value, expected):
        developers = developers_from_dicts([{"id": "dev-1", "name": "Alice", "active": value}])
        assert developers[0].active is expected

    def test_unreadable_active_flag_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            developers_from_dicts([{"id": "dev-1", "name": "Alice", "active": "sometimes"}])
        assert exc.value.fields == ["developers.0.active"]

    def test_queue_position_coerced_to_int(self):
        items = work_items_from_dicts([
            {"story_id": "a", "story_number": 1, "story_points": 3, "queue_position": "2"},
            {"story_id": "b", "story_number": 2, "story_points": 3, "queue_position": 1},
            {"story_id": "c", "story_number": 3, "story_points": 3, "queue_position": ""},
        ])
        assert items[0].queue_position == 2
        assert items[2].queue_position is None
        assert [i.story_id for i in sorted(items, key=lambda i: i.queue_key)] == ["b", "a", "c"]

    def test_non_numeric_queue_position_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            work_items_from_dicts([
                {"story_id": "a", "story_number": 1, "story_points": 3, "queue_position": "abc"},
            ])
        assert exc.value.fields == ["items.0.queue_position"]

    def test_non_mapping_row_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            developers_from_dicts(["Alice"])
        assert exc.value.fields == ["developers.0"]

    def test_zero_story_points_rejected(self):
        with pytest.raises(ConfigValidationError) as exc:
            work_items_from_dicts([{"story_id": "a", "story_number": 1, "story_points": 0}])
        assert exc.value.fields == ["items.0.story_points"]

    def test_unestimated_story_points(self):
        items = work_items_from_dicts([
            {"story_id": "a", "story_number": 1, "story_points": "?"},
            {"story_id": "b", "story_number": 2},
        ])
        assert not items[0].is_estimated
        assert not items[1].is_estimated

    def test_blocked_reason_requires_blocked_status(self):
        with pytest.raises(ConfigValidationError) as exc:
            work_items_from_dicts([
                {"story_id": "a", "story_number": 1, "story_points": 3, "blocked_reason": "API"},
            ])
        assert exc.value.fields == ["items.0.blocked_reason"]

    def test_blocked_item_parsed(self):
        items = work_items_from_dicts([
            {"story_id": "a", "story_number": 1, "story_points": 3, "status": "blocked",
             "blocked_reason": "Waiting on API"},
        ])
        assert items[0].status == DevStatus.BLOCKED
        assert items[0].is_blocked

    def test_parse_story_points(self):
        assert parse_story_points("?") is None
        assert parse_story_points(5) == 5
        assert parse_story_points("8") == 8
        assert parse_story_points(3.0) == 3
        with pytest.raises(ValueError):
            parse_story_points(2.5)
        with pytest.raises(ValueError):
            parse_story_points(-1)


class TestSettings:
    """Tests for the YAML/environment settings loader."""

    def test_missing_file_uses_defaults(self, tmp_path):
        settings = Settings.from_file(str(tmp_path / "missing.yaml"))
        assert settings.forecast == ForecastConfig()
        assert settings.developers == []
        assert settings.calendar.weekly_hours == 40.0

    def test_loads_yaml_sections(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "forecast:\n"
            "  hours_per_point: 6\n"
            "  confidence_level: 75\n"
            "calendar:\n"
            "  holidays: [2025-12-25]\n"
            "developers:\n"
            "  - {id: dev-1, name: Alice, hourly_rate: 80}\n"
            "sprints:\n"
            "  - {id: s1, name: Sprint 1, start_date: 2025-01-06, end_date: 2025-01-17}\n"
        )
        settings = Settings.from_file(str(path))
        assert settings.forecast.hours_per_point == 6.0
        assert settings.forecast.confidence_level == ConfidenceLevel.P75
        assert settings.calendar.is_holiday(date(2025, 12, 25))
        assert settings.developers[0].hourly_rate == 80
        assert settings.sprints[0].id == "s1"
        assert settings.validate() == []

    def test_environment_overrides(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DEVFORECAST_HOURS_PER_POINT", "8")
        settings = Settings.from_file(str(tmp_path / "missing.yaml"))
        assert settings.forecast.hours_per_point == 8.0

    def test_validate_collects_all_sections(self):
        settings = Settings({
            "forecast": {"hours_per_point": 100},
            "sprints": [{"id": "s1", "name": "S1", "start_date": "2025-01-10", "end_date": "2025-01-01"}],
        })
        fields = [e["field"] for e in settings.validate()]
        assert "forecast.hours_per_point" in fields
        assert "sprints.0.end_date" in fields

    def test_validate_reports_wrongly_typed_developer(self):
        settings = Settings({
            "developers": [{"id": "dev-1", "name": "Alice", "hourly_rate": "a lot", "active": "false"}],
        })
        errors = settings.validate()

        assert [e["field"] for e in errors] == ["developers.0.hourly_rate"]
        assert "valid number" in errors[0]["message"]
