"""
Validation for developer, sprint and work item records.

Incoming rows (YAML settings, JSON request bodies, or records built in code)
are parsed through pydantic row models. Every problem is reported as a
``{"field": ..., "message": ...}`` dict and the ``*_from_dicts`` builders
raise ConfigValidationError with all of them at once, so a settings editor
can show every problem in one pass.
"""

from dataclasses import asdict
from datetime import date
from typing import Any, Iterable, Optional

from pydantic import BaseModel, Field, ValidationError, ValidationInfo, field_validator

from .errors import ConfigValidationError
from .models import (
    DevStatus,
    Developer,
    Priority,
    Sprint,
    SprintStatus,
    WorkItem,
    UNESTIMATED,
    parse_story_points,
)


def validation_errors(exc: ValidationError, prefix: str = "") -> list[dict[str, str]]:
    """Flatten a pydantic ValidationError into field/message pairs."""
    errors = []
    for err in exc.errors():
        path = ".".join(str(part) for part in err["loc"])
        field = ".".join(p for p in (prefix, path) if p) or "config"
        message = err["msg"]
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


def _identifier(value):
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


def _blank_to_none(value):
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


class SprintRow(BaseModel):
    """A sprint as it arrives from settings or a request body."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    start_date: date
    end_date: date
    status: SprintStatus = SprintStatus.PLANNED
    capacity_points: Optional[float] = Field(default=None, ge=0)

    _id = field_validator("id", mode="before")(_identifier)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _blank_to_none(value) or SprintStatus.PLANNED

    @field_validator("end_date")
    @classmethod
    def _end_after_start(cls, value: date, info: ValidationInfo) -> date:
        start = info.data.get("start_date")
        if start is not None and value <= start:
            raise ValueError("end_date must be after start_date")
        return value

    def to_record(self) -> Sprint:
        return Sprint(
            id=self.id,
            name=self.name,
            start_date=self.start_date,
            end_date=self.end_date,
            status=self.status,
            capacity_points=self.capacity_points,
        )


class DeveloperRow(BaseModel):
    """A team member as it arrives from settings or a request body."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    capacity_points_per_sprint: Optional[float] = Field(default=None, ge=0)
    hourly_rate: Optional[float] = Field(default=None, ge=0)
    active: bool = True

    _id = field_validator("id", mode="before")(_identifier)

    @field_validator("active", mode="before")
    @classmethod
    def _default_active(cls, value):
        return True if value is None else value

    def to_record(self) -> Developer:
        return Developer(
            id=self.id,
            name=self.name,
            capacity_points_per_sprint=self.capacity_points_per_sprint,
            hourly_rate=self.hourly_rate,
            active=self.active,
        )


class WorkItemRow(BaseModel):
    """A user story as it arrives from a request body."""

    story_id: str = Field(min_length=1)
    story_number: int
    status: DevStatus = DevStatus.READY_FOR_DEV
    story_points: Optional[int] = None  # None is the unestimated sentinel
    queue_position: Optional[int] = None
    priority: Priority = Priority.MEDIUM
    assigned_developer_id: Optional[str] = None
    sprint_id: Optional[str] = None
    start_date: Optional[date] = None
    estimated_end_date: Optional[date] = None
    actual_end_date: Optional[date] = None
    blocked_reason: Optional[str] = None
    dev_notes: Optional[str] = None

    _story_id = field_validator("story_id", mode="before")(_identifier)

    @field_validator("assigned_developer_id", "sprint_id", mode="before")
    @classmethod
    def _optional_identifier(cls, value):
        return _identifier(_blank_to_none(value))

    @field_validator(
        "queue_position", "start_date", "estimated_end_date", "actual_end_date", "blocked_reason",
        mode="before"
    )
    @classmethod
    def _blank(cls, value):
        return _blank_to_none(value)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, value):
        return _blank_to_none(value) or DevStatus.READY_FOR_DEV

    @field_validator("priority", mode="before")
    @classmethod
    def _priority(cls, value):
        value = _blank_to_none(value) or Priority.MEDIUM
        return value.lower() if isinstance(value, str) else value

    @field_validator("story_points", mode="before")
    @classmethod
    def _story_points(cls, value):
        try:
            points = parse_story_points(value)
        except (TypeError, ValueError):
            raise ValueError("story_points must be a positive integer or '?'")
        if points == 0:
            raise ValueError("story_points must be positive or '?'")
        return points

    @field_validator("blocked_reason")
    @classmethod
    def _reason_needs_blocked(cls, value: Optional[str], info: ValidationInfo) -> Optional[str]:
        status = info.data.get("status")
        if value and status is not None and status is not DevStatus.BLOCKED:
            raise ValueError("blocked_reason is only valid for blocked items")
        return value

    def to_record(self) -> WorkItem:
        return WorkItem(
            story_id=self.story_id,
            story_number=self.story_number,
            status=self.status,
            story_points=UNESTIMATED if self.story_points is None else self.story_points,
            queue_position=self.queue_position,
            priority=self.priority,
            assigned_developer_id=self.assigned_developer_id,
            sprint_id=self.sprint_id,
            start_date=self.start_date,
            estimated_end_date=self.estimated_end_date,
            actual_end_date=self.actual_end_date,
            blocked_reason=self.blocked_reason,
            dev_notes=self.dev_notes,
        )


def _parse_rows(row_model: type[BaseModel], rows: Iterable[Any], name: str):
    """Parse every row, collecting (field prefix, row) pairs and all errors."""
    parsed, errors = [], []
    for index, row in enumerate(rows):
        field = f"{name}.{index}"
        if not isinstance(row, dict):
            errors.append({"field": field, "message": "must be a mapping"})
            continue
        try:
            parsed.append((field, row_model.model_validate(row)))
        except ValidationError as e:
            errors.extend(validation_errors(e, field))
    return parsed, errors


def _check_unique(parsed: list, key: str, label: str) -> list[dict[str, str]]:
    errors, seen = [], set()
    for field, row in parsed:
        value = getattr(row, key)
        if value in seen:
            errors.append({"field": f"{field}.{key}", "message": f"duplicate {label} id {value!r}"})
        seen.add(value)
    return errors


def sprints_from_dicts(rows: Iterable[dict[str, Any]]) -> list[Sprint]:
    parsed, errors = _parse_rows(SprintRow, rows, "sprints")
    errors.extend(_check_unique(parsed, "id", "sprint"))
    if errors:
        raise ConfigValidationError(errors)
    return [row.to_record() for _, row in parsed]


def developers_from_dicts(rows: Iterable[dict[str, Any]]) -> list[Developer]:
    parsed, errors = _parse_rows(DeveloperRow, rows, "developers")
    errors.extend(_check_unique(parsed, "id", "developer"))
    if errors:
        raise ConfigValidationError(errors)
    return [row.to_record() for _, row in parsed]


def work_items_from_dicts(rows: Iterable[dict[str, Any]]) -> list[WorkItem]:
    parsed, errors = _parse_rows(WorkItemRow, rows, "items")
    if errors:
        raise ConfigValidationError(errors)
    return [row.to_record() for _, row in parsed]


def ensure_valid(
    developers: list[Developer],
    sprints: list[Sprint],
    items: list[WorkItem]
) -> tuple[list[Developer], list[Sprint], list[WorkItem]]:
    """
    Re-validate records built in code and return normalized copies.

    Raises:
        ConfigValidationError: listing every invalid field across all records
    """
    errors = []
    normalized = []
    for name, row_model, records in (
        ("developers", DeveloperRow, developers),
        ("sprints", SprintRow, sprints),
        ("items", WorkItemRow, items),
    ):
        parsed, found = _parse_rows(row_model, [asdict(r) for r in records], name)
        errors.extend(found)
        normalized.append([row.to_record() for _, row in parsed])
    if errors:
        raise ConfigValidationError(errors)
    return normalized[0], normalized[1], normalized[2]
