"""
Forecast configuration and settings loading.
"""

import logging
import os
from enum import IntEnum
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .calendar import WorkingCalendar
from .errors import ConfigValidationError
from .models import Developer, Sprint
from .validation import developers_from_dicts, sprints_from_dicts, validation_errors


logger = logging.getLogger(__name__)


class ConfidenceLevel(IntEnum):
    """Requested confidence that the forecast date will be met."""
    P50 = 50
    P75 = 75
    P90 = 90

    @property
    def z_score(self) -> float:
        """One-sided normal quantile for this confidence level."""
        return {50: 0.0, 75: 0.674, 90: 1.282}[self.value]


class ForecastConfig(BaseModel):
    """
    Forecast parameters. Every field is named, typed and range-checked;
    out-of-range values are rejected, never clamped.
    """

    model_config = ConfigDict(frozen=True)

    hours_per_point: float = Field(default=4.0, ge=0.5, le=40)
    default_developer_rate: float = Field(default=60.0, ge=0)
    velocity_override: Optional[float] = Field(default=None, gt=0)
    parallel_work_factor: float = Field(default=1.0, ge=0.5, le=5)
    use_actual_dates: bool = False
    account_for_blockers: bool = True
    confidence_level: ConfidenceLevel = ConfidenceLevel.P50

    # Nominal points for unestimated ("?") items; 0 schedules them with zero duration.
    unestimated_points: float = Field(default=0.0, ge=0)
    sprint_length_days: int = Field(default=14, ge=1, le=90)
    high_risk_sprint_multiple: float = Field(default=4.0, gt=0)
    overload_ratio: float = Field(default=1.5, gt=1)
    max_items: int = Field(default=5000, ge=1)

    @field_validator("confidence_level", mode="before")
    @classmethod
    def _coerce_confidence(cls, value):
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        return value

    @property
    def sprint_length_weeks(self) -> float:
        return self.sprint_length_days / 7


def load_forecast_config(data: Optional[dict[str, Any]] = None) -> ForecastConfig:
    """Build a ForecastConfig, raising ConfigValidationError on bad input."""
    try:
        return ForecastConfig(**(data or {}))
    except ValidationError as e:
        raise ConfigValidationError(validation_errors(e, "forecast")) from e


def load_calendar(data: Optional[dict[str, Any]] = None) -> WorkingCalendar:
    """Build a WorkingCalendar, raising ConfigValidationError on bad input."""
    try:
        return WorkingCalendar(**(data or {}))
    except ValidationError as e:
        raise ConfigValidationError(validation_errors(e, "calendar")) from e


class Settings:
    """
    Load forecast settings from a YAML file and environment.

    Sections: ``forecast``, ``calendar``, ``developers``, ``sprints``.

    Usage:
        settings = Settings.from_file("config/config.yaml")
        engine = ForecastEngine(settings.forecast, settings.calendar)
    """

    ENV_MAPPING = {
        "DEVFORECAST_HOURS_PER_POINT": ("forecast", "hours_per_point"),
        "DEVFORECAST_DEFAULT_RATE": ("forecast", "default_developer_rate"),
        "DEVFORECAST_VELOCITY_OVERRIDE": ("forecast", "velocity_override"),
        "DEVFORECAST_PARALLEL_FACTOR": ("forecast", "parallel_work_factor"),
        "DEVFORECAST_CONFIDENCE_LEVEL": ("forecast", "confidence_level"),
        "DEVFORECAST_UNESTIMATED_POINTS": ("forecast", "unestimated_points"),
        "DEVFORECAST_MAX_ITEMS": ("forecast", "max_items"),
    }

    def __init__(self, raw: Optional[dict[str, Any]] = None):
        self.raw = raw or {}
        self._load_env()

    @classmethod
    def from_file(cls, path: str = "config/config.yaml") -> "Settings":
        raw = {}
        if os.path.exists(path):
            with open(path) as f:
                raw = yaml.safe_load(f) or {}
            logger.info("Loaded settings from %s", path)
        else:
            logger.info("No settings file at %s, using defaults", path)
        return cls(raw)

    def _load_env(self):
        """Apply environment variable overrides."""
        for env_var, (section, key) in self.ENV_MAPPING.items():
            value = os.getenv(env_var)
            if value:
                self.raw.setdefault(section, {})[key] = value

    def section(self, name: str) -> dict:
        return self.raw.get(name) or {}

    @property
    def forecast(self) -> ForecastConfig:
        return load_forecast_config(self.section("forecast"))

    @property
    def calendar(self) -> WorkingCalendar:
        return load_calendar(self.section("calendar"))

    @property
    def developers(self) -> list[Developer]:
        return developers_from_dicts(self.raw.get("developers") or [])

    @property
    def sprints(self) -> list[Sprint]:
        return sprints_from_dicts(self.raw.get("sprints") or [])

    def validate(self) -> list[dict[str, str]]:
        """Collect every validation error across all sections."""
        errors = []
        for name in ("forecast", "calendar", "developers", "sprints"):
            try:
                getattr(self, name)
            except ConfigValidationError as e:
                errors.extend(e.errors)
        return errors
