"""
Dev Forecast

Calendar-aware delivery forecasting for a development backlog: schedule,
completion date, cost, burndown and risk.
"""

__version__ = "1.0.0"

from .calendar import (
    DaySchedule,
    WorkingCalendar,
    parse_time
)

from .config import (
    ConfidenceLevel,
    ForecastConfig,
    Settings,
    load_calendar,
    load_forecast_config
)

from .errors import (
    ConfigValidationError,
    ForecastComputationError,
    ForecastError
)

from .models import (
    DevStatus,
    Developer,
    Priority,
    Sprint,
    SprintStatus,
    WorkItem,
    UNASSIGNED,
    UNESTIMATED
)

from .scheduler import (
    ScheduledItem,
    Timeline,
    TimelineBuilder
)

from .costs import CostReport, build_cost_report
from .burndown import SprintBurndown, sprint_burndown

from .forecast import (
    ForecastEngine,
    ForecastResult,
    RiskLevel,
    calculate_development_forecast
)

__all__ = [
    # Version
    "__version__",

    # Calendar & config
    "DaySchedule",
    "WorkingCalendar",
    "parse_time",
    "ConfidenceLevel",
    "ForecastConfig",
    "Settings",
    "load_calendar",
    "load_forecast_config",

    # Errors
    "ConfigValidationError",
    "ForecastComputationError",
    "ForecastError",

    # Records
    "DevStatus",
    "Developer",
    "Priority",
    "Sprint",
    "SprintStatus",
    "WorkItem",
    "UNASSIGNED",
    "UNESTIMATED",

    # Scheduling
    "ScheduledItem",
    "Timeline",
    "TimelineBuilder",

    # Reports
    "CostReport",
    "build_cost_report",
    "SprintBurndown",
    "sprint_burndown",

    # Forecast
    "ForecastEngine",
    "ForecastResult",
    "RiskLevel",
    "calculate_development_forecast",
]
