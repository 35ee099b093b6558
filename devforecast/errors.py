"""
Error types for the forecast engine.
"""

from typing import Any, Optional


class ForecastError(RuntimeError):
    """
    Base error for forecast components. Carries metadata for structured logging.
    """

    category: str = "runtime"

    def __init__(self, message: str, *, metadata: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.metadata = metadata or {}


class ConfigValidationError(ForecastError, ValueError):
    """Raised when developer, sprint, calendar or forecast settings are invalid."""

    category = "validation"

    def __init__(self, errors: list[dict[str, str]]) -> None:
        self.errors = errors
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        super().__init__(f"Invalid configuration: {summary}", metadata={"errors": errors})

    @property
    def fields(self) -> list[str]:
        return [e["field"] for e in self.errors]


class ForecastComputationError(ForecastError):
    """Raised inside the engine when an intermediate value cannot be used."""

    category = "computation"
