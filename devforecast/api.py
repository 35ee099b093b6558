"""
FastAPI Backend for Dev Forecast

Thin REST surface over the forecast engine. Every request carries its own
snapshot of items, developers, sprints and settings; nothing is stored.
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel, Field

from . import __version__
from .burndown import select_sprint, sprint_burndown
from .calendar import WorkingCalendar
from .config import ForecastConfig, Settings, load_calendar, load_forecast_config
from .errors import ConfigValidationError
from .forecast import ForecastEngine
from .validation import developers_from_dicts, sprints_from_dicts, work_items_from_dicts


logger = logging.getLogger(__name__)

# Defaults for requests that omit calendar or forecast settings
settings = Settings.from_file(os.getenv("DEVFORECAST_CONFIG", "config/config.yaml"))


# Pydantic models for API
class SettingsPayload(BaseModel):
    forecast: Optional[dict[str, Any]] = None
    calendar: Optional[dict[str, Any]] = None
    developers: list[dict[str, Any]] = Field(default_factory=list)
    sprints: list[dict[str, Any]] = Field(default_factory=list)


class ForecastRequest(SettingsPayload):
    items: list[dict[str, Any]] = Field(default_factory=list)
    now: Optional[datetime] = None
    sprint_id: Optional[str] = None


class BurndownRequest(BaseModel):
    items: list[dict[str, Any]] = Field(default_factory=list)
    sprints: list[dict[str, Any]] = Field(default_factory=list)
    sprint_id: Optional[str] = None
    as_of: Optional[datetime] = None
    unestimated_points: float = Field(default=0.0, ge=0)


def _forecast_config(data: Optional[dict[str, Any]]) -> ForecastConfig:
    return load_forecast_config(data) if data is not None else settings.forecast


def _calendar(data: Optional[dict[str, Any]]) -> WorkingCalendar:
    return load_calendar(data) if data is not None else settings.calendar


def _run_forecast(request: ForecastRequest):
    errors = []
    parsed = {}
    for name, loader, value in (
        ("config", _forecast_config, request.forecast),
        ("calendar", _calendar, request.calendar),
        ("developers", developers_from_dicts, request.developers),
        ("sprints", sprints_from_dicts, request.sprints),
        ("items", work_items_from_dicts, request.items),
    ):
        try:
            parsed[name] = loader(value)
        except ConfigValidationError as e:
            errors.extend(e.errors)
    if errors:
        raise HTTPException(status_code=422, detail=errors)

    engine = ForecastEngine(config=parsed["config"], calendar=parsed["calendar"])
    return engine.forecast(
        parsed["items"],
        parsed["developers"],
        parsed["sprints"],
        now=request.now,
        sprint_id=request.sprint_id,
    )


# Lifespan context manager
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Dev Forecast API starting up")
    yield
    logger.info("Dev Forecast API shutting down")


# Create FastAPI app
app = FastAPI(
    title="Dev Forecast",
    description="Calendar-aware delivery forecasts, cost and burndown for a development backlog",
    version=__version__,
    lifespan=lifespan
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check
@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": __version__,
    }


@app.post("/api/config/validate")
async def validate_config(payload: SettingsPayload):
    """Validate a settings snapshot, reporting every field error at once."""
    raw = payload.model_dump(exclude_none=True)
    errors = Settings(raw).validate()
    return {"valid": not errors, "errors": errors}


@app.post("/api/forecast")
async def run_forecast(request: ForecastRequest):
    """Forecast completion, cost and risk for the submitted backlog."""
    result = _run_forecast(request)
    return result.to_dict()


@app.post("/api/burndown")
async def get_sprint_burndown(request: BurndownRequest):
    """Burndown series for the requested (or active) sprint."""
    try:
        sprints = sprints_from_dicts(request.sprints)
        items = work_items_from_dicts(request.items)
    except ConfigValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors)

    sprint = select_sprint(sprints, request.sprint_id)
    if sprint is None:
        raise HTTPException(status_code=404, detail=f"Sprint {request.sprint_id or '(active)'} not found")

    as_of = request.as_of.date() if request.as_of else None
    return sprint_burndown(sprint, items, as_of, request.unestimated_points).to_dict()


@app.post("/api/costs/csv", response_class=PlainTextResponse)
async def get_cost_csv(request: ForecastRequest):
    """Monthly cost by developer as CSV."""
    result = _run_forecast(request)
    if result.error:
        raise HTTPException(status_code=500, detail=result.error)
    return PlainTextResponse(result.costs.to_csv(), media_type="text/csv")


# Run with: uvicorn devforecast.api:app --reload
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
