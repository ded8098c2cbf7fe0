"""API routes."""

from timesheet_engine.api.routes.health import router as health_router
from timesheet_engine.api.routes.leave import router as leave_router
from timesheet_engine.api.routes.rates import router as rates_router
from timesheet_engine.api.routes.reports import router as reports_router
from timesheet_engine.api.routes.time_entries import router as time_entries_router

__all__ = [
    "health_router",
    "leave_router",
    "rates_router",
    "reports_router",
    "time_entries_router",
]
