"""Period report endpoints."""

from fastapi import APIRouter, HTTPException, status

from timesheet_engine.api.dependencies import AppSettings, DbSession, load_engine
from timesheet_engine.api.schemas import (
    AdjustmentBucketsResponse,
    EmployeePeriodResponse,
    ErrorResponse,
    PeriodDiagnosticsResponse,
    PeriodReportRequest,
    PeriodReportResponse,
    PeriodWarningResponse,
    PreStartFlagResponse,
)
from timesheet_engine.services.period_aggregator import PeriodFilters

router = APIRouter(prefix="/reports", tags=["reports"])


def _frozen(values: list | None) -> frozenset | None:
    return frozenset(values) if values is not None else None


@router.post(
    "/period",
    response_model=PeriodReportResponse,
    responses={400: {"model": ErrorResponse}},
)
async def period_report(
    db: DbSession,
    app_settings: AppSettings,
    payload: PeriodReportRequest,
) -> PeriodReportResponse:
    """Totals for a date range, with optional filters."""
    engine = await load_engine(db, app_settings, payload.employee_ids)
    filters = PeriodFilters(
        employee_ids=_frozen(payload.employee_ids),
        employment_types=_frozen(payload.employment_types),
        service_context_ids=_frozen(payload.service_context_ids),
        employment_scopes=_frozen(payload.employment_scopes),
    )
    try:
        totals = engine.aggregate_period(payload.start, payload.end, filters)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    return PeriodReportResponse(
        start=payload.start,
        end=payload.end,
        total_pay=totals.total_pay,
        total_hours=totals.total_hours,
        total_sessions=totals.total_sessions,
        per_employee=[EmployeePeriodResponse.model_validate(t) for t in totals.per_employee],
        adjustments=AdjustmentBucketsResponse.model_validate(totals.adjustments),
        pre_start=[PreStartFlagResponse.model_validate(f) for f in totals.pre_start],
        warnings=[PeriodWarningResponse.model_validate(w) for w in totals.warnings],
        diagnostics=PeriodDiagnosticsResponse.model_validate(totals.diagnostics),
    )
