"""Rate lookup endpoints."""

from fastapi import APIRouter

from timesheet_engine.api.dependencies import AppSettings, DbSession, load_engine
from timesheet_engine.api.schemas import RateResolveRequest, RateResolveResponse

router = APIRouter(prefix="/rates", tags=["rates"])


@router.post("/resolve", response_model=RateResolveResponse)
async def resolve_rate(
    db: DbSession,
    app_settings: AppSettings,
    payload: RateResolveRequest,
) -> RateResolveResponse:
    """Resolve the rate in force on a date. Unknown employees get rate 0 and a reason."""
    engine = await load_engine(db, app_settings, [payload.employee_id])
    resolution = engine.resolve_rate(
        payload.employee_id,
        payload.as_of_date,
        payload.service_context_id,
    )
    return RateResolveResponse(
        rate=resolution.rate,
        effective_date=resolution.effective_date,
        reason=resolution.reason.value if resolution.reason else None,
        service_context_id=resolution.service_context_id,
    )
