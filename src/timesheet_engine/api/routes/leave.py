"""Leave valuation and balance endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, HTTPException, Path, Query, status

from timesheet_engine.api.dependencies import AppSettings, DbSession, load_engine
from timesheet_engine.api.schemas import (
    ErrorResponse,
    LeaveBalanceResponse,
    LeaveValueRequest,
    LeaveValueResponse,
)
from timesheet_engine.calculators.engine import SnapshotError

router = APIRouter(tags=["leave"])


@router.post("/leave/value", response_model=LeaveValueResponse)
async def value_leave_day(
    db: DbSession,
    app_settings: AppSettings,
    payload: LeaveValueRequest,
) -> LeaveValueResponse:
    """Value one full leave day for an employee."""
    engine = await load_engine(db, app_settings, [payload.employee_id])
    value = engine.value_leave_day(payload.employee_id, payload.day)
    return LeaveValueResponse(
        amount=value.amount,
        used_fallback_rate=value.used_fallback_rate,
        method=value.method.value if value.method else None,
        insufficient_data=value.insufficient_data,
        pre_start=value.pre_start,
        reason=value.reason.value if value.reason else None,
    )


@router.get(
    "/employees/{employee_id}/leave-balance",
    response_model=LeaveBalanceResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_leave_balance(
    db: DbSession,
    app_settings: AppSettings,
    employee_id: Annotated[UUID, Path()],
    as_of: Annotated[date | None, Query()] = None,
) -> LeaveBalanceResponse:
    """Leave balance and yearly summary as of a date (default today)."""
    as_of = as_of or date.today()
    engine = await load_engine(db, app_settings, [employee_id])
    try:
        position = engine.leave_balance(employee_id, as_of)
    except SnapshotError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Employee not found",
        )

    holiday = engine.holiday_for(as_of)
    summary = position.summary
    return LeaveBalanceResponse(
        employee_id=employee_id,
        as_of=as_of,
        balance=position.balance,
        remaining=summary.remaining,
        used=summary.used,
        quota=summary.quota,
        carry_in=summary.carry_in,
        year=summary.year,
        holiday=holiday.name if holiday else None,
    )
