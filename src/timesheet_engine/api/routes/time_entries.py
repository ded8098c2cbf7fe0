"""Time entry save endpoint."""

import logging

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import JSONResponse

from timesheet_engine.api.dependencies import AppSettings, DbSession, load_engine
from timesheet_engine.api.schemas import (
    ConfirmationItemResponse,
    ErrorResponse,
    NeedsConfirmationResponse,
    RejectionResponse,
    SaveBatchRequest,
    SaveCommittedResponse,
    SaveRejectedResponse,
)
from timesheet_engine.services.commit_service import (
    CommitService,
    IdempotencyConflictError,
    LedgerWriteError,
)
from timesheet_engine.services.save_pipeline import NeedsConfirmation, SaveRejected

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/time-entries", tags=["time-entries"])


@router.post(
    "/save",
    response_model=SaveCommittedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        202: {"model": NeedsConfirmationResponse},
        409: {"model": ErrorResponse},
        422: {"model": SaveRejectedResponse},
        500: {"model": ErrorResponse},
    },
)
async def save_time_entries(
    db: DbSession,
    app_settings: AppSettings,
    payload: SaveBatchRequest,
) -> SaveCommittedResponse | JSONResponse:
    """Validate and commit one or more employee days.

    The whole batch commits or nothing does. Retrying a committed batch is a
    no-op.
    """
    requests = [r.to_request() for r in payload.requests]
    engine = await load_engine(db, app_settings, {r.employee_id for r in requests})
    outcome = engine.prepare_batch(requests)

    if isinstance(outcome, SaveRejected):
        body = SaveRejectedResponse(
            rejections=[
                RejectionResponse(
                    kind=r.kind.value,
                    employee_id=r.employee_id,
                    entry_date=r.entry_date,
                    detail=r.detail,
                )
                for r in outcome.rejections
            ]
        )
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=body.model_dump(mode="json"),
        )

    if isinstance(outcome, NeedsConfirmation):
        body = NeedsConfirmationResponse(
            items=[
                ConfirmationItemResponse(
                    employee_id=item.employee_id,
                    entry_date=item.entry_date,
                    fallback_value=item.fallback_value,
                    fraction=item.fraction,
                    reason=item.reason.value if item.reason else None,
                )
                for item in outcome.items
            ]
        )
        return JSONResponse(
            status_code=status.HTTP_202_ACCEPTED,
            content=body.model_dump(mode="json"),
        )

    try:
        result = await CommitService(db).commit(outcome)
        await db.commit()
    except IdempotencyConflictError as e:
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )
    except LedgerWriteError as e:
        logger.warning("Save failed after compensation: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Leave ledger write failed; no entries were saved",
        )

    return SaveCommittedResponse(
        idempotency_keys=list(outcome.idempotency_keys),
        written_entry_ids=list(result.written_entry_ids),
        skipped_keys=list(result.skipped_keys),
        trashed_entry_ids=list(result.trashed_entry_ids),
        total_payment=outcome.total_payment,
        warnings=list(outcome.warnings),
        used_fallback_rate=outcome.used_fallback_rate,
        override_applied=outcome.override_applied,
    )
