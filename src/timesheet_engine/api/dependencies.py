"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator, Iterable
from typing import Annotated
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from timesheet_engine.calculators.engine import TimesheetEngine
from timesheet_engine.config import Settings, get_settings
from timesheet_engine.database import init_db
from timesheet_engine.services.snapshot_loader import SnapshotLoader


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    _, session_factory = init_db()
    async with session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def load_engine(
    db: AsyncSession,
    app_settings: Settings,
    employee_ids: Iterable[UUID] | None = None,
) -> TimesheetEngine:
    """Snapshot the given employees and build an engine over it."""
    snapshot = await SnapshotLoader(db).load(employee_ids)
    return TimesheetEngine(
        snapshot,
        leave_policy=app_settings.leave_policy,
        leave_pay_policy=app_settings.leave_pay_policy,
    )


# Type aliases for cleaner dependency injection
DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_settings)]
