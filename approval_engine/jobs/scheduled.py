"""
Scheduled jobs triggered by an external scheduler calling internal endpoints.

Jobs:
  - check-approval-sla: every 15 minutes; flags SLA warnings and breaches
"""

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.config import settings
from approval_engine.database import get_db
from approval_engine.services.sla_service import run_sla_sweep

logger = structlog.get_logger()
router = APIRouter()


async def _require_internal_auth(request: Request):
    """Validates the X-Internal-Secret header against INTERNAL_JOB_SECRET."""
    secret = settings.INTERNAL_JOB_SECRET
    if not secret:
        # Unauthenticated internal calls are tolerated only in debug mode
        if settings.DEBUG:
            return
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="INTERNAL_JOB_SECRET is not configured",
        )
    provided = request.headers.get("X-Internal-Secret")
    if not provided or provided != secret:
        logger.warning("internal_auth_failed", path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Forbidden",
        )


@router.post("/check-approval-sla")
async def check_approval_sla(
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    _auth: None = Depends(_require_internal_auth),
):
    result = await run_sla_sweep(db, background_tasks)
    return {"warned": result.warned, "breached": result.breached}
