"""
SLA sweep: finds open requests past their warning or due time and flags
each one exactly once through ApprovalRequestService.flag_sla().

The scan runs across tenants; each flag runs with that tenant's RLS context.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from fastapi import BackgroundTasks
from sqlalchemy import select, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.database import set_tenant_context
from approval_engine.models.approval_request import OPEN_REQUEST_STATUSES, ApprovalRequest
from approval_engine.services.approval_request_service import (
    SLA_BREACHED,
    SLA_WARNING,
    ApprovalEvent,
    ApprovalRequestService,
)
from approval_engine.services.approval_store import SqlApprovalStore
from approval_engine.services.clock import utcnow
from approval_engine.services.identity import SqlIdentityResolver
from approval_engine.services.notification_service import queue_event_notifications

logger = structlog.get_logger()


@dataclass
class SlaSweepResult:
    warned: int = 0
    breached: int = 0
    events: list[ApprovalEvent] = field(default_factory=list)


async def find_due_requests(
    session: AsyncSession, now: datetime, limit: int = 500
) -> list[tuple[uuid.UUID, uuid.UUID, str]]:
    """(request_id, tenant_id, kind) for every open request needing a flag."""
    breached = await session.execute(
        select(ApprovalRequest.id, ApprovalRequest.tenant_id)
        .where(
            ApprovalRequest.status.in_(OPEN_REQUEST_STATUSES),
            ApprovalRequest.due_at != None,  # noqa: E711
            ApprovalRequest.due_at <= now,
            ApprovalRequest.sla_breached_at == None,  # noqa: E711
        )
        .order_by(ApprovalRequest.due_at)
        .limit(limit)
    )
    # A request already past due skips straight to the breach notice
    warned = await session.execute(
        select(ApprovalRequest.id, ApprovalRequest.tenant_id)
        .where(
            ApprovalRequest.status.in_(OPEN_REQUEST_STATUSES),
            ApprovalRequest.sla_warning_at != None,  # noqa: E711
            ApprovalRequest.sla_warning_at <= now,
            ApprovalRequest.sla_warning_sent_at == None,  # noqa: E711
            or_(ApprovalRequest.due_at == None, ApprovalRequest.due_at > now),  # noqa: E711
        )
        .order_by(ApprovalRequest.sla_warning_at)
        .limit(limit)
    )
    return (
        [(rid, tid, SLA_BREACHED) for rid, tid in breached.all()]
        + [(rid, tid, SLA_WARNING) for rid, tid in warned.all()]
    )


async def run_sla_sweep(
    session: AsyncSession,
    background_tasks: Optional[BackgroundTasks] = None,
    now: Optional[datetime] = None,
) -> SlaSweepResult:
    """Flag due requests. Notices are queued while each tenant context is active."""
    now = now or utcnow()
    result = SlaSweepResult()

    for request_id, tenant_id, kind in await find_due_requests(session, now):
        await set_tenant_context(session, str(tenant_id))
        service = ApprovalRequestService(
            SqlApprovalStore(session, tenant_id),
            SqlIdentityResolver(session, tenant_id),
            tenant_id,
        )
        if not await service.flag_sla(request_id, kind):
            continue
        if kind == SLA_BREACHED:
            result.breached += 1
        else:
            result.warned += 1
        result.events.extend(service.events)
        if background_tasks is not None and service.events:
            await queue_event_notifications(session, service.events, background_tasks)

    logger.info("approval_sla_sweep_complete", warned=result.warned, breached=result.breached)
    return result
