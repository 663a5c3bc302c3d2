"""
Approval store: persistence and the per-request concurrency boundary.

All functions use the caller's session (no commit). get_db() auto-commits,
and the row lock taken by request_lock() is held until that commit.
"""

import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.models.approval_history import ApprovalHistory
from approval_engine.models.approval_request import (
    ACTIVE_ASSIGNMENT_STATUSES,
    OPEN_REQUEST_STATUSES,
    ApprovalAssignment,
    ApprovalRequest,
)
from approval_engine.models.approval_type import ApprovalType

logger = structlog.get_logger()


class SqlApprovalStore:
    def __init__(self, session: AsyncSession, tenant_id: uuid.UUID):
        self.session = session
        self.tenant_id = tenant_id

    # ---------- transactional boundary ----------

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[None]:
        """SAVEPOINT: everything written inside commits or rolls back together."""
        async with self.session.begin_nested():
            yield

    @asynccontextmanager
    async def request_lock(self, request_id: uuid.UUID) -> AsyncIterator[Optional[ApprovalRequest]]:
        """
        SELECT FOR UPDATE on the request row inside a SAVEPOINT.

        Concurrent callers on the same request block here until the holder's
        transaction ends; other requests are unaffected.
        """
        async with self.session.begin_nested():
            result = await self.session.execute(
                select(ApprovalRequest)
                .where(
                    ApprovalRequest.id == request_id,
                    ApprovalRequest.tenant_id == self.tenant_id,
                )
                .with_for_update()
                # Another transaction may have changed the row while we waited
                .execution_options(populate_existing=True)
            )
            request = result.scalar_one_or_none()
            yield request

    # ---------- reads ----------

    async def get_policy(self, policy_id: uuid.UUID) -> Optional[ApprovalType]:
        result = await self.session.execute(
            select(ApprovalType).where(
                ApprovalType.id == policy_id,
                or_(
                    ApprovalType.tenant_id == self.tenant_id,
                    ApprovalType.tenant_id == None,  # noqa: E711
                ),
            )
        )
        return result.scalar_one_or_none()

    async def get_request(self, request_id: uuid.UUID) -> Optional[ApprovalRequest]:
        result = await self.session.execute(
            select(ApprovalRequest).where(
                ApprovalRequest.id == request_id,
                ApprovalRequest.tenant_id == self.tenant_id,
            )
        )
        return result.scalar_one_or_none()

    async def list_assignments(self, request_id: uuid.UUID) -> list[ApprovalAssignment]:
        result = await self.session.execute(
            select(ApprovalAssignment)
            .where(ApprovalAssignment.approval_request_id == request_id)
            .order_by(ApprovalAssignment.sequence_order, ApprovalAssignment.created_at)
        )
        return list(result.scalars().all())

    async def list_history(self, request_id: uuid.UUID) -> list[ApprovalHistory]:
        result = await self.session.execute(
            select(ApprovalHistory)
            .where(ApprovalHistory.approval_request_id == request_id)
            .order_by(ApprovalHistory.action_at)
        )
        return list(result.scalars().all())

    async def list_pending_for(
        self, approver_id: uuid.UUID, limit: int
    ) -> list[tuple[ApprovalAssignment, ApprovalRequest]]:
        result = await self.session.execute(
            select(ApprovalAssignment, ApprovalRequest)
            .join(ApprovalRequest, ApprovalAssignment.approval_request_id == ApprovalRequest.id)
            .where(
                ApprovalAssignment.approver_id == approver_id,
                ApprovalAssignment.status.in_(ACTIVE_ASSIGNMENT_STATUSES),
                ApprovalRequest.tenant_id == self.tenant_id,
                ApprovalRequest.status.in_(OPEN_REQUEST_STATUSES),
            )
            .order_by(ApprovalAssignment.created_at)
            .limit(limit)
        )
        return [(assignment, request) for assignment, request in result.all()]

    async def list_requests(
        self,
        approval_type_id: Optional[uuid.UUID] = None,
        status: Optional[str] = None,
        requested_by: Optional[uuid.UUID] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ApprovalRequest], int]:
        q = select(ApprovalRequest).where(ApprovalRequest.tenant_id == self.tenant_id)
        count_q = select(func.count(ApprovalRequest.id)).where(
            ApprovalRequest.tenant_id == self.tenant_id
        )

        if approval_type_id:
            q = q.where(ApprovalRequest.approval_type_id == approval_type_id)
            count_q = count_q.where(ApprovalRequest.approval_type_id == approval_type_id)
        if status:
            q = q.where(ApprovalRequest.status == status)
            count_q = count_q.where(ApprovalRequest.status == status)
        if requested_by:
            q = q.where(ApprovalRequest.requested_by == requested_by)
            count_q = count_q.where(ApprovalRequest.requested_by == requested_by)

        total = (await self.session.execute(count_q)).scalar() or 0
        result = await self.session.execute(
            q.order_by(ApprovalRequest.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return list(result.scalars().all()), total

    # ---------- writes ----------

    async def save_request(self, request: ApprovalRequest) -> None:
        self.session.add(request)
        await self.session.flush()

    async def save_assignments(self, assignments: Iterable[ApprovalAssignment]) -> None:
        self.session.add_all(list(assignments))
        await self.session.flush()

    async def append_history(self, entry: ApprovalHistory) -> None:
        self.session.add(entry)
        await self.session.flush()
