"""
Approval request service: the only entry point callers use.

Every mutating operation runs as one unit under store.request_lock():
read request + assignments, apply the transition, recompute the aggregate
status, write both, append one history row. Any exception rolls the whole
unit back.

Notification-worthy outcomes are collected on `self.events`; delivering them
is the caller's job (see services/notification_service.py).
"""

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Iterable, Optional

import structlog

from approval_engine.config import settings
from approval_engine.errors import (
    CancelForbidden,
    CommentsRequired,
    DelegateAlreadyAssigned,
    DelegationNotAllowed,
    InvalidResponse,
    NotAssigned,
    PolicyInactive,
    PolicyNotFound,
    RequestNotFound,
)
from approval_engine.models.approval_history import (
    HISTORY_CANCELLED,
    HISTORY_CREATED,
    HISTORY_DELEGATED,
    HISTORY_RESPONDED,
)
from approval_engine.models.approval_request import (
    ACTIVE_ASSIGNMENT_STATUSES,
    ASSIGNMENT_NOTIFIED,
    ASSIGNMENT_PENDING,
    ASSIGNMENT_RESPONDED,
    REQUEST_APPROVED,
    REQUEST_CANCELLED,
    REQUEST_PENDING,
    RESPONSE_REJECTED,
    TERMINAL_REQUEST_STATUSES,
    ApprovalAssignment,
    ApprovalRequest,
)
from approval_engine.models.approval_type import ApprovalType
from approval_engine.services.assignment_resolver import resolve_assignments
from approval_engine.services.clock import Clock, utcnow
from approval_engine.services.delegation import delegate_assignment
from approval_engine.services.history import HistoryRecorder
from approval_engine.services.ids import IdLike, to_uuid
from approval_engine.services.response_aggregator import (
    apply_status,
    ensure_open,
    recompute,
)

logger = structlog.get_logger()

SLA_WARNING = "warning"
SLA_BREACHED = "breached"


@dataclass
class ApprovalEvent:
    """Something a notifier may want to tell people about."""

    kind: str  # requested | delegated | completed | cancelled | sla_warning | sla_breached
    request_id: uuid.UUID
    recipient_ids: list[uuid.UUID] = field(default_factory=list)
    assignment_ids: list[uuid.UUID] = field(default_factory=list)
    data: dict = field(default_factory=dict)


@dataclass
class ApprovalRequestDetail:
    request: ApprovalRequest
    assignments: list[ApprovalAssignment]
    history: list


def comments_required(policy: ApprovalType, response: str) -> bool:
    mode = policy.require_comments or "on_reject"
    if mode == "always":
        return True
    if mode == "on_reject":
        return response == RESPONSE_REJECTED
    return False


def find_active_assignment(
    assignments: Iterable[ApprovalAssignment], approver_id: uuid.UUID
) -> Optional[ApprovalAssignment]:
    for a in assignments:
        if a.approver_id == approver_id and a.status in ACTIVE_ASSIGNMENT_STATUSES:
            return a
    return None


class ApprovalRequestService:
    def __init__(
        self,
        store,
        identity,
        tenant_id: IdLike,
        clock: Clock = utcnow,
        admin_roles: Optional[Iterable[str]] = None,
    ):
        self.store = store
        self.identity = identity
        self.tenant_id = to_uuid(tenant_id, "tenant_id")
        self.clock = clock
        self.admin_roles = frozenset(admin_roles if admin_roles is not None else settings.admin_roles)
        self.history = HistoryRecorder(store, self.tenant_id, clock)
        self.events: list[ApprovalEvent] = []

    # ---------- policy access ----------

    async def get_active_policy(self, policy_id: IdLike) -> ApprovalType:
        policy = await self.store.get_policy(to_uuid(policy_id, "approval_type_id"))
        if policy is None:
            raise PolicyNotFound()
        if not policy.is_active:
            raise PolicyInactive()
        return policy

    async def _policy_for(self, request: ApprovalRequest) -> ApprovalType:
        # Deactivation must not strand in-flight requests, so no is_active check
        policy = await self.store.get_policy(request.approval_type_id)
        if policy is None:
            raise PolicyNotFound()
        return policy

    # ---------- create ----------

    async def create(
        self,
        policy_id: IdLike,
        target_table: str,
        target_record_id: str,
        title: str,
        requested_by: IdLike,
        description: Optional[str] = None,
        requested_action: Optional[str] = None,
        target_record_snapshot: Optional[dict] = None,
        changes_summary: Optional[dict] = None,
        requestor_comments: Optional[str] = None,
    ) -> ApprovalRequest:
        requester = to_uuid(requested_by, "requested_by")
        policy = await self.get_active_policy(policy_id)
        specs = await resolve_assignments(policy, self.identity)

        now = self.clock()
        request = ApprovalRequest(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            approval_type_id=policy.id,
            target_table=target_table,
            target_record_id=str(target_record_id),
            title=title,
            description=description,
            requested_action=requested_action,
            target_record_snapshot=target_record_snapshot,
            changes_summary=changes_summary,
            requestor_comments=requestor_comments,
            status=REQUEST_PENDING,
            requested_by=requester,
            due_at=now + timedelta(hours=policy.sla_hours) if policy.sla_hours else None,
            sla_warning_at=(
                now + timedelta(hours=policy.sla_warning_hours)
                if policy.sla_warning_hours else None
            ),
            created_at=now,
            updated_at=now,
        )
        assignments = [
            ApprovalAssignment(
                id=uuid.uuid4(),
                tenant_id=self.tenant_id,
                approval_request_id=request.id,
                approver_id=spec.approver_id,
                approver_role=spec.approver_role,
                sequence_order=spec.sequence_order,
                status=ASSIGNMENT_PENDING,
                created_at=now,
            )
            for spec in specs
        ]

        async with self.store.atomic():
            await self.store.save_request(request)
            await self.store.save_assignments(assignments)
            await self.history.record(
                request.id, HISTORY_CREATED, requester, {"title": title}
            )

        if policy.notifies("on_request"):
            self.events.append(ApprovalEvent(
                kind="requested",
                request_id=request.id,
                recipient_ids=[a.approver_id for a in assignments],
                assignment_ids=[a.id for a in assignments],
                data={"title": title, "approval_type": policy.name},
            ))

        logger.info(
            "approval_request_created",
            request_id=str(request.id),
            approval_type_id=str(policy.id),
            target_table=target_table,
            target_record_id=str(target_record_id),
            assignments=len(assignments),
        )
        return request

    # ---------- respond ----------

    async def respond(
        self,
        request_id: IdLike,
        approver_id: IdLike,
        response: str,
        comments: Optional[str] = None,
    ) -> ApprovalRequest:
        rid = to_uuid(request_id, "request_id")
        approver = to_uuid(approver_id, "approver_id")

        async with self.store.request_lock(rid) as request:
            if request is None:
                raise RequestNotFound()
            ensure_open(request)

            policy = await self._policy_for(request)
            assignments = await self.store.list_assignments(rid)
            mine = find_active_assignment(assignments, approver)
            if mine is None:
                raise NotAssigned()

            if response not in policy.response_codes():
                raise InvalidResponse(allowed=policy.response_codes())
            if comments_required(policy, response) and not (comments or "").strip():
                raise CommentsRequired()

            now = self.clock()
            mine.status = ASSIGNMENT_RESPONDED
            mine.response = response
            mine.response_comments = comments
            mine.responded_at = now

            previous = request.status
            new_status = recompute(request, assignments)
            apply_status(request, new_status, approver, now)

            await self.store.save_assignments([mine])
            await self.store.save_request(request)
            await self.history.record(
                rid,
                HISTORY_RESPONDED,
                approver,
                {
                    "response": response,
                    "comments": comments,
                    "status_before": previous,
                    "status_after": request.status,
                },
                assignment_id=mine.id,
            )

        self._emit_completion(policy, request)
        logger.info(
            "approval_responded",
            request_id=str(rid),
            approver_id=str(approver),
            response=response,
            status=request.status,
        )
        return request

    # ---------- delegate ----------

    async def delegate(
        self,
        request_id: IdLike,
        approver_id: IdLike,
        delegate_to: IdLike,
        reason: Optional[str] = None,
    ) -> ApprovalRequest:
        rid = to_uuid(request_id, "request_id")
        approver = to_uuid(approver_id, "approver_id")
        delegate = to_uuid(delegate_to, "delegate_to")

        async with self.store.request_lock(rid) as request:
            if request is None:
                raise RequestNotFound()
            ensure_open(request)

            policy = await self._policy_for(request)
            if not policy.allow_delegate:
                raise DelegationNotAllowed()

            assignments = await self.store.list_assignments(rid)
            mine = find_active_assignment(assignments, approver)
            if mine is None:
                raise NotAssigned()
            if delegate != approver and find_active_assignment(assignments, delegate) is not None:
                raise DelegateAlreadyAssigned()

            now = self.clock()
            updated, successor = delegate_assignment(mine, delegate, reason, now)
            assignments.append(successor)

            new_status = recompute(request, assignments)
            apply_status(request, new_status, approver, now)

            await self.store.save_assignments([updated, successor])
            await self.store.save_request(request)
            await self.history.record(
                rid,
                HISTORY_DELEGATED,
                approver,
                {"delegated_to": str(delegate), "reason": reason},
                assignment_id=updated.id,
            )

        self.events.append(ApprovalEvent(
            kind="delegated",
            request_id=rid,
            recipient_ids=[delegate],
            assignment_ids=[successor.id],
            data={"title": request.title, "reason": reason, "delegated_by": str(approver)},
        ))
        return request

    # ---------- cancel ----------

    async def cancel(
        self,
        request_id: IdLike,
        actor_id: IdLike,
        reason: Optional[str] = None,
        actor_role: Optional[str] = None,
    ) -> ApprovalRequest:
        rid = to_uuid(request_id, "request_id")
        actor = to_uuid(actor_id, "actor_id")

        async with self.store.request_lock(rid) as request:
            if request is None:
                raise RequestNotFound()
            ensure_open(request)

            if request.requested_by != actor and actor_role not in self.admin_roles:
                raise CancelForbidden()

            now = self.clock()
            previous = request.status
            apply_status(request, REQUEST_CANCELLED, actor, now)

            await self.store.save_request(request)
            await self.history.record(
                rid,
                HISTORY_CANCELLED,
                actor,
                {"reason": reason, "status_before": previous},
            )
            assignments = await self.store.list_assignments(rid)

        self.events.append(ApprovalEvent(
            kind="cancelled",
            request_id=rid,
            recipient_ids=[a.approver_id for a in assignments if a.status in ACTIVE_ASSIGNMENT_STATUSES],
            data={"title": request.title, "reason": reason},
        ))
        logger.info("approval_request_cancelled", request_id=str(rid), actor_id=str(actor))
        return request

    # ---------- notifier / scheduler flags ----------

    async def mark_notified(
        self, request_id: IdLike, assignment_ids: Iterable[IdLike]
    ) -> int:
        """Flag pending assignments as notified. Not a decision: no history, no recompute."""
        rid = to_uuid(request_id, "request_id")
        wanted = {to_uuid(a, "assignment_id") for a in assignment_ids}
        touched = []

        async with self.store.request_lock(rid) as request:
            if request is None:
                raise RequestNotFound()
            if not request.is_open:
                return 0
            now = self.clock()
            for a in await self.store.list_assignments(rid):
                if a.id in wanted and a.status == ASSIGNMENT_PENDING:
                    a.status = ASSIGNMENT_NOTIFIED
                    a.notified_at = now
                    touched.append(a)
            if touched:
                await self.store.save_assignments(touched)

        return len(touched)

    async def flag_sla(self, request_id: IdLike, kind: str) -> bool:
        """Stamp an SLA warning/breach on an open request once. Returns True if stamped."""
        rid = to_uuid(request_id, "request_id")
        if kind not in (SLA_WARNING, SLA_BREACHED):
            raise ValueError(f"Unknown SLA flag: {kind}")

        async with self.store.request_lock(rid) as request:
            if request is None:
                raise RequestNotFound()
            if not request.is_open:
                return False
            attr = "sla_warning_sent_at" if kind == SLA_WARNING else "sla_breached_at"
            if getattr(request, attr) is not None:
                return False
            setattr(request, attr, self.clock())
            await self.store.save_request(request)
            policy = await self._policy_for(request)
            assignments = await self.store.list_assignments(rid)

        if policy.notifies("on_escalate"):
            self.events.append(ApprovalEvent(
                kind=f"sla_{kind}",
                request_id=rid,
                recipient_ids=[a.approver_id for a in assignments if a.status in ACTIVE_ASSIGNMENT_STATUSES],
                data={"title": request.title, "due_at": request.due_at.isoformat() if request.due_at else None},
            ))
        logger.warning("approval_sla_flagged", request_id=str(rid), kind=kind)
        return True

    # ---------- reads ----------

    async def list_pending_for(
        self, approver_id: IdLike, limit: Optional[int] = None
    ) -> list[tuple[ApprovalAssignment, ApprovalRequest]]:
        return await self.store.list_pending_for(
            to_uuid(approver_id, "approver_id"),
            limit or settings.PENDING_LIST_LIMIT,
        )

    async def get_request_detail(self, request_id: IdLike) -> ApprovalRequestDetail:
        rid = to_uuid(request_id, "request_id")
        request = await self.store.get_request(rid)
        if request is None:
            raise RequestNotFound()
        return ApprovalRequestDetail(
            request=request,
            assignments=await self.store.list_assignments(rid),
            history=await self.store.list_history(rid),
        )

    async def list_requests(
        self,
        approval_type_id: Optional[IdLike] = None,
        status: Optional[str] = None,
        requested_by: Optional[IdLike] = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[ApprovalRequest], int]:
        return await self.store.list_requests(
            approval_type_id=to_uuid(approval_type_id, "approval_type_id", required=False),
            status=status,
            requested_by=to_uuid(requested_by, "requested_by", required=False),
            page=page,
            limit=limit,
        )

    # ---------- helpers ----------

    def _emit_completion(self, policy: ApprovalType, request: ApprovalRequest) -> None:
        if request.status not in TERMINAL_REQUEST_STATUSES:
            return
        toggle = "on_approve" if request.status == REQUEST_APPROVED else "on_reject"
        if not policy.notifies(toggle):
            return
        self.events.append(ApprovalEvent(
            kind="completed",
            request_id=request.id,
            recipient_ids=[request.requested_by],
            data={"title": request.title, "status": request.status},
        ))
