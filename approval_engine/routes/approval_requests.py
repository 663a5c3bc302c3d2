"""
Approval request routes: create, respond, delegate, cancel, and the
read views (my pending approvals, request detail, admin listing).

Every mutating route delegates to ApprovalRequestService; notification
events it collects are queued as background emails before the response.
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.errors import ForbiddenError
from approval_engine.middleware.auth import get_current_user
from approval_engine.middleware.authorization import is_admin, require_admin
from approval_engine.middleware.tenant import get_db_with_tenant
from approval_engine.models.approval_history import ApprovalHistory
from approval_engine.models.approval_request import ApprovalAssignment, ApprovalRequest
from approval_engine.schemas.approval_request import (
    ApprovalAssignmentResponse,
    ApprovalHistoryResponse,
    ApprovalRequestCreate,
    ApprovalRequestDetailResponse,
    ApprovalRequestResponse,
    CancelBody,
    DelegateBody,
    PendingApprovalItem,
    PendingApprovalList,
    RespondBody,
)
from approval_engine.schemas.common import PaginatedResponse, build_pagination, id_str, iso
from approval_engine.services.approval_request_service import ApprovalRequestService
from approval_engine.services.approval_store import SqlApprovalStore
from approval_engine.services.identity import SqlIdentityResolver
from approval_engine.services.ids import to_uuid
from approval_engine.services.notification_service import queue_event_notifications

logger = structlog.get_logger()
router = APIRouter()


# ---------- serializers ----------

def _request_to_dict(r: ApprovalRequest) -> dict:
    return {
        "id": str(r.id),
        "tenant_id": str(r.tenant_id),
        "approval_type_id": str(r.approval_type_id),
        "target_table": r.target_table,
        "target_record_id": r.target_record_id,
        "title": r.title,
        "description": r.description,
        "requested_action": r.requested_action,
        "target_record_snapshot": r.target_record_snapshot,
        "changes_summary": r.changes_summary,
        "requestor_comments": r.requestor_comments,
        "status": r.status,
        "final_response": r.final_response,
        "final_response_at": iso(r.final_response_at),
        "final_responder_id": id_str(r.final_responder_id),
        "requested_by": str(r.requested_by),
        "due_at": iso(r.due_at),
        "created_at": iso(r.created_at) or "",
        "updated_at": iso(r.updated_at) or "",
    }


def _request_to_response(r: ApprovalRequest) -> ApprovalRequestResponse:
    return ApprovalRequestResponse(**_request_to_dict(r))


def _assignment_to_response(a: ApprovalAssignment) -> ApprovalAssignmentResponse:
    return ApprovalAssignmentResponse(
        id=str(a.id),
        approval_request_id=str(a.approval_request_id),
        approver_id=str(a.approver_id),
        approver_role=a.approver_role,
        sequence_order=a.sequence_order,
        status=a.status,
        response=a.response,
        response_comments=a.response_comments,
        responded_at=iso(a.responded_at),
        notified_at=iso(a.notified_at),
        delegated_from_id=id_str(a.delegated_from_id),
        delegated_to=id_str(a.delegated_to),
        delegated_at=iso(a.delegated_at),
        delegation_reason=a.delegation_reason,
        created_at=iso(a.created_at) or "",
    )


def _history_to_response(h: ApprovalHistory) -> ApprovalHistoryResponse:
    return ApprovalHistoryResponse(
        id=str(h.id),
        approval_request_id=str(h.approval_request_id),
        assignment_id=id_str(h.assignment_id),
        action=h.action,
        action_by=id_str(h.action_by),
        action_at=iso(h.action_at) or "",
        action_data=h.action_data,
    )


# ---------- dependencies ----------

def get_approval_service(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
) -> ApprovalRequestService:
    tenant_id = to_uuid(current_user["tenant_id"], "tenant_id")
    return ApprovalRequestService(
        SqlApprovalStore(db, tenant_id),
        SqlIdentityResolver(db, tenant_id),
        tenant_id,
    )


async def _dispatch_events(
    service: ApprovalRequestService,
    db: AsyncSession,
    background_tasks: BackgroundTasks,
) -> None:
    queued = await queue_event_notifications(db, service.events, background_tasks)
    for event in queued:
        await service.mark_notified(event.request_id, event.assignment_ids)
    service.events.clear()


# ---------- routes ----------

@router.post("", response_model=ApprovalRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_approval_request(
    body: ApprovalRequestCreate,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    request = await service.create(
        policy_id=body.approval_type_id,
        target_table=body.target_table,
        target_record_id=body.target_record_id,
        title=body.title,
        requested_by=current_user["user_id"],
        description=body.description,
        requested_action=body.requested_action,
        target_record_snapshot=body.target_record_snapshot,
        changes_summary=body.changes_summary,
        requestor_comments=body.requestor_comments,
    )
    await _dispatch_events(service, db, background_tasks)
    return _request_to_response(request)


@router.get("", response_model=PaginatedResponse[ApprovalRequestResponse])
async def list_approval_requests(
    approval_type_id: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    requested_by: Optional[str] = Query(None),
    page: int = Query(1, ge=1, le=1000),
    limit: int = Query(20, ge=1, le=100),
    service: ApprovalRequestService = Depends(get_approval_service),
    _auth: None = Depends(require_admin()),
):
    items, total = await service.list_requests(
        approval_type_id=approval_type_id,
        status=status_filter,
        requested_by=requested_by,
        page=page,
        limit=limit,
    )
    return PaginatedResponse(
        data=[_request_to_response(r) for r in items],
        pagination=build_pagination(page, limit, total),
    )


@router.get("/my-pending", response_model=PendingApprovalList)
async def my_pending_approvals(
    limit: Optional[int] = Query(None, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    rows = await service.list_pending_for(current_user["user_id"], limit=limit)
    return PendingApprovalList(
        items=[
            PendingApprovalItem(
                assignment=_assignment_to_response(a),
                request=_request_to_response(r),
            )
            for a, r in rows
        ]
    )


@router.get("/{request_id}", response_model=ApprovalRequestDetailResponse)
async def get_approval_request(
    request_id: str,
    current_user: dict = Depends(get_current_user),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    detail = await service.get_request_detail(request_id)
    user_id = str(current_user["user_id"])
    involved = str(detail.request.requested_by) == user_id or any(
        str(a.approver_id) == user_id for a in detail.assignments
    )
    if not involved and not is_admin(current_user):
        raise ForbiddenError("You cannot view this approval request")

    return ApprovalRequestDetailResponse(
        **_request_to_dict(detail.request),
        assignments=[_assignment_to_response(a) for a in detail.assignments],
        history=[_history_to_response(h) for h in detail.history],
    )


@router.post("/{request_id}/respond", response_model=ApprovalRequestResponse)
async def respond_to_approval_request(
    request_id: str,
    body: RespondBody,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    request = await service.respond(
        request_id,
        current_user["user_id"],
        body.response,
        body.response_comments,
    )
    await _dispatch_events(service, db, background_tasks)
    return _request_to_response(request)


@router.post("/{request_id}/delegate", response_model=ApprovalRequestResponse)
async def delegate_approval_request(
    request_id: str,
    body: DelegateBody,
    background_tasks: BackgroundTasks,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    request = await service.delegate(
        request_id,
        current_user["user_id"],
        body.delegate_to,
        body.reason,
    )
    await _dispatch_events(service, db, background_tasks)
    return _request_to_response(request)


@router.post("/{request_id}/cancel", response_model=ApprovalRequestResponse)
async def cancel_approval_request(
    request_id: str,
    background_tasks: BackgroundTasks,
    body: Optional[CancelBody] = None,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
    service: ApprovalRequestService = Depends(get_approval_service),
):
    request = await service.cancel(
        request_id,
        current_user["user_id"],
        reason=body.reason if body else None,
        actor_role=current_user.get("role"),
    )
    await _dispatch_events(service, db, background_tasks)
    return _request_to_response(request)
