"""
Approval type (policy) administration. Admin roles only.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.middleware.auth import get_current_user
from approval_engine.middleware.authorization import require_admin
from approval_engine.middleware.tenant import get_db_with_tenant
from approval_engine.models.approval_type import ApprovalType
from approval_engine.schemas.approval_type import (
    ApprovalTypeCreate,
    ApprovalTypeResponse,
    ApprovalTypeUpdate,
)
from approval_engine.schemas.common import id_str, iso
from approval_engine.services.policy_service import PolicyService

logger = structlog.get_logger()
router = APIRouter()


def _type_to_response(t: ApprovalType) -> ApprovalTypeResponse:
    return ApprovalTypeResponse(
        id=str(t.id),
        tenant_id=id_str(t.tenant_id),
        code=t.code,
        name=t.name,
        description=t.description,
        target_table=t.target_table,
        trigger_conditions=t.trigger_conditions,
        approval_mode=t.approval_mode,
        quorum_percentage=t.quorum_percentage,
        hierarchy_levels=t.hierarchy_levels,
        approver_config=t.approver_config,
        response_options=t.response_options or [],
        require_comments=t.require_comments,
        allow_delegate=t.allow_delegate,
        allow_recall=t.allow_recall,
        escalation_config=t.escalation_config,
        sla_hours=t.sla_hours,
        sla_warning_hours=t.sla_warning_hours,
        notification_config=t.notification_config,
        source=t.source,
        is_active=t.is_active,
        created_at=iso(t.created_at) or "",
        updated_at=iso(t.updated_at) or "",
    )


def get_policy_service(
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_with_tenant),
) -> PolicyService:
    return PolicyService(db, current_user["tenant_id"])


@router.get("", response_model=List[ApprovalTypeResponse])
async def list_approval_types(
    target_table: Optional[str] = Query(None),
    is_active: Optional[bool] = Query(None),
    service: PolicyService = Depends(get_policy_service),
    _auth: None = Depends(require_admin()),
):
    policies = await service.list_policies(target_table=target_table, active=is_active)
    return [_type_to_response(p) for p in policies]


@router.post("", response_model=ApprovalTypeResponse, status_code=status.HTTP_201_CREATED)
async def create_approval_type(
    body: ApprovalTypeCreate,
    current_user: dict = Depends(get_current_user),
    service: PolicyService = Depends(get_policy_service),
    _auth: None = Depends(require_admin()),
):
    policy = await service.create_policy(body.model_dump(mode="json"), current_user["user_id"])
    return _type_to_response(policy)


@router.get("/{approval_type_id}", response_model=ApprovalTypeResponse)
async def get_approval_type(
    approval_type_id: str,
    service: PolicyService = Depends(get_policy_service),
    _auth: None = Depends(require_admin()),
):
    return _type_to_response(await service.get_policy(approval_type_id))


@router.patch("/{approval_type_id}", response_model=ApprovalTypeResponse)
async def update_approval_type(
    approval_type_id: str,
    body: ApprovalTypeUpdate,
    current_user: dict = Depends(get_current_user),
    service: PolicyService = Depends(get_policy_service),
    _auth: None = Depends(require_admin()),
):
    changes = body.model_dump(mode="json", exclude_unset=True)
    policy = await service.update_policy(approval_type_id, changes, current_user["user_id"])
    return _type_to_response(policy)


@router.delete("/{approval_type_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_approval_type(
    approval_type_id: str,
    service: PolicyService = Depends(get_policy_service),
    _auth: None = Depends(require_admin()),
):
    await service.delete_policy(approval_type_id)
