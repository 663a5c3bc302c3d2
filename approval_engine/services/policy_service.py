"""
Policy service: approval type administration.

Structural fields (see models.approval_type.STRUCTURAL_FIELDS) are frozen
while open requests reference the policy; a referenced policy is never
deleted, only deactivated.
"""

import uuid
from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from approval_engine.errors import (
    DuplicatePolicyCode,
    ForbiddenError,
    PolicyInUse,
    PolicyNotFound,
    ValidationError,
)
from approval_engine.models.approval_request import OPEN_REQUEST_STATUSES, ApprovalRequest
from approval_engine.models.approval_type import (
    DEFAULT_NOTIFICATION_CONFIG,
    DEFAULT_RESPONSE_OPTIONS,
    STRUCTURAL_FIELDS,
    ApprovalType,
)
from approval_engine.services.assignment_resolver import parse_approver_config
from approval_engine.services.clock import Clock, utcnow
from approval_engine.services.ids import IdLike, to_uuid

logger = structlog.get_logger()

# Columns a PATCH may not null out
NON_NULLABLE_FIELDS = frozenset({
    "code",
    "name",
    "approval_mode",
    "approver_config",
    "response_options",
    "require_comments",
    "allow_delegate",
    "allow_recall",
    "is_active",
})


class PolicyService:
    def __init__(self, session: AsyncSession, tenant_id: IdLike, clock: Clock = utcnow):
        self.session = session
        self.tenant_id = to_uuid(tenant_id, "tenant_id")
        self.clock = clock

    async def list_policies(
        self, target_table: Optional[str] = None, active: Optional[bool] = None
    ) -> list[ApprovalType]:
        q = select(ApprovalType).where(
            or_(
                ApprovalType.tenant_id == self.tenant_id,
                ApprovalType.tenant_id == None,  # noqa: E711
            )
        )
        if target_table:
            q = q.where(ApprovalType.target_table == target_table)
        if active is not None:
            q = q.where(ApprovalType.is_active == active)
        result = await self.session.execute(q.order_by(ApprovalType.code))
        return list(result.scalars().all())

    async def get_policy(self, policy_id: IdLike) -> ApprovalType:
        result = await self.session.execute(
            select(ApprovalType).where(
                ApprovalType.id == to_uuid(policy_id, "approval_type_id"),
                or_(
                    ApprovalType.tenant_id == self.tenant_id,
                    ApprovalType.tenant_id == None,  # noqa: E711
                ),
            )
        )
        policy = result.scalar_one_or_none()
        if policy is None:
            raise PolicyNotFound()
        return policy

    async def create_policy(self, data: dict, actor_id: IdLike) -> ApprovalType:
        parse_approver_config(data.get("approver_config"))
        if await self._code_taken(data["code"]):
            raise DuplicatePolicyCode(f'Approval type with code "{data["code"]}" already exists')

        now = self.clock()
        actor = to_uuid(actor_id, "actor_id")
        policy = ApprovalType(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            code=data["code"],
            name=data["name"],
            description=data.get("description"),
            target_table=data.get("target_table"),
            trigger_conditions=data.get("trigger_conditions"),
            approval_mode=data.get("approval_mode") or "sequential",
            quorum_percentage=data.get("quorum_percentage"),
            hierarchy_levels=data.get("hierarchy_levels"),
            approver_config=data["approver_config"],
            response_options=data.get("response_options") or list(DEFAULT_RESPONSE_OPTIONS),
            require_comments=data.get("require_comments") or "on_reject",
            allow_delegate=data.get("allow_delegate", True),
            allow_recall=data.get("allow_recall", True),
            escalation_config=data.get("escalation_config"),
            sla_hours=data.get("sla_hours"),
            sla_warning_hours=data.get("sla_warning_hours"),
            notification_config=data.get("notification_config") or dict(DEFAULT_NOTIFICATION_CONFIG),
            source="tenant",
            is_active=data.get("is_active", True),
            created_by=actor,
            updated_by=actor,
            created_at=now,
            updated_at=now,
        )
        self.session.add(policy)
        await self.session.flush()

        logger.info("approval_type_created", approval_type_id=str(policy.id), code=policy.code)
        return policy

    async def update_policy(self, policy_id: IdLike, changes: dict, actor_id: IdLike) -> ApprovalType:
        policy = await self.get_policy(policy_id)
        self._ensure_tenant_owned(policy)

        changes = {
            k: v for k, v in changes.items()
            if getattr(policy, k, None) != v and not (v is None and k in NON_NULLABLE_FIELDS)
        }
        if not changes:
            return policy

        if "code" in changes and await self._code_taken(changes["code"], exclude_id=policy.id):
            raise DuplicatePolicyCode(f'Approval type with code "{changes["code"]}" already exists')
        if "approver_config" in changes:
            parse_approver_config(changes["approver_config"])

        structural = sorted(STRUCTURAL_FIELDS & changes.keys())
        if structural and await self._count_requests(policy.id, open_only=True):
            raise PolicyInUse(
                "Structural fields cannot change while open requests use this approval type",
                fields=structural,
            )

        sla_hours = changes.get("sla_hours", policy.sla_hours)
        warning_hours = changes.get("sla_warning_hours", policy.sla_warning_hours)
        if sla_hours is not None and warning_hours is not None and warning_hours >= sla_hours:
            raise ValidationError("sla_warning_hours must be less than sla_hours")

        for key, value in changes.items():
            setattr(policy, key, value)
        policy.updated_by = to_uuid(actor_id, "actor_id")
        policy.updated_at = self.clock()
        await self.session.flush()

        logger.info(
            "approval_type_updated",
            approval_type_id=str(policy.id),
            fields=sorted(changes.keys()),
        )
        return policy

    async def delete_policy(self, policy_id: IdLike) -> None:
        policy = await self.get_policy(policy_id)
        self._ensure_tenant_owned(policy)

        if await self._count_requests(policy.id, open_only=False):
            raise PolicyInUse("Approval type has requests; deactivate it instead")

        await self.session.delete(policy)
        await self.session.flush()
        logger.info("approval_type_deleted", approval_type_id=str(policy.id), code=policy.code)

    # ---------- helpers ----------

    def _ensure_tenant_owned(self, policy: ApprovalType) -> None:
        if policy.tenant_id != self.tenant_id:
            raise ForbiddenError("Platform approval types cannot be modified by a tenant")

    async def _code_taken(self, code: str, exclude_id: Optional[uuid.UUID] = None) -> bool:
        q = select(func.count(ApprovalType.id)).where(
            ApprovalType.tenant_id == self.tenant_id,
            ApprovalType.code == code,
        )
        if exclude_id is not None:
            q = q.where(ApprovalType.id != exclude_id)
        return ((await self.session.execute(q)).scalar() or 0) > 0

    async def _count_requests(self, policy_id: uuid.UUID, open_only: bool) -> int:
        q = select(func.count(ApprovalRequest.id)).where(
            ApprovalRequest.approval_type_id == policy_id
        )
        if open_only:
            q = q.where(ApprovalRequest.status.in_(OPEN_REQUEST_STATUSES))
        return (await self.session.execute(q)).scalar() or 0
