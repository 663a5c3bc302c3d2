"""
Assignment resolver: policy approver list → ordered assignment specs.

approver_config = {"approvers": [{"user_id": "<uuid>"}, {"role": "cfo"}, ...]}

Each entry yields exactly one assignment with sequence_order = its index.
A role must resolve to exactly one active user; anything else is a
configuration error raised to the caller, never silently dropped.
"""

import uuid
from dataclasses import dataclass
from typing import Any, Optional, Union

import structlog

from approval_engine.errors import (
    ApproverResolutionError,
    EmptyApproverList,
    MalformedApproverSpec,
    PolicyInactive,
    ValidationError,
)
from approval_engine.services.ids import to_uuid

logger = structlog.get_logger()


@dataclass(frozen=True)
class ByUser:
    user_id: uuid.UUID
    role: Optional[str] = None


@dataclass(frozen=True)
class ByRole:
    role_code: str


ApproverSpec = Union[ByUser, ByRole]


@dataclass
class AssignmentSpec:
    approver_id: uuid.UUID
    approver_role: Optional[str]
    sequence_order: int


def parse_approver(entry: Any, index: int) -> ApproverSpec:
    if not isinstance(entry, dict):
        raise MalformedApproverSpec(index=index)

    user_id = entry.get("user_id")
    role = entry.get("role")
    if role is not None and (not isinstance(role, str) or not role.strip()):
        raise MalformedApproverSpec("Approver role must be a non-empty string", index=index)

    if user_id:
        try:
            return ByUser(user_id=to_uuid(user_id, "user_id"), role=role)
        except ValidationError:
            raise MalformedApproverSpec("Approver user_id must be a valid UUID", index=index)
    if role:
        return ByRole(role_code=role.strip())
    raise MalformedApproverSpec(index=index)


def parse_approver_config(approver_config: Optional[dict]) -> list[ApproverSpec]:
    """Parse and validate `approver_config`. Raises on an empty or malformed list."""
    approvers = (approver_config or {}).get("approvers") or []
    if not isinstance(approvers, list):
        raise MalformedApproverSpec("approver_config.approvers must be a list")
    if not approvers:
        raise EmptyApproverList()
    return [parse_approver(entry, i) for i, entry in enumerate(approvers)]


async def resolve_assignments(policy, identity) -> list[AssignmentSpec]:
    """Build one AssignmentSpec per configured approver. Pure: nothing is persisted."""
    if not policy.is_active:
        raise PolicyInactive()

    specs = parse_approver_config(policy.approver_config)

    resolved: list[AssignmentSpec] = []
    for index, spec in enumerate(specs):
        user_ids = await identity.resolve_approvers(spec)
        if len(user_ids) != 1:
            label = spec.role_code if isinstance(spec, ByRole) else str(spec.user_id)
            logger.warning(
                "approver_resolution_failed",
                approval_type_id=str(policy.id),
                approver=label,
                matches=len(user_ids),
            )
            raise ApproverResolutionError(
                f"Approver '{label}' resolved to {len(user_ids)} users; expected exactly one",
                index=index,
                matches=len(user_ids),
            )
        role = spec.role_code if isinstance(spec, ByRole) else spec.role
        resolved.append(AssignmentSpec(
            approver_id=user_ids[0],
            approver_role=role,
            sequence_order=index,
        ))

    return resolved
