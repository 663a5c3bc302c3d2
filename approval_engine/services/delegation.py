import uuid
from datetime import datetime
from typing import Optional

import structlog

from approval_engine.errors import AssignmentClosed, SelfDelegation
from approval_engine.models.approval_request import (
    ACTIVE_ASSIGNMENT_STATUSES,
    ASSIGNMENT_DELEGATED,
    ASSIGNMENT_PENDING,
    ApprovalAssignment,
)

logger = structlog.get_logger()


def delegate_assignment(
    assignment: ApprovalAssignment,
    delegate_user_id: uuid.UUID,
    reason: Optional[str],
    now: datetime,
) -> tuple[ApprovalAssignment, ApprovalAssignment]:
    """
    Close `assignment` as delegated and build its successor.

    The successor keeps the slot's sequence_order and role, so it is counted by
    the aggregator exactly as the original would have been. Chains of any
    depth are followed through delegated_from_id.
    """
    if assignment.status not in ACTIVE_ASSIGNMENT_STATUSES:
        raise AssignmentClosed(
            f"Assignment is already {assignment.status}",
            assignment_id=str(assignment.id),
        )
    if str(delegate_user_id) == str(assignment.approver_id):
        raise SelfDelegation()

    assignment.status = ASSIGNMENT_DELEGATED
    assignment.delegated_to = delegate_user_id
    assignment.delegated_at = now
    assignment.delegation_reason = reason

    successor = ApprovalAssignment(
        id=uuid.uuid4(),
        tenant_id=assignment.tenant_id,
        approval_request_id=assignment.approval_request_id,
        approver_id=delegate_user_id,
        approver_role=assignment.approver_role,
        sequence_order=assignment.sequence_order,
        status=ASSIGNMENT_PENDING,
        delegated_from_id=assignment.id,
        created_at=now,
    )

    logger.info(
        "approval_assignment_delegated",
        assignment_id=str(assignment.id),
        successor_id=str(successor.id),
        delegated_to=str(delegate_user_id),
        sequence_order=assignment.sequence_order,
    )
    return assignment, successor
