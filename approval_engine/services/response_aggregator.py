"""
Response aggregator: derives a request's status from its assignment set.

Evaluated over the full assignment set after every mutating action:

  1. rejected > 0                   → rejected (any single rejection is terminal)
  2. active == 0 and approved > 0   → approved
  3. active > 0                     → in_progress
  4. otherwise                      → status unchanged

Delegated assignments are counted nowhere; their successors are.
approval_mode and quorum_percentage are not consulted.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional
import uuid

import structlog

from approval_engine.errors import InvalidTransition, RequestClosed
from approval_engine.models.approval_request import (
    ACTIVE_ASSIGNMENT_STATUSES,
    ASSIGNMENT_RESPONDED,
    OPEN_REQUEST_STATUSES,
    REQUEST_APPROVED,
    REQUEST_CANCELLED,
    REQUEST_IN_PROGRESS,
    REQUEST_PENDING,
    REQUEST_REJECTED,
    RESPONSE_APPROVED,
    RESPONSE_REJECTED,
    TERMINAL_REQUEST_STATUSES,
)

logger = structlog.get_logger()

# Allowed request status transitions; nothing ever returns to pending.
TRANSITIONS = {
    REQUEST_PENDING: {REQUEST_IN_PROGRESS, REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_CANCELLED},
    REQUEST_IN_PROGRESS: {REQUEST_IN_PROGRESS, REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_CANCELLED},
    REQUEST_APPROVED: set(),
    REQUEST_REJECTED: set(),
    REQUEST_CANCELLED: set(),
}


@dataclass
class AssignmentTally:
    active: int = 0
    approved: int = 0
    rejected: int = 0
    other_responses: int = 0
    delegated: int = 0


def tally(assignments: Iterable) -> AssignmentTally:
    counts = AssignmentTally()
    for a in assignments:
        if a.status in ACTIVE_ASSIGNMENT_STATUSES:
            counts.active += 1
        elif a.status == ASSIGNMENT_RESPONDED:
            if a.response == RESPONSE_APPROVED:
                counts.approved += 1
            elif a.response == RESPONSE_REJECTED:
                counts.rejected += 1
            else:
                counts.other_responses += 1
        else:
            counts.delegated += 1
    return counts


def ensure_open(request) -> None:
    if request.status not in OPEN_REQUEST_STATUSES:
        raise RequestClosed(
            f"Approval request is already {request.status}",
            status=request.status,
        )


def recompute(request, assignments: Iterable) -> str:
    """Return the status the request should move to. Does not mutate anything."""
    ensure_open(request)
    counts = tally(assignments)

    if counts.rejected > 0:
        return REQUEST_REJECTED
    if counts.active == 0 and counts.approved > 0:
        return REQUEST_APPROVED
    if counts.active > 0:
        return REQUEST_IN_PROGRESS
    # Every slot resolved with labels that are neither approved nor rejected
    logger.warning(
        "approval_request_unresolvable",
        request_id=str(request.id),
        other_responses=counts.other_responses,
    )
    return request.status


def apply_status(
    request,
    new_status: str,
    actor_id: Optional[uuid.UUID],
    now: datetime,
    final_response: Optional[str] = None,
) -> bool:
    """
    Move the request to `new_status`, stamping the final-response fields when
    the status is terminal. Returns True if the status changed.
    """
    if new_status == request.status:
        return False
    if new_status not in TRANSITIONS.get(request.status, set()):
        raise InvalidTransition(f"{request.status} -> {new_status}")

    request.status = new_status
    request.updated_at = now
    if new_status in TERMINAL_REQUEST_STATUSES:
        request.final_response = final_response or new_status
        request.final_response_at = now
        request.final_responder_id = actor_id
    return True
