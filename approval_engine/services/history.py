"""History recorder: append-only approval audit trail."""

import uuid
from typing import Optional

import structlog

from approval_engine.models.approval_history import HISTORY_ACTIONS, ApprovalHistory
from approval_engine.services.clock import Clock, utcnow

logger = structlog.get_logger()


class HistoryRecorder:
    """
    Builds ApprovalHistory rows and hands them to the store's append_history.

    There is no update or delete path; the table itself rejects both.
    """

    def __init__(self, store, tenant_id: uuid.UUID, clock: Clock = utcnow):
        self.store = store
        self.tenant_id = tenant_id
        self.clock = clock

    async def record(
        self,
        request_id: uuid.UUID,
        action: str,
        action_by: Optional[uuid.UUID],
        action_data: Optional[dict] = None,
        assignment_id: Optional[uuid.UUID] = None,
    ) -> ApprovalHistory:
        if action not in HISTORY_ACTIONS:
            raise ValueError(f"Unknown approval history action: {action}")

        entry = ApprovalHistory(
            id=uuid.uuid4(),
            tenant_id=self.tenant_id,
            approval_request_id=request_id,
            assignment_id=assignment_id,
            action=action,
            action_by=action_by,
            action_at=self.clock(),
            action_data=dict(action_data or {}),
        )
        await self.store.append_history(entry)

        logger.info(
            "approval_history_recorded",
            request_id=str(request_id),
            action=action,
            action_by=str(action_by) if action_by else None,
        )
        return entry
