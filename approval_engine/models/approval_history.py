import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime, ForeignKey, CheckConstraint, Index
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from approval_engine.database import Base

HISTORY_CREATED = "created"
HISTORY_RESPONDED = "responded"
HISTORY_DELEGATED = "delegated"
HISTORY_CANCELLED = "cancelled"
HISTORY_ROLLED_BACK = "rolled_back"

HISTORY_ACTIONS = (
    HISTORY_CREATED,
    HISTORY_RESPONDED,
    HISTORY_DELEGATED,
    HISTORY_CANCELLED,
    HISTORY_ROLLED_BACK,
)


class ApprovalHistory(Base):
    """Insert-only audit row. The migration installs a trigger refusing UPDATE/DELETE."""

    __tablename__ = "approval_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    approval_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=False
    )
    assignment_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_assignments.id")
    )
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    action_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    action_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    action_data: Mapped[Optional[dict]] = mapped_column(JSONB, default=dict)

    __table_args__ = (
        CheckConstraint(
            "action IN ('created', 'responded', 'delegated', 'cancelled', 'rolled_back')",
            name="chk_approval_history_action",
        ),
        Index("idx_approval_history_request", "approval_request_id", "action_at"),
    )
