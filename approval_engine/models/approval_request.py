import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    Text,
    ForeignKey,
    CheckConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from approval_engine.database import Base

# Request statuses
REQUEST_PENDING = "pending"
REQUEST_IN_PROGRESS = "in_progress"
REQUEST_APPROVED = "approved"
REQUEST_REJECTED = "rejected"
REQUEST_CANCELLED = "cancelled"

OPEN_REQUEST_STATUSES = (REQUEST_PENDING, REQUEST_IN_PROGRESS)
TERMINAL_REQUEST_STATUSES = (REQUEST_APPROVED, REQUEST_REJECTED, REQUEST_CANCELLED)

# Assignment statuses
ASSIGNMENT_PENDING = "pending"
ASSIGNMENT_NOTIFIED = "notified"
ASSIGNMENT_RESPONDED = "responded"
ASSIGNMENT_DELEGATED = "delegated"

ACTIVE_ASSIGNMENT_STATUSES = (ASSIGNMENT_PENDING, ASSIGNMENT_NOTIFIED)

RESPONSE_APPROVED = "approved"
RESPONSE_REJECTED = "rejected"


class ApprovalRequest(Base):
    __tablename__ = "approval_requests"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    approval_type_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_types.id"), nullable=False
    )
    target_table: Mapped[str] = mapped_column(String(100), nullable=False)
    target_record_id: Mapped[str] = mapped_column(String(100), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    requested_action: Mapped[Optional[str]] = mapped_column(String(50))
    target_record_snapshot: Mapped[Optional[dict]] = mapped_column(JSONB)
    changes_summary: Mapped[Optional[dict]] = mapped_column(JSONB)
    requestor_comments: Mapped[Optional[str]] = mapped_column(Text)
    status: Mapped[str] = mapped_column(String(20), default=REQUEST_PENDING)
    final_response: Mapped[Optional[str]] = mapped_column(String(50))
    final_response_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    final_responder_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    requested_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    due_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sla_warning_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sla_warning_sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    sla_breached_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'approved', 'rejected', 'cancelled')",
            name="chk_approval_request_status",
        ),
        Index("idx_approval_requests_tenant_status", "tenant_id", "status"),
        Index("idx_approval_requests_type", "approval_type_id"),
        Index("idx_approval_requests_target", "target_table", "target_record_id"),
        Index("idx_approval_requests_requested_by", "requested_by"),
    )

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_REQUEST_STATUSES


class ApprovalAssignment(Base):
    __tablename__ = "approval_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    tenant_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    approval_request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_requests.id"), nullable=False
    )
    approver_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    approver_role: Mapped[Optional[str]] = mapped_column(String(50))
    sequence_order: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ASSIGNMENT_PENDING)
    response: Mapped[Optional[str]] = mapped_column(String(50))
    response_comments: Mapped[Optional[str]] = mapped_column(Text)
    responded_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    notified_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delegated_from_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("approval_assignments.id")
    )
    delegated_to: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    delegated_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    delegation_reason: Mapped[Optional[str]] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "sequence_order >= 0", name="chk_approval_assignment_sequence"
        ),
        CheckConstraint(
            "status IN ('pending', 'notified', 'responded', 'delegated')",
            name="chk_approval_assignment_status",
        ),
        CheckConstraint(
            "(status = 'responded') = (response IS NOT NULL)",
            name="chk_approval_assignment_response",
        ),
        Index("idx_approval_assignments_request", "approval_request_id", "sequence_order"),
        Index("idx_approval_assignments_approver", "approver_id", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_ASSIGNMENT_STATUSES
