import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    String,
    Integer,
    Boolean,
    DateTime,
    Text,
    CheckConstraint,
    UniqueConstraint,
    Index,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from approval_engine.database import Base

APPROVAL_MODES = ("sequential", "parallel", "quorum")
REQUIRE_COMMENTS_MODES = ("never", "on_reject", "always")

DEFAULT_RESPONSE_OPTIONS = [
    {"code": "approved", "label": "Approve"},
    {"code": "rejected", "label": "Reject"},
]
DEFAULT_NOTIFICATION_CONFIG = {
    "on_request": True,
    "on_approve": True,
    "on_reject": True,
    "on_escalate": True,
}

# Changing these while requests are open would change how those requests resolve
STRUCTURAL_FIELDS = frozenset({
    "target_table",
    "approval_mode",
    "quorum_percentage",
    "approver_config",
    "response_options",
    "require_comments",
})


class ApprovalType(Base):
    __tablename__ = "approval_types"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # NULL for platform-scoped policies
    tenant_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    code: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)
    target_table: Mapped[Optional[str]] = mapped_column(String(100))
    trigger_conditions: Mapped[Optional[dict]] = mapped_column(JSONB)
    approval_mode: Mapped[str] = mapped_column(String(20), default="sequential")
    quorum_percentage: Mapped[Optional[int]] = mapped_column(Integer)
    hierarchy_levels: Mapped[Optional[int]] = mapped_column(Integer)
    approver_config: Mapped[dict] = mapped_column(JSONB, default=dict)
    response_options: Mapped[list] = mapped_column(
        JSONB, default=lambda: list(DEFAULT_RESPONSE_OPTIONS)
    )
    require_comments: Mapped[str] = mapped_column(String(20), default="on_reject")
    allow_delegate: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_recall: Mapped[bool] = mapped_column(Boolean, default=True)
    escalation_config: Mapped[Optional[dict]] = mapped_column(JSONB)
    sla_hours: Mapped[Optional[int]] = mapped_column(Integer)
    sla_warning_hours: Mapped[Optional[int]] = mapped_column(Integer)
    notification_config: Mapped[Optional[dict]] = mapped_column(
        JSONB, default=lambda: dict(DEFAULT_NOTIFICATION_CONFIG)
    )
    source: Mapped[str] = mapped_column(String(20), default="tenant")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    updated_by: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "code", name="uq_approval_type_tenant_code"),
        CheckConstraint(
            "approval_mode IN ('sequential', 'parallel', 'quorum')",
            name="chk_approval_type_mode",
        ),
        CheckConstraint(
            "quorum_percentage IS NULL OR (quorum_percentage >= 0 AND quorum_percentage <= 100)",
            name="chk_approval_type_quorum",
        ),
        CheckConstraint(
            "require_comments IN ('never', 'on_reject', 'always')",
            name="chk_approval_type_require_comments",
        ),
        Index("idx_approval_types_tenant", "tenant_id"),
        Index("idx_approval_types_target", "target_table"),
    )

    def response_codes(self) -> list[str]:
        options = self.response_options or DEFAULT_RESPONSE_OPTIONS
        return [o["code"] if isinstance(o, dict) else str(o) for o in options]

    def notifies(self, event: str) -> bool:
        config = self.notification_config or DEFAULT_NOTIFICATION_CONFIG
        return bool(config.get(event, True))
