"""create approval tables

Revision ID: 4f1a2b3c5d6e
Revises:
Create Date: 2026-10-18 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '4f1a2b3c5d6e'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

TENANT_SETTING = "current_setting('app.current_tenant_id', true)"

# Tables with tenant_id that get RLS
RLS_TABLES = ["users", "approval_requests", "approval_assignments", "approval_history"]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=True),
        sa.Column("last_name", sa.String(100), nullable=True),
        sa.Column("role", sa.String(50), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("idx_users_tenant_role", "users", ["tenant_id", "role"])
    op.create_index("idx_users_email", "users", ["email"])

    op.create_table(
        "approval_types",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("code", sa.String(100), nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("target_table", sa.String(100), nullable=True),
        sa.Column("trigger_conditions", postgresql.JSONB(), nullable=True),
        sa.Column("approval_mode", sa.String(20), nullable=False, server_default="sequential"),
        sa.Column("quorum_percentage", sa.Integer(), nullable=True),
        sa.Column("hierarchy_levels", sa.Integer(), nullable=True),
        sa.Column("approver_config", postgresql.JSONB(), nullable=False),
        sa.Column("response_options", postgresql.JSONB(), nullable=False),
        sa.Column("require_comments", sa.String(20), nullable=False, server_default="on_reject"),
        sa.Column("allow_delegate", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("allow_recall", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("escalation_config", postgresql.JSONB(), nullable=True),
        sa.Column("sla_hours", sa.Integer(), nullable=True),
        sa.Column("sla_warning_hours", sa.Integer(), nullable=True),
        sa.Column("notification_config", postgresql.JSONB(), nullable=True),
        sa.Column("source", sa.String(20), nullable=False, server_default="tenant"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("tenant_id", "code", name="uq_approval_type_tenant_code"),
        sa.CheckConstraint(
            "approval_mode IN ('sequential', 'parallel', 'quorum')",
            name="chk_approval_type_mode",
        ),
        sa.CheckConstraint(
            "quorum_percentage IS NULL OR (quorum_percentage >= 0 AND quorum_percentage <= 100)",
            name="chk_approval_type_quorum",
        ),
        sa.CheckConstraint(
            "require_comments IN ('never', 'on_reject', 'always')",
            name="chk_approval_type_require_comments",
        ),
    )
    op.create_index("idx_approval_types_tenant", "approval_types", ["tenant_id"])
    op.create_index("idx_approval_types_target", "approval_types", ["target_table"])

    op.create_table(
        "approval_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approval_type_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("target_table", sa.String(100), nullable=False),
        sa.Column("target_record_id", sa.String(100), nullable=False),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("requested_action", sa.String(50), nullable=True),
        sa.Column("target_record_snapshot", postgresql.JSONB(), nullable=True),
        sa.Column("changes_summary", postgresql.JSONB(), nullable=True),
        sa.Column("requestor_comments", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("final_response", sa.String(50), nullable=True),
        sa.Column("final_response_at", sa.DateTime(), nullable=True),
        sa.Column("final_responder_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("requested_by", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("due_at", sa.DateTime(), nullable=True),
        sa.Column("sla_warning_at", sa.DateTime(), nullable=True),
        sa.Column("sla_warning_sent_at", sa.DateTime(), nullable=True),
        sa.Column("sla_breached_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["approval_type_id"], ["approval_types.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "status IN ('pending', 'in_progress', 'approved', 'rejected', 'cancelled')",
            name="chk_approval_request_status",
        ),
    )
    op.create_index("idx_approval_requests_tenant_status", "approval_requests", ["tenant_id", "status"])
    op.create_index("idx_approval_requests_type", "approval_requests", ["approval_type_id"])
    op.create_index(
        "idx_approval_requests_target", "approval_requests", ["target_table", "target_record_id"]
    )
    op.create_index("idx_approval_requests_requested_by", "approval_requests", ["requested_by"])
    # SLA sweep scans open requests only
    op.execute(
        "CREATE INDEX idx_approval_requests_open_due "
        "ON approval_requests(due_at) WHERE status IN ('pending', 'in_progress')"
    )

    op.create_table(
        "approval_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approval_request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approver_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approver_role", sa.String(50), nullable=True),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("response", sa.String(50), nullable=True),
        sa.Column("response_comments", sa.Text(), nullable=True),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.Column("notified_at", sa.DateTime(), nullable=True),
        sa.Column("delegated_from_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("delegated_to", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("delegated_at", sa.DateTime(), nullable=True),
        sa.Column("delegation_reason", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"]),
        sa.ForeignKeyConstraint(["delegated_from_id"], ["approval_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("sequence_order >= 0", name="chk_approval_assignment_sequence"),
        sa.CheckConstraint(
            "status IN ('pending', 'notified', 'responded', 'delegated')",
            name="chk_approval_assignment_status",
        ),
        sa.CheckConstraint(
            "(status = 'responded') = (response IS NOT NULL)",
            name="chk_approval_assignment_response",
        ),
    )
    op.create_index(
        "idx_approval_assignments_request",
        "approval_assignments",
        ["approval_request_id", "sequence_order"],
    )
    op.create_index(
        "idx_approval_assignments_approver", "approval_assignments", ["approver_id", "status"]
    )

    op.create_table(
        "approval_history",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tenant_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("approval_request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("assignment_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("action_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action_at", sa.DateTime(), nullable=False, server_default=sa.text("now()")),
        sa.Column("action_data", postgresql.JSONB(), nullable=True),
        sa.ForeignKeyConstraint(["approval_request_id"], ["approval_requests.id"]),
        sa.ForeignKeyConstraint(["assignment_id"], ["approval_assignments.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint(
            "action IN ('created', 'responded', 'delegated', 'cancelled', 'rolled_back')",
            name="chk_approval_history_action",
        ),
    )
    op.create_index(
        "idx_approval_history_request", "approval_history", ["approval_request_id", "action_at"]
    )

    # History is append-only
    op.execute("""
        CREATE OR REPLACE FUNCTION approval_history_immutable() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'approval_history is append-only';
        END;
        $$ LANGUAGE plpgsql
    """)
    op.execute("""
        CREATE TRIGGER trg_approval_history_immutable
            BEFORE UPDATE OR DELETE ON approval_history
            FOR EACH ROW EXECUTE FUNCTION approval_history_immutable()
    """)

    for table in RLS_TABLES:
        op.execute(f"ALTER TABLE {table} ENABLE ROW LEVEL SECURITY")
        op.execute(
            f"CREATE POLICY tenant_isolation_{table} ON {table} "
            f"USING (tenant_id::text = {TENANT_SETTING})"
        )
    # Platform approval types (tenant_id IS NULL) are visible to every tenant
    op.execute("ALTER TABLE approval_types ENABLE ROW LEVEL SECURITY")
    op.execute(
        "CREATE POLICY tenant_isolation_approval_types ON approval_types "
        f"USING (tenant_id IS NULL OR tenant_id::text = {TENANT_SETTING})"
    )


def downgrade() -> None:
    op.execute("DROP POLICY IF EXISTS tenant_isolation_approval_types ON approval_types")
    op.execute("ALTER TABLE approval_types DISABLE ROW LEVEL SECURITY")
    for table in reversed(RLS_TABLES):
        op.execute(f"DROP POLICY IF EXISTS tenant_isolation_{table} ON {table}")
        op.execute(f"ALTER TABLE {table} DISABLE ROW LEVEL SECURITY")

    op.execute("DROP TRIGGER IF EXISTS trg_approval_history_immutable ON approval_history")
    op.execute("DROP FUNCTION IF EXISTS approval_history_immutable()")

    op.drop_table("approval_history")
    op.drop_table("approval_assignments")
    op.execute("DROP INDEX IF EXISTS idx_approval_requests_open_due")
    op.drop_table("approval_requests")
    op.drop_table("approval_types")
    op.drop_table("users")
