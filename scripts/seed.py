"""
Seed script: one tenant, a handful of directory users and three approval
types (sequential, parallel, quorum) to exercise the engine locally.
Run from the repo root: python -m scripts.seed
"""
import asyncio
import uuid

from sqlalchemy import select

from approval_engine.database import AsyncSessionLocal
from approval_engine.models.approval_type import (
    DEFAULT_NOTIFICATION_CONFIG,
    DEFAULT_RESPONSE_OPTIONS,
    ApprovalType,
)
from approval_engine.models.user import User

# ---------- Fixed UUIDs ----------

TENANT_ACME_ID = uuid.UUID("a0000000-0000-0000-0000-000000000001")

USER_ADMIN_ID = uuid.UUID("a0000000-0000-0000-0000-000000000101")
USER_REQUESTER_ID = uuid.UUID("a0000000-0000-0000-0000-000000000102")
USER_MANAGER_ID = uuid.UUID("a0000000-0000-0000-0000-000000000103")
USER_FINANCE_1_ID = uuid.UUID("a0000000-0000-0000-0000-000000000104")
USER_FINANCE_2_ID = uuid.UUID("a0000000-0000-0000-0000-000000000105")
USER_CFO_ID = uuid.UUID("a0000000-0000-0000-0000-000000000106")

TYPE_SEQUENTIAL_ID = uuid.UUID("c0000000-0000-0000-0000-000000000001")
TYPE_PARALLEL_ID = uuid.UUID("c0000000-0000-0000-0000-000000000002")
TYPE_QUORUM_ID = uuid.UUID("c0000000-0000-0000-0000-000000000003")


def _approval_type(type_id, code, name, mode, approvers, quorum=None, sla_hours=None):
    return ApprovalType(
        id=type_id,
        tenant_id=TENANT_ACME_ID,
        code=code,
        name=name,
        target_table="purchase_requests",
        approval_mode=mode,
        quorum_percentage=quorum,
        approver_config={"approvers": approvers},
        response_options=list(DEFAULT_RESPONSE_OPTIONS),
        require_comments="on_reject",
        allow_delegate=True,
        allow_recall=True,
        sla_hours=sla_hours,
        sla_warning_hours=sla_hours // 2 if sla_hours else None,
        notification_config=dict(DEFAULT_NOTIFICATION_CONFIG),
        source="tenant",
        is_active=True,
        created_by=USER_ADMIN_ID,
        updated_by=USER_ADMIN_ID,
    )


async def seed():
    async with AsyncSessionLocal() as db:
        # Table owners bypass RLS, so no tenant context is needed here
        result = await db.execute(select(User).where(User.id == USER_ADMIN_ID))
        if result.scalar_one_or_none():
            print("Seed data already exists. Skipping.")
            return

        users = [
            User(id=USER_ADMIN_ID, tenant_id=TENANT_ACME_ID, email="admin@acme.com",
                 first_name="Asha", last_name="Admin", role="admin"),
            User(id=USER_REQUESTER_ID, tenant_id=TENANT_ACME_ID, email="requester@acme.com",
                 first_name="Ravi", last_name="Requester", role="employee"),
            User(id=USER_MANAGER_ID, tenant_id=TENANT_ACME_ID, email="manager@acme.com",
                 first_name="Maya", last_name="Manager", role="manager"),
            User(id=USER_FINANCE_1_ID, tenant_id=TENANT_ACME_ID, email="finance1@acme.com",
                 first_name="Farah", last_name="Finance", role="finance"),
            User(id=USER_FINANCE_2_ID, tenant_id=TENANT_ACME_ID, email="finance2@acme.com",
                 first_name="Felix", last_name="Finance", role="finance"),
            User(id=USER_CFO_ID, tenant_id=TENANT_ACME_ID, email="cfo@acme.com",
                 first_name="Chen", last_name="Cfo", role="cfo"),
        ]
        db.add_all(users)
        await db.flush()

        approval_types = [
            _approval_type(
                TYPE_SEQUENTIAL_ID, "pr_standard", "Purchase request (standard)", "sequential",
                [{"role": "manager"}, {"role": "cfo"}],
                sla_hours=48,
            ),
            _approval_type(
                TYPE_PARALLEL_ID, "pr_finance_review", "Purchase request (finance review)", "parallel",
                [{"user_id": str(USER_FINANCE_1_ID)}, {"user_id": str(USER_FINANCE_2_ID)}],
            ),
            _approval_type(
                TYPE_QUORUM_ID, "pr_committee", "Purchase request (committee)", "quorum",
                [
                    {"user_id": str(USER_MANAGER_ID)},
                    {"user_id": str(USER_FINANCE_1_ID)},
                    {"user_id": str(USER_CFO_ID)},
                ],
                quorum=60,
                sla_hours=24,
            ),
        ]
        db.add_all(approval_types)

        await db.commit()
        print("Seed data inserted successfully!")
        print(f"  Users: {len(users)}")
        print(f"  Approval types: {len(approval_types)}")


if __name__ == "__main__":
    asyncio.run(seed())
