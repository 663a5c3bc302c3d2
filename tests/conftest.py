"""
Shared fixtures.

Service-level tests run against InMemoryApprovalStore, which mirrors
SqlApprovalStore's interface (including a real per-request lock) so the
engine's scenarios can be exercised without Postgres.
"""

import asyncio
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, timedelta
from typing import Optional

import pytest

from approval_engine.models.approval_request import (
    ACTIVE_ASSIGNMENT_STATUSES,
    OPEN_REQUEST_STATUSES,
)
from approval_engine.models.approval_type import (
    DEFAULT_NOTIFICATION_CONFIG,
    DEFAULT_RESPONSE_OPTIONS,
    ApprovalType,
)
from approval_engine.services.approval_request_service import ApprovalRequestService
from approval_engine.services.assignment_resolver import ByRole, ByUser

TENANT_ID = uuid.UUID("a0000000-0000-0000-0000-000000000001")


class FrozenClock:
    def __init__(self, start: datetime = datetime(2026, 3, 2, 9, 0, 0)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryApprovalStore:
    def __init__(self, tenant_id: uuid.UUID = TENANT_ID):
        self.tenant_id = tenant_id
        self.policies: dict = {}
        self.requests: dict = {}
        self.assignments: dict = {}
        self.history: list = []
        self.locks: dict = defaultdict(asyncio.Lock)

    def add_policy(self, policy: ApprovalType) -> ApprovalType:
        self.policies[policy.id] = policy
        return policy

    @asynccontextmanager
    async def atomic(self):
        yield

    @asynccontextmanager
    async def request_lock(self, request_id):
        async with self.locks[request_id]:
            yield self.requests.get(request_id)

    async def get_policy(self, policy_id):
        return self.policies.get(policy_id)

    async def get_request(self, request_id):
        return self.requests.get(request_id)

    async def list_assignments(self, request_id):
        # Hand control back to the loop so concurrent callers interleave here
        await asyncio.sleep(0)
        rows = [a for a in self.assignments.values() if a.approval_request_id == request_id]
        return sorted(rows, key=lambda a: (a.sequence_order, a.created_at))

    async def list_history(self, request_id):
        return [h for h in self.history if h.approval_request_id == request_id]

    async def list_pending_for(self, approver_id, limit):
        rows = []
        for a in self.assignments.values():
            request = self.requests[a.approval_request_id]
            if (
                a.approver_id == approver_id
                and a.status in ACTIVE_ASSIGNMENT_STATUSES
                and request.status in OPEN_REQUEST_STATUSES
            ):
                rows.append((a, request))
        return rows[:limit]

    async def list_requests(
        self, approval_type_id=None, status=None, requested_by=None, page=1, limit=20
    ):
        rows = [
            r for r in self.requests.values()
            if (approval_type_id is None or r.approval_type_id == approval_type_id)
            and (status is None or r.status == status)
            and (requested_by is None or r.requested_by == requested_by)
        ]
        start = (page - 1) * limit
        return rows[start:start + limit], len(rows)

    async def save_request(self, request):
        self.requests[request.id] = request

    async def save_assignments(self, assignments):
        for a in assignments:
            self.assignments[a.id] = a

    async def append_history(self, entry):
        self.history.append(entry)

    # ---------- test helpers ----------

    def assignments_for(self, request_id) -> list:
        return sorted(
            (a for a in self.assignments.values() if a.approval_request_id == request_id),
            key=lambda a: (a.sequence_order, a.created_at),
        )

    def history_for(self, request_id) -> list:
        return [h for h in self.history if h.approval_request_id == request_id]


class FakeIdentityResolver:
    """Literal user ids resolve to themselves; roles come from `roles`."""

    def __init__(self, roles: Optional[dict] = None):
        self.roles = roles or {}

    async def resolve_approvers(self, spec):
        if isinstance(spec, ByUser):
            return [spec.user_id]
        assert isinstance(spec, ByRole)
        return list(self.roles.get(spec.role_code, []))


def make_policy(approvers: list, **overrides) -> ApprovalType:
    fields = dict(
        id=uuid.uuid4(),
        tenant_id=TENANT_ID,
        code=f"policy_{uuid.uuid4().hex[:8]}",
        name="Purchase request approval",
        target_table="purchase_requests",
        approval_mode="parallel",
        approver_config={"approvers": approvers},
        response_options=list(DEFAULT_RESPONSE_OPTIONS),
        require_comments="on_reject",
        allow_delegate=True,
        allow_recall=True,
        notification_config=dict(DEFAULT_NOTIFICATION_CONFIG),
        source="tenant",
        is_active=True,
    )
    fields.update(overrides)
    return ApprovalType(**fields)


def user_approvers(*user_ids) -> list:
    return [{"user_id": str(u)} for u in user_ids]


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def store():
    return InMemoryApprovalStore()


@pytest.fixture
def identity():
    return FakeIdentityResolver()


@pytest.fixture
def service(store, identity, clock):
    return ApprovalRequestService(store, identity, TENANT_ID, clock=clock, admin_roles={"admin"})


@pytest.fixture
def requester_id():
    return uuid.uuid4()


@pytest.fixture
def approvers():
    return [uuid.uuid4() for _ in range(3)]
