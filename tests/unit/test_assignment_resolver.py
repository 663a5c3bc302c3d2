"""
Unit tests for approval_engine/services/assignment_resolver.py
"""

import uuid

import pytest

from approval_engine.errors import (
    ApproverResolutionError,
    EmptyApproverList,
    MalformedApproverSpec,
    PolicyInactive,
)
from approval_engine.services.assignment_resolver import (
    ByRole,
    ByUser,
    parse_approver,
    parse_approver_config,
    resolve_assignments,
)
from tests.conftest import FakeIdentityResolver, make_policy


def test_parse_user_and_role_entries():
    user_id = uuid.uuid4()
    specs = parse_approver_config({
        "approvers": [{"user_id": str(user_id), "role": "manager"}, {"role": " cfo "}],
    })
    assert specs == [ByUser(user_id=user_id, role="manager"), ByRole(role_code="cfo")]


@pytest.mark.parametrize("config", [None, {}, {"approvers": []}])
def test_empty_approver_list_is_rejected(config):
    with pytest.raises(EmptyApproverList):
        parse_approver_config(config)


@pytest.mark.parametrize("entry", [
    "cfo",
    {},
    {"role": ""},
    {"role": 42},
    {"user_id": "not-a-uuid"},
])
def test_malformed_entries(entry):
    with pytest.raises(MalformedApproverSpec) as exc_info:
        parse_approver(entry, 3)
    assert exc_info.value.detail["error"]["index"] == 3


def test_approvers_must_be_a_list():
    with pytest.raises(MalformedApproverSpec):
        parse_approver_config({"approvers": {"role": "cfo"}})


@pytest.mark.asyncio
async def test_resolve_assigns_sequence_order_by_position():
    u1, cfo = uuid.uuid4(), uuid.uuid4()
    policy = make_policy([{"user_id": str(u1)}, {"role": "cfo"}])
    identity = FakeIdentityResolver(roles={"cfo": [cfo]})

    specs = await resolve_assignments(policy, identity)

    assert [(s.approver_id, s.approver_role, s.sequence_order) for s in specs] == [
        (u1, None, 0),
        (cfo, "cfo", 1),
    ]


@pytest.mark.asyncio
async def test_resolve_refuses_inactive_policy():
    policy = make_policy([{"user_id": str(uuid.uuid4())}], is_active=False)
    with pytest.raises(PolicyInactive):
        await resolve_assignments(policy, FakeIdentityResolver())


@pytest.mark.asyncio
@pytest.mark.parametrize("matches", [0, 2])
async def test_role_must_resolve_to_exactly_one_user(matches):
    policy = make_policy([{"role": "finance"}])
    identity = FakeIdentityResolver(roles={"finance": [uuid.uuid4() for _ in range(matches)]})

    with pytest.raises(ApproverResolutionError) as exc_info:
        await resolve_assignments(policy, identity)
    assert exc_info.value.detail["error"]["matches"] == matches
    assert exc_info.value.status_code == 422
