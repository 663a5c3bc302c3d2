"""
Unit tests for approval_engine/services/policy_service.py

Tests: create (defaults, duplicate code, bad approver list), update
(structural freeze while requests are open, SLA check, platform policies),
delete (refused while referenced).
"""

import uuid
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from approval_engine.errors import (
    DuplicatePolicyCode,
    EmptyApproverList,
    ForbiddenError,
    PolicyInUse,
    PolicyNotFound,
    ValidationError,
)
from approval_engine.models.approval_type import DEFAULT_NOTIFICATION_CONFIG, DEFAULT_RESPONSE_OPTIONS
from approval_engine.services.policy_service import PolicyService
from tests.conftest import TENANT_ID, make_policy

NOW = datetime(2026, 3, 2, 9, 0, 0)
ACTOR_ID = uuid.uuid4()


def _mock_session(*results) -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.flush = AsyncMock()
    session.delete = AsyncMock()
    session.execute = AsyncMock(side_effect=list(results))
    return session


def _count(n):
    result = MagicMock()
    result.scalar.return_value = n
    return result


def _one(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _service(session) -> PolicyService:
    return PolicyService(session, TENANT_ID, clock=lambda: NOW)


def _payload(**overrides) -> dict:
    data = {
        "code": "pr_standard",
        "name": "Purchase request",
        "approver_config": {"approvers": [{"role": "manager"}, {"role": "cfo"}]},
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_create_applies_defaults():
    session = _mock_session(_count(0))

    policy = await _service(session).create_policy(_payload(), ACTOR_ID)

    session.add.assert_called_once_with(policy)
    session.flush.assert_awaited_once()
    assert policy.tenant_id == TENANT_ID
    assert policy.approval_mode == "sequential"
    assert policy.require_comments == "on_reject"
    assert policy.allow_delegate is True
    assert policy.allow_recall is True
    assert policy.response_options == DEFAULT_RESPONSE_OPTIONS
    assert policy.notification_config == DEFAULT_NOTIFICATION_CONFIG
    assert policy.source == "tenant"
    assert policy.created_by == ACTOR_ID
    assert policy.created_at == NOW


@pytest.mark.asyncio
async def test_create_duplicate_code():
    session = _mock_session(_count(1))
    with pytest.raises(DuplicatePolicyCode) as exc_info:
        await _service(session).create_policy(_payload(), ACTOR_ID)
    assert exc_info.value.status_code == 409
    session.add.assert_not_called()


@pytest.mark.asyncio
async def test_create_rejects_empty_approver_list_before_touching_db():
    session = _mock_session()
    with pytest.raises(EmptyApproverList):
        await _service(session).create_policy(_payload(approver_config={"approvers": []}), ACTOR_ID)
    session.execute.assert_not_awaited()


# ---------------------------------------------------------------------------
# update
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_non_structural_field_with_open_requests():
    policy = make_policy([{"role": "manager"}], sla_hours=48)
    session = _mock_session(_one(policy))

    updated = await _service(session).update_policy(policy.id, {"name": "Renamed"}, ACTOR_ID)

    assert updated.name == "Renamed"
    assert updated.updated_by == ACTOR_ID
    assert updated.updated_at == NOW


@pytest.mark.asyncio
async def test_structural_change_blocked_while_requests_open():
    policy = make_policy([{"role": "manager"}])
    session = _mock_session(_one(policy), _count(2))

    with pytest.raises(PolicyInUse) as exc_info:
        await _service(session).update_policy(policy.id, {"approval_mode": "quorum"}, ACTOR_ID)

    assert exc_info.value.detail["error"]["fields"] == ["approval_mode"]
    assert policy.approval_mode == "parallel"


@pytest.mark.asyncio
async def test_structural_change_allowed_without_open_requests():
    policy = make_policy([{"role": "manager"}])
    session = _mock_session(_one(policy), _count(0))

    await _service(session).update_policy(
        policy.id, {"approver_config": {"approvers": [{"role": "cfo"}]}}, ACTOR_ID
    )

    assert policy.approver_config == {"approvers": [{"role": "cfo"}]}


@pytest.mark.asyncio
async def test_update_ignores_nulls_for_required_fields():
    policy = make_policy([{"role": "manager"}])
    session = _mock_session(_one(policy))

    await _service(session).update_policy(policy.id, {"approval_mode": None, "name": None}, ACTOR_ID)

    assert policy.approval_mode == "parallel"
    assert policy.name == "Purchase request approval"
    session.flush.assert_not_awaited()


@pytest.mark.asyncio
async def test_update_sla_warning_must_precede_sla():
    policy = make_policy([{"role": "manager"}], sla_hours=24)
    session = _mock_session(_one(policy))

    with pytest.raises(ValidationError):
        await _service(session).update_policy(policy.id, {"sla_warning_hours": 30}, ACTOR_ID)


@pytest.mark.asyncio
async def test_platform_policy_is_read_only_for_tenants():
    policy = make_policy([{"role": "manager"}], tenant_id=None, source="platform")
    session = _mock_session(_one(policy))

    with pytest.raises(ForbiddenError):
        await _service(session).update_policy(policy.id, {"name": "Mine now"}, ACTOR_ID)


@pytest.mark.asyncio
async def test_update_unknown_policy():
    session = _mock_session(_one(None))
    with pytest.raises(PolicyNotFound):
        await _service(session).update_policy(uuid.uuid4(), {"name": "x"}, ACTOR_ID)


# ---------------------------------------------------------------------------
# delete
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_delete_unreferenced_policy():
    policy = make_policy([{"role": "manager"}])
    session = _mock_session(_one(policy), _count(0))

    await _service(session).delete_policy(policy.id)

    session.delete.assert_awaited_once_with(policy)


@pytest.mark.asyncio
async def test_delete_referenced_policy_is_refused():
    policy = make_policy([{"role": "manager"}])
    session = _mock_session(_one(policy), _count(3))

    with pytest.raises(PolicyInUse):
        await _service(session).delete_policy(policy.id)
    session.delete.assert_not_awaited()
