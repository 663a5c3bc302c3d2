"""
Unit tests for approval_engine/services/approval_store.py

The session is mocked; these check the SQL each call issues (row lock,
tenant scoping, ordering) and that SAVEPOINT scopes propagate errors.
"""

import uuid
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from approval_engine.errors import RequestClosed
from approval_engine.services.approval_store import SqlApprovalStore

TENANT_ID = uuid.UUID("a0000000-0000-0000-0000-000000000001")


def _mock_session(*results) -> AsyncMock:
    session = AsyncMock()
    session.add = MagicMock()
    session.add_all = MagicMock()
    session.flush = AsyncMock()
    session.execute = AsyncMock(side_effect=list(results))

    nested = MagicMock()
    nested.__aenter__ = AsyncMock(return_value=nested)
    nested.__aexit__ = AsyncMock(return_value=False)
    session.begin_nested = MagicMock(return_value=nested)
    return session


def _scalar_result(value):
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def _sql(session, call_index=0) -> str:
    stmt = session.execute.call_args_list[call_index][0][0]
    return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.asyncio
async def test_request_lock_selects_for_update_inside_savepoint():
    request = MagicMock()
    session = _mock_session(_scalar_result(request))
    store = SqlApprovalStore(session, TENANT_ID)
    request_id = uuid.uuid4()

    async with store.request_lock(request_id) as locked:
        assert locked is request

    session.begin_nested.assert_called_once()
    sql = _sql(session)
    assert "FOR UPDATE" in sql
    assert "approval_requests.tenant_id" in sql
    stmt = session.execute.call_args[0][0]
    assert stmt.get_execution_options()["populate_existing"] is True


@pytest.mark.asyncio
async def test_request_lock_yields_none_for_unknown_request():
    session = _mock_session(_scalar_result(None))
    store = SqlApprovalStore(session, TENANT_ID)

    async with store.request_lock(uuid.uuid4()) as locked:
        assert locked is None


@pytest.mark.asyncio
async def test_request_lock_propagates_errors_to_savepoint():
    session = _mock_session(_scalar_result(MagicMock()))
    store = SqlApprovalStore(session, TENANT_ID)

    with pytest.raises(RequestClosed):
        async with store.request_lock(uuid.uuid4()):
            raise RequestClosed()

    nested = session.begin_nested.return_value
    exc_type = nested.__aexit__.call_args[0][0]
    assert exc_type is RequestClosed


@pytest.mark.asyncio
async def test_atomic_wraps_savepoint():
    session = _mock_session()
    store = SqlApprovalStore(session, TENANT_ID)

    async with store.atomic():
        pass

    session.begin_nested.assert_called_once()


@pytest.mark.asyncio
async def test_get_policy_includes_platform_policies():
    policy = MagicMock()
    session = _mock_session(_scalar_result(policy))
    store = SqlApprovalStore(session, TENANT_ID)

    assert await store.get_policy(uuid.uuid4()) is policy
    assert "approval_types.tenant_id IS NULL" in _sql(session)


@pytest.mark.asyncio
async def test_list_assignments_orders_by_slot():
    rows = [MagicMock(), MagicMock()]
    result = MagicMock()
    result.scalars.return_value.all.return_value = rows
    session = _mock_session(result)
    store = SqlApprovalStore(session, TENANT_ID)

    assert await store.list_assignments(uuid.uuid4()) == rows
    assert "ORDER BY approval_assignments.sequence_order, approval_assignments.created_at" in _sql(session)


@pytest.mark.asyncio
async def test_list_pending_for_joins_open_requests():
    assignment, request = MagicMock(), MagicMock()
    result = MagicMock()
    result.all.return_value = [(assignment, request)]
    session = _mock_session(result)
    store = SqlApprovalStore(session, TENANT_ID)

    rows = await store.list_pending_for(uuid.uuid4(), limit=10)

    assert rows == [(assignment, request)]
    sql = _sql(session)
    assert "JOIN approval_requests" in sql
    assert "approval_assignments.status IN" in sql
    assert "approval_requests.status IN" in sql


@pytest.mark.asyncio
async def test_list_requests_returns_page_and_total():
    count_result = MagicMock()
    count_result.scalar.return_value = 7
    page_result = MagicMock()
    page_result.scalars.return_value.all.return_value = [MagicMock()]
    session = _mock_session(count_result, page_result)
    store = SqlApprovalStore(session, TENANT_ID)

    items, total = await store.list_requests(status="pending", page=2, limit=5)

    assert total == 7
    assert len(items) == 1
    assert "approval_requests.status = " in _sql(session, 1)


@pytest.mark.asyncio
async def test_writes_add_and_flush():
    session = _mock_session()
    store = SqlApprovalStore(session, TENANT_ID)
    request, a1, a2, entry = MagicMock(), MagicMock(), MagicMock(), MagicMock()

    await store.save_request(request)
    await store.save_assignments([a1, a2])
    await store.append_history(entry)

    session.add.assert_any_call(request)
    session.add.assert_any_call(entry)
    session.add_all.assert_called_once_with([a1, a2])
    assert session.flush.await_count == 3
