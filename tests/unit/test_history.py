import uuid
from datetime import datetime

import pytest

from approval_engine.services.history import HistoryRecorder
from tests.conftest import TENANT_ID, InMemoryApprovalStore

NOW = datetime(2026, 3, 2, 9, 0, 0)


@pytest.mark.asyncio
async def test_record_appends_entry():
    store = InMemoryApprovalStore()
    recorder = HistoryRecorder(store, TENANT_ID, clock=lambda: NOW)
    request_id, actor, assignment_id = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

    entry = await recorder.record(request_id, "delegated", actor, {"reason": "leave"}, assignment_id)

    assert store.history == [entry]
    assert entry.tenant_id == TENANT_ID
    assert entry.action_at == NOW
    assert entry.assignment_id == assignment_id
    assert entry.action_data == {"reason": "leave"}


@pytest.mark.asyncio
async def test_record_copies_action_data():
    store = InMemoryApprovalStore()
    recorder = HistoryRecorder(store, TENANT_ID, clock=lambda: NOW)
    data = {"reason": "x"}

    entry = await recorder.record(uuid.uuid4(), "cancelled", uuid.uuid4(), data)
    data["reason"] = "changed"

    assert entry.action_data == {"reason": "x"}


@pytest.mark.asyncio
async def test_unknown_action_is_refused():
    store = InMemoryApprovalStore()
    recorder = HistoryRecorder(store, TENANT_ID)
    with pytest.raises(ValueError):
        await recorder.record(uuid.uuid4(), "edited", None)
    assert store.history == []
