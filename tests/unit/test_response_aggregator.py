"""
Unit tests for approval_engine/services/response_aggregator.py

Tests: tally partitioning, recompute rules (any-reject, all-resolved,
in-progress, unresolvable), terminal guard, apply_status transitions.
"""

import uuid
from datetime import datetime
from types import SimpleNamespace

import pytest

from approval_engine.errors import InvalidTransition, RequestClosed
from approval_engine.services.response_aggregator import (
    apply_status,
    ensure_open,
    recompute,
    tally,
)

NOW = datetime(2026, 3, 2, 12, 0, 0)


def _request(status="pending"):
    return SimpleNamespace(
        id=uuid.uuid4(),
        status=status,
        updated_at=None,
        final_response=None,
        final_response_at=None,
        final_responder_id=None,
    )


def _a(status="pending", response=None):
    return SimpleNamespace(status=status, response=response)


def test_tally_partitions_every_status():
    counts = tally([
        _a("pending"),
        _a("notified"),
        _a("responded", "approved"),
        _a("responded", "rejected"),
        _a("responded", "needs_info"),
        _a("delegated"),
    ])
    assert counts.active == 2
    assert counts.approved == 1
    assert counts.rejected == 1
    assert counts.other_responses == 1
    assert counts.delegated == 1


def test_single_rejection_is_terminal_regardless_of_approvals():
    assignments = [_a("responded", "approved")] * 5 + [_a("responded", "rejected"), _a("pending")]
    assert recompute(_request("in_progress"), assignments) == "rejected"


def test_all_resolved_with_approval_is_approved():
    assert recompute(_request(), [_a("responded", "approved"), _a("responded", "approved")]) == "approved"


def test_active_assignments_mean_in_progress():
    assert recompute(_request(), [_a("responded", "approved"), _a("notified")]) == "in_progress"


def test_delegated_assignment_is_ignored_in_favour_of_successor():
    assignments = [_a("delegated"), _a("responded", "approved")]
    assert recompute(_request("in_progress"), assignments) == "approved"

    assignments = [_a("delegated"), _a("pending")]
    assert recompute(_request("pending"), assignments) == "in_progress"


def test_only_custom_responses_leave_status_unchanged():
    request = _request("in_progress")
    assert recompute(request, [_a("responded", "needs_info")]) == "in_progress"


@pytest.mark.parametrize("status", ["approved", "rejected", "cancelled"])
def test_recompute_refuses_terminal_requests(status):
    with pytest.raises(RequestClosed) as exc_info:
        recompute(_request(status), [_a("pending")])
    assert exc_info.value.status_code == 409


def test_ensure_open_accepts_open_statuses():
    ensure_open(_request("pending"))
    ensure_open(_request("in_progress"))


def test_apply_status_stamps_final_fields_on_terminal():
    request = _request("in_progress")
    actor = uuid.uuid4()

    assert apply_status(request, "approved", actor, NOW) is True
    assert request.status == "approved"
    assert request.final_response == "approved"
    assert request.final_response_at == NOW
    assert request.final_responder_id == actor


def test_apply_status_leaves_final_fields_empty_when_not_terminal():
    request = _request("pending")
    assert apply_status(request, "in_progress", uuid.uuid4(), NOW) is True
    assert request.final_response is None
    assert request.final_response_at is None


def test_apply_status_same_status_is_noop():
    request = _request("in_progress")
    assert apply_status(request, "in_progress", uuid.uuid4(), NOW) is False
    assert request.updated_at is None


@pytest.mark.parametrize("current,target", [
    ("in_progress", "pending"),
    ("approved", "rejected"),
    ("rejected", "approved"),
    ("cancelled", "in_progress"),
])
def test_apply_status_rejects_backwards_and_terminal_moves(current, target):
    with pytest.raises(InvalidTransition):
        apply_status(_request(current), target, uuid.uuid4(), NOW)
