"""
Tests for the ticket status state machine.

Run with: PYTHONPATH=. pytest tests/test_workflow.py -v
"""

import uuid
from types import SimpleNamespace

import pytest

from api.apps.tickets import workflow
from api.core.permissions import Caller, Membership
from api.utils.exceptions import InvalidStatusTransitionException, PermissionDeniedException

ORG = uuid.uuid4()
DEPT = uuid.uuid4()

ADMIN = Caller(id=uuid.uuid4(), organization_id=ORG, role="admin")
SUPERVISOR = Caller(
    id=uuid.uuid4(),
    organization_id=ORG,
    role="supervisor",
    memberships=(Membership(department_id=DEPT, is_supervisor=True),),
)


def stateful(status="open"):
    return SimpleNamespace(status=status, resolved_at=None, closed_at=None)


@pytest.mark.parametrize(
    "current,target",
    [
        ("open", "in_progress"),
        ("open", "reserved"),
        ("reserved", "open"),
        ("in_progress", "pending"),
        ("in_progress", "resolved"),
        ("pending", "closed"),
        ("resolved", "closed"),
        ("resolved", "open"),
    ],
)
def test_allowed_moves(current, target):
    workflow.check_transition(SUPERVISOR, current, target)


@pytest.mark.parametrize(
    "current,target",
    [
        ("open", "resolved"),
        ("open", "closed"),
        ("in_progress", "open"),
        ("closed", "resolved"),
        ("open", "open"),
        ("resolved", "resolved"),
    ],
)
def test_rejected_moves(current, target):
    with pytest.raises(InvalidStatusTransitionException):
        workflow.check_transition(ADMIN, current, target)


def test_reopen_closed_is_admin_only():
    with pytest.raises(PermissionDeniedException):
        workflow.check_transition(SUPERVISOR, "closed", "open")
    workflow.check_transition(ADMIN, "closed", "open")


def test_timestamps_follow_status():
    ticket = stateful("in_progress")

    workflow.apply_status(ticket, "resolved")
    assert ticket.resolved_at is not None and ticket.closed_at is None
    resolved_at = ticket.resolved_at

    workflow.apply_status(ticket, "closed")
    assert ticket.closed_at is not None
    assert ticket.resolved_at == resolved_at
    assert workflow.timestamps_consistent(ticket)

    workflow.apply_status(ticket, "open")
    assert ticket.resolved_at is None and ticket.closed_at is None
    assert workflow.timestamps_consistent(ticket)


def test_reopen_from_resolved_clears_resolved_at():
    ticket = stateful("in_progress")
    workflow.apply_status(ticket, "resolved")

    previous = workflow.apply_status(ticket, "in_progress")

    assert previous == "resolved"
    assert ticket.resolved_at is None
    assert workflow.timestamps_consistent(ticket)


def test_assignment_starts_open_tickets_only():
    assert workflow.status_after_assignment("open") == "in_progress"
    for status in ("reserved", "in_progress", "pending", "resolved", "closed"):
        assert workflow.status_after_assignment(status) == status
