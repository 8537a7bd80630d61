"""
Ticket status state machine.

Pure functions over a ticket-like object; the services module persists the
result and writes the activity/notification side effects.

    open        -> in_progress, reserved
    reserved    -> open, in_progress
    in_progress -> pending, resolved
    pending     -> in_progress, resolved, closed
    resolved    -> closed, in_progress, open
    closed      -> open                (admin only)

Timestamp invariant, both directions:
    status == "resolved"  ⇔  resolved_at is set, closed_at is None
    status == "closed"    ⇒  closed_at is set
    any other status      ⇒  resolved_at and closed_at are None
"""

from datetime import datetime
from typing import Optional, Protocol

from api.core.permissions import Caller, can_reopen_closed
from api.db.base_model import utcnow
from api.utils.exceptions import InvalidStatusTransitionException, PermissionDeniedException

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "open": frozenset({"in_progress", "reserved"}),
    "reserved": frozenset({"open", "in_progress"}),
    "in_progress": frozenset({"pending", "resolved"}),
    "pending": frozenset({"in_progress", "resolved", "closed"}),
    "resolved": frozenset({"closed", "in_progress", "open"}),
    "closed": frozenset({"open"}),
}


class _Stateful(Protocol):
    status: str
    resolved_at: Optional[datetime]
    closed_at: Optional[datetime]


def is_allowed(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(caller: Caller, current: str, target: str) -> None:
    """
    Raise unless `current -> target` is a legal move for this caller.

    Mutate authority is checked by the caller of this function; this only
    covers the shape of the graph and the admin-only reopen.
    """
    if not is_allowed(current, target):
        raise InvalidStatusTransitionException(current=current, requested=target)
    if current == "closed" and not can_reopen_closed(caller):
        raise PermissionDeniedException(detail="Only an administrator can reopen a closed ticket.")


def apply_status(ticket: _Stateful, target: str, now: Optional[datetime] = None) -> str:
    """
    Move the ticket to `target` and fix up the timestamps.

    Returns the previous status. Does not validate; call check_transition first.
    """
    now = now or utcnow()
    previous = ticket.status
    ticket.status = target

    if target == "resolved":
        ticket.resolved_at = now
        ticket.closed_at = None
    elif target == "closed":
        ticket.closed_at = now
    else:
        ticket.resolved_at = None
        ticket.closed_at = None

    return previous


def status_after_assignment(current: str) -> str:
    """Assigning an open ticket starts work on it; anything else keeps its status."""
    return "in_progress" if current == "open" else current


def timestamps_consistent(ticket: _Stateful) -> bool:
    if ticket.status == "resolved":
        return ticket.resolved_at is not None and ticket.closed_at is None
    if ticket.status == "closed":
        return ticket.closed_at is not None
    return ticket.resolved_at is None and ticket.closed_at is None
