"""
Ticket visibility and permission rules.

The single place that decides who may see or change a ticket. Every router
and service asks these functions instead of comparing roles locally.

Everything here is pure: the caller is passed in explicitly as a `Caller`
value, never read from request state, so each rule is testable on its own.

Rules (first match wins):
1. Different organization          -> nothing
2. Admin                           -> view + mutate
3. Creator                         -> view; content edits while `open`
4. Supervisor of the department    -> view + mutate
5. Assignee                        -> view
6. Public ticket, department member -> view
7. Anyone else                     -> nothing
"""

import uuid
from typing import Iterable, Optional, TypeVar, Protocol

from pydantic import BaseModel, ConfigDict
from sqlalchemy import and_, false, or_

CREATOR_EDITABLE_STATUSES = frozenset({"open"})


class Membership(BaseModel):
    """One department link of the caller."""

    model_config = ConfigDict(frozen=True)

    department_id: uuid.UUID
    is_supervisor: bool = False
    can_assign_tickets: bool = False


class Caller(BaseModel):
    """The authenticated user making the request."""

    model_config = ConfigDict(frozen=True)

    id: uuid.UUID
    organization_id: uuid.UUID
    role: str
    email: str = ""
    full_name: str = ""
    memberships: tuple[Membership, ...] = ()

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"

    @property
    def department_ids(self) -> frozenset[uuid.UUID]:
        return frozenset(m.department_id for m in self.memberships)

    @property
    def supervised_department_ids(self) -> frozenset[uuid.UUID]:
        """Departments this caller has supervisor authority over."""
        if self.role != "supervisor":
            return frozenset()
        return frozenset(m.department_id for m in self.memberships if m.is_supervisor)

    def is_member_of(self, department_id: uuid.UUID) -> bool:
        return department_id in self.department_ids

    def supervises(self, department_id: uuid.UUID) -> bool:
        return department_id in self.supervised_department_ids


class TicketRef(BaseModel):
    """The ticket fields the rules look at."""

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[uuid.UUID] = None
    organization_id: uuid.UUID
    department_id: uuid.UUID
    created_by: uuid.UUID
    assigned_to: Optional[uuid.UUID] = None
    visibility: str = "private"
    status: str = "open"


class _TicketLike(Protocol):
    organization_id: uuid.UUID
    department_id: uuid.UUID
    created_by: uuid.UUID
    assigned_to: Optional[uuid.UUID]
    visibility: str
    status: str


def as_ref(ticket: "_TicketLike | TicketRef") -> TicketRef:
    if isinstance(ticket, TicketRef):
        return ticket
    return TicketRef.model_validate(ticket)


# ── Predicates ────────────────────────────────────────────────────────────────


def can_view(caller: Caller, ticket: "_TicketLike | TicketRef") -> bool:
    t = as_ref(ticket)
    if caller.organization_id != t.organization_id:
        return False
    if caller.is_admin:
        return True
    if caller.id == t.created_by:
        return True
    if caller.supervises(t.department_id):
        return True
    if t.assigned_to is not None and caller.id == t.assigned_to:
        return True
    return t.visibility == "public" and caller.is_member_of(t.department_id)


def can_mutate(caller: Caller, ticket: "_TicketLike | TicketRef") -> bool:
    """Status, assignment, priority and visibility changes."""
    t = as_ref(ticket)
    if caller.organization_id != t.organization_id:
        return False
    if caller.is_admin:
        return True
    # The creator rule outranks supervisor authority over the department.
    if caller.id == t.created_by:
        return False
    return caller.supervises(t.department_id)


def can_edit_content(caller: Caller, ticket: "_TicketLike | TicketRef") -> bool:
    """Title, description and attachments."""
    t = as_ref(ticket)
    if can_mutate(caller, t):
        return True
    return (
        caller.organization_id == t.organization_id
        and caller.id == t.created_by
        and t.status in CREATOR_EDITABLE_STATUSES
    )


def can_see_internal_comments(caller: Caller, ticket: "_TicketLike | TicketRef") -> bool:
    t = as_ref(ticket)
    if caller.organization_id != t.organization_id:
        return False
    return caller.is_admin or caller.supervises(t.department_id)


# Posting into the internal channel needs the same authority as reading it.
can_post_internal = can_see_internal_comments


def can_delete(caller: Caller, ticket: "_TicketLike | TicketRef") -> bool:
    """Irreversible; admin only, whatever department authority exists."""
    t = as_ref(ticket)
    return caller.organization_id == t.organization_id and caller.is_admin


def can_reopen_closed(caller: Caller) -> bool:
    return caller.is_admin


# ── Collection helpers ────────────────────────────────────────────────────────


class _CommentLike(Protocol):
    is_internal: bool


C = TypeVar("C", bound=_CommentLike)


def visible_comments(
    caller: Caller, ticket: "_TicketLike | TicketRef", comments: Iterable[C]
) -> list[C]:
    """Drop internal comments unless the caller may read the internal channel."""
    if can_see_internal_comments(caller, ticket):
        return list(comments)
    return [c for c in comments if not c.is_internal]


def visible_tickets_clause(caller: Caller, model):
    """
    The view rules as a SQL filter, for list queries.

    `model` is the Ticket ORM class; passed in so this module stays free of
    ORM imports.
    """
    same_org = model.organization_id == caller.organization_id
    if caller.is_admin:
        return same_org

    supervised = caller.supervised_department_ids
    member_of = caller.department_ids

    branches = [
        model.created_by == caller.id,
        model.assigned_to == caller.id,
        model.department_id.in_(list(supervised)) if supervised else false(),
        and_(model.visibility == "public", model.department_id.in_(list(member_of)))
        if member_of
        else false(),
    ]
    return and_(same_org, or_(*branches))
