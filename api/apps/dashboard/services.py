"""
Dashboard statistics.

Each panel is a handful of independent aggregate queries; there is no
snapshot across them. Admin panels are cached per organization in Redis and
dropped by the change feed whenever a ticket in the organization changes.
"""

import uuid
from collections import Counter
from datetime import timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.apps.auth.models import User, UserDepartment
from api.apps.organizations.models import Category, Department
from api.apps.tickets.models import TICKET_PRIORITIES, TICKET_STATUSES, Ticket
from api.apps.tickets.schemas import TicketResponse
from api.config.settings import settings
from api.core.cache import CacheManager
from api.core.permissions import Caller, visible_tickets_clause
from api.db.base_model import ensure_utc, utcnow
from api.utils.logger import get_logger
from api.utils.query_timer import QueryTimer

logger = get_logger(__name__)

TIME_RANGES = {"7d": 7, "30d": 30, "90d": 90, "1y": 365}
OPEN_STATUSES = ("open", "reserved", "in_progress", "pending")
RECENT_TICKETS = 500


def _zero_filled(counts: Dict[str, int], keys: Iterable[str]) -> Dict[str, int]:
    result = {key: counts.get(key, 0) for key in keys}
    result["total"] = sum(counts.values())
    return result


async def _grouped_counts(session: AsyncSession, column, *where) -> Dict[str, int]:
    rows = await session.execute(
        select(column, func.count()).select_from(column.class_).where(*where).group_by(column)
    )
    return {str(value): count for value, count in rows.all()}


def _hours_between(start, end) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600


def _average(values: List[float]) -> float:
    return round(sum(values) / len(values), 1) if values else 0.0


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100, 1) if whole else 0.0


# ── Admin ─────────────────────────────────────────────────────────────────────

async def admin_stats(session: AsyncSession, cache: CacheManager, caller: Caller) -> Dict[str, Any]:
    """Head counts for users, departments, categories and tickets."""
    org_id = caller.organization_id
    key = cache.get_key(str(org_id), "admin_stats")
    cached = await cache.get(key)
    if cached:
        cached["cached"] = True
        return cached

    timer = QueryTimer()
    with timer.stage("users"):
        users = await _grouped_counts(session, User.status, User.organization_id == org_id)
    with timer.stage("departments"):
        departments = await _grouped_counts(
            session, Department.is_active, Department.organization_id == org_id
        )
    with timer.stage("categories"):
        categories = await _grouped_counts(
            session, Category.is_active, Category.organization_id == org_id
        )
    with timer.stage("tickets"):
        tickets = await _grouped_counts(session, Ticket.status, Ticket.organization_id == org_id)

    payload = {
        "users": _zero_filled(users, ("pending", "approved", "suspended")),
        "departments": {
            "total": sum(departments.values()),
            "active": departments.get("True", 0),
            "inactive": departments.get("False", 0),
        },
        "categories": {
            "total": sum(categories.values()),
            "active": categories.get("True", 0),
        },
        "tickets": _zero_filled(tickets, TICKET_STATUSES),
        "generated_at": utcnow().isoformat(),
        "timings": timer.as_dict(),
        "cached": False,
    }
    await cache.set(key, payload, ttl=settings.STATS_CACHE_TTL)
    logger.debug(f"admin_stats for {org_id} built in {timer.total_ms}ms")
    return payload


async def analytics(
    session: AsyncSession,
    cache: CacheManager,
    caller: Caller,
    time_range: str = "30d",
    department_id: Optional[uuid.UUID] = None,
) -> Dict[str, Any]:
    """
    Ticket analytics over a trailing window, compared with the window before.

    Resolution time is measured creation -> resolved_at for tickets that
    carry a resolved_at (resolved, or closed after being resolved).
    """
    org_id = caller.organization_id
    params = {"range": time_range, "department": str(department_id) if department_id else None}
    key = cache.get_key(str(org_id), "analytics", params)
    cached = await cache.get(key)
    if cached:
        cached["cached"] = True
        return cached

    days = TIME_RANGES.get(time_range, 30)
    now = utcnow()
    start = now - timedelta(days=days)
    previous_start = start - timedelta(days=days)

    scope = [Ticket.organization_id == org_id]
    if department_id:
        scope.append(Ticket.department_id == department_id)

    timer = QueryTimer()
    with timer.stage("tickets"):
        result = await session.execute(
            select(
                Ticket.status,
                Ticket.priority,
                Ticket.department_id,
                Ticket.assigned_to,
                Ticket.created_at,
                Ticket.resolved_at,
            ).where(*scope, Ticket.created_at >= start)
        )
        tickets = result.all()
    with timer.stage("previous"):
        previous_total = (
            await session.execute(
                select(func.count(Ticket.id)).where(
                    *scope, Ticket.created_at >= previous_start, Ticket.created_at < start
                )
            )
        ).scalar_one()
    with timer.stage("departments"):
        departments = await Department.find_many(
            session, filters={"organization_id": org_id}, order_by="name"
        )
    with timer.stage("staff"):
        staff = await User.find_many(
            session,
            filters={"organization_id": org_id, "status": "approved"},
            where=[User.role != "user"],
            limit=1000,
        )

    total = len(tickets)
    resolved = [t for t in tickets if t.resolved_at is not None]
    status_counts = Counter(t.status for t in tickets)
    priority_counts = Counter(t.priority for t in tickets)

    by_department = []
    for department in departments:
        dept_tickets = [t for t in tickets if t.department_id == department.id]
        dept_resolved = [t for t in dept_tickets if t.resolved_at is not None]
        by_department.append({
            "department_id": str(department.id),
            "department": department.name,
            "count": len(dept_tickets),
            "resolved": len(dept_resolved),
            "avg_resolution_hours": _average(
                [_hours_between(t.created_at, t.resolved_at) for t in dept_resolved]
            ),
        })

    daily = []
    for offset in range(min(days, 30) - 1, -1, -1):
        day = (now - timedelta(days=offset)).date()
        created_that_day = [t for t in tickets if ensure_utc(t.created_at).date() == day]
        daily.append({
            "date": day.isoformat(),
            "new_tickets": len(created_that_day),
            "resolved_tickets": sum(
                1 for t in resolved if ensure_utc(t.resolved_at).date() == day
            ),
        })

    performers = []
    for member in staff:
        mine = [t for t in resolved if t.assigned_to == member.id]
        if not mine:
            continue
        performers.append({
            "user_id": str(member.id),
            "name": member.full_name,
            "resolved": len(mine),
            "avg_resolution_hours": _average(
                [_hours_between(t.created_at, t.resolved_at) for t in mine]
            ),
        })
    performers.sort(key=lambda p: p["resolved"], reverse=True)

    payload = {
        "time_range": time_range if time_range in TIME_RANGES else "30d",
        "overview": {
            "total_tickets": total,
            "ticket_growth": _percent(total - previous_total, previous_total),
            "resolved_tickets": len(resolved),
            "resolution_rate": _percent(len(resolved), total),
            "avg_resolution_hours": _average(
                [_hours_between(t.created_at, t.resolved_at) for t in resolved]
            ),
            "open_tickets": sum(status_counts.get(s, 0) for s in OPEN_STATUSES),
        },
        "by_status": [
            {"status": s, "count": status_counts.get(s, 0), "percentage": _percent(status_counts.get(s, 0), total)}
            for s in TICKET_STATUSES
        ],
        "by_priority": [
            {"priority": p, "count": priority_counts.get(p, 0), "percentage": _percent(priority_counts.get(p, 0), total)}
            for p in TICKET_PRIORITIES
        ],
        "by_department": by_department,
        "daily": daily,
        "top_performers": performers[:10],
        "generated_at": now.isoformat(),
        "timings": timer.as_dict(),
        "cached": False,
    }
    await cache.set(key, payload, ttl=settings.STATS_CACHE_TTL)
    return payload


# ── Supervisor ────────────────────────────────────────────────────────────────

async def supervisor_dashboard(session: AsyncSession, caller: Caller) -> Dict[str, Any]:
    """Tickets and team of the departments the caller supervises (all, for admins)."""
    if caller.is_admin:
        departments = await Department.find_many(
            session, filters={"organization_id": caller.organization_id}, order_by="name"
        )
    else:
        departments = await Department.find_many(
            session,
            filters={"organization_id": caller.organization_id},
            where=[Department.id.in_(list(caller.supervised_department_ids))],
            order_by="name",
        )
    department_ids = [d.id for d in departments]
    scope = [
        visible_tickets_clause(caller, Ticket),
        Ticket.department_id.in_(department_ids),
    ]

    status_counts = await _grouped_counts(session, Ticket.status, *scope)
    unassigned = (
        await session.execute(
            select(func.count(Ticket.id)).where(
                *scope, Ticket.assigned_to.is_(None), Ticket.status.in_(list(OPEN_STATUSES))
            )
        )
    ).scalar_one()
    tickets = await Ticket.find_many(
        session, where=scope, order_by="created_at", order_desc=True, limit=RECENT_TICKETS
    )
    team_filter = {"organization_id": caller.organization_id, "status": "approved"}
    in_team = [User.memberships.any(UserDepartment.department_id.in_(department_ids))]
    team_size = await User.count(session, filters=team_filter, where=in_team)
    team = await User.find_many(
        session, filters=team_filter, where=in_team, order_by="full_name", limit=1000
    )

    return {
        "departments": [{"id": str(d.id), "name": d.name, "color": d.color} for d in departments],
        "stats": {
            "total_tickets": sum(status_counts.values()),
            "open_tickets": status_counts.get("open", 0),
            "in_progress_tickets": status_counts.get("in_progress", 0),
            "pending_tickets": status_counts.get("pending", 0),
            "resolved_tickets": status_counts.get("resolved", 0),
            "unassigned_tickets": unassigned,
            "team_members": team_size,
        },
        "tickets": [TicketResponse.model_validate(t).model_dump() for t in tickets],
        "team_members": [
            {"id": str(u.id), "full_name": u.full_name, "email": u.email, "role": u.role}
            for u in team
        ],
    }


# ── User ──────────────────────────────────────────────────────────────────────

async def user_stats(session: AsyncSession, caller: Caller) -> Dict[str, Any]:
    """Counts of the caller's own tickets and of tickets assigned to them."""
    org_scope = Ticket.organization_id == caller.organization_id
    mine = await _grouped_counts(session, Ticket.status, org_scope, Ticket.created_by == caller.id)
    assigned = await _grouped_counts(session, Ticket.status, org_scope, Ticket.assigned_to == caller.id)
    return {
        "my_tickets": _zero_filled(mine, TICKET_STATUSES),
        "assigned_tickets": _zero_filled(assigned, TICKET_STATUSES),
    }
