"""
Centralized Prometheus metrics.

All application metrics are defined here to prevent duplication
and ensure consistent labeling across modules.
"""

from prometheus_client import Counter, Histogram


# ── Ticket Workflow Metrics ───────────────────────────────────────────────────

ticket_events = Counter(
    "ticket_events_total",
    "Ticket workflow events (created, status_changed, assigned, ...)",
    ["action"]
)


# ── Notification Metrics ──────────────────────────────────────────────────────

notifications_created = Counter(
    "notifications_created_total",
    "Notification rows written",
    ["type"]
)


# ── Attachment Metrics ────────────────────────────────────────────────────────

attachment_uploads = Counter(
    "attachment_uploads_total",
    "Attachment uploads to object storage",
    ["status"]
)


# ── Dashboard Query Metrics ───────────────────────────────────────────────────

stats_query_latency = Histogram(
    "stats_query_seconds",
    "Per-query latency while assembling dashboard statistics",
    ["stage"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)
