"""
Query timer utility.

Lightweight context manager that times the independent queries a dashboard
issues and emits both Prometheus histograms and a dict for the response.

Usage:
    timer = QueryTimer()

    with timer.stage("tickets"):
        tickets = await _ticket_counts(session, org_id)

    with timer.stage("users"):
        users = await _user_counts(session, org_id)

    payload["timings"] = timer.as_dict()  # {"tickets": 0.004, "users": 0.002}
"""

import time
from contextlib import contextmanager

from api.utils.metrics import stats_query_latency


class QueryTimer:
    """Tracks per-query latencies for a single dashboard build.

    The queries are independent reads, so the timings double as a record of
    how far apart the stats panels were sampled.
    """

    def __init__(self) -> None:
        self._timings: dict[str, float] = {}

    @contextmanager
    def stage(self, name: str):
        """Time one query.

        Args:
            name: Stage identifier (e.g. "tickets", "users", "departments").
        """
        start = time.perf_counter()
        try:
            yield
        finally:
            elapsed = time.perf_counter() - start
            self._timings[name] = round(elapsed, 4)
            stats_query_latency.labels(stage=name).observe(elapsed)

    def as_dict(self) -> dict[str, float]:
        """Return all stage timings as a flat dict."""
        return dict(self._timings)

    @property
    def total_ms(self) -> float:
        """Total time across all stages in milliseconds."""
        return round(sum(self._timings.values()) * 1000, 2)
