"""
Health checks for the Agora API.

A leaderboard can be served when the four challenge tables answer; Redis only
backs rate limiting and client state, so losing it degrades rather than fails.
"""

from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

import pytz
import redis
from pydantic import BaseModel, Field

from agora.core.config import settings
from agora.core.database import get_supabase_client, is_supabase_configured
from agora.services.realtime import change_notifier

CHALLENGE_TABLES = ("challenges", "metrics", "participants", "logs")


class HealthStatus(str, Enum):
    OK = "ok"
    DEGRADED = "degraded"
    CRITICAL = "critical"
    NOT_CONFIGURED = "not_configured"


class HealthCheckResult(BaseModel):
    component: str
    status: HealthStatus
    details: str = ""
    latency_ms: Optional[float] = Field(default=None, ge=0)
    metadata: Dict[str, Any] = Field(default_factory=dict)


class HealthReport(BaseModel):
    status: HealthStatus
    version: str
    environment: str
    timestamp: datetime
    checks: List[HealthCheckResult]


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def _probe_tables() -> Dict[str, Any]:
    """Row count per table; a table that cannot be queried maps to its error."""
    supabase = get_supabase_client()
    counts: Dict[str, Any] = {}
    for table in CHALLENGE_TABLES:
        try:
            response = supabase.table(table).select("id", count="exact").limit(1).execute()
            counts[table] = getattr(response, "count", None)
        except Exception as exc:
            counts[table] = exc
    return counts


async def _check_database() -> HealthCheckResult:
    component = "supabase"
    start = time.perf_counter()

    if not is_supabase_configured():
        return HealthCheckResult(
            component=component,
            status=HealthStatus.NOT_CONFIGURED,
            details="SUPABASE_URL / SUPABASE_SERVICE_KEY are not set",
        )

    try:
        counts = await asyncio.to_thread(_probe_tables)
    except Exception as exc:  # pragma: no cover - network failures
        return HealthCheckResult(
            component=component,
            status=HealthStatus.CRITICAL,
            details=f"Supabase unreachable: {exc}",
            latency_ms=_elapsed_ms(start),
        )

    failing = {table: str(value) for table, value in counts.items() if isinstance(value, Exception)}
    if failing:
        return HealthCheckResult(
            component=component,
            status=HealthStatus.CRITICAL,
            details=f"Tables not queryable: {', '.join(sorted(failing))} (apply supabase/schema.sql)",
            latency_ms=_elapsed_ms(start),
            metadata={"errors": failing},
        )

    return HealthCheckResult(
        component=component,
        status=HealthStatus.OK,
        details="All challenge tables reachable",
        latency_ms=_elapsed_ms(start),
        metadata={f"{table}_count": count for table, count in counts.items()},
    )


async def _check_redis() -> HealthCheckResult:
    component = "redis"
    start = time.perf_counter()

    if not settings.redis_connection_url:
        return HealthCheckResult(
            component=component,
            status=HealthStatus.NOT_CONFIGURED,
            details="No REDIS_URL; rate limiting off, client state kept in memory",
        )

    try:
        client = redis.from_url(
            settings.redis_connection_url,
            socket_connect_timeout=2,
            socket_timeout=2,
            decode_responses=True,
        )
        await asyncio.to_thread(client.ping)
    except Exception as exc:  # pragma: no cover - network failures
        return HealthCheckResult(
            component=component,
            status=HealthStatus.DEGRADED,
            details=f"Redis unreachable ({exc}); rate limiting and client state degraded",
            latency_ms=_elapsed_ms(start),
        )

    return HealthCheckResult(
        component=component,
        status=HealthStatus.OK,
        details="Redis reachable",
        latency_ms=_elapsed_ms(start),
    )


async def _check_environment() -> HealthCheckResult:
    metadata = {
        "environment": settings.ENVIRONMENT,
        "debug": settings.DEBUG,
        "timezone": settings.TIMEZONE,
    }

    if settings.TIMEZONE not in pytz.all_timezones_set:
        return HealthCheckResult(
            component="environment",
            status=HealthStatus.DEGRADED,
            details=f"Unknown TIMEZONE '{settings.TIMEZONE}', log dates fall back to UTC",
            metadata=metadata,
        )

    return HealthCheckResult(
        component="environment",
        status=HealthStatus.OK,
        details="Configuration loaded",
        metadata=metadata,
    )


async def _check_realtime() -> HealthCheckResult:
    return HealthCheckResult(
        component="realtime",
        status=HealthStatus.OK,
        details="Change notifications in process",
        metadata={"live_subscribers": change_notifier.total_subscribers()},
    )


async def gather_health_checks() -> List[HealthCheckResult]:
    checks = await asyncio.gather(
        _check_environment(),
        _check_database(),
        _check_redis(),
        _check_realtime(),
    )
    return list(checks)


def _aggregate_status(checks: List[HealthCheckResult]) -> HealthStatus:
    statuses = {check.status for check in checks}

    if HealthStatus.CRITICAL in statuses:
        return HealthStatus.CRITICAL
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    if statuses == {HealthStatus.NOT_CONFIGURED}:
        return HealthStatus.NOT_CONFIGURED
    return HealthStatus.OK


async def build_health_report(api_version: str) -> HealthReport:
    checks = await gather_health_checks()

    return HealthReport(
        status=_aggregate_status(checks),
        version=api_version,
        environment=settings.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )
