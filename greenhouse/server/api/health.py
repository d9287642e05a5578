"""Health check endpoint for monitoring service status."""

import time
from datetime import UTC, datetime
from typing import Any

import redis.asyncio as redis
from starlette.requests import Request
from starlette.responses import JSONResponse

from greenhouse.lib.alerts import AlertState
from greenhouse.lib.config import AlertKind
from greenhouse.logging import get_logger
from greenhouse.pipeline import Pipeline
from greenhouse.server.validators import get_pipeline

logger = get_logger("server.api.health")


def _check_sampler(pipeline: Pipeline) -> tuple[bool, dict[str, Any]]:
    """Check that readings are arriving."""
    latest = pipeline.history.latest()
    stale = (
        pipeline.evaluator.state(AlertKind.COMMUNICATION_STALE)
        == AlertState.FIRING
    )
    status: dict[str, Any] = {
        "running": pipeline.running,
        "stale": stale,
        "last_reading": latest.ts.isoformat() if latest else None,
        "age_sec": (
            round(time.monotonic() - latest.monotonic, 3) if latest else None
        ),
    }
    return pipeline.running and not stale, status


async def _check_redis(redis_url: str) -> tuple[bool, str]:
    """Check if Redis is accessible."""
    try:
        client = redis.from_url(redis_url)
        await client.ping()
        await client.aclose()
        return True, "ok"
    except (redis.RedisError, OSError) as e:
        logger.error("Redis health check failed: %s", e)
        return False, str(e)


async def health_check(request: Request) -> JSONResponse:
    """Return health status of the pipeline and its dependencies."""
    pipeline = get_pipeline(request)
    sampler_ok, sampler_status = _check_sampler(pipeline)

    checks: dict[str, Any] = {
        "sampler": {"ok": sampler_ok, **sampler_status},
        "listeners": pipeline.hub.listener_count,
        "alerts": pipeline.evaluator.states(),
        "notifications": {
            "backend": pipeline.notifications.notifier.name,
            "pending": pipeline.notifications.pending,
            **pipeline.notifications.stats,
        },
    }

    is_healthy = sampler_ok
    if pipeline.bridge is not None:
        redis_ok, redis_status = await _check_redis(
            pipeline.settings.eventbus.redis_url
        )
        checks["redis"] = {"ok": redis_ok, "status": redis_status}
        is_healthy = is_healthy and redis_ok

    return JSONResponse(
        {
            "status": "healthy" if is_healthy else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": checks,
        },
        status_code=200 if is_healthy else 503,
    )
