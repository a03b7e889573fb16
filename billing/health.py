"""Health check endpoints for production monitoring."""

import logging
import os
import time
from typing import Any, Dict

from django.conf import settings
from django.core.cache import cache
from django.db import connection
from django.db.utils import DatabaseError
from django.http import JsonResponse
from django.utils import timezone

logger = logging.getLogger(__name__)

APP_VERSION = os.environ.get("APP_VERSION", "1.0.0")
APP_START_TIME = time.time()


def _get_uptime_formatted() -> Dict[str, Any]:
    """Get uptime in human-readable format and raw seconds."""
    uptime_seconds = int(time.time() - APP_START_TIME)
    days, remainder = divmod(uptime_seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    parts.append(f"{seconds}s")

    return {"seconds": uptime_seconds, "formatted": " ".join(parts)}


def _no_cache(response: JsonResponse) -> JsonResponse:
    response["Cache-Control"] = "no-cache, no-store, must-revalidate, max-age=0"
    response["Pragma"] = "no-cache"
    return response


def _check_database() -> Dict[str, Any]:
    start = time.perf_counter()
    try:
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
            ok = cursor.fetchone() == (1,)
    except DatabaseError as exc:
        logger.error("Health check database failure: %s", exc)
        return {"ok": False, "error": exc.__class__.__name__}
    return {"ok": ok, "latency_ms": round((time.perf_counter() - start) * 1000, 2)}


def _check_cache() -> Dict[str, Any]:
    cache_key = "_health_check"
    cache.set(cache_key, "ok", 10)
    ok = cache.get(cache_key) == "ok"
    cache.delete(cache_key)
    return {"ok": ok}


def health_check(request):
    """
    Readiness-style health check for load balancers.
    Returns 503 when the database is unreachable.
    """
    checks = {
        "database": _check_database(),
        "cache": _check_cache(),
    }
    healthy = checks["database"]["ok"]

    response = JsonResponse(
        {
            "status": "healthy" if healthy else "unhealthy",
            "version": APP_VERSION,
            "environment": "production" if not settings.DEBUG else "development",
            "timestamp": timezone.now().isoformat(),
            "uptime": _get_uptime_formatted(),
            "checks": checks,
        },
        status=200 if healthy else 503,
    )
    return _no_cache(response)


def liveness_check(request):
    """
    Liveness check - verifies app is still responsive.
    Does not touch the database.
    """
    return _no_cache(JsonResponse({
        "status": "alive",
        "timestamp": timezone.now().isoformat(),
        "uptime": _get_uptime_formatted(),
        "version": APP_VERSION,
    }))
