import time
from typing import Any, Callable, Dict

import structlog
from django.core.cache import cache
from django.db import DatabaseError, connections
from django.http import HttpRequest, JsonResponse
from django.utils import timezone

from modules.core.models import OutboxEvent

logger = structlog.get_logger(__name__)


def _timed(check: Callable[[], Dict[str, Any]]) -> Dict[str, Any]:
    start = time.monotonic()
    result = check()
    result["status"] = "up"
    result["response_time_ms"] = round((time.monotonic() - start) * 1000, 2)
    return result


def _check_database() -> Dict[str, Any]:
    conn = connections["default"]
    conn.ensure_connection()
    with conn.cursor() as cursor:
        cursor.execute("SELECT 1")
        cursor.fetchone()
    return {
        "pending_outbox_events": OutboxEvent.objects.pending().count()
    }


def _check_cache() -> Dict[str, Any]:
    cache.set("_health_check", "ok", 10)
    if cache.get("_health_check") != "ok":
        raise ConnectionError("Cache read failed")
    return {}


def health_check(request: HttpRequest) -> JsonResponse:
    """GET /health: database and cache liveness, 200 or 503."""
    services: Dict[str, Dict[str, Any]] = {}
    overall_healthy = True

    try:
        services["database"] = _timed(_check_database)
    except DatabaseError:
        services["database"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check.db_failure", exc_info=True)

    try:
        services["cache"] = _timed(_check_cache)
    except Exception:  # noqa: BLE001 - any cache backend error means "down"
        services["cache"] = {"status": "down"}
        overall_healthy = False
        logger.error("health_check.cache_failure", exc_info=True)

    status_code = 200 if overall_healthy else 503

    logger.info(
        "health_check.completed", status="healthy" if overall_healthy else "unhealthy"
    )

    return JsonResponse(
        {
            "status": "healthy" if overall_healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status_code,
    )
