from __future__ import annotations

import logging

from django.core.cache import cache
from django.db import DatabaseError, connection
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)

READINESS_CACHE_KEY = "readyz_probe"


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    try:
        connection.ensure_connection()
    except DatabaseError as exc:
        logger.exception("Health check readyz failed: database")
        return JsonResponse({"status": "not ready", "error": str(exc)}, status=503)

    cache.set(READINESS_CACHE_KEY, "1", timeout=5)
    if cache.get(READINESS_CACHE_KEY) != "1":
        logger.error("Health check readyz failed: cache round trip")
        return JsonResponse({"status": "not ready", "error": "cache unavailable"}, status=503)

    return JsonResponse({"status": "ready", "database": "ok", "cache": "ok"})
