# leadsync/routes/health.py
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from leadsync import __version__
from leadsync.core.config import settings
from leadsync.db.session import health_check as database_health
from leadsync.services.redis import health_check as redis_health

router = APIRouter(tags=["health"])

_started_at = time.time()


@router.get("/health")
async def health() -> JSONResponse:
    checks: Dict[str, Any] = {
        "database": await database_health(),
        "redis": await redis_health(),
    }
    healthy = all(check.get("status") == "healthy" for check in checks.values())

    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "degraded",
            "service": "leadsync",
            "environment": settings.environment,
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "uptime": time.time() - _started_at,
            "checks": checks,
        },
    )
