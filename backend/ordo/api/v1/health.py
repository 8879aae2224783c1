"""Health check endpoint."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Response, status

from ordo.core.config import get_settings
from ordo.db.session import ping_database

router = APIRouter()


@router.get("", summary="Service health status")
async def healthcheck(response: Response) -> dict[str, Any]:
    """Report database reachability and how payment webhooks are verified.

    Answers 503 with ``status: degraded`` when the database is unreachable so
    load balancers stop routing booking traffic to the instance.
    """
    settings = get_settings()
    database_ok = await ping_database()
    if settings.payments_webhook_secret:
        webhook_signing = "enforced"
    elif settings.payments_allow_unsigned_webhooks:
        webhook_signing = "disabled"
    else:
        webhook_signing = "rejecting"
    if not database_ok:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {
        "status": "ok" if database_ok else "degraded",
        "service": settings.app_name,
        "timestamp": datetime.now(UTC).isoformat(),
        "environment": settings.app_env,
        "database": "ok" if database_ok else "unreachable",
        "payments_provider": settings.payments_provider,
        "webhook_signing": webhook_signing,
    }
