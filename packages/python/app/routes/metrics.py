# metrics.py - JSON metrics dashboard.

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from app.routes.chat import SERVICE_NAME, SERVICE_VERSION
from app.services import Services, get_services

logger = logging.getLogger(__name__)

metrics_router = APIRouter(prefix="/actuator", tags=["metrics"])


@metrics_router.get("/dashboard")
async def get_dashboard(services: Services = Depends(get_services)):
    """Sessions, request counts, query timings, LLM token usage and errors."""
    telemetry = services.telemetry
    snapshot = telemetry.snapshot()
    requests = snapshot["requests"]
    requests["byEnvironment"] = telemetry.requests_by_environment()
    requests["byTool"] = telemetry.requests_by_tool()
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "application": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "sessions": {
            "active": services.memory.active_session_count,
            "maxAllowed": services.memory.max_sessions,
        },
        "requests": requests,
        "performance": snapshot["performance"],
        "llm": snapshot["llm"],
        "errors": snapshot["errors"],
    }
