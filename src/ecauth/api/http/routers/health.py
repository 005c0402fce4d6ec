"""Health check endpoints router for monitoring service availability."""

from typing import Any

from fastapi import APIRouter, Request
from sqlalchemy.engine import make_url
from starlette.responses import JSONResponse

from src.ecauth.api.http.app_data import ApplicationDependencies
from src.ecauth.runtime.context import get_config

router = APIRouter(prefix="/health", tags=["health"])


@router.get("")
async def health() -> dict[str, str]:
    """Liveness probe: 200 while the process runs. Checks no dependencies."""
    return {"status": "healthy", "service": "ecauth"}


@router.get("/ready", response_model=None)
def readiness(request: Request) -> dict[str, Any] | JSONResponse:
    """Readiness probe: 200 when the database answers, 503 otherwise."""
    app_deps: ApplicationDependencies = request.app.state.app_dependencies
    config = get_config()

    db_healthy = app_deps.database_service.health_check()
    checks: dict[str, Any] = {
        "database": {
            "status": "healthy" if db_healthy else "unhealthy",
            "type": make_url(config.database.url).get_backend_name(),
            "pool": app_deps.database_service.get_pool_status(),
        }
    }
    body = {
        "status": "ready" if db_healthy else "not_ready",
        "environment": config.app.environment,
        "checks": checks,
    }
    if not db_healthy:
        return JSONResponse(status_code=503, content=body)
    return body
