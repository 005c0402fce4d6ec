"""FastAPI application factory and setup."""

import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from src.ecauth.api.http.app_data import ApplicationDependencies
from src.ecauth.api.http.routers import health, oauth, passkey, userinfo
from src.ecauth.api.utils.app_startup import configure_logging
from src.ecauth.core.errors import EcAuthError, Unauthorized
from src.ecauth.core.services import (
    DbSessionService,
    FederationAdapter,
    JwtGeneratorService,
    JwtVerificationService,
    SigningKeyStore,
)
from src.ecauth.runtime.context import get_config


# --- Security middleware ---
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "DENY")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault(
            "Permissions-Policy", "geolocation=(), microphone=()"
        )
        # HSTS only in prod
        if get_config().app.environment == "production":
            response.headers.setdefault(
                "Strict-Transport-Security",
                "max-age=31536000; includeSubDomains; preload",
            )
        return response


# --- FastAPI app setup ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    await startup()
    try:
        yield
    finally:
        await shutdown()


app = FastAPI(
    title="EcAuth Identity Provider",
    lifespan=lifespan,
    docs_url=None if get_config().app.environment == "production" else "/docs",
    redoc_url=None if get_config().app.environment == "production" else "/redoc",
)

app.add_middleware(SecurityHeadersMiddleware)

__all__ = ["app", "startup", "shutdown", "build_dependencies"]

# --- CORS configuration ---
if get_config().app.environment == "production" and (
    "*" in get_config().app.cors.origins
):
    raise RuntimeError(
        "CORS misconfigured: cannot use '*' with allow_credentials=True in production"
    )

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().app.cors.origins,
    allow_credentials=get_config().app.cors.allow_credentials,
    allow_methods=get_config().app.cors.allow_methods,
    allow_headers=get_config().app.cors.allow_headers,
)


def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or request.headers.get(
        "X-Request-ID", "-"
    )


# --- Error rendering ---
@app.exception_handler(EcAuthError)
async def ecauth_error_handler(request: Request, exc: EcAuthError) -> JSONResponse:
    """Render domain errors as OAuth error bodies; the internal detail is only logged."""
    request_id = _request_id(request)
    log = logger.bind(
        error=exc.error,
        status_code=exc.status_code,
        error_type=type(exc).__name__,
        **exc.context,
    )
    if exc.security_event:
        log.bind(security_event=True).warning("security.{}: {}", type(exc).__name__, exc.detail)
    elif exc.status_code >= 500:
        log.error("request.failed: {}", exc.detail)
    else:
        log.info("request.rejected: {}", exc.detail)

    headers = {"X-Request-ID": request_id, "Cache-Control": "no-store"}
    if isinstance(exc, Unauthorized):
        headers["WWW-Authenticate"] = 'Bearer error="invalid_token"'
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error,
            "error_description": exc.public_description,
            "request_id": request_id,
        },
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    request_id = _request_id(request)
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in exc.errors()]
    logger.bind(fields=fields).info("request.invalid")
    return JSONResponse(
        status_code=400,
        content={
            "error": "invalid_request",
            "error_description": "Missing or malformed parameters: " + ", ".join(fields),
            "request_id": request_id,
        },
        headers={"X-Request-ID": request_id, "Cache-Control": "no-store"},
    )


# --- Request logging middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id

    xff = request.headers.get("x-forwarded-for")
    client_ip = (
        xff.split(",")[0].strip()
        if xff
        else request.client.host
        if request.client
        else "unknown"
    )

    # Query strings carry codes and state; they are never logged
    base_ctx = {
        "request_id": request_id,
        "method": request.method,
        "path": request.url.path,
        "client_ip": client_ip,
        "user_agent": request.headers.get("user-agent", "unknown"),
        "tenant": request.headers.get(get_config().tenancy.header_name, "-"),
    }

    start = time.perf_counter()

    with logger.contextualize(**base_ctx):
        try:
            logger.info("request.start")
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=response.status_code,
                duration_ms=round(duration_ms, 1),
            ).info("request.end")

            response.headers.setdefault("X-Request-ID", request_id)
            return response

        except Exception as exc:
            duration_ms = (time.perf_counter() - start) * 1000
            logger.bind(
                status_code=500,
                duration_ms=round(duration_ms, 1),
                error_type=type(exc).__name__,
            ).exception("request.error")
            return JSONResponse(
                status_code=500,
                content={
                    "error": "server_error",
                    "error_description": "An internal error occurred.",
                    "request_id": request_id,
                },
                headers={"X-Request-ID": request_id},
            )


# --- Router registration ---
app.include_router(health.router)
app.include_router(oauth.router)
app.include_router(userinfo.router)
app.include_router(passkey.router)


def build_dependencies() -> ApplicationDependencies:
    """Create the process-wide services from the active configuration."""
    return ApplicationDependencies(
        database_service=DbSessionService(),
        key_store=SigningKeyStore(),
        jwt_generation_service=JwtGeneratorService(),
        jwt_verify_service=JwtVerificationService(),
        federation_adapter=FederationAdapter(),
    )


# --- Lifecycle hooks ---
async def startup() -> None:
    configure_logging()
    config = get_config()
    logger.info("Starting up EcAuth in {} environment", config.app.environment)

    if not config.app.state_signing_secret:
        if config.app.environment == "production":
            raise RuntimeError("app.state_signing_secret must be set in production")
        logger.warning("State signing secret not configured; /authorization is disabled")

    # Tests may install their own dependencies before the app starts
    if getattr(app.state, "app_dependencies", None) is None:
        app.state.app_dependencies = build_dependencies()

    if not app.state.app_dependencies.database_service.health_check():
        logger.error("Database not reachable at startup")
        if config.app.environment == "production":
            raise RuntimeError("Database readiness check failed")

    logger.info("Enabled upstream providers: {}", sorted(config.oidc.providers))


async def shutdown() -> None:
    logger.info("Shutting down EcAuth")
    app_dependencies: ApplicationDependencies | None = getattr(
        app.state, "app_dependencies", None
    )
    if app_dependencies is not None:
        app_dependencies.key_store.clear()
        app_dependencies.database_service.engine.dispose()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=get_config().app.host,
        port=get_config().app.port,
        access_log=False,  # request logging middleware covers access logs
    )
