import time
import uuid
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from jose import JWTError

from config import settings
from database import init_db, close_db
from access import hooks as hook_names
from access.enforcement import RequestTerminated
from access.hooks import HookRegistry
from routers import (
    auth_router,
    login_router,
    pages_router,
    settings_router,
    sites_router,
)
from utils.logging_utils import setup_logging, get_logger, LogTimer
from utils.audit import audit

# INFO by default, DEBUG via LOG_LEVEL
setup_logging(level=settings.LOG_LEVEL)
logger = get_logger(__name__)


def _audit_block(ctx, outcome) -> None:
    audit.log_block(
        scope=outcome.scope.value,
        site_id=ctx.site_id,
        user_id=ctx.user_id,
        reason=outcome.reason,
        is_feed=ctx.is_feed,
    )


def build_hooks() -> HookRegistry:
    """Hook registry shared by every request; extensions add their filters here."""
    hooks = HookRegistry()
    hooks.add_action(hook_names.NETWORK_PROTECT, _audit_block)
    hooks.add_action(hook_names.SITE_PROTECT, _audit_block)
    return hooks


async def bootstrap_main_site_and_admin() -> None:
    """Create the main site and the local admin from env vars (first-run only)."""
    from sqlalchemy import select as sa_select
    from database import AsyncSessionLocal
    from models import Site, SiteMembership, User
    from access.identity import ADMINISTRATOR_ROLE
    import bcrypt

    async with AsyncSessionLocal() as db:
        site = await db.get(Site, settings.MAIN_SITE_ID)
        if site is None:
            home = urlparse(settings.NETWORK_HOME_URL)
            site = Site(
                id=settings.MAIN_SITE_ID,
                domain=home.netloc or "localhost",
                path=home.path or "/",
                name=settings.APP_NAME,
            )
            db.add(site)
            await db.commit()
            logger.info(f"Main site created for {site.domain}")

        if not (settings.LOCAL_ADMIN_USERNAME and settings.LOCAL_ADMIN_PASSWORD):
            return

        result = await db.execute(
            sa_select(User).where(User.username == settings.LOCAL_ADMIN_USERNAME)
        )
        if result.scalar_one_or_none():
            return

        hashed = bcrypt.hashpw(
            settings.LOCAL_ADMIN_PASSWORD.encode("utf-8"),
            bcrypt.gensalt(),
        ).decode("utf-8")
        admin = User(
            username=settings.LOCAL_ADMIN_USERNAME,
            email=settings.LOCAL_ADMIN_EMAIL or f"{settings.LOCAL_ADMIN_USERNAME}@localhost",
            display_name=settings.LOCAL_ADMIN_USERNAME,
            is_super_admin=True,
            primary_site_id=site.id,
            local_password_hash=hashed,
            is_active=True,
        )
        db.add(admin)
        await db.flush()
        db.add(SiteMembership(user_id=admin.id, site_id=site.id, role=ADMINISTRATOR_ROLE))
        await db.commit()
        logger.info(f"Bootstrap admin user '{settings.LOCAL_ADMIN_USERNAME}' created")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    # Startup
    logger.info("=" * 60)
    logger.info("PORTIER STARTING UP")
    logger.info(f"App: {settings.APP_NAME} v{settings.APP_VERSION}")
    logger.info(f"Mode: {'multisite network' if settings.MULTISITE else 'single site'}")

    with LogTimer(logger, "Database initialization"):
        await init_db()

    with LogTimer(logger, "Main site bootstrap") as timer:
        timer.add_info("site_id", settings.MAIN_SITE_ID)
        await bootstrap_main_site_and_admin()

    # Run startup health checks
    from services.health import run_health_checks
    health = await run_health_checks()
    for check in health.checks:
        status_icon = "+" if check.status == "ok" else "!"
        detail = ""
        if check.message:
            detail += f" ({check.message})"
        if check.response_time_ms is not None:
            detail += f" [{check.response_time_ms:.1f}ms]"
        logger.info(f"  {status_icon} {check.name}: {check.status}{detail}")
    if health.status != "healthy":
        logger.warning(f"STARTUP HEALTH: {health.status.upper()} - some checks failed")

    logger.info("STARTUP COMPLETE - Ready to accept requests")
    logger.info("=" * 60)

    yield

    # Shutdown
    logger.info("PORTIER SHUTTING DOWN")
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    lifespan=lifespan,
)
app.state.hooks = build_hooks()


# ── Enforcement ───────────────────────────────────────────────────────

@app.exception_handler(RequestTerminated)
async def request_terminated_handler(request: Request, exc: RequestTerminated):
    """The access guard already prepared the final response."""
    return exc.response


# ── Custom validation error handler ───────────────────────────────────

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
):
    """
    Return user-friendly error messages when request validation fails.

    Instead of Pydantic's raw error output, this returns a structured
    response with per-field error messages.
    """
    errors = []
    for error in exc.errors():
        # Build a dotted field path (skip the top-level "body"/"query" prefix)
        loc_parts = [str(x) for x in error.get("loc", [])]
        if loc_parts and loc_parts[0] in ("body", "query", "path"):
            loc_parts = loc_parts[1:]
        field = ".".join(loc_parts) if loc_parts else "unknown"

        msg = error.get("msg", "Validation error")
        # Pydantic wraps custom ValueError messages in "Value error, ..."
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]

        errors.append({
            "field": field,
            "message": msg,
            "type": error.get("type", "unknown"),
        })

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "detail": "Validation failed",
            "errors": errors,
        },
    )


# ── Request ID + request logging middleware ───────────────────────────

@app.middleware("http")
async def request_lifecycle(request: Request, call_next):
    """Assign a request ID, log timing, and add the ID to response headers."""
    request_id = str(uuid.uuid4())
    audit.set_request_id(request_id)

    # Extract actor from the bearer token or auth cookie for audit context
    token = None
    auth_header = request.headers.get("authorization", "")
    if auth_header.startswith("Bearer "):
        token = auth_header[7:]
    else:
        token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if token:
        from auth.jwt_service import verify_access_token
        try:
            payload = verify_access_token(token)
            audit.set_actor(f"user:{payload.get('sub', 'unknown')}")
        except JWTError as exc:
            logger.debug(f"Ignoring unusable token for audit context: {exc}")

    start_time = time.perf_counter()
    logger.debug(f"→ {request.method} {request.url.path}")

    response = await call_next(request)

    duration_ms = (time.perf_counter() - start_time) * 1000
    status_indicator = "+" if response.status_code < 400 else "!"
    logger.info(
        f"{status_indicator} {request.method} {request.url.path} "
        f"[{response.status_code}] {duration_ms:.1f}ms rid={request_id[:8]}"
    )

    response.headers["X-Request-ID"] = request_id
    return response


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=settings.CORS_ALLOW_METHODS,
    allow_headers=settings.CORS_ALLOW_HEADERS,
)

# Include routers
app.include_router(auth_router)
app.include_router(login_router)
app.include_router(settings_router)
app.include_router(sites_router)
app.include_router(pages_router)


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint with component status breakdown."""
    from services.health import run_health_checks
    health = await run_health_checks()
    status_code = 200 if health.status in ("healthy", "degraded") else 503
    return JSONResponse(content=health.model_dump(), status_code=status_code)


@app.get("/api", tags=["root"])
async def api_root():
    """API root endpoint."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "multisite": settings.MULTISITE,
        "docs": "/docs",
        "openapi": "/openapi.json",
        "endpoints": {
            "auth": "/api/auth",
            "login": settings.LOGIN_PATH,
            "my_sites": "/api/my-sites",
            "site_settings": "/api/sites/{site_id}/settings",
            "network_settings": "/api/network/settings",
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
