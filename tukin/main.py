"""FastAPI main application entry point."""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from tukin.core.config import Settings, settings as default_settings
from tukin.core.exceptions import (
    AuthenticationRequired,
    AuthorizationDenied,
    AuthorizationUnavailable,
    ConfigurationError,
    TukinError,
)
from tukin.core.middleware import setup_middleware
from tukin.core.security import TokenService
from tukin.schemas.schemas import ErrorResponse
from tukin.db.session import SessionLocal
from tukin.services.authorization import AuthorizationEngine
from tukin.services.invalidation import PermissionInvalidator
from tukin.services.permission_cache import PermissionCache
from tukin.services.role_resolver import RoleResolver
from tukin.services.stores import RoleStore, SqlRoleStore, SqlUserStore, UserStore

from tukin.api.auth import router as auth_router
from tukin.api.health import router as health_router
from tukin.api.rbac import router as rbac_router
from tukin.api.roles import router as roles_router

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if default_settings.DEBUG else default_settings.LOG_LEVEL.upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("tukin")

# What clients see for authorization failures; details only go to the log
GENERIC_MESSAGES = {
    AuthorizationDenied.code: "You do not have permission to access this resource",
    AuthorizationUnavailable.code: "Authorization is temporarily unavailable, please retry",
    ConfigurationError.code: "Authentication is not configured",
}

# Documented error bodies for guarded routers
GUARDED_RESPONSES = {
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}

ACCESS_DENIED_PAGE = """<!DOCTYPE html>
<html>
<head><title>Access Denied</title></head>
<body>
<h1>403 - Access Denied</h1>
<p>You do not have permission to access this resource.</p>
<p><a href="/">Back to dashboard</a></p>
</body>
</html>
"""


def _wants_html(request: Request) -> bool:
    """Browser navigation rather than an API call."""
    if request.url.path.startswith("/api"):
        return False
    return "text/html" in request.headers.get("accept", "")


def _build_auth(app: FastAPI, app_settings: Settings, session_factory,
                role_store: Optional[RoleStore], user_store: Optional[UserStore]) -> None:
    """Construct the authorization components and hang them on app.state."""
    try:
        app.state.tokens = TokenService.from_settings(app_settings)
        app.state.token_error = None
    except ConfigurationError as e:
        # Authenticated routes answer CONFIGURATION_ERROR until this is fixed
        logger.critical("Token service misconfigured: %s", e.message)
        app.state.tokens = None
        app.state.token_error = e

    cache = PermissionCache(ttl_seconds=app_settings.PERMISSION_CACHE_TTL_SECONDS)
    app.state.permission_cache = cache
    app.state.invalidator = PermissionInvalidator(
        cache,
        redis_url=app_settings.REDIS_URL if app_settings.PERMISSION_BROADCAST_ENABLED else None,
        channel=app_settings.PERMISSION_BROADCAST_CHANNEL,
    )
    app.state.authorization = AuthorizationEngine(
        user_store=user_store or SqlUserStore(session_factory),
        role_resolver=RoleResolver(role_store or SqlRoleStore(session_factory)),
        cache=cache,
        timeout_seconds=app_settings.ROLE_STORE_TIMEOUT_SECONDS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting %s API", app.state.settings.APP_NAME)
    app.state.invalidator.start()

    yield

    logger.info("Shutting down %s API", app.state.settings.APP_NAME)
    await app.state.invalidator.stop()
    app.state.permission_cache.close()


def create_app(
    app_settings: Optional[Settings] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    role_store: Optional[RoleStore] = None,
    user_store: Optional[UserStore] = None,
) -> FastAPI:
    """Build the application. Arguments override the process-wide defaults."""
    app_settings = app_settings or default_settings

    app = FastAPI(
        title=f"{app_settings.APP_NAME} API",
        description="Role-based access control for staff performance-bonus management",
        version="0.1.0",
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.settings = app_settings
    app.state.session_factory = session_factory or SessionLocal
    _build_auth(app, app_settings, app.state.session_factory, role_store, user_store)

    # Middleware
    setup_middleware(app, app_settings)

    @app.exception_handler(TukinError)
    async def tukin_exception_handler(request: Request, exc: TukinError):
        if _wants_html(request):
            if isinstance(exc, AuthenticationRequired):
                return RedirectResponse(app_settings.LOGIN_PATH, status_code=303)
            if isinstance(exc, AuthorizationDenied):
                return HTMLResponse(ACCESS_DENIED_PAGE, status_code=403)

        content = {
            "success": False,
            "message": GENERIC_MESSAGES.get(exc.code, exc.message),
            "code": exc.code,
        }
        if app_settings.DEBUG:
            content["detail"] = exc.message
            if isinstance(exc, AuthorizationDenied):
                content["missing"] = exc.missing

        headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationRequired) else None
        return JSONResponse(status_code=exc.status_code, content=content, headers=headers)

    # Register routers
    app.include_router(auth_router, prefix="/api")
    app.include_router(roles_router, prefix="/api", responses=GUARDED_RESPONSES)
    app.include_router(rbac_router, prefix="/api", responses=GUARDED_RESPONSES)
    app.include_router(health_router, prefix="/api")

    @app.get("/")
    async def root():
        return {
            "name": app_settings.APP_NAME,
            "version": "0.1.0",
            "docs": "/docs",
        }

    return app


app = create_app()
