"""
GraphGate FastAPI Application
Graph-backed RBAC access decisions in front of every protected route
"""

import logging
import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from .config import Settings, get_settings
from .database import GraphStore
from .init_graph import initialize_graph_schema, seed_default_rbac
from .middleware.authorization_middleware import AccessGateMiddleware
from .models.authorization_models import AuthorizationConfiguration, SuspiciousPolicy
from .routes import access, health
from .services.authorization.service import AccessDecisionService, get_access_decision_service
from .services.session_store import SessionIdentityResolver, SessionStore, create_session_store
from .utils.logging_security import sanitize_path_for_log

logger = logging.getLogger(__name__)


def build_authorization_config(settings: Settings) -> AuthorizationConfiguration:
    return AuthorizationConfiguration(
        suspicious_policy=SuspiciousPolicy(settings.suspicious_policy),
        serialize_per_identity=settings.serialize_per_identity,
        audit_in_background=settings.audit_in_background,
    )


def create_app(
    settings: Optional[Settings] = None,
    graph_store: Optional[GraphStore] = None,
    session_store: Optional[SessionStore] = None,
    decision_service: Optional[AccessDecisionService] = None,
) -> FastAPI:
    """
    Build the application.

    Components passed in are used as-is and are not closed at shutdown;
    anything missing is built from settings inside the lifespan.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan management."""
        logger.info(f"Starting {settings.app_name} {settings.app_version}...")

        owned_store = None
        store = graph_store
        if store is None and decision_service is None:
            store = owned_store = GraphStore.from_settings(settings)
        if store is not None:
            await store.open()
            if settings.initialize_graph_schema:
                await initialize_graph_schema(store)
                await seed_default_rbac(store)
        app.state.graph_store = store

        if getattr(app.state, "access_decision_service", None) is None:
            app.state.access_decision_service = get_access_decision_service(store, build_authorization_config(settings))

        owned_sessions = None
        if getattr(app.state, "identity_resolver", None) is None:
            owned_sessions = create_session_store(settings)
            app.state.identity_resolver = SessionIdentityResolver(
                owned_sessions,
                cookie_name=settings.session_cookie_name,
                header_name=settings.session_header_name,
            )

        logger.info(f"{settings.app_name} started successfully")

        yield

        # Shutdown
        logger.info(f"Shutting down {settings.app_name}...")
        await app.state.access_decision_service.drain()
        if owned_sessions is not None:
            await owned_sessions.close()
        if owned_store is not None:
            await owned_store.close()
        logger.info("Shutdown complete")

    app = FastAPI(
        title=settings.app_name,
        description="Graph-backed RBAC access decision gateway",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.graph_store = graph_store
    if decision_service is not None:
        app.state.access_decision_service = decision_service
    if session_store is not None:
        app.state.identity_resolver = SessionIdentityResolver(
            session_store,
            cookie_name=settings.session_cookie_name,
            header_name=settings.session_header_name,
        )

    app.add_middleware(AccessGateMiddleware, public_paths=settings.public_paths)

    app.include_router(health.router)
    app.include_router(access.router)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception on {sanitize_path_for_log(request.url.path)}: {exc}", exc_info=True)

        # Return generic error response (don't expose internal details)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error", "error_id": f"{int(time.time())}"},
        )

    return app


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def main() -> None:
    settings = get_settings()
    configure_logging(settings)
    uvicorn.run(
        "graphgate.main:create_app",
        factory=True,
        host="0.0.0.0",  # nosec B104 - Intentional for container binding
        port=8000,
        log_level=settings.log_level.lower(),
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
