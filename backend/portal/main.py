"""FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from portal.core.config import get_settings
from portal.core.database import async_session_factory, init_db
from portal.core.errors import PortalError
from portal.core.rate_limit import limiter
from portal.routers import (
    admin,
    audit,
    auth,
    committees,
    documents,
    events,
    health,
    monitoring,
    users,
    verification,
)
from portal.services.system_config import ConfigService

settings = get_settings()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan events."""
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    await init_db()
    async with async_session_factory() as session:
        await ConfigService(session).seed_defaults()
    logger.info(f"{settings.app_name} started")
    yield


app = FastAPI(
    title=settings.app_name,
    description="Condominium resident portal: committee documents, verification and audit trail",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["health"])
app.include_router(auth.router, prefix=settings.api_v1_prefix, tags=["auth"])
app.include_router(users.router, prefix=settings.api_v1_prefix, tags=["users"])
app.include_router(verification.router, prefix=settings.api_v1_prefix, tags=["verification"])
app.include_router(committees.router, prefix=settings.api_v1_prefix, tags=["committees"])
app.include_router(documents.router, prefix=settings.api_v1_prefix, tags=["documents"])
app.include_router(events.router, prefix=settings.api_v1_prefix, tags=["events"])
app.include_router(admin.router, prefix=settings.api_v1_prefix, tags=["admin"])
app.include_router(audit.router, prefix=settings.api_v1_prefix, tags=["audit"])
app.include_router(monitoring.router, prefix=settings.api_v1_prefix, tags=["monitoring"])
