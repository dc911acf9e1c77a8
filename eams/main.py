"""EAMS FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from eams.api.branches import router as branches_router
from eams.api.enterprise import router as enterprise_router
from eams.api.health import router as health_router
from eams.api.usage import router as usage_router
from eams.auth.routes import verify_route_policy
from eams.config import settings
from eams.database import engine
from eams.engine.audit import drain_audit_events
from eams.errors import unhandled_exception_handler, validation_exception_handler

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# (prefix, router, tag)
ROUTERS = (
    ("", health_router, "Health"),
    ("/enterprise", enterprise_router, "Enterprise"),
    ("/enterprise", branches_router, "Branches"),
    ("/enterprise", usage_router, "Usage"),
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    await drain_audit_events()
    await engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(
        title="EAMS - Enterprise Account Management Service",
        description="Tenant resolution, API-key authorization and monthly quotas for enterprise accounts",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for prefix, router, tag in ROUTERS:
        app.include_router(router, prefix=prefix, tags=[tag])

    verify_route_policy(app, [(prefix, router) for prefix, router, _ in ROUTERS])

    @app.get("/")
    async def root():
        """Root endpoint."""
        return {"service": "EAMS", "version": "0.1.0", "docs": "/docs"}

    return app


app = create_app()
