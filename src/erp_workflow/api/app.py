"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from erp_workflow.api.routes import (
    finance_router,
    health_router,
    hr_router,
    lots_router,
    notifications_router,
    payroll_router,
    workflow_router,
)
from erp_workflow.config import Settings, configure_logging, get_settings
from erp_workflow.container import Workflow
from erp_workflow.database import dispose_db, init_db, init_schema
from erp_workflow.workflow.errors import WorkflowError
from erp_workflow.workflow.permissions import AuthorizationPort

logger = logging.getLogger(__name__)


def create_app(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    settings: Settings | None = None,
    authorization: AuthorizationPort | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without a session factory the database is initialized from settings at
    startup and missing tables are created.
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings)
        owns_db = session_factory is None
        if owns_db:
            engine, factory = init_db(settings)
            await init_schema(engine)
            app.state.workflow = Workflow.build(factory, settings, authorization)
        yield
        if owns_db:
            await dispose_db()

    app = FastAPI(
        title="ERP Workflow API",
        description="Multi-level approval workflow for payroll, expenses, invoices and onboarding",
        version="0.1.0",
        lifespan=lifespan,
    )
    if session_factory is not None:
        app.state.workflow = Workflow.build(session_factory, settings, authorization)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(WorkflowError)
    async def workflow_exception_handler(
        request: Request, exc: WorkflowError
    ) -> JSONResponse:
        """Turn workflow failures into structured results."""
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "message": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(workflow_router, prefix="/api/v1")
    app.include_router(payroll_router, prefix="/api/v1")
    app.include_router(finance_router, prefix="/api/v1")
    app.include_router(hr_router, prefix="/api/v1")
    app.include_router(lots_router, prefix="/api/v1")
    app.include_router(notifications_router, prefix="/api/v1")

    return app
