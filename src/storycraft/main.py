import logging
import time
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from storycraft.api.api_v1.api import api_router
from storycraft.core.config import Settings, settings as default_settings
from storycraft.core.error_handlers import (
    billing_exception_handler,
    general_exception_handler,
    sqlalchemy_exception_handler,
    validation_exception_handler,
)
from storycraft.core.errors import BillingError
from storycraft.db.session import Database
from storycraft.services.plan_catalog import PlanCatalog
from storycraft.utils.clock import utcnow

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan events for FastAPI application."""
    settings: Settings = app.state.settings
    logger.info(f"Environment: {settings.ENV}")

    owns_database = app.state.database is None
    if owns_database:
        app.state.database = Database.from_settings(settings)
    database: Database = app.state.database

    try:
        if settings.DB_CREATE_TABLES:
            await database.create_all()
        await database.ping()
        logger.info("Database connection verified")
    except SQLAlchemyError as e:
        logger.error(f"Database connection failed: {e}")
        # Don't fail startup for database issues in development
        if settings.is_production:
            raise

    yield

    if owns_database:
        await database.dispose()
        app.state.database = None
    logging.info("lifespan shutdown")


def create_app(settings: Optional[Settings] = None, database: Optional[Database] = None) -> FastAPI:
    """Create FastAPI application."""
    settings = settings or default_settings
    app = FastAPI(
        lifespan=lifespan,
        title=settings.PROJECT_NAME,
        openapi_url=f"{settings.API_V1_STR}/openapi.json",
    )
    app.state.settings = settings
    app.state.database = database
    app.state.plan_catalog = PlanCatalog.from_yaml(settings.PLAN_CATALOG_PATH)
    logger.info(f"Plan catalog loaded with {len(app.state.plan_catalog)} entries")

    # Health check endpoint
    @app.get("/healthz")
    async def health_check(request: Request):
        """Health check endpoint for container orchestration."""
        database: Optional[Database] = request.app.state.database
        if database is None:
            raise HTTPException(status_code=503, detail="Service unhealthy")
        try:
            await database.ping()
            return {
                "status": "healthy",
                "timestamp": utcnow().isoformat(),
                "service": settings.PROJECT_NAME,
            }
        except SQLAlchemyError as e:
            logger.error(f"Health check failed: {e}")
            raise HTTPException(status_code=503, detail="Service unhealthy")

    @app.middleware("http")
    async def log_request_middleware(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} "
            f"({process_time:.4f}s, auth={'bearer' if request.headers.get('authorization') else 'none'})"
        )
        return response

    # Add exception handlers
    app.add_exception_handler(BillingError, billing_exception_handler)
    app.add_exception_handler(ValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    if settings.is_production:
        cors_origins = settings.BACKEND_CORS_ORIGINS.copy()
    else:
        logger.info("Development mode: Allowing all CORS origins")
        cors_origins = ["*"]
    logger.info("Final CORS Origins: %s", cors_origins)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        max_age=600,  # Cache preflight requests for 10 minutes
    )

    # Include the routers
    app.include_router(api_router, prefix=settings.API_V1_STR)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="localhost", port=default_settings.SERVER_PORT)
