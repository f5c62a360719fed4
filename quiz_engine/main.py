"""
Quiz Assessment Engine – layered FastAPI service
FastAPI entry point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

# Import settings to ensure config is loaded
from quiz_engine.core.config import settings
from quiz_engine.core.logging_config import configure_logging

# Import database models to create tables on startup
from quiz_engine.database.base import Base
from quiz_engine.database.session import engine
from quiz_engine.models import quiz, submission, group  # noqa: F401  (registers tables)

# Import all controllers (API routers)
from quiz_engine.controllers import quiz_controller, submission_controller

from quiz_engine.schemas.common import HealthCheck
from quiz_engine.utils.exceptions import (
    AppException,
    app_exception_handler,
    validation_exception_handler,
    generic_exception_handler,
)
from quiz_engine.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# LIFESPAN MANAGER (Modern Startup/Shutdown)
# =============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Handle startup and shutdown events.
    """
    # --- Startup ---
    configure_logging()
    logger.info(f"{settings.APP_NAME} starting up ({settings.ENVIRONMENT})")

    # Create DB tables (In production, use Alembic migrations instead)
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    yield

    # --- Shutdown ---
    logger.info(f"{settings.APP_NAME} shutting down")


# =============================================================================
# APP INITIALIZATION
# =============================================================================
app = FastAPI(
    title=settings.APP_NAME,
    description="Quiz definitions, timed submissions, auto-grading and essay review",
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# =============================================================================
# MIDDLEWARE
# =============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)

# =============================================================================
# ROUTERS
# =============================================================================
app.include_router(quiz_controller.router, prefix="/api/v1")
app.include_router(submission_controller.router, prefix="/api/v1")


# =============================================================================
# HEALTH CHECK
# =============================================================================
@app.get("/", response_model=HealthCheck, tags=["Health"])
def read_root():
    return HealthCheck(
        service=settings.APP_NAME,
        version=settings.APP_VERSION,
        timestamp=utcnow(),
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("quiz_engine.main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
