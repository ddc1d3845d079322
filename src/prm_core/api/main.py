"""Product Requirements Management FastAPI application."""
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from prm_core import __version__
from prm_core.auth import cleanup_expired_refresh_tokens
from prm_core.bootstrap import seed_defaults
from prm_core.config import get_settings
from prm_core.database import SessionLocal, get_db
from prm_core.errors import ErrorCode, PRMError
from prm_core.pat import cleanup_expired_tokens

from .routers import (
    acceptance_criteria,
    auth,
    comments,
    config,
    epics,
    navigation,
    pats,
    prompts,
    requirements,
    search,
    steering_documents,
    user_stories,
    users,
)

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("prm-api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Seed defaults and sweep expired credentials once at startup."""
    logger.info(f"Starting PRM API ({settings.environment.value})")
    db = SessionLocal()
    try:
        seeded = seed_defaults(db)
        logger.info(f"Seeded defaults: {seeded}")
        cleanup_expired_refresh_tokens(db)
        cleanup_expired_tokens(db)
    finally:
        db.close()
    yield
    logger.info("Stopping PRM API")


# Create FastAPI app
app = FastAPI(
    title="PRM API",
    description="Product requirements management: epics, user stories, acceptance criteria and requirements",
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================================
# Error rendering
# ============================================================================

@app.exception_handler(PRMError)
async def prm_error_handler(request: Request, exc: PRMError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": error.get("msg", ""),
            "type": error.get("type", ""),
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=400,
        content={
            "code": ErrorCode.VALIDATION.value,
            "message": "Request validation failed",
            "details": {"errors": errors},
        },
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"code": ErrorCode.INTERNAL.value, "message": "Internal server error"},
    )


# ============================================================================
# Routers
# ============================================================================

app.include_router(auth.router, prefix="/auth")
app.include_router(epics.router, prefix="/api/v1/epics")
app.include_router(user_stories.router, prefix="/api/v1/user-stories")
app.include_router(acceptance_criteria.router, prefix="/api/v1/acceptance-criteria")
app.include_router(requirements.router, prefix="/api/v1/requirements")
app.include_router(comments.router, prefix="/api/v1/comments")
app.include_router(steering_documents.router, prefix="/api/v1/steering-documents")
app.include_router(search.router, prefix="/api/v1/search")
app.include_router(navigation.router, prefix="/api/v1/hierarchy")
app.include_router(prompts.router, prefix="/api/v1/prompts")
app.include_router(pats.router, prefix="/api/v1/pats")
app.include_router(users.router, prefix="/api/v1/users")
app.include_router(config.router, prefix="/api/v1/config")


@app.get("/")
def root():
    """Root endpoint with server info."""
    return {
        "name": "PRM API",
        "version": __version__,
        "docs": "/docs",
        "description": "Product requirements management backend",
    }


@app.get("/live")
def liveness():
    """Liveness check. Does not touch the database."""
    return {"status": "alive"}


@app.get("/ready")
def readiness(db: Session = Depends(get_db)):
    """Readiness check: succeeds when the database answers."""
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        return JSONResponse(status_code=503, content={"status": "unavailable", "database": "unreachable"})
    return {"status": "ready", "database": "ok"}


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run("prm_core.api.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    run()
