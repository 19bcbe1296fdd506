import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Import all models to ensure they're registered with SQLAlchemy Base
from . import models  # noqa: F401
from .config import DEFAULT_TIMEZONE, LOG_LEVEL
from .database import Base, engine
from .domain.patients.router import router as patients_router
from .domain.scheduling.errors import (
    AccessDenied,
    DuplicateExecution,
    InvalidDateRange,
    InvalidInterval,
    InvalidIntervalUnit,
    InvalidStateTransition,
    RecordNotFound,
    SchedulingError,
)
from .domain.scheduling.router import router as schedules_router

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    logger.info(f"Due dates use UTC calendar days (display timezone: {DEFAULT_TIMEZONE})")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    yield
    logger.info("Application shutting down...")


app = FastAPI(title="CareCycle API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Convert 422 validation errors on the Authorization header to 401
    authentication errors
    """
    for error in exc.errors():
        if error.get("loc") and "authorization" in str(error.get("loc")).lower():
            logger.warning(
                f"Authentication failed for {request.url.path}: Missing or invalid Authorization header"
            )
            return JSONResponse(
                status_code=401,
                content={
                    "detail": "Not authenticated. Please provide a valid Bearer token in the Authorization header."
                },
            )

    logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
    return JSONResponse(status_code=422, content={"detail": exc.errors()})


# Scheduling errors -> HTTP status
ERROR_STATUS = {
    AccessDenied: 403,
    RecordNotFound: 404,
    DuplicateExecution: 409,
    InvalidStateTransition: 409,
    InvalidIntervalUnit: 400,
    InvalidInterval: 400,
    InvalidDateRange: 400,
}


@app.exception_handler(SchedulingError)
async def scheduling_exception_handler(request: Request, exc: SchedulingError):
    status_code = next(
        (code for error_type, code in ERROR_STATUS.items() if isinstance(exc, error_type)), 400
    )
    content = {"detail": exc.message}

    if isinstance(exc, DuplicateExecution):
        # Expected race: someone else completed it first, the client should refresh
        content["code"] = "already_completed"
        content["planned_date"] = str(exc.planned_date)
    elif isinstance(exc, AccessDenied):
        content["code"] = "access_denied"
    elif isinstance(exc, InvalidStateTransition):
        content["code"] = "invalid_transition"

    logger.info(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=content)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        logger.error(f"{request.method} {request.url.path} - Error: {str(e)}")
        raise


# CORS Configuration
ALLOWED_ORIGINS = os.getenv(
    "ALLOWED_ORIGINS",
    "http://localhost:5173,http://localhost:3000",
).split(",")

logger.info(f"CORS allowed origins: {ALLOWED_ORIGINS}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
    allow_headers=["*"],
)

# Routes
app.include_router(schedules_router)
app.include_router(patients_router)


@app.get("/")
def root():
    return {"message": "CareCycle API is running"}


@app.get("/health")
def health():
    return {"status": "healthy"}
