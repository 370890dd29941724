import asyncio
import logging
import os

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import models  # noqa: F401  (registers tables on Base.metadata)
from auth.routes import router as user_router
from database import Base, engine
from errors import AppError
from i18n import resolve_locale, translate
from routers.comments import router as comment_router
from routers.tasks import router as task_router
from services.reminders import reminder_hour, reminder_job_enabled, run_daily_reminders

# Configure logging
logging.basicConfig(level=os.environ.get("LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)

DEFAULT_CORS_ORIGINS = [
    "http://localhost:3000",     # Production frontend
    "http://127.0.0.1:3000",     # Production frontend (IP)
    "http://localhost:3001",     # Development frontend
    "http://127.0.0.1:3001",     # Development frontend (IP)
]

app = FastAPI(
    title="Task Manager API",
    description="Task management with subtasks, assignment, comments and push notifications",
    version="1.0.0"
)

cors_origins = os.environ.get("CORS_ORIGINS")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in cors_origins.split(",")] if cors_origins else DEFAULT_CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(user_router)
app.include_router(task_router)
app.include_router(comment_router)


# ============== Error handling ==============

def error_response(request: Request, status_code: int, message_key: str, headers=None, **extra) -> JSONResponse:
    body = {"detail": translate(message_key, resolve_locale(request)), "message_key": message_key, **extra}
    return JSONResponse(status_code=status_code, content=body, headers=headers)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return error_response(request, exc.status_code, exc.key, headers=exc.headers)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        return error_response(request, exc.status_code, "common.invalid_route")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path")]
        errors.append({"field": ".".join(location), "message": error.get("msg", "")})
    logger.info(f"Request validation failed on {request.url.path}: {errors}")
    return error_response(request, status.HTTP_400_BAD_REQUEST, "common.validation_failed", errors=errors)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {str(exc)}")
    return error_response(request, status.HTTP_500_INTERNAL_SERVER_ERROR, "common.server_error")


# ============== Startup / shutdown ==============

@app.on_event("startup")
async def create_tables():
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables ensured")


@app.on_event("startup")
async def start_reminder_job():
    """Start the daily due-date reminder loop when REMINDER_JOB_ENABLED is set."""
    if not reminder_job_enabled():
        logger.info("Reminder job disabled (REMINDER_JOB_ENABLED not set)")
        app.state.reminder_task = None
        return
    app.state.reminder_task = asyncio.create_task(run_daily_reminders(reminder_hour()))


@app.on_event("shutdown")
async def stop_reminder_job():
    task = getattr(app.state, "reminder_task", None)
    if task is None:
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Reminder job stopped")


# Health check
@app.get("/health")
def health_check():
    return {"status": "healthy"}
