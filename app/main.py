from contextlib import asynccontextmanager
import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.api.v1.api import api_router
from app.core.config import settings
from app.core.exceptions import (
    AlreadyClaimed,
    AuthorizationError,
    BookingError,
    ClaimExpiredError,
    LateCancellationError,
    NotFoundError,
    SchedulingError,
    TutoringException,
    ValidationError,
)
from app.repositories.memory import InMemorySchedulingStore
from app.services.scheduling_service import SchedulingService
from app.tasks.maintenance_tasks import start_background_tasks, stop_background_tasks

if os.getenv("ENVIRONMENT") == "production":
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format='{"time": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
    )
else:
    logging.basicConfig(level=logging.DEBUG if settings.DEBUG else settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES = [
    (ValidationError, 422),
    (LateCancellationError, 422),
    (NotFoundError, 404),
    (AuthorizationError, 403),
    (AlreadyClaimed, 409),
    (ClaimExpiredError, 409),
    (SchedulingError, 409),
    (BookingError, 409),
]


def status_code_for(exc: TutoringException) -> int:
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return 400


async def build_scheduling_service() -> SchedulingService:
    if settings.USE_DATABASE_STORE:
        from app.core.database import init_db
        from app.repositories.sqlalchemy_store import build_store

        await init_db()
        store = build_store()
    else:
        store = InMemorySchedulingStore()
    return SchedulingService(store)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if getattr(app.state, "scheduling_service", None) is None:
        app.state.scheduling_service = await build_scheduling_service()
    service = app.state.scheduling_service
    await service.notifications.start()
    tasks = start_background_tasks(service) if app.state.run_background_tasks else []
    logger.info(
        f"Booking engine ready (claim TTL {settings.RESERVATION_LOCK_TTL_SECONDS}s, "
        f"cancellation lead {settings.CANCELLATION_LEAD_MINUTES} min)"
    )
    yield
    await stop_background_tasks(tasks)
    await service.notifications.stop()


def create_app(scheduling_service: SchedulingService = None, run_background_tasks: bool = True) -> FastAPI:
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Tutor availability and session booking",
        lifespan=lifespan,
    )
    app.state.scheduling_service = scheduling_service
    app.state.run_background_tasks = run_background_tasks

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_HOSTS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.exception_handler(TutoringException)
    async def tutoring_exception_handler(request: Request, exc: TutoringException) -> JSONResponse:
        status_code = status_code_for(exc)
        logger.info(f"{request.method} {request.url.path} -> {status_code} {exc.code}: {exc.message}")
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    return app


app = create_app()
