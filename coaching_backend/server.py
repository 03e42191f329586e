import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from motor.motor_asyncio import AsyncIOMotorDatabase
from starlette.middleware.cors import CORSMiddleware

from .config import Settings
from .database import create_client, ensure_indexes
from .errors import CoachingError
from .jobs import check_low_performance, create_scheduler
from .reports.renderers import CanvasReportRenderer, select_renderer
from .routes.admin import admin_router
from .routes.assignments import assignments_router
from .routes.auth import auth_router
from .routes.goals import goals_router
from .routes.parent import parent_router
from .routes.public import public_router
from .routes.reports import reports_router, teacher_reports_router
from .routes.student import student_router
from .routes.teacher import teacher_router
from .utils import Clock, utc_now

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Optional[AsyncIOMotorDatabase] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    settings = settings or Settings.from_env()
    client = None
    if database is None:
        client = create_client(settings)
        database = client[settings.db_name]

    renderer = select_renderer(settings)
    fallback_renderer = None
    if renderer.name != "canvas":
        fallback_renderer = CanvasReportRenderer(settings.tz, settings.report_font_path)
    logger.info("Report renderer: %s", renderer.name)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if client is not None:
            try:
                await client.admin.command('ping')
                logger.info("MongoDB connection successful")
            except Exception as e:
                logger.error(f"MongoDB connection failed: {e}")
                logger.error("Please check your MONGO_URL in .env file and ensure MongoDB is accessible")
                raise
        await ensure_indexes(database)

        async def weekly_check():
            await check_low_performance(database, settings, clock)

        scheduler = None
        if settings.enable_scheduler:
            scheduler = create_scheduler(weekly_check, settings)
            scheduler.start()
        try:
            yield
        finally:
            if scheduler is not None:
                scheduler.shutdown(wait=False)
            if client is not None:
                client.close()

    app = FastAPI(title="Coaching API", lifespan=lifespan)
    app.state.db = database
    app.state.settings = settings
    app.state.clock = clock
    app.state.renderer = renderer
    app.state.fallback_renderer = fallback_renderer

    @app.exception_handler(CoachingError)
    async def coaching_error_handler(request: Request, exc: CoachingError):
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": "Sunucu hatası"})

    app.include_router(public_router)
    app.include_router(auth_router)
    app.include_router(teacher_router)
    app.include_router(assignments_router)
    app.include_router(goals_router)
    app.include_router(teacher_reports_router)
    app.include_router(student_router)
    app.include_router(parent_router)
    app.include_router(admin_router)
    app.include_router(reports_router)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=1024)
    return app
