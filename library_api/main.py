import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool
from .config import Settings, settings as default_settings
from .database import Database
from .errors import register_exception_handlers
from .services import CatalogService, LendingService
from .health_router import health_router
from .author_router import author_router
from .book_router import book_router
from .borrower_router import borrower_router
from .borrow_router import borrow_router

logger = logging.getLogger(__name__)


def configure_logging(level):
    level = level.upper() if isinstance(level, str) else level
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # basicConfig is a no-op once the root logger has handlers
    logging.getLogger().setLevel(level)


def create_app(settings: Settings = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.log_level)

    database = Database(
        settings.database_url,
        retry_delay=settings.connect_retry_delay,
        max_attempts=settings.connect_max_attempts,
        timeout=settings.request_timeout,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # no traffic is served until the store answers
        await run_in_threadpool(database.connect)
        if settings.create_tables:
            await run_in_threadpool(database.create_all)
        try:
            yield
        finally:
            database.dispose()
            logger.info("Database connection closed")

    app = FastAPI(title="Library Management System API", lifespan=lifespan)
    app.state.settings = settings
    app.state.database = database
    service_options = dict(timeout=settings.request_timeout, conflict_retries=settings.conflict_retries)
    app.state.catalog = CatalogService(**service_options)
    app.state.lending = LendingService(**service_options)

    register_exception_handlers(app)
    app.include_router(health_router)
    app.include_router(author_router)
    app.include_router(book_router)
    app.include_router(borrower_router)
    app.include_router(borrow_router)
    return app


app = create_app()
