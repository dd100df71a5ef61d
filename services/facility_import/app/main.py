"""Facility Import Service composition root."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from services.facility_import.app.config import Settings, get_settings
from services.facility_import.app.core.models import Base
from services.facility_import.app.services.pipeline import ImportPipeline
from shared.utils.db import close_db, create_schema, init_db
from shared.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(
    settings: Settings | None = None,
    create_tables: bool = False,
) -> AsyncIterator[ImportPipeline]:
    """Set up logging and the database, and yield a ready pipeline.

    The host application enters this once per process and hands the
    pipeline to whatever parses uploads.

    Args:
        settings: Settings to use (defaults to the environment)
        create_tables: Create missing tables, for local runs and tests
    """
    settings = settings or get_settings()

    configure_logging(
        service_name=settings.service_name,
        log_level=settings.log_level,
        json_format=settings.log_json,
        environment=settings.environment,
    )
    logger.info("facility_import_starting", environment=settings.environment)

    session_factory = init_db(
        database_url=settings.database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        echo=settings.debug,
    )
    if create_tables:
        await create_schema(Base.metadata)

    pipeline = ImportPipeline.from_settings(session_factory, settings)
    try:
        yield pipeline
    finally:
        logger.info("facility_import_stopping")
        await pipeline.close()
        await close_db()
