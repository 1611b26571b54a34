"""Application lifecycle hooks."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from unmark.core.config import get_settings
from unmark.services.job_registry import get_job_service_instance

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Log startup and shutdown and warm the shared job store."""

    settings = get_settings()
    job_service = get_job_service_instance(settings=settings)
    pending = len(list(job_service.iter_pending_jobs()))
    logger.info("Starting %s (%s); %d pending job(s).", settings.APP_NAME, settings.ENVIRONMENT, pending)
    yield
    logger.info("Shutting down %s.", settings.APP_NAME)
