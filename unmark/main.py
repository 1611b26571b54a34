"""FastAPI application entrypoint."""

from fastapi import APIRouter, FastAPI

from unmark.api.routes import health, jobs
from unmark.core.config import settings
from unmark.core.logging import configure_logging
from unmark.events import lifespan


def build_api_router() -> APIRouter:
    router = APIRouter()
    router.include_router(health.router)
    router.include_router(jobs.router)
    return router


def create_application() -> FastAPI:
    """Instantiate and configure the FastAPI application."""

    configure_logging()
    api_root = f"{settings.API_PREFIX}{settings.API_V1_PREFIX}"

    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description=settings.DESCRIPTION,
        docs_url=f"{api_root}/docs",
        redoc_url=f"{api_root}/redoc",
        openapi_url=f"{api_root}/openapi.json",
        lifespan=lifespan,
    )

    app.include_router(build_api_router(), prefix=api_root)

    return app


app = create_application()
