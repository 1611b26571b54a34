"""Shared dependency injections for FastAPI routes."""

from collections.abc import Iterator
from typing import Annotated

from fastapi import Depends

from unmark.core.config import Settings, get_settings
from unmark.services.job_registry import get_job_service_instance
from unmark.services.job_service import JobService


def get_app_settings() -> Settings:
    """Provide application settings."""

    return get_settings()


SettingsDep = Annotated[Settings, Depends(get_app_settings)]


def get_job_service(settings: SettingsDep) -> Iterator[JobService]:
    """Provide a shared job service instance for request handlers."""

    service = get_job_service_instance(settings=settings)
    yield service


JobServiceDep = Annotated[JobService, Depends(get_job_service)]
