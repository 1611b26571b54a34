"""Health and readiness routes."""

import shutil

from fastapi import APIRouter, Response, status

from unmark.dependencies import SettingsDep

router = APIRouter(tags=["health"])


@router.get("/health", summary="Health probe")
async def health_check(settings: SettingsDep) -> dict[str, str]:
    """Return a basic heartbeat payload."""

    return {"status": "ok", "service": settings.APP_NAME}


@router.get("/readiness", summary="Readiness probe")
async def readiness_check(settings: SettingsDep, response: Response) -> dict[str, object]:
    """Report whether the encoder binary and the external services are configured."""

    checks = {
        "ffmpeg": shutil.which(settings.FFMPEG_BINARY) is not None,
        "detection_service": bool(settings.DETECTION_SERVICE_URL),
        "inpaint_service": settings.INPAINT_BACKEND == "cv2" or bool(settings.INPAINT_SERVICE_URL),
    }
    ready = all(checks.values())
    if not ready:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return {"status": "ready" if ready else "not_ready", "checks": checks}
