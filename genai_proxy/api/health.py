from fastapi import APIRouter

from genai_proxy.core.settings import get_settings

router = APIRouter()


@router.get("/")
def root_health_check() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "running",
        "service": settings.app_name,
        "environment": settings.environment,
    }


@router.get("/health")
def health_check() -> dict[str, str]:
    return {"status": "ok"}
