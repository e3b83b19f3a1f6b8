import logging

from fastapi import APIRouter, Depends

from genai_proxy.core.errors import BackendError, ServiceError
from genai_proxy.dependencies import enforce_rate_limit, get_gemini_service
from genai_proxy.models.chat import ModelInfo
from genai_proxy.services.gemini_service import GeminiService
from genai_proxy.services.response_generator import to_service_error

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get(
    "/models",
    response_model=list[ModelInfo],
    dependencies=[Depends(enforce_rate_limit)],
)
async def list_models(
    gemini_service: GeminiService = Depends(get_gemini_service),
) -> list[ModelInfo]:
    logger.info("Request received to list models")
    try:
        return await gemini_service.list_models()
    except BackendError as e:
        raise to_service_error(e) from e
    except Exception as e:
        logger.exception("Models endpoint failed")
        raise ServiceError.internal(f"Models endpoint failed: {e}") from e
