from __future__ import annotations

import logging
from typing import Protocol

from genai_proxy.core.errors import BackendError, BackendErrorKind, ErrorKind, ServiceError
from genai_proxy.models.chat import ChatRequest

logger = logging.getLogger(__name__)

QUOTA_MESSAGE = (
    "Sorry, this service is currently experiencing heavy traffic or has "
    "reached its usage limit. Please try again later."
)


class GeneratorBackend(Protocol):
    async def generate(self, request: ChatRequest) -> str: ...


def to_service_error(exc: BackendError) -> ServiceError:
    kind = exc.kind
    if kind is BackendErrorKind.BLOCKED:
        return ServiceError(
            ErrorKind.CONTENT_BLOCKED,
            400,
            "Your request could not be processed due to safety filters: "
            f"{exc.detail}. Please rephrase your input.",
            f"Content blocked: {exc.detail}",
        )
    if kind is BackendErrorKind.EMPTY:
        return ServiceError(
            ErrorKind.NO_CONTENT,
            500,
            "The AI model did not return a response. Please try again.",
            exc.detail or "No content generated by AI model.",
        )
    if kind is BackendErrorKind.REGION:
        return ServiceError(
            ErrorKind.REGION_RESTRICTED,
            403,
            "Sorry, this service is not available in your region.",
            exc.detail,
        )
    if kind is BackendErrorKind.QUOTA:
        return ServiceError(ErrorKind.QUOTA_EXCEEDED, 429, QUOTA_MESSAGE, exc.detail)
    if kind is BackendErrorKind.AUTH:
        return ServiceError(
            ErrorKind.CONFIGURATION,
            500,
            "Service configuration error. Please contact support.",
            exc.detail,
        )
    if kind is BackendErrorKind.TRANSPORT:
        return ServiceError(
            ErrorKind.UPSTREAM_UNAVAILABLE,
            503,
            "The AI service is temporarily unavailable. Please try again later.",
            exc.detail,
        )
    return ServiceError.internal(f"Internal error: {exc.detail or exc}")


class ResponseGenerator:
    def __init__(self, backend: GeneratorBackend):
        self._backend = backend

    async def respond(self, request: ChatRequest) -> str:
        try:
            return await self._backend.generate(request)
        except BackendError as exc:
            error = to_service_error(exc)
            logger.error(
                "Response generation failed (%s): %s",
                error.kind.value,
                error.internal_message,
            )
            raise error from exc
        except Exception as exc:
            logger.exception("Unexpected error while generating a response")
            raise ServiceError.internal(f"Internal error: {exc}") from exc
