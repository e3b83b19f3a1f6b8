from __future__ import annotations

from functools import lru_cache

from fastapi import Depends, Request

from genai_proxy.core.rate_limit import RateLimiter
from genai_proxy.core.settings import get_settings
from genai_proxy.services.chat_service import ChatService
from genai_proxy.services.gemini_service import GeminiService
from genai_proxy.services.mitigation import MitigationPolicy
from genai_proxy.services.response_generator import ResponseGenerator
from genai_proxy.services.safety_classifier import SafetyClassifier


@lru_cache
def get_gemini_service() -> GeminiService:
    return GeminiService(settings=get_settings())


@lru_cache
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    return RateLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )


def get_chat_service(
    gemini_service: GeminiService = Depends(get_gemini_service),
) -> ChatService:
    settings = get_settings()
    return ChatService(
        classifier=SafetyClassifier(gemini_service),
        generator=ResponseGenerator(gemini_service),
        policy=MitigationPolicy(settings.mitigation_policy),
        expose_reason=settings.expose_classifier_reason,
    )


def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    client_ip = request.client.host if request.client else "unknown"
    limiter.hit(client_ip)
