import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from genai_proxy.api import chat, health, models
from genai_proxy.core.errors import ServiceError
from genai_proxy.core.logging import configure_logging
from genai_proxy.core.rate_limit import RateLimitExceeded
from genai_proxy.core.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # A missing API key must stop the process before it serves traffic.
    get_settings().require_gemini_api_key()
    logger.info("%s is ready", app.title)
    yield


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    logger.warning(
        "%s %s failed with %s (%d): %s",
        request.method,
        request.url.path,
        exc.kind.value,
        exc.http_status,
        exc.internal_message,
    )
    return JSONResponse(status_code=exc.http_status, content={"error": exc.user_message})


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ())]
        if loc and loc[0] == "body":
            loc = loc[1:]
        details.append({"path": ".".join(loc), "message": error.get("msg", "")})
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": details},
    )


async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    client_ip = request.client.host if request.client else "unknown"
    logger.info("Rate limit exceeded for %s", client_ip)
    return JSONResponse(
        status_code=429,
        content={"error": str(exc)},
        headers={"Retry-After": str(exc.retry_after_seconds)},
    )


def create_app() -> FastAPI:
    settings = get_settings()
    configure_logging(settings)

    app = FastAPI(title=settings.app_name, lifespan=lifespan)

    if settings.allowed_origin:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[settings.allowed_origin],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)

    app.include_router(chat.router, prefix="/api/v1")
    app.include_router(models.router, prefix="/api/v1")

    app.include_router(health.router)

    return app


app = create_app()
