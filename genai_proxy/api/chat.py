import asyncio
import logging
from typing import Awaitable, TypeVar

from fastapi import APIRouter, Depends, Request, Response

from genai_proxy.core.errors import ServiceError
from genai_proxy.dependencies import enforce_rate_limit, get_chat_service
from genai_proxy.models.chat import ChatRequest, ChatResponse, ErrorResponse
from genai_proxy.services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter()

T = TypeVar("T")

# Non-standard status used by proxies for "client closed request".
CLIENT_CLOSED_REQUEST = 499


class ClientDisconnected(Exception):
    pass


async def run_until_disconnected(
    request: Request,
    work: Awaitable[T],
    poll_interval: float = 0.5,
) -> T:
    """Await ``work`` but cancel it as soon as the client goes away."""
    task = asyncio.ensure_future(work)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await request.is_disconnected():
                raise ClientDisconnected()
    finally:
        if not task.done():
            task.cancel()


@router.post(
    "/chat",
    response_model=ChatResponse,
    responses={400: {"model": ErrorResponse}, 429: {"model": ErrorResponse}},
    dependencies=[Depends(enforce_rate_limit)],
)
async def chat_endpoint(
    request: ChatRequest,
    http_request: Request,
    chat_service: ChatService = Depends(get_chat_service),
):
    logger.info(
        "Chat request received (model=%s, history=%d)",
        request.model_name or "default",
        len(request.conversation_history or []),
    )
    try:
        return await run_until_disconnected(
            http_request, chat_service.process_chat(request)
        )
    except ClientDisconnected:
        logger.info("Client disconnected, chat pipeline cancelled")
        return Response(status_code=CLIENT_CLOSED_REQUEST)
    except ServiceError:
        raise
    except Exception as e:
        logger.exception("Chat endpoint failed")
        raise ServiceError.internal(f"Chat endpoint failed: {e}") from e
