from __future__ import annotations

import asyncio

import pytest

from genai_proxy.core.errors import BackendError, BackendErrorKind, ErrorKind, ServiceError
from genai_proxy.models.chat import ChatRequest
from genai_proxy.services.response_generator import ResponseGenerator


class _FakeGenerator:
    def __init__(self, reply: str = "", error: Exception | None = None):
        self.reply = reply
        self.error = error

    async def generate(self, request):
        if self.error is not None:
            raise self.error
        return self.reply


def _respond(backend: _FakeGenerator) -> str:
    request = ChatRequest(systemPrompt="", newUserMessage="Hello")
    return asyncio.run(ResponseGenerator(backend).respond(request))


def test_reply_is_returned_verbatim():
    assert _respond(_FakeGenerator("  Hi!\n")) == "  Hi!\n"


@pytest.mark.parametrize(
    ("kind", "error_kind", "status"),
    [
        (BackendErrorKind.BLOCKED, ErrorKind.CONTENT_BLOCKED, 400),
        (BackendErrorKind.EMPTY, ErrorKind.NO_CONTENT, 500),
        (BackendErrorKind.REGION, ErrorKind.REGION_RESTRICTED, 403),
        (BackendErrorKind.QUOTA, ErrorKind.QUOTA_EXCEEDED, 429),
        (BackendErrorKind.AUTH, ErrorKind.CONFIGURATION, 500),
        (BackendErrorKind.TRANSPORT, ErrorKind.UPSTREAM_UNAVAILABLE, 503),
        (BackendErrorKind.UNKNOWN, ErrorKind.INTERNAL, 500),
    ],
)
def test_backend_errors_map_to_service_errors(kind, error_kind, status):
    with pytest.raises(ServiceError) as excinfo:
        _respond(_FakeGenerator(error=BackendError(kind, "upstream detail")))

    error = excinfo.value
    assert error.kind is error_kind
    assert error.http_status == status
    assert error.retryable is False
    assert error.user_message


def test_content_block_message_names_the_reason():
    with pytest.raises(ServiceError) as excinfo:
        _respond(_FakeGenerator(error=BackendError(BackendErrorKind.BLOCKED, "SAFETY")))

    assert excinfo.value.user_message == (
        "Your request could not be processed due to safety filters: SAFETY. "
        "Please rephrase your input."
    )
    assert excinfo.value.internal_message == "Content blocked: SAFETY"


def test_empty_reply_asks_user_to_retry():
    with pytest.raises(ServiceError) as excinfo:
        _respond(_FakeGenerator(error=BackendError(BackendErrorKind.EMPTY)))

    assert excinfo.value.user_message == (
        "The AI model did not return a response. Please try again."
    )


def test_unexpected_exception_becomes_internal_error():
    with pytest.raises(ServiceError) as excinfo:
        _respond(_FakeGenerator(error=KeyError("candidates")))

    error = excinfo.value
    assert error.kind is ErrorKind.INTERNAL
    assert error.http_status == 500
    assert "candidates" not in error.user_message
    assert "candidates" in error.internal_message
