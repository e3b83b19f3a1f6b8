"""Rewrites a chat request once the safety screen has flagged it.

``mitigate`` is pure: it never touches the caller's request or history list
and returns a new ``ChatRequest`` when a rewrite is needed.
"""

from __future__ import annotations

from enum import Enum

from genai_proxy.models.chat import ChatRequest, ConversationTurn
from genai_proxy.models.safety import SafetyVerdict
from genai_proxy.services.prompts import (
    DEFAULT_MALICIOUS_REASON,
    FALLBACK_USER_MESSAGE,
    FLAGGED_MARKER,
    FLAGGED_MARKER_WITH_CONTEXT,
)


class MitigationPolicy(str, Enum):
    # The flagged text never reaches the assistant.
    REDACT = "redact"
    # The flagged text is quoted inside the marker turn, for context only.
    CONTEXT = "context"


def build_marker(
    reason: str,
    original_message: str | None = None,
    policy: MitigationPolicy = MitigationPolicy.REDACT,
) -> str:
    reason = reason.strip() or DEFAULT_MALICIOUS_REASON
    if policy is MitigationPolicy.CONTEXT and original_message is not None:
        return FLAGGED_MARKER_WITH_CONTEXT.format(
            reason=reason, original=original_message
        )
    return FLAGGED_MARKER.format(reason=reason)


def mitigate(
    request: ChatRequest,
    verdict: SafetyVerdict,
    policy: MitigationPolicy = MitigationPolicy.REDACT,
) -> ChatRequest:
    if not verdict.is_malicious:
        return request

    marker = build_marker(verdict.reason, request.new_user_message, policy)
    history = [
        *(turn.model_copy(deep=True) for turn in request.conversation_history or []),
        ConversationTurn(role="model", parts=[marker]),
    ]
    return request.model_copy(
        update={
            "conversation_history": history,
            "new_user_message": FALLBACK_USER_MESSAGE,
        },
        deep=True,
    )
