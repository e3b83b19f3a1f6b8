from __future__ import annotations

import logging

from genai_proxy.models.chat import ChatRequest, ChatResponse
from genai_proxy.services.mitigation import MitigationPolicy, mitigate
from genai_proxy.services.prompts import DEFAULT_BENIGN_REASON
from genai_proxy.services.response_generator import ResponseGenerator
from genai_proxy.services.safety_classifier import SafetyClassifier

logger = logging.getLogger(__name__)

REDACTED_MALICIOUS_REASON = "Input was flagged by the safety screen."


class ChatService:
    def __init__(
        self,
        *,
        classifier: SafetyClassifier,
        generator: ResponseGenerator,
        policy: MitigationPolicy = MitigationPolicy.REDACT,
        expose_reason: bool = True,
    ):
        self._classifier = classifier
        self._generator = generator
        self._policy = policy
        self._expose_reason = expose_reason

    async def process_chat(self, request: ChatRequest) -> ChatResponse:
        """
        Screen, mitigate and answer one chat request:
        1. Classify the new user message against the system prompt
        2. Rewrite the conversation if it was flagged
        3. Generate the assistant reply from the rewritten conversation

        ServiceError from step 3 propagates to the caller.
        """
        verdict = await self._classifier.evaluate(
            request.system_prompt, request.new_user_message
        )

        mitigated = mitigate(request, verdict, self._policy)
        if verdict.is_malicious:
            marker = mitigated.conversation_history[-1].parts[0]
            logger.warning("User input flagged as malicious: %s", marker)

        response_text = await self._generator.respond(mitigated)
        logger.info("Assistant reply generated (%d chars)", len(response_text))

        reason = verdict.reason
        if not self._expose_reason:
            reason = REDACTED_MALICIOUS_REASON if verdict.is_malicious else DEFAULT_BENIGN_REASON

        return ChatResponse(
            is_malicious=verdict.is_malicious,
            reason=reason,
            response=response_text,
        )
