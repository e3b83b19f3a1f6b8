from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

import httpx
from google import genai
from google.genai import errors, types
from langchain_core.prompts import PromptTemplate

from genai_proxy.core.errors import BackendError, BackendErrorKind
from genai_proxy.core.settings import Settings, get_settings
from genai_proxy.models.chat import ChatRequest, ConversationTurn, ModelInfo
from genai_proxy.models.safety import ClassifierOutput
from genai_proxy.services.prompts import build_system_instruction

logger = logging.getLogger(__name__)

# Provider wording -> failure kind. Matched case-insensitively against the
# exception text; the first hit wins. Keep every provider-specific string
# here so a wording change is a one-line fix.
ERROR_SIGNATURES: tuple[tuple[str, BackendErrorKind], ...] = (
    ("user location is not supported", BackendErrorKind.REGION),
    ("quota exceeded", BackendErrorKind.QUOTA),
    ("resource_exhausted", BackendErrorKind.QUOTA),
    ("api key not valid", BackendErrorKind.AUTH),
    ("api key invalid", BackendErrorKind.AUTH),
)

_HARM_CATEGORIES = (
    types.HarmCategory.HARM_CATEGORY_HARASSMENT,
    types.HarmCategory.HARM_CATEGORY_HATE_SPEECH,
    types.HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT,
    types.HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT,
)

_CLASSIFIER_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "is_malicious": types.Schema(
            type=types.Type.BOOLEAN,
            description=(
                "True if the user input is considered malicious "
                "(e.g., prompt injection), false otherwise."
            ),
        ),
        "reason": types.Schema(
            type=types.Type.STRING,
            description="A brief explanation for the classification.",
        ),
    },
    required=["is_malicious", "reason"],
)

_BLOCKING_FINISH_REASONS = {"SAFETY", "PROHIBITED_CONTENT", "BLOCKLIST", "SPII"}


def translate_backend_error(exc: BaseException) -> BackendError:
    """Map any exception raised while talking to Gemini onto a BackendError."""
    if isinstance(exc, BackendError):
        return exc

    texts = [str(exc)]
    if isinstance(exc, errors.APIError):
        texts.extend(str(v) for v in (exc.status, exc.message) if v)
    haystack = " ".join(texts).lower()

    for needle, kind in ERROR_SIGNATURES:
        if needle in haystack:
            return BackendError(kind, str(exc))

    if isinstance(exc, (errors.APIError, httpx.TransportError, asyncio.TimeoutError)):
        return BackendError(BackendErrorKind.TRANSPORT, f"Gemini API error: {exc}")
    return BackendError(BackendErrorKind.UNKNOWN, f"{type(exc).__name__}: {exc}")


def _enum_text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def _candidate_text(candidate: Any) -> str:
    content = getattr(candidate, "content", None)
    parts = getattr(content, "parts", None) or []
    return "".join(part.text for part in parts if getattr(part, "text", None))


def _to_content(turn: ConversationTurn) -> types.Content:
    if turn.role in {"model", "assistant"}:
        role = "model"
    elif turn.role == "function":
        role = "function"
    else:
        # Gemini only knows user/model/function turns.
        role = "user"
    return types.Content(
        role=role,
        parts=[types.Part.from_text(text=part) for part in turn.parts if part],
    )


class GeminiService:
    def __init__(self, settings: Settings | None = None, client: Any | None = None):
        self._settings = settings or get_settings()

        if client is None:
            client = genai.Client(api_key=self._settings.require_gemini_api_key())
        self._client = client
        self.default_model = self._settings.gemini_default_model
        self.evaluation_model = self._settings.gemini_evaluation_model

    def _safety_settings(
        self, threshold: types.HarmBlockThreshold
    ) -> list[types.SafetySetting]:
        return [
            types.SafetySetting(category=category, threshold=threshold)
            for category in _HARM_CATEGORIES
        ]

    async def classify(
        self,
        system_context: str,
        user_text: str,
        instruction_template: PromptTemplate,
    ) -> ClassifierOutput:
        """Run one structured classification call.

        Content blocks and unusual finish reasons come back as data on the
        returned ``ClassifierOutput``; only transport-level failures raise.
        """
        prompt = instruction_template.format(
            user_input=user_text, system_prompt=system_context
        )
        config = types.GenerateContentConfig(
            safety_settings=self._safety_settings(
                types.HarmBlockThreshold.BLOCK_LOW_AND_ABOVE
            ),
            response_mime_type="application/json",
            response_schema=_CLASSIFIER_SCHEMA,
            temperature=0.1,
            max_output_tokens=200,
        )
        try:
            response = await self._client.aio.models.generate_content(
                model=self.evaluation_model,
                contents=prompt,
                config=config,
            )
        except Exception as exc:
            raise translate_backend_error(exc) from exc

        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _enum_text(getattr(feedback, "block_reason", None))
        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            return ClassifierOutput(block_reason=block_reason, has_candidates=False)

        candidate = candidates[0]
        ratings = [
            (_enum_text(r.category) or "UNKNOWN", _enum_text(r.probability) or "UNKNOWN")
            for r in (getattr(candidate, "safety_ratings", None) or [])
        ]
        return ClassifierOutput(
            text=_candidate_text(candidate),
            block_reason=block_reason,
            finish_reason=_enum_text(getattr(candidate, "finish_reason", None)),
            safety_ratings=ratings,
        )

    async def generate(self, request: ChatRequest) -> str:
        """Send the (already screened) conversation to the downstream model."""
        contents = [_to_content(turn) for turn in request.conversation_history or []]
        contents.append(
            types.Content(
                role="user",
                parts=[types.Part.from_text(text=request.new_user_message)],
            )
        )
        model = request.model_name or self.default_model

        try:
            config = types.GenerateContentConfig(
                **{
                    **(request.generation_config or {}),
                    "safety_settings": self._safety_settings(
                        types.HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE
                    ),
                    "system_instruction": build_system_instruction(
                        request.system_prompt
                    ),
                }
            )
            response = await self._client.aio.models.generate_content(
                model=model,
                contents=contents,
                config=config,
            )
        except Exception as exc:
            raise translate_backend_error(exc) from exc

        feedback = getattr(response, "prompt_feedback", None)
        block_reason = _enum_text(getattr(feedback, "block_reason", None))
        if block_reason:
            raise BackendError(BackendErrorKind.BLOCKED, block_reason)

        candidates = getattr(response, "candidates", None) or []
        if not candidates:
            raise BackendError(
                BackendErrorKind.EMPTY, "No content generated by AI model."
            )

        candidate = candidates[0]
        finish_reason = _enum_text(getattr(candidate, "finish_reason", None))
        text = _candidate_text(candidate)
        if not text:
            if finish_reason in _BLOCKING_FINISH_REASONS:
                raise BackendError(BackendErrorKind.BLOCKED, finish_reason)
            raise BackendError(
                BackendErrorKind.EMPTY, "No content generated by AI model."
            )
        return text

    async def list_models(self) -> list[ModelInfo]:
        try:
            pager = await self._client.aio.models.list()
            models: list[ModelInfo] = []
            async for model in pager:
                name = getattr(model, "name", "") or ""
                models.append(
                    ModelInfo(
                        id=name.removeprefix("models/"),
                        display_name=getattr(model, "display_name", None) or "",
                        description=getattr(model, "description", None) or "",
                    )
                )
        except Exception as exc:
            raise translate_backend_error(exc) from exc
        return models
