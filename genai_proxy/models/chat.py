from __future__ import annotations

from typing import Any, Literal

from google.genai import types
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

Role = Literal["user", "model", "assistant", "function", "system"]


class ConversationTurn(BaseModel):
    role: Role
    parts: list[str] = Field(min_length=1)

    @field_validator("parts")
    @classmethod
    def _has_text(cls, parts: list[str]) -> list[str]:
        if not any(part for part in parts):
            raise ValueError(
                "Each 'parts' array in conversationHistory must contain "
                "at least one non-empty string."
            )
        return parts


# Sampling and output-format knobs a caller may tune. Safety settings, the
# system instruction and tools stay under server control.
GENERATION_CONFIG_KEYS = frozenset(
    {
        "temperature",
        "top_p",
        "topP",
        "top_k",
        "topK",
        "candidate_count",
        "candidateCount",
        "max_output_tokens",
        "maxOutputTokens",
        "stop_sequences",
        "stopSequences",
        "presence_penalty",
        "presencePenalty",
        "frequency_penalty",
        "frequencyPenalty",
        "seed",
        "response_mime_type",
        "responseMimeType",
        "response_schema",
        "responseSchema",
    }
)


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    system_prompt: str = Field(alias="systemPrompt")
    conversation_history: list[ConversationTurn] | None = Field(
        default=None, alias="conversationHistory"
    )
    new_user_message: str = Field(alias="newUserMessage", min_length=1)
    model_name: str | None = Field(default=None, alias="modelName")
    generation_config: dict[str, Any] | None = Field(
        default=None, alias="generationConfig"
    )

    @field_validator("generation_config")
    @classmethod
    def _only_generation_keys(
        cls, config: dict[str, Any] | None
    ) -> dict[str, Any] | None:
        if config is None:
            return None
        unsupported = sorted(set(config) - GENERATION_CONFIG_KEYS)
        if unsupported:
            raise ValueError(
                "Unsupported generationConfig keys: " + ", ".join(unsupported)
            )
        try:
            types.GenerateContentConfig.model_validate(config)
        except ValidationError as e:
            raise ValueError(f"Invalid generationConfig: {e.errors()[0]['msg']}") from e
        return config


class ChatResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_malicious: bool = Field(alias="isMalicious")
    reason: str
    response: str


class ModelInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    provider: str = "google"
    display_name: str = Field(default="", alias="displayName")
    description: str = ""


class ErrorDetail(BaseModel):
    path: str
    message: str


class ErrorResponse(BaseModel):
    error: str
    details: list[ErrorDetail] | None = None
