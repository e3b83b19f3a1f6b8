from __future__ import annotations

import json
import logging
import re
from typing import Any, Protocol

from langchain_core.prompts import PromptTemplate

from genai_proxy.core.errors import BackendError, BackendErrorKind
from genai_proxy.models.safety import ClassifierOutput, SafetyVerdict
from genai_proxy.services.prompts import (
    DEFAULT_BENIGN_REASON,
    DEFAULT_MALICIOUS_REASON,
    PROMPT_INJECTION_DETECTION_PROMPT,
)

logger = logging.getLogger(__name__)

NO_RESPONSE_REASON = "Evaluation failed: No response generated by the model."
EMPTY_RESPONSE_REASON = "Evaluation failed: Model returned an empty response part."
UNPARSABLE_REASON = "Evaluation failed: Could not parse model's JSON response."
SCHEMA_MISMATCH_REASON = (
    "Evaluation failed: Model response did not match expected schema "
    "structure (missing/invalid fields)."
)
SERVICE_ERROR_REASON = "Prompt evaluation service error."

BACKEND_ERROR_REASONS: dict[BackendErrorKind, str] = {
    BackendErrorKind.REGION: "Sorry, this service is not available in your region.",
    BackendErrorKind.QUOTA: (
        "Sorry, this service is currently experiencing heavy traffic or has "
        "reached its usage limit. Please try again later."
    ),
    BackendErrorKind.AUTH: "Service configuration error. Please contact support.",
}

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```\s*$", re.IGNORECASE)


class ClassifierBackend(Protocol):
    async def classify(
        self,
        system_context: str,
        user_text: str,
        instruction_template: PromptTemplate,
    ) -> ClassifierOutput: ...


def _loads(raw_text: str) -> Any:
    try:
        return json.loads(raw_text)
    except json.JSONDecodeError:
        return json.loads(_CODE_FENCE.sub("", raw_text.strip()).strip())


class SafetyClassifier:
    """Asks the evaluation model whether a user message is a prompt injection.

    The classifier is advisory: every failure degrades to a non-malicious
    verdict whose reason explains why screening was skipped.
    """

    def __init__(
        self,
        backend: ClassifierBackend,
        instruction_template: PromptTemplate = PROMPT_INJECTION_DETECTION_PROMPT,
    ):
        self._backend = backend
        self._template = instruction_template

    async def evaluate(self, system_prompt: str, user_message: str) -> SafetyVerdict:
        logger.debug("Evaluating prompt safety")
        try:
            output = await self._backend.classify(
                system_prompt, user_message, self._template
            )
        except BackendError as exc:
            logger.error("Prompt safety evaluation failed (%s): %s", exc.kind.value, exc)
            return SafetyVerdict(
                False, BACKEND_ERROR_REASONS.get(exc.kind, SERVICE_ERROR_REASON)
            )
        except Exception:
            logger.exception("Unexpected error during prompt safety evaluation")
            return SafetyVerdict(False, SERVICE_ERROR_REASON)

        return self.interpret(output)

    @staticmethod
    def interpret(output: ClassifierOutput) -> SafetyVerdict:
        if output.block_reason:
            logger.warning(
                "Prompt was blocked by safety filters during evaluation: %s",
                output.block_reason,
            )
            return SafetyVerdict(
                False,
                f"Evaluation failed: Input prompt blocked due to {output.block_reason}.",
            )

        if not output.has_candidates:
            logger.warning("No candidates returned from evaluation model.")
            return SafetyVerdict(False, NO_RESPONSE_REASON)

        if output.finish_reason and output.finish_reason not in {"STOP", "MAX_TOKENS"}:
            reason = (
                f"Evaluation model stopped generation due to {output.finish_reason}."
            )
            if output.finish_reason == "SAFETY":
                ratings = ", ".join(
                    f"{category}: {probability}"
                    for category, probability in output.safety_ratings
                )
                reason += f" Safety ratings: [{ratings or 'N/A'}]"
            logger.warning(reason)
            return SafetyVerdict(False, reason)

        if not output.text:
            logger.warning("No text part found in the evaluation response.")
            return SafetyVerdict(False, EMPTY_RESPONSE_REASON)

        try:
            evaluation = _loads(output.text)
        except json.JSONDecodeError:
            logger.error(
                "Failed to parse JSON from prompt evaluation response: %r",
                output.text,
            )
            return SafetyVerdict(False, UNPARSABLE_REASON)

        if (
            not isinstance(evaluation, dict)
            or not isinstance(evaluation.get("is_malicious"), bool)
            or not isinstance(evaluation.get("reason"), str)
        ):
            logger.error(
                "Parsed evaluation JSON is missing required fields or has "
                "incorrect types: %r",
                evaluation,
            )
            return SafetyVerdict(False, SCHEMA_MISMATCH_REASON)

        is_malicious = evaluation["is_malicious"]
        reason = evaluation["reason"] or (
            DEFAULT_MALICIOUS_REASON if is_malicious else DEFAULT_BENIGN_REASON
        )
        return SafetyVerdict(is_malicious, reason)
