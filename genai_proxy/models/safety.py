from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class SafetyVerdict:
    is_malicious: bool
    reason: str


@dataclass(frozen=True)
class ClassifierOutput:
    """Raw classifier payload plus the metadata needed to interpret it."""

    text: str = ""
    block_reason: str | None = None
    finish_reason: str | None = None
    # (category, probability) pairs reported for the first candidate.
    safety_ratings: list[tuple[str, str]] = field(default_factory=list)
    has_candidates: bool = True
