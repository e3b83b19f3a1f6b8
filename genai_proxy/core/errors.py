"""Error taxonomy shared by the backend adapter, the pipeline and the HTTP layer.

Two families live here:

* ``BackendError`` is raised by the Gemini adapter. It carries a
  ``BackendErrorKind`` tag so callers can switch on the failure instead of
  inspecting provider error text.
* ``ServiceError`` is what the pipeline surfaces to the HTTP layer. Its
  ``user_message`` is safe to relay to the caller; ``internal_message`` is
  for logs only.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONFIGURATION = "ConfigurationError"
    CONTENT_BLOCKED = "ContentBlocked"
    NO_CONTENT = "NoContent"
    REGION_RESTRICTED = "RegionRestricted"
    QUOTA_EXCEEDED = "QuotaExceeded"
    UPSTREAM_UNAVAILABLE = "UpstreamUnavailable"
    INTERNAL = "InternalError"


class BackendErrorKind(str, Enum):
    BLOCKED = "blocked"
    EMPTY = "empty"
    TRANSPORT = "transport"
    AUTH = "auth"
    QUOTA = "quota"
    REGION = "region"
    UNKNOWN = "unknown"


class BackendError(Exception):
    def __init__(self, kind: BackendErrorKind, detail: str = ""):
        super().__init__(detail or kind.value)
        self.kind = kind
        self.detail = detail


class ServiceError(Exception):
    def __init__(
        self,
        kind: ErrorKind,
        http_status: int,
        user_message: str,
        internal_message: str | None = None,
    ):
        super().__init__(internal_message or user_message)
        self.kind = kind
        self.http_status = http_status
        self.user_message = user_message
        self.internal_message = internal_message or user_message
        # Nothing in the pipeline is retried.
        self.retryable = False

    @classmethod
    def internal(cls, internal_message: str) -> "ServiceError":
        return cls(
            ErrorKind.INTERNAL,
            500,
            "An unexpected error occurred while processing your request.",
            internal_message,
        )

    def __repr__(self) -> str:
        return (
            f"ServiceError(kind={self.kind.value!r}, "
            f"http_status={self.http_status}, "
            f"user_message={self.user_message!r})"
        )


class ConfigurationError(RuntimeError):
    """Raised at startup when required configuration is missing."""
