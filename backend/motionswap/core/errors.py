"""
Structured Errors - error envelope and domain exceptions
"""

import json
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from motionswap.config.constants import PROVIDER_MODEL, PROVIDER_NAME


# Older rows stored provider failures as a prefixed JSON string in error_message
PROVIDER_ERROR_PREFIX = "WF_PROVIDER_ERROR::"


class ErrorKind(str, Enum):
    """Error taxonomy"""

    VALIDATION_ERROR = "validation_error"
    AUTH_ERROR = "auth_error"
    PROVIDER_ERROR = "provider_error"
    INFRASTRUCTURE_ERROR = "infrastructure_error"
    CANCELLED = "cancelled"


class ErrorEnvelope(BaseModel):
    """
    Machine-readable failure stored on a failed generation

    ``summary`` is short and safe to show to the user. ``details`` keeps the
    raw provider payload for support and is not shown by default. ``causes``
    is ordered from the outermost error to the root cause.
    """

    kind: ErrorKind
    code: str
    summary: str
    provider: Optional[str] = None
    model: Optional[str] = None
    details: Optional[str] = None
    causes: List[str] = Field(default_factory=list)
    attempts: Optional[int] = None

    def to_public_dict(self) -> Dict[str, Any]:
        """Shape returned by the list endpoint"""
        data = self.model_dump(mode="json", exclude_none=True)
        data["message"] = self.summary
        return data

    @classmethod
    def from_error_message(cls, raw_message: str) -> "ErrorEnvelope":
        """
        Build an envelope for a row that only carries a plain error_message

        Args:
            raw_message: Stored error message, optionally prefixed with
                PROVIDER_ERROR_PREFIX followed by a JSON payload

        Returns:
            ErrorEnvelope
        """
        marker_index = raw_message.find(PROVIDER_ERROR_PREFIX)
        if marker_index == -1:
            return cls(
                kind=ErrorKind.INFRASTRUCTURE_ERROR,
                code="WORKFLOW_ERROR",
                summary=raw_message,
            )

        payload_text = raw_message[marker_index + len(PROVIDER_ERROR_PREFIX):].strip()
        try:
            payload = json.loads(payload_text)
        except ValueError:
            return cls(
                kind=ErrorKind.PROVIDER_ERROR,
                code="PROVIDER_ERROR_PARSE_FAILED",
                summary=payload_text or "Failed to parse provider error payload.",
            )

        if not isinstance(payload, dict):
            payload = {}

        summary = (
            payload.get("summary")
            or payload.get("details")
            or payload.get("message")
            or "Provider video generation failed."
        )
        return cls(
            kind=ErrorKind.PROVIDER_ERROR,
            code=payload.get("code") or "PROVIDER_ERROR",
            summary=summary,
            provider=payload.get("provider"),
            model=payload.get("model"),
            details=payload.get("details"),
        )

    @classmethod
    def job_timeout(cls, details: Optional[str] = None) -> "ErrorEnvelope":
        """Envelope for a run that exceeded its execution budget"""
        return cls(
            kind=ErrorKind.INFRASTRUCTURE_ERROR,
            code="JOB_TIMEOUT",
            summary="Generation took too long and was stopped. Please try again.",
            details=details,
        )


class MotionSwapError(Exception):
    """Base class for domain errors that map onto an envelope"""

    kind = ErrorKind.INFRASTRUCTURE_ERROR
    default_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[str] = None,
        causes: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = details
        self.causes = list(causes or [])

    def to_envelope(self, attempts: Optional[int] = None) -> ErrorEnvelope:
        return ErrorEnvelope(
            kind=self.kind,
            code=self.code,
            summary=self.message,
            details=self.details,
            causes=[self.message] + self.causes,
            attempts=attempts,
        )


class SubmissionValidationError(MotionSwapError):
    """Missing or malformed submission input"""

    kind = ErrorKind.VALIDATION_ERROR
    default_code = "VALIDATION_ERROR"


class AuthError(MotionSwapError):
    """Caller is not authenticated or does not own the generation"""

    kind = ErrorKind.AUTH_ERROR
    default_code = "UNAUTHORIZED"


class InfrastructureError(MotionSwapError):
    """Storage or database failure"""

    kind = ErrorKind.INFRASTRUCTURE_ERROR
    default_code = "INFRASTRUCTURE_ERROR"


class GenerationCancelled(MotionSwapError):
    """The owner deleted the generation while it was running"""

    kind = ErrorKind.CANCELLED
    default_code = "CANCELLED"


class ProviderError(MotionSwapError):
    """
    Failure reported by (or while talking to) the video generation provider

    ``status_code`` is the HTTP status of the failing gateway response when
    there was one. ``details`` holds the raw provider payload.
    ``resubmittable`` is False for failures while polling or downloading a
    task that already exists at the provider; submitting again would start
    a second billable task.
    """

    kind = ErrorKind.PROVIDER_ERROR
    default_code = "PROVIDER_ERROR"

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None,
        details: Optional[str] = None,
        causes: Optional[List[str]] = None,
        provider: str = PROVIDER_NAME,
        model: str = PROVIDER_MODEL,
        resubmittable: bool = True,
    ):
        super().__init__(message, code=code, details=details, causes=causes)
        self.status_code = status_code
        self.resubmittable = resubmittable
        self.provider = provider
        self.model = model

    def to_envelope(self, attempts: Optional[int] = None) -> ErrorEnvelope:
        envelope = super().to_envelope(attempts=attempts)
        envelope.provider = self.provider
        envelope.model = self.model
        return envelope
