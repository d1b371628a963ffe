"""
Error Classifier - Classify errors as retryable or non-retryable and build
the structured error envelope
"""

from typing import Any, Dict, Iterator, List, Optional
import httpx

from motionswap.config.constants import PROVIDER_MODEL, PROVIDER_NAME
from motionswap.core.errors import (
    ErrorEnvelope,
    ErrorKind,
    GenerationCancelled,
    MotionSwapError,
    ProviderError,
)


class ErrorClassifier:
    """
    Classify errors for retry logic and user-facing messages

    Retrying a generation is billable, so only transport resets, gateway
    failures and plain 500s are retried. Everything else, including
    ambiguous 4xx rejections and timeouts, fails fast.
    """

    # Error codes
    ERROR_GATEWAY_INTERNAL = "GATEWAY_INTERNAL_SERVER_ERROR"
    ERROR_PROVIDER = "PROVIDER_ERROR"
    ERROR_PROVIDER_TIMEOUT = "PROVIDER_TIMEOUT"
    ERROR_PROVIDER_REJECTED = "PROVIDER_REJECTED"
    ERROR_STORAGE = "STORAGE_ERROR"
    ERROR_UNKNOWN = "UNKNOWN_ERROR"

    RETRYABLE_STATUS_CODES = {500}
    GATEWAY_STATUS_CODES = {502, 504}

    TRANSPORT_RESET_MARKERS = [
        "econnreset",
        "connection reset",
        "other side closed",
        "socket hang up",
        "connection closed by peer",
        "server disconnected",
        "und_err_socket",
    ]
    GATEWAY_FAILURE_MARKERS = [
        "gatewayinternalservererror",
        "gateway internal server error",
        "bad gateway",
        "gateway timeout",
    ]

    def iter_error_chain(self, error: BaseException) -> Iterator[Any]:
        """
        Walk an error and everything it wraps, outermost first

        Yields exception objects from ``__cause__``/``__context__`` and the
        plain strings stored in a ProviderError's explicit ``causes`` list.
        """
        seen = set()
        current: Optional[BaseException] = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            for cause in getattr(current, "causes", None) or []:
                yield cause
            current = current.__cause__ or current.__context__

    def is_retryable(self, error: BaseException) -> bool:
        """
        Determine if a provider error is worth another attempt

        Args:
            error: Exception raised by the provider call

        Returns:
            True for transport resets, gateway failures and status 500
        """
        if isinstance(error, GenerationCancelled):
            return False
        if isinstance(error, ProviderError) and not error.resubmittable:
            return False

        for item in self.iter_error_chain(error):
            if isinstance(item, (httpx.RemoteProtocolError, httpx.ReadError, httpx.WriteError)):
                return True

            status_code = getattr(item, "status_code", None)
            if status_code is None and isinstance(item, httpx.HTTPStatusError):
                status_code = item.response.status_code
            if status_code in self.RETRYABLE_STATUS_CODES or status_code in self.GATEWAY_STATUS_CODES:
                return True

            message = str(item).lower()
            if any(marker in message for marker in self.TRANSPORT_RESET_MARKERS):
                return True
            if any(marker in message for marker in self.GATEWAY_FAILURE_MARKERS):
                return True

        return False

    def build_envelope(
        self,
        error: BaseException,
        attempts: Optional[int] = None,
    ) -> ErrorEnvelope:
        """
        Convert any exception raised inside the runner into an envelope

        Args:
            error: Exception to convert
            attempts: Provider attempts made, when known

        Returns:
            ErrorEnvelope
        """
        causes = self._describe_chain(error)
        details = getattr(error, "details", None) or "\n".join(causes)

        if isinstance(error, ProviderError):
            code = error.code
            summary = error.message
            if code == self.ERROR_PROVIDER:
                if self._mentions_gateway_failure(error):
                    code = self.ERROR_GATEWAY_INTERNAL
                    summary = "AI Gateway/provider returned an internal server error."
            return ErrorEnvelope(
                kind=ErrorKind.PROVIDER_ERROR,
                code=code,
                summary=summary,
                provider=error.provider,
                model=error.model,
                details=details,
                causes=causes,
                attempts=attempts,
            )

        if isinstance(error, MotionSwapError):
            envelope = error.to_envelope(attempts=attempts)
            envelope.causes = causes
            envelope.details = details
            if envelope.kind == ErrorKind.INFRASTRUCTURE_ERROR:
                envelope.summary = "Something went wrong while saving your video. Please try again."
            return envelope

        if isinstance(error, (httpx.HTTPError, ConnectionError)):
            code = self.ERROR_GATEWAY_INTERNAL if self.is_retryable(error) else self.ERROR_PROVIDER
            return ErrorEnvelope(
                kind=ErrorKind.PROVIDER_ERROR,
                code=code,
                summary="Provider request failed.",
                provider=PROVIDER_NAME,
                model=PROVIDER_MODEL,
                details=details,
                causes=causes,
                attempts=attempts,
            )

        if isinstance(error, OSError):
            return ErrorEnvelope(
                kind=ErrorKind.INFRASTRUCTURE_ERROR,
                code=self.ERROR_STORAGE,
                summary="Something went wrong while saving your video. Please try again.",
                details=details,
                causes=causes,
                attempts=attempts,
            )

        # Default - unknown error, treated as infrastructure
        return ErrorEnvelope(
            kind=ErrorKind.INFRASTRUCTURE_ERROR,
            code=self.ERROR_UNKNOWN,
            summary="Something went wrong. Please try again.",
            details=details,
            causes=causes,
            attempts=attempts,
        )

    def classify(self, error: BaseException) -> Dict[str, Any]:
        """
        Classify error for logging

        Returns:
            Dict with kind, code, retryable
        """
        envelope = self.build_envelope(error)
        return {
            "kind": envelope.kind.value,
            "code": envelope.code,
            "retryable": self.is_retryable(error),
        }

    def _mentions_gateway_failure(self, error: BaseException) -> bool:
        for item in self.iter_error_chain(error):
            message = str(item).lower()
            if any(marker in message for marker in self.GATEWAY_FAILURE_MARKERS):
                return True
        details = (getattr(error, "details", None) or "").lower()
        return any(marker in details for marker in self.GATEWAY_FAILURE_MARKERS)

    def _describe_chain(self, error: BaseException) -> List[str]:
        described = []
        for item in self.iter_error_chain(error):
            if isinstance(item, BaseException):
                text = f"{type(item).__name__}: {item}"
            else:
                text = str(item)
            if text not in described:
                described.append(text)
        return described


def friendly_message(
    error_message: Optional[str],
    envelope: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Map a stored failure onto short, actionable copy for the user

    Args:
        error_message: Plain error message column
        envelope: Structured error (dict form), if any

    Returns:
        User-facing message
    """
    envelope = envelope or {}
    if envelope.get("kind") == ErrorKind.CANCELLED.value:
        return "Cancelled by user"

    message = envelope.get("summary") or envelope.get("message") or error_message
    if not message:
        return "Something went wrong. Please try again."

    lowered = message.lower()

    # The provider needs at least 2 seconds of continuous motion
    if "motion" in lowered or "continuous" in lowered:
        return (
            "Video needs at least 2 seconds of continuous movement. Try recording "
            "for 3+ seconds while moving your head or body steadily."
        )

    if "duration" in lowered or "short" in lowered or "2 second" in lowered:
        return "Video too short. Record for at least 3 seconds with continuous movement."

    if "face" in lowered or "detect" in lowered:
        return "Make sure your face is clearly visible and well-lit in the video."

    if "quality" in lowered or "resolution" in lowered:
        return "Try recording in better lighting conditions."

    cleaned = message
    prefix = "the input was rejected"
    if lowered.startswith(prefix):
        cleaned = message[len(prefix):].lstrip(",").strip()
    return cleaned or "Something went wrong. Please try again."
