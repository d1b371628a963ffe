"""
Observability and Logging Service
"""

import logging

import structlog
from typing import Optional

from motionswap.config.settings import settings


logging.basicConfig(format="%(message)s", level=settings.log_level)

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

# Get logger
logger = structlog.get_logger(__name__)


def log_state_transition(
    generation_id: int,
    from_state: Optional[str],
    to_state: str,
    event: str,
) -> None:
    """
    Log generation state transition

    Args:
        generation_id: Generation ID
        from_state: Previous status (None on creation)
        to_state: New status
        event: Event that triggered the transition
    """
    logger.info(
        "generation_transition",
        generation_id=generation_id,
        from_state=from_state,
        to_state=to_state,
        transition_event=event,
    )


def log_retry_attempt(
    attempt: int,
    max_attempts: int,
    retryable: bool,
    error: str,
    delay_s: float,
    generation_id: Optional[int] = None,
) -> None:
    """
    Log a failed provider attempt and the retry decision

    Args:
        attempt: 1-based attempt number that failed
        max_attempts: Attempt budget
        retryable: Whether the classifier allows another attempt
        error: Error message
        delay_s: Wait before the next attempt (0 when giving up)
        generation_id: Optional generation ID for context
    """
    log_data = {
        "attempt": attempt,
        "max_attempts": max_attempts,
        "retryable": retryable,
        "error": error,
        "delay_s": delay_s,
    }
    if generation_id is not None:
        log_data["generation_id"] = generation_id

    logger.warning("provider_attempt_failed", **log_data)


def log_failure_classification(
    kind: str,
    code: str,
    retryable: bool,
    generation_id: Optional[int] = None,
) -> None:
    """
    Log failure classification event

    Args:
        kind: Envelope kind (e.g., "provider_error", "infrastructure_error")
        code: Error code (e.g., "GATEWAY_INTERNAL_SERVER_ERROR")
        retryable: Whether error is retryable
        generation_id: Optional generation ID for context
    """
    log_data = {
        "kind": kind,
        "code": code,
        "retryable": retryable,
    }
    if generation_id is not None:
        log_data["generation_id"] = generation_id

    logger.error("failure_classified", **log_data)


def log_generation_duration(
    generation_id: int,
    duration_s: float,
    attempts: int,
) -> None:
    """
    Log end-to-end generation duration

    Args:
        generation_id: Generation ID
        duration_s: Total duration in seconds
        attempts: Provider attempts used
    """
    logger.info(
        "generation_completed",
        generation_id=generation_id,
        duration_s=round(duration_s, 1),
        attempts=attempts,
    )
