"""
Generation State Management Service
"""

from datetime import datetime
from typing import Any, Optional
from sqlalchemy.orm import Session

from motionswap.config.constants import TERMINAL_STATUSES
from motionswap.models.generation import GenerationModel, GenerationStatus
from motionswap.services.observability import log_state_transition


class JobStateError(Exception):
    """Exception raised for invalid state transitions"""

    pass


# Valid state transitions
VALID_TRANSITIONS = {
    GenerationStatus.UPLOADING.value: [GenerationStatus.PROCESSING.value, GenerationStatus.FAILED.value],
    GenerationStatus.PENDING.value: [GenerationStatus.PROCESSING.value, GenerationStatus.FAILED.value],
    GenerationStatus.PROCESSING.value: [GenerationStatus.COMPLETED.value, GenerationStatus.FAILED.value],
    GenerationStatus.COMPLETED.value: [],  # Terminal state
    GenerationStatus.FAILED.value: [],  # Terminal state
    GenerationStatus.CANCELLED.value: [],  # Terminal state
}


def validate_transition(current_state: str, new_state: str) -> None:
    """
    Raise JobStateError unless current_state -> new_state is allowed

    Args:
        current_state: Current status
        new_state: Target status
    """
    allowed = VALID_TRANSITIONS.get(current_state, [])
    if new_state not in allowed:
        raise JobStateError(
            f"Invalid state transition: {current_state} -> {new_state}. "
            f"Valid transitions from {current_state}: {allowed}"
        )


def transition_state(
    db: Session,
    generation: GenerationModel,
    new_state: str,
    event: str,
    timestamp: Optional[datetime] = None,
    **fields: Any,
) -> GenerationModel:
    """
    Transition a generation to a new state with validation

    Extra keyword arguments are written onto the row in the same commit,
    so the status and its dependent columns never diverge.

    Args:
        db: Database session
        generation: Loaded generation row
        new_state: Target state
        event: Event triggering the transition
        timestamp: Transition time (defaults to now)

    Returns:
        Updated GenerationModel

    Raises:
        JobStateError: If transition is invalid
    """
    current_state = generation.status
    validate_transition(current_state, new_state)

    ts = timestamp or datetime.utcnow()
    for key, value in fields.items():
        setattr(generation, key, value)

    generation.status = new_state
    if new_state == GenerationStatus.PROCESSING.value:
        generation.processing_started_at = ts
    if is_terminal_state(new_state):
        generation.completed_at = ts

    transitions = list(generation.state_transitions or [])
    transitions.append(
        {
            "state": new_state,
            "timestamp": ts.isoformat(),
            "event": event,
        }
    )
    generation.state_transitions = transitions

    db.commit()
    db.refresh(generation)

    log_state_transition(generation.id, current_state, new_state, event)
    return generation


def get_current_state(db: Session, generation_id: int) -> Optional[str]:
    """
    Get current state of a generation

    Args:
        db: Database session
        generation_id: Generation identifier

    Returns:
        Current state or None if the generation does not exist
    """
    generation = db.get(GenerationModel, generation_id)
    return generation.status if generation else None


def is_terminal_state(state: str) -> bool:
    """
    Check if state is a terminal state

    Args:
        state: Generation state

    Returns:
        True if state is completed, failed or cancelled
    """
    return state in TERMINAL_STATUSES
