"""
Generation Model
"""

from datetime import datetime
from enum import Enum
from sqlalchemy import Column, Integer, String, JSON, DateTime, Index

from motionswap.models import Base


class GenerationStatus(str, Enum):
    """Generation lifecycle states"""

    UPLOADING = "uploading"
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationModel(Base):
    """
    Generation - one motion-transfer request and its lifecycle record

    The row is created by the submission handler (or earlier, before the
    upload starts) and mutated by the runner exactly once more into a
    terminal state.
    """

    __tablename__ = "generations"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Owner
    user_id = Column(String, nullable=False, index=True)
    user_email = Column(String, nullable=True)  # Only set when email notification was requested

    # Inputs (set progressively while the upload finishes)
    source_video_url = Column(String, nullable=True)
    character_image_url = Column(String, nullable=True)
    character_name = Column(String, nullable=True)
    aspect_ratio = Column(String, nullable=False, default="fill")
    source_video_aspect_ratio = Column(String, nullable=False, default="fill")

    # Result
    video_url = Column(String, nullable=True)

    # Lifecycle
    status = Column(String, nullable=False, index=True)
    run_id = Column(String, nullable=True)
    processing_started_at = Column(DateTime, nullable=True)  # Entered processing, re-stamped when a run attaches

    # Error handling
    error_message = Column(String, nullable=True)
    error_details = Column(JSON, nullable=True)  # {"kind": "...", "code": "...", "summary": "...", ...}

    # State transitions
    state_transitions = Column(JSON, nullable=False)  # [{"state": "processing", "timestamp": "...", "event": "..."}]

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_generations_user_created", "user_id", "created_at"),
    )

    def to_dict(self) -> dict:
        """Convert generation model to dictionary"""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "user_email": self.user_email,
            "source_video_url": self.source_video_url,
            "character_image_url": self.character_image_url,
            "character_name": self.character_name,
            "aspect_ratio": self.aspect_ratio,
            "source_video_aspect_ratio": self.source_video_aspect_ratio,
            "video_url": self.video_url,
            "status": self.status,
            "run_id": self.run_id,
            "processing_started_at": self.processing_started_at.isoformat() if self.processing_started_at else None,
            "error_message": self.error_message,
            "error_details": self.error_details,
            "state_transitions": self.state_transitions,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
