"""
Storage Service - Database operations for Generations
"""

from sqlalchemy import and_, func, or_
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime, timedelta

from motionswap.config.constants import GENERATION_LIST_LIMIT, PENDING_STATUSES
from motionswap.core.errors import ErrorEnvelope
from motionswap.models.generation import GenerationModel, GenerationStatus
from motionswap.services.job_state import JobStateError, transition_state
from motionswap.services.observability import logger


class GenerationDB:
    """Generation database operations"""

    @staticmethod
    def _initial_transitions(status: str) -> list:
        return [
            {
                "state": status,
                "timestamp": datetime.utcnow().isoformat(),
                "event": "generation_created",
            }
        ]

    @staticmethod
    def create_generation(
        db: Session,
        user_id: str,
        source_video_url: str,
        character_image_url: str,
        character_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> GenerationModel:
        """Create a generation whose inputs are already uploaded"""
        generation = GenerationModel(
            user_id=user_id,
            user_email=user_email,
            source_video_url=source_video_url,
            character_image_url=character_image_url,
            character_name=character_name,
            aspect_ratio="fill",
            source_video_aspect_ratio="fill",
            status=GenerationStatus.PROCESSING.value,
            processing_started_at=datetime.utcnow(),
            state_transitions=GenerationDB._initial_transitions(GenerationStatus.PROCESSING.value),
        )
        db.add(generation)
        db.commit()
        db.refresh(generation)
        return generation

    @staticmethod
    def create_pending_generation(
        db: Session,
        user_id: str,
        character_name: Optional[str] = None,
        character_image_url: Optional[str] = None,
        aspect_ratio: str = "fill",
        source_video_aspect_ratio: str = "fill",
        user_email: Optional[str] = None,
    ) -> GenerationModel:
        """Create a generation before the source video upload starts"""
        generation = GenerationModel(
            user_id=user_id,
            user_email=user_email,
            character_name=character_name,
            character_image_url=character_image_url,
            aspect_ratio=aspect_ratio or "fill",
            source_video_aspect_ratio=source_video_aspect_ratio or "fill",
            status=GenerationStatus.UPLOADING.value,
            state_transitions=GenerationDB._initial_transitions(GenerationStatus.UPLOADING.value),
        )
        db.add(generation)
        db.commit()
        db.refresh(generation)
        return generation

    @staticmethod
    def get_generation(db: Session, generation_id: int) -> Optional[GenerationModel]:
        """Get generation by ID"""
        return db.query(GenerationModel).filter(GenerationModel.id == generation_id).first()

    @staticmethod
    def get_for_owner(db: Session, generation_id: int, user_id: str) -> Optional[GenerationModel]:
        """Get generation by ID, only if owned by user_id"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.id == generation_id, GenerationModel.user_id == user_id)
            .first()
        )

    @staticmethod
    def start_processing(
        db: Session,
        generation_id: int,
        source_video_url: str,
        character_image_url: str,
        character_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> Optional[GenerationModel]:
        """Advance an uploading/pending generation to processing once its inputs exist"""
        generation = GenerationDB.get_generation(db, generation_id)
        if not generation:
            return None

        fields = {
            "source_video_url": source_video_url,
            "character_image_url": character_image_url,
        }
        if character_name:
            fields["character_name"] = character_name
        if user_email:
            fields["user_email"] = user_email
        return transition_state(db, generation, GenerationStatus.PROCESSING.value, "processing_started", **fields)

    @staticmethod
    def set_run_id(db: Session, generation_id: int, run_id: str) -> Optional[GenerationModel]:
        """
        Record the execution run correlated with this generation

        Raises:
            JobStateError: If a run id is already recorded or the generation
                is not processing
        """
        generation = GenerationDB.get_generation(db, generation_id)
        if not generation:
            return None
        if generation.run_id:
            raise JobStateError(
                f"Generation {generation_id} already has run {generation.run_id}; refusing {run_id}"
            )
        if generation.status != GenerationStatus.PROCESSING.value:
            raise JobStateError(
                f"Cannot attach run to generation {generation_id} in state {generation.status}"
            )

        now = datetime.utcnow()
        generation.run_id = run_id
        generation.processing_started_at = now
        transitions = list(generation.state_transitions or [])
        transitions.append(
            {
                "state": generation.status,
                "timestamp": now.isoformat(),
                "event": f"run_attached:{run_id}",
            }
        )
        generation.state_transitions = transitions
        db.commit()
        db.refresh(generation)
        return generation

    @staticmethod
    def mark_completed(db: Session, generation_id: int, video_url: str) -> Optional[GenerationModel]:
        """
        Mark generation completed with its stored result

        Raises:
            JobStateError: If the generation is already terminal or never
                had a run attached
        """
        if not video_url:
            raise ValueError("video_url is required to complete a generation")

        generation = GenerationDB.get_generation(db, generation_id)
        if not generation:
            return None
        if generation.status == GenerationStatus.PROCESSING.value and not generation.run_id:
            raise JobStateError(f"Generation {generation_id} has no run attached")
        return transition_state(
            db,
            generation,
            GenerationStatus.COMPLETED.value,
            "generation_complete",
            video_url=video_url,
            error_message=None,
            error_details=None,
        )

    @staticmethod
    def mark_failed(
        db: Session,
        generation_id: int,
        envelope: ErrorEnvelope,
        event: str = "generation_failed",
    ) -> Optional[GenerationModel]:
        """
        Mark generation failed with a structured error

        Raises:
            JobStateError: If the generation is already terminal
        """
        generation = GenerationDB.get_generation(db, generation_id)
        if not generation:
            return None
        return transition_state(
            db,
            generation,
            GenerationStatus.FAILED.value,
            event,
            video_url=None,
            error_message=envelope.summary,
            error_details=envelope.model_dump(mode="json"),
        )

    @staticmethod
    def delete_for_owner(db: Session, generation_id: int, user_id: str) -> bool:
        """Delete (or cancel, while non-terminal) a generation owned by user_id"""
        generation = GenerationDB.get_for_owner(db, generation_id, user_id)
        if not generation:
            return False
        db.delete(generation)
        db.commit()
        return True

    @staticmethod
    def list_for_owner(
        db: Session,
        user_id: str,
        limit: int = GENERATION_LIST_LIMIT,
    ) -> List[GenerationModel]:
        """List generations for an owner, most recent first"""
        return (
            db.query(GenerationModel)
            .filter(GenerationModel.user_id == user_id)
            .order_by(GenerationModel.created_at.desc(), GenerationModel.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def expire_stale(
        db: Session,
        older_than_s: int,
        user_id: Optional[str] = None,
    ) -> int:
        """
        Fail non-terminal generations older than the execution budget

        A worker that crashes mid-run leaves its row non-terminal; this sweep
        bounds how long such a row is shown as in progress. Processing rows
        age from the start of their current processing window (the latest
        of entering processing and a run attaching); uploading and pending
        rows age from creation.

        Returns:
            Number of generations marked failed
        """
        cutoff = datetime.utcnow() - timedelta(seconds=older_than_s)
        processing_since = func.coalesce(GenerationModel.processing_started_at, GenerationModel.created_at)
        query = db.query(GenerationModel).filter(
            or_(
                and_(
                    GenerationModel.status == GenerationStatus.PROCESSING.value,
                    processing_since < cutoff,
                ),
                and_(
                    GenerationModel.status.in_(
                        [s for s in PENDING_STATUSES if s != GenerationStatus.PROCESSING.value]
                    ),
                    GenerationModel.created_at < cutoff,
                ),
            )
        )
        if user_id:
            query = query.filter(GenerationModel.user_id == user_id)

        expired = 0
        for generation in query.all():
            started = generation.processing_started_at or generation.created_at
            envelope = ErrorEnvelope.job_timeout(
                f"status={generation.status} created_at={generation.created_at.isoformat()} "
                f"processing_started_at={started.isoformat()}"
            )
            transition_state(
                db,
                generation,
                GenerationStatus.FAILED.value,
                "generation_expired",
                video_url=None,
                error_message=envelope.summary,
                error_details=envelope.model_dump(mode="json"),
            )
            expired += 1

        if expired:
            logger.warning("stale_generations_expired", count=expired, user_id=user_id)
        return expired
