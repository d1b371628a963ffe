"""
Generation Runner - Orchestrate one motion-transfer generation end to end
"""

import asyncio
import time
from typing import Callable, Optional

from sqlalchemy.orm import Session

from motionswap.config.constants import JOB_MAX_DURATION_S
from motionswap.core.errors import (
    AuthError,
    ErrorEnvelope,
    GenerationCancelled,
    SubmissionValidationError,
)
from motionswap.core.kling_adapter import KlingMotionAdapter, MotionControlRequest
from motionswap.models.generation import GenerationModel
from motionswap.services.blob_storage import BlobStorage
from motionswap.services.error_classifier import ErrorClassifier
from motionswap.services.job_state import JobStateError
from motionswap.services.notifier import CompletionNotifier
from motionswap.services.observability import (
    log_failure_classification,
    log_generation_duration,
    logger,
)
from motionswap.services.retry_policy import RetryPolicy
from motionswap.services.storage import GenerationDB


class GenerationRunner:
    """
    Drive a generation from processing to a single terminal state

    Store mutations for one generation happen in the order
    create/advance -> set_run_id -> (mark_completed | mark_failed).
    Deleting the row is the cancellation signal; it is checked before the
    provider call and before the artifact is saved.
    """

    def __init__(
        self,
        provider: KlingMotionAdapter,
        blob_storage: Optional[BlobStorage] = None,
        notifier: Optional[CompletionNotifier] = None,
        classifier: Optional[ErrorClassifier] = None,
        retry_policy_factory: Callable[[], RetryPolicy] = RetryPolicy,
        max_duration_s: float = JOB_MAX_DURATION_S,
    ):
        self.provider = provider
        self.blob_storage = blob_storage or BlobStorage()
        self.notifier = notifier
        self.classifier = classifier or ErrorClassifier()
        self.retry_policy_factory = retry_policy_factory
        self.max_duration_s = max_duration_s

    @staticmethod
    def validate_submission(
        video_url: Optional[str],
        character_image_url: Optional[str],
        user_id: Optional[str],
        caller_id: Optional[str] = None,
    ) -> None:
        """
        Reject a submission before any row is created or run enqueued

        Args:
            video_url: Uploaded source video URL
            character_image_url: Character image URL
            user_id: Owner named in the request body
            caller_id: Identity resolved from the request session

        Raises:
            SubmissionValidationError: If an input URL is missing
            AuthError: If the owner is missing or is not the caller
        """
        if not video_url or not character_image_url:
            raise SubmissionValidationError("Missing video or character image URL")
        if not user_id:
            raise AuthError("User ID is required")
        if caller_id is not None and caller_id != user_id:
            raise AuthError("User ID does not match the authenticated user")

    @staticmethod
    def prepare_generation(
        db: Session,
        user_id: str,
        source_video_url: str,
        character_image_url: str,
        generation_id: Optional[int] = None,
        character_name: Optional[str] = None,
        user_email: Optional[str] = None,
    ) -> Optional[GenerationModel]:
        """
        Ensure a processing row exists for this submission

        Advances the owner's existing row when generation_id is given,
        otherwise creates a new one.

        Returns:
            Processing GenerationModel, or None if generation_id does not
            name a row owned by user_id

        Raises:
            JobStateError: If the existing row cannot move to processing
        """
        if generation_id is None:
            return GenerationDB.create_generation(
                db=db,
                user_id=user_id,
                source_video_url=source_video_url,
                character_image_url=character_image_url,
                character_name=character_name,
                user_email=user_email,
            )

        existing = GenerationDB.get_for_owner(db, generation_id, user_id)
        if existing is None:
            return None
        return GenerationDB.start_processing(
            db,
            generation_id,
            source_video_url=source_video_url,
            character_image_url=character_image_url,
            character_name=character_name,
            user_email=user_email,
        )

    def _ensure_not_cancelled(self, db: Session, generation_id: int) -> GenerationModel:
        db.expire_all()
        generation = GenerationDB.get_generation(db, generation_id)
        if generation is None:
            raise GenerationCancelled(f"Generation {generation_id} was deleted")
        return generation

    async def execute(
        self,
        db: Session,
        generation_id: int,
        run_id: str,
    ) -> Optional[GenerationModel]:
        """
        Run one generation

        Args:
            db: Database session
            generation_id: Generation identifier
            run_id: Execution host run identifier

        Returns:
            The terminal GenerationModel, or None when the run was rejected
            as a duplicate or the row was deleted
        """
        started = time.monotonic()
        retry_policy = self.retry_policy_factory()

        try:
            # Step 1: Validate inputs
            logger.info("workflow_step_1", step="validate_inputs", generation_id=generation_id)
            generation = self._ensure_not_cancelled(db, generation_id)
            if not generation.source_video_url or not generation.character_image_url:
                raise SubmissionValidationError("Missing video or character image URL")
            if not generation.user_id:
                raise SubmissionValidationError("Generation has no owner")

            # Step 2 happens at submission time (prepare_generation)

            # Step 3: Attach run
            logger.info("workflow_step_3", step="attach_run", generation_id=generation_id, run_id=run_id)
            try:
                attached = GenerationDB.set_run_id(db, generation_id, run_id)
            except JobStateError as e:
                logger.error(
                    "duplicate_run_rejected",
                    generation_id=generation_id,
                    run_id=run_id,
                    error=str(e),
                )
                return None
            if attached is None:
                raise GenerationCancelled(f"Generation {generation_id} was deleted")

            # Step 4: Provider call under the retry policy
            logger.info("workflow_step_4", step="provider_generation", generation_id=generation_id)
            self._ensure_not_cancelled(db, generation_id)
            request = MotionControlRequest(
                character_image_url=attached.character_image_url,
                source_video_url=attached.source_video_url,
            )
            video_bytes = await retry_policy.run(
                lambda: self.provider.generate_video(request),
                generation_id=generation_id,
            )

            # Step 5: Persist artifact
            logger.info("workflow_step_5", step="save_artifact", generation_id=generation_id)
            self._ensure_not_cancelled(db, generation_id)
            key = self.blob_storage.generation_video_key(generation_id)
            video_url = self.blob_storage.put(key, video_bytes)

            # Step 6: Mark completed
            logger.info("workflow_step_6", step="mark_completed", generation_id=generation_id)
            try:
                completed = GenerationDB.mark_completed(db, generation_id, video_url)
            except JobStateError:
                self.blob_storage.delete(key)
                raise
            if completed is None:
                self.blob_storage.delete(key)
                raise GenerationCancelled(f"Generation {generation_id} was deleted")

        except GenerationCancelled as e:
            logger.info("generation_cancelled", generation_id=generation_id, reason=str(e))
            return None

        except Exception as e:
            return self._fail(db, generation_id, e, attempts=getattr(e, "attempts", None))

        log_generation_duration(
            generation_id=generation_id,
            duration_s=time.monotonic() - started,
            attempts=retry_policy.attempts,
        )

        # Step 7: Notify owner
        if completed.user_email and self.notifier is not None:
            logger.info("workflow_step_7", step="notify_owner", generation_id=generation_id)
            try:
                await self.notifier.send_completion(
                    email=completed.user_email,
                    video_url=completed.video_url,
                    character_name=completed.character_name,
                )
            except Exception as e:
                logger.error(
                    "completion_email_failed",
                    generation_id=generation_id,
                    error=str(e),
                    error_type=type(e).__name__,
                )

        return completed

    def _fail(
        self,
        db: Session,
        generation_id: int,
        error: Exception,
        attempts: Optional[int] = None,
    ) -> Optional[GenerationModel]:
        """Convert error into an envelope and mark the generation failed"""
        logger.error(
            "workflow_failed",
            generation_id=generation_id,
            error=str(error),
            error_type=type(error).__name__,
        )
        db.rollback()

        envelope = self.classifier.build_envelope(error, attempts=attempts)
        log_failure_classification(
            kind=envelope.kind.value,
            code=envelope.code,
            retryable=self.classifier.is_retryable(error),
            generation_id=generation_id,
        )
        return self._write_failure(db, generation_id, envelope)

    def _write_failure(
        self,
        db: Session,
        generation_id: int,
        envelope: ErrorEnvelope,
        event: str = "generation_failed",
    ) -> Optional[GenerationModel]:
        try:
            failed = GenerationDB.mark_failed(db, generation_id, envelope, event=event)
        except JobStateError as e:
            # Another writer (the stale sweep) already reached a terminal state
            logger.error("generation_already_terminal", generation_id=generation_id, error=str(e))
            return GenerationDB.get_generation(db, generation_id)

        if failed is None:
            logger.info("generation_cancelled", generation_id=generation_id, reason="deleted before failure")
        return failed

    async def execute_with_deadline(
        self,
        db: Session,
        generation_id: int,
        run_id: str,
        deadline_s: Optional[float] = None,
    ) -> Optional[GenerationModel]:
        """
        Run one generation bounded by the execution budget

        A run that exceeds the deadline is stopped and its generation is
        marked failed with JOB_TIMEOUT.
        """
        deadline = deadline_s if deadline_s is not None else self.max_duration_s
        try:
            return await asyncio.wait_for(
                self.execute(db, generation_id, run_id),
                timeout=deadline,
            )
        except asyncio.TimeoutError:
            logger.error(
                "generation_deadline_exceeded",
                generation_id=generation_id,
                run_id=run_id,
                deadline_s=deadline,
            )
            db.rollback()
            envelope = ErrorEnvelope.job_timeout(f"run {run_id} exceeded {deadline}s")
            return self._write_failure(db, generation_id, envelope, event="generation_deadline_exceeded")
