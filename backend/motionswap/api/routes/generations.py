"""
Generation API Routes
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from motionswap.api.auth import require_user_id, resolve_user_id
from motionswap.config.constants import (
    ASPECT_RATIOS,
    JOB_MAX_DURATION_S,
    JOB_STALE_GRACE_S,
)
from motionswap.core.errors import (
    AuthError,
    ErrorEnvelope,
    InfrastructureError,
    SubmissionValidationError,
)
from motionswap.models import get_db
from motionswap.models.generation import GenerationModel
from motionswap.services.error_classifier import ErrorClassifier
from motionswap.services.job_runner import GenerationRunner
from motionswap.services.job_state import JobStateError
from motionswap.services.observability import logger
from motionswap.services.storage import GenerationDB
from motionswap.workers.queue import ExecutionHost, RQExecutionHost, new_run_id


# Request/Response Models


class SubmitGenerationRequest(BaseModel):
    """Request to start a generation"""

    model_config = ConfigDict(populate_by_name=True)

    generation_id: Optional[int] = Field(default=None, alias="generationId")
    video_url: Optional[str] = Field(default=None, alias="videoUrl")
    character_image_url: Optional[str] = Field(default=None, alias="characterImageUrl")
    user_id: Optional[str] = Field(default=None, alias="userId")
    user_email: Optional[str] = Field(default=None, alias="userEmail")
    character_name: Optional[str] = Field(default=None, alias="characterName")
    send_email: bool = Field(default=False, alias="sendEmail")


class SubmitGenerationResponse(BaseModel):
    """Acknowledgement returned before the generation runs"""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    generation_id: int = Field(serialization_alias="generationId")
    run_id: str = Field(serialization_alias="runId")
    message: str = "Video generation started"


class CreatePendingRequest(BaseModel):
    """Request to create a generation before the source upload starts"""

    model_config = ConfigDict(populate_by_name=True)

    character_name: Optional[str] = Field(default=None, alias="characterName")
    character_image_url: Optional[str] = Field(default=None, alias="characterImageUrl")
    aspect_ratio: Optional[str] = Field(default=None, alias="aspectRatio")
    source_video_aspect_ratio: Optional[str] = Field(default=None, alias="sourceVideoAspectRatio")

    @field_validator("aspect_ratio", "source_video_aspect_ratio")
    @classmethod
    def validate_aspect_ratio(cls, v):
        if v is not None and v not in ASPECT_RATIOS:
            raise ValueError(f"aspect ratio must be one of: {', '.join(ASPECT_RATIOS)}")
        return v


class UpdateGenerationRequest(BaseModel):
    """Owner-reported status change"""

    model_config = ConfigDict(populate_by_name=True)

    status: str
    error_message: Optional[str] = Field(default=None, alias="errorMessage")


class GenerationItem(BaseModel):
    """One generation in the owner's list"""

    id: int
    status: str
    video_url: Optional[str] = None
    source_video_url: Optional[str] = None
    character_name: Optional[str] = None
    character_image_url: Optional[str] = None
    aspect_ratio: Optional[str] = None
    error_message: Optional[str] = None
    error: Optional[Dict[str, Any]] = None
    created_at: str
    completed_at: Optional[str] = None


class GenerationListResponse(BaseModel):
    generations: List[GenerationItem]


# Execution host

_execution_host: Optional[ExecutionHost] = None


def get_execution_host() -> ExecutionHost:
    global _execution_host
    if _execution_host is None:
        _execution_host = RQExecutionHost()
    return _execution_host


def serialize_generation(generation: GenerationModel) -> GenerationItem:
    """Shape a row for the list endpoint, attaching its error envelope"""
    error = None
    if generation.status == "failed":
        if generation.error_details:
            envelope = ErrorEnvelope.model_validate(generation.error_details)
        else:
            envelope = ErrorEnvelope.from_error_message(generation.error_message or "")
        error = envelope.to_public_dict()

    return GenerationItem(
        id=generation.id,
        status=generation.status,
        video_url=generation.video_url,
        source_video_url=generation.source_video_url,
        character_name=generation.character_name,
        character_image_url=generation.character_image_url,
        aspect_ratio=generation.aspect_ratio,
        error_message=generation.error_message,
        error=error,
        created_at=generation.created_at.isoformat(),
        completed_at=generation.completed_at.isoformat() if generation.completed_at else None,
    )


# Router
router = APIRouter()


@router.post("/generate", response_model=SubmitGenerationResponse, response_model_by_alias=True)
async def submit_generation(
    request: SubmitGenerationRequest,
    caller_id: Optional[str] = Depends(resolve_user_id),
    db: Session = Depends(get_db),
    host: ExecutionHost = Depends(get_execution_host),
):
    """
    Start a generation and return before it runs

    Creates the generation (or advances the one created when the upload
    started) to processing and hands it to the execution host.
    """
    try:
        GenerationRunner.validate_submission(
            request.video_url,
            request.character_image_url,
            request.user_id,
            caller_id=caller_id,
        )
    except SubmissionValidationError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Video URL and character image URL are required",
        )
    except AuthError as e:
        detail = "User must be logged in" if not request.user_id else e.message
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)

    logger.info(
        "generation_submit_request",
        user_id=request.user_id,
        generation_id=request.generation_id,
        send_email=request.send_email,
    )

    try:
        generation = GenerationRunner.prepare_generation(
            db,
            user_id=request.user_id,
            source_video_url=request.video_url,
            character_image_url=request.character_image_url,
            generation_id=request.generation_id,
            character_name=request.character_name or None,
            user_email=request.user_email if request.send_email else None,
        )
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("generation_create_failed", user_id=request.user_id, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create generation record",
        )

    if generation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    run_id = new_run_id()
    try:
        host.dispatch(generation.id, run_id)
    except Exception as e:
        logger.error("generation_dispatch_failed", generation_id=generation.id, error=str(e))
        envelope = ErrorClassifier().build_envelope(
            InfrastructureError("Failed to start video generation", code="DISPATCH_FAILED", details=str(e))
        )
        GenerationDB.mark_failed(db, generation.id, envelope, event="dispatch_failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start video generation",
        )

    logger.info("generation_started", generation_id=generation.id, run_id=run_id)
    return SubmitGenerationResponse(generation_id=generation.id, run_id=run_id)


@router.get("/generations", response_model=GenerationListResponse)
async def list_generations(
    response: Response,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """
    List the caller's generations, most recent first

    Generations left running past the execution budget are failed first.
    """
    GenerationDB.expire_stale(db, JOB_MAX_DURATION_S + JOB_STALE_GRACE_S, user_id=user_id)
    generations = GenerationDB.list_for_owner(db, user_id)

    response.headers["Cache-Control"] = "private, max-age=0, stale-while-revalidate=10"
    return GenerationListResponse(generations=[serialize_generation(g) for g in generations])


@router.post("/generations")
async def create_pending_generation(
    request: CreatePendingRequest,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """Create a generation in uploading state before the source upload starts"""
    generation = GenerationDB.create_pending_generation(
        db,
        user_id=user_id,
        character_name=request.character_name,
        character_image_url=request.character_image_url,
        aspect_ratio=request.aspect_ratio or "fill",
        source_video_aspect_ratio=request.source_video_aspect_ratio or "fill",
    )
    return {"generationId": generation.id}


@router.patch("/generations/{generation_id}")
async def update_generation(
    generation_id: int,
    request: UpdateGenerationRequest,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """Mark the caller's generation failed (e.g. the upload failed client-side)"""
    generation = GenerationDB.get_for_owner(db, generation_id, user_id)
    if not generation:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    if request.status != "failed":
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unsupported status: {request.status}",
        )

    envelope = ErrorEnvelope.from_error_message(request.error_message or "Upload failed")
    try:
        GenerationDB.mark_failed(db, generation_id, envelope, event="client_reported_failure")
    except JobStateError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    return {"success": True}


@router.delete("/generations/{generation_id}")
async def delete_generation(
    generation_id: int,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """
    Delete the caller's generation

    Deleting a generation that is still running cancels it; the runner
    stops at its next checkpoint.
    """
    if not GenerationDB.delete_for_owner(db, generation_id, user_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Generation not found")

    logger.info("generation_deleted", generation_id=generation_id, user_id=user_id)
    return {"success": True}
