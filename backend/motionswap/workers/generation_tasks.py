"""
RQ task definitions for long-running generation jobs.
"""

import asyncio

from sqlalchemy.orm import Session

from motionswap.config.constants import (
    JOB_FINALIZE_MARGIN_S,
    JOB_MAX_DURATION_S,
    JOB_STALE_GRACE_S,
)
from motionswap.config.settings import settings
from motionswap.core.kling_adapter import build_kling_adapter
from motionswap.models import SessionLocal
from motionswap.services.job_runner import GenerationRunner
from motionswap.services.notifier import CompletionNotifier
from motionswap.services.observability import logger
from motionswap.services.storage import GenerationDB


async def _run_generation(db: Session, generation_id: int, run_id: str) -> None:
    provider = build_kling_adapter()
    notifier = CompletionNotifier() if settings.resend_api_key else None
    try:
        runner = GenerationRunner(provider=provider, notifier=notifier)
        await runner.execute_with_deadline(
            db,
            generation_id,
            run_id,
            deadline_s=JOB_MAX_DURATION_S - JOB_FINALIZE_MARGIN_S,
        )
    finally:
        await provider.close()
        if notifier is not None:
            await notifier.close()


def run_generation_job(generation_id: int, run_id: str) -> None:
    logger.info("generation_worker_start", generation_id=generation_id, run_id=run_id)
    db = SessionLocal()
    try:
        GenerationDB.expire_stale(db, JOB_MAX_DURATION_S + JOB_STALE_GRACE_S)
        asyncio.run(_run_generation(db, generation_id, run_id))
    except Exception as exc:
        logger.error(
            "generation_worker_failed",
            generation_id=generation_id,
            run_id=run_id,
            error=str(exc),
        )
        raise
    finally:
        db.close()
