"""
RQ queue helpers and the execution host used by the API.
"""

import uuid

import redis
from rq import Queue

from motionswap.config.constants import JOB_MAX_DURATION_S
from motionswap.config.settings import settings
from motionswap.services.observability import logger


def get_redis_connection() -> redis.Redis:
    return redis.from_url(settings.redis_url)


def get_queue(name: str | None = None) -> Queue:
    return Queue(name or settings.rq_queue_name, connection=get_redis_connection())


def new_run_id() -> str:
    return f"run_{uuid.uuid4().hex}"


class ExecutionHost:
    """Keeps a generation running after the submitting request returns"""

    def dispatch(self, generation_id: int, run_id: str) -> str:
        """
        Start the runner for generation_id out of band

        Returns:
            The run id of the started run
        """
        raise NotImplementedError


class RQExecutionHost(ExecutionHost):
    """
    Run generations on an RQ worker pool

    RQ kills a job that exceeds ``job_timeout``; the runner's own deadline
    fires first and records the failure.
    """

    def __init__(self, queue: Queue | None = None, job_timeout: int = JOB_MAX_DURATION_S):
        self._queue = queue
        self.job_timeout = job_timeout

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = get_queue()
        return self._queue

    def dispatch(self, generation_id: int, run_id: str) -> str:
        from motionswap.workers.generation_tasks import run_generation_job

        self.queue.enqueue(
            run_generation_job,
            generation_id,
            run_id,
            job_id=run_id,
            job_timeout=self.job_timeout,
        )
        logger.info(
            "generation_enqueued",
            generation_id=generation_id,
            run_id=run_id,
            queue=self.queue.name,
        )
        return run_id
