"""
Run-level retry and in-memory generation jobs.

A whole generation run can still fail after the per-field retries (a strict
field exhausted, the provider went away). `generate_details_retrying` re-runs
it with backoff, except for cancellation and the weightG invariant which are
final. `GenerationJobManager` runs generations in the background so the HTTP
layer can poll and cancel them; jobs live for the process lifetime only.
"""

import asyncio
import logging
import random
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from pydantic import BaseModel, Field

from nutrigen.core.config import settings
from nutrigen.core.errors import is_retryable_run_error
from nutrigen.core.observability import log_step
from nutrigen.schemas.nutrition import FoodDetailRecord
from nutrigen.services.batch_orchestrator import BatchOrchestrator, OnLog, OnStage
from nutrigen.services.retry_executor import BACKOFF_FACTOR
from nutrigen.services.task_coordinator import TaskCoordinator

logger = logging.getLogger(__name__)

RUN_MAX_DELAY_MS = 30_000
RUN_JITTER_MS = 250

OrchestratorFactory = Callable[[TaskCoordinator], BatchOrchestrator]


def run_backoff_ms(attempt: int, base_backoff_ms: int) -> int:
    delay = min(RUN_MAX_DELAY_MS, base_backoff_ms * BACKOFF_FACTOR ** (attempt - 1))
    return int(delay) + random.randint(0, RUN_JITTER_MS)


async def generate_details_retrying(
    orchestrator: BatchOrchestrator,
    food_name: str,
    attempts: Optional[int] = None,
    base_backoff_ms: Optional[int] = None,
    on_log: Optional[OnLog] = None,
    on_stage: Optional[OnStage] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FoodDetailRecord:
    attempts = attempts or settings.run_attempts
    base_backoff_ms = settings.run_backoff_ms if base_backoff_ms is None else base_backoff_ms

    for attempt in range(1, attempts + 1):
        orchestrator.coordinator.raise_if_cancelled()
        try:
            return await orchestrator.generate(food_name, on_log=on_log, on_stage=on_stage)
        except Exception as e:
            if not is_retryable_run_error(e) or attempt == attempts:
                log_step(
                    logger, logging.ERROR, f"Generation for '{food_name}' failed: {str(e)}",
                    step="run", attempt=attempt, outcome="exhausted",
                )
                raise

            delay_ms = run_backoff_ms(attempt, base_backoff_ms)
            log_step(
                logger, logging.WARNING,
                f"Generation attempt {attempt}/{attempts} for '{food_name}' failed: {str(e)}. "
                f"Retrying in {delay_ms} ms",
                step="run", attempt=attempt, outcome="retry",
            )
            if on_log:
                on_log(f"Run attempt {attempt} failed, retrying in ~{delay_ms} ms")
            await sleep(delay_ms / 1000)


async def generate_details_or_none(
    orchestrator: BatchOrchestrator,
    food_name: str,
    **kwargs,
) -> Optional[FoodDetailRecord]:
    try:
        return await generate_details_retrying(orchestrator, food_name, **kwargs)
    except Exception as e:
        logger.error(f"Giving up on '{food_name}': {str(e)}")
        return None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class GenerationJob(BaseModel):
    job_id: str
    food_name: str
    status: JobStatus = JobStatus.PENDING
    stage: Optional[str] = None
    progress: float = 0.0
    created_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    result: Optional[FoodDetailRecord] = None
    error: Optional[str] = None
    error_code: Optional[int] = None


class GenerationJobManager:
    def __init__(
        self,
        orchestrator_factory: OrchestratorFactory,
        attempts: Optional[int] = None,
        base_backoff_ms: Optional[int] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        history_limit: Optional[int] = None,
    ):
        self.orchestrator_factory = orchestrator_factory
        self.attempts = attempts
        self.base_backoff_ms = base_backoff_ms
        self.sleep = sleep
        self.history_limit = settings.job_history_limit if history_limit is None else history_limit
        self._jobs: Dict[str, GenerationJob] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._coordinators: Dict[str, TaskCoordinator] = {}

    def start(self, food_name: str) -> GenerationJob:
        """Register a job and launch it in the background. Needs a running loop."""
        self._evict_finished()
        job = GenerationJob(job_id=uuid.uuid4().hex, food_name=food_name)
        coordinator = TaskCoordinator()
        self._jobs[job.job_id] = job
        self._coordinators[job.job_id] = coordinator
        self._tasks[job.job_id] = asyncio.get_running_loop().create_task(
            self._run(job, coordinator)
        )
        logger.info(f"Started generation job {job.job_id} for '{food_name}'")
        return job

    async def _run(self, job: GenerationJob, coordinator: TaskCoordinator) -> None:
        orchestrator = self.orchestrator_factory(coordinator)
        job.status = JobStatus.RUNNING

        def on_stage(stage_name: str, index: int, total: int) -> None:
            job.stage = stage_name
            job.progress = round(index / total, 3)

        try:
            job.result = await generate_details_retrying(
                orchestrator,
                job.food_name,
                attempts=self.attempts,
                base_backoff_ms=self.base_backoff_ms,
                on_stage=on_stage,
                sleep=self.sleep,
            )
            job.status = JobStatus.COMPLETED
            job.progress = 1.0
        except asyncio.CancelledError:
            job.status = JobStatus.CANCELLED
            logger.info(f"Generation job {job.job_id} cancelled")
            raise
        except Exception as e:
            job.status = JobStatus.FAILED
            job.error = str(e)
            job.error_code = getattr(e, "code", None)
            logger.error(f"Generation job {job.job_id} failed: {str(e)}")
        finally:
            job.finished_at = datetime.utcnow()

    def _evict_finished(self) -> None:
        """Drop the oldest settled jobs beyond `history_limit`. Active jobs are never evicted."""
        finished = sorted(
            (job for job in self._jobs.values() if job.job_id in self._tasks and self._tasks[job.job_id].done()),
            key=lambda j: j.created_at,
        )
        excess = len(finished) - self.history_limit
        for job in finished[:max(excess, 0)]:
            self._jobs.pop(job.job_id, None)
            self._tasks.pop(job.job_id, None)
            self._coordinators.pop(job.job_id, None)
            logger.debug(f"Evicted finished generation job {job.job_id}")

    def get(self, job_id: str) -> Optional[GenerationJob]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> List[GenerationJob]:
        return sorted(self._jobs.values(), key=lambda j: j.created_at, reverse=True)

    def cancel(self, job_id: str) -> Optional[GenerationJob]:
        job = self._jobs.get(job_id)
        if job is None:
            return None

        if job.status in (JobStatus.PENDING, JobStatus.RUNNING):
            self._coordinators[job_id].cancel_all()
            self._tasks[job_id].cancel()
            job.status = JobStatus.CANCELLED
            job.finished_at = datetime.utcnow()
            logger.info(f"Cancellation requested for job {job_id}")
        return job

    async def wait(self, job_id: str) -> Optional[GenerationJob]:
        """Wait for a job's task to settle (completed, failed or cancelled)."""
        task = self._tasks.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._jobs.get(job_id)
