"""
Per-stage control loop.

A stage run claims jobs waiting at one step, hands each to the stage's work
function, and writes the outcome back: merged payload and the next step/status
on success, `failed` with a truncated reason on error. Errors are caught per
job, so one bad job never stops the rest of the batch.
"""

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional

from quiz_pipeline.models.quiz_job import QuizJob
from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.retry_reconciler import RetryPolicy, RetryReconciler

logger = logging.getLogger(__name__)

CLAIM_BATCH = "batch"
CLAIM_SINGLE = "single"
CLAIM_MODES = (CLAIM_BATCH, CLAIM_SINGLE)


@dataclass
class StageDefinition:
    name: str
    step: int
    next_step: int
    next_status: str
    work: Callable[[QuizJob], Optional[dict]]
    claim_mode: str = CLAIM_BATCH
    batch_size: int = 5
    max_workers: int = 1
    error_prefix: str = ""
    personas: Optional[list[str]] = None

    def __post_init__(self):
        if self.claim_mode not in CLAIM_MODES:
            raise ValueError(f"Unknown claim mode {self.claim_mode!r} for stage {self.name}")
        if self.next_step < self.step:
            raise ValueError(f"Stage {self.name} cannot move jobs back to step {self.next_step}")

    @property
    def claim_limit(self) -> int:
        return 1 if self.claim_mode == CLAIM_SINGLE else max(1, self.batch_size)


@dataclass
class StageResult:
    stage: str
    processed_count: int = 0
    failed_job_ids: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)
    retried_count: int = 0
    created_count: int = 0
    message: str = ""

    @property
    def claimed_count(self) -> int:
        return self.processed_count + len(self.failed_job_ids)


def truncate_error(error: BaseException, prefix: str = "", max_length: int = 500) -> str:
    message = str(error) or error.__class__.__name__
    if prefix:
        message = f"{prefix}: {message}"
    return message[:max_length]


class StageRunner:
    def __init__(
        self,
        store: JobStore,
        retry_reconciler: Optional[RetryReconciler] = None,
        error_max_length: int = 500,
    ):
        self.store = store
        self.retry_reconciler = retry_reconciler
        self.policy = retry_reconciler.policy if retry_reconciler else RetryPolicy()
        self.error_max_length = error_max_length

    def run_stage(
        self,
        stage: StageDefinition,
        account_id: Optional[str] = None,
        retry_first: bool = True,
    ) -> StageResult:
        result = StageResult(stage=stage.name)

        # Retried jobs can be picked up by this same run
        if self.retry_reconciler and retry_first:
            result.retried_count = self.retry_reconciler.retry_failed_jobs(step=stage.step)

        claim_token = f"{stage.name}:{uuid.uuid4().hex[:16]}"
        jobs = self.store.claim_jobs(
            stage.step,
            stage.claim_limit,
            claim_token,
            account_id=account_id,
            personas=stage.personas,
        )

        if not jobs:
            result.message = f"No jobs waiting for {stage.name}"
            logger.info("[%s] no work (account=%s)", stage.name, account_id or "all")
            return result

        logger.info("[%s] claimed %s job(s) in %s mode", stage.name, len(jobs), stage.claim_mode)

        if stage.max_workers > 1 and len(jobs) > 1:
            with ThreadPoolExecutor(max_workers=min(stage.max_workers, len(jobs))) as pool:
                futures = [(job, pool.submit(stage.work, job)) for job in jobs]
                for job, future in futures:
                    try:
                        partial = future.result()
                    except Exception as e:
                        self._fail(stage, job, e, claim_token, result)
                    else:
                        self._advance(stage, job, partial, claim_token, result)
        else:
            for job in jobs:
                try:
                    partial = stage.work(job)
                except Exception as e:
                    self._fail(stage, job, e, claim_token, result)
                else:
                    self._advance(stage, job, partial, claim_token, result)

        result.message = (
            f"{stage.name}: {result.processed_count} processed, "
            f"{len(result.failed_job_ids)} failed"
        )
        logger.info("[%s] %s", stage.name, result.message)
        return result

    def _advance(self, stage: StageDefinition, job: QuizJob, partial: Optional[dict],
                 claim_token: str, result: StageResult) -> None:
        updated = self.store.update_job(
            job.id,
            step=stage.next_step,
            status=stage.next_status,
            payload_patch=partial or {},
            error_message=None,
            claim_token=claim_token,
        )
        if updated:
            result.processed_count += 1
            logger.info("[%s] ✅ job %s -> step %s (%s)", stage.name, job.id, stage.next_step, stage.next_status)

    def _fail(self, stage: StageDefinition, job: QuizJob, error: Exception,
              claim_token: str, result: StageResult) -> None:
        message = truncate_error(error, stage.error_prefix, self.error_max_length)
        logger.error("[%s] ❌ job %s failed: %s", stage.name, job.id, message)
        failed = self.store.mark_failed(
            job.id, message, self.policy.backoff_seconds, claim_token=claim_token
        )
        if failed is not None:
            result.failed_job_ids.append(job.id)
            result.errors[job.id] = message
