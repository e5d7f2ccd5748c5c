import logging
from dataclasses import dataclass
from typing import Optional

from quiz_pipeline.services.job_store import JobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff_base_seconds: int = 300
    backoff_max_seconds: int = 21600

    def backoff_seconds(self, attempts: int) -> float:
        """Delay before a job that has failed `attempts` times may be retried"""
        if attempts <= 0:
            return 0
        return min(self.backoff_base_seconds * 2 ** (attempts - 1), self.backoff_max_seconds)


class RetryReconciler:
    def __init__(self, store: JobStore, policy: Optional[RetryPolicy] = None):
        self.store = store
        self.policy = policy or RetryPolicy()

    def retry_failed_jobs(self, step: Optional[int] = None) -> int:
        """
        Reset failed jobs that are under the attempt cap and past their backoff.

        Jobs keep their step, so the stage that failed picks them up again.
        Jobs at the cap stay failed until an admin resets them.
        """
        count = self.store.reset_failed_jobs(self.policy.max_attempts, step=step)
        if count:
            logger.info("Reset %s failed job(s) for retry%s", count, f" at step {step}" if step else "")
        return count
