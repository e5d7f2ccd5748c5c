import logging
from datetime import timedelta
from typing import Optional

from quiz_pipeline.services.job_store import JobStore

logger = logging.getLogger(__name__)


class DuplicateGuard:
    """Looks for the same fingerprint in recent jobs of one account + persona"""

    def __init__(self, store: JobStore, window_hours: int = 24):
        self.store = store
        self.window = timedelta(hours=window_hours)

    def is_duplicate(
        self,
        content_hash: str,
        account_id: str,
        persona: str,
        exclude_job_id: Optional[str] = None,
    ) -> bool:
        # Suppression is best effort: a failed lookup never blocks generation
        try:
            since = self.store.now() - self.window
            return self.store.find_recent_hash(
                content_hash, account_id, persona, since, exclude_job_id=exclude_job_id
            )
        except Exception as e:
            logger.warning(
                "Duplicate check failed for %s (%s/%s), treating as new: %s",
                content_hash, account_id, persona, e,
            )
            return False
