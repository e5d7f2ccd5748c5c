import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Protocol

from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.youtube_client import PublishedItem

logger = logging.getLogger(__name__)


class PublishedSource(Protocol):
    def list_published(self) -> Iterator[PublishedItem]: ...


@dataclass
class ReconcileReport:
    recovered: dict[str, int] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def total_recovered(self) -> int:
        return sum(self.recovered.values())


class OrphanReconciler:
    """
    Adds videos that exist on a channel but not in the published ledger.

    Manual uploads never pass through the pipeline; without a ledger row the
    analytics side would not know they exist.
    """

    def __init__(self, store: JobStore, source_factory: Callable[[str], PublishedSource]):
        self.store = store
        self.source_factory = source_factory

    def reconcile(self, account_id: str) -> int:
        source = self.source_factory(account_id)
        known = self.store.published_video_ids(account_id)

        recovered = 0
        for item in source.list_published():
            if not item.video_id or not item.published_at:
                continue
            if item.video_id in known:
                continue
            inserted = self.store.record_published_video(
                account_id=account_id,
                youtube_video_id=item.video_id,
                title=item.title,
                job_id=None,
                description=item.description,
                uploaded_at=item.published_at,
            )
            known.add(item.video_id)
            if inserted:
                recovered += 1
                logger.info("Recovered orphan video %s for %s", item.video_id, account_id)

        logger.info("Orphan reconciliation for %s: %s recovered", account_id, recovered)
        return recovered

    def reconcile_all(self, account_ids: Optional[Iterable[str]] = None) -> ReconcileReport:
        report = ReconcileReport()
        if account_ids is None:
            account_ids = self.store.active_account_ids()

        for account_id in account_ids:
            try:
                report.recovered[account_id] = self.reconcile(account_id)
            except Exception as e:
                logger.error("Orphan reconciliation failed for %s: %s", account_id, e)
                report.errors[account_id] = str(e)[:500]
        return report
