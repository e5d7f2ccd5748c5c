"""
Stage wiring: which step each stage claims, where it moves jobs, how many at a
time, and which worker does the work. Everything configurable comes from
settings; collaborators can be swapped for tests.
"""

import logging
import random
from datetime import datetime
from typing import Callable, Optional

import httpx

from quiz_pipeline.core.config import Settings, settings as default_settings
from quiz_pipeline.core.personas import PERSONAS, pick_topic
from quiz_pipeline.core.schedule import personas_due_for_generation, personas_due_for_upload, restrict
from quiz_pipeline.models.account import Account
from quiz_pipeline.models.quiz_job import (
    STEP_GENERATION,
    STEP_FRAMES,
    STEP_ASSEMBLY,
    STEP_PUBLISH,
    STATUS_FRAMES_PENDING,
    STATUS_ASSEMBLY_PENDING,
    STATUS_UPLOAD_PENDING,
    STATUS_COMPLETED,
)
from quiz_pipeline.services.ai_client import AIClient
from quiz_pipeline.services.duplicate_guard import DuplicateGuard
from quiz_pipeline.services.generation import GenerationWorker
from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.layout_selector import LayoutConfig, LayoutSelector
from quiz_pipeline.services.media import AssemblyWorker, RenderWorker
from quiz_pipeline.services.orphan_reconciler import OrphanReconciler, ReconcileReport
from quiz_pipeline.services.publisher import PublishWorker
from quiz_pipeline.services.retry_reconciler import RetryPolicy, RetryReconciler
from quiz_pipeline.services.stage_runner import StageDefinition, StageResult, StageRunner
from quiz_pipeline.services.youtube_client import YouTubeClient

logger = logging.getLogger(__name__)

STAGE_GENERATE = "generate"
STAGE_FRAMES = "frames"
STAGE_ASSEMBLY = "assembly"
STAGE_UPLOAD = "upload"
STAGES = (STAGE_GENERATE, STAGE_FRAMES, STAGE_ASSEMBLY, STAGE_UPLOAD)


class AccountNotFoundError(LookupError):
    pass


def _start_of_day(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


class Pipeline:
    def __init__(
        self,
        store: JobStore,
        config: Settings = default_settings,
        layout_selector: Optional[LayoutSelector] = None,
        generation_worker: Optional[GenerationWorker] = None,
        render_worker: Optional[RenderWorker] = None,
        assembly_worker: Optional[AssemblyWorker] = None,
        publish_worker: Optional[PublishWorker] = None,
        youtube_factory: Optional[Callable[[str], YouTubeClient]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.config = config
        self.rng = rng or random.Random()
        # One connection pool for every account and publish call
        self._youtube_http = httpx.Client(timeout=config.UPLOAD_TIMEOUT_SECONDS)

        self.retry_reconciler = RetryReconciler(store, RetryPolicy(
            max_attempts=config.MAX_ATTEMPTS,
            backoff_base_seconds=config.RETRY_BACKOFF_BASE_SECONDS,
            backoff_max_seconds=config.RETRY_BACKOFF_MAX_SECONDS,
        ))
        self.runner = StageRunner(store, self.retry_reconciler, config.ERROR_MESSAGE_MAX_LENGTH)

        self.layout_selector = layout_selector or LayoutSelector(
            LayoutConfig.from_mapping(config.LAYOUT_WEIGHTS), rng=self.rng
        )
        self.youtube_factory = youtube_factory or self._youtube_client
        self.generation_worker = generation_worker or GenerationWorker(
            AIClient(),
            self.layout_selector,
            DuplicateGuard(store, config.DUPLICATE_WINDOW_HOURS),
            store=store,
            temperature=config.AI_TEMPERATURE,
            retry_temperature_boost=config.AI_RETRY_TEMPERATURE_BOOST,
        )
        self.render_worker = render_worker or RenderWorker()
        self.assembly_worker = assembly_worker or AssemblyWorker()
        self.publish_worker = publish_worker or PublishWorker(store, self.youtube_factory)

    def _youtube_client(self, account_id: str) -> YouTubeClient:
        account = self.store.get_account(account_id)
        if account is None:
            raise AccountNotFoundError(f"Account {account_id} not found")
        return YouTubeClient(account, http=self._youtube_http, store=self.store)

    def stage(self, name: str, personas: Optional[list[str]] = None,
              batch_size: Optional[int] = None) -> StageDefinition:
        c = self.config
        definitions = {
            STAGE_GENERATE: dict(
                step=STEP_GENERATION, next_step=STEP_FRAMES, next_status=STATUS_FRAMES_PENDING,
                work=self.generation_worker.generate, batch_size=c.GENERATE_BATCH_SIZE,
                max_workers=c.GENERATE_CONCURRENCY, error_prefix="Content generation failed",
            ),
            STAGE_FRAMES: dict(
                step=STEP_FRAMES, next_step=STEP_ASSEMBLY, next_status=STATUS_ASSEMBLY_PENDING,
                work=self.render_worker.render, batch_size=c.CREATE_FRAMES_CONCURRENCY,
                max_workers=c.CREATE_FRAMES_CONCURRENCY, error_prefix="Frame creation failed",
            ),
            STAGE_ASSEMBLY: dict(
                step=STEP_ASSEMBLY, next_step=STEP_PUBLISH, next_status=STATUS_UPLOAD_PENDING,
                work=self.assembly_worker.assemble, batch_size=c.ASSEMBLY_CONCURRENCY,
                max_workers=c.ASSEMBLY_CONCURRENCY, error_prefix="Video assembly failed",
            ),
            STAGE_UPLOAD: dict(
                step=STEP_PUBLISH, next_step=STEP_PUBLISH, next_status=STATUS_COMPLETED,
                work=self.publish_worker.publish, batch_size=c.UPLOAD_CONCURRENCY,
                max_workers=c.UPLOAD_CONCURRENCY, error_prefix="Video upload failed",
            ),
        }
        definition = definitions[name]
        if batch_size is not None:
            definition["batch_size"] = batch_size
        return StageDefinition(
            name=name,
            claim_mode=c.claim_mode_for(name),
            personas=personas,
            **definition,
        )

    # ------------------------------------------------------------ accounts

    def _accounts(self, account_id: Optional[str]) -> list[Account]:
        if account_id:
            account = self.store.get_account(account_id)
            if account is None:
                raise AccountNotFoundError(f"Account {account_id} not found")
            return [account]
        return self.store.active_accounts()

    # -------------------------------------------------------------- stages

    def seed_jobs(
        self,
        account_id: Optional[str] = None,
        persona: Optional[str] = None,
        count: Optional[int] = None,
        preferred_layout: Optional[str] = None,
    ) -> int:
        """Create step-1 jobs for the selected personas, topping up to `count` waiting jobs"""
        count = count or self.config.GENERATE_BATCH_SIZE
        due = personas_due_for_generation() if self.config.SCHEDULE_ENABLED and not persona else None

        targets = []
        for account in self._accounts(account_id):
            personas = [p for p in (account.personas or []) if p in PERSONAS]
            if persona:
                personas = [p for p in personas if p == persona]
            if due is not None:
                personas = restrict(personas, due)
            targets.extend((account.id, p) for p in personas)

        if not targets:
            logger.info("No personas to generate for (account=%s, persona=%s)", account_id, persona)
            return 0

        waiting = len(self.store.fetch_pending_jobs(STEP_GENERATION, count, account_id=account_id,
                                                    personas=[p for _, p in targets]))
        to_create = max(0, count - waiting)

        payload = {"preferred_layout": preferred_layout} if preferred_layout else {}
        for i in range(to_create):
            target_account, target_persona = targets[i % len(targets)]
            topic = pick_topic(target_persona, self.rng)
            self.store.insert_job(
                target_account,
                target_persona,
                topic.key,
                topic_display_name=topic.display_name,
                payload=payload,
            )
        if to_create:
            logger.info("Seeded %s generation job(s) across %s persona slot(s)", to_create, len(targets))
        return to_create

    def run_generate(
        self,
        account_id: Optional[str] = None,
        persona: Optional[str] = None,
        count: Optional[int] = None,
        preferred_layout: Optional[str] = None,
        seed: bool = True,
    ) -> StageResult:
        """Top up step 1 (unless `seed` is off), then generate what is waiting"""
        created = self.seed_jobs(account_id, persona, count, preferred_layout) if seed else 0
        personas = [persona] if persona else None
        result = self.runner.run_stage(
            self.stage(STAGE_GENERATE, personas=personas, batch_size=count), account_id
        )
        result.created_count = created
        return result

    def run_frames(self, account_id: Optional[str] = None) -> StageResult:
        return self.runner.run_stage(self.stage(STAGE_FRAMES), account_id)

    def run_assembly(self, account_id: Optional[str] = None) -> StageResult:
        return self.runner.run_stage(self.stage(STAGE_ASSEMBLY), account_id)

    def run_upload(self, account_id: Optional[str] = None) -> StageResult:
        """Publish per account, each under its own daily upload cap"""
        combined = StageResult(stage=STAGE_UPLOAD)
        personas = personas_due_for_upload() if self.config.SCHEDULE_ENABLED else None
        if personas == []:
            combined.message = "No uploads scheduled this hour"
            return combined

        today = _start_of_day(self.store.now())
        skipped = []
        first = True
        for account in self._accounts(account_id):
            remaining = self.config.MAX_DAILY_UPLOADS - self.store.count_uploads_since(account.id, today)
            if remaining <= 0:
                logger.info("Account %s reached %s uploads today, skipping", account.id, self.config.MAX_DAILY_UPLOADS)
                skipped.append(account.id)
                continue

            batch_size = min(self.config.UPLOAD_CONCURRENCY, remaining)
            result = self.runner.run_stage(
                self.stage(STAGE_UPLOAD, personas=personas, batch_size=batch_size),
                account.id,
                retry_first=first,
            )
            first = False
            combined.processed_count += result.processed_count
            combined.failed_job_ids.extend(result.failed_job_ids)
            combined.errors.update(result.errors)
            combined.retried_count += result.retried_count

        combined.message = (
            f"{STAGE_UPLOAD}: {combined.processed_count} processed, "
            f"{len(combined.failed_job_ids)} failed"
        )
        if skipped:
            combined.message += f", daily limit reached for {', '.join(skipped)}"
        return combined

    def run(self, name: str, account_id: Optional[str] = None) -> StageResult:
        runners = {
            STAGE_GENERATE: self.run_generate,
            STAGE_FRAMES: self.run_frames,
            STAGE_ASSEMBLY: self.run_assembly,
            STAGE_UPLOAD: self.run_upload,
        }
        return runners[name](account_id=account_id)

    def retry_failed(self) -> int:
        return self.retry_reconciler.retry_failed_jobs()

    def reconcile_orphans(self, account_id: Optional[str] = None) -> ReconcileReport:
        reconciler = OrphanReconciler(self.store, self.youtube_factory)
        account_ids = [account.id for account in self._accounts(account_id)]
        return reconciler.reconcile_all(account_ids)
