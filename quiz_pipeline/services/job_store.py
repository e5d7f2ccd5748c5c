"""
Durable job state.

Every operation opens its own short session, so a JobStore can be shared by
the threads of one stage run. Claiming is a conditional UPDATE on the claim
token columns: only the invocation whose UPDATE matched the row owns the job.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from sqlalchemy import and_, or_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from quiz_pipeline.core.database import SessionLocal
from quiz_pipeline.core.timezone import get_ist_now
from quiz_pipeline.models.account import Account
from quiz_pipeline.models.quiz_job import (
    QuizJob,
    PENDING_STATUS_FOR_STEP,
    STATUS_FAILED,
    STEP_GENERATION,
)
from quiz_pipeline.models.uploaded_video import UploadedVideo

logger = logging.getLogger(__name__)

_UNSET = object()


class JobNotFoundError(LookupError):
    pass


class JobStore:
    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        claim_timeout_minutes: int = 15,
        clock: Callable[[], datetime] = get_ist_now,
    ):
        self._session_factory = session_factory
        self._claim_timeout = timedelta(minutes=claim_timeout_minutes)
        self._clock = clock

    def now(self) -> datetime:
        return self._clock()

    # ------------------------------------------------------------------ jobs

    def insert_job(
        self,
        account_id: str,
        persona: str,
        topic: str,
        topic_display_name: Optional[str] = None,
        payload: Optional[dict] = None,
        step: int = STEP_GENERATION,
    ) -> str:
        now = self.now()
        job = QuizJob(
            id=str(uuid.uuid4()),
            account_id=account_id,
            persona=persona,
            topic=topic,
            topic_display_name=topic_display_name,
            step=step,
            status=PENDING_STATUS_FOR_STEP[step],
            payload=dict(payload or {}),
            attempts=0,
            created_at=now,
            updated_at=now,
        )
        with self._session_factory() as db:
            db.add(job)
            db.commit()
        logger.info("Inserted job %s (%s/%s, topic=%s)", job.id, account_id, persona, topic)
        return job.id

    def get_job(self, job_id: str) -> Optional[QuizJob]:
        with self._session_factory() as db:
            return db.query(QuizJob).filter(QuizJob.id == job_id).first()

    def _claimable(self, step: int, account_id: Optional[str], personas: Optional[Iterable[str]]):
        stale_before = self.now() - self._claim_timeout
        filters = [
            QuizJob.step == step,
            QuizJob.status == PENDING_STATUS_FOR_STEP[step],
            or_(QuizJob.locked_by.is_(None), QuizJob.locked_at < stale_before),
        ]
        if account_id:
            filters.append(QuizJob.account_id == account_id)
        if personas is not None:
            filters.append(QuizJob.persona.in_(list(personas)))
        return and_(*filters)

    def fetch_pending_jobs(
        self,
        step: int,
        limit: int,
        account_id: Optional[str] = None,
        personas: Optional[Iterable[str]] = None,
    ) -> list[QuizJob]:
        """Oldest-first unclaimed jobs waiting at `step`"""
        with self._session_factory() as db:
            return (
                db.query(QuizJob)
                .filter(self._claimable(step, account_id, personas))
                .order_by(QuizJob.created_at.asc(), QuizJob.id.asc())
                .limit(limit)
                .all()
            )

    def fetch_oldest_pending_job(
        self,
        step: int,
        account_id: Optional[str] = None,
        personas: Optional[Iterable[str]] = None,
    ) -> Optional[QuizJob]:
        jobs = self.fetch_pending_jobs(step, 1, account_id, personas)
        return jobs[0] if jobs else None

    def claim_jobs(
        self,
        step: int,
        limit: int,
        claim_token: str,
        account_id: Optional[str] = None,
        personas: Optional[Iterable[str]] = None,
    ) -> list[QuizJob]:
        """
        Claim up to `limit` oldest pending jobs at `step` for `claim_token`.

        Candidates are read with FOR UPDATE SKIP LOCKED where the database
        supports it, then each one is taken with a compare-and-set UPDATE.
        A row another invocation claimed first simply fails the compare.
        """
        if limit <= 0:
            return []
        personas = list(personas) if personas is not None else None

        claimed_ids = []
        with self._session_factory() as db:
            candidate_ids = [
                row.id
                for row in db.query(QuizJob.id)
                .filter(self._claimable(step, account_id, personas))
                .order_by(QuizJob.created_at.asc(), QuizJob.id.asc())
                .limit(limit * 3)
                .with_for_update(skip_locked=True)
                .all()
            ]

            for job_id in candidate_ids:
                if len(claimed_ids) >= limit:
                    break
                now = self.now()
                matched = (
                    db.query(QuizJob)
                    .filter(QuizJob.id == job_id, self._claimable(step, account_id, personas))
                    .update(
                        {QuizJob.locked_by: claim_token, QuizJob.locked_at: now},
                        synchronize_session=False,
                    )
                )
                if matched == 1:
                    claimed_ids.append(job_id)
            db.commit()

            if not claimed_ids:
                return []
            return (
                db.query(QuizJob)
                .filter(QuizJob.id.in_(claimed_ids))
                .order_by(QuizJob.created_at.asc(), QuizJob.id.asc())
                .all()
            )

    def _load_for_write(self, db: Session, job_id: str) -> QuizJob:
        job = db.query(QuizJob).filter(QuizJob.id == job_id).with_for_update().first()
        if not job:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    def update_job(
        self,
        job_id: str,
        step: Optional[int] = None,
        status: Optional[str] = None,
        payload_patch: Optional[dict] = None,
        error_message=_UNSET,
        claim_token: Optional[str] = None,
    ) -> bool:
        """
        Apply a stage transition. The payload is merged, never replaced.

        With `claim_token`, the update only happens if the caller still holds
        the claim; returns False when the claim was lost.
        """
        with self._session_factory() as db:
            job = self._load_for_write(db, job_id)
            if claim_token is not None and job.locked_by != claim_token:
                logger.warning("Job %s claim lost (held by %s), skipping update", job_id, job.locked_by)
                db.rollback()
                return False

            if step is not None:
                if step < job.step:
                    raise ValueError(f"Job {job_id} step cannot move back from {job.step} to {step}")
                job.step = step
            if status is not None:
                job.status = status
            if payload_patch:
                job.payload = {**(job.payload or {}), **payload_patch}
                markers = payload_patch.get("variation_markers")
                if isinstance(markers, dict) and markers.get("content_hash"):
                    job.content_hash = markers["content_hash"]
            if error_message is not _UNSET:
                job.error_message = error_message
            if claim_token is not None:
                job.locked_by = None
                job.locked_at = None
            job.updated_at = self.now()
            db.commit()
        return True

    def mark_failed(
        self,
        job_id: str,
        error_message: str,
        backoff_seconds: Callable[[int], float],
        claim_token: Optional[str] = None,
    ) -> Optional[QuizJob]:
        """Fail a job at its current step: attempts +1, next retry pushed out by the backoff"""
        with self._session_factory() as db:
            job = self._load_for_write(db, job_id)
            if claim_token is not None and job.locked_by != claim_token:
                logger.warning("Job %s claim lost (held by %s), not marking failed", job_id, job.locked_by)
                db.rollback()
                return None

            now = self.now()
            job.attempts = (job.attempts or 0) + 1
            job.status = STATUS_FAILED
            job.error_message = error_message
            job.next_eligible_at = now + timedelta(seconds=backoff_seconds(job.attempts))
            job.locked_by = None
            job.locked_at = None
            job.updated_at = now
            db.commit()
            return job

    def reset_failed_jobs(self, max_attempts: int, step: Optional[int] = None) -> int:
        """Put retry-eligible failed jobs back to their step's pending status"""
        now = self.now()
        steps = [step] if step is not None else list(PENDING_STATUS_FOR_STEP)
        total = 0
        with self._session_factory() as db:
            for s in steps:
                total += (
                    db.query(QuizJob)
                    .filter(
                        QuizJob.status == STATUS_FAILED,
                        QuizJob.step == s,
                        QuizJob.attempts < max_attempts,
                        or_(QuizJob.next_eligible_at.is_(None), QuizJob.next_eligible_at <= now),
                    )
                    .update(
                        {
                            QuizJob.status: PENDING_STATUS_FOR_STEP[s],
                            QuizJob.error_message: None,
                            QuizJob.locked_by: None,
                            QuizJob.locked_at: None,
                            QuizJob.updated_at: now,
                        },
                        synchronize_session=False,
                    )
                )
            db.commit()
        return total

    def reset_job(self, job_id: str) -> QuizJob:
        """Manual retry: clears attempts so the retry cap starts over"""
        with self._session_factory() as db:
            job = self._load_for_write(db, job_id)
            job.status = PENDING_STATUS_FOR_STEP[job.step]
            job.attempts = 0
            job.next_eligible_at = None
            job.error_message = None
            job.locked_by = None
            job.locked_at = None
            job.updated_at = self.now()
            db.commit()
            return job

    def find_recent_hash(
        self,
        content_hash: str,
        account_id: str,
        persona: str,
        since: datetime,
        exclude_job_id: Optional[str] = None,
    ) -> bool:
        with self._session_factory() as db:
            query = db.query(QuizJob.id).filter(
                QuizJob.account_id == account_id,
                QuizJob.persona == persona,
                QuizJob.content_hash == content_hash,
                QuizJob.created_at >= since,
            )
            if exclude_job_id:
                query = query.filter(QuizJob.id != exclude_job_id)
            return query.first() is not None

    # ---------------------------------------------------------------- ledger

    def published_video_for_job(self, job_id: str) -> Optional[UploadedVideo]:
        with self._session_factory() as db:
            return db.query(UploadedVideo).filter(UploadedVideo.job_id == job_id).first()

    def is_published(self, youtube_video_id: str) -> bool:
        with self._session_factory() as db:
            return (
                db.query(UploadedVideo.id)
                .filter(UploadedVideo.youtube_video_id == youtube_video_id)
                .first()
                is not None
            )

    def record_published_video(
        self,
        account_id: str,
        youtube_video_id: str,
        title: str,
        job_id: Optional[str] = None,
        description: Optional[str] = None,
        tags: Optional[list] = None,
        uploaded_at: Optional[datetime] = None,
    ) -> bool:
        """
        Insert-if-absent on youtube_video_id. Returns True when a row was added.

        A row recorded without a job (by the orphan reconciler) is linked to
        `job_id` when the pipeline records the same video afterwards.
        """
        now = self.now()
        with self._session_factory() as db:
            existing = (
                db.query(UploadedVideo)
                .filter(UploadedVideo.youtube_video_id == youtube_video_id)
                .first()
            )
            if existing:
                if job_id and existing.job_id is None:
                    existing.job_id = job_id
                    db.commit()
                    logger.info("Linked reconciled video %s to job %s", youtube_video_id, job_id)
                return False
            db.add(UploadedVideo(
                job_id=job_id,
                account_id=account_id,
                youtube_video_id=youtube_video_id,
                title=(title or "")[:255],
                description=description,
                tags=tags or [],
                uploaded_at=uploaded_at or now,
                created_at=now,
            ))
            try:
                db.commit()
            except IntegrityError:
                # Inserted concurrently by another run
                db.rollback()
                return False
        return True

    def published_video_ids(self, account_id: str) -> set[str]:
        with self._session_factory() as db:
            rows = (
                db.query(UploadedVideo.youtube_video_id)
                .filter(UploadedVideo.account_id == account_id)
                .all()
            )
            return {row.youtube_video_id for row in rows}

    def count_uploads_since(self, account_id: str, since: datetime) -> int:
        with self._session_factory() as db:
            return (
                db.query(func.count(UploadedVideo.id))
                .filter(
                    UploadedVideo.account_id == account_id,
                    UploadedVideo.job_id.isnot(None),
                    UploadedVideo.created_at >= since,
                )
                .scalar()
            ) or 0

    def recent_published_titles(self, account_id: str, limit: int = 20) -> list[str]:
        with self._session_factory() as db:
            rows = (
                db.query(UploadedVideo.title)
                .filter(UploadedVideo.account_id == account_id)
                .order_by(UploadedVideo.uploaded_at.desc())
                .limit(limit)
                .all()
            )
            return [row.title for row in rows if row.title]

    # -------------------------------------------------------------- accounts

    def get_account(self, account_id: str) -> Optional[Account]:
        with self._session_factory() as db:
            return db.query(Account).filter(Account.id == account_id).first()

    def active_accounts(self) -> list[Account]:
        with self._session_factory() as db:
            return (
                db.query(Account)
                .filter(Account.status == "active")
                .order_by(Account.id.asc())
                .all()
            )

    def active_account_ids(self) -> list[str]:
        return [account.id for account in self.active_accounts()]

    def save_uploads_playlist(self, account_id: str, channel_id: str, playlist_id: str) -> None:
        with self._session_factory() as db:
            account = db.query(Account).filter(Account.id == account_id).first()
            if account:
                account.channel_id = channel_id
                account.uploads_playlist_id = playlist_id
                account.updated_at = self.now()
                db.commit()
