"""Tests for JobStore claiming, transitions and the published-video ledger."""

import pytest

from quiz_pipeline.models.quiz_job import (
    STATUS_FAILED,
    STATUS_FRAMES_PENDING,
    STATUS_PENDING,
    STEP_FRAMES,
    STEP_GENERATION,
)
from quiz_pipeline.services.job_store import JobNotFoundError


def no_backoff(attempts):
    return 0


class TestInsertAndFetch:
    def test_insert_creates_pending_job(self, store, make_job):
        job = store.get_job(make_job())
        assert job.step == STEP_GENERATION
        assert job.status == STATUS_PENDING
        assert job.attempts == 0
        assert job.payload == {}

    def test_insert_at_later_step_uses_that_steps_status(self, store, make_job):
        job = store.get_job(make_job(step=STEP_FRAMES, payload={"content": {"question": "Q"}}))
        assert job.status == STATUS_FRAMES_PENDING
        assert job.payload == {"content": {"question": "Q"}}

    def test_fetch_is_oldest_first(self, store, make_job):
        ids = [make_job() for _ in range(4)]
        assert [job.id for job in store.fetch_pending_jobs(STEP_GENERATION, 10)] == ids

    def test_fetch_filters_by_step_account_and_persona(self, store, make_job):
        wanted = make_job(account_id="health_shots", persona="eye_health_tips")
        make_job(account_id="english_shots")
        make_job(account_id="health_shots", persona="brain_health_tips")
        make_job(account_id="health_shots", persona="eye_health_tips", step=STEP_FRAMES)

        jobs = store.fetch_pending_jobs(STEP_GENERATION, 10, account_id="health_shots",
                                        personas=["eye_health_tips"])
        assert [job.id for job in jobs] == [wanted]

    def test_fetch_oldest_pending_job(self, store, make_job):
        first = make_job()
        make_job()
        assert store.fetch_oldest_pending_job(STEP_GENERATION).id == first
        assert store.fetch_oldest_pending_job(STEP_FRAMES) is None


class TestClaim:
    def test_claim_takes_oldest_up_to_limit(self, store, make_job):
        ids = [make_job() for _ in range(5)]
        claimed = store.claim_jobs(STEP_GENERATION, 3, "run-a")
        assert [job.id for job in claimed] == ids[:3]
        assert all(job.locked_by == "run-a" for job in claimed)

    def test_second_claim_gets_disjoint_jobs(self, store, make_job):
        ids = [make_job() for _ in range(4)]
        first = {job.id for job in store.claim_jobs(STEP_GENERATION, 2, "run-a")}
        second = {job.id for job in store.claim_jobs(STEP_GENERATION, 10, "run-b")}
        assert first.isdisjoint(second)
        assert first | second == set(ids)

    def test_nothing_left_to_claim(self, store, make_job):
        make_job()
        store.claim_jobs(STEP_GENERATION, 5, "run-a")
        assert store.claim_jobs(STEP_GENERATION, 5, "run-b") == []

    def test_zero_limit_claims_nothing(self, store, make_job):
        make_job()
        assert store.claim_jobs(STEP_GENERATION, 0, "run-a") == []

    def test_stale_claim_can_be_taken_over(self, store, make_job, clock):
        job_id = make_job()
        store.claim_jobs(STEP_GENERATION, 1, "run-a")

        clock.advance(minutes=10)
        assert store.claim_jobs(STEP_GENERATION, 1, "run-b") == []

        clock.advance(minutes=6)
        assert [job.id for job in store.claim_jobs(STEP_GENERATION, 1, "run-b")] == [job_id]

        # The original holder lost the job and cannot write to it
        assert store.update_job(job_id, step=STEP_FRAMES, status=STATUS_FRAMES_PENDING,
                                claim_token="run-a") is False
        assert store.get_job(job_id).locked_by == "run-b"


class TestUpdate:
    def test_advance_merges_payload_and_clears_claim(self, store, make_job):
        job_id = make_job(payload={"preferred_layout": "mcq"})
        store.claim_jobs(STEP_GENERATION, 1, "run-a")

        ok = store.update_job(
            job_id,
            step=STEP_FRAMES,
            status=STATUS_FRAMES_PENDING,
            payload_patch={"content": {"question": "Q"}, "variation_markers": {"content_hash": "CHABC"}},
            error_message=None,
            claim_token="run-a",
        )

        job = store.get_job(job_id)
        assert ok is True
        assert job.step == STEP_FRAMES
        assert job.status == STATUS_FRAMES_PENDING
        assert job.payload["preferred_layout"] == "mcq"
        assert job.payload["content"] == {"question": "Q"}
        assert job.content_hash == "CHABC"
        assert job.locked_by is None

    def test_step_never_moves_back(self, store, make_job):
        job_id = make_job(step=STEP_FRAMES)
        with pytest.raises(ValueError):
            store.update_job(job_id, step=STEP_GENERATION)
        assert store.get_job(job_id).step == STEP_FRAMES

    def test_unknown_job(self, store):
        with pytest.raises(JobNotFoundError):
            store.update_job("missing", status=STATUS_FAILED)


class TestFailureAndRetry:
    def test_mark_failed_keeps_step_and_counts_attempt(self, store, make_job, clock):
        job_id = make_job(step=STEP_FRAMES)
        store.claim_jobs(STEP_FRAMES, 1, "run-a")

        store.mark_failed(job_id, "Frame creation failed: boom", lambda n: 60 * n, claim_token="run-a")

        job = store.get_job(job_id)
        assert job.step == STEP_FRAMES
        assert job.status == STATUS_FAILED
        assert job.attempts == 1
        assert job.error_message == "Frame creation failed: boom"
        assert job.locked_by is None
        assert (job.next_eligible_at - clock()).total_seconds() == 60

    def test_reset_waits_for_backoff(self, store, make_job, clock):
        job_id = make_job()
        store.mark_failed(job_id, "boom", lambda n: 300)

        assert store.reset_failed_jobs(max_attempts=3) == 0
        clock.advance(seconds=300)
        assert store.reset_failed_jobs(max_attempts=3) == 1

        job = store.get_job(job_id)
        assert job.status == STATUS_PENDING
        assert job.error_message is None
        assert job.attempts == 1

    def test_reset_respects_attempt_cap(self, store, make_job):
        job_id = make_job()
        for _ in range(3):
            store.mark_failed(job_id, "boom", no_backoff)
        assert store.reset_failed_jobs(max_attempts=3) == 0
        assert store.get_job(job_id).status == STATUS_FAILED

    def test_reset_returns_job_to_its_own_step(self, store, make_job):
        job_id = make_job(step=STEP_FRAMES)
        store.mark_failed(job_id, "boom", no_backoff)
        store.reset_failed_jobs(max_attempts=3)
        job = store.get_job(job_id)
        assert job.step == STEP_FRAMES
        assert job.status == STATUS_FRAMES_PENDING

    def test_reset_limited_to_one_step(self, store, make_job):
        gen = make_job()
        frames = make_job(step=STEP_FRAMES)
        store.mark_failed(gen, "boom", no_backoff)
        store.mark_failed(frames, "boom", no_backoff)

        assert store.reset_failed_jobs(max_attempts=3, step=STEP_FRAMES) == 1
        assert store.get_job(gen).status == STATUS_FAILED

    def test_manual_reset_clears_attempts(self, store, make_job):
        job_id = make_job()
        for _ in range(3):
            store.mark_failed(job_id, "boom", no_backoff)
        job = store.reset_job(job_id)
        assert job.status == STATUS_PENDING
        assert job.attempts == 0
        assert job.next_eligible_at is None


class TestFindRecentHash:
    def test_matches_within_account_and_persona(self, store, make_job, clock):
        job_id = make_job()
        store.update_job(job_id, payload_patch={"variation_markers": {"content_hash": "CH1"}})
        since = clock().replace(hour=0)

        assert store.find_recent_hash("CH1", "english_shots", "english_vocab_builder", since)
        assert not store.find_recent_hash("CH1", "other_account", "english_vocab_builder", since)
        assert not store.find_recent_hash("CH1", "english_shots", "english_vocab_builder", since,
                                          exclude_job_id=job_id)
        assert not store.find_recent_hash("CH1", "english_shots", "english_vocab_builder", clock())


class TestLedger:
    def test_record_is_insert_if_absent(self, store):
        assert store.record_published_video("english_shots", "vid1", "Title", job_id="job-1") is True
        assert store.record_published_video("english_shots", "vid1", "Title again", job_id="job-1") is False
        assert store.is_published("vid1")
        assert store.published_video_ids("english_shots") == {"vid1"}
        assert store.published_video_for_job("job-1").youtube_video_id == "vid1"

    def test_pipeline_record_claims_reconciled_row(self, store, clock):
        # Reconciler saw the upload before the publisher wrote its ledger row
        store.record_published_video("english_shots", "vid1", "Title", job_id=None, uploaded_at=clock())
        assert store.published_video_for_job("job-1") is None

        assert store.record_published_video("english_shots", "vid1", "Title", job_id="job-1") is False

        assert store.published_video_for_job("job-1").youtube_video_id == "vid1"
        assert store.count_uploads_since("english_shots", clock().replace(hour=0)) == 1
        # An already linked row keeps its job
        store.record_published_video("english_shots", "vid1", "Title", job_id="job-2")
        assert store.published_video_for_job("job-2") is None

    def test_upload_count_ignores_reconciled_rows(self, store, clock):
        store.record_published_video("english_shots", "vid1", "One", job_id="job-1")
        store.record_published_video("english_shots", "vid2", "Two", job_id=None)
        store.record_published_video("health_shots", "vid3", "Three", job_id="job-3")
        assert store.count_uploads_since("english_shots", clock().replace(hour=0)) == 1

    def test_recent_titles_newest_first(self, store, clock):
        store.record_published_video("english_shots", "vid1", "Older")
        clock.advance(minutes=1)
        store.record_published_video("english_shots", "vid2", "Newer")
        assert store.recent_published_titles("english_shots") == ["Newer", "Older"]


class TestAccounts:
    def test_active_accounts_only(self, store, make_account):
        make_account("health_shots", personas=["eye_health_tips"])
        make_account("english_shots")
        make_account("retired", status="inactive")
        assert store.active_account_ids() == ["english_shots", "health_shots"]

    def test_save_uploads_playlist(self, store, make_account):
        make_account()
        store.save_uploads_playlist("english_shots", "UC123", "UU123")
        account = store.get_account("english_shots")
        assert account.channel_id == "UC123"
        assert account.uploads_playlist_id == "UU123"
