"""Tests for retry backoff and the duplicate content guard."""

from unittest.mock import MagicMock

from quiz_pipeline.models.quiz_job import STATUS_FRAMES_PENDING, STATUS_PENDING, STEP_FRAMES
from quiz_pipeline.services.duplicate_guard import DuplicateGuard
from quiz_pipeline.services.retry_reconciler import RetryPolicy, RetryReconciler


class TestRetryPolicy:
    def test_exponential_backoff(self):
        policy = RetryPolicy(backoff_base_seconds=300, backoff_max_seconds=21600)
        assert [policy.backoff_seconds(n) for n in (1, 2, 3, 4)] == [300, 600, 1200, 2400]

    def test_backoff_is_capped(self):
        policy = RetryPolicy(backoff_base_seconds=300, backoff_max_seconds=1000)
        assert policy.backoff_seconds(10) == 1000

    def test_no_attempts_no_delay(self):
        assert RetryPolicy().backoff_seconds(0) == 0


class TestRetryReconciler:
    def test_resets_all_steps(self, store, make_job):
        gen = make_job()
        frames = make_job(step=STEP_FRAMES)
        for job_id in (gen, frames):
            store.mark_failed(job_id, "boom", lambda n: 0)

        assert RetryReconciler(store).retry_failed_jobs() == 2
        assert store.get_job(gen).status == STATUS_PENDING
        assert store.get_job(frames).status == STATUS_FRAMES_PENDING

    def test_passes_cap_to_store(self):
        store = MagicMock()
        store.reset_failed_jobs.return_value = 0
        RetryReconciler(store, RetryPolicy(max_attempts=5)).retry_failed_jobs(step=2)
        store.reset_failed_jobs.assert_called_once_with(5, step=2)


class TestDuplicateGuard:
    def _stamp(self, store, job_id, content_hash):
        store.update_job(job_id, payload_patch={"variation_markers": {"content_hash": content_hash}})

    def test_detects_recent_duplicate(self, store, make_job):
        self._stamp(store, make_job(), "CHSAME")
        guard = DuplicateGuard(store, window_hours=24)
        assert guard.is_duplicate("CHSAME", "english_shots", "english_vocab_builder") is True
        assert guard.is_duplicate("CHOTHER", "english_shots", "english_vocab_builder") is False

    def test_scoped_to_account_and_persona(self, store, make_job):
        self._stamp(store, make_job(), "CHSAME")
        guard = DuplicateGuard(store)
        assert guard.is_duplicate("CHSAME", "health_shots", "english_vocab_builder") is False
        assert guard.is_duplicate("CHSAME", "english_shots", "brain_health_tips") is False

    def test_outside_window_is_not_duplicate(self, store, make_job, clock):
        self._stamp(store, make_job(), "CHSAME")
        clock.advance(hours=25)
        assert DuplicateGuard(store, window_hours=24).is_duplicate(
            "CHSAME", "english_shots", "english_vocab_builder"
        ) is False

    def test_own_job_is_excluded(self, store, make_job):
        job_id = make_job()
        self._stamp(store, job_id, "CHSAME")
        assert DuplicateGuard(store).is_duplicate(
            "CHSAME", "english_shots", "english_vocab_builder", exclude_job_id=job_id
        ) is False

    def test_lookup_failure_is_treated_as_new(self):
        store = MagicMock()
        store.find_recent_hash.side_effect = RuntimeError("database gone")
        assert DuplicateGuard(store).is_duplicate("CH1", "a", "p") is False
