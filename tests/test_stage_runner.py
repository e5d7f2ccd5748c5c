"""Tests for the per-stage claim/work/advance loop."""

import threading
from unittest.mock import MagicMock

import pytest

from quiz_pipeline.models.quiz_job import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_FRAMES_PENDING,
    STATUS_PENDING,
    STEP_FRAMES,
    STEP_GENERATION,
    STEP_PUBLISH,
)
from quiz_pipeline.services.retry_reconciler import RetryPolicy, RetryReconciler
from quiz_pipeline.services.stage_runner import (
    CLAIM_BATCH,
    CLAIM_SINGLE,
    StageDefinition,
    StageRunner,
    truncate_error,
)


def generate_stage(work, **kwargs):
    defaults = dict(
        name="generate",
        step=STEP_GENERATION,
        next_step=STEP_FRAMES,
        next_status=STATUS_FRAMES_PENDING,
        work=work,
        claim_mode=CLAIM_BATCH,
        batch_size=5,
        error_prefix="Generation failed",
    )
    defaults.update(kwargs)
    return StageDefinition(**defaults)


@pytest.fixture
def runner(store):
    return StageRunner(store, RetryReconciler(store, RetryPolicy(max_attempts=3)))


class TestStageDefinition:
    def test_unknown_claim_mode(self):
        with pytest.raises(ValueError):
            generate_stage(lambda job: {}, claim_mode="all")

    def test_cannot_move_backwards(self):
        with pytest.raises(ValueError):
            generate_stage(lambda job: {}, step=STEP_FRAMES, next_step=STEP_GENERATION)

    def test_claim_limit(self):
        assert generate_stage(lambda job: {}, claim_mode=CLAIM_SINGLE, batch_size=5).claim_limit == 1
        assert generate_stage(lambda job: {}, batch_size=4).claim_limit == 4


class TestRunStage:
    def test_one_failure_does_not_stop_the_batch(self, store, make_job, runner):
        """Five claimed jobs, the third raises: four advance and one fails at step 1"""
        ids = [make_job() for _ in range(5)]

        def work(job):
            if job.id == ids[2]:
                raise RuntimeError("model returned garbage")
            return {"content": {"question": job.id}}

        result = runner.run_stage(generate_stage(work))

        assert result.processed_count == 4
        assert result.failed_job_ids == [ids[2]]
        assert result.errors[ids[2]] == "Generation failed: model returned garbage"
        for job_id in ids:
            job = store.get_job(job_id)
            assert job.locked_by is None
            if job_id == ids[2]:
                assert (job.step, job.status, job.attempts) == (STEP_GENERATION, STATUS_FAILED, 1)
            else:
                assert (job.step, job.status) == (STEP_FRAMES, STATUS_FRAMES_PENDING)
                assert job.payload["content"] == {"question": job_id}
                assert job.error_message is None

    def test_single_mode_claims_the_oldest_only(self, store, make_job, runner):
        ids = [make_job() for _ in range(3)]
        work = MagicMock(return_value={})

        result = runner.run_stage(generate_stage(work, claim_mode=CLAIM_SINGLE))

        assert result.processed_count == 1
        assert work.call_args.args[0].id == ids[0]
        assert [store.get_job(i).status for i in ids] == [STATUS_FRAMES_PENDING, STATUS_PENDING, STATUS_PENDING]

    def test_no_work(self, runner):
        work = MagicMock()
        result = runner.run_stage(generate_stage(work))
        assert result.processed_count == 0
        assert result.failed_job_ids == []
        assert "No jobs" in result.message
        work.assert_not_called()

    def test_error_message_is_truncated(self, store, make_job, runner):
        job_id = make_job()

        def work(job):
            raise RuntimeError("x" * 2000)

        result = runner.run_stage(generate_stage(work))
        assert len(result.errors[job_id]) == 500
        assert len(store.get_job(job_id).error_message) == 500

    def test_final_stage_completes(self, store, make_job, runner):
        job_id = make_job(step=STEP_PUBLISH)
        stage = generate_stage(
            lambda job: {"youtube_video_id": "vid1"},
            name="upload",
            step=STEP_PUBLISH,
            next_step=STEP_PUBLISH,
            next_status=STATUS_COMPLETED,
        )
        runner.run_stage(stage)
        job = store.get_job(job_id)
        assert job.status == STATUS_COMPLETED
        assert job.payload["youtube_video_id"] == "vid1"

    def test_filters_by_account(self, store, make_job, runner):
        mine = make_job(account_id="health_shots", persona="eye_health_tips")
        make_job()
        work = MagicMock(return_value={})
        result = runner.run_stage(generate_stage(work), account_id="health_shots")
        assert result.processed_count == 1
        assert work.call_args.args[0].id == mine

    def test_retries_eligible_failures_before_claiming(self, store, make_job, runner):
        job_id = make_job()
        store.mark_failed(job_id, "boom", lambda n: 0)

        result = runner.run_stage(generate_stage(lambda job: {}))

        assert result.retried_count == 1
        assert result.processed_count == 1
        assert store.get_job(job_id).step == STEP_FRAMES

    def test_capped_job_is_not_retried(self, store, make_job, runner):
        job_id = make_job()
        for _ in range(3):
            store.mark_failed(job_id, "boom", lambda n: 0)
        result = runner.run_stage(generate_stage(lambda job: {}))
        assert result.retried_count == 0
        assert store.get_job(job_id).status == STATUS_FAILED

    def test_runs_work_concurrently(self, store, make_job, runner):
        for _ in range(3):
            make_job()
        barrier = threading.Barrier(3, timeout=5)
        seen_threads = set()

        def work(job):
            seen_threads.add(threading.get_ident())
            barrier.wait()
            return {}

        result = runner.run_stage(generate_stage(work, max_workers=3))

        assert result.processed_count == 3
        assert len(seen_threads) == 3

    def test_failure_backoff_follows_policy(self, store, make_job, clock):
        policy = RetryPolicy(max_attempts=3, backoff_base_seconds=100, backoff_max_seconds=1000)
        runner = StageRunner(store, RetryReconciler(store, policy))
        job_id = make_job()

        def work(job):
            raise RuntimeError("boom")

        runner.run_stage(generate_stage(work))
        job = store.get_job(job_id)
        assert (job.next_eligible_at - clock()).total_seconds() == 100


class TestTruncateError:
    def test_prefix(self):
        assert truncate_error(ValueError("bad"), "Upload failed") == "Upload failed: bad"

    def test_empty_message_uses_exception_name(self):
        assert truncate_error(TimeoutError()) == "TimeoutError"

    def test_max_length(self):
        assert truncate_error(ValueError("y" * 100), "P", max_length=10) == "P: yyyyyyy"
