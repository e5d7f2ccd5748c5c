import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from quiz_pipeline.core.admin_auth import verify_trigger_secret
from quiz_pipeline.core.dependencies import get_pipeline
from quiz_pipeline.schemas.jobs import (
    GenerateTriggerRequest,
    ReconcileResponse,
    StageRunResponse,
    StageTriggerRequest,
)
from quiz_pipeline.services.pipeline import (
    AccountNotFoundError,
    Pipeline,
    STAGE_ASSEMBLY,
    STAGE_FRAMES,
    STAGE_UPLOAD,
)
from quiz_pipeline.services.stage_runner import StageResult

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/stages",
    tags=["stages"],
    dependencies=[Depends(verify_trigger_secret)],
)


def _response(result: StageResult) -> StageRunResponse:
    return StageRunResponse(
        stage=result.stage,
        processed_count=result.processed_count,
        failed_job_ids=result.failed_job_ids,
        errors=result.errors,
        retried_count=result.retried_count,
        created_count=result.created_count,
        message=result.message,
    )


def _run(pipeline: Pipeline, stage: str, account_id: Optional[str]) -> StageRunResponse:
    try:
        result = pipeline.run(stage, account_id=account_id)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Stage %s run failed", stage)
        raise HTTPException(status_code=500, detail=f"{stage} run failed: {str(e)[:200]}")
    return _response(result)


@router.post("/generate", response_model=StageRunResponse)
def trigger_generate(
    body: Optional[GenerateTriggerRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Seed generation jobs for the due personas, then generate content for waiting jobs."""
    body = body or GenerateTriggerRequest()
    try:
        result = pipeline.run_generate(
            account_id=body.account_id,
            persona=body.persona,
            count=body.count,
            preferred_layout=body.preferred_layout,
        )
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Generation run failed")
        raise HTTPException(status_code=500, detail=f"generate run failed: {str(e)[:200]}")
    return _response(result)


@router.post("/create-frames", response_model=StageRunResponse)
def trigger_create_frames(
    body: Optional[StageTriggerRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    return _run(pipeline, STAGE_FRAMES, body.account_id if body else None)


@router.post("/assemble-video", response_model=StageRunResponse)
def trigger_assemble_video(
    body: Optional[StageTriggerRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    return _run(pipeline, STAGE_ASSEMBLY, body.account_id if body else None)


@router.post("/upload-videos", response_model=StageRunResponse)
def trigger_upload_videos(
    body: Optional[StageTriggerRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Publish assembled videos, respecting each account's daily upload limit."""
    return _run(pipeline, STAGE_UPLOAD, body.account_id if body else None)


@router.post("/retry-failed")
def trigger_retry_failed(pipeline: Pipeline = Depends(get_pipeline)):
    try:
        count = pipeline.retry_failed()
    except Exception as e:
        logger.exception("Retry run failed")
        raise HTTPException(status_code=500, detail=f"retry run failed: {str(e)[:200]}")
    return {"retriedCount": count, "message": f"Reset {count} failed job(s)"}


@router.post("/reconcile-orphans", response_model=ReconcileResponse)
def trigger_reconcile_orphans(
    body: Optional[StageTriggerRequest] = None,
    pipeline: Pipeline = Depends(get_pipeline),
):
    """Add channel videos missing from the published ledger. Accounts fail independently."""
    try:
        report = pipeline.reconcile_orphans(body.account_id if body else None)
    except AccountNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        logger.exception("Orphan reconciliation failed")
        raise HTTPException(status_code=500, detail=f"reconcile run failed: {str(e)[:200]}")

    return ReconcileResponse(
        recovered=report.recovered,
        errors=report.errors,
        message=f"Recovered {report.total_recovered} video(s) across {len(report.recovered)} account(s)",
    )
