import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
from sqlalchemy import desc, and_, func
from typing import Optional
from datetime import datetime, date

from quiz_pipeline.core.database import get_db
from quiz_pipeline.core.admin_auth import get_current_admin
from quiz_pipeline.core.dependencies import get_job_store
from quiz_pipeline.models.quiz_job import QuizJob, JOB_STATUSES, STATUS_FAILED
from quiz_pipeline.models.uploaded_video import UploadedVideo
from quiz_pipeline.schemas.jobs import (
    PaginatedQuizJobsResponse,
    QuizJobDetailResponse,
    QuizJobResponse,
)
from quiz_pipeline.services.job_store import JobNotFoundError, JobStore

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/quiz-jobs",
    tags=["quiz-jobs"],
    dependencies=[Depends(get_current_admin)],
)


def _date_filters(start_date: Optional[date], end_date: Optional[date]) -> list:
    filters = []
    if start_date:
        filters.append(QuizJob.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        # Include the entire end_date day
        filters.append(QuizJob.created_at <= datetime.combine(end_date, datetime.max.time()))
    return filters


@router.get("/list", response_model=PaginatedQuizJobsResponse)
def list_quiz_jobs(
    db: Session = Depends(get_db),
    page: int = Query(1, ge=1, description="Page number (starts from 1)"),
    page_size: int = Query(20, ge=1, le=100, description="Number of items per page (max 100)"),
    status: Optional[str] = Query(None, description="Filter by status: pending, frames_pending, assembly_pending, upload_pending, completed, failed"),
    step: Optional[int] = Query(None, ge=1, le=4, description="Filter by pipeline step (1-4)"),
    persona: Optional[str] = Query(None, description="Filter by persona"),
    account_id: Optional[str] = Query(None, description="Filter by account"),
    start_date: Optional[date] = Query(None, description="Created from date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Created to date (YYYY-MM-DD)"),
):
    """
    Paginated quiz jobs, newest first.

    - **status** / **step**: pipeline position
    - **persona** / **account_id**: content scope
    - **start_date** / **end_date**: creation date range
    """
    if status and status not in JOB_STATUSES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid status. Must be one of: {', '.join(JOB_STATUSES)}"
        )

    query = db.query(QuizJob)
    filters = _date_filters(start_date, end_date)
    filters_applied = {}

    for name, column, value in (
        ("status", QuizJob.status, status),
        ("step", QuizJob.step, step),
        ("persona", QuizJob.persona, persona),
        ("account_id", QuizJob.account_id, account_id),
    ):
        if value is not None:
            filters.append(column == value)
            filters_applied[name] = value

    if start_date:
        filters_applied["start_date"] = start_date.isoformat()
    if end_date:
        filters_applied["end_date"] = end_date.isoformat()

    if filters:
        query = query.filter(and_(*filters))

    total = query.count()
    total_pages = (total + page_size - 1) // page_size
    offset = (page - 1) * page_size

    jobs = query.order_by(desc(QuizJob.created_at)).offset(offset).limit(page_size).all()

    if filters_applied:
        filter_desc = ", ".join(f"{key}={value}" for key, value in filters_applied.items())
        message = f"Found {total} quiz job(s) with filters: {filter_desc}. Showing page {page} of {total_pages}."
    else:
        message = f"Found {total} quiz job(s). Showing page {page} of {total_pages}."

    return PaginatedQuizJobsResponse(
        total=total,
        page=page,
        page_size=page_size,
        total_pages=total_pages,
        items=[QuizJobResponse.model_validate(job) for job in jobs],
        filters_applied=filters_applied,
        message=message,
    )


@router.get("/stats/summary")
def get_job_stats(
    db: Session = Depends(get_db),
    start_date: Optional[date] = Query(None, description="Stats from date (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Stats to date (YYYY-MM-DD)"),
):
    """
    Job counts by status and, for failed jobs, by the step they failed at.
    """
    filters = _date_filters(start_date, end_date)

    status_query = db.query(QuizJob.status, func.count(QuizJob.id))
    if filters:
        status_query = status_query.filter(and_(*filters))
    status_counts = {status: count for status, count in status_query.group_by(QuizJob.status).all()}

    failed_query = db.query(QuizJob.step, func.count(QuizJob.id)).filter(QuizJob.status == STATUS_FAILED)
    if filters:
        failed_query = failed_query.filter(and_(*filters))
    failed_by_step = {str(step): count for step, count in failed_query.group_by(QuizJob.step).all()}

    return {
        "total_jobs": sum(status_counts.values()),
        "status_breakdown": status_counts,
        "failed_jobs_count": status_counts.get(STATUS_FAILED, 0),
        "failed_step_breakdown": failed_by_step,
        "date_range": {
            "start_date": start_date.isoformat() if start_date else None,
            "end_date": end_date.isoformat() if end_date else None,
        }
    }


@router.get("/{job_id}", response_model=QuizJobDetailResponse)
def get_quiz_job(
    job_id: str,
    db: Session = Depends(get_db)
):
    """
    A single job with its full payload and, once published, the video id.
    """
    job = db.query(QuizJob).filter(QuizJob.id == job_id).first()

    if not job:
        raise HTTPException(
            status_code=404,
            detail=f"Quiz job with ID {job_id} not found"
        )

    video = db.query(UploadedVideo).filter(UploadedVideo.job_id == job_id).first()

    response = QuizJobDetailResponse.model_validate(job)
    response.youtube_video_id = video.youtube_video_id if video else None
    return response


@router.patch("/{job_id}/reset")
def reset_quiz_job(
    job_id: str,
    store: JobStore = Depends(get_job_store),
):
    """
    Send a job back to the pending status of its current step.

    Attempts are cleared, so a job that hit the retry cap gets a fresh set.
    """
    try:
        job = store.reset_job(job_id)
    except JobNotFoundError:
        raise HTTPException(
            status_code=404,
            detail=f"Quiz job with ID {job_id} not found"
        )

    logger.info("Job %s reset to %s by admin", job_id, job.status)
    return {
        "success": True,
        "message": f"Job {job_id} reset to {job.status} at step {job.step}",
        "job": QuizJobResponse.model_validate(job),
    }
