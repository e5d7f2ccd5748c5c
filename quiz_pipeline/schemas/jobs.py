from datetime import datetime
from typing import Any, Optional, List
from pydantic import BaseModel, Field


class StageTriggerRequest(BaseModel):
    account_id: Optional[str] = None


class GenerateTriggerRequest(StageTriggerRequest):
    persona: Optional[str] = None
    count: Optional[int] = Field(None, ge=1, le=50)
    preferred_layout: Optional[str] = None


class StageRunResponse(BaseModel):
    """What a scheduler needs for alerting: counts, failing ids and short reasons"""
    stage: str
    processed_count: int = Field(serialization_alias="processedCount")
    failed_job_ids: List[str] = Field(serialization_alias="failedJobIds")
    errors: dict[str, str] = {}
    retried_count: int = Field(0, serialization_alias="retriedCount")
    created_count: int = Field(0, serialization_alias="createdCount")
    message: str


class ReconcileResponse(BaseModel):
    recovered: dict[str, int]
    errors: dict[str, str]
    message: str


class QuizJobResponse(BaseModel):
    id: str
    account_id: str
    persona: str
    topic: str
    topic_display_name: Optional[str] = None
    step: int
    status: str
    content_hash: Optional[str] = None
    error_message: Optional[str] = None
    attempts: int
    next_eligible_at: Optional[datetime] = None
    locked_by: Optional[str] = None
    locked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class QuizJobDetailResponse(QuizJobResponse):
    payload: dict[str, Any] = {}
    youtube_video_id: Optional[str] = None


class PaginatedQuizJobsResponse(BaseModel):
    total: int
    page: int
    page_size: int
    total_pages: int
    items: List[QuizJobResponse]
    filters_applied: dict
    message: str


class AccountCreateRequest(BaseModel):
    id: str = Field(..., min_length=1, max_length=64)
    name: str
    personas: List[str]
    refresh_token: Optional[str] = None
    channel_id: Optional[str] = None


class AccountResponse(BaseModel):
    id: str
    name: str
    personas: List[str]
    status: str
    channel_id: Optional[str] = None
    has_credentials: bool = False
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
