from functools import lru_cache

from quiz_pipeline.core.config import settings
from quiz_pipeline.core.database import SessionLocal
from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.pipeline import Pipeline


@lru_cache
def get_job_store() -> JobStore:
    return JobStore(SessionLocal, claim_timeout_minutes=settings.CLAIM_TIMEOUT_MINUTES)


@lru_cache
def get_pipeline() -> Pipeline:
    """One pipeline per process so HTTP clients are reused across triggers"""
    return Pipeline(get_job_store())
