from sqlalchemy import Column, String, Enum, Integer, DateTime, Text, JSON, Index
from quiz_pipeline.core.database import Base
from quiz_pipeline.core.timezone import get_ist_now

STEP_GENERATION = 1
STEP_FRAMES = 2
STEP_ASSEMBLY = 3
STEP_PUBLISH = 4

STATUS_PENDING = "pending"
STATUS_FRAMES_PENDING = "frames_pending"
STATUS_ASSEMBLY_PENDING = "assembly_pending"
STATUS_UPLOAD_PENDING = "upload_pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

JOB_STATUSES = (
    STATUS_PENDING,
    STATUS_FRAMES_PENDING,
    STATUS_ASSEMBLY_PENDING,
    STATUS_UPLOAD_PENDING,
    STATUS_COMPLETED,
    STATUS_FAILED,
)

# The status a stage claims at each step
PENDING_STATUS_FOR_STEP = {
    STEP_GENERATION: STATUS_PENDING,
    STEP_FRAMES: STATUS_FRAMES_PENDING,
    STEP_ASSEMBLY: STATUS_ASSEMBLY_PENDING,
    STEP_PUBLISH: STATUS_UPLOAD_PENDING,
}


class QuizJob(Base):
    __tablename__ = "quiz_jobs"

    id = Column(String(36), primary_key=True)
    account_id = Column(String(64), nullable=False)
    persona = Column(String(64), nullable=False)
    topic = Column(String(128), nullable=False)
    topic_display_name = Column(String(255), nullable=True)

    step = Column(Integer, default=STEP_GENERATION, nullable=False)
    status = Column(Enum(*JOB_STATUSES, name="quiz_job_status"), default=STATUS_PENDING, nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    content_hash = Column(String(32), nullable=True)
    error_message = Column(Text, nullable=True)

    attempts = Column(Integer, default=0, nullable=False)
    next_eligible_at = Column(DateTime, nullable=True)
    locked_by = Column(String(64), nullable=True)
    locked_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=get_ist_now, nullable=False)
    updated_at = Column(DateTime, default=get_ist_now, onupdate=get_ist_now, nullable=False)

    __table_args__ = (
        Index("ix_quiz_jobs_claim", "step", "status", "created_at"),
        Index("ix_quiz_jobs_dedupe", "account_id", "persona", "content_hash"),
    )
