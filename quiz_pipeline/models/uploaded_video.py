from sqlalchemy import Column, String, BigInteger, Integer, DateTime, Text, JSON
from quiz_pipeline.core.database import Base
from quiz_pipeline.core.timezone import get_ist_now


class UploadedVideo(Base):
    """Published ledger. job_id is NULL for videos uploaded outside the pipeline."""
    __tablename__ = "uploaded_videos"

    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    job_id = Column(String(36), nullable=True, index=True)
    account_id = Column(String(64), nullable=False, index=True)
    youtube_video_id = Column(String(32), nullable=False, unique=True)
    title = Column(String(255), nullable=False, default="")
    description = Column(Text, nullable=True)
    tags = Column(JSON, nullable=True)
    uploaded_at = Column(DateTime, default=get_ist_now, nullable=False)
    created_at = Column(DateTime, default=get_ist_now, nullable=False)
