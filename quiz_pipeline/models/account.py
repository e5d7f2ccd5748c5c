from sqlalchemy import Column, String, Enum, DateTime, Text, JSON
from quiz_pipeline.core.database import Base
from quiz_pipeline.core.timezone import get_ist_now


class Account(Base):
    """A publishing destination (one YouTube channel) and the personas it carries"""
    __tablename__ = "accounts"

    id = Column(String(64), primary_key=True)
    name = Column(String(255), nullable=False)
    personas = Column(JSON, nullable=False, default=list)
    status = Column(Enum("active", "inactive", name="account_status"), default="active", nullable=False)

    # Fernet-encrypted Google OAuth refresh token
    refresh_token_encrypted = Column(Text, nullable=True)
    channel_id = Column(String(64), nullable=True)
    uploads_playlist_id = Column(String(64), nullable=True)

    created_at = Column(DateTime, default=get_ist_now, nullable=False)
    updated_at = Column(DateTime, default=get_ist_now, onupdate=get_ist_now, nullable=False)
