import os
from datetime import datetime, timedelta

from cryptography.fernet import Fernet

# Settings are read at import time, so the environment must be ready first
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"
os.environ["JWT_SECRET_KEY"] = "test-jwt-secret"
os.environ["FERNET_KEY"] = Fernet.generate_key().decode()
os.environ["REDIS_HOST"] = ""
os.environ["AI_API_KEYS"] = "test-ai-key"
os.environ["SCHEDULE_ENABLED"] = "false"

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from quiz_pipeline.core.database import Base
from quiz_pipeline.models.account import Account
from quiz_pipeline.models.quiz_job import QuizJob  # noqa: F401
from quiz_pipeline.models.uploaded_video import UploadedVideo  # noqa: F401
from quiz_pipeline.services.job_store import JobStore


class FakeClock:
    """Controllable replacement for get_ist_now"""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs):
        self.current += timedelta(**kwargs)


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'pipeline.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    engine.dispose()


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 1, 15, 10, 0, 0))


@pytest.fixture
def store(session_factory, clock):
    return JobStore(session_factory, claim_timeout_minutes=15, clock=clock)


@pytest.fixture
def make_job(store, clock):
    """Insert a job; each call is one second newer than the last"""
    def _make(account_id="english_shots", persona="english_vocab_builder",
              topic="eng_vocab_synonyms", step=1, payload=None):
        job_id = store.insert_job(account_id, persona, topic, payload=payload, step=step)
        clock.advance(seconds=1)
        return job_id
    return _make


@pytest.fixture
def make_account(session_factory):
    def _make(account_id="english_shots", personas=("english_vocab_builder",), status="active",
              refresh_token_encrypted=None, uploads_playlist_id=None):
        with session_factory() as db:
            db.add(Account(
                id=account_id,
                name=account_id.replace("_", " ").title(),
                personas=list(personas),
                status=status,
                refresh_token_encrypted=refresh_token_encrypted,
                uploads_playlist_id=uploads_playlist_id,
            ))
            db.commit()
        return account_id
    return _make


MCQ_CONTENT = {
    "question": "Which word is a synonym of 'happy'?",
    "options": {"A": "Sad", "B": "Joyful", "C": "Angry", "D": "Tired"},
    "answer": "B",
    "explanation": "Joyful means feeling great happiness.",
    "cta": "Follow for a new word every day!",
}


@pytest.fixture
def mcq_content():
    return dict(MCQ_CONTENT, options=dict(MCQ_CONTENT["options"]))
