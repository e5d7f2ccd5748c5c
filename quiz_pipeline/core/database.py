from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from quiz_pipeline.core.config import settings

connect_args = {}
if settings.DATABASE_URL.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=connect_args,
)

# Jobs are handed to stage workers after their session closes
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)

Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create any missing tables"""
    from quiz_pipeline.models import account, quiz_job, uploaded_video  # noqa: F401
    Base.metadata.create_all(bind=engine)
