import logging

import boto3
from fastapi import FastAPI
from contextlib import asynccontextmanager
from quiz_pipeline.routers import stages, quiz_jobs, admin
from quiz_pipeline.core.redis import RedisClient
from quiz_pipeline.core.config import settings

logging.basicConfig(level=logging.INFO)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """Startup and shutdown events"""
    print("\n" + "=" * 50)
    print("  Starting Quiz Pipeline API...")
    print("=" * 50)
    print(f"  Environment: {settings.APP_ENV}")
    print("-" * 50)

    try:
        from sqlalchemy import text
        from quiz_pipeline.core.database import engine, init_db
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        init_db()
        print("  [OK]   Database")
    except Exception as e:
        print(f"  [FAIL] Database  - {e}")

    if settings.REDIS_HOST:
        try:
            RedisClient.get_client()
            print(f"  [OK]   Redis     ({settings.REDIS_HOST}:{settings.REDIS_PORT})")
        except Exception as e:
            print(f"  [FAIL] Redis     - {e}")
    else:
        print("  [SKIP] Redis     (REDIS_HOST not set)")

    try:
        sts = boto3.client(
            "sts",
            region_name=settings.AWS_REGION,
            **({"aws_access_key_id": settings.AWS_ACCESS_KEY_ID,
                "aws_secret_access_key": settings.AWS_SECRET_ACCESS_KEY}
               if settings.AWS_ACCESS_KEY_ID else {}),
        )
        identity = sts.get_caller_identity()
        mode = "IAM Role" if ":assumed-role/" in identity["Arn"] else "Access Key"
        print(f"  [OK]   S3        ({settings.AWS_S3_BUCKET} via {mode})")
    except Exception as e:
        print(f"  [FAIL] S3        - {e}")

    print(f"  AI keys: {len(settings.ai_api_keys_list)}")
    print("-" * 50)
    print("  Quiz Pipeline API is ready!")
    print("=" * 50 + "\n")
    yield

    print("\nShutting down Quiz Pipeline API...")
    RedisClient.close()


is_production = settings.APP_ENV == "production"

app = FastAPI(
    title="Quiz Pipeline API",
    lifespan=lifespan,
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
)


@app.get("/")
def health_check():
    return {"status": True}


app.include_router(stages.router)
app.include_router(quiz_jobs.router)
app.include_router(admin.router)
