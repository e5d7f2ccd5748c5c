import logging
from typing import Callable, Optional

import httpx

from quiz_pipeline.core.config import settings
from quiz_pipeline.core.personas import get_persona
from quiz_pipeline.core.s3 import delete_s3_objects
from quiz_pipeline.models.quiz_job import QuizJob
from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.youtube_client import PublishError, YouTubeClient

logger = logging.getLogger(__name__)

TITLE_MAX = 90


def _shorten(text: str, limit: int) -> str:
    text = " ".join(str(text).split())
    if len(text) <= limit:
        return text
    return text[:limit - 1].rstrip() + "…"


def build_metadata(job: QuizJob) -> tuple[str, str, list[str]]:
    """Title, description and tags for a finished job"""
    payload = job.payload or {}
    content = payload.get("content") or {}
    persona = get_persona(job.persona)

    headline = (
        content.get("question")
        or content.get("hook")
        or content.get("word")
        or job.topic_display_name
        or job.topic
    )
    title = f"{_shorten(headline, TITLE_MAX)} #shorts"

    hashtags = list(persona.hashtags) if persona else []
    description_lines = [
        job.topic_display_name or job.topic,
        "",
        content.get("explanation") or content.get("result") or content.get("definition") or "",
        "",
        " ".join(hashtags + ["#shorts", "#quiz"]),
    ]
    description = "\n".join(description_lines).strip()

    tags = [tag.lstrip("#") for tag in hashtags] + [job.topic, "shorts", "quiz"]
    return title, description, tags


class PublishWorker:
    def __init__(
        self,
        store: JobStore,
        client_factory: Callable[[str], YouTubeClient],
        http: Optional[httpx.Client] = None,
        cleanup: Callable[[list[str]], int] = delete_s3_objects,
    ):
        self.store = store
        self.client_factory = client_factory
        self._http = http or httpx.Client(timeout=settings.UPLOAD_TIMEOUT_SECONDS)
        self._cleanup = cleanup

    def _download(self, url: str) -> bytes:
        try:
            response = self._http.get(url, timeout=settings.UPLOAD_TIMEOUT_SECONDS)
        except httpx.HTTPError as e:
            raise PublishError(f"Video download failed: {e}") from e
        if response.status_code != 200:
            raise PublishError(f"Video download failed: {response.status_code}")
        return response.content

    def publish(self, job: QuizJob) -> dict:
        payload = job.payload or {}

        # A crash between upload and the status write must not upload twice
        existing = self.store.published_video_for_job(job.id)
        if existing:
            logger.info("Job %s already published as %s, skipping upload", job.id, existing.youtube_video_id)
            return {"youtube_video_id": existing.youtube_video_id, "title": existing.title}

        video_url = payload.get("video_url")
        if not video_url:
            raise PublishError("Job has no video URL")

        title, description, tags = build_metadata(job)
        client = self.client_factory(job.account_id)
        video_id = client.upload_video(self._download(video_url), title, description, tags)

        self.store.record_published_video(
            account_id=job.account_id,
            youtube_video_id=video_id,
            title=title,
            job_id=job.id,
            description=description,
            tags=tags,
        )

        removed = self._cleanup(list(payload.get("frame_urls") or []) + [video_url])
        logger.info("Job %s published as %s (%s asset(s) cleaned up)", job.id, video_id, removed)
        return {"youtube_video_id": video_id, "title": title}
