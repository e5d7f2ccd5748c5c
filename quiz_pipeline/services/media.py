"""
Clients for the rendering and assembly services.

Both services are stateless HTTP endpoints. The renderer returns one image per
frame, either as URLs or as base64 data URLs (those get uploaded to S3 here).
The assembler takes frame URLs with durations and returns a hosted video.
"""

import logging
from typing import Callable, Optional

import httpx

from quiz_pipeline.core.config import settings
from quiz_pipeline.core.s3 import upload_data_url_to_s3
from quiz_pipeline.models.quiz_job import QuizJob
from quiz_pipeline.services.layout_selector import detect_layout, frames_for

logger = logging.getLogger(__name__)

VIDEO_WIDTH = 1080
VIDEO_HEIGHT = 1920

HOOK_SECONDS = 1.5
SINGLE_FRAME_SECONDS = 15
DEFAULT_FRAME_SECONDS = 2


class RenderError(RuntimeError):
    pass


class AssemblyError(RuntimeError):
    pass


def frame_durations(layout: str, frame_count: int) -> list[float]:
    """Seconds on screen per frame: short hook, longest look at the second frame"""
    if layout == "simplified_word":
        return [SINGLE_FRAME_SECONDS] + [0] * (frame_count - 1)
    durations = []
    for index in range(frame_count):
        if index == 0:
            durations.append(HOOK_SECONDS)
        elif index == 1:
            durations.append(3)
        else:
            durations.append(DEFAULT_FRAME_SECONDS)
    return durations


def _post(http: httpx.Client, url: str, body: dict, timeout: float, error_cls: type, what: str) -> dict:
    try:
        response = http.post(url, json=body, timeout=timeout)
    except httpx.TimeoutException as e:
        raise error_cls(f"{what} timed out after {timeout}s") from e
    except httpx.HTTPError as e:
        raise error_cls(f"{what} request failed: {e}") from e

    if response.status_code != 200:
        raise error_cls(f"{what} service error {response.status_code}: {response.text[:200]}")
    try:
        return response.json()
    except ValueError as e:
        raise error_cls(f"{what} service returned invalid JSON") from e


class RenderWorker:
    def __init__(
        self,
        http: Optional[httpx.Client] = None,
        upload: Callable[[str, str], str] = upload_data_url_to_s3,
    ):
        self._http = http or httpx.Client()
        self._upload = upload

    def render(self, job: QuizJob) -> dict:
        payload = job.payload or {}
        content = payload.get("content")
        if not content:
            raise RenderError("Job has no generated content")

        layout = payload.get("layout") or detect_layout(content)
        frame_names = frames_for(layout)

        data = _post(
            self._http,
            settings.RENDERER_URL,
            {
                "job_id": job.id,
                "persona": job.persona,
                "layout": layout,
                "frames": list(frame_names),
                "content": content,
                "width": VIDEO_WIDTH,
                "height": VIDEO_HEIGHT,
            },
            settings.RENDERER_TIMEOUT_SECONDS,
            RenderError,
            "Renderer",
        )

        frames = data.get("frames") or []
        if not frames:
            raise RenderError("Renderer returned no frames")

        frame_urls = []
        for index, frame in enumerate(frames):
            if not isinstance(frame, str) or not frame:
                raise RenderError(f"Renderer returned an invalid frame at position {index + 1}")
            if frame.startswith("data:"):
                name = frame_names[index] if index < len(frame_names) else f"extra{index}"
                frame = self._upload(frame, f"frames/{job.id}/{index + 1:02d}_{name}.png")
            frame_urls.append(frame)

        logger.info("Job %s: rendered %s %s frame(s)", job.id, len(frame_urls), layout)
        return {"layout": layout, "frame_urls": frame_urls}


class AssemblyWorker:
    def __init__(self, http: Optional[httpx.Client] = None):
        self._http = http or httpx.Client()

    def assemble(self, job: QuizJob) -> dict:
        payload = job.payload or {}
        frame_urls = payload.get("frame_urls") or []
        if not frame_urls:
            raise AssemblyError("Job has no frame URLs")

        layout = payload.get("layout") or detect_layout(payload.get("content"))
        durations = frame_durations(layout, len(frame_urls))

        data = _post(
            self._http,
            settings.ASSEMBLER_URL,
            {
                "job_id": job.id,
                "frames": [
                    {"url": url, "duration": duration}
                    for url, duration in zip(frame_urls, durations)
                    if duration > 0
                ],
                "width": VIDEO_WIDTH,
                "height": VIDEO_HEIGHT,
            },
            settings.ASSEMBLER_TIMEOUT_SECONDS,
            AssemblyError,
            "Assembler",
        )

        video_url = data.get("video_url") or data.get("videoUrl")
        if not video_url:
            raise AssemblyError("Assembler returned no video URL")

        logger.info("Job %s: assembled video %s", job.id, video_url)
        return {
            "video_url": video_url,
            "video_size": data.get("video_size") or data.get("videoSize"),
            "video_duration": data.get("duration") or sum(durations),
        }
