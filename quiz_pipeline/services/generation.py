import dataclasses
import logging
from typing import Optional

from quiz_pipeline.core.timezone import get_ist_now
from quiz_pipeline.models.quiz_job import QuizJob
from quiz_pipeline.schemas.content import BaseContent, parse_content
from quiz_pipeline.services.ai_client import AIClient
from quiz_pipeline.services.content_hasher import VariationMarkers, content_hash, make_variation_markers
from quiz_pipeline.services.duplicate_guard import DuplicateGuard
from quiz_pipeline.services.job_store import JobStore
from quiz_pipeline.services.layout_selector import LayoutSelector
from quiz_pipeline.services.prompts import build_prompt

logger = logging.getLogger(__name__)

MAX_TEMPERATURE = 1.5


class GenerationWorker:
    def __init__(
        self,
        ai_client: AIClient,
        layout_selector: LayoutSelector,
        duplicate_guard: DuplicateGuard,
        store: Optional[JobStore] = None,
        temperature: float = 0.8,
        retry_temperature_boost: float = 0.2,
    ):
        self.ai_client = ai_client
        self.layout_selector = layout_selector
        self.duplicate_guard = duplicate_guard
        self.store = store
        self.temperature = temperature
        self.retry_temperature_boost = retry_temperature_boost

    def _recent_titles(self, job: QuizJob) -> list[str]:
        # Insights are advisory, generation goes ahead without them
        if self.store is None:
            return []
        try:
            return self.store.recent_published_titles(job.account_id)
        except Exception as e:
            logger.warning("Could not load recent titles for %s: %s", job.account_id, e)
            return []

    def _generate_once(self, job: QuizJob, layout: str, temperature: float,
                       avoid_titles: list[str]) -> tuple[BaseContent, VariationMarkers]:
        seed = make_variation_markers(None)
        prompt = build_prompt(
            job.persona,
            job.topic,
            job.topic_display_name or job.topic,
            layout,
            seed.time_marker,
            seed.token_marker,
            avoid_titles,
        )
        raw = self.ai_client.complete_json(prompt, temperature)
        content = parse_content(raw, layout)
        return content, dataclasses.replace(seed, content_hash=content_hash(content))

    def generate(self, job: QuizJob) -> dict:
        payload = job.payload or {}
        layout = self.layout_selector.select(job.persona, payload.get("preferred_layout"))
        avoid_titles = self._recent_titles(job)

        content, markers = self._generate_once(job, layout, self.temperature, avoid_titles)

        if self.duplicate_guard.is_duplicate(markers.content_hash, job.account_id, job.persona,
                                             exclude_job_id=job.id):
            retry_temperature = min(self.temperature + self.retry_temperature_boost, MAX_TEMPERATURE)
            logger.info("Job %s: duplicate content %s, regenerating at temperature %s",
                        job.id, markers.content_hash, retry_temperature)
            first_hash = markers.content_hash
            content, markers = self._generate_once(job, layout, retry_temperature, avoid_titles)
            if markers.content_hash == first_hash:
                logger.warning("Job %s: regenerated content is still %s, keeping it", job.id, first_hash)

        return {
            "content": content.model_dump(exclude_none=True),
            "layout": layout,
            "variation_markers": markers.to_dict(),
            "generated_at": get_ist_now().isoformat(),
        }
