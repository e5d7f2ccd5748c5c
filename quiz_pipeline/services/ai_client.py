import json
import logging
from typing import Optional

import httpx

from quiz_pipeline.core.config import settings
from quiz_pipeline.core.redis import AIKeyManager

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You write short educational quiz content for vertical videos. "
    "Reply with one JSON object only, no markdown and no commentary."
)


class GenerationError(RuntimeError):
    pass


def extract_json(text: str) -> dict:
    """Parse the JSON object in a model reply, ignoring any text around it"""
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end <= start:
        raise GenerationError("AI response contained no JSON object")
    try:
        data = json.loads(text[start:end + 1])
    except json.JSONDecodeError as e:
        raise GenerationError(f"AI response JSON parsing failed: {e}") from e
    if not isinstance(data, dict):
        raise GenerationError("AI response JSON is not an object")
    return data


class AIClient:
    """OpenAI-compatible chat completions client with key rotation"""

    def __init__(self, http: Optional[httpx.Client] = None, timeout: Optional[float] = None):
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._http = http or httpx.Client(timeout=self.timeout)

    def complete_json(self, prompt: str, temperature: float) -> dict:
        key_result = AIKeyManager.get_available_key()
        if not key_result:
            raise GenerationError("No AI API key available (unconfigured or rate limited)")
        api_key, _ = key_result

        try:
            response = self._http.post(
                f"{settings.AI_BASE_URL.rstrip('/')}/chat/completions",
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                json={
                    "model": settings.AI_MODEL,
                    "messages": [
                        {"role": "system", "content": SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    "temperature": temperature,
                    "response_format": {"type": "json_object"},
                },
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            raise GenerationError(f"AI request timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise GenerationError(f"AI request failed: {e}") from e

        if response.status_code != 200:
            raise GenerationError(f"AI API error {response.status_code}: {response.text[:200]}")

        try:
            text = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError) as e:
            raise GenerationError("AI response had no message content") from e

        return extract_json(text or "")
