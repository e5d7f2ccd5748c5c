"""
Content fingerprints for duplicate suppression.

A fingerprint covers only what the content *says*: the main prompt and its
answer, plus the content kind. Key order, casing and whitespace do not affect
it. Raw dicts (legacy payloads, unvalidated AI output) are probed through a
priority list of field names because each layout names these fields
differently.
"""

import hashlib
import json
import random
import string
import time
from dataclasses import dataclass, asdict
from typing import Optional, Union

from quiz_pipeline.schemas.content import BaseContent

BASE36_ALPHABET = string.digits + string.ascii_uppercase

MAIN_FIELDS = (
    "question", "content", "traditional_approach", "action", "mistake",
    "basic_word", "target_word", "setup", "word", "before", "hook",
)
ANSWER_FIELDS = (
    "answer", "advanced_word", "smart_shortcut", "after", "result",
    "correct", "right_example", "definition",
)
KIND_FIELDS = ("layout", "content_type", "question_type", "format_type")
DEFAULT_KIND = "format_based"


@dataclass(frozen=True)
class VariationMarkers:
    time_marker: str
    token_marker: str
    content_hash: str

    def to_dict(self) -> dict:
        return asdict(self)


def to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, remainder = divmod(number, 36)
        digits.append(BASE36_ALPHABET[remainder])
    return "".join(reversed(digits))


def _normalize(value) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).casefold()


def _first(data: dict, fields: tuple[str, ...]) -> str:
    for field in fields:
        value = data.get(field)
        if value not in (None, ""):
            return value
    return ""


def semantic_view(content: Union[BaseContent, dict, None]) -> dict:
    """The fields a fingerprint is computed over"""
    if isinstance(content, BaseContent):
        main, answer = content.semantic_fields()
        kind = content.layout
    elif isinstance(content, dict):
        main = _first(content, MAIN_FIELDS)
        answer = _first(content, ANSWER_FIELDS)
        kind = _first(content, KIND_FIELDS) or DEFAULT_KIND
        # MCQ answers are option keys; the option text is what the answer means
        options = content.get("options")
        if isinstance(options, dict) and isinstance(answer, str) and answer in options:
            answer = options[answer]
    else:
        main, answer, kind = "", "", DEFAULT_KIND

    return {
        "main": _normalize(main),
        "answer": _normalize(answer),
        "kind": _normalize(kind),
    }


def content_hash(content: Union[BaseContent, dict, None]) -> str:
    """Short printable fingerprint, e.g. "CH3K9ZQ1V0X2M4". Never raises."""
    canonical = json.dumps(semantic_view(content), sort_keys=True, ensure_ascii=False)
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return "CH" + to_base36(int.from_bytes(digest[:8], "big"))


def make_variation_markers(
    content: Union[BaseContent, dict, None],
    now_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> VariationMarkers:
    rng = rng or random
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    token = "".join(rng.choice(BASE36_ALPHABET) for _ in range(6))
    return VariationMarkers(
        time_marker=f"T{now_ms}",
        token_marker=f"TK{token}",
        content_hash=content_hash(content),
    )
