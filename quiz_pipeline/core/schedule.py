"""
Daily content calendar, by IST hour.

Generation runs a few hours ahead of the matching upload slot so frames and
video are ready in time.
"""

from datetime import datetime
from types import MappingProxyType
from typing import Iterable, Mapping, Optional

from quiz_pipeline.core.timezone import get_ist_now

UPLOAD_SCHEDULE: Mapping[int, tuple[str, ...]] = MappingProxyType({
    8: ("english_vocab_builder", "brain_health_tips"),
    11: ("english_vocab_builder", "eye_health_tips"),
    14: ("english_vocab_builder", "brain_health_tips", "ssc_shots"),
    17: ("english_vocab_builder", "eye_health_tips"),
    20: ("english_vocab_builder", "brain_health_tips", "eye_health_tips", "ssc_shots"),
})

GENERATION_LEAD_HOURS = 3


def _due(schedule: Mapping[int, tuple[str, ...]], hour: int) -> list[str]:
    return list(schedule.get(hour, ()))


def personas_due_for_upload(now: Optional[datetime] = None) -> list[str]:
    now = now or get_ist_now()
    return _due(UPLOAD_SCHEDULE, now.hour)


def personas_due_for_generation(now: Optional[datetime] = None) -> list[str]:
    now = now or get_ist_now()
    return _due(UPLOAD_SCHEDULE, (now.hour + GENERATION_LEAD_HOURS) % 24)


def restrict(personas: Iterable[str], due: Iterable[str]) -> list[str]:
    due = set(due)
    return [persona for persona in personas if persona in due]
