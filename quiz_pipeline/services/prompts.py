from typing import Iterable

from quiz_pipeline.core.personas import get_persona
from quiz_pipeline.schemas.content import CONTENT_MODELS

LAYOUT_GUIDES = {
    "mcq": "A multiple choice question with options A-D, the correct option key as \"answer\", "
           "a one-line \"explanation\" and a short \"cta\". Use content_type \"multiple_choice\", "
           "or \"true_false\" with options exactly {\"A\": \"True\", \"B\": \"False\"}.",
    "quick_tip": "A surprising \"hook\", one concrete \"action\" the viewer can take today, "
                 "the \"result\" they get, and a short \"cta\".",
    "common_mistake": "A \"hook\", the common \"mistake\", the \"correct\" version, "
                      "a \"practice\" prompt and a \"cta\".",
    "quick_fix": "A \"hook\", an overused \"basic_word\", a better \"advanced_word\" and a \"cta\".",
    "usage_demo": "A \"hook\", the \"target_word\", a \"wrong_example\" and \"right_example\" sentence, "
                  "a \"practice\" prompt and a \"cta\".",
    "challenge": "A \"hook\", the \"setup\", \"instructions\", a \"challenge_type\", "
                 "the \"reveal\", the \"answer\" and a \"cta\".",
    "simplified_word": "One useful \"word\", a plain \"definition\" under 100 characters, "
                       "and a \"usage\" sentence. Optional \"part_of_speech\" and \"pronunciation\".",
    "before_after": "A \"hook\", the \"before\" habit, the \"after\" habit, "
                    "the \"result\" of switching, and a \"cta\".",
}


def build_prompt(
    persona_key: str,
    topic_key: str,
    topic_name: str,
    layout: str,
    time_marker: str,
    token_marker: str,
    avoid_titles: Iterable[str] = (),
) -> str:
    persona = get_persona(persona_key)
    channel = persona.display_name if persona else persona_key
    fields = [name for name in CONTENT_MODELS[layout].model_fields if name != "layout"]

    lines = [
        f"Channel: {channel}",
        f"Topic: {topic_name} ({topic_key})",
        f"Format: {layout}. {LAYOUT_GUIDES[layout]}",
        f"Return JSON with keys: {', '.join(fields)}.",
        "Keep every text field short enough to read on a phone screen in a few seconds.",
        f"Variation seed: {time_marker}-{token_marker}. Pick an angle you have not used before.",
    ]

    avoid = [title for title in avoid_titles if title][:10]
    if avoid:
        lines.append("Recently published, do not repeat these subjects:")
        lines.extend(f"- {title}" for title in avoid)

    return "\n".join(lines)
