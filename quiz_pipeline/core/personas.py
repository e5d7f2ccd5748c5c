"""Content personas and the topics each one draws from"""

import random
from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping, Optional


@dataclass(frozen=True)
class Topic:
    key: str
    display_name: str


@dataclass(frozen=True)
class Persona:
    key: str
    display_name: str
    topics: tuple[Topic, ...]
    hashtags: tuple[str, ...] = ()


def _topics(*pairs: tuple[str, str]) -> tuple[Topic, ...]:
    return tuple(Topic(key, name) for key, name in pairs)


PERSONAS: Mapping[str, Persona] = MappingProxyType({
    "english_vocab_builder": Persona(
        key="english_vocab_builder",
        display_name="Vocabulary Shots",
        topics=_topics(
            ("eng_vocab_word_meaning", "What Does This Word Mean?"),
            ("eng_vocab_fill_blanks", "Fill in the Blank!"),
            ("eng_spelling_bee", "Can You Spell It?"),
            ("eng_vocab_synonyms", "Word Twins (Synonyms)"),
            ("eng_vocab_antonyms", "Opposites Attract (Antonyms)"),
            ("eng_vocab_confusing_words", "Commonly Confused Words"),
            ("eng_vocab_collocations", "Perfect Pairs (Collocations)"),
            ("eng_vocab_register", "Formal vs. Casual Words"),
            ("eng_vocab_phrasal_verbs", "Phrasal Verbs"),
            ("eng_vocab_idioms", "Guess the Idiom!"),
        ),
        hashtags=("#english", "#vocabulary", "#learnenglish"),
    ),
    "brain_health_tips": Persona(
        key="brain_health_tips",
        display_name="Brain Health Tips",
        topics=_topics(
            ("memory_techniques", "Memory Enhancement Techniques"),
            ("focus_tips", "Focus & Concentration Tips"),
            ("brain_food", "Brain-Healthy Foods & Nutrition"),
            ("mental_exercises", "Cognitive Exercises & Training"),
            ("brain_lifestyle", "Brain-Healthy Lifestyle Habits"),
            ("stress_management", "Stress Management for Brain Health"),
            ("sleep_brain", "Sleep & Brain Health Connection"),
            ("brain_myths", "Brain Health Myths Busted"),
        ),
        hashtags=("#brainhealth", "#memory", "#healthtips"),
    ),
    "eye_health_tips": Persona(
        key="eye_health_tips",
        display_name="Eye Health Tips",
        topics=_topics(
            ("screen_protection", "Screen Time Safety & Blue Light Protection"),
            ("eye_exercises", "Eye Exercises & Vision Training"),
            ("vision_nutrition", "Vision-Supporting Foods & Nutrients"),
            ("eye_care_habits", "Daily Eye Care Routines"),
            ("workplace_vision", "Workplace Vision Health"),
            ("eye_safety", "Eye Safety & Protection Tips"),
            ("vision_myths", "Eye Health Myths & Facts"),
            ("eye_fatigue", "Preventing Eye Strain & Fatigue"),
        ),
        hashtags=("#eyehealth", "#vision", "#healthtips"),
    ),
    "ssc_shots": Persona(
        key="ssc_shots",
        display_name="SSC Exam Shots",
        topics=_topics(
            ("ssc_gk_history", "Indian History"),
            ("ssc_gk_polity", "Indian Polity"),
            ("ssc_gk_geography", "Geography"),
            ("ssc_quant_shortcuts", "Maths Shortcuts"),
            ("ssc_reasoning", "Reasoning Tricks"),
        ),
        hashtags=("#ssc", "#sscexam", "#governmentexams"),
    ),
})


def get_persona(key: str) -> Optional[Persona]:
    return PERSONAS.get(key)


def pick_topic(persona_key: str, rng: Optional[random.Random] = None) -> Topic:
    persona = PERSONAS.get(persona_key)
    if persona is None or not persona.topics:
        raise ValueError(f"Unknown persona: {persona_key}")
    return (rng or random).choice(persona.topics)
