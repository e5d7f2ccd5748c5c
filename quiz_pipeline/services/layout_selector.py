import logging
import random
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

DEFAULT_LAYOUT = "mcq"

# Frame sequence each layout renders, in order
LAYOUT_FRAMES: Mapping[str, tuple[str, ...]] = MappingProxyType({
    "mcq": ("hook", "question", "answer", "explanation", "cta"),
    "quick_tip": ("hook", "action", "result"),
    "common_mistake": ("hook", "mistake", "correct", "practice"),
    "quick_fix": ("hook", "basic_word", "advanced_word"),
    "usage_demo": ("hook", "wrong_example", "right_example", "practice"),
    "challenge": ("hook", "setup", "challenge", "reveal", "cta"),
    "simplified_word": ("word",),
    "before_after": ("hook", "before", "after", "result"),
})

KNOWN_LAYOUTS = frozenset(LAYOUT_FRAMES)

WeightTable = tuple[tuple[str, float], ...]

BUILTIN_WEIGHTS: Mapping[str, WeightTable] = MappingProxyType({
    "english_vocab_builder": (("mcq", 50), ("common_mistake", 30), ("quick_fix", 20)),
    "brain_health_tips": (("mcq", 40), ("quick_tip", 40), ("before_after", 20)),
    "eye_health_tips": (("mcq", 50), ("quick_tip", 30), ("before_after", 20)),
    "ssc_shots": (("mcq", 70), ("quick_tip", 30)),
})

BUILTIN_DEFAULT: WeightTable = (("mcq", 100),)


@dataclass(frozen=True)
class LayoutConfig:
    """Read-only persona -> weighted layout table"""
    tables: Mapping[str, WeightTable] = field(default_factory=lambda: BUILTIN_WEIGHTS)
    default: WeightTable = BUILTIN_DEFAULT

    @classmethod
    def from_mapping(cls, raw: Optional[Mapping[str, Mapping[str, float]]]) -> "LayoutConfig":
        """Build from {"persona": {"layout": weight}}; None gives the built-in table"""
        if not raw:
            return cls()
        tables = {
            persona: tuple(weights.items())
            for persona, weights in raw.items()
            if persona != "default"
        }
        default = BUILTIN_DEFAULT
        if "default" in raw:
            default = tuple(raw["default"].items())
        return cls(tables=MappingProxyType(tables), default=default)

    def table_for(self, persona: str) -> WeightTable:
        return self.tables.get(persona, self.default)


class LayoutSelector:
    def __init__(self, config: Optional[LayoutConfig] = None, rng: Optional[random.Random] = None):
        self.config = config or LayoutConfig()
        self._rng = rng or random.Random()

    def select(self, persona: str, override: Optional[str] = None) -> str:
        """Weighted-random layout for a persona. An explicit known override wins."""
        if override and override in KNOWN_LAYOUTS:
            return override
        if override:
            logger.warning("Ignoring unknown layout override %r for %s", override, persona)

        table = self.config.table_for(persona)
        try:
            entries = [(name, float(weight)) for name, weight in table]
        except (TypeError, ValueError):
            logger.warning("Malformed layout table for %s, using %s", persona, DEFAULT_LAYOUT)
            return DEFAULT_LAYOUT

        if not entries or any(w < 0 or name not in KNOWN_LAYOUTS for name, w in entries):
            logger.warning("Invalid layout table for %s, using %s", persona, DEFAULT_LAYOUT)
            return DEFAULT_LAYOUT

        total = sum(weight for _, weight in entries)
        if total <= 0:
            return DEFAULT_LAYOUT

        draw = self._rng.random() * total
        cumulative = 0.0
        for name, weight in entries:
            cumulative += weight
            if draw < cumulative:
                return name
        # float rounding on the last cumulative sum
        return entries[-1][0]


def frames_for(layout: str) -> tuple[str, ...]:
    return LAYOUT_FRAMES.get(layout, LAYOUT_FRAMES[DEFAULT_LAYOUT])


def detect_layout(content: Optional[dict]) -> str:
    """Infer the layout of content that was stored without one"""
    if not content:
        return DEFAULT_LAYOUT

    layout = content.get("layout") or content.get("format_type")
    if layout in KNOWN_LAYOUTS:
        return layout

    keys = set(content)
    if {"word", "definition", "usage"} <= keys:
        return "simplified_word"
    if {"hook", "action", "result"} <= keys and not keys & {"question", "options"}:
        return "quick_tip"
    if {"mistake", "correct"} <= keys:
        return "common_mistake"
    if {"basic_word", "advanced_word"} <= keys:
        return "quick_fix"
    if {"wrong_example", "right_example"} <= keys:
        return "usage_demo"
    if {"setup", "reveal"} <= keys:
        return "challenge"
    if {"before", "after"} <= keys:
        return "before_after"
    return DEFAULT_LAYOUT
