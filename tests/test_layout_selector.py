"""Tests for weighted layout selection and layout detection."""

import random
from collections import Counter
from types import MappingProxyType

import pytest

from quiz_pipeline.services.layout_selector import (
    DEFAULT_LAYOUT,
    KNOWN_LAYOUTS,
    LayoutConfig,
    LayoutSelector,
    detect_layout,
    frames_for,
)


def selector_with(tables, default=(("mcq", 100),), seed=42):
    config = LayoutConfig(tables=MappingProxyType(tables), default=default)
    return LayoutSelector(config, rng=random.Random(seed))


class TestSelect:
    @pytest.mark.parametrize("override", sorted(KNOWN_LAYOUTS))
    def test_known_override_always_wins(self, override):
        selector = selector_with({"p": (("quick_tip", 100),)})
        assert selector.select("p", override) == override

    def test_unknown_override_is_ignored(self):
        selector = selector_with({"p": (("quick_tip", 100),)})
        assert selector.select("p", "not_a_layout") == "quick_tip"

    def test_weights_converge(self):
        """A 70/30 table lands within 3% of 70/30 over 10,000 draws"""
        selector = selector_with({"p": (("mcq", 70), ("quick_tip", 30))})
        counts = Counter(selector.select("p") for _ in range(10_000))
        assert abs(counts["mcq"] / 10_000 - 0.70) < 0.03
        assert abs(counts["quick_tip"] / 10_000 - 0.30) < 0.03

    def test_weights_need_not_sum_to_100(self):
        selector = selector_with({"p": (("mcq", 1), ("quick_tip", 1))})
        counts = Counter(selector.select("p") for _ in range(2_000))
        assert set(counts) == {"mcq", "quick_tip"}

    def test_unconfigured_persona_uses_default_table(self):
        selector = selector_with({}, default=(("challenge", 5),))
        assert selector.select("unknown_persona") == "challenge"

    @pytest.mark.parametrize("table", [
        (),
        (("mcq", 0), ("quick_tip", 0)),
        (("mcq", "heavy"),),
        (("not_a_layout", 10),),
        (("mcq", -5), ("quick_tip", 10)),
        (("mcq",),),
    ])
    def test_bad_tables_fall_back_to_default_layout(self, table):
        selector = selector_with({"p": table})
        assert selector.select("p") == DEFAULT_LAYOUT

    def test_zero_weight_entry_is_never_chosen(self):
        selector = selector_with({"p": (("mcq", 0), ("quick_tip", 10))})
        assert {selector.select("p") for _ in range(500)} == {"quick_tip"}


class TestLayoutConfig:
    def test_builtin_tables(self):
        config = LayoutConfig()
        assert dict(config.table_for("english_vocab_builder")) == {"mcq": 50, "common_mistake": 30, "quick_fix": 20}
        assert config.table_for("nobody") == config.default

    def test_from_mapping(self):
        config = LayoutConfig.from_mapping({"p": {"quick_fix": 3}, "default": {"quick_tip": 1}})
        assert config.table_for("p") == (("quick_fix", 3),)
        assert config.table_for("other") == (("quick_tip", 1),)

    def test_from_none_is_builtin(self):
        assert LayoutConfig.from_mapping(None) == LayoutConfig()

    def test_config_is_read_only(self):
        config = LayoutConfig.from_mapping({"p": {"mcq": 1}})
        with pytest.raises(TypeError):
            config.tables["p"] = (("quick_tip", 1),)
        with pytest.raises(AttributeError):
            config.default = ()


class TestDetectLayout:
    @pytest.mark.parametrize("content,expected", [
        (None, "mcq"),
        ({"question": "Q", "options": {}, "answer": "A"}, "mcq"),
        ({"word": "w", "definition": "d", "usage": "u"}, "simplified_word"),
        ({"hook": "h", "action": "a", "result": "r"}, "quick_tip"),
        ({"hook": "h", "mistake": "m", "correct": "c"}, "common_mistake"),
        ({"basic_word": "good", "advanced_word": "stellar"}, "quick_fix"),
        ({"wrong_example": "w", "right_example": "r"}, "usage_demo"),
        ({"setup": "s", "reveal": "r"}, "challenge"),
        ({"before": "b", "after": "a"}, "before_after"),
        ({"layout": "quick_fix", "question": "Q"}, "quick_fix"),
    ])
    def test_detection(self, content, expected):
        assert detect_layout(content) == expected

    def test_frames_for_unknown_layout_uses_default(self):
        assert frames_for("nope") == frames_for(DEFAULT_LAYOUT)
