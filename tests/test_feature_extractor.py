"""Unit tests for essay feature extraction."""

import math
import re

import pytest

from quill.features import (
    EssayStructure,
    EssayText,
    FeatureExtractor,
    FeaturePolicy,
    FeatureVector,
    extract,
    policy_from_config,
)
from quill.features.groups import FeatureGroup, VocabularyRule
from quill.features.groups.surface import SurfaceGroup, decode_word_count
from quill.features.groups.vocabulary import VocabularyGroup
from quill.features.models import check_vector_length

ESSAY = (
    "In this essay I will argue that technology has changed education. "
    "However, it brings problems too.\n\n"
    "For example, students use phones in class. Research shows that this is distracting.\n\n"
    "In conclusion, schools should set clear rules about technology."
)


class _FixedGroup(FeatureGroup):
    """Group that returns whatever values it was built with."""

    def __init__(self, name, start, size, values):
        self.name = name
        self.start = start
        self.size = size
        self.slot_names = tuple(f"v{i}" for i in range(size))
        self._values = values

    def compute(self, essay, structure, policy):
        return list(self._values)


class _BrokenGroup(FeatureGroup):
    name = "broken"
    start = 10
    size = 5
    slot_names = ("a", "b")

    def compute(self, essay, structure, policy):
        raise RuntimeError("boom")


class TestEssayText:
    """Test tokenization shared by the feature groups."""

    def test_words_sentences_paragraphs(self):
        essay = EssayText.from_text(ESSAY)
        assert essay.word_count == len(essay.words)
        assert essay.words[0] == "in"
        assert essay.sentence_count == 5
        assert len(essay.paragraphs) == 3

    def test_punctuation_only_is_degenerate(self):
        assert EssayText.from_text("").is_degenerate
        assert EssayText.from_text("!!! ... ???").is_degenerate
        assert not EssayText.from_text("A real sentence.").is_degenerate

    def test_introduction_and_conclusion(self):
        essay = EssayText.from_text(ESSAY)
        assert essay.has_introduction()
        assert essay.has_conclusion()

        plain = EssayText.from_text("Cats sleep a lot. Dogs bark at night.")
        assert not plain.has_introduction()
        assert not plain.has_conclusion()


class TestFeatureExtractor:
    """Test the fixed-slot feature vector."""

    def test_vector_has_fixed_length_and_names(self):
        vector = extract(ESSAY)
        assert len(vector) == 150
        assert len(vector.names) == 150
        assert vector.names[2] == "surface.log_word_count"
        assert vector.names[10] == "lexical.type_token_ratio"
        assert vector.names[55] == "structure.has_introduction"

    def test_extraction_is_deterministic(self):
        extractor = FeatureExtractor()
        assert extractor.extract(ESSAY).values == extractor.extract(ESSAY).values

    def test_values_within_bounds(self):
        vector = extract(ESSAY)
        assert all(-1.0 <= v <= 1.0 for v in vector)
        assert all(math.isfinite(v) for v in vector)

    def test_reserved_tail_is_zero(self):
        vector = extract(ESSAY)
        assert all(v == 0.0 for v in vector.values[100:])
        assert all(name.startswith("reserved.") for name in vector.names[100:])

    def test_empty_text_gives_zero_vector(self):
        for text in ("", "   ", "?!..."):
            vector = extract(text)
            assert len(vector) == 150
            assert vector.is_zero()

    def test_structure_slots_without_structure(self):
        vector = extract(ESSAY)
        assert vector.get("structure.has_introduction") == 1.0
        assert vector.get("structure.has_conclusion") == 1.0
        assert vector.get("structure.multi_paragraph") == 1.0
        assert vector.get("structure.has_title") == 0.0
        assert vector.get("structure.has_sections") == 0.0

    def test_structure_slots_with_structure(self):
        structure = EssayStructure.from_dict({
            "title": "Phones in School",
            "sections": ["Introduction", "Argument", "Conclusion"],
            "paragraphs": [{"text": "First paragraph here."}, "Second one."],
        })
        vector = extract(ESSAY, structure)
        assert vector.get("structure.has_title") == 1.0
        assert vector.get("structure.has_sections") == 1.0
        assert vector.get("structure.log_section_count") == pytest.approx(math.log1p(3) / 3.0)

    def test_word_count_slot_decodes(self):
        vector = extract("According to experts, cats sleep.")
        assert decode_word_count(vector.get("surface.log_word_count")) == pytest.approx(5.0)

    def test_weighted_vocabulary_rule(self):
        vector = extract("According to experts, cats sleep.")
        assert vector.get("vocabulary.evidence_markers") == pytest.approx(0.4)

    def test_misspelling_indicator(self):
        vector = extract("I recieve alot of mail.")
        assert vector.get("errors.misspelling_density") == pytest.approx(0.4)

    def test_to_dict_skips_reserved(self):
        named = extract(ESSAY).to_dict()
        assert "surface.log_word_count" in named
        assert not any(name.startswith("reserved.") for name in named)

    def test_unknown_slot_raises(self):
        with pytest.raises(KeyError):
            extract(ESSAY).get("surface.nonexistent")

    def test_failing_group_leaves_zero_slots(self):
        extractor = FeatureExtractor(groups=[SurfaceGroup(), _BrokenGroup()])
        vector = extractor.extract(ESSAY)
        assert vector.get("surface.log_word_count") > 0
        assert all(v == 0.0 for v in vector.values[10:15])

    def test_values_are_clamped(self):
        group = _FixedGroup("fixed", 0, 3, [5.0, -3.0, float("nan")])
        vector = FeatureExtractor(groups=[group]).extract(ESSAY)
        assert vector.values[:3] == (1.0, -1.0, 0.0)

    def test_extra_values_are_dropped(self):
        group = _FixedGroup("fixed", 0, 2, [0.1, 0.2, 0.3, 0.4])
        vector = FeatureExtractor(groups=[group]).extract(ESSAY)
        assert vector.values[:3] == (0.1, 0.2, 0.0)

    def test_overlapping_groups_rejected(self):
        with pytest.raises(ValueError, match="overlaps"):
            FeatureExtractor(groups=[
                _FixedGroup("a", 0, 5, []),
                _FixedGroup("b", 3, 5, []),
            ])

    def test_group_past_vector_length_rejected(self):
        with pytest.raises(ValueError, match="past vector length"):
            FeatureExtractor(policy=FeaturePolicy(vector_length=50))

    def test_policy_from_config(self):
        policy = policy_from_config({"features": {"vector_length": 200, "unknown": 1}})
        assert policy.vector_length == 200
        assert len(FeatureExtractor(policy).extract(ESSAY)) == 200


class TestVocabularyRules:

    def test_duplicate_slots_rejected(self):
        rule = VocabularyRule(name="x", pattern=re.compile("x"), weight=1.0, slot=0)
        with pytest.raises(ValueError, match="distinct"):
            VocabularyGroup(rules=[rule, rule])

    def test_out_of_range_slot_rejected(self):
        rule = VocabularyRule(name="x", pattern=re.compile("x"), weight=1.0, slot=30)
        with pytest.raises(ValueError):
            VocabularyGroup(rules=[rule])


class TestFeatureVector:

    def test_length_mismatch(self):
        with pytest.raises(ValueError):
            FeatureVector(values=(0.0,), names=("a", "b"))

    def test_check_vector_length(self):
        check_vector_length([0.0] * 150, 150)
        with pytest.raises(ValueError, match="must have 150 values, got 149"):
            check_vector_length([0.0] * 149, 150)
