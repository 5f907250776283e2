"""Tests for recovering grammar analysis from malformed model responses."""

import json
import logging

import pytest

from quill.tools.essay_grading.response_parser import (
    DIRECT,
    ITEM_SALVAGE,
    NEUTRAL,
    SUBSTRUCTURE,
    TRUNCATION_REPAIR,
    DirectParse,
    ItemSalvage,
    ParseStrategy,
    ResponseRepairParser,
    clean_response,
    extract_balanced,
    normalize_corrections,
    parse_response,
)

VALID_DOCUMENT = {
    "grammar_analysis": {
        "corrections": [
            {
                "sentence_number": 1,
                "original": "he go to school",
                "correction": "he goes to school",
                "type": "subject_verb_agreement",
                "reason": "Third-person singular needs 'goes'",
                "confidence": 0.9,
                "severity": "moderate",
            }
        ],
        "total_errors": 1,
    },
    "scoring": {
        "quality_scores": {
            "grammar": 0.72,
            "content": 0.8,
            "organization": 0.75,
            "style": 0.7,
            "mechanics": 0.85,
        },
        "confidence": 0.88,
    },
}


class TestDirectParse:

    def test_valid_json(self):
        result = parse_response(json.dumps(VALID_DOCUMENT))

        assert result.strategy == DIRECT
        assert result.total_errors == 1
        assert result.corrections[0].correction == "he goes to school"
        assert result.corrections[0].type == "subject_verb_agreement"
        assert result.quality_scores.grammar == 0.72
        assert result.confidence == 0.88

    def test_code_fence_and_prose(self):
        raw = "Here is my analysis:\n```json\n" + json.dumps(VALID_DOCUMENT) + "\n```\nLet me know!"
        result = parse_response(raw)

        assert result.strategy == DIRECT
        assert len(result.corrections) == 1

    def test_out_of_range_scores_are_clamped(self):
        document = json.loads(json.dumps(VALID_DOCUMENT))
        document["scoring"]["quality_scores"]["grammar"] = 1.5
        document["scoring"]["quality_scores"]["content"] = "high"
        document["scoring"]["confidence"] = 2

        result = parse_response(json.dumps(document))

        assert result.quality_scores.grammar == 1.0
        assert result.quality_scores.content == 0.7
        assert result.confidence == 1.0


class TestTruncationRepair:

    def test_cut_inside_string(self):
        raw = ('{"grammar_analysis": {"corrections": [{"original": "he go", "correction": "he goes", '
               '"sentence_number": 1}, {"original": "they plays", "correc')
        result = parse_response(raw)

        assert result.strategy == TRUNCATION_REPAIR
        assert [c.original for c in result.corrections] == ["he go"]
        assert result.quality_scores.as_dict() == {
            "grammar": 0.7, "content": 0.7, "organization": 0.7, "style": 0.7, "mechanics": 0.7,
        }

    def test_cut_after_comma_keeps_partial_scores(self):
        raw = ('{"grammar_analysis": {"corrections": [{"original": "a", "correction": "b"}], '
               '"total_errors": 1}, "scoring": {"quality_scores": {"grammar": 0.5, "content": 0.8,')
        result = parse_response(raw)

        assert result.strategy == TRUNCATION_REPAIR
        assert result.quality_scores.grammar == 0.5
        assert result.quality_scores.content == 0.8
        assert result.quality_scores.style == 0.7
        assert len(result.corrections) == 1

    def test_well_formed_payload_missing_its_tail(self):
        corrections = [
            {"sentence_number": i + 1, "original": f"they goes {i}", "correction": f"they go {i}",
             "type": "subject_verb_agreement", "confidence": 0.9, "severity": "moderate"}
            for i in range(4)
        ]
        document = dict(VALID_DOCUMENT, grammar_analysis={"corrections": corrections, "total_errors": 4})

        result = parse_response(json.dumps(document)[:-20])

        assert result.strategy == TRUNCATION_REPAIR
        assert [c.original for c in result.corrections] == [c["original"] for c in corrections]
        assert result.total_errors == 4

    def test_recovery_is_logged(self, caplog):
        raw = '{"grammar_analysis": {"corrections": [{"original": "a", "correction": "b"}, {"orig'
        with caplog.at_level(logging.INFO, logger="quill.tools.essay_grading.response_parser"):
            parse_response(raw)
        assert "Recovered language-model response with truncation_repair (1 corrections)" in caplog.text


class TestSubstructureExtraction:

    def test_broken_scoring_block(self):
        raw = ('{"grammar_analysis": {"corrections": [{"original": "alot", "correction": "a lot"}]}, '
               '"scoring": {"quality_scores": {"grammar": 0.9, "content": 0.8, "organization": 0.7, '
               '"style": 0.6, "mechanics": 0.5}, "confidence": oops}}')
        result = parse_response(raw)

        assert result.strategy == SUBSTRUCTURE
        assert result.corrections[0].correction == "a lot"
        assert result.quality_scores.grammar == 0.9
        assert result.quality_scores.mechanics == 0.5
        assert result.confidence == 0.7


class TestItemSalvage:

    def test_loose_objects(self):
        raw = ('Corrections: {"original": "recieve", "correction": "receive"} and '
               '{"original": "go", "correction": "goes"} plus junk {broken')
        result = parse_response(raw)

        assert result.strategy == ITEM_SALVAGE
        assert len(result.corrections) == 2
        assert result.quality_scores.grammar == pytest.approx(0.9)
        assert result.confidence == 0.7

    def test_many_items_floor_grammar(self):
        items = " ".join(
            json.dumps({"original": f"word{i}", "correction": f"fixed{i}"}) for i in range(12)
        )
        result = ResponseRepairParser([ItemSalvage()]).parse(items)
        assert result.quality_scores.grammar == 0.6


class TestNeutralResult:

    @pytest.mark.parametrize("raw", [None, "", "   ", "I could not analyze this essay."])
    def test_unrecoverable_response(self, raw):
        result = parse_response(raw)

        assert result.strategy == NEUTRAL
        assert result.corrections == []
        assert result.confidence == 0.3
        assert result.quality_scores.as_dict() == {
            "grammar": 0.7, "content": 0.7, "organization": 0.7, "style": 0.7, "mechanics": 0.7,
        }


class TestParserPipeline:

    def test_strategy_errors_do_not_escape(self):
        class Exploding(ParseStrategy):
            name = "exploding"

            def attempt(self, text):
                raise RuntimeError("boom")

        parser = ResponseRepairParser([Exploding(), DirectParse()])
        assert parser.parse(json.dumps(VALID_DOCUMENT)).strategy == DIRECT

    def test_custom_order(self):
        parser = ResponseRepairParser([ItemSalvage()])
        result = parser.parse(json.dumps(VALID_DOCUMENT))
        assert result.strategy == ITEM_SALVAGE
        assert len(result.corrections) == 1


class TestHelpers:

    def test_clean_response(self):
        assert clean_response("```json\n{}\n```") == "{}"
        assert clean_response(None) == ""

    def test_extract_balanced_ignores_brackets_in_strings(self):
        text = 'x {"a": "}{", "b": [1, 2]} tail'
        assert extract_balanced(text, 2) == '{"a": "}{", "b": [1, 2]}'
        assert extract_balanced('{"a": 1', 0) is None

    def test_normalize_corrections(self):
        items = [
            {"original": "a b", "correction": "a c", "sentence_number": 1},
            {"original": "a b", "correction": "a c", "sentence_number": 1},
            {"original": "same", "correction": "same"},
            {"original": "missing correction"},
            {"original": "  ", "correction": "y"},
            "not an object",
            {"original": "a b", "correction": "a c", "sentence_number": "two"},
        ]
        result = normalize_corrections(items)

        assert [(c.original, c.sentence_number) for c in result] == [("a b", 1), ("a b", None)]
        assert normalize_corrections("nope") == []
