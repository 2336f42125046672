"""Tests for LLM response parsing."""

import pytest

from catalaist.core.conversation.parser import (
    CORE_ATTRIBUTES,
    extract_json_block,
    find_json,
    flatten_attributes,
    parse_attributes,
    parse_classification,
    parse_questions,
)
from catalaist.core.errors import LLMResponseError
from catalaist.core.models import TransformationCategory


class TestJsonExtraction:
    """Locating JSON inside free-form text."""

    def test_nested_block_with_braces_in_strings(self):
        """Braces inside string literals do not close the block."""
        text = 'Result: {"a": {"b": "}{"}, "c": [1, 2]} trailing text'

        assert extract_json_block(text, 8) == '{"a": {"b": "}{"}, "c": [1, 2]}'

    def test_escaped_quotes(self):
        """Escaped quotes keep the parser inside the string."""
        text = '{"q": "say \\"hi\\" }"}'

        assert extract_json_block(text, 0) == text

    def test_unterminated_block(self):
        """An unbalanced block yields None."""
        assert extract_json_block('{"a": 1', 0) is None

    def test_not_an_opener(self):
        """Extraction must start on a brace or bracket."""
        assert extract_json_block("abc", 0) is None

    def test_markdown_fenced_json(self):
        """Code fences around the JSON are ignored."""
        text = 'Here you go:\n```json\n{"category": "RPA"}\n```'

        assert find_json(text, "{") == {"category": "RPA"}

    def test_skips_undecodable_candidate(self):
        """A brace pair that is not JSON is skipped in favour of a later one."""
        text = "{not json} then {\"ok\": true}"

        assert find_json(text, "{") == {"ok": True}

    def test_no_json_raises_with_raw_response(self):
        """The raw response travels with the error."""
        with pytest.raises(LLMResponseError) as exc_info:
            find_json("Clarification 1", "[")

        assert "No JSON array found" in str(exc_info.value)
        assert exc_info.value.raw_response == "Clarification 1"


class TestParseClassification:
    """Test cases for parse_classification."""

    def test_valid_response(self):
        """All fields are mapped, including camelCase extras."""
        content = (
            'Sure! {"category": "AI Agent", "confidence": 0.82, "rationale": "Needs judgment", '
            '"categoryProgression": "Could not be simplified", "futureOpportunities": "Agentic AI"}'
        )

        result = parse_classification(content)

        assert result.category == TransformationCategory.AI_AGENT
        assert result.confidence == pytest.approx(0.82)
        assert result.rationale == "Needs judgment"
        assert result.category_progression == "Could not be simplified"
        assert result.future_opportunities == "Agentic AI"

    def test_integer_confidence(self):
        """Whole-number confidence is accepted as a float."""
        result = parse_classification('{"category": "Eliminate", "confidence": 1}')

        assert result.confidence == 1.0
        assert isinstance(result.confidence, float)

    @pytest.mark.parametrize(
        "content,message",
        [
            ('{"confidence": 0.5}', "missing required fields"),
            ('{"category": "RPA"}', "missing required fields"),
            ('{"category": "RPA", "confidence": true}', "missing required fields"),
            ('{"category": "Robots", "confidence": 0.5}', "Invalid category"),
            ('{"category": "RPA", "confidence": 1.5}', "Invalid confidence score"),
            ('{"category": "RPA", "confidence": -0.1}', "Invalid confidence score"),
        ],
    )
    def test_invalid_responses(self, content, message):
        """Malformed classifications raise LLMResponseError."""
        with pytest.raises(LLMResponseError, match=message):
            parse_classification(content)


class TestParseQuestions:
    """Test cases for parse_questions."""

    def test_objects_and_strings(self):
        """Both object and bare-string entries become questions."""
        content = '[{"question": " How often? ", "purpose": "Frequency"}, "Who approves?"]'

        questions = parse_questions(content)

        assert [q.question for q in questions] == ["How often?", "Who approves?"]
        assert questions[0].purpose == "Frequency"
        assert questions[1].purpose == "General clarification"

    def test_limit(self):
        """At most `limit` questions are returned."""
        content = '["One?", "Two?", "Three?"]'

        assert len(parse_questions(content)) == 2
        assert len(parse_questions(content, limit=1)) == 1

    def test_blank_and_invalid_entries_skipped(self):
        """Entries without question text are dropped."""
        content = '[{"question": "  "}, {"purpose": "x"}, 7, "Real question?"]'

        assert [q.question for q in parse_questions(content)] == ["Real question?"]

    def test_empty_array(self):
        """An empty array is a valid, empty batch."""
        assert parse_questions("[]") == []

    def test_object_instead_of_array(self):
        """A lone object is not a question batch."""
        with pytest.raises(LLMResponseError):
            parse_questions('{"question": "How often?"}')


class TestParseAttributes:
    """Test cases for parse_attributes and flatten_attributes."""

    def test_nested_and_flat_values(self):
        """Nested entries keep their explanation; flat ones get a default."""
        content = '{"frequency": {"value": "daily", "explanation": "Said daily"}, "complexity": "high"}'

        result = parse_attributes(content)

        assert result["frequency"] == {"value": "daily", "explanation": "Said daily"}
        assert result["complexity"] == {"value": "high", "explanation": "Extracted from conversation"}

    def test_missing_attributes_default_to_unknown(self, caplog):
        """Every core attribute is present even when the LLM omitted it."""
        result = parse_attributes("{}")

        assert set(CORE_ATTRIBUTES) <= set(result)
        assert result["risk"]["value"] == "unknown"
        assert "Missing attribute 'risk'" in caplog.text

    def test_aliases(self):
        """Alternative key spellings are mapped onto the expected names."""
        content = '{"judgement": "yes", "risks": {"value": "Regulatory sign-off"}}'

        result = parse_attributes(content, extra_keys=["risks_constraints"])

        assert result["judgment_required"]["value"] == "yes"
        assert result["judgment_required"]["explanation"] == "Extracted via alias"
        assert result["risks_constraints"]["value"] == "Regulatory sign-off"
        assert "judgement" not in result
        assert "risks" not in result

    def test_alias_key_not_repeated_as_additional_field(self):
        """A key used to fill a core attribute is not also kept under its own name."""
        result = parse_attributes('{"value": "high", "team_size": 12}')

        assert result["business_value"] == {"value": "high", "explanation": "Extracted via alias"}
        assert "value" not in result
        assert result["team_size"]["value"] == "12"

    def test_additional_fields_kept(self):
        """Unexpected keys are preserved."""
        result = parse_attributes('{"team_size": 12}')

        assert result["team_size"] == {"value": "12", "explanation": "Additional extracted field"}

    def test_flatten(self):
        """Flattening reduces entries to their values."""
        flat = flatten_attributes({"frequency": {"value": "daily", "explanation": "x"}, "user_count": 40})

        assert flat == {"frequency": "daily", "user_count": 40}
