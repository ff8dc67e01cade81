"""Tests for JSON span extraction, single-pass repair and scorecard coercion."""
import json

import pytest

from conftest import FEEDBACK_JSON
from resume_review.errors import ParseError
from resume_review.feedback_parser import (
    extract_json_span,
    load_json_object,
    parse_feedback,
    repair_json,
    sanitize_feedback,
)
from resume_review.models import CategoryFeedback, Feedback


class TestSpanExtraction:

    @pytest.mark.parametrize("raw", ["", "no json here", "} backwards {", "only an opening {"])
    def test_no_brace_pair_raises(self, raw):
        with pytest.raises(ParseError):
            parse_feedback(raw)

    def test_surrounding_prose_is_ignored(self):
        raw = f"Sure! Here is the review:\n{json.dumps(FEEDBACK_JSON)}\nLet me know if you need more."

        feedback = parse_feedback(raw)

        assert feedback.overall_score == 72
        assert feedback.ats.score == 80
        assert feedback.content.tips[0].tip == "Quantify impact"

    def test_code_fence_is_ignored(self):
        raw = f"```json\n{json.dumps(FEEDBACK_JSON)}\n```"
        assert parse_feedback(raw).skills.score == 68

    def test_span_is_first_to_last_brace(self):
        assert extract_json_span('a {"x": {"y": 1}} b') == '{"x": {"y": 1}}'


class TestRepair:

    def test_balanced_text_is_unchanged(self):
        text = json.dumps(FEEDBACK_JSON)
        assert repair_json(text) == text

    def test_repair_is_noop_for_valid_json(self):
        text = json.dumps(FEEDBACK_JSON)
        assert json.loads(repair_json(text)) == json.loads(text)

    def test_brackets_closed_before_braces(self):
        assert repair_json('{"a": [{"b": 1}') == '{"a": [{"b": 1}]}'

    def test_truncated_output_is_repaired(self):
        raw = (
            'Sure! {"overallScore": 72, "ATS": {"score": 80, "tips": []}, '
            '"toneAndStyle": {"score": 60, "tips": [{"type": "good", "tip": "Conc'
        )

        feedback = parse_feedback(raw)

        assert feedback.overall_score == 72
        assert feedback.ats.score == 80
        assert feedback.tone_and_style == CategoryFeedback()
        assert feedback.structure == CategoryFeedback()
        assert feedback.skills == CategoryFeedback()

    def test_truncated_inside_tips_array(self):
        raw = '{"overallScore": 50, "ATS": {"score": 40, "tips": [{"tip": "Add keywords"}, '
        raw += '{"tip": "Use standard headings"}'

        value = load_json_object(raw)

        assert value["ATS"]["tips"][1]["tip"] == "Use standard headings"

    def test_unrepairable_output_raises(self):
        with pytest.raises(ParseError):
            parse_feedback('{"overallScore": 72, "ATS": {"score": }')


class TestSanitize:

    @pytest.mark.parametrize("value", [None, 42, "text", [], [1, 2]])
    def test_non_objects_become_defaults(self, value):
        assert sanitize_feedback(value) == Feedback()

    def test_missing_categories_default(self):
        feedback = sanitize_feedback({"overallScore": 90, "skills": {"score": 85, "tips": []}})

        assert feedback.overall_score == 90
        assert feedback.skills.score == 85
        for category in (feedback.ats, feedback.tone_and_style, feedback.content, feedback.structure):
            assert category.score == 0
            assert category.tips == []

    def test_wrong_types_default(self):
        feedback = sanitize_feedback({
            "overallScore": "72",
            "ATS": {"score": True, "tips": "none"},
            "content": "great",
            "structure": {"score": 77.6, "tips": None},
        })

        assert feedback.overall_score == 0
        assert feedback.ats == CategoryFeedback()
        assert feedback.content == CategoryFeedback()
        assert feedback.structure.score == 78

    def test_malformed_tips_are_dropped_or_normalized(self):
        feedback = sanitize_feedback({
            "ATS": {"score": 10, "tips": [
                "plain string",
                {"type": "improve"},
                {"type": "bogus", "tip": "Add a summary", "explanation": 5},
                {"type": "good", "tip": "Nice layout", "explanation": "Easy to scan"},
            ]},
        })

        tips = feedback.ats.tips
        assert [t.tip for t in tips] == ["Add a summary", "Nice layout"]
        assert tips[0].type == "improve"
        assert tips[0].explanation == ""
        assert tips[1].type == "good"

    def test_dump_uses_wire_names(self):
        dumped = sanitize_feedback(FEEDBACK_JSON).model_dump(by_alias=True)
        assert set(dumped) == {"overallScore", "ATS", "toneAndStyle", "content", "structure", "skills"}
