"""Turn free-form model output into a validated Feedback scorecard.

Two stages: pull the JSON object out of the surrounding prose (repairing a
truncated tail once if needed), then coerce whatever came back into a fully
populated ``Feedback``. The second stage cannot fail.
"""
import json
import math
from typing import Any, Dict, List

from loguru import logger

from resume_review.errors import ParseError
from resume_review.models import CategoryFeedback, Feedback, Tip

CATEGORIES = {
    "ATS": "ats",
    "toneAndStyle": "tone_and_style",
    "content": "content",
    "structure": "structure",
    "skills": "skills",
}


def extract_json_span(raw: str) -> str:
    """Slice from the first '{' to the last '}'; prose around it is dropped."""
    first = raw.find("{")
    last = raw.rfind("}")
    if first == -1 or last == -1 or last <= first:
        logger.error(f"No JSON object found in model response: {raw[:500]!r}")
        raise ParseError()
    return raw[first:last + 1]


def repair_json(text: str) -> str:
    """Append missing closing brackets, then missing closing braces.

    Counts are naive (brackets inside strings are counted too). Balanced
    input is returned unchanged.
    """
    missing_brackets = max(0, text.count("[") - text.count("]"))
    missing_braces = max(0, text.count("{") - text.count("}"))
    return text + "]" * missing_brackets + "}" * missing_braces


def load_json_object(raw: str) -> Any:
    """Locate the JSON payload and parse it, with one repair attempt on failure."""
    span = extract_json_span(raw)
    try:
        return json.loads(span)
    except json.JSONDecodeError as e:
        logger.warning(f"Invalid JSON in model response ({e}), attempting repair")

    repaired = repair_json(span)
    try:
        value = json.loads(repaired)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to repair JSON: {e}")
        logger.debug(f"Repaired JSON text: {repaired[:500]}")
        raise ParseError("Invalid JSON in model response.") from e

    logger.info("Repaired truncated JSON from model response")
    return value


def _coerce_score(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float) and math.isfinite(value):
        return int(round(value))
    return 0


def _coerce_tips(value: Any) -> List[Tip]:
    if not isinstance(value, list):
        return []
    tips = []
    for item in value:
        if not isinstance(item, dict) or not isinstance(item.get("tip"), str):
            continue
        tip_type = item.get("type") if item.get("type") in ("good", "improve") else "improve"
        explanation = item.get("explanation")
        tips.append(
            Tip(
                type=tip_type,
                tip=item["tip"],
                explanation=explanation if isinstance(explanation, str) else "",
            )
        )
    return tips


def _coerce_category(value: Any) -> CategoryFeedback:
    if not isinstance(value, dict):
        return CategoryFeedback()
    return CategoryFeedback(score=_coerce_score(value.get("score")), tips=_coerce_tips(value.get("tips")))


def sanitize_feedback(data: Any) -> Feedback:
    """Coerce any JSON-like value into a Feedback; wrong or missing fields get defaults."""
    source: Dict[str, Any] = data if isinstance(data, dict) else {}
    fields = {attr: _coerce_category(source.get(key)) for key, attr in CATEGORIES.items()}
    return Feedback(overall_score=_coerce_score(source.get("overallScore")), **fields)


def parse_feedback(raw: str) -> Feedback:
    """Parse raw model output into a Feedback. Raises ParseError only when no JSON can be read."""
    return sanitize_feedback(load_json_object(raw))
