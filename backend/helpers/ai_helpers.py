"""
AI response parsing and normalization utilities.
"""

import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from helpers.errors import AnalyzerMalformedResponse, UnsupportedCategory
from models.schemas import CATEGORIES, AnalysisFields

logger = logging.getLogger(__name__)


def _clean_ai_response(raw_text: str) -> str:
    """
    Remove markdown code block markers from AI response.
    Handles ```json ... ``` or ``` ... ``` formats.
    """
    if not raw_text:
        return raw_text

    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", raw_text)
    if match:
        return match.group(1).strip()

    # Unterminated object (truncated output) is kept so it can be repaired
    match = re.search(r"\{[\s\S]*", raw_text)
    if match:
        return match.group(0).strip()

    return raw_text.strip()


def _fix_truncated_json(text: str) -> str:
    """Escape raw newlines inside strings and close any unbalanced quote/brackets."""
    if not text:
        return text

    result = []
    in_string = False
    escape_next = False
    for char in text:
        if escape_next:
            result.append(char)
            escape_next = False
            continue
        if char == "\\":
            result.append(char)
            escape_next = True
            continue
        if char == '"':
            in_string = not in_string
            result.append(char)
            continue
        if in_string and char == "\n":
            result.append("\\n")
            continue
        if in_string and char == "\r":
            result.append("\\r")
            continue
        result.append(char)

    fixed = "".join(result)
    if in_string:
        fixed += '"'
    fixed += "]" * max(fixed.count("[") - fixed.count("]"), 0)
    fixed += "}" * max(fixed.count("{") - fixed.count("}"), 0)
    return fixed


def parse_json_response(raw_text: str) -> Any:
    """
    Extract the JSON payload from a model reply, tolerating code fences and
    truncated output. Raises AnalyzerMalformedResponse if nothing parses.
    """
    if not raw_text or not raw_text.strip():
        raise AnalyzerMalformedResponse("AI returned an empty response", raw=raw_text)

    json_str = _clean_ai_response(raw_text)
    try:
        return json.loads(json_str)
    except json.JSONDecodeError:
        pass

    try:
        parsed = json.loads(_fix_truncated_json(json_str))
        logger.warning("[AI] Applied JSON repair (newlines/brackets)")
        return parsed
    except json.JSONDecodeError as e:
        logger.error(f"[AI] JSON repair failed: {e}")
        raise AnalyzerMalformedResponse("AI response is not valid JSON", raw=raw_text[:2000]) from e


def normalize_analysis(raw: Any) -> AnalysisFields:
    """
    Validate the analyzer response field by field.

    Only two things are fatal: a response that is not a JSON object, and a
    category outside CATEGORIES. Everything else is coerced.
    """
    if not isinstance(raw, dict):
        raise AnalyzerMalformedResponse(
            f"AI response is not a JSON object (got {type(raw).__name__})", raw=str(raw)[:2000]
        )

    category = raw.get("category", raw.get("type"))
    if not isinstance(category, str) or category not in CATEGORIES:
        raise UnsupportedCategory(category)

    try:
        return AnalysisFields.model_validate({**raw, "category": category})
    except ValidationError as e:
        raise AnalyzerMalformedResponse(f"AI response failed validation: {e}", raw=str(raw)[:2000]) from e
