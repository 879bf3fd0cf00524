"""
Structured-output fallback ladder.

Hosted models do not reliably honor structured-output modes, so text replies
are parsed in three steps:

1. strict JSON parse of the whole reply (code fences stripped)
2. the first balanced ``{...}`` span in the reply
3. a caller-supplied minimal fallback object

A candidate is accepted only if it is a JSON object that conforms to the
expected schema.
"""

import json
import re
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional

from pokedm.schemas.validation import validate_json_schema
from pokedm.utils.logger import get_logger

logger = get_logger(__name__)

ParseStage = Literal["structured", "strict", "extracted", "fallback"]

_FENCE_RE = re.compile(r"^```(?:json|JSON)?\s*\n?(.*?)\n?```$", re.DOTALL)


@dataclass
class StructuredParse:
    data: Dict[str, Any]
    stage: ParseStage


def strip_code_fences(text: str) -> str:
    stripped = text.strip()
    match = _FENCE_RE.match(stripped)
    return match.group(1).strip() if match else stripped


def extract_first_json_object(text: str) -> Optional[str]:
    """
    Return the first balanced ``{...}`` span, honoring JSON string quoting,
    or None when there is none
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for index in range(start, len(text)):
            char = text[index]
            if in_string:
                if escaped:
                    escaped = False
                elif char == "\\":
                    escaped = True
                elif char == '"':
                    in_string = False
            elif char == '"':
                in_string = True
            elif char == "{":
                depth += 1
            elif char == "}":
                depth -= 1
                if depth == 0:
                    return text[start:index + 1]
        # Unbalanced from this brace; try the next one
        start = text.find("{", start + 1)
    return None


def conforms(candidate: Any, json_schema: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(candidate, dict):
        return False
    if json_schema is None:
        return True
    try:
        validate_json_schema(candidate, json_schema)
    except ValueError as e:
        logger.debug(f"Candidate rejected by schema: {e}")
        return False
    return True


def parse_structured_output(
    content: str,
    json_schema: Optional[Dict[str, Any]] = None,
    fallback: Optional[Dict[str, Any]] = None,
) -> StructuredParse:
    """Walk the ladder and return the first acceptable object"""
    text = strip_code_fences(content or "")

    try:
        candidate = json.loads(text)
    except json.JSONDecodeError:
        candidate = None
    if conforms(candidate, json_schema):
        return StructuredParse(candidate, "strict")

    span = extract_first_json_object(text)
    if span is not None:
        try:
            candidate = json.loads(span)
        except json.JSONDecodeError:
            candidate = None
        if conforms(candidate, json_schema):
            logger.info("Structured output recovered from embedded JSON")
            return StructuredParse(candidate, "extracted")

    logger.warning("Structured output unparseable; using fallback object")
    return StructuredParse(dict(fallback or {}), "fallback")
