"""
Parsing of classifier replies into discovered relations.
"""

import json
import logging
import math
from typing import Any, Optional

from .models import DiscoveredRelation, ParseResult, RelationType

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = {"true", "yes", "1"}


def extract_json_object(text: str) -> Optional[str]:
    """Return the first balanced {...} substring of ``text``, or None."""
    start = text.find("{")
    if start == -1:
        return None

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
    return None


def _coerce_confidence(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    try:
        confidence = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(confidence):
        return None
    return min(1.0, max(0.0, confidence))


def _coerce_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return bool(value)


class ClassificationParser:
    """Extracts and validates the structured answer of the classifier."""

    def interpret(self, raw: str, source_id: str, target_id: str) -> ParseResult:
        """
        Parse a raw reply into a tagged result.

        Args:
            raw: Reply text, possibly wrapped in prose
            source_id: Id of the item the relation starts from
            target_id: Id of the item the relation points to

        Returns:
            A valid result holding a relation (None for "none"),
            or an invalid result holding the reason
        """
        json_str = extract_json_object(raw or "")
        if json_str is None:
            return ParseResult.invalid("no JSON object found in response")

        try:
            data = json.loads(json_str)
        except (ValueError, RecursionError) as e:
            return ParseResult.invalid(f"malformed JSON object: {e}")
        if not isinstance(data, dict):
            return ParseResult.invalid("response JSON is not an object")

        raw_type = data.get("relation_type")
        if not raw_type or data.get("confidence") is None:
            return ParseResult.invalid("missing relation_type or confidence")

        try:
            relation_type = RelationType(str(raw_type).strip().lower())
        except ValueError:
            return ParseResult.invalid(f"unknown relation_type {raw_type!r}")
        if relation_type is RelationType.NONE:
            return ParseResult.valid(None)

        confidence = _coerce_confidence(data["confidence"])
        if confidence is None:
            return ParseResult.invalid(f"non-numeric confidence {data['confidence']!r}")

        return ParseResult.valid(DiscoveredRelation(
            source_id=source_id,
            target_id=target_id,
            relation_type=relation_type,
            confidence=confidence,
            reasoning=str(data.get("reasoning") or ""),
            bidirectional=_coerce_bool(data.get("bidirectional", False)),
        ))

    def parse(self, raw: str, source_id: str, target_id: str) -> Optional[DiscoveredRelation]:
        """Parse a raw reply, returning None for "none" or an invalid reply."""
        result = self.interpret(raw, source_id, target_id)
        if not result.ok:
            logger.warning(
                f"Invalid classification for {source_id} -> {target_id}: {result.invalid_reason}"
            )
            logger.debug(f"Raw classification response: {raw!r}")
        return result.relation
