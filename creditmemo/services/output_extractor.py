import json
import logging
import re
from typing import Any

from pydantic import ValidationError

from creditmemo.core.exceptions import JSONParsingError
from creditmemo.models.memo_models import MemoPatch
from creditmemo.services.providers.base import RawOutput
from creditmemo.services.providers.base import SegmentKind

logger = logging.getLogger(__name__)

# Returned when a response carries no text segment at all
EMPTY_STRUCTURE = "{}"

_FENCE_RE = re.compile(r"^```[\w-]*[ \t]*\n?(.*?)\n?\s*```$", re.DOTALL)


# ---------------------------------------------------------------
# Text selection and fence stripping
# ---------------------------------------------------------------
def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```lang ... ``` (or bare ```) block and outer whitespace."""
    cleaned = text.strip()
    match = _FENCE_RE.match(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def first_text(raw: RawOutput | None) -> str | None:
    if raw is None:
        return None
    for segment in raw.segments:
        if segment.kind is SegmentKind.TEXT:
            return segment.text
    return None


def extract_payload(raw: RawOutput | None, request_id: str = "-") -> str:
    """Return the parseable text of a response. Never raises."""
    text = first_text(raw)
    if text is None:
        logger.debug("[%s] No text segment in backend response, using empty structure", request_id)
        return EMPTY_STRUCTURE
    return strip_code_fence(text)


# ---------------------------------------------------------------
# JSON extractor helper
# ---------------------------------------------------------------
def extract_json(text: str, request_id: str = "-") -> Any:
    """Attempts to robustly parse JSON from backend text, handling markdown fences and extraneous text."""
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        logger.warning("[%s] Initial JSON parse failed, attempting extraction strategies...", request_id)

    # Strategy 1: fenced block somewhere inside the text
    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text, re.DOTALL)
    if match:
        try:
            result = json.loads(match.group(1))
            logger.info("[%s] Successfully parsed JSON from markdown code fence.", request_id)
            return result
        except json.JSONDecodeError:
            logger.warning("[%s] Failed to parse JSON from fenced block, trying next strategy...", request_id)

    # Strategy 2: first object in the text
    obj_start = text.find("{")
    if obj_start == -1:
        logger.error("[%s] No JSON object marker found in response", request_id)
        raise JSONParsingError("No JSON object found in response")
    try:
        obj, _ = json.JSONDecoder().raw_decode(text, obj_start)
        logger.info("[%s] Successfully parsed JSON using raw_decode.", request_id)
        return obj
    except json.JSONDecodeError as e:
        logger.error("[%s] Failed to parse JSON using raw_decode: %s", request_id, str(e), exc_info=False)
    raise JSONParsingError("All strategies to parse JSON from backend response failed.")


def parse_patch(text: str, request_id: str = "-") -> MemoPatch:
    """Parse extracted text into a ``MemoPatch``."""
    return patch_from_data(extract_json(text, request_id), request_id)


def patch_from_data(data: Any, request_id: str = "-") -> MemoPatch:
    """Validate parsed JSON as a ``MemoPatch``.

    Missing keys are fine and leave the patch field absent; a non-object root or
    values of the wrong shape are malformed output.
    """
    if not isinstance(data, dict):
        raise JSONParsingError(f"Expected a JSON object, got {type(data).__name__}")
    try:
        return MemoPatch.model_validate(data)
    except ValidationError as e:
        logger.error("[%s] Backend output does not fit the memo schema: %s", request_id, e.errors()[:3])
        raise JSONParsingError(f"Malformed phase output: {e.error_count()} invalid field(s)") from e
