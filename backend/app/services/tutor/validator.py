"""Parse the model's JSON reply into a TutorResponse.

The model is asked for a fixed JSON schema but is not guaranteed to follow
it. Anything that does not parse or validate is replaced by the fallback
response, so callers always get a renderable object.
"""

import json
import logging
import re
from typing import Any, Dict

from app.models.tutor import TutorResponse
from app.services.tutor.errors import MalformedModelOutput
from pydantic import ValidationError

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def fallback_response() -> TutorResponse:
    return TutorResponse.fallback(MalformedModelOutput.user_message)


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    match = _CODE_FENCE.match(text)
    return match.group(1) if match else text


def _parse(raw: Any) -> TutorResponse:
    if not isinstance(raw, str) or not raw.strip():
        raise MalformedModelOutput("model returned an empty reply")

    try:
        data: Dict[str, Any] = json.loads(_strip_code_fence(raw))
    except json.JSONDecodeError as e:
        raise MalformedModelOutput(f"reply is not valid JSON: {e.msg}") from e

    if not isinstance(data, dict):
        raise MalformedModelOutput(
            f"reply must be a JSON object, got {type(data).__name__}"
        )

    try:
        return TutorResponse.model_validate(data)
    except ValidationError as e:
        raise MalformedModelOutput(
            f"reply does not match the response schema: {e.error_count()} error(s)"
        ) from e


def validate_response(raw: Any) -> TutorResponse:
    """Validate a raw model reply, falling back instead of raising."""
    try:
        return _parse(raw)
    except MalformedModelOutput as e:
        logger.warning(f"Malformed model output, using fallback: {str(e)}")
        return fallback_response()
