from __future__ import annotations

import json
import logging
import re
from typing import Any

from jobagent.errors import AnalysisParseError

logger = logging.getLogger(__name__)

_LEADING_FENCE = re.compile(r"^```[A-Za-z0-9_-]*\s*")
_TRAILING_FENCE = re.compile(r"\s*```$")


def clean_json_response(response: str) -> str:
    """Strip a markdown code fence wrapped around a model response.

    Handles both language-tagged (```json) and bare (```) fences. Text without
    a leading fence is returned trimmed but otherwise untouched.
    """
    candidate = response.strip()
    if not candidate.startswith("```"):
        return candidate

    candidate = _LEADING_FENCE.sub("", candidate, count=1)
    candidate = _TRAILING_FENCE.sub("", candidate, count=1)
    return candidate.strip()


def parse_json_object(content: str) -> dict[str, Any]:
    candidate = clean_json_response(content)
    if not candidate:
        raise AnalysisParseError("model returned an empty response")

    try:
        value = json.loads(candidate)
    except json.JSONDecodeError as exc:
        logger.warning("Failed to parse JSON model output: %s", exc)
        raise AnalysisParseError(f"model output is not valid JSON: {exc.msg}") from exc

    if not isinstance(value, dict):
        raise AnalysisParseError(
            f"model output must be a JSON object, got {type(value).__name__}"
        )
    return value
