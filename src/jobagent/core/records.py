from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from jobagent.db.models import PostingAnalysis
from jobagent.errors import AnalysisValidationError
from jobagent.types import PostingAnalysisPayload, PostingAnalysisRecord


def describe_validation_error(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "analysis"
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def validate_posting_analysis(data: Any) -> PostingAnalysisPayload:
    if not isinstance(data, dict):
        raise AnalysisValidationError("posting analysis must be a JSON object")
    try:
        return PostingAnalysisPayload.model_validate(data)
    except ValidationError as exc:
        raise AnalysisValidationError(f"invalid posting analysis: {describe_validation_error(exc)}") from exc


def posting_analysis_record(row: PostingAnalysis) -> PostingAnalysisRecord:
    payload = validate_posting_analysis(
        {
            "toxicity_score": row.toxicity_score,
            "recommendation": row.recommendation,
            "red_flags": row.red_flags_json,
            "positives": row.positives_json,
            "summary": row.summary,
            "salary_adequacy": row.salary_adequacy,
            "experience_match": row.experience_match,
        }
    )
    return PostingAnalysisRecord(
        id=row.id,
        posting_id=row.posting_id,
        analysis=payload,
        analyzed_at=row.analyzed_at,
        raw_envelope=dict(row.raw_envelope or {}),
    )
