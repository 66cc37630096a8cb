from __future__ import annotations

from typing import Any


class JobAgentError(Exception):
    """Base class for every error raised by the orchestration core."""


class ConfigurationError(JobAgentError):
    """Missing credential, unknown provider or unregistered task type."""


class ProviderError(JobAgentError):
    """A single backend call failed or returned an unusable payload."""

    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderUnavailable(JobAgentError):
    """The active provider could not produce a result for the caller."""


class AnalysisParseError(JobAgentError):
    """Model output is not a JSON document of the expected shape."""


class AnalysisValidationError(JobAgentError):
    """Model output is well-formed JSON but breaks a domain constraint."""


class PersistenceError(JobAgentError):
    """A write on the critical path of an operation failed."""


class InvalidRequest(JobAgentError):
    """Caller input is empty, incomplete or refers to nothing stored."""


class PostingNotFound(JobAgentError):
    def __init__(self, posting_id: str):
        super().__init__(f"posting {posting_id} not found")
        self.posting_id = posting_id


def to_failure(exc: BaseException) -> dict[str, Any]:
    message = str(exc).strip() or exc.__class__.__name__
    return {"success": False, "error": message, "error_type": exc.__class__.__name__}
