from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

Recommendation = Literal["apply", "caution", "avoid"]
SalaryAdequacy = Literal["adequate", "low", "high", "not_specified"]
ExperienceMatch = Literal["junior_friendly", "requires_experience", "unrealistic"]


def utcnow() -> datetime:
    return datetime.now(UTC)


class TaskType(str, Enum):
    COVER_LETTER = "COVER_LETTER"
    RESUME_ANALYSIS_HTML = "RESUME_ANALYSIS_HTML"
    RESUME_ANALYSIS_TEXT = "RESUME_ANALYSIS_TEXT"
    POSTING_ANALYSIS = "POSTING_ANALYSIS"
    AVAILABILITY_CHECK = "AVAILABILITY_CHECK"
    EMBEDDING = "EMBEDDING"


class ModelConfig(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model: str
    temperature: float | None = None
    max_tokens: int | None = None
    max_completion_tokens: int | None = None


class GenerationTask(BaseModel):
    model_config = ConfigDict(frozen=True, protected_namespaces=())

    task_type: TaskType
    model_settings: ModelConfig
    system_prompt: str
    user_prompt: str


class GenerationResult(BaseModel):
    text: str
    generated_at: datetime = Field(default_factory=utcnow)


class _ModelOutput(BaseModel):
    """Base for shapes the model fills in: camelCase aliases, unknown keys dropped."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


def _none_to_list(value: Any) -> Any:
    return [] if value is None else value


class PersonalInfo(_ModelOutput):
    full_name: str | None = Field(default=None, alias="fullName")
    email: str | None = None
    phone: str | None = None
    location: str | None = None


class WorkExperience(_ModelOutput):
    company: str | None = None
    position: str | None = None
    period: str | None = None
    description: str | None = None


class EducationEntry(_ModelOutput):
    institution: str | None = None
    degree: str | None = None
    period: str | None = None


class SkillEntry(_ModelOutput):
    name: str
    level: str | None = None
    verified: bool | str | None = None


class LanguageEntry(_ModelOutput):
    language: str
    level: str | None = None


class CourseEntry(_ModelOutput):
    name: str
    institution: str | None = None
    period: str | None = None
    description: str | None = None


class ExamEntry(_ModelOutput):
    name: str
    score: str | None = None
    period: str | None = None
    description: str | None = None


class CertificateEntry(_ModelOutput):
    name: str
    issuer: str | None = None
    period: str | None = None
    description: str | None = None


class AdditionalInfo(_ModelOutput):
    projects: list[str] = Field(default_factory=list)
    other: str | None = None

    @field_validator("projects", mode="before")
    @classmethod
    def _none_projects(cls, value: Any) -> Any:
        return _none_to_list(value)


class ResumeAnalysisResult(_ModelOutput):
    personal_info: PersonalInfo = Field(default_factory=PersonalInfo, alias="personalInfo")
    position: str | None = None
    about: str | None = None
    experience: list[WorkExperience] = Field(default_factory=list)
    education: list[EducationEntry] = Field(default_factory=list)
    skills: list[SkillEntry] = Field(default_factory=list)
    languages: list[LanguageEntry] = Field(default_factory=list)
    courses: list[CourseEntry] = Field(default_factory=list)
    tests: list[ExamEntry] = Field(default_factory=list)
    certificates: list[CertificateEntry] = Field(default_factory=list)
    additional_info: AdditionalInfo = Field(default_factory=AdditionalInfo, alias="additionalInfo")

    @field_validator(
        "experience",
        "education",
        "skills",
        "languages",
        "courses",
        "tests",
        "certificates",
        mode="before",
    )
    @classmethod
    def _none_lists(cls, value: Any) -> Any:
        return _none_to_list(value)

    @field_validator("personal_info", "additional_info", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> Any:
        return {} if value is None else value


class PostingAnalysisPayload(_ModelOutput):
    toxicity_score: int = Field(alias="toxicityScore", ge=1, le=10)
    recommendation: Recommendation
    red_flags: list[str] = Field(alias="redFlags")
    positives: list[str]
    summary: str = Field(min_length=1)
    salary_adequacy: SalaryAdequacy = Field(default="not_specified", alias="salaryAdequacy")
    experience_match: ExperienceMatch = Field(default="requires_experience", alias="experienceMatch")

    @field_validator("toxicity_score", mode="before")
    @classmethod
    def _integral_score(cls, value: Any) -> Any:
        if isinstance(value, bool):
            raise ValueError("toxicityScore must be an integer")
        if isinstance(value, float):
            if not value.is_integer():
                raise ValueError("toxicityScore must be an integer")
            return int(value)
        if not isinstance(value, int):
            raise ValueError("toxicityScore must be an integer")
        return value

    @field_validator("summary")
    @classmethod
    def _summary_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("summary must not be empty")
        return value

    @field_validator("salary_adequacy", "experience_match", mode="before")
    @classmethod
    def _missing_enum(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class PostingAnalysisRecord(BaseModel):
    id: int | None = None
    posting_id: str
    analysis: PostingAnalysisPayload
    analyzed_at: datetime
    raw_envelope: dict[str, Any] = Field(default_factory=dict)

    @property
    def toxicity_score(self) -> int:
        return self.analysis.toxicity_score

    @property
    def recommendation(self) -> str:
        return self.analysis.recommendation

    @property
    def summary(self) -> str:
        return self.analysis.summary

    def to_envelope(self) -> dict[str, Any]:
        return {
            "success": True,
            "data": self.analysis.model_dump(by_alias=True),
            "postingId": self.posting_id,
            "analyzedAt": self.analyzed_at.isoformat(),
        }


class CoverLetterResult(BaseModel):
    content: str
    posting_id: str
    posting_name: str
    provider: str
    generated_at: datetime
    cover_letter_id: int | None = None


class ToxicityBuckets(BaseModel):
    low: int = 0
    medium: int = 0
    high: int = 0


class AnalysisStats(BaseModel):
    total: int = 0
    recommendations: dict[str, int] = Field(
        default_factory=lambda: {"apply": 0, "caution": 0, "avoid": 0}
    )
    toxicity_levels: ToxicityBuckets = Field(default_factory=ToxicityBuckets)
    average_toxicity: float = 0.0


class EmbeddingKind(str, Enum):
    COVER_LETTER = "cover_letter"
    RESUME_ANALYSIS = "resume_analysis"
    POSTING = "posting"
    POSTING_ANALYSIS = "posting_analysis"
