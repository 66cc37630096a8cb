from __future__ import annotations

import json
import logging
from typing import Any

from pydantic import ValidationError

from jobagent.config import Settings, get_settings
from jobagent.core.coalescer import AnalysisCache, InFlightRegistry
from jobagent.core.embeddings import EmbeddingStore
from jobagent.core.records import (
    describe_validation_error,
    posting_analysis_record,
    validate_posting_analysis,
)
from jobagent.db.models import CoverLetter, Posting
from jobagent.db.repositories import Repository, extract_resume_id
from jobagent.errors import (
    AnalysisParseError,
    AnalysisValidationError,
    InvalidRequest,
    PersistenceError,
    PostingNotFound,
    ProviderError,
    ProviderUnavailable,
)
from jobagent.llm.parsing import parse_json_object
from jobagent.llm.prompts import get_prompt, strip_html
from jobagent.llm.providers import ProviderAdapter
from jobagent.types import (
    AnalysisStats,
    CoverLetterResult,
    EmbeddingKind,
    GenerationResult,
    GenerationTask,
    PostingAnalysisRecord,
    ResumeAnalysisResult,
    TaskType,
)

logger = logging.getLogger(__name__)


class GenerationService:
    """Prompt, call the active provider, validate, persist and embed.

    Cover letters are always regenerated. Posting analyses go through the
    ``AnalysisCache`` so a posting is analysed at most once at a time and a
    stored analysis is reused instead of regenerated.
    """

    def __init__(
        self,
        provider: ProviderAdapter,
        repository: Repository,
        embeddings: EmbeddingStore,
        registry: InFlightRegistry,
        settings: Settings | None = None,
    ):
        self.provider = provider
        self.repository = repository
        self.embeddings = embeddings
        self.settings = settings or get_settings()
        self.analysis_cache = AnalysisCache(registry, repository, self.generate_posting_analysis)

    def build_task(self, task_type: TaskType, **inputs: Any) -> GenerationTask:
        prompt = get_prompt(task_type)
        return GenerationTask(
            task_type=task_type,
            model_settings=self.provider.get_config(task_type),
            system_prompt=prompt.system_prompt,
            user_prompt=prompt.build_user_prompt(**inputs),
        )

    async def run_task(self, task: GenerationTask) -> GenerationResult:
        try:
            text = await self.provider.generate_text(task.user_prompt, task.system_prompt, task.model_settings)
        except ProviderError as exc:
            logger.error("Provider %s failed task=%s error=%s", self.provider.name, task.task_type.value, exc)
            raise ProviderUnavailable(f"{self.provider.display_name} provider failed: {exc}") from exc
        return GenerationResult(text=text)

    async def generate_cover_letter(self, resume: dict[str, Any], posting: dict[str, Any]) -> CoverLetterResult:
        posting_id = str(posting.get("id") or "unknown")
        logger.info("Generating cover letter for posting %s via %s", posting_id, self.provider.name)

        analysis = await self._analysis_hint(posting_id)
        task = self.build_task(
            TaskType.COVER_LETTER,
            resume=resume,
            posting=posting,
            analysis=analysis,
            description_limit=self.settings.posting_description_max_chars,
        )
        result = await self.run_task(task)
        content = result.text.strip()

        letter_id: int | None = None
        try:
            letter = await self.repository.create_cover_letter(
                posting_id=posting_id,
                content=content,
                generated_at=result.generated_at,
            )
            letter_id = letter.id
        except Exception as exc:
            logger.error("Failed to save cover letter for posting %s: %s", posting_id, exc)

        if letter_id is not None:
            self.embeddings.schedule(EmbeddingKind.COVER_LETTER, letter_id, content)

        return CoverLetterResult(
            content=content,
            posting_id=posting_id,
            posting_name=str(posting.get("name") or ""),
            provider=self.provider.name,
            generated_at=result.generated_at,
            cover_letter_id=letter_id,
        )

    async def analyze_resume_html(self, html: str, source_url: str | None = None) -> ResumeAnalysisResult:
        if not html or not html.strip():
            raise InvalidRequest("resume HTML is empty")
        return await self._analyze_resume(
            TaskType.RESUME_ANALYSIS_HTML,
            source_url,
            html=html,
            max_chars=self.settings.resume_html_max_chars,
        )

    async def analyze_resume_text(self, text: str, source_url: str | None = None) -> ResumeAnalysisResult:
        if not text or not text.strip():
            raise InvalidRequest("resume text is empty")
        return await self._analyze_resume(TaskType.RESUME_ANALYSIS_TEXT, source_url, text=text)

    async def _analyze_resume(
        self, task_type: TaskType, source_url: str | None, **inputs: Any
    ) -> ResumeAnalysisResult:
        logger.info("Analysing resume task=%s via %s", task_type.value, self.provider.name)
        result = await self.run_task(self.build_task(task_type, **inputs))

        data = parse_json_object(result.text)
        try:
            analysis = ResumeAnalysisResult.model_validate(data)
        except ValidationError as exc:
            raise AnalysisParseError(
                f"resume analysis does not match the schema: {describe_validation_error(exc)}"
            ) from exc

        resume_id = extract_resume_id(source_url)
        analysis_json = analysis.model_dump(by_alias=True, mode="json")
        try:
            row = await self.repository.upsert_resume_analysis(resume_id=resume_id, analysis_json=analysis_json)
        except Exception as exc:
            logger.error("Failed to save resume analysis %s: %s", resume_id, exc)
        else:
            self.embeddings.schedule(
                EmbeddingKind.RESUME_ANALYSIS,
                row.id,
                json.dumps(analysis_json, ensure_ascii=False, sort_keys=True),
            )

        logger.info("Resume %s analysed", resume_id)
        return analysis

    async def analyze_posting(
        self, posting_id: str, posting: dict[str, Any] | None = None
    ) -> PostingAnalysisRecord:
        """Return the stored analysis of a posting or generate one.

        When ``posting`` data is supplied it is stored under ``posting_id``
        first, so callers that never saved the posting can still analyse it.
        Either way the request goes through the analysis cache.
        """
        posting_id = str(posting_id)
        if posting is not None:
            if not posting:
                raise InvalidRequest(f"posting data for {posting_id} is empty")
            if posting_id not in self.analysis_cache.registry:
                await self.save_posting(dict(posting, id=posting_id))
        return await self.analysis_cache.analyze(posting_id)

    async def generate_posting_analysis(self, posting_id: str) -> PostingAnalysisRecord:
        posting = await self.repository.get_posting(posting_id)
        if posting is None:
            raise PostingNotFound(posting_id)

        resume = await self._resume_hint()
        task = self.build_task(
            TaskType.POSTING_ANALYSIS,
            posting=posting,
            resume=resume,
            description_limit=self.settings.posting_description_max_chars,
        )
        result = await self.run_task(task)

        data = parse_json_object(result.text)
        analysis = validate_posting_analysis(data)
        envelope = {
            "success": True,
            "data": data,
            "postingId": posting_id,
            "analyzedAt": result.generated_at.isoformat(),
            "provider": self.provider.name,
        }

        try:
            row = await self.repository.create_posting_analysis(
                posting_id=posting_id,
                analysis=analysis,
                analyzed_at=result.generated_at,
                raw_envelope=envelope,
            )
        except Exception as exc:
            logger.error("Failed to save analysis for posting %s: %s", posting_id, exc)
            raise PersistenceError(f"could not save analysis for posting {posting_id}: {exc}") from exc

        self.embeddings.schedule(EmbeddingKind.POSTING_ANALYSIS, row.id, analysis.summary)
        return PostingAnalysisRecord(
            id=row.id,
            posting_id=posting_id,
            analysis=analysis,
            analyzed_at=result.generated_at,
            raw_envelope=envelope,
        )

    async def check_availability(self) -> bool:
        try:
            return await self.provider.check_availability()
        except Exception as exc:
            logger.warning("Availability check failed provider=%s error=%s", self.provider.name, exc)
            return False

    async def save_posting(self, payload: dict[str, Any]) -> str:
        posting = await self.repository.save_posting(payload)
        description = payload.get("description")
        source = " ".join(
            part
            for part in [posting.name, strip_html(description) if isinstance(description, str) else ""]
            if part
        )
        self.embeddings.schedule(EmbeddingKind.POSTING, posting.id, source)
        return posting.id

    async def list_postings(self) -> list[dict[str, Any]]:
        return [posting_summary(posting) for posting in await self.repository.list_postings()]

    async def get_analysis(self, posting_id: str) -> PostingAnalysisRecord | None:
        return await self.analysis_cache.lookup(str(posting_id))

    async def list_analyses(self) -> list[PostingAnalysisRecord]:
        records = []
        for row in await self.repository.list_latest_posting_analyses():
            try:
                records.append(posting_analysis_record(row))
            except AnalysisValidationError as exc:
                logger.warning("Skipping malformed analysis id=%s: %s", row.id, exc)
        return records

    async def analysis_stats(self) -> AnalysisStats:
        return summarize_analyses(await self.list_analyses())

    async def get_cover_letter(self, posting_id: str | None = None) -> CoverLetter | None:
        return await self.repository.get_latest_cover_letter(posting_id)

    async def _analysis_hint(self, posting_id: str) -> dict[str, Any] | None:
        try:
            row = await self.repository.get_latest_posting_analysis(posting_id)
            if row is None:
                return None
            hint = posting_analysis_record(row).analysis.model_dump(by_alias=True)
        except Exception as exc:
            logger.warning("Could not load analysis for posting %s: %s", posting_id, exc)
            return None
        logger.info("Using analysis of posting %s to improve the letter", posting_id)
        return hint

    async def _resume_hint(self) -> dict[str, Any] | None:
        try:
            return await self.repository.get_latest_resume_analysis()
        except Exception as exc:
            logger.warning("Could not load latest resume analysis: %s", exc)
            return None


def summarize_analyses(records: list[PostingAnalysisRecord]) -> AnalysisStats:
    stats = AnalysisStats(total=len(records))
    for record in records:
        stats.recommendations[record.recommendation] = stats.recommendations.get(record.recommendation, 0) + 1
        score = record.toxicity_score
        if score <= 3:
            stats.toxicity_levels.low += 1
        elif score <= 6:
            stats.toxicity_levels.medium += 1
        else:
            stats.toxicity_levels.high += 1
    if records:
        stats.average_toxicity = sum(r.toxicity_score for r in records) / len(records)
    return stats


def posting_summary(posting: Posting) -> dict[str, Any]:
    payload = posting.payload or {}
    area = payload.get("area")
    experience = payload.get("experience")
    return {
        "id": posting.id,
        "name": posting.name,
        "employer": posting.employer,
        "area": area.get("name") if isinstance(area, dict) else area,
        "experience": experience.get("name") if isinstance(experience, dict) else experience,
        "salary": payload.get("salary"),
        "publishedAt": payload.get("published_at"),
        "savedAt": posting.updated_at.isoformat() if posting.updated_at else None,
        "source": posting.source,
    }
