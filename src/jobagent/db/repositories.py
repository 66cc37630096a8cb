from __future__ import annotations

import math
import re
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobagent.db.base import Base, TimestampMixin
from jobagent.db.models import CoverLetter, Posting, PostingAnalysis, ResumeAnalysis
from jobagent.errors import InvalidRequest
from jobagent.types import EmbeddingKind, PostingAnalysisPayload, utcnow

RESUME_ID_PATTERN = re.compile(r"/resume/([a-f0-9]+)")

EMBEDDING_MODELS: dict[EmbeddingKind, type[Base]] = {
    EmbeddingKind.COVER_LETTER: CoverLetter,
    EmbeddingKind.RESUME_ANALYSIS: ResumeAnalysis,
    EmbeddingKind.POSTING: Posting,
    EmbeddingKind.POSTING_ANALYSIS: PostingAnalysis,
}


def extract_resume_id(url: str | None) -> str:
    if not url:
        return "unknown"
    match = RESUME_ID_PATTERN.search(url)
    return match.group(1) if match else "unknown"


def finite_vector(vector: list[float]) -> list[float]:
    return [float(v) if math.isfinite(v) else 0.0 for v in vector]


class Repository:
    """Storage collaborator; every call runs in its own short-lived session."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def save_posting(self, payload: dict[str, Any], *, source: str = "extension") -> Posting:
        posting_id = str(payload.get("id") or "").strip()
        if not posting_id:
            raise InvalidRequest("posting payload has no id")

        employer = payload.get("employer")
        employer_name = employer.get("name", "") if isinstance(employer, dict) else str(employer or "")

        values = {
            "name": str(payload.get("name") or ""),
            "employer": employer_name,
            "payload": dict(payload),
            "source": source,
        }
        try:
            return await self._write_posting(posting_id, values)
        except IntegrityError:
            # inserted concurrently under the same id; the second pass updates that row
            return await self._write_posting(posting_id, values)

    async def _write_posting(self, posting_id: str, values: dict[str, Any]) -> Posting:
        async with self.session_factory() as session:
            posting = await session.get(Posting, posting_id)
            if posting is None:
                posting = Posting(id=posting_id)
                session.add(posting)
            for key, value in values.items():
                setattr(posting, key, value)
            await session.commit()
            return posting

    async def get_posting(self, posting_id: str) -> dict[str, Any] | None:
        async with self.session_factory() as session:
            posting = await session.get(Posting, posting_id)
            return dict(posting.payload) if posting else None

    async def create_cover_letter(self, *, posting_id: str, content: str, generated_at: datetime) -> CoverLetter:
        async with self.session_factory() as session:
            letter = CoverLetter(posting_id=posting_id, content=content, generated_at=generated_at)
            session.add(letter)
            await session.commit()
            return letter

    async def get_latest_cover_letter(self, posting_id: str | None = None) -> CoverLetter | None:
        statement = select(CoverLetter).order_by(CoverLetter.generated_at.desc(), CoverLetter.id.desc()).limit(1)
        if posting_id is not None:
            statement = statement.where(CoverLetter.posting_id == posting_id)
        async with self.session_factory() as session:
            return await session.scalar(statement)

    async def upsert_resume_analysis(self, *, resume_id: str, analysis_json: dict[str, Any]) -> ResumeAnalysis:
        async with self.session_factory() as session:
            existing = await session.scalar(select(ResumeAnalysis).where(ResumeAnalysis.resume_id == resume_id))
            if existing:
                existing.analysis_json = analysis_json
                existing.updated_at = utcnow()
                obj = existing
            else:
                obj = ResumeAnalysis(resume_id=resume_id, analysis_json=analysis_json)
                session.add(obj)
            await session.commit()
            return obj

    async def get_latest_resume_analysis(self) -> dict[str, Any] | None:
        statement = (
            select(ResumeAnalysis)
            .order_by(ResumeAnalysis.updated_at.desc(), ResumeAnalysis.id.desc())
            .limit(1)
        )
        async with self.session_factory() as session:
            row = await session.scalar(statement)
            return dict(row.analysis_json) if row else None

    async def create_posting_analysis(
        self,
        *,
        posting_id: str,
        analysis: PostingAnalysisPayload,
        analyzed_at: datetime,
        raw_envelope: dict[str, Any],
    ) -> PostingAnalysis:
        async with self.session_factory() as session:
            row = PostingAnalysis(
                posting_id=posting_id,
                toxicity_score=analysis.toxicity_score,
                recommendation=analysis.recommendation,
                red_flags_json=list(analysis.red_flags),
                positives_json=list(analysis.positives),
                summary=analysis.summary,
                salary_adequacy=analysis.salary_adequacy,
                experience_match=analysis.experience_match,
                analyzed_at=analyzed_at,
                raw_envelope=raw_envelope,
            )
            session.add(row)
            await session.commit()
            return row

    async def get_latest_posting_analysis(self, posting_id: str) -> PostingAnalysis | None:
        statement = (
            select(PostingAnalysis)
            .where(PostingAnalysis.posting_id == posting_id)
            .order_by(PostingAnalysis.analyzed_at.desc(), PostingAnalysis.id.desc())
            .limit(1)
        )
        async with self.session_factory() as session:
            return await session.scalar(statement)

    async def list_latest_posting_analyses(self) -> list[PostingAnalysis]:
        statement = select(PostingAnalysis).order_by(
            PostingAnalysis.analyzed_at.desc(), PostingAnalysis.id.desc()
        )
        async with self.session_factory() as session:
            rows = list((await session.scalars(statement)).all())

        latest: dict[str, PostingAnalysis] = {}
        for row in rows:
            latest.setdefault(row.posting_id, row)
        return list(latest.values())

    async def list_postings(self) -> list[Posting]:
        statement = select(Posting).order_by(Posting.updated_at.desc(), Posting.id)
        async with self.session_factory() as session:
            return list((await session.scalars(statement)).all())

    async def set_embedding(self, kind: EmbeddingKind, record_id: int | str, vector: list[float]) -> None:
        model = EMBEDDING_MODELS[EmbeddingKind(kind)]
        values: dict[str, Any] = {"embedding": finite_vector(vector)}
        if issubclass(model, TimestampMixin):
            # an embedding write must not reorder records by updated_at
            values["updated_at"] = model.updated_at
        statement = (
            update(model)
            .where(model.id == record_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self.session_factory() as session:
            result = await session.execute(statement)
            await session.commit()
        if result.rowcount == 0:
            raise LookupError(f"{model.__tablename__} row {record_id} not found")

    async def get_embedding(self, kind: EmbeddingKind, record_id: int | str) -> list[float] | None:
        model = EMBEDDING_MODELS[EmbeddingKind(kind)]
        async with self.session_factory() as session:
            value = await session.scalar(select(model.embedding).where(model.id == record_id))
        if value is None:
            return None
        return [float(v) for v in value]
