from __future__ import annotations

from datetime import datetime
from typing import Any

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from jobagent.db.base import Base, TimestampMixin

# Embedding columns are unsized: OpenAI and Yandex models return vectors of
# different dimensions. Other dialects keep the pgvector text form.


class Posting(TimestampMixin, Base):
    __tablename__ = "postings"

    id: Mapped[str] = mapped_column(String(40), primary_key=True)
    name: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    employer: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    source: Mapped[str] = mapped_column(String(80), default="extension", nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True, deferred=True)


class CoverLetter(Base):
    __tablename__ = "cover_letters"
    __table_args__ = (Index("ix_cover_letters_posting_generated", "posting_id", "generated_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    posting_id: Mapped[str] = mapped_column(String(40), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True, deferred=True)


class ResumeAnalysis(TimestampMixin, Base):
    __tablename__ = "resume_analyses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    resume_id: Mapped[str] = mapped_column(String(80), unique=True, nullable=False)
    analysis_json: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True, deferred=True)


class PostingAnalysis(Base):
    __tablename__ = "posting_analyses"
    __table_args__ = (Index("ix_posting_analyses_posting_analyzed", "posting_id", "analyzed_at"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    posting_id: Mapped[str] = mapped_column(String(40), nullable=False)
    toxicity_score: Mapped[int] = mapped_column(Integer, nullable=False)
    recommendation: Mapped[str] = mapped_column(String(20), nullable=False)
    red_flags_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    positives_json: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False)
    salary_adequacy: Mapped[str] = mapped_column(String(40), default="not_specified", nullable=False)
    experience_match: Mapped[str] = mapped_column(String(40), default="requires_experience", nullable=False)
    analyzed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    raw_envelope: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    embedding: Mapped[list[float] | None] = mapped_column(Vector(), nullable=True, deferred=True)
