from __future__ import annotations

import asyncio
import math
from datetime import UTC, datetime, timedelta

import pytest

from jobagent.core.records import validate_posting_analysis
from jobagent.db.repositories import extract_resume_id, finite_vector
from jobagent.errors import InvalidRequest
from jobagent.types import EmbeddingKind


def test_extract_resume_id() -> None:
    assert extract_resume_id("https://hh.ru/resume/deadbeef01?hhtmFrom=x") == "deadbeef01"
    assert extract_resume_id("https://hh.ru/applicant/resumes") == "unknown"
    assert extract_resume_id(None) == "unknown"


def test_finite_vector_replaces_non_finite_values() -> None:
    assert finite_vector([1.0, -0.5, math.nan, math.inf]) == [1.0, -0.5, 0.0, 0.0]


def test_save_posting_requires_an_id(open_runtime, fake_provider) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            with pytest.raises(InvalidRequest, match="no id"):
                await runtime.repository.save_posting({"name": "No id"})

    asyncio.run(scenario())


def test_save_posting_overwrites_previous_payload(open_runtime, fake_provider, posting) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            await runtime.repository.save_posting(posting)
            stored = await runtime.repository.save_posting(dict(posting, name="Senior Backend Developer"))
            payload = await runtime.repository.get_posting("90210")
            missing = await runtime.repository.get_posting("1")
            return stored, payload, missing

    stored, payload, missing = asyncio.run(scenario())
    assert stored.employer == "Acme"
    assert payload["name"] == "Senior Backend Developer"
    assert missing is None


def test_latest_analysis_wins_per_posting(open_runtime, fake_provider) -> None:
    base = {"recommendation": "caution", "redFlags": [], "positives": [], "summary": "s"}
    now = datetime.now(UTC)

    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            repo = runtime.repository
            for posting_id, score, age in [("1", 2, 3), ("1", 5, 1), ("2", 9, 2)]:
                await repo.create_posting_analysis(
                    posting_id=posting_id,
                    analysis=validate_posting_analysis(dict(base, toxicityScore=score)),
                    analyzed_at=now - timedelta(hours=age),
                    raw_envelope={},
                )
            latest = await repo.get_latest_posting_analysis("1")
            listed = await repo.list_latest_posting_analyses()
            return latest, listed

    latest, listed = asyncio.run(scenario())
    assert latest.toxicity_score == 5
    assert sorted((row.posting_id, row.toxicity_score) for row in listed) == [("1", 5), ("2", 9)]


def test_embedding_round_trip_and_missing_row(open_runtime, fake_provider) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            letter = await runtime.repository.create_cover_letter(
                posting_id="1", content="text", generated_at=datetime.now(UTC)
            )
            await runtime.repository.set_embedding(EmbeddingKind.COVER_LETTER, letter.id, [0.125, 3.0])
            stored = await runtime.repository.get_embedding(EmbeddingKind.COVER_LETTER, letter.id)
            with pytest.raises(LookupError):
                await runtime.repository.set_embedding(EmbeddingKind.COVER_LETTER, 999, [1.0])
            missing_ok = await runtime.embeddings.store(EmbeddingKind.COVER_LETTER, 999, "text")
            blank_ok = await runtime.embeddings.store(EmbeddingKind.COVER_LETTER, letter.id, "   ")
            return stored, missing_ok, blank_ok

    stored, missing_ok, blank_ok = asyncio.run(scenario())
    assert stored == [0.125, 3.0]
    assert missing_ok is False
    assert blank_ok is False


def test_non_finite_components_are_stored_as_zero(open_runtime, fake_provider) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            letter = await runtime.repository.create_cover_letter(
                posting_id="1", content="text", generated_at=datetime.now(UTC)
            )
            await runtime.repository.set_embedding(EmbeddingKind.COVER_LETTER, letter.id, [math.nan, 0.5])
            return await runtime.repository.get_embedding(EmbeddingKind.COVER_LETTER, letter.id)

    assert asyncio.run(scenario()) == [0.0, 0.5]


def test_embedding_write_keeps_record_order(open_runtime, fake_provider) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            repo = runtime.repository
            first = await repo.upsert_resume_analysis(resume_id="aaa", analysis_json={"position": "first"})
            await asyncio.sleep(0.01)
            await repo.upsert_resume_analysis(resume_id="bbb", analysis_json={"position": "second"})
            await repo.set_embedding(EmbeddingKind.RESUME_ANALYSIS, first.id, [1.0])
            return await repo.get_latest_resume_analysis()

    assert asyncio.run(scenario()) == {"position": "second"}


def test_list_postings_returns_newest_first(open_runtime, fake_provider, posting) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            await runtime.service.save_posting(posting)
            await asyncio.sleep(0.01)
            await runtime.service.save_posting(
                dict(posting, id="777", name="Data Engineer", area={"name": "Kazan"}, published_at="2024-05-01")
            )
            return await runtime.service.list_postings()

    listed = asyncio.run(scenario())

    assert [item["id"] for item in listed] == ["777", "90210"]
    assert listed[0]["name"] == "Data Engineer"
    assert listed[0]["area"] == "Kazan"
    assert listed[0]["publishedAt"] == "2024-05-01"
    assert listed[1]["employer"] == "Acme"
    assert listed[1]["salary"] == {"from": 150000, "currency": "RUR"}
    assert listed[1]["savedAt"]


def test_concurrent_saves_of_one_posting_keep_a_single_row(open_runtime, fake_provider, posting) -> None:
    async def scenario():
        async with open_runtime(fake_provider()) as runtime:
            await asyncio.gather(*(runtime.repository.save_posting(posting) for _ in range(3)))
            return await runtime.repository.list_postings()

    rows = asyncio.run(scenario())
    assert [row.id for row in rows] == ["90210"]
