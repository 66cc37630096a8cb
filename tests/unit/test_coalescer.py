from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from jobagent.core.coalescer import AnalysisCache, InFlightRegistry
from jobagent.core.records import validate_posting_analysis
from jobagent.errors import ProviderUnavailable
from jobagent.types import PostingAnalysisRecord


class EmptyRepository:
    def __init__(self) -> None:
        self.lookups = 0

    async def get_latest_posting_analysis(self, posting_id: str):
        self.lookups += 1
        await asyncio.sleep(0)
        return None


class CountingGenerator:
    def __init__(self, *, delay: float = 0.05, error: Exception | None = None):
        self.delay = delay
        self.error = error
        self.calls: list[str] = []

    async def __call__(self, posting_id: str) -> PostingAnalysisRecord:
        self.calls.append(posting_id)
        await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        payload = validate_posting_analysis(
            {"toxicityScore": 2, "recommendation": "apply", "redFlags": [], "positives": ["ok"], "summary": "fine"}
        )
        return PostingAnalysisRecord(id=1, posting_id=posting_id, analysis=payload, analyzed_at=datetime.now(UTC))


def test_registry_rejects_double_registration() -> None:
    async def scenario() -> None:
        registry = InFlightRegistry()
        future = asyncio.get_running_loop().create_future()
        registry.register("1", future)
        assert "1" in registry
        assert registry.get("1") is future
        with pytest.raises(RuntimeError):
            registry.register("1", future)
        registry.discard("1")
        registry.discard("1")
        assert len(registry) == 0
        future.cancel()

    asyncio.run(scenario())


def test_concurrent_callers_share_one_generation() -> None:
    registry = InFlightRegistry()
    generate = CountingGenerator()

    async def scenario():
        cache = AnalysisCache(registry, EmptyRepository(), generate)
        return await asyncio.gather(*(cache.analyze("42") for _ in range(5)))

    results = asyncio.run(scenario())

    assert generate.calls == ["42"]
    assert all(result is results[0] for result in results)
    assert len(registry) == 0


def test_distinct_postings_are_not_coalesced() -> None:
    registry = InFlightRegistry()
    generate = CountingGenerator()

    async def scenario():
        cache = AnalysisCache(registry, EmptyRepository(), generate)
        return await asyncio.gather(cache.analyze("1"), cache.analyze("2"))

    first, second = asyncio.run(scenario())
    assert sorted(generate.calls) == ["1", "2"]
    assert first.posting_id == "1"
    assert second.posting_id == "2"


def test_failure_reaches_every_waiter_and_clears_registry() -> None:
    registry = InFlightRegistry()
    error = ProviderUnavailable("backend down")
    generate = CountingGenerator(error=error)

    async def scenario():
        cache = AnalysisCache(registry, EmptyRepository(), generate)
        outcomes = await asyncio.gather(*(cache.analyze("7") for _ in range(3)), return_exceptions=True)
        assert len(registry) == 0
        generate.error = None
        retried = await cache.analyze("7")
        return outcomes, retried

    outcomes, retried = asyncio.run(scenario())

    assert all(outcome is error for outcome in outcomes)
    assert generate.calls == ["7", "7"]
    assert retried.posting_id == "7"


def test_cancelled_caller_does_not_abort_shared_generation() -> None:
    registry = InFlightRegistry()
    generate = CountingGenerator(delay=0.1)

    async def scenario():
        cache = AnalysisCache(registry, EmptyRepository(), generate)
        impatient = asyncio.create_task(cache.analyze("9"))
        patient = asyncio.create_task(cache.analyze("9"))
        await asyncio.sleep(0.02)
        impatient.cancel()
        result = await patient
        assert impatient.cancelled()
        return result

    result = asyncio.run(scenario())
    assert result.posting_id == "9"
    assert generate.calls == ["9"]
    assert len(registry) == 0
