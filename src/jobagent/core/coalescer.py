from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from jobagent.core.records import posting_analysis_record
from jobagent.db.repositories import Repository
from jobagent.errors import AnalysisValidationError
from jobagent.types import PostingAnalysisRecord

logger = logging.getLogger(__name__)

GenerateFn = Callable[[str], Awaitable[PostingAnalysisRecord]]


class InFlightRegistry:
    """Process-local map of posting id to the pending analysis future.

    Only ``AnalysisCache`` mutates it. Entries live for the duration of one
    generation and are removed whether it succeeds or fails.
    """

    def __init__(self) -> None:
        self._pending: dict[str, asyncio.Future[PostingAnalysisRecord]] = {}

    def get(self, key: str) -> asyncio.Future[PostingAnalysisRecord] | None:
        return self._pending.get(key)

    def register(self, key: str, future: asyncio.Future[PostingAnalysisRecord]) -> None:
        if key in self._pending:
            raise RuntimeError(f"analysis for {key} is already in flight")
        self._pending[key] = future

    def discard(self, key: str) -> None:
        self._pending.pop(key, None)

    def __contains__(self, key: object) -> bool:
        return key in self._pending

    def __len__(self) -> int:
        return len(self._pending)


class AnalysisCache:
    """Returns a persisted posting analysis or coalesces callers onto one generation."""

    def __init__(self, registry: InFlightRegistry, repository: Repository, generate: GenerateFn):
        self.registry = registry
        self.repository = repository
        self.generate = generate
        self._tasks: set[asyncio.Task[None]] = set()

    async def analyze(self, posting_id: str) -> PostingAnalysisRecord:
        pending = self.registry.get(posting_id)
        if pending is not None:
            logger.info("Analysis already in progress for posting %s, joining it", posting_id)
            return await asyncio.shield(pending)

        existing = await self.lookup(posting_id)
        if existing is not None:
            logger.info("Found existing analysis for posting %s", posting_id)
            return existing

        # the lookup above yielded to the loop; another caller may have started meanwhile
        pending = self.registry.get(posting_id)
        if pending is None:
            pending = self._start(posting_id)
        else:
            logger.info("Analysis already in progress for posting %s, joining it", posting_id)
        return await asyncio.shield(pending)

    async def lookup(self, posting_id: str) -> PostingAnalysisRecord | None:
        try:
            row = await self.repository.get_latest_posting_analysis(posting_id)
        except Exception as exc:
            logger.warning("Could not read stored analysis for posting %s: %s", posting_id, exc)
            return None
        if row is None:
            return None
        try:
            return posting_analysis_record(row)
        except AnalysisValidationError as exc:
            logger.warning("Ignoring malformed stored analysis for posting %s: %s", posting_id, exc)
            return None

    def _start(self, posting_id: str) -> asyncio.Future[PostingAnalysisRecord]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[PostingAnalysisRecord] = loop.create_future()
        self.registry.register(posting_id, future)
        logger.info("Performing analysis for posting %s", posting_id)

        # the generation runs as its own task so a caller going away does not abort it
        task = loop.create_task(self._run(posting_id, future), name=f"analyze-posting-{posting_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return future

    async def _run(self, posting_id: str, future: asyncio.Future[PostingAnalysisRecord]) -> None:
        try:
            result = await self.generate(posting_id)
        except asyncio.CancelledError:
            self.registry.discard(posting_id)
            future.cancel()
            raise
        except Exception as exc:
            self.registry.discard(posting_id)
            logger.error("Analysis failed for posting %s: %s", posting_id, exc)
            future.set_exception(exc)
            # every waiter may be gone already; keep asyncio from logging it as unretrieved
            future.exception()
            return

        self.registry.discard(posting_id)
        logger.info("Analysis completed for posting %s score=%s", posting_id, result.toxicity_score)
        future.set_result(result)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
