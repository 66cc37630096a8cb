from __future__ import annotations

import asyncio
import logging

from jobagent.db.repositories import Repository
from jobagent.llm.providers import ProviderAdapter
from jobagent.types import EmbeddingKind

logger = logging.getLogger(__name__)


class EmbeddingStore:
    """Best-effort writer of embedding vectors onto already persisted records.

    Nothing here raises to the caller: provider and storage failures are logged
    at WARNING and reported as ``False``. ``schedule`` runs the write as a
    background task so the primary operation never waits on it.
    """

    def __init__(self, provider: ProviderAdapter, repository: Repository):
        self.provider = provider
        self.repository = repository
        self._tasks: set[asyncio.Task[bool]] = set()

    async def embed(self, text: str) -> list[float]:
        return await self.provider.generate_embedding(text)

    async def attach_to_record(self, kind: EmbeddingKind, record_id: int | str, vector: list[float]) -> None:
        await self.repository.set_embedding(kind, record_id, vector)

    async def store(self, kind: EmbeddingKind, record_id: int | str, text: str) -> bool:
        if not text or not text.strip():
            logger.debug("Skipping empty embedding source kind=%s id=%s", kind.value, record_id)
            return False
        try:
            vector = await self.embed(text)
            await self.attach_to_record(kind, record_id, vector)
        except Exception as exc:
            logger.warning("Failed to store embedding kind=%s id=%s error=%s", kind.value, record_id, exc)
            return False

        logger.debug("Stored embedding kind=%s id=%s dims=%s", kind.value, record_id, len(vector))
        return True

    def schedule(self, kind: EmbeddingKind, record_id: int | str, text: str) -> asyncio.Task[bool]:
        task = asyncio.create_task(self.store(kind, record_id, text), name=f"embed-{kind.value}-{record_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
