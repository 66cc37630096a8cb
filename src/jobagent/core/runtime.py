from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobagent.config import Settings, get_settings
from jobagent.core.coalescer import InFlightRegistry
from jobagent.core.embeddings import EmbeddingStore
from jobagent.core.generation import GenerationService
from jobagent.db.repositories import Repository
from jobagent.llm.providers import ProviderAdapter
from jobagent.llm.selector import ProviderSelector


@dataclass(slots=True)
class Runtime:
    settings: Settings
    selector: ProviderSelector
    repository: Repository
    registry: InFlightRegistry
    embeddings: EmbeddingStore
    service: GenerationService

    async def aclose(self) -> None:
        await self.service.analysis_cache.drain()
        await self.embeddings.drain()
        await self.selector.aclose()


def build_runtime(
    settings: Settings | None = None,
    *,
    provider: ProviderAdapter | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> Runtime:
    settings = settings or get_settings()
    if session_factory is None:
        from jobagent.db.session import SessionLocal

        session_factory = SessionLocal

    selector = ProviderSelector(settings, provider=provider)
    repository = Repository(session_factory)
    registry = InFlightRegistry()
    embeddings = EmbeddingStore(selector.provider, repository)
    service = GenerationService(selector.provider, repository, embeddings, registry, settings)
    return Runtime(
        settings=settings,
        selector=selector,
        repository=repository,
        registry=registry,
        embeddings=embeddings,
        service=service,
    )


_RUNTIME: Runtime | None = None


def get_runtime() -> Runtime:
    global _RUNTIME
    if _RUNTIME is None:
        _RUNTIME = build_runtime()
    return _RUNTIME
