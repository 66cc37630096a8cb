from __future__ import annotations

import asyncio
import os
import tempfile
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from pathlib import Path

_DATA_DIR = Path(tempfile.mkdtemp(prefix="jobagent-tests-"))
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DATA_DIR", str(_DATA_DIR))
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_DATA_DIR / 'cli.db'}")
os.environ.setdefault("AI_PROVIDER", "openai")
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest  # noqa: E402

from jobagent.config import Settings  # noqa: E402
from jobagent.core.runtime import Runtime, build_runtime  # noqa: E402
from jobagent.db.init import init_database  # noqa: E402
from jobagent.db.session import create_engine, create_session_factory  # noqa: E402
from jobagent.errors import ProviderError  # noqa: E402
from jobagent.llm.providers import ProviderAdapter, ProviderConfig  # noqa: E402
from jobagent.types import ModelConfig, TaskType  # noqa: E402

ANALYSIS_JSON = (
    '{"toxicityScore": 3, "recommendation": "apply", "redFlags": ["overtime"], '
    '"positives": ["remote", "mentoring"], "summary": "Solid team with a fair offer.", '
    '"salaryAdequacy": "adequate", "experienceMatch": "junior_friendly"}'
)

POSTING = {
    "id": "90210",
    "name": "Backend Developer",
    "employer": {"name": "Acme"},
    "salary": {"from": 150000, "currency": "RUR"},
    "key_skills": [{"name": "Python"}, {"name": "PostgreSQL"}],
    "description": "<p>We build <b>payment</b> services.</p>",
}


class FakeProvider(ProviderAdapter):
    """In-memory adapter that records every call it receives."""

    name = "fake"
    display_name = "Fake"

    def __init__(
        self,
        replies: str | list[str] = ANALYSIS_JSON,
        *,
        delay: float = 0.0,
        text_error: Exception | None = None,
        embedding: list[float] | None = None,
        embedding_error: Exception | None = None,
        available: bool = True,
    ):
        configs = {task_type: ModelConfig(model="fake-model") for task_type in TaskType}
        super().__init__(
            ProviderConfig(
                name="fake",
                base_url="http://fake.invalid",
                api_key="",
                timeout_sec=1,
                text_model="fake-model",
                embedding_model="fake-embedding",
            ),
            configs,
        )
        self.replies = replies
        self.delay = delay
        self.text_error = text_error
        self.embedding = embedding if embedding is not None else [0.25, -0.5, 1.0]
        self.embedding_error = embedding_error
        self.available = available
        self.text_calls: list[tuple[str, str]] = []
        self.embedding_calls: list[str] = []
        self.closed = False

    async def generate_text(self, user_prompt: str, system_prompt: str, config: ModelConfig) -> str:
        self.text_calls.append((system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.text_error is not None:
            raise self.text_error
        if isinstance(self.replies, list):
            return self.replies.pop(0)
        return self.replies

    async def generate_embedding(self, text: str) -> list[float]:
        self.embedding_calls.append(text)
        if self.embedding_error is not None:
            raise self.embedding_error
        return list(self.embedding)

    async def check_availability(self) -> bool:
        if not self.available:
            raise ProviderError("fake provider is down")
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_provider() -> type[FakeProvider]:
    return FakeProvider


@pytest.fixture
def analysis_json() -> str:
    return ANALYSIS_JSON


@pytest.fixture
def posting() -> dict:
    return dict(POSTING)


@pytest.fixture
def app_settings() -> Settings:
    return Settings(app_env="test", openai_api_key="test-key", ai_provider="openai")


@pytest.fixture
def open_runtime(tmp_path: Path, app_settings: Settings) -> Callable[[ProviderAdapter], AsyncIterator[Runtime]]:
    """Build a runtime over a fresh SQLite file; use inside ``asyncio.run``."""
    database_url = f"sqlite+aiosqlite:///{tmp_path / 'jobagent.db'}"

    @asynccontextmanager
    async def _open(provider: ProviderAdapter) -> AsyncIterator[Runtime]:
        engine = create_engine(database_url)
        await init_database(engine)
        runtime = build_runtime(
            app_settings,
            provider=provider,
            session_factory=create_session_factory(engine),
        )
        try:
            yield runtime
        finally:
            await runtime.aclose()
            await engine.dispose()

    return _open
