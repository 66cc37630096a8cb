from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from numbers import Real
from typing import Any

import httpx
from openai import AsyncOpenAI

from jobagent.errors import ConfigurationError, ProviderError
from jobagent.llm.prompts import AVAILABILITY_PING_PROMPT
from jobagent.types import ModelConfig, TaskType

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ProviderConfig:
    name: str
    base_url: str
    api_key: str
    timeout_sec: int
    text_model: str
    embedding_model: str
    folder_id: str = ""


def openai_configs(text_model: str, embedding_model: str) -> dict[TaskType, ModelConfig]:
    # gpt-5 family rejects a custom temperature, so none is set here
    return {
        TaskType.COVER_LETTER: ModelConfig(model=text_model),
        TaskType.RESUME_ANALYSIS_HTML: ModelConfig(model=text_model),
        TaskType.RESUME_ANALYSIS_TEXT: ModelConfig(model=text_model),
        TaskType.POSTING_ANALYSIS: ModelConfig(model=text_model),
        TaskType.AVAILABILITY_CHECK: ModelConfig(model=text_model, max_completion_tokens=16),
        TaskType.EMBEDDING: ModelConfig(model=embedding_model),
    }


def yandex_configs(text_model: str, embedding_model: str) -> dict[TaskType, ModelConfig]:
    return {
        TaskType.COVER_LETTER: ModelConfig(model=text_model, temperature=0.7),
        TaskType.RESUME_ANALYSIS_HTML: ModelConfig(model=text_model, temperature=0.1),
        TaskType.RESUME_ANALYSIS_TEXT: ModelConfig(model=text_model, temperature=0.1),
        TaskType.POSTING_ANALYSIS: ModelConfig(model=text_model, temperature=0.3),
        TaskType.AVAILABILITY_CHECK: ModelConfig(model="yandexgpt-lite", temperature=0, max_tokens=10),
        TaskType.EMBEDDING: ModelConfig(model=embedding_model, temperature=0),
    }


class ProviderAdapter(ABC):
    """Uniform async interface over one text-generation/embedding backend."""

    name: str = ""
    display_name: str = ""

    def __init__(self, config: ProviderConfig, configs: dict[TaskType, ModelConfig]):
        self.config = config
        self.configs = configs

    @abstractmethod
    async def generate_text(self, user_prompt: str, system_prompt: str, config: ModelConfig) -> str:
        ...

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        ...

    @abstractmethod
    async def check_availability(self) -> bool:
        ...

    async def aclose(self) -> None:
        return None

    def get_config(self, task_type: TaskType | str) -> ModelConfig:
        try:
            key = TaskType(task_type)
            return self.configs[key]
        except (ValueError, KeyError):
            raise ConfigurationError(
                f'Configuration for task type "{task_type}" not found in {self.display_name} provider'
            ) from None


class OpenAIProvider(ProviderAdapter):
    name = "openai"
    display_name = "OpenAI"

    def __init__(self, config: ProviderConfig):
        super().__init__(config, openai_configs(config.text_model, config.embedding_model))
        self.client = AsyncOpenAI(
            base_url=config.base_url,
            api_key=config.api_key,
            timeout=float(config.timeout_sec),
        )

    async def generate_text(self, user_prompt: str, system_prompt: str, config: ModelConfig) -> str:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": user_prompt})

        request: dict[str, Any] = {"model": config.model, "messages": messages}
        if config.max_tokens is not None:
            request["max_tokens"] = config.max_tokens
        if config.max_completion_tokens is not None:
            request["max_completion_tokens"] = config.max_completion_tokens
        if config.temperature is not None:
            request["temperature"] = config.temperature

        try:
            response = await self.client.chat.completions.create(**request)
        except Exception as exc:
            raise _wrap_transport_error("OpenAI", exc) from exc

        text = self._extract_chat_text(response).strip()
        if not text:
            raise ProviderError("OpenAI returned no content")
        return text

    async def generate_embedding(self, text: str) -> list[float]:
        try:
            response = await self.client.embeddings.create(
                model=self.get_config(TaskType.EMBEDDING).model,
                input=text,
            )
        except Exception as exc:
            raise _wrap_transport_error("OpenAI embedding", exc) from exc

        data = getattr(response, "data", None) or []
        embedding = getattr(data[0], "embedding", None) if data else None
        return coerce_vector(embedding, provider=self.display_name)

    async def check_availability(self) -> bool:
        try:
            text = await self.generate_text(
                AVAILABILITY_PING_PROMPT,
                "",
                self.get_config(TaskType.AVAILABILITY_CHECK),
            )
        except Exception as exc:
            logger.warning("OpenAI API unavailable: %s", exc)
            return False
        return bool(text)

    async def aclose(self) -> None:
        await self.client.close()

    @staticmethod
    def _extract_chat_text(response: Any) -> str:
        choices = getattr(response, "choices", None) or []
        if not choices:
            return ""

        message = getattr(choices[0], "message", None)
        if message is None:
            return ""

        content = getattr(message, "content", "")
        if isinstance(content, str):
            return content
        if content is None:
            return ""
        return str(content)


class YandexProvider(ProviderAdapter):
    name = "yandex"
    display_name = "Yandex"

    def __init__(self, config: ProviderConfig, *, transport: httpx.AsyncBaseTransport | None = None):
        super().__init__(config, yandex_configs(config.text_model, config.embedding_model))
        headers = {"Authorization": f"Api-Key {config.api_key}"}
        if config.folder_id:
            headers["x-folder-id"] = config.folder_id
        self.client = httpx.AsyncClient(
            base_url=config.base_url.rstrip("/"),
            headers=headers,
            timeout=float(config.timeout_sec),
            transport=transport,
        )

    def _model_uri(self, model: str, scheme: str = "gpt") -> str:
        if self.config.folder_id:
            return f"{scheme}://{self.config.folder_id}/{model}/latest"
        return f"{scheme}://{model}"

    async def _post(self, path: str, payload: dict[str, Any], *, label: str) -> dict[str, Any]:
        try:
            response = await self.client.post(path, json=payload)
        except httpx.HTTPError as exc:
            raise ProviderError(f"{label} request failed: {exc}") from exc

        if not response.is_success:
            raise ProviderError(
                f"{label} error: {response.status_code} {response.reason_phrase}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise ProviderError(f"{label} returned a non-JSON body") from exc
        return data if isinstance(data, dict) else {}

    async def generate_text(self, user_prompt: str, system_prompt: str, config: ModelConfig) -> str:
        options: dict[str, Any] = {"stream": False}
        if config.temperature is not None:
            options["temperature"] = config.temperature
        max_tokens = config.max_tokens or config.max_completion_tokens
        if max_tokens:
            options["maxTokens"] = max_tokens

        messages = []
        if system_prompt:
            messages.append({"role": "system", "text": system_prompt})
        messages.append({"role": "user", "text": user_prompt})

        data = await self._post(
            "/completion",
            {
                "modelUri": self._model_uri(config.model),
                "completionOptions": options,
                "messages": messages,
            },
            label="Yandex API",
        )

        alternatives = (data.get("result") or {}).get("alternatives") or []
        message = alternatives[0].get("message") if alternatives else None
        text = (message or {}).get("text") or ""
        if not text.strip():
            raise ProviderError("Yandex returned no content")
        return text.strip()

    async def generate_embedding(self, text: str) -> list[float]:
        model = self.get_config(TaskType.EMBEDDING).model
        data = await self._post(
            "/textEmbedding",
            {"modelUri": self._model_uri(model, scheme="emb"), "text": text},
            label="Yandex Embedding API",
        )
        return coerce_vector(data.get("embedding"), provider=self.display_name)

    async def check_availability(self) -> bool:
        config = self.get_config(TaskType.AVAILABILITY_CHECK)
        try:
            await self._post(
                "/completion",
                {
                    "modelUri": self._model_uri(config.model),
                    "completionOptions": {"stream": False, "maxTokens": config.max_tokens},
                    "messages": [{"role": "user", "text": AVAILABILITY_PING_PROMPT}],
                },
                label="Yandex API",
            )
        except Exception as exc:
            logger.warning("Yandex API unavailable: %s", exc)
            return False
        return True

    async def aclose(self) -> None:
        await self.client.aclose()


def coerce_vector(value: Any, *, provider: str) -> list[float]:
    if not isinstance(value, (list, tuple)) or not value:
        raise ProviderError(f"Empty embedding received from {provider}")
    if any(isinstance(item, bool) or not isinstance(item, Real) for item in value):
        raise ProviderError(f"Embedding from {provider} is not a numeric sequence")
    return [float(item) for item in value]


def _wrap_transport_error(label: str, exc: Exception) -> ProviderError:
    status_code = getattr(exc, "status_code", None)
    if status_code is not None:
        return ProviderError(f"{label} API error: {status_code} {exc}", status_code=status_code)
    return ProviderError(f"{label} request failed: {exc}")
