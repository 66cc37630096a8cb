from __future__ import annotations

import logging

from jobagent.config import Settings, get_settings
from jobagent.errors import ConfigurationError
from jobagent.llm.providers import OpenAIProvider, ProviderAdapter, ProviderConfig, YandexProvider

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "yandex")


def build_provider(settings: Settings) -> ProviderAdapter:
    """Construct the configured adapter, refusing to start without its credential."""
    provider_type = settings.ai_provider

    if provider_type == "openai":
        if not settings.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY not found in environment variables")
        logger.info("Initializing OpenAI provider base_url=%s", settings.openai_base_url)
        return OpenAIProvider(
            ProviderConfig(
                name="openai",
                base_url=settings.openai_base_url,
                api_key=settings.openai_api_key,
                timeout_sec=settings.openai_timeout_sec,
                text_model=settings.openai_model_text,
                embedding_model=settings.openai_model_embedding,
            )
        )

    if provider_type == "yandex":
        if not settings.yandex_api_key:
            raise ConfigurationError("YANDEX_API_KEY not found in environment variables")
        logger.info("Initializing Yandex provider base_url=%s", settings.yandex_base_url)
        return YandexProvider(
            ProviderConfig(
                name="yandex",
                base_url=settings.yandex_base_url,
                api_key=settings.yandex_api_key,
                timeout_sec=settings.yandex_timeout_sec,
                text_model=settings.yandex_model_text,
                embedding_model=settings.yandex_model_embedding,
                folder_id=settings.yandex_folder_id,
            )
        )

    raise ConfigurationError(
        f"Unsupported provider: {provider_type!r} (expected one of {list(SUPPORTED_PROVIDERS)})"
    )


class ProviderSelector:
    def __init__(self, settings: Settings | None = None, provider: ProviderAdapter | None = None):
        self.settings = settings or get_settings()
        self.provider = provider or build_provider(self.settings)
        logger.info("AI service initialized with %s provider", self.provider.name)

    def active_provider_type(self) -> str:
        return self.provider.name

    def provider_info(self) -> dict[str, str | bool]:
        return {
            "type": self.provider.name,
            "name": self.provider.display_name,
            "configured": True,
        }

    async def aclose(self) -> None:
        await self.provider.aclose()
