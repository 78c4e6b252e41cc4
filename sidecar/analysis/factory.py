from typing import ClassVar

from sidecar.analysis.client_base import BaseCompletionClient
from sidecar.analysis.example_client_adapter import ExampleClientAdapter
from sidecar.analysis.ollama_client_adapter import OllamaClientAdapter
from sidecar.analysis.openai_client_adapter import OpenAIClientAdapter
from sidecar.analysis.router import TrustTierRouter
from sidecar.config.settings import Settings
from sidecar.logging.logger import Log


class CompletionClientFactory:
    """Creates the configured local and remote completion clients."""

    OPENAI_COMPATIBLE_BASE_URLS: ClassVar[dict[str, str]] = {
        "openrouter": "https://openrouter.ai/api/v1",
        "groq": "https://api.groq.com/openai/v1",
        "together": "https://api.together.xyz/v1",
        "deepseek": "https://api.deepseek.com/v1",
    }

    @classmethod
    def create_local(cls, settings: Settings) -> BaseCompletionClient:
        """Create the on-device client. Raw content may flow through it."""
        provider = settings.local_llm_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()
        if provider == "ollama":
            return OllamaClientAdapter(
                endpoint=settings.local_llm_endpoint,
                model=settings.local_llm_model,
                timeout_seconds=settings.local_llm_timeout_seconds,
            )
        raise ValueError(
            f"Unknown local LLM provider '{provider}'. Choose from: ['example', 'ollama']"
        )

    @classmethod
    def create_remote(cls, settings: Settings) -> BaseCompletionClient | None:
        """Create the remote client, or None when the remote tier is disabled."""
        if not settings.cloud_llm_enabled:
            return None
        provider = settings.cloud_llm_provider.lower()
        if provider == "example":
            return ExampleClientAdapter()

        api_key = settings.cloud_llm_api_key.get_secret_value().strip()
        if not api_key:
            Log.warning(f"Remote tier enabled for '{provider}' but no API key is set")
            return None
        return OpenAIClientAdapter(
            api_key=api_key,
            model=settings.cloud_llm_model_name,
            timeout_seconds=settings.cloud_llm_timeout_seconds,
            base_url=cls._resolve_base_url(provider, settings),
        )

    @classmethod
    def _resolve_base_url(cls, provider: str, settings: Settings) -> str | None:
        if provider == "openai":
            return None
        if provider == "openai_compatible":
            url = settings.cloud_llm_base_url.strip()
            if not url:
                raise ValueError(
                    "cloud_llm_base_url is required for cloud_llm_provider=openai_compatible"
                )
            return url
        default_base_url = cls.OPENAI_COMPATIBLE_BASE_URLS.get(provider)
        if default_base_url is not None:
            return default_base_url
        supported = [
            "example",
            "openai",
            "openai_compatible",
            *sorted(cls.OPENAI_COMPATIBLE_BASE_URLS),
        ]
        raise ValueError(f"Unknown cloud LLM provider '{provider}'. Choose from: {supported}")


def build_router(settings: Settings) -> TrustTierRouter:
    """Wire a TrustTierRouter from application settings."""
    remote = CompletionClientFactory.create_remote(settings)
    Log.info(
        f"Analysis router: local={settings.local_llm_provider}, "
        f"remote={settings.cloud_llm_provider if remote is not None else 'disabled'}"
    )
    return TrustTierRouter(
        local_client=CompletionClientFactory.create_local(settings),
        remote_client=remote,
        local_temperature=settings.local_llm_temperature,
        remote_temperature=settings.cloud_llm_temperature,
    )
