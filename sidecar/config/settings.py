from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    # urlsafe base64 of 32 random bytes; empty means the key store is locked
    encryption_key: SecretStr = SecretStr("")

    local_llm_provider: str = "ollama"
    local_llm_endpoint: str = "http://localhost:11434"
    local_llm_model: str = "llama3:8b"
    local_llm_timeout_seconds: int = 120
    local_llm_temperature: float = 0.3

    cloud_llm_enabled: bool = False
    cloud_llm_provider: str = "openai"
    cloud_llm_api_key: SecretStr = SecretStr("")
    cloud_llm_model_name: str = "gpt-4o-mini"
    cloud_llm_base_url: str = ""
    cloud_llm_timeout_seconds: int = 30
    cloud_llm_temperature: float = 0.2

    anonymization_min_fragment_length: int = 3
