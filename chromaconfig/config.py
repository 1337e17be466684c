from typing import Any

from pydantic import ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_OPENAI_API_KEY_ENV_VAR = "CHROMA_OPENAI_API_KEY"
DEFAULT_COHERE_API_KEY_ENV_VAR = "CHROMA_COHERE_API_KEY"
DEFAULT_HUGGINGFACE_API_KEY_ENV_VAR = "CHROMA_HUGGINGFACE_API_KEY"
DEFAULT_OLLAMA_URL = "http://localhost:11434"

DEFAULT_TENANT = "default_tenant"
DEFAULT_DATABASE = "default_database"


class Settings(BaseSettings):
    """Client-side settings, read from the environment and an optional ``.env``."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # ===================
    # Embedding functions
    # ===================

    # Names of the environment variables API keys are read from when a
    # descriptor does not name one itself
    chroma_openai_api_key_env_var: str = DEFAULT_OPENAI_API_KEY_ENV_VAR
    chroma_cohere_api_key_env_var: str = DEFAULT_COHERE_API_KEY_ENV_VAR
    chroma_huggingface_api_key_env_var: str = DEFAULT_HUGGINGFACE_API_KEY_ENV_VAR

    chroma_ollama_url: str = DEFAULT_OLLAMA_URL

    # seconds
    chroma_embedding_request_timeout: float = 60.0

    @field_validator(
        "chroma_openai_api_key_env_var",
        "chroma_cohere_api_key_env_var",
        "chroma_huggingface_api_key_env_var",
        "chroma_ollama_url",
        mode="before",
    )
    @classmethod
    def empty_str_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if isinstance(v, str) and v.strip() == "":
            return cls.model_fields[str(info.field_name)].default
        return v

    @field_validator("chroma_embedding_request_timeout")
    @classmethod
    def positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"chroma_embedding_request_timeout must be > 0, got {v}")
        return v

    def api_key_env_var_for(self, provider: str) -> str:
        """Default API key environment variable for a canonical provider name."""
        return str(getattr(self, f"chroma_{provider}_api_key_env_var"))
