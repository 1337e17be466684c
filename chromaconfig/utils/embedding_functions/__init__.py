from typing import Dict, Tuple, Type

from chromaconfig.api.types import DefaultEmbeddingFunction, EmbeddingFunction

from chromaconfig.utils.embedding_functions.cohere_embedding_function import (
    CohereEmbeddingFunction,
)
from chromaconfig.utils.embedding_functions.huggingface_embedding_function import (
    HuggingFaceApiType,
    HuggingFaceEmbeddingFunction,
)
from chromaconfig.utils.embedding_functions.ollama_embedding_function import (
    OllamaEmbeddingFunction,
)
from chromaconfig.utils.embedding_functions.onnx_mini_lm_l6_v2 import ONNXMiniLM_L6_V2
from chromaconfig.utils.embedding_functions.openai_embedding_function import (
    OpenAIEmbeddingFunction,
)

# Providers the resolver knows how to configure, keyed by canonical name.
# Order matters: it is the order suggested to users in error messages.
known_embedding_functions: Dict[str, Type[EmbeddingFunction]] = {
    "default": DefaultEmbeddingFunction,
    "openai": OpenAIEmbeddingFunction,
    "cohere": CohereEmbeddingFunction,
    "huggingface": HuggingFaceEmbeddingFunction,
    "ollama": OllamaEmbeddingFunction,
}

SUPPORTED_PROVIDERS: Tuple[str, ...] = tuple(known_embedding_functions)

# Every accepted spelling of a provider name -> canonical name
PROVIDER_ALIASES: Dict[str, str] = {
    "default": "default",
    "openai": "openai",
    "cohere": "cohere",
    "huggingface": "huggingface",
    "hugging_face": "huggingface",
    "hf": "huggingface",
    "ollama": "ollama",
}

# Internal parameter slot -> config keys accepted for it, in priority order
CONFIG_KEY_ALIASES: Dict[str, Tuple[str, ...]] = {
    "api_base": ("base_url", "base_api", "baseAPI", "url"),
    "model_name": ("model_name", "model"),
    "api_key": ("api_key", "apiKey"),
    "api_key_env_var": ("api_key_env_var", "apiKeyEnvVar"),
    "api_type": ("api_type", "apiType"),
}

# Slots each built-in provider reads from a descriptor config
PROVIDER_CONFIG_SLOTS: Dict[str, Tuple[str, ...]] = {
    "default": (),
    "openai": ("api_base", "model_name", "api_key", "api_key_env_var"),
    "cohere": ("api_base", "model_name", "api_key", "api_key_env_var"),
    "huggingface": ("api_base", "model_name", "api_key", "api_key_env_var", "api_type"),
    "ollama": ("api_base", "model_name", "api_key", "api_key_env_var"),
}

# Providers that authenticate with an API key
API_KEY_PROVIDERS: Tuple[str, ...] = ("openai", "cohere", "huggingface")


def canonical_provider_name(name: str) -> str:
    normalized = name.strip().casefold()
    return PROVIDER_ALIASES.get(normalized, normalized)


def register_embedding_function(ef_class=None):  # type: ignore
    """Register a custom embedding function.

    Can be used as a decorator:
        @register_embedding_function
        class MyEmbedding(EmbeddingFunction):
            @staticmethod
            def name(): return "my_embedding"

    Or directly:
        register_embedding_function(MyEmbedding)

    Registered functions are rebuilt from descriptors through their own
    ``build_from_config``.
    """

    def _register(cls):  # type: ignore
        try:
            name = cls.name()
        except Exception as e:
            raise ValueError(f"Failed to register embedding function: {e}")
        if not isinstance(name, str) or not name.strip():
            raise ValueError(
                "Failed to register embedding function: name() must return a non-blank string"
            )
        key = name.strip().casefold()
        if key in PROVIDER_ALIASES:
            raise ValueError(
                f"Failed to register embedding function: '{name}' is a built-in provider"
            )
        known_embedding_functions[key] = cls
        return cls

    if ef_class is not None:
        return _register(ef_class)  # type: ignore

    return _register


__all__ = [
    "CohereEmbeddingFunction",
    "DefaultEmbeddingFunction",
    "HuggingFaceApiType",
    "HuggingFaceEmbeddingFunction",
    "ONNXMiniLM_L6_V2",
    "OllamaEmbeddingFunction",
    "OpenAIEmbeddingFunction",
    "known_embedding_functions",
    "register_embedding_function",
    "canonical_provider_name",
]
