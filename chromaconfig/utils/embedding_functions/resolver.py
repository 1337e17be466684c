import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional

from chromaconfig.api.types import (
    DefaultEmbeddingFunction,
    EmbeddingFunction,
    EmbeddingFunctionSpec,
)
from chromaconfig.config import Settings
from chromaconfig.errors import EmbeddingFunctionResolutionError
from chromaconfig.utils.embedding_functions import (
    API_KEY_PROVIDERS,
    CONFIG_KEY_ALIASES,
    PROVIDER_CONFIG_SLOTS,
    SUPPORTED_PROVIDERS,
    CohereEmbeddingFunction,
    HuggingFaceApiType,
    HuggingFaceEmbeddingFunction,
    OllamaEmbeddingFunction,
    OpenAIEmbeddingFunction,
    canonical_provider_name,
    known_embedding_functions,
)

logger = logging.getLogger(__name__)

Getenv = Callable[[str], Optional[str]]


def _remediation() -> str:
    return (
        "Pass query_embeddings directly instead of query texts, "
        f"or use one of [{', '.join(SUPPORTED_PROVIDERS)}]."
    )


def _first_string(config: Mapping[str, Any], keys: Any) -> Optional[str]:
    for key in keys:
        value = config.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValueError(f"{key} must be a string")
        if value.strip():
            return value.strip()
    return None


def normalize_provider_config(
    provider: str, config: Mapping[str, Any]
) -> Dict[str, str]:
    """Map a descriptor config onto the parameter slots ``provider`` reads.

    Each slot takes the first non-blank string among its accepted keys, in
    the order listed in ``CONFIG_KEY_ALIASES``. Keys no slot reads are
    ignored.
    """
    slots: Dict[str, str] = {}
    for slot in PROVIDER_CONFIG_SLOTS[provider]:
        value = _first_string(config, CONFIG_KEY_ALIASES[slot])
        if value is not None:
            slots[slot] = value
    return slots


class EmbeddingFunctionResolver:
    """Builds live embedding functions from ``EmbeddingFunctionSpec`` descriptors.

    Resolution reads environment variables through ``getenv`` and never
    touches the network.
    """

    def __init__(
        self, settings: Optional[Settings] = None, getenv: Optional[Getenv] = None
    ):
        self._settings = settings or Settings()
        self._getenv = getenv or os.getenv

    def resolve(self, spec: Optional[EmbeddingFunctionSpec]) -> Optional[EmbeddingFunction]:
        if spec is None:
            return None

        if not spec.is_known_type():
            raise EmbeddingFunctionResolutionError(
                f"Unsupported embedding function type '{spec.type}' "
                f"for provider '{spec.name}'. {_remediation()}",
                provider=spec.name,
            )

        provider = canonical_provider_name(spec.name)
        if provider not in known_embedding_functions:
            raise EmbeddingFunctionResolutionError(
                f"Unsupported embedding function provider '{spec.name}'. {_remediation()}",
                provider=spec.name,
            )

        try:
            if provider in PROVIDER_CONFIG_SLOTS:
                ef = self._build_builtin(provider, spec.config_dict())
            else:
                ef = known_embedding_functions[provider].build_from_config(
                    spec.config_dict()
                )
        except Exception as e:
            raise EmbeddingFunctionResolutionError(
                f"Failed to initialize embedding function provider '{spec.name}': {e}",
                provider=spec.name,
            ) from e

        logger.debug("Resolved embedding function provider %s", provider)
        return ef

    def _api_key(self, provider: str, slots: Mapping[str, str]) -> Optional[str]:
        if "api_key" in slots:
            return slots["api_key"]
        env_var = self._api_key_env_var(provider, slots)
        value = self._getenv(env_var)
        return value if value else None

    def _api_key_env_var(self, provider: str, slots: Mapping[str, str]) -> str:
        return slots.get("api_key_env_var") or self._settings.api_key_env_var_for(
            provider
        )

    def _require_api_key(self, provider: str, slots: Mapping[str, str]) -> str:
        api_key = self._api_key(provider, slots)
        if api_key is None:
            raise ValueError(
                f"The {self._api_key_env_var(provider, slots)} environment variable is not set."
            )
        return api_key

    def _build_builtin(self, provider: str, config: Dict[str, Any]) -> EmbeddingFunction:
        slots = normalize_provider_config(provider, config)
        kwargs: Dict[str, Any] = {}
        if "model_name" in slots:
            kwargs["model_name"] = slots["model_name"]
        if provider in API_KEY_PROVIDERS:
            kwargs["api_key_env_var"] = self._api_key_env_var(provider, slots)
            kwargs["getenv"] = self._getenv
        timeout = self._settings.chroma_embedding_request_timeout

        if provider == "default":
            return DefaultEmbeddingFunction()
        if provider == "openai":
            return OpenAIEmbeddingFunction(
                api_key=self._require_api_key(provider, slots),
                api_base=slots.get("api_base"),
                dimensions=config.get("dimensions"),
                timeout=timeout,
                **kwargs,
            )
        if provider == "cohere":
            return CohereEmbeddingFunction(
                api_key=self._require_api_key(provider, slots),
                api_base=slots.get("api_base"),
                timeout=timeout,
                **kwargs,
            )
        if provider == "huggingface":
            api_type = HuggingFaceApiType.from_value(
                slots.get("api_type", HuggingFaceApiType.HF_API)
            )
            if api_type == HuggingFaceApiType.HF_API:
                api_key: Optional[str] = self._require_api_key(provider, slots)
            else:
                api_key = self._api_key(provider, slots)
            return HuggingFaceEmbeddingFunction(
                api_key=api_key,
                api_base=slots.get("api_base"),
                api_type=api_type,
                timeout=timeout,
                **kwargs,
            )
        return OllamaEmbeddingFunction(
            api_base=slots.get("api_base") or self._settings.chroma_ollama_url,
            timeout=timeout,
            **kwargs,
        )


def resolve_embedding_function(
    spec: Optional[EmbeddingFunctionSpec],
) -> Optional[EmbeddingFunction]:
    return EmbeddingFunctionResolver().resolve(spec)
