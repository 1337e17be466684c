from typing import Any, Dict, Optional

import hypothesis.strategies as st
import numpy as np
import pytest
from hypothesis import given

from chromaconfig.api.types import (
    DefaultEmbeddingFunction,
    Documents,
    EmbeddingFunction,
    EmbeddingFunctionSpec,
    Embeddings,
)
from chromaconfig.config import Settings
from chromaconfig.errors import EmbeddingFunctionResolutionError
from chromaconfig.utils.embedding_functions import (
    CONFIG_KEY_ALIASES,
    PROVIDER_ALIASES,
    CohereEmbeddingFunction,
    HuggingFaceApiType,
    HuggingFaceEmbeddingFunction,
    OllamaEmbeddingFunction,
    OpenAIEmbeddingFunction,
    known_embedding_functions,
    register_embedding_function,
)
from chromaconfig.utils.embedding_functions.resolver import (
    EmbeddingFunctionResolver,
    normalize_provider_config,
)

ENV = {
    "CHROMA_OPENAI_API_KEY": "sk-openai",
    "CHROMA_COHERE_API_KEY": "co-key",
    "CHROMA_HUGGINGFACE_API_KEY": "hf-key",
    "CUSTOM_KEY": "custom-secret",
}


@pytest.fixture
def resolver(getenv_factory: Any, settings: Settings) -> EmbeddingFunctionResolver:
    return EmbeddingFunctionResolver(settings=settings, getenv=getenv_factory(ENV))


@register_embedding_function
class ScaledEmbeddingFunction(EmbeddingFunction):
    def __init__(self, scale: float = 1.0):
        self.scale = scale

    def __call__(self, input: Documents) -> Embeddings:
        return [np.array([self.scale, float(len(doc))], dtype=np.float32) for doc in input]

    @staticmethod
    def name() -> str:
        return "scaled_ef"

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "ScaledEmbeddingFunction":
        return ScaledEmbeddingFunction(scale=float(config.get("scale", 1.0)))

    def get_config(self) -> Dict[str, Any]:
        return {"scale": self.scale}


def test_none_spec_resolves_to_none(resolver: EmbeddingFunctionResolver) -> None:
    assert resolver.resolve(None) is None


def test_unknown_provider_fails_fast(resolver: EmbeddingFunctionResolver) -> None:
    spec = EmbeddingFunctionSpec.known("consistent_hash")
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(spec)
    message = str(e.value)
    assert "consistent_hash" in message
    assert "query_embeddings" in message
    assert e.value.provider == "consistent_hash"


def test_non_known_type_fails_fast(resolver: EmbeddingFunctionResolver) -> None:
    spec = EmbeddingFunctionSpec(name="openai", type="custom")
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(spec)
    message = str(e.value)
    assert "'custom'" in message
    assert "query_embeddings" in message


def test_default_provider(resolver: EmbeddingFunctionResolver) -> None:
    ef = resolver.resolve(EmbeddingFunctionSpec.known("DEFAULT"))
    assert isinstance(ef, DefaultEmbeddingFunction)


@given(alias=st.sampled_from(sorted(PROVIDER_ALIASES.items())))
def test_every_provider_alias_resolves_to_its_provider(alias: Any) -> None:
    spelling, canonical = alias
    resolver = EmbeddingFunctionResolver(
        settings=Settings(_env_file=None),  # type: ignore[call-arg]
        getenv=ENV.get,
    )
    config = {"url": "http://localhost:8080"} if canonical == "huggingface" else None
    ef = resolver.resolve(EmbeddingFunctionSpec.known(spelling.upper(), config))
    assert isinstance(ef, known_embedding_functions[canonical])


@given(
    slot_and_key=st.sampled_from(
        sorted(
            (slot, key)
            for slot, keys in CONFIG_KEY_ALIASES.items()
            for key in keys
        )
    )
)
def test_every_config_key_alias_fills_its_slot(slot_and_key: Any) -> None:
    slot, key = slot_and_key
    assert normalize_provider_config("huggingface", {key: " value "}) == {slot: "value"}


def test_config_key_alias_priority() -> None:
    config = {"url": "http://c", "base_api": "http://b", "base_url": "  ", "model": "m2"}
    assert normalize_provider_config("openai", config) == {
        "api_base": "http://b",
        "model_name": "m2",
    }


def test_non_string_config_value_names_provider_and_key(
    resolver: EmbeddingFunctionResolver,
) -> None:
    spec = EmbeddingFunctionSpec.known("openai", {"model_name": 3})
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(spec)
    assert "openai" in str(e.value)
    assert "model_name must be a string" in str(e.value)
    assert isinstance(e.value.__cause__, ValueError)


def test_openai_config_normalization(resolver: EmbeddingFunctionResolver) -> None:
    spec = EmbeddingFunctionSpec.known(
        "openai",
        {"baseAPI": "https://proxy.example/v1", "model": "text-embedding-3-small"},
    )
    ef = resolver.resolve(spec)
    assert isinstance(ef, OpenAIEmbeddingFunction)
    assert ef.api_base == "https://proxy.example/v1"
    assert ef.model_name == "text-embedding-3-small"
    assert ef.api_key == "sk-openai"
    assert ef.api_key_env_var == "CHROMA_OPENAI_API_KEY"


def test_api_key_env_var_is_read_through_getenv(
    resolver: EmbeddingFunctionResolver,
) -> None:
    ef = resolver.resolve(
        EmbeddingFunctionSpec.known("cohere", {"apiKeyEnvVar": "CUSTOM_KEY"})
    )
    assert isinstance(ef, CohereEmbeddingFunction)
    assert ef.api_key == "custom-secret"
    assert ef.get_config()["api_key_env_var"] == "CUSTOM_KEY"


def test_inline_api_key_wins(resolver: EmbeddingFunctionResolver) -> None:
    ef = resolver.resolve(
        EmbeddingFunctionSpec.known(
            "openai", {"api_key": "sk-inline", "api_key_env_var": "CUSTOM_KEY"}
        )
    )
    assert isinstance(ef, OpenAIEmbeddingFunction)
    assert ef.api_key == "sk-inline"


def test_missing_api_key(getenv_factory: Any, settings: Settings) -> None:
    resolver = EmbeddingFunctionResolver(settings=settings, getenv=getenv_factory({}))
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(EmbeddingFunctionSpec.known("cohere"))
    assert "CHROMA_COHERE_API_KEY environment variable is not set" in str(e.value)


def test_huggingface_api_types(getenv_factory: Any, settings: Settings) -> None:
    resolver = EmbeddingFunctionResolver(settings=settings, getenv=getenv_factory({}))
    ef = resolver.resolve(
        EmbeddingFunctionSpec.known(
            "hf", {"api_type": "hfei_api", "base_url": "http://tei:8080"}
        )
    )
    assert isinstance(ef, HuggingFaceEmbeddingFunction)
    assert ef.api_type is HuggingFaceApiType.HFEI_API
    assert ef.api_base == "http://tei:8080"

    # The hosted API needs a key
    with pytest.raises(EmbeddingFunctionResolutionError, match="not set"):
        resolver.resolve(EmbeddingFunctionSpec.known("huggingface"))


def test_huggingface_invalid_api_type_is_wrapped(
    resolver: EmbeddingFunctionResolver,
) -> None:
    spec = EmbeddingFunctionSpec.known("hugging_face", {"apiType": "SAGEMAKER"})
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(spec)
    assert "hugging_face" in str(e.value)
    assert "unsupported huggingface api_type: SAGEMAKER" in str(e.value)
    assert isinstance(e.value.__cause__, ValueError)
    assert "unsupported huggingface api_type" in str(e.value.__cause__)


def test_ollama_uses_settings_url(getenv_factory: Any) -> None:
    settings = Settings(_env_file=None, chroma_ollama_url="http://ollama:11434")  # type: ignore[call-arg]
    resolver = EmbeddingFunctionResolver(settings=settings, getenv=getenv_factory({}))
    ef = resolver.resolve(EmbeddingFunctionSpec.known("ollama", {"model_name": "nomic"}))
    assert isinstance(ef, OllamaEmbeddingFunction)
    assert ef.api_base == "http://ollama:11434"
    assert ef.model_name == "nomic"

    ef = resolver.resolve(EmbeddingFunctionSpec.known("ollama", {"url": "http://other:1"}))
    assert isinstance(ef, OllamaEmbeddingFunction)
    assert ef.api_base == "http://other:1"


def test_custom_provider_is_built_from_config(
    resolver: EmbeddingFunctionResolver,
) -> None:
    ef = resolver.resolve(EmbeddingFunctionSpec.known("Scaled_EF", {"scale": 2.5}))
    assert isinstance(ef, ScaledEmbeddingFunction)
    assert ef.scale == 2.5
    assert ef.to_spec() == EmbeddingFunctionSpec.known("scaled_ef", {"scale": 2.5})


def test_custom_provider_failures_are_wrapped(
    resolver: EmbeddingFunctionResolver,
) -> None:
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(EmbeddingFunctionSpec.known("scaled_ef", {"scale": "big"}))
    assert "Failed to initialize embedding function provider 'scaled_ef'" in str(e.value)


def test_register_rejects_builtin_names() -> None:
    class Impostor(ScaledEmbeddingFunction):
        @staticmethod
        def name() -> str:
            return "HF"

    with pytest.raises(ValueError, match="built-in provider"):
        register_embedding_function(Impostor)


def test_resolution_never_logs_secrets(
    resolver: EmbeddingFunctionResolver, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level("DEBUG")
    spec = EmbeddingFunctionSpec.known("openai", {"api_key": "sk-do-not-log"})
    resolver.resolve(spec)
    assert "sk-do-not-log" not in caplog.text
    assert "openai" in caplog.text


def spec_round_trip(ef: EmbeddingFunction) -> Optional[EmbeddingFunctionSpec]:
    return EmbeddingFunctionSpec.from_json(ef.to_spec().to_json())


def test_resolved_functions_describe_themselves(
    resolver: EmbeddingFunctionResolver,
) -> None:
    spec = EmbeddingFunctionSpec.known(
        "openai", {"api_key_env_var": "CUSTOM_KEY", "model_name": "m"}
    )
    ef = resolver.resolve(spec)
    assert ef is not None
    described = spec_round_trip(ef)
    assert described == spec
    assert resolver.resolve(described).get_config() == ef.get_config()  # type: ignore[union-attr]


def test_process_environment_is_not_consulted(
    monkeypatch: pytest.MonkeyPatch, settings: Settings
) -> None:
    monkeypatch.setenv("CHROMA_HUGGINGFACE_API_KEY", "from-process-env")
    monkeypatch.setenv("CHROMA_OPENAI_API_KEY", "from-process-env")
    resolver = EmbeddingFunctionResolver(settings=settings, getenv=lambda name: None)

    ef = resolver.resolve(
        EmbeddingFunctionSpec.known(
            "hf", {"api_type": "HFEI_API", "base_url": "http://tei:8080"}
        )
    )
    assert isinstance(ef, HuggingFaceEmbeddingFunction)
    assert ef.api_key is None

    with pytest.raises(EmbeddingFunctionResolutionError, match="not set"):
        resolver.resolve(EmbeddingFunctionSpec.known("openai"))


def test_ollama_checks_api_key_types(resolver: EmbeddingFunctionResolver) -> None:
    with pytest.raises(EmbeddingFunctionResolutionError) as e:
        resolver.resolve(EmbeddingFunctionSpec.known("ollama", {"api_key": 5}))
    assert "api_key must be a string" in str(e.value)

    ef = resolver.resolve(EmbeddingFunctionSpec.known("ollama", {"api_key": "unused"}))
    assert isinstance(ef, OllamaEmbeddingFunction)
