import json
from typing import Any, Dict, List

import httpx
import numpy as np
import pytest

from chromaconfig.api.types import EmbeddingFunctionSpec
from chromaconfig.utils.embedding_functions import (
    CohereEmbeddingFunction,
    HuggingFaceApiType,
    HuggingFaceEmbeddingFunction,
    OllamaEmbeddingFunction,
    OpenAIEmbeddingFunction,
)


class RecordingTransport:
    """Answers every request with ``body`` and keeps the requests it saw."""

    def __init__(self, body: Any) -> None:
        self.body = body
        self.requests: List[httpx.Request] = []

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self._handle))

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(200, json=self.body)

    def sent_json(self, index: int = 0) -> Dict[str, Any]:
        return json.loads(self.requests[index].content)


def test_openai_request_and_response_order() -> None:
    transport = RecordingTransport(
        {
            "data": [
                {"index": 1, "embedding": [0.0, 1.0]},
                {"index": 0, "embedding": [1.0, 0.0]},
            ]
        }
    )
    ef = OpenAIEmbeddingFunction(
        api_key="sk-test",
        model_name="text-embedding-3-small",
        dimensions=2,
        http_client=transport.client(),
    )
    embeddings = ef(["first", "second"])

    request = transport.requests[0]
    assert str(request.url) == "https://api.openai.com/v1/embeddings"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert transport.sent_json() == {
        "model": "text-embedding-3-small",
        "input": ["first", "second"],
        "dimensions": 2,
    }
    assert np.array_equal(embeddings[0], np.array([1.0, 0.0], dtype=np.float32))
    assert np.array_equal(embeddings[1], np.array([0.0, 1.0], dtype=np.float32))


def test_openai_custom_base_is_described() -> None:
    ef = OpenAIEmbeddingFunction(
        api_key="sk-test",
        api_base="http://proxy.local/v1/",
        http_client=RecordingTransport({"data": []}).client(),
    )
    assert ef.get_config() == {
        "api_key_env_var": "CHROMA_OPENAI_API_KEY",
        "model_name": "text-embedding-ada-002",
        "api_base": "http://proxy.local/v1/",
    }
    # The secret itself is never part of the descriptor
    assert "sk-test" not in json.dumps(ef.to_spec().to_json())


def test_openai_requires_api_key(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("UNSET_OPENAI_KEY", raising=False)
    with pytest.raises(ValueError, match="UNSET_OPENAI_KEY environment variable is not set"):
        OpenAIEmbeddingFunction(api_key_env_var="UNSET_OPENAI_KEY")


def test_cohere_document_and_query_input_types() -> None:
    transport = RecordingTransport({"embeddings": [[0.5, 0.5]]})
    ef = CohereEmbeddingFunction(api_key="co-key", http_client=transport.client())

    ef(["doc"])
    ef.embed_query(["query"])

    assert str(transport.requests[0].url) == "https://api.cohere.com/v1/embed"
    assert transport.requests[0].headers["Authorization"] == "Bearer co-key"
    assert transport.sent_json(0) == {
        "texts": ["doc"],
        "model": "embed-english-v3.0",
        "input_type": "search_document",
    }
    assert transport.sent_json(1)["input_type"] == "search_query"


def test_ollama_accepts_embed_endpoint_as_base() -> None:
    transport = RecordingTransport({"embeddings": [[1.0, 2.0, 3.0]]})
    ef = OllamaEmbeddingFunction(
        api_base="http://ollama:11434/api/embed",
        model_name="nomic-embed-text",
        http_client=transport.client(),
    )
    embeddings = ef(["hello"])

    assert str(transport.requests[0].url) == "http://ollama:11434/api/embed"
    assert transport.sent_json() == {"model": "nomic-embed-text", "input": ["hello"]}
    assert "Authorization" not in transport.requests[0].headers
    assert embeddings[0].dtype == np.float32
    assert ef.get_config() == {
        "url": "http://ollama:11434",
        "model_name": "nomic-embed-text",
    }


def test_huggingface_hosted_api() -> None:
    transport = RecordingTransport([[0.1, 0.2]])
    ef = HuggingFaceEmbeddingFunction(
        api_key="hf-key", model_name="org/model", http_client=transport.client()
    )
    ef(["text"])

    request = transport.requests[0]
    assert str(request.url) == (
        "https://api-inference.huggingface.co/pipeline/feature-extraction/org/model"
    )
    assert request.headers["Authorization"] == "Bearer hf-key"
    assert transport.sent_json() == {
        "inputs": ["text"],
        "options": {"wait_for_model": True},
    }


def test_huggingface_embedding_server() -> None:
    transport = RecordingTransport([[0.1, 0.2]])
    ef = HuggingFaceEmbeddingFunction(
        api_base="http://tei:8080",
        api_type="hfei_api",
        api_key_env_var="UNSET_HF_KEY",
        http_client=transport.client(),
    )
    ef(["text"])

    assert ef.api_type is HuggingFaceApiType.HFEI_API
    assert str(transport.requests[0].url) == "http://tei:8080/embed"
    assert transport.sent_json() == {"inputs": ["text"]}
    assert ef.to_spec() == EmbeddingFunctionSpec.known(
        "huggingface",
        {
            "api_key_env_var": "UNSET_HF_KEY",
            "model_name": "sentence-transformers/all-MiniLM-L6-v2",
            "api_type": "HFEI_API",
            "api_base": "http://tei:8080",
        },
    )


def test_huggingface_embedding_server_requires_base() -> None:
    with pytest.raises(ValueError, match="api_base is required"):
        HuggingFaceEmbeddingFunction(api_type=HuggingFaceApiType.HFEI_API)


def test_http_errors_propagate() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "bad key"})

    ef = CohereEmbeddingFunction(
        api_key="co-key",
        http_client=httpx.Client(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(httpx.HTTPStatusError):
        ef(["doc"])


def test_api_key_is_read_through_getenv(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TEAM_KEY", "from-process-env")
    env = {"TEAM_KEY": "from-getenv"}
    for ef_class in (OpenAIEmbeddingFunction, CohereEmbeddingFunction):
        ef = ef_class(
            api_key_env_var="TEAM_KEY",
            getenv=env.get,
            http_client=RecordingTransport({}).client(),
        )
        assert ef.api_key == "from-getenv"

    ef = HuggingFaceEmbeddingFunction(
        api_base="http://tei:8080",
        api_type=HuggingFaceApiType.HFEI_API,
        api_key_env_var="TEAM_KEY",
        getenv=lambda name: None,
        http_client=RecordingTransport([]).client(),
    )
    assert ef.api_key is None
