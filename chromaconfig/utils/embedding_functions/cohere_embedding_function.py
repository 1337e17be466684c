import os
from typing import Any, Callable, Dict, List, Optional

import httpx
import numpy as np

from chromaconfig.api.types import (
    DistanceFunction,
    Documents,
    EmbeddingFunction,
    Embeddings,
)

DEFAULT_COHERE_API_BASE = "https://api.cohere.com/v1"


class CohereEmbeddingFunction(EmbeddingFunction):
    """Embeddings from the Cohere ``/embed`` endpoint."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "embed-english-v3.0",
        api_key_env_var: str = "CHROMA_COHERE_API_KEY",
        api_base: Optional[str] = None,
        input_type: str = "search_document",
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None,
        getenv: Callable[[str], Optional[str]] = os.getenv,
    ):
        self.api_key_env_var = api_key_env_var
        self.api_key = api_key or getenv(api_key_env_var)
        if not self.api_key:
            raise ValueError(f"The {api_key_env_var} environment variable is not set.")

        self.model_name = model_name
        self.api_base = api_base or DEFAULT_COHERE_API_BASE
        self.input_type = input_type
        self._session = http_client or httpx.Client(timeout=timeout)

    def _embed(self, input: Documents, input_type: str) -> Embeddings:
        resp = self._session.post(
            f"{self.api_base.rstrip('/')}/embed",
            json={"texts": input, "model": self.model_name, "input_type": input_type},
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        resp.raise_for_status()
        return [
            np.array(embedding, dtype=np.float32)
            for embedding in resp.json()["embeddings"]
        ]

    def __call__(self, input: Documents) -> Embeddings:
        return self._embed(input, self.input_type)

    def embed_query(self, input: Documents) -> Embeddings:
        return self._embed(input, "search_query")

    @staticmethod
    def name() -> str:
        return "cohere"

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.COSINE

    def supported_spaces(self) -> List[DistanceFunction]:
        return [DistanceFunction.COSINE, DistanceFunction.L2, DistanceFunction.IP]

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "CohereEmbeddingFunction":
        return CohereEmbeddingFunction(
            api_key_env_var=config.get("api_key_env_var", "CHROMA_COHERE_API_KEY"),
            model_name=config.get("model_name", "embed-english-v3.0"),
            api_base=config.get("api_base"),
        )

    def get_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "api_key_env_var": self.api_key_env_var,
            "model_name": self.model_name,
        }
        if self.api_base != DEFAULT_COHERE_API_BASE:
            config["api_base"] = self.api_base
        return config
