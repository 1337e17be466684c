from typing import Any, Dict, List, Optional

import httpx
import numpy as np

from chromaconfig.api.types import (
    DistanceFunction,
    Documents,
    EmbeddingFunction,
    Embeddings,
)

DEFAULT_OLLAMA_URL = "http://localhost:11434"


class OllamaEmbeddingFunction(EmbeddingFunction):
    """
    This class is used to generate embeddings for a list of texts using a
    running Ollama server. No API key is involved.
    """

    def __init__(
        self,
        api_base: Optional[str] = None,
        model_name: str = "chroma/all-minilm-l6-v2-f32",
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None,
    ):
        self.api_base = (api_base or DEFAULT_OLLAMA_URL).rstrip("/")
        # Accept both the server root and the embed endpoint itself
        if self.api_base.endswith("/api/embed"):
            self.api_base = self.api_base[: -len("/api/embed")]
        self.model_name = model_name
        self._session = http_client or httpx.Client(timeout=timeout)

    def __call__(self, input: Documents) -> Embeddings:
        resp = self._session.post(
            f"{self.api_base}/api/embed",
            json={"model": self.model_name, "input": input},
        )
        resp.raise_for_status()
        return [
            np.array(embedding, dtype=np.float32)
            for embedding in resp.json()["embeddings"]
        ]

    @staticmethod
    def name() -> str:
        return "ollama"

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.COSINE

    def supported_spaces(self) -> List[DistanceFunction]:
        return [DistanceFunction.COSINE, DistanceFunction.L2, DistanceFunction.IP]

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "OllamaEmbeddingFunction":
        return OllamaEmbeddingFunction(
            api_base=config.get("url") or config.get("api_base"),
            model_name=config.get("model_name", "chroma/all-minilm-l6-v2-f32"),
        )

    def get_config(self) -> Dict[str, Any]:
        return {"url": self.api_base, "model_name": self.model_name}
