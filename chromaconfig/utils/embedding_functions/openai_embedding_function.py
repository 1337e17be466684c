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

DEFAULT_OPENAI_API_BASE = "https://api.openai.com/v1"


class OpenAIEmbeddingFunction(EmbeddingFunction):
    """
    This class is used to get embeddings for a list of texts using the OpenAI
    embeddings endpoint. It requires an API key and a model name. The default
    model name is "text-embedding-ada-002".
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "text-embedding-ada-002",
        api_key_env_var: str = "CHROMA_OPENAI_API_KEY",
        api_base: Optional[str] = None,
        dimensions: Optional[int] = None,
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None,
        getenv: Callable[[str], Optional[str]] = os.getenv,
    ):
        """
        Initialize the OpenAIEmbeddingFunction.

        Args:
            api_key (str, optional): API key; read from ``api_key_env_var`` when omitted.
            model_name (str, optional): The name of the model to use for text embeddings.
                Defaults to "text-embedding-ada-002".
            api_key_env_var (str, optional): Environment variable holding the API key.
                Defaults to "CHROMA_OPENAI_API_KEY".
            api_base (str, optional): Base URL of an OpenAI compatible API.
            dimensions (int, optional): Output dimensionality for models that support it.
            getenv (callable, optional): Reads ``api_key_env_var``. Defaults to ``os.getenv``.
        """
        self.api_key_env_var = api_key_env_var
        self.api_key = api_key or getenv(api_key_env_var)
        if not self.api_key:
            raise ValueError(f"The {api_key_env_var} environment variable is not set.")

        self.model_name = model_name
        self.api_base = api_base or DEFAULT_OPENAI_API_BASE
        self.dimensions = dimensions
        self._session = http_client or httpx.Client(timeout=timeout)

    def __call__(self, input: Documents) -> Embeddings:
        payload: Dict[str, Any] = {"model": self.model_name, "input": input}
        if self.dimensions is not None:
            payload["dimensions"] = self.dimensions

        resp = self._session.post(
            f"{self.api_base.rstrip('/')}/embeddings",
            json=payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        resp.raise_for_status()

        # The API does not guarantee response order
        data = sorted(resp.json()["data"], key=lambda e: e["index"])
        return [np.array(item["embedding"], dtype=np.float32) for item in data]

    @staticmethod
    def name() -> str:
        return "openai"

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.COSINE

    def supported_spaces(self) -> List[DistanceFunction]:
        return [DistanceFunction.COSINE, DistanceFunction.L2, DistanceFunction.IP]

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "OpenAIEmbeddingFunction":
        return OpenAIEmbeddingFunction(
            api_key_env_var=config.get("api_key_env_var", "CHROMA_OPENAI_API_KEY"),
            model_name=config.get("model_name", "text-embedding-ada-002"),
            api_base=config.get("api_base"),
            dimensions=config.get("dimensions"),
        )

    def get_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "api_key_env_var": self.api_key_env_var,
            "model_name": self.model_name,
        }
        if self.api_base != DEFAULT_OPENAI_API_BASE:
            config["api_base"] = self.api_base
        if self.dimensions is not None:
            config["dimensions"] = self.dimensions
        return config
