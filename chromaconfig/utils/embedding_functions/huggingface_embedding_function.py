import os
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Union

import httpx
import numpy as np

from chromaconfig.api.types import (
    DistanceFunction,
    Documents,
    EmbeddingFunction,
    Embeddings,
)

HF_INFERENCE_API_URL = "https://api-inference.huggingface.co/pipeline/feature-extraction"


class HuggingFaceApiType(str, Enum):
    # Hosted inference API
    HF_API = "HF_API"
    # Self-hosted text-embeddings-inference server
    HFEI_API = "HFEI_API"

    @classmethod
    def from_value(cls, value: Union[str, "HuggingFaceApiType"]) -> "HuggingFaceApiType":
        if isinstance(value, cls):
            return value
        normalized = str(value).strip().casefold()
        for member in cls:
            if member.value.casefold() == normalized:
                return member
        raise ValueError(f"unsupported huggingface api_type: {value}")


class HuggingFaceEmbeddingFunction(EmbeddingFunction):
    """
    This class is used to get embeddings for a list of texts using either the
    HuggingFace inference API or a text-embeddings-inference server
    (https://github.com/huggingface/text-embeddings-inference).
    The hosted API requires an API key; a self-hosted server requires ``api_base``.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_name: str = "sentence-transformers/all-MiniLM-L6-v2",
        api_key_env_var: str = "CHROMA_HUGGINGFACE_API_KEY",
        api_base: Optional[str] = None,
        api_type: Union[str, HuggingFaceApiType] = HuggingFaceApiType.HF_API,
        timeout: float = 60.0,
        http_client: Optional[httpx.Client] = None,
        getenv: Callable[[str], Optional[str]] = os.getenv,
    ):
        self.api_type = HuggingFaceApiType.from_value(api_type)
        self.api_key_env_var = api_key_env_var
        self.api_key = api_key or getenv(api_key_env_var)
        self.model_name = model_name

        if self.api_type == HuggingFaceApiType.HF_API:
            if not self.api_key:
                raise ValueError(
                    f"The {api_key_env_var} environment variable is not set."
                )
            self.api_base = api_base
            self._api_url = f"{(api_base or HF_INFERENCE_API_URL).rstrip('/')}/{model_name}"
        else:
            if not api_base:
                raise ValueError("api_base is required for the HFEI_API api_type")
            self.api_base = api_base
            self._api_url = f"{api_base.rstrip('/')}/embed"

        self._session = http_client or httpx.Client(timeout=timeout)
        if self.api_key:
            self._session.headers.update({"Authorization": f"Bearer {self.api_key}"})

    def __call__(self, input: Documents) -> Embeddings:
        payload: Dict[str, Any] = {"inputs": input}
        if self.api_type == HuggingFaceApiType.HF_API:
            payload["options"] = {"wait_for_model": True}
        resp = self._session.post(self._api_url, json=payload)
        resp.raise_for_status()
        return [np.array(embedding, dtype=np.float32) for embedding in resp.json()]

    @staticmethod
    def name() -> str:
        return "huggingface"

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.COSINE

    def supported_spaces(self) -> List[DistanceFunction]:
        return [DistanceFunction.COSINE, DistanceFunction.L2, DistanceFunction.IP]

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "HuggingFaceEmbeddingFunction":
        return HuggingFaceEmbeddingFunction(
            api_key_env_var=config.get("api_key_env_var", "CHROMA_HUGGINGFACE_API_KEY"),
            model_name=config.get("model_name", "sentence-transformers/all-MiniLM-L6-v2"),
            api_base=config.get("api_base"),
            api_type=config.get("api_type", HuggingFaceApiType.HF_API),
        )

    def get_config(self) -> Dict[str, Any]:
        config: Dict[str, Any] = {
            "api_key_env_var": self.api_key_env_var,
            "model_name": self.model_name,
            "api_type": self.api_type.value,
        }
        if self.api_base is not None:
            config["api_base"] = self.api_base
        return config

