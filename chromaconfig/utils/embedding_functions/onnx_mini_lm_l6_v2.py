import hashlib
import importlib
import logging
import sys
import tarfile
from functools import cached_property
from pathlib import Path
from typing import Any, Dict, List, Optional, cast

import httpx
import numpy as np
import numpy.typing as npt
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_random

from chromaconfig.api.types import (
    DistanceFunction,
    Documents,
    EmbeddingFunction,
    Embeddings,
)

logger = logging.getLogger(__name__)

_MODEL_FILES = (
    "config.json",
    "model.onnx",
    "special_tokens_map.json",
    "tokenizer_config.json",
    "tokenizer.json",
    "vocab.txt",
)


def _sha256_of(path: Path) -> str:
    digest = hashlib.sha256()
    with path.open("rb") as f:
        for block in iter(lambda: f.read(1 << 16), b""):
            digest.update(block)
    return digest.hexdigest()


def _import_optional(module: str, extra: str = "onnx") -> Any:
    try:
        return importlib.import_module(module)
    except ImportError:
        raise ValueError(
            f"The {module} python package is not installed. "
            f"Please install it with `pip install chromaconfig[{extra}]`"
        )


class ONNXMiniLM_L6_V2(EmbeddingFunction):
    """all-MiniLM-L6-v2 sentence embeddings computed locally with onnxruntime.

    The model archive is fetched on first use and cached under
    ``~/.cache/chroma/onnx_models``.
    """

    MODEL_NAME = "all-MiniLM-L6-v2"
    DOWNLOAD_PATH = Path.home() / ".cache" / "chroma" / "onnx_models" / MODEL_NAME
    EXTRACTED_FOLDER_NAME = "onnx"
    ARCHIVE_FILENAME = "onnx.tar.gz"
    MODEL_DOWNLOAD_URL = (
        "https://chroma-onnx-models.s3.amazonaws.com/all-MiniLM-L6-v2/onnx.tar.gz"
    )
    _MODEL_SHA256 = "913d7300ceae3b2dbc2c50d1de4baacab4be7b9380491c27fab7418616a16ec3"
    MAX_TOKENS = 256

    def __init__(self, preferred_providers: Optional[List[str]] = None) -> None:
        if preferred_providers is not None:
            if not all(isinstance(p, str) for p in preferred_providers):
                raise ValueError("Preferred providers must be a list of strings")
            if len(preferred_providers) != len(set(preferred_providers)):
                raise ValueError("Preferred providers must be unique")
        self._preferred_providers = preferred_providers
        self.ort = _import_optional("onnxruntime")
        self.Tokenizer = _import_optional("tokenizers").Tokenizer
        self.tqdm = _import_optional("tqdm").tqdm

    @property
    def _model_dir(self) -> Path:
        return self.DOWNLOAD_PATH / self.EXTRACTED_FOLDER_NAME

    @property
    def _archive(self) -> Path:
        return self.DOWNLOAD_PATH / self.ARCHIVE_FILENAME

    @retry(  # type: ignore
        reraise=True,
        stop=stop_after_attempt(3),
        wait=wait_random(min=1, max=3),
        retry=retry_if_exception(lambda e: "does not match expected SHA256" in str(e)),
    )
    def _download(self, url: str, target: Path) -> None:
        logger.debug("Downloading %s to %s", url, target)
        with httpx.stream("GET", url, follow_redirects=True) as resp:
            resp.raise_for_status()
            total = int(resp.headers.get("content-length", 0))
            with target.open("wb") as f, self.tqdm(
                desc=str(target.name), total=total, unit="iB", unit_scale=True
            ) as bar:
                for chunk in resp.iter_bytes():
                    bar.update(f.write(chunk))
        if _sha256_of(target) != self._MODEL_SHA256:
            target.unlink()
            raise ValueError(
                f"Downloaded file {target} does not match expected SHA256 hash. "
                "Corrupted download or malicious file."
            )

    def _ensure_model(self) -> None:
        if all((self._model_dir / name).exists() for name in _MODEL_FILES):
            return
        self.DOWNLOAD_PATH.mkdir(parents=True, exist_ok=True)
        if not self._archive.exists() or _sha256_of(self._archive) != self._MODEL_SHA256:
            self._download(self.MODEL_DOWNLOAD_URL, self._archive)
        with tarfile.open(self._archive, mode="r:gz") as tar:
            if sys.version_info >= (3, 12):
                tar.extractall(path=self.DOWNLOAD_PATH, filter="data")
            else:
                tar.extractall(path=self.DOWNLOAD_PATH)

    @cached_property
    def tokenizer(self) -> Any:
        tokenizer = self.Tokenizer.from_file(str(self._model_dir / "tokenizer.json"))
        tokenizer.enable_truncation(max_length=self.MAX_TOKENS)
        tokenizer.enable_padding(pad_id=0, pad_token="[PAD]", length=self.MAX_TOKENS)
        return tokenizer

    @cached_property
    def model(self) -> Any:
        available = self.ort.get_available_providers()
        providers = self._preferred_providers or list(available)
        if not set(providers).issubset(set(available)):
            raise ValueError(
                f"Preferred providers must be subset of available providers: {available}"
            )
        # CoreML is slower than CPU for this model
        providers = [p for p in providers if p != "CoreMLExecutionProvider"]

        options = self.ort.SessionOptions()
        options.log_severity_level = 3
        options.graph_optimization_level = self.ort.GraphOptimizationLevel.ORT_ENABLE_ALL
        return self.ort.InferenceSession(
            str(self._model_dir / "model.onnx"),
            providers=providers,
            sess_options=options,
        )

    def _embed_batch(self, batch: List[str]) -> npt.NDArray[np.float32]:
        encoded = self.tokenizer.encode_batch(batch)
        input_ids = np.array([e.ids for e in encoded], dtype=np.int64)
        attention_mask = np.array([e.attention_mask for e in encoded], dtype=np.int64)
        last_hidden_state = self.model.run(
            None,
            {
                "input_ids": input_ids,
                "attention_mask": attention_mask,
                "token_type_ids": np.zeros_like(input_ids),
            },
        )[0]

        # attention-weighted mean pooling, then L2 normalization
        mask = np.broadcast_to(np.expand_dims(attention_mask, -1), last_hidden_state.shape)
        pooled = np.sum(last_hidden_state * mask, 1) / np.clip(
            mask.sum(1), a_min=1e-9, a_max=None
        )
        norms = np.linalg.norm(pooled, axis=1)
        norms[norms == 0] = 1e-12
        return cast(npt.NDArray[np.float32], (pooled / norms[:, np.newaxis]).astype(np.float32))

    def __call__(self, input: Documents, batch_size: int = 32) -> Embeddings:
        self._ensure_model()
        embeddings: Embeddings = []
        for start in range(0, len(input), batch_size):
            embeddings.extend(self._embed_batch(input[start : start + batch_size]))
        return embeddings

    @staticmethod
    def name() -> str:
        return "onnx_mini_lm_l6_v2"

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.COSINE

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "ONNXMiniLM_L6_V2":
        return ONNXMiniLM_L6_V2(preferred_providers=config.get("preferred_providers"))

    def get_config(self) -> Dict[str, Any]:
        return {"preferred_providers": self._preferred_providers}
