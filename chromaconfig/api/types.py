import copy
import logging
import math
import re
import warnings
from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    Type,
    TypeVar,
    Union,
    cast,
)

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, InstanceOf, ValidationInfo, field_validator, model_validator
from typing_extensions import Final, Protocol, TypeAlias

from chromaconfig.errors import DeserializationError
from chromaconfig.serde import (
    child_path,
    key_path,
    optional_map,
    require_bool,
    require_map,
    require_number,
    require_string,
)

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=Enum)


def _parse_enum(
    enum_cls: Type[E],
    value: Any,
    label: str,
    aliases: Optional[Mapping[str, E]] = None,
) -> E:
    """Case-insensitive, whitespace-trimmed lookup of an enum member by value.

    ``str.casefold`` is locale independent, so ``"COSINE"`` parses the same
    way regardless of the process locale.
    """
    if isinstance(value, enum_cls):
        return value
    if value is None:
        raise ValueError(f"{label} must not be None")
    if not isinstance(value, str):
        raise ValueError(f"{label} must be a string, got {type(value).__name__}")
    normalized = value.strip().casefold()
    for member in enum_cls:
        if member.value == normalized:
            return member
    if aliases is not None and normalized in aliases:
        return aliases[normalized]
    raise ValueError(f"unsupported {label}: {value!r}")


class DistanceFunction(str, Enum):
    L2 = "l2"
    IP = "ip"
    COSINE = "cosine"

    @classmethod
    def from_value(cls, value: Any) -> "DistanceFunction":
        return _parse_enum(cls, value, "distance function")


Space = DistanceFunction


class Include(str, Enum):
    EMBEDDINGS = "embeddings"
    DOCUMENTS = "documents"
    METADATAS = "metadatas"
    DISTANCES = "distances"
    URIS = "uris"

    @classmethod
    def from_value(cls, value: Any) -> "Include":
        return _parse_enum(cls, value, "include value")


def normalize_include(include: Iterable[Union[str, Include]]) -> List[Include]:
    """Parse include flags, dropping duplicates while keeping first-seen order."""
    if isinstance(include, str):
        raise ValueError(f"Expected include to be a list, got {include!r}")
    normalized: List[Include] = []
    for item in include:
        member = Include.from_value(item)
        if member not in normalized:
            normalized.append(member)
    return normalized


class SpannQuantization(str, Enum):
    NONE = "none"
    FOUR_BIT_RABIT_Q_WITH_U_SEARCH = "four_bit_rabit_q_with_u_search"

    @classmethod
    def from_value(cls, value: Any) -> "SpannQuantization":
        return _parse_enum(cls, value, "SPANN quantize value", _QUANTIZATION_ALIASES)


_QUANTIZATION_ALIASES: Dict[str, SpannQuantization] = {
    "four_bit_rabbit_q_with_u_search": SpannQuantization.FOUR_BIT_RABIT_Q_WITH_U_SEARCH,
}


class CmekProvider(str, Enum):
    GCP = "gcp"

    @classmethod
    def from_value(cls, value: Any) -> "CmekProvider":
        return _parse_enum(cls, value, "CMEK provider")


_CMEK_RESOURCE_PATTERNS: Dict[CmekProvider, "re.Pattern[str]"] = {
    CmekProvider.GCP: re.compile(
        r"^projects/[^/]+/locations/[^/]+/keyRings/[^/]+/cryptoKeys/[^/]+$"
    ),
}

_CMEK_RESOURCE_FORMATS: Dict[CmekProvider, str] = {
    CmekProvider.GCP: "projects/{project}/locations/{location}/keyRings/{keyRing}/cryptoKeys/{key}",
}


@dataclass(frozen=True)
class Cmek:
    """Customer-managed encryption key reference."""

    provider: CmekProvider
    resource: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "provider", CmekProvider.from_value(self.provider))
        if not isinstance(self.resource, str) or not self.resource.strip():
            raise ValueError("CMEK resource must be a non-blank string")
        object.__setattr__(self, "resource", self.resource.strip())
        if not self.validate_pattern():
            raise ValueError(
                f"invalid {self.provider.value.upper()} CMEK resource format: "
                f"expected {_CMEK_RESOURCE_FORMATS[self.provider]}"
            )

    @classmethod
    def gcp(cls, resource: str) -> "Cmek":
        return cls(provider=CmekProvider.GCP, resource=resource)

    def validate_pattern(self) -> bool:
        return _CMEK_RESOURCE_PATTERNS[self.provider].match(self.resource) is not None

    def to_dict(self) -> Dict[str, str]:
        return {self.provider.value: self.resource}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cmek":
        for provider in CmekProvider:
            if provider.value in data:
                resource = data[provider.value]
                if not isinstance(resource, str):
                    raise ValueError(f"{provider.value} must be a string")
                return cls(provider=provider, resource=resource)
        supported = ", ".join(p.value for p in CmekProvider)
        raise ValueError(f"CMEK must include a supported provider ({supported})")


# Embedding function descriptors

KNOWN_EMBEDDING_FUNCTION_TYPE: Final[str] = "known"
LEGACY_EMBEDDING_FUNCTION_TYPE: Final[str] = "legacy"
UNKNOWN_EMBEDDING_FUNCTION_TYPE: Final[str] = "unknown"

SECRET_KEY_MARKERS: Final[Tuple[str, ...]] = (
    "api_key",
    "apikey",
    "token",
    "secret",
    "password",
)
REDACTED: Final[str] = "***"


def _freeze(value: Any) -> Any:
    if isinstance(value, Mapping):
        return tuple(sorted((k, _freeze(v)) for k, v in value.items()))
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(v) for v in value)
    return value


def is_secret_key(key: str) -> bool:
    lowered = key.casefold()
    return any(marker in lowered for marker in SECRET_KEY_MARKERS)


def redact_config(config: Mapping[str, Any]) -> Dict[str, Any]:
    return {k: REDACTED if is_secret_key(k) else v for k, v in config.items()}


@dataclass(frozen=True, repr=False)
class EmbeddingFunctionSpec:
    """Descriptor naming an embedding function provider and its config.

    ``type`` is ``"known"`` for providers the client can build itself; any
    other tag marks a function the client cannot reconstruct. The config is
    copied on construction and exposed read-only. ``repr`` and ``str``
    redact secret-looking keys.
    """

    name: str
    type: Optional[str] = None
    config: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name.strip():
            raise ValueError("embedding function name must be a non-blank string")
        object.__setattr__(self, "name", self.name.strip())

        if self.type is not None:
            if not isinstance(self.type, str):
                raise ValueError("embedding function type must be a string")
            stripped = self.type.strip()
            object.__setattr__(self, "type", stripped or None)

        if self.config is not None:
            if not isinstance(self.config, Mapping):
                raise ValueError("embedding function config must be a mapping")
            for key in self.config.keys():
                if not isinstance(key, str):
                    raise ValueError(
                        f"embedding function config contains non-string key {key!r}"
                    )
            # An empty config is the same as no config
            frozen = (
                MappingProxyType(copy.deepcopy(dict(self.config)))
                if len(self.config) > 0
                else None
            )
            object.__setattr__(self, "config", frozen)

    @classmethod
    def known(
        cls, name: str, config: Optional[Mapping[str, Any]] = None
    ) -> "EmbeddingFunctionSpec":
        return cls(name=name, type=KNOWN_EMBEDDING_FUNCTION_TYPE, config=config)

    def is_known_type(self) -> bool:
        # An absent type tag is treated as known
        return self.type is None or self.type.casefold() == KNOWN_EMBEDDING_FUNCTION_TYPE

    def config_dict(self) -> Dict[str, Any]:
        """A mutable deep copy of the config."""
        if self.config is None:
            return {}
        return copy.deepcopy(dict(self.config))

    def to_json(self) -> Dict[str, Any]:
        json_map: Dict[str, Any] = {}
        if self.type is not None:
            json_map["type"] = self.type
        json_map["name"] = self.name
        if self.config is not None:
            json_map["config"] = self.config_dict()
        return json_map

    @classmethod
    def from_json(
        cls, json_map: Any, path: str = "embedding_function"
    ) -> Optional["EmbeddingFunctionSpec"]:
        """Decode a wire descriptor.

        ``{"type": "legacy"}`` decodes to None. Below a ``schema.`` path a
        descriptor of type ``unknown`` with no usable name also decodes to
        None, since servers emit it as a placeholder for functions they
        cannot describe.
        """
        data = require_map(json_map, path)
        raw_type = data.get("type")
        if raw_type is not None:
            raw_type = require_string(raw_type, child_path(path, "type"))
        normalized_type = raw_type.strip().casefold() if raw_type else None

        if normalized_type == LEGACY_EMBEDDING_FUNCTION_TYPE:
            if not path.startswith("schema"):
                warnings.warn(
                    "legacy embedding function config",
                    DeprecationWarning,
                    stacklevel=2,
                )
            return None

        try:
            name = require_string(data.get("name"), child_path(path, "name"))
            config = optional_map(data.get("config"), child_path(path, "config"))
            try:
                return cls(name=name, type=raw_type, config=config)
            except ValueError as e:
                raise DeserializationError(
                    f"{path} is invalid: {e}", field_path=path
                ) from e
        except DeserializationError:
            if normalized_type == UNKNOWN_EMBEDDING_FUNCTION_TYPE and path.startswith(
                "schema"
            ):
                logger.debug("Ignoring unusable unknown embedding function at %s", path)
                return None
            raise

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EmbeddingFunctionSpec):
            return NotImplemented
        return (
            self.name == other.name
            and self.type == other.type
            and self.config_dict() == other.config_dict()
        )

    def __hash__(self) -> int:
        return hash((self.name, self.type, _freeze(self.config or {})))

    def __repr__(self) -> str:
        config = redact_config(self.config) if self.config is not None else None
        return (
            f"EmbeddingFunctionSpec(name={self.name!r}, type={self.type!r}, "
            f"config={config!r})"
        )

    __str__ = __repr__


# Index parameter constraints


def _require_integer(name: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be numeric, got {type(value).__name__}")
    if isinstance(value, float):
        if not value.is_integer():
            raise ValueError(f"{name} must be an integer, got {value}")
        return int(value)
    return value


def _require_float(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{name} must be numeric, got {type(value).__name__}")
    return float(value)


@dataclass(frozen=True)
class IntRange:
    minimum: int
    maximum: Optional[int] = None

    def check(self, name: str, value: Any) -> int:
        number = _require_integer(name, value)
        if self.maximum is not None:
            if not self.minimum <= number <= self.maximum:
                raise ValueError(
                    f"{name} must be in [{self.minimum}, {self.maximum}], got {number}"
                )
        elif number < self.minimum:
            bound = "> 0" if self.minimum == 1 else f">= {self.minimum}"
            raise ValueError(f"{name} must be {bound}, got {number}")
        return number


@dataclass(frozen=True)
class FloatRange:
    minimum: Optional[float] = None
    maximum: Optional[float] = None
    positive: bool = False

    def check(self, name: str, value: Any) -> float:
        number = _require_float(name, value)
        if not math.isfinite(number):
            raise ValueError(f"{name} must be finite, got {number}")
        if self.positive and number <= 0:
            raise ValueError(f"{name} must be > 0, got {number}")
        if self.minimum is not None and self.maximum is not None:
            if not self.minimum <= number <= self.maximum:
                raise ValueError(
                    f"{name} must be in [{self.minimum:g}, {self.maximum:g}], got {number}"
                )
        return number


Constraint: TypeAlias = Union[IntRange, FloatRange]

HNSW_CONSTRAINTS: Final[Dict[str, Constraint]] = {
    "ef_construction": IntRange(1),
    "max_neighbors": IntRange(1),
    "ef_search": IntRange(1),
    "num_threads": IntRange(1),
    "batch_size": IntRange(2),
    "sync_threshold": IntRange(2),
    "resize_factor": FloatRange(positive=True),
}

SPANN_CONSTRAINTS: Final[Dict[str, Constraint]] = {
    "search_nprobe": IntRange(1, 128),
    "search_rng_factor": FloatRange(),
    "search_rng_epsilon": FloatRange(5, 10),
    "nreplica_count": IntRange(1, 8),
    "write_rng_factor": FloatRange(),
    "write_rng_epsilon": FloatRange(5, 10),
    "split_threshold": IntRange(50, 200),
    "num_samples_kmeans": IntRange(1, 1000),
    "initial_lambda": FloatRange(),
    "reassign_neighbor_count": IntRange(1, 64),
    "merge_threshold": IntRange(25, 100),
    "num_centers_to_merge_to": IntRange(1, 8),
    "write_nprobe": IntRange(1, 64),
    "ef_construction": IntRange(1, 200),
    "ef_search": IntRange(1),
    "max_neighbors": IntRange(1, 64),
}


def check_field(
    constraints: Mapping[str, Constraint],
    field_name: Optional[str],
    value: Any,
    display_name: Optional[str] = None,
) -> Any:
    """Validate ``value`` against the constraint registered for ``field_name``.

    ``display_name`` replaces the field name in error messages, which lets
    builders report wire keys such as ``hnsw:M``.
    """
    if value is None or field_name is None or field_name not in constraints:
        return value
    return constraints[field_name].check(display_name or field_name, value)


def ensure_single_index_group(has_hnsw: bool, has_spann: bool, message: str) -> None:
    """The one place HNSW and SPANN parameters are checked for exclusivity."""
    if has_hnsw and has_spann:
        raise ValueError(message)


# Index Configuration Types for Collection Schema


class FtsIndexConfig(BaseModel):
    """Configuration for Full-Text Search index. No parameters required."""

    model_config = {"extra": "forbid", "frozen": True}


class HnswIndexConfig(BaseModel):
    """Configuration for HNSW vector index."""

    model_config = {"extra": "forbid", "frozen": True}

    ef_construction: Optional[int] = None
    max_neighbors: Optional[int] = None
    ef_search: Optional[int] = None
    num_threads: Optional[int] = None
    batch_size: Optional[int] = None
    sync_threshold: Optional[int] = None
    resize_factor: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def validate_ranges(cls, v: Any, info: ValidationInfo) -> Any:
        return check_field(HNSW_CONSTRAINTS, info.field_name, v)


class SpannIndexConfig(BaseModel):
    """Configuration for SPANN vector index."""

    model_config = {"extra": "forbid", "frozen": True}

    search_nprobe: Optional[int] = None
    search_rng_factor: Optional[float] = None
    search_rng_epsilon: Optional[float] = None
    nreplica_count: Optional[int] = None
    write_rng_factor: Optional[float] = None
    write_rng_epsilon: Optional[float] = None
    split_threshold: Optional[int] = None
    num_samples_kmeans: Optional[int] = None
    initial_lambda: Optional[float] = None
    reassign_neighbor_count: Optional[int] = None
    merge_threshold: Optional[int] = None
    num_centers_to_merge_to: Optional[int] = None
    write_nprobe: Optional[int] = None
    ef_construction: Optional[int] = None
    ef_search: Optional[int] = None
    max_neighbors: Optional[int] = None
    quantize: Optional[SpannQuantization] = None

    @field_validator("*", mode="before")
    @classmethod
    def validate_ranges(cls, v: Any, info: ValidationInfo) -> Any:
        return check_field(SPANN_CONSTRAINTS, info.field_name, v)

    @field_validator("quantize", mode="before")
    @classmethod
    def validate_quantize(cls, v: Any) -> Optional[SpannQuantization]:
        if v is None:
            return None
        return SpannQuantization.from_value(v)


IndexParams: TypeAlias = Union[HnswIndexConfig, SpannIndexConfig, None]


def _normalize_source_key(v: Any) -> Optional[str]:
    if v is None:
        return None
    if not isinstance(v, str):
        raise ValueError(f"source_key must be a string, got {type(v).__name__}")
    return v.strip() or None


class VectorIndexConfig(BaseModel):
    """Configuration for vector index with space, embedding function, and algorithm config."""

    model_config = {"extra": "forbid", "frozen": True}

    space: Optional[DistanceFunction] = None
    embedding_function: Optional[InstanceOf[EmbeddingFunctionSpec]] = None
    source_key: Optional[str] = None
    hnsw: Optional[HnswIndexConfig] = None
    spann: Optional[SpannIndexConfig] = None

    @field_validator("space", mode="before")
    @classmethod
    def validate_space(cls, v: Any) -> Optional[DistanceFunction]:
        if v is None:
            return None
        return DistanceFunction.from_value(v)

    @field_validator("source_key", mode="before")
    @classmethod
    def validate_source_key(cls, v: Any) -> Optional[str]:
        return _normalize_source_key(v)

    @model_validator(mode="after")
    def validate_single_index(self) -> "VectorIndexConfig":
        ensure_single_index_group(
            self.hnsw is not None,
            self.spann is not None,
            "VectorIndexConfig cannot define both hnsw and spann",
        )
        return self

    @property
    def index(self) -> IndexParams:
        return self.hnsw if self.hnsw is not None else self.spann


class SparseVectorIndexConfig(BaseModel):
    """Configuration for sparse vector index."""

    model_config = {"extra": "forbid", "frozen": True}

    embedding_function: Optional[InstanceOf[EmbeddingFunctionSpec]] = None
    source_key: Optional[str] = None
    bm25: Optional[bool] = None

    @field_validator("source_key", mode="before")
    @classmethod
    def validate_source_key(cls, v: Any) -> Optional[str]:
        return _normalize_source_key(v)


class StringInvertedIndexConfig(BaseModel):
    """Configuration for string inverted index."""

    model_config = {"extra": "forbid", "frozen": True}


class IntInvertedIndexConfig(BaseModel):
    """Configuration for integer inverted index."""

    model_config = {"extra": "forbid", "frozen": True}


class FloatInvertedIndexConfig(BaseModel):
    """Configuration for float inverted index."""

    model_config = {"extra": "forbid", "frozen": True}


class BoolInvertedIndexConfig(BaseModel):
    """Configuration for boolean inverted index."""

    model_config = {"extra": "forbid", "frozen": True}


# Value type constants
STRING_VALUE_NAME: Final[str] = "string"
INT_VALUE_NAME: Final[str] = "int"
BOOL_VALUE_NAME: Final[str] = "bool"
FLOAT_VALUE_NAME: Final[str] = "float"
FLOAT_LIST_VALUE_NAME: Final[str] = "float_list"
SPARSE_VECTOR_VALUE_NAME: Final[str] = "sparse_vector"

# Index type name constants
FTS_INDEX_NAME: Final[str] = "fts_index"
VECTOR_INDEX_NAME: Final[str] = "vector_index"
SPARSE_VECTOR_INDEX_NAME: Final[str] = "sparse_vector_index"
STRING_INVERTED_INDEX_NAME: Final[str] = "string_inverted_index"
INT_INVERTED_INDEX_NAME: Final[str] = "int_inverted_index"
FLOAT_INVERTED_INDEX_NAME: Final[str] = "float_inverted_index"
BOOL_INVERTED_INDEX_NAME: Final[str] = "bool_inverted_index"

# Special key constants
DOCUMENT_KEY: Final[str] = "#document"
EMBEDDING_KEY: Final[str] = "#embedding"


# Index Type Classes


@dataclass(frozen=True)
class FtsIndexType:
    enabled: bool = True
    config: FtsIndexConfig = field(default_factory=FtsIndexConfig)


@dataclass(frozen=True)
class VectorIndexType:
    enabled: bool = True
    config: VectorIndexConfig = field(default_factory=VectorIndexConfig)


@dataclass(frozen=True)
class SparseVectorIndexType:
    enabled: bool = True
    config: SparseVectorIndexConfig = field(default_factory=SparseVectorIndexConfig)


@dataclass(frozen=True)
class StringInvertedIndexType:
    enabled: bool = True
    config: StringInvertedIndexConfig = field(default_factory=StringInvertedIndexConfig)


@dataclass(frozen=True)
class IntInvertedIndexType:
    enabled: bool = True
    config: IntInvertedIndexConfig = field(default_factory=IntInvertedIndexConfig)


@dataclass(frozen=True)
class FloatInvertedIndexType:
    enabled: bool = True
    config: FloatInvertedIndexConfig = field(default_factory=FloatInvertedIndexConfig)


@dataclass(frozen=True)
class BoolInvertedIndexType:
    enabled: bool = True
    config: BoolInvertedIndexConfig = field(default_factory=BoolInvertedIndexConfig)


# Individual Value Type Classes


@dataclass(frozen=True)
class StringValueType:
    fts_index: Optional[FtsIndexType] = None
    string_inverted_index: Optional[StringInvertedIndexType] = None


@dataclass(frozen=True)
class FloatListValueType:
    vector_index: Optional[VectorIndexType] = None


@dataclass(frozen=True)
class SparseVectorValueType:
    sparse_vector_index: Optional[SparseVectorIndexType] = None


@dataclass(frozen=True)
class IntValueType:
    int_inverted_index: Optional[IntInvertedIndexType] = None


@dataclass(frozen=True)
class FloatValueType:
    float_inverted_index: Optional[FloatInvertedIndexType] = None


@dataclass(frozen=True)
class BoolValueType:
    bool_inverted_index: Optional[BoolInvertedIndexType] = None


@dataclass(frozen=True)
class ValueTypes:
    string: Optional[StringValueType] = None
    float_list: Optional[FloatListValueType] = None
    sparse_vector: Optional[SparseVectorValueType] = None
    int_value: Optional[IntValueType] = None
    float_value: Optional[FloatValueType] = None
    boolean: Optional[BoolValueType] = None

    def is_empty(self) -> bool:
        return self == ValueTypes()


# Index config (de)serialization


def _index_config_to_json(config: BaseModel) -> Dict[str, Any]:
    """Serialize an index config, dropping unset fields."""
    if isinstance(config, (VectorIndexConfig, SparseVectorIndexConfig)):
        json_map: Dict[str, Any] = {}
        for name in type(config).model_fields:
            value = getattr(config, name)
            if value is None:
                continue
            if isinstance(value, EmbeddingFunctionSpec):
                json_map[name] = value.to_json()
            elif isinstance(value, BaseModel):
                json_map[name] = value.model_dump(mode="json", exclude_none=True)
            elif isinstance(value, Enum):
                json_map[name] = value.value
            else:
                json_map[name] = value
        return json_map
    return config.model_dump(mode="json", exclude_none=True)


def _numeric_fields_from_json(
    model: Type[BaseModel], data: Dict[str, Any], path: str
) -> Dict[str, Any]:
    fields: Dict[str, Any] = {}
    for name in model.model_fields:
        if name not in data or data[name] is None:
            continue
        if name == "quantize":
            fields[name] = require_string(data[name], child_path(path, name))
        else:
            fields[name] = require_number(data[name], child_path(path, name))
    return fields


def _build_model(model: Type[BaseModel], fields: Dict[str, Any], path: str) -> Any:
    try:
        return model(**fields)
    except ValueError as e:
        raise DeserializationError(f"{path} is invalid: {e}", field_path=path) from e


def _vector_index_config_from_json(data: Dict[str, Any], path: str) -> VectorIndexConfig:
    fields: Dict[str, Any] = {}
    if data.get("space") is not None:
        space_path = child_path(path, "space")
        space = require_string(data["space"], space_path)
        try:
            fields["space"] = DistanceFunction.from_value(space)
        except ValueError as e:
            raise DeserializationError(
                f"unsupported {space_path} value: {space!r}", field_path=space_path
            ) from e
    if data.get("source_key") is not None:
        fields["source_key"] = require_string(
            data["source_key"], child_path(path, "source_key")
        )
    if data.get("embedding_function") is not None:
        fields["embedding_function"] = EmbeddingFunctionSpec.from_json(
            data["embedding_function"], child_path(path, "embedding_function")
        )
    for group, model in (("hnsw", HnswIndexConfig), ("spann", SpannIndexConfig)):
        if data.get(group) is not None:
            group_path = child_path(path, group)
            group_data = require_map(data[group], group_path)
            fields[group] = _build_model(
                model, _numeric_fields_from_json(model, group_data, group_path), group_path
            )
    return cast(VectorIndexConfig, _build_model(VectorIndexConfig, fields, path))


def _sparse_vector_index_config_from_json(
    data: Dict[str, Any], path: str
) -> SparseVectorIndexConfig:
    fields: Dict[str, Any] = {}
    if data.get("embedding_function") is not None:
        fields["embedding_function"] = EmbeddingFunctionSpec.from_json(
            data["embedding_function"], child_path(path, "embedding_function")
        )
    if data.get("source_key") is not None:
        fields["source_key"] = require_string(
            data["source_key"], child_path(path, "source_key")
        )
    if data.get("bm25") is not None:
        fields["bm25"] = require_bool(data["bm25"], child_path(path, "bm25"))
    return cast(
        SparseVectorIndexConfig, _build_model(SparseVectorIndexConfig, fields, path)
    )


def _empty_config_from_json(model: Type[BaseModel]) -> Callable[[Dict[str, Any], str], Any]:
    # Parameterless configs ignore whatever the server sends inside them
    return lambda data, path: model()


# value type name -> (ValueTypes attribute, value type class, {index name: (attribute, index type, config parser)})
_ConfigParser = Callable[[Dict[str, Any], str], Any]
_VALUE_TYPE_LAYOUT: Final[
    Dict[str, Tuple[str, type, Dict[str, Tuple[str, type, _ConfigParser]]]]
] = {
    STRING_VALUE_NAME: (
        "string",
        StringValueType,
        {
            FTS_INDEX_NAME: (
                "fts_index",
                FtsIndexType,
                _empty_config_from_json(FtsIndexConfig),
            ),
            STRING_INVERTED_INDEX_NAME: (
                "string_inverted_index",
                StringInvertedIndexType,
                _empty_config_from_json(StringInvertedIndexConfig),
            ),
        },
    ),
    FLOAT_LIST_VALUE_NAME: (
        "float_list",
        FloatListValueType,
        {
            VECTOR_INDEX_NAME: (
                "vector_index",
                VectorIndexType,
                _vector_index_config_from_json,
            ),
        },
    ),
    SPARSE_VECTOR_VALUE_NAME: (
        "sparse_vector",
        SparseVectorValueType,
        {
            SPARSE_VECTOR_INDEX_NAME: (
                "sparse_vector_index",
                SparseVectorIndexType,
                _sparse_vector_index_config_from_json,
            ),
        },
    ),
    INT_VALUE_NAME: (
        "int_value",
        IntValueType,
        {
            INT_INVERTED_INDEX_NAME: (
                "int_inverted_index",
                IntInvertedIndexType,
                _empty_config_from_json(IntInvertedIndexConfig),
            ),
        },
    ),
    FLOAT_VALUE_NAME: (
        "float_value",
        FloatValueType,
        {
            FLOAT_INVERTED_INDEX_NAME: (
                "float_inverted_index",
                FloatInvertedIndexType,
                _empty_config_from_json(FloatInvertedIndexConfig),
            ),
        },
    ),
    BOOL_VALUE_NAME: (
        "boolean",
        BoolValueType,
        {
            BOOL_INVERTED_INDEX_NAME: (
                "bool_inverted_index",
                BoolInvertedIndexType,
                _empty_config_from_json(BoolInvertedIndexConfig),
            ),
        },
    ),
}


def _value_types_to_json(value_types: ValueTypes) -> Dict[str, Any]:
    result: Dict[str, Any] = {}
    for value_name, (attr, _, indexes) in _VALUE_TYPE_LAYOUT.items():
        value_type = getattr(value_types, attr)
        if value_type is None:
            continue
        value_json: Dict[str, Any] = {}
        for index_name, (index_attr, _, _) in indexes.items():
            index_type = getattr(value_type, index_attr)
            if index_type is None:
                continue
            value_json[index_name] = {
                "enabled": index_type.enabled,
                "config": _index_config_to_json(index_type.config),
            }
        result[value_name] = value_json
    return result


def _value_types_from_json(json_map: Any, path: str) -> ValueTypes:
    data = require_map(json_map, path)
    value_fields: Dict[str, Any] = {}
    for value_name, (attr, value_cls, indexes) in _VALUE_TYPE_LAYOUT.items():
        if data.get(value_name) is None:
            continue
        value_path = child_path(path, value_name)
        value_data = require_map(data[value_name], value_path)
        index_fields: Dict[str, Any] = {}
        for index_name, (index_attr, index_cls, parse_config) in indexes.items():
            if value_data.get(index_name) is None:
                continue
            index_path = child_path(value_path, index_name)
            index_data = require_map(value_data[index_name], index_path)
            enabled = True
            if index_data.get("enabled") is not None:
                enabled = require_bool(
                    index_data["enabled"], child_path(index_path, "enabled")
                )
            config_path = child_path(index_path, "config")
            config_data = optional_map(index_data.get("config"), config_path) or {}
            index_fields[index_attr] = index_cls(
                enabled=enabled, config=parse_config(config_data, config_path)
            )
        value_fields[attr] = value_cls(**index_fields)
    return ValueTypes(**value_fields)


@dataclass(frozen=True)
class Schema:
    """Typed per-key index layout of a collection.

    ``keys`` maps field names to their value types; ``defaults`` applies
    to every key without an explicit entry. ``keys`` is read-only once the
    schema is built.
    """

    defaults: ValueTypes = field(default_factory=ValueTypes)
    keys: Mapping[str, ValueTypes] = field(default_factory=dict)
    cmek: Optional[Cmek] = None

    def __post_init__(self) -> None:
        if not isinstance(self.defaults, ValueTypes):
            raise TypeError("schema defaults must be ValueTypes")
        if self.cmek is not None and not isinstance(self.cmek, Cmek):
            raise TypeError("schema cmek must be a Cmek")
        keys: Dict[str, ValueTypes] = {}
        for key, value_types in self.keys.items():
            keys[_validate_key_name(key)] = _validate_value_types(key, value_types)
        object.__setattr__(self, "keys", MappingProxyType(keys))

    @staticmethod
    def builder() -> "SchemaBuilder":
        return SchemaBuilder()

    @classmethod
    def default(cls) -> "Schema":
        """The stock layout: FTS on documents, vector index on embeddings,
        inverted indexes enabled for scalar values."""
        defaults = ValueTypes(
            string=StringValueType(
                fts_index=FtsIndexType(enabled=False),
                string_inverted_index=StringInvertedIndexType(enabled=True),
            ),
            float_list=FloatListValueType(vector_index=VectorIndexType(enabled=False)),
            sparse_vector=SparseVectorValueType(
                sparse_vector_index=SparseVectorIndexType(enabled=False)
            ),
            int_value=IntValueType(int_inverted_index=IntInvertedIndexType(enabled=True)),
            float_value=FloatValueType(
                float_inverted_index=FloatInvertedIndexType(enabled=True)
            ),
            boolean=BoolValueType(bool_inverted_index=BoolInvertedIndexType(enabled=True)),
        )
        keys = {
            DOCUMENT_KEY: ValueTypes(
                string=StringValueType(
                    fts_index=FtsIndexType(enabled=True),
                    string_inverted_index=StringInvertedIndexType(enabled=False),
                )
            ),
            EMBEDDING_KEY: ValueTypes(
                float_list=FloatListValueType(
                    vector_index=VectorIndexType(
                        enabled=True,
                        config=VectorIndexConfig(source_key=DOCUMENT_KEY),
                    )
                )
            ),
        }
        return cls(defaults=defaults, keys=keys)

    def get_key(self, key: str) -> Optional[ValueTypes]:
        return self.keys.get(key)

    def value_types_for(self, key: str) -> ValueTypes:
        """Explicit entry for ``key`` if present, collection defaults otherwise."""
        return self.keys.get(key, self.defaults)

    def vector_index_config(self) -> Optional[VectorIndexConfig]:
        value_types = self.get_key(EMBEDDING_KEY)
        if value_types is None or value_types.float_list is None:
            return None
        vector_index = value_types.float_list.vector_index
        return vector_index.config if vector_index is not None else None

    def default_embedding_function_spec(self) -> Optional[EmbeddingFunctionSpec]:
        config = self.vector_index_config()
        return config.embedding_function if config is not None else None

    def serialize_to_json(self) -> Dict[str, Any]:
        """Convert Schema to a JSON-serializable dict for transmission over the wire."""
        json_map: Dict[str, Any] = {}
        if not self.defaults.is_empty():
            json_map["defaults"] = _value_types_to_json(self.defaults)
        if len(self.keys) > 0:
            json_map["keys"] = {
                key: _value_types_to_json(value_types)
                for key, value_types in self.keys.items()
            }
        if self.cmek is not None:
            json_map["cmek"] = self.cmek.to_dict()
        return json_map

    @classmethod
    def deserialize_from_json(cls, json_data: Any, path: str = "schema") -> "Schema":
        """Create Schema from JSON-serialized data."""
        data = require_map(json_data, path)

        defaults = ValueTypes()
        if data.get("defaults") is not None:
            defaults = _value_types_from_json(data["defaults"], child_path(path, "defaults"))

        keys: Dict[str, ValueTypes] = {}
        if data.get("keys") is not None:
            keys_path = child_path(path, "keys")
            for key, value_types_json in require_map(data["keys"], keys_path).items():
                if not key.strip():
                    raise DeserializationError(
                        f"{keys_path} contains a blank key", field_path=keys_path
                    )
                keys[key] = _value_types_from_json(
                    value_types_json, key_path(keys_path, key)
                )

        cmek = None
        if data.get("cmek") is not None:
            cmek_path = child_path(path, "cmek")
            cmek_data = require_map(data["cmek"], cmek_path)
            for provider in CmekProvider:
                if provider.value in cmek_data:
                    require_string(
                        cmek_data[provider.value], child_path(cmek_path, provider.value)
                    )
            try:
                cmek = Cmek.from_dict(cmek_data)
            except ValueError as e:
                raise DeserializationError(
                    f"{cmek_path} is invalid: {e}", field_path=cmek_path
                ) from e

        return cls(defaults=defaults, keys=keys, cmek=cmek)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Schema):
            return NotImplemented
        return (
            self.defaults == other.defaults
            and dict(self.keys) == dict(other.keys)
            and self.cmek == other.cmek
        )

    def __hash__(self) -> int:
        return hash((self.defaults, tuple(sorted(self.keys.items())), self.cmek))


def _validate_key_name(key: Any) -> str:
    if not isinstance(key, str) or not key.strip():
        raise ValueError(f"schema key must be a non-blank string, got {key!r}")
    return key


def _validate_value_types(key: str, value_types: Any) -> ValueTypes:
    if value_types is None:
        raise TypeError(f"value types for schema key {key!r} must not be None")
    if not isinstance(value_types, ValueTypes):
        raise TypeError(
            f"value types for schema key {key!r} must be ValueTypes, "
            f"got {type(value_types).__name__}"
        )
    return value_types


class SchemaBuilder:
    """Single-use builder for Schema."""

    def __init__(self) -> None:
        self._defaults = ValueTypes()
        self._keys: Dict[str, ValueTypes] = {}
        self._cmek: Optional[Cmek] = None

    def defaults(self, value_types: ValueTypes) -> "SchemaBuilder":
        self._defaults = _validate_value_types("defaults", value_types)
        return self

    def key(self, name: str, value_types: ValueTypes) -> "SchemaBuilder":
        name = _validate_key_name(name)
        self._keys[name] = _validate_value_types(name, value_types)
        return self

    def keys(self, keys: Mapping[str, ValueTypes]) -> "SchemaBuilder":
        if keys is None:
            raise TypeError("keys must not be None")
        for name, value_types in keys.items():
            self.key(name, value_types)
        return self

    def cmek(self, cmek: Optional[Cmek]) -> "SchemaBuilder":
        self._cmek = cmek
        return self

    def build(self) -> Schema:
        return Schema(defaults=self._defaults, keys=dict(self._keys), cmek=self._cmek)


# Embeddings

Vector = NDArray[Union[np.int32, np.float32]]
PyEmbedding = Sequence[float]
Embedding = Vector
Embeddings = List[Embedding]
Document = str
Documents = List[Document]


def normalize_embeddings(target: Any) -> Embeddings:
    if target is None or len(target) == 0:
        raise ValueError(
            f"Expected Embeddings to be non-empty list or numpy array, got {target}"
        )

    if isinstance(target, np.ndarray):
        if target.ndim == 1:
            return [target]
        elif target.ndim == 2:
            return [row for row in target]
    elif isinstance(target, list):
        # One PyEmbedding
        if isinstance(target[0], (int, float)) and not isinstance(target[0], bool):
            return [np.array(target, dtype=np.float32)]
        elif isinstance(target[0], np.ndarray):
            return cast(Embeddings, target)
        elif isinstance(target[0], list):
            if isinstance(target[0][0], (int, float)) and not isinstance(
                target[0][0], bool
            ):
                return [np.array(row, dtype=np.float32) for row in target]

    raise ValueError(
        f"Expected embeddings to be a list of floats or ints, a list of lists, a numpy array, or a list of numpy arrays, got {target}"
    )


def validate_embeddings(embeddings: Embeddings) -> Embeddings:
    """Validates embeddings to ensure it is a list of numpy arrays of ints, or floats"""
    for i, embedding in enumerate(embeddings):
        if embedding.ndim != 1 or embedding.size == 0:
            raise ValueError(
                f"Expected each embedding to be a non-empty 1-dimensional array, got shape {embedding.shape} at pos {i}"
            )
        if embedding.dtype not in [
            np.float16,
            np.float32,
            np.float64,
            np.int32,
            np.int64,
        ]:
            raise ValueError(
                "Expected each value in the embedding to be a int or float, got an embedding with "
                f"{embedding.dtype} - {embedding}"
            )
    return embeddings


class EmbeddingFunction(Protocol):
    """
    A protocol for embedding functions. To implement a new embedding function,
    you need to implement the following methods at minimum:
    - __call__
    - name
    - build_from_config
    - get_config
    """

    @abstractmethod
    def __call__(self, input: Documents) -> Embeddings:
        ...

    def __init_subclass__(cls) -> None:
        super().__init_subclass__()
        call = getattr(cls, "__call__")

        def __call__(self: EmbeddingFunction, input: Documents) -> Embeddings:
            result = call(self, input)
            assert result is not None
            return validate_embeddings(normalize_embeddings(result))

        setattr(cls, "__call__", __call__)

    def embed_query(self, input: Documents) -> Embeddings:
        """Embeddings for query input; defaults to ``__call__``."""
        return self.__call__(input)

    @staticmethod
    def name() -> str:
        ...

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "EmbeddingFunction":
        ...

    def get_config(self) -> Dict[str, Any]:
        ...

    def default_space(self) -> DistanceFunction:
        return DistanceFunction.L2

    def supported_spaces(self) -> List[DistanceFunction]:
        return [DistanceFunction.COSINE, DistanceFunction.L2, DistanceFunction.IP]

    def to_spec(self) -> EmbeddingFunctionSpec:
        """Descriptor that lets another client rebuild this function."""
        return EmbeddingFunctionSpec.known(self.name(), self.get_config())


class DefaultEmbeddingFunction(EmbeddingFunction):
    """Default embedding function that delegates to ONNXMiniLM_L6_V2."""

    def __init__(self) -> None:
        self._model: Optional[EmbeddingFunction] = None

    def __call__(self, input: Documents) -> Embeddings:
        if self._model is None:
            # Deferred so onnxruntime is only needed when texts are embedded
            from chromaconfig.utils.embedding_functions.onnx_mini_lm_l6_v2 import (
                ONNXMiniLM_L6_V2,
            )

            self._model = ONNXMiniLM_L6_V2()
        return self._model(input)

    @staticmethod
    def name() -> str:
        return "default"

    @staticmethod
    def build_from_config(config: Dict[str, Any]) -> "DefaultEmbeddingFunction":
        return DefaultEmbeddingFunction()

    def get_config(self) -> Dict[str, Any]:
        return {}
