import json
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Mapping, Optional, Union, cast

from pydantic import BaseModel, ValidationInfo, field_validator
from typing_extensions import Final

from chromaconfig.api.types import (
    HNSW_CONSTRAINTS,
    SPANN_CONSTRAINTS,
    DistanceFunction,
    EmbeddingFunctionSpec,
    HnswIndexConfig,
    IndexParams,
    Schema,
    SpannIndexConfig,
    SpannQuantization,
    check_field,
    ensure_single_index_group,
)
from chromaconfig.errors import DeserializationError, InvalidArgumentError
from chromaconfig.serde import loads_object, require_map, require_number, require_string

logger = logging.getLogger(__name__)

SPACE_KEY: Final[str] = "hnsw:space"
EMBEDDING_FUNCTION_KEY: Final[str] = "embedding_function"
SCHEMA_KEY: Final[str] = "schema"
SPANN_KEY_PREFIX: Final[str] = "spann:"

# HnswIndexConfig field -> flat create-time key
HNSW_CREATE_KEYS: Final[Dict[str, str]] = {
    "ef_construction": "hnsw:construction_ef",
    "max_neighbors": "hnsw:M",
    "ef_search": "hnsw:search_ef",
    "num_threads": "hnsw:num_threads",
    "batch_size": "hnsw:batch_size",
    "sync_threshold": "hnsw:sync_threshold",
    "resize_factor": "hnsw:resize_factor",
}
_HNSW_FIELDS_BY_KEY: Final[Dict[str, str]] = {v: k for k, v in HNSW_CREATE_KEYS.items()}

SPANN_CREATE_KEYS: Final[Dict[str, str]] = {
    name: f"{SPANN_KEY_PREFIX}{name}" for name in SpannIndexConfig.model_fields
}
_SPANN_FIELDS_BY_KEY: Final[Dict[str, str]] = {v: k for k, v in SPANN_CREATE_KEYS.items()}

MIXED_INDEX_GROUPS_MESSAGE: Final[
    str
] = "CollectionConfiguration cannot mix HNSW and SPANN fields"
INDEX_SWITCH_MESSAGE: Final[
    str
] = "cannot switch collection index parameters between HNSW and SPANN"


def _index_is_empty(index: BaseModel) -> bool:
    return len(index.model_dump(exclude_none=True)) == 0


@dataclass(frozen=True)
class CollectionConfiguration:
    """Create-time configuration of a collection.

    ``index`` holds either the HNSW or the SPANN parameter group, never
    both. Fields left unset are omitted from the wire form rather than
    filled with server defaults.
    """

    space: Optional[DistanceFunction] = None
    index: IndexParams = None
    embedding_function: Optional[EmbeddingFunctionSpec] = None
    schema: Optional[Schema] = None

    def __post_init__(self) -> None:
        if self.space is not None:
            object.__setattr__(self, "space", DistanceFunction.from_value(self.space))
        if self.index is not None:
            if not isinstance(self.index, (HnswIndexConfig, SpannIndexConfig)):
                raise TypeError(
                    "index must be HnswIndexConfig, SpannIndexConfig or None, "
                    f"got {type(self.index).__name__}"
                )
            # A group with no parameters has no wire representation
            if _index_is_empty(self.index):
                object.__setattr__(self, "index", None)
        if self.embedding_function is not None and not isinstance(
            self.embedding_function, EmbeddingFunctionSpec
        ):
            raise TypeError("embedding_function must be an EmbeddingFunctionSpec")
        if self.schema is not None and not isinstance(self.schema, Schema):
            raise TypeError("schema must be a Schema")

    @staticmethod
    def builder() -> "CollectionConfigurationBuilder":
        return CollectionConfigurationBuilder()

    @property
    def hnsw(self) -> Optional[HnswIndexConfig]:
        return self.index if isinstance(self.index, HnswIndexConfig) else None

    @property
    def spann(self) -> Optional[SpannIndexConfig]:
        return self.index if isinstance(self.index, SpannIndexConfig) else None

    def to_json(self) -> Dict[str, Any]:
        return collection_configuration_to_json(self) or {}

    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    @classmethod
    def from_json(cls, json_map: Dict[str, Any]) -> "CollectionConfiguration":
        return load_collection_configuration_from_json(json_map) or cls()


class CollectionConfigurationBuilder:
    """Single-use builder for CollectionConfiguration.

    Each setter validates its argument immediately. Mixing HNSW and SPANN
    setters is reported by build().
    """

    def __init__(self) -> None:
        self._space: Optional[DistanceFunction] = None
        self._embedding_function: Optional[EmbeddingFunctionSpec] = None
        self._schema: Optional[Schema] = None
        self._hnsw: Dict[str, Any] = {}
        self._spann: Dict[str, Any] = {}
        self._hnsw_touched = False
        self._spann_touched = False

    def _set_hnsw(self, field: str, value: Any) -> "CollectionConfigurationBuilder":
        self._hnsw_touched = True
        self._hnsw[field] = check_field(
            HNSW_CONSTRAINTS, field, value, HNSW_CREATE_KEYS[field]
        )
        return self

    def _set_spann(self, field: str, value: Any) -> "CollectionConfigurationBuilder":
        self._spann_touched = True
        if field == "quantize":
            self._spann[field] = SpannQuantization.from_value(value)
        else:
            self._spann[field] = check_field(
                SPANN_CONSTRAINTS, field, value, SPANN_CREATE_KEYS[field]
            )
        return self

    def space(self, space: Union[DistanceFunction, str]) -> "CollectionConfigurationBuilder":
        self._space = DistanceFunction.from_value(space)
        return self

    def embedding_function(
        self, spec: Optional[EmbeddingFunctionSpec]
    ) -> "CollectionConfigurationBuilder":
        self._embedding_function = spec
        return self

    def schema(self, schema: Optional[Schema]) -> "CollectionConfigurationBuilder":
        self._schema = schema
        return self

    def hnsw(self, config: HnswIndexConfig) -> "CollectionConfigurationBuilder":
        self._hnsw_touched = True
        self._hnsw.update(config.model_dump(exclude_none=True))
        return self

    def spann(self, config: SpannIndexConfig) -> "CollectionConfigurationBuilder":
        self._spann_touched = True
        self._spann.update(config.model_dump(exclude_none=True))
        return self

    def hnsw_construction_ef(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("ef_construction", value)

    def hnsw_m(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("max_neighbors", value)

    def hnsw_search_ef(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("ef_search", value)

    def hnsw_num_threads(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("num_threads", value)

    def hnsw_batch_size(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("batch_size", value)

    def hnsw_sync_threshold(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("sync_threshold", value)

    def hnsw_resize_factor(self, value: float) -> "CollectionConfigurationBuilder":
        return self._set_hnsw("resize_factor", value)

    def spann_search_nprobe(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("search_nprobe", value)

    def spann_ef_search(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("ef_search", value)

    def spann_merge_threshold(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("merge_threshold", value)

    def spann_split_threshold(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("split_threshold", value)

    def spann_write_nprobe(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("write_nprobe", value)

    def spann_ef_construction(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("ef_construction", value)

    def spann_max_neighbors(self, value: int) -> "CollectionConfigurationBuilder":
        return self._set_spann("max_neighbors", value)

    def spann_reassign_neighbor_count(
        self, value: int
    ) -> "CollectionConfigurationBuilder":
        return self._set_spann("reassign_neighbor_count", value)

    def spann_quantize(
        self, value: Union[SpannQuantization, str]
    ) -> "CollectionConfigurationBuilder":
        return self._set_spann("quantize", value)

    def build(self) -> CollectionConfiguration:
        ensure_single_index_group(
            self._hnsw_touched, self._spann_touched, MIXED_INDEX_GROUPS_MESSAGE
        )
        index: IndexParams = None
        if self._hnsw:
            index = HnswIndexConfig(**self._hnsw)
        elif self._spann:
            index = SpannIndexConfig(**self._spann)
        return CollectionConfiguration(
            space=self._space,
            index=index,
            embedding_function=self._embedding_function,
            schema=self._schema,
        )


class UpdateHnswConfiguration(BaseModel):
    """HNSW parameters that may change after a collection is created."""

    model_config = {"extra": "forbid", "frozen": True}

    ef_search: Optional[int] = None
    num_threads: Optional[int] = None
    batch_size: Optional[int] = None
    sync_threshold: Optional[int] = None
    resize_factor: Optional[float] = None

    @field_validator("*", mode="before")
    @classmethod
    def validate_ranges(cls, v: Any, info: ValidationInfo) -> Any:
        return check_field(HNSW_CONSTRAINTS, info.field_name, v)


class UpdateSpannConfiguration(BaseModel):
    """SPANN parameters that may change after a collection is created."""

    model_config = {"extra": "forbid", "frozen": True}

    search_nprobe: Optional[int] = None
    ef_search: Optional[int] = None

    @field_validator("*", mode="before")
    @classmethod
    def validate_ranges(cls, v: Any, info: ValidationInfo) -> Any:
        return check_field(SPANN_CONSTRAINTS, info.field_name, v)


UpdateIndexParams = Union[UpdateHnswConfiguration, UpdateSpannConfiguration]


@dataclass(frozen=True)
class UpdateCollectionConfiguration:
    """A one-shot change to an existing collection's index parameters.

    Only the fields that were set are sent; it carries exactly one group.
    """

    index: UpdateIndexParams

    def __post_init__(self) -> None:
        if not isinstance(self.index, (UpdateHnswConfiguration, UpdateSpannConfiguration)):
            raise TypeError(
                "index must be UpdateHnswConfiguration or UpdateSpannConfiguration"
            )
        if _index_is_empty(self.index):
            raise ValueError(
                "configuration must specify at least one parameter to modify (hnsw or spann)"
            )

    @staticmethod
    def builder() -> "UpdateCollectionConfigurationBuilder":
        return UpdateCollectionConfigurationBuilder()

    @property
    def hnsw(self) -> Optional[UpdateHnswConfiguration]:
        return self.index if isinstance(self.index, UpdateHnswConfiguration) else None

    @property
    def spann(self) -> Optional[UpdateSpannConfiguration]:
        return self.index if isinstance(self.index, UpdateSpannConfiguration) else None

    def to_json(self) -> Dict[str, Any]:
        return cast(Dict[str, Any], update_collection_configuration_to_json(self))


def _require_value(value: Any, name: str) -> None:
    if value is None:
        raise TypeError(f"{name} must not be None")


class UpdateCollectionConfigurationBuilder:
    def __init__(self) -> None:
        self._hnsw: Dict[str, Any] = {}
        self._spann: Dict[str, Any] = {}

    def _set_hnsw(self, field: str, value: Any) -> "UpdateCollectionConfigurationBuilder":
        _require_value(value, f"hnsw.{field}")
        self._hnsw[field] = check_field(HNSW_CONSTRAINTS, field, value, f"hnsw.{field}")
        return self

    def _set_spann(self, field: str, value: Any) -> "UpdateCollectionConfigurationBuilder":
        _require_value(value, f"spann.{field}")
        self._spann[field] = check_field(
            SPANN_CONSTRAINTS, field, value, f"spann.{field}"
        )
        return self

    def hnsw_search_ef(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_hnsw("ef_search", value)

    def hnsw_num_threads(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_hnsw("num_threads", value)

    def hnsw_batch_size(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_hnsw("batch_size", value)

    def hnsw_sync_threshold(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_hnsw("sync_threshold", value)

    def hnsw_resize_factor(self, value: float) -> "UpdateCollectionConfigurationBuilder":
        return self._set_hnsw("resize_factor", value)

    def spann_search_nprobe(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_spann("search_nprobe", value)

    def spann_ef_search(self, value: int) -> "UpdateCollectionConfigurationBuilder":
        return self._set_spann("ef_search", value)

    def build(self) -> UpdateCollectionConfiguration:
        if not self._hnsw and not self._spann:
            raise ValueError(
                "configuration must specify at least one parameter to modify (hnsw or spann)"
            )
        ensure_single_index_group(
            bool(self._hnsw),
            bool(self._spann),
            "cannot update both hnsw and spann configuration in the same request",
        )
        if self._hnsw:
            return UpdateCollectionConfiguration(index=UpdateHnswConfiguration(**self._hnsw))
        return UpdateCollectionConfiguration(index=UpdateSpannConfiguration(**self._spann))


# Wire mapping


def collection_configuration_to_json(
    config: Optional[CollectionConfiguration],
) -> Optional[Dict[str, Any]]:
    """Flatten a configuration into the create-time wire map.

    Returns None when nothing is set, so callers can omit the field.
    """
    if config is None:
        return None

    json_map: Dict[str, Any] = {}
    if config.space is not None:
        json_map[SPACE_KEY] = config.space.value
    if config.hnsw is not None:
        for field, value in config.hnsw.model_dump(exclude_none=True).items():
            json_map[HNSW_CREATE_KEYS[field]] = value
    elif config.spann is not None:
        for field, value in config.spann.model_dump(
            mode="json", exclude_none=True
        ).items():
            json_map[SPANN_CREATE_KEYS[field]] = value
    if config.embedding_function is not None:
        json_map[EMBEDDING_FUNCTION_KEY] = config.embedding_function.to_json()
    if config.schema is not None:
        json_map[SCHEMA_KEY] = schema_to_json(config.schema)

    return json_map or None


def collection_configuration_to_json_str(config: CollectionConfiguration) -> str:
    return json.dumps(collection_configuration_to_json(config))


def load_collection_configuration_from_json(
    config_json_map: Optional[Mapping[str, Any]],
) -> Optional[CollectionConfiguration]:
    """Decode the create-time wire map a server returns for a collection.

    Unrecognized keys are skipped. Every recognized key is validated
    exactly as the matching builder setter would validate it.
    """
    if config_json_map is None or len(config_json_map) == 0:
        return None

    data = require_map(config_json_map, "configuration")
    builder = CollectionConfiguration.builder()

    for key, value in data.items():
        if value is None:
            continue

        if key == SPACE_KEY:
            space = require_string(value, key)
            try:
                builder.space(space)
            except ValueError as e:
                raise DeserializationError(
                    f"unsupported {key} value: {space!r}", field_path=key
                ) from e

        elif key in _HNSW_FIELDS_BY_KEY:
            number = require_number(value, key)
            try:
                builder._set_hnsw(_HNSW_FIELDS_BY_KEY[key], number)
            except ValueError as e:
                raise DeserializationError(str(e), field_path=key) from e

        elif key in _SPANN_FIELDS_BY_KEY:
            field = _SPANN_FIELDS_BY_KEY[key]
            if field == "quantize":
                quantize = require_string(value, key)
                try:
                    builder.spann_quantize(quantize)
                except ValueError as e:
                    raise DeserializationError(
                        f"unsupported {key} value: {quantize!r}", field_path=key
                    ) from e
            else:
                number = require_number(value, key)
                try:
                    builder._set_spann(field, number)
                except ValueError as e:
                    raise DeserializationError(str(e), field_path=key) from e

        elif key == EMBEDDING_FUNCTION_KEY:
            builder.embedding_function(
                EmbeddingFunctionSpec.from_json(value, EMBEDDING_FUNCTION_KEY)
            )

        elif key == SCHEMA_KEY:
            builder.schema(load_schema_from_json(value))

        else:
            logger.debug("Skipping unrecognized collection configuration key %s", key)

    try:
        return builder.build()
    except ValueError as e:
        raise DeserializationError(
            f"invalid collection configuration: {e}", field_path="configuration"
        ) from e


def load_collection_configuration_from_json_str(
    config_json_str: str,
) -> Optional[CollectionConfiguration]:
    return load_collection_configuration_from_json(
        loads_object(config_json_str, "configuration")
    )


def update_collection_configuration_to_json(
    config: Optional[UpdateCollectionConfiguration],
) -> Optional[Dict[str, Any]]:
    """Convert an UpdateCollectionConfiguration to the nested update wire map"""
    if config is None:
        return None
    group = "hnsw" if config.hnsw is not None else "spann"
    return {group: config.index.model_dump(exclude_none=True)}


def update_collection_configuration_to_json_str(
    config: UpdateCollectionConfiguration,
) -> str:
    return json.dumps(update_collection_configuration_to_json(config))


def schema_to_json(schema: Schema) -> Dict[str, Any]:
    return schema.serialize_to_json()


def load_schema_from_json(json_map: Any, path: str = SCHEMA_KEY) -> Schema:
    return Schema.deserialize_from_json(json_map, path)


# Applying updates to a persisted configuration


def validate_update_against_existing(
    existing_config: Optional[CollectionConfiguration],
    update_config: UpdateCollectionConfiguration,
) -> None:
    """Reject an update whose index group differs from the persisted one.

    Must run before the update is sent; the server would otherwise receive
    parameters for an index family the collection does not use.
    """
    if existing_config is None or existing_config.index is None:
        return
    if existing_config.hnsw is not None and update_config.spann is not None:
        raise InvalidArgumentError(INDEX_SWITCH_MESSAGE)
    if existing_config.spann is not None and update_config.hnsw is not None:
        raise InvalidArgumentError(INDEX_SWITCH_MESSAGE)


def overwrite_hnsw_configuration(
    existing_hnsw_config: Optional[HnswIndexConfig],
    update_hnsw_config: UpdateHnswConfiguration,
) -> HnswIndexConfig:
    """Overwrite a HnswIndexConfig with the fields set in an update"""
    result = (
        existing_hnsw_config.model_dump(exclude_none=True)
        if existing_hnsw_config is not None
        else {}
    )
    result.update(update_hnsw_config.model_dump(exclude_none=True))
    return HnswIndexConfig(**result)


def overwrite_spann_configuration(
    existing_spann_config: Optional[SpannIndexConfig],
    update_spann_config: UpdateSpannConfiguration,
) -> SpannIndexConfig:
    """Overwrite a SpannIndexConfig with the fields set in an update"""
    result = (
        existing_spann_config.model_dump(exclude_none=True)
        if existing_spann_config is not None
        else {}
    )
    result.update(update_spann_config.model_dump(exclude_none=True))
    return SpannIndexConfig(**result)


def overwrite_collection_configuration(
    existing_config: Optional[CollectionConfiguration],
    update_config: UpdateCollectionConfiguration,
) -> CollectionConfiguration:
    """Overwrite a CollectionConfiguration with a new configuration"""
    validate_update_against_existing(existing_config, update_config)
    base = existing_config if existing_config is not None else CollectionConfiguration()

    index: IndexParams
    if update_config.hnsw is not None:
        index = overwrite_hnsw_configuration(base.hnsw, update_config.hnsw)
    else:
        index = overwrite_spann_configuration(
            base.spann, cast(UpdateSpannConfiguration, update_config.spann)
        )
    return replace(base, index=index)
