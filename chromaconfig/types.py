import json
from typing import Any, Callable, Dict, Optional, Tuple
from uuid import UUID

from overrides import override
from pydantic import BaseModel
from typing_extensions import Self

from chromaconfig.api.collection_configuration import (
    CollectionConfiguration,
    collection_configuration_to_json,
    load_collection_configuration_from_json,
    load_schema_from_json,
    schema_to_json,
)
from chromaconfig.api.types import EmbeddingFunctionSpec, Schema
from chromaconfig.errors import DeserializationError
from chromaconfig.serde import (
    BaseModelJSONSerializable,
    child_path,
    optional_map,
    require_int,
    require_map,
    require_string,
)

CONFIGURATION_JSON_KEY = "configuration_json"
SCHEMA_JSON_KEY = "schema"


class Collection(
    BaseModel,
    BaseModelJSONSerializable["Collection"],
):
    """A model of a collection as the server describes it.

    The configuration and schema are kept in their wire form and decoded on
    access, the same way they are sent back on update.
    """

    id: UUID
    name: str
    configuration_json: Optional[Dict[str, Any]] = None
    serialized_schema: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    dimension: Optional[int] = None
    tenant: str
    database: str

    def __init__(
        self,
        id: UUID,
        name: str,
        tenant: str,
        database: str,
        configuration: Optional[CollectionConfiguration] = None,
        schema: Optional[Schema] = None,
        metadata: Optional[Dict[str, Any]] = None,
        dimension: Optional[int] = None,
    ):
        super().__init__(
            id=id,
            name=name,
            configuration_json=collection_configuration_to_json(configuration),
            serialized_schema=schema_to_json(schema) if schema is not None else None,
            metadata=metadata,
            dimension=dimension,
            tenant=tenant,
            database=database,
        )

    def get_configuration(self) -> Optional[CollectionConfiguration]:
        """Returns the configuration of the collection"""
        return load_collection_configuration_from_json(self.configuration_json)

    def set_configuration(self, configuration: Optional[CollectionConfiguration]) -> None:
        """Sets the configuration of the collection"""
        self.configuration_json = collection_configuration_to_json(configuration)

    def get_schema(self) -> Optional[Schema]:
        """Returns the collection level schema, if the server sent one"""
        if not self.serialized_schema:
            return None
        return load_schema_from_json(self.serialized_schema)

    @override
    def to_json(self) -> Dict[str, Any]:
        json_map: Dict[str, Any] = {
            "id": str(self.id),
            "name": self.name,
            "tenant": self.tenant,
            "database": self.database,
        }
        if self.metadata is not None:
            json_map["metadata"] = self.metadata
        if self.dimension is not None:
            json_map["dimension"] = self.dimension
        if self.configuration_json is not None:
            json_map[CONFIGURATION_JSON_KEY] = self.configuration_json
        if self.serialized_schema is not None:
            json_map[SCHEMA_JSON_KEY] = self.serialized_schema
        return json_map

    @override
    def to_json_str(self) -> str:
        return json.dumps(self.to_json())

    @classmethod
    @override
    def from_json(cls, json_map: Dict[str, Any]) -> Self:
        """Deserializes a Collection object from JSON.

        The configuration and schema are decoded eagerly so that a malformed
        payload fails here rather than on first use.
        """
        data = require_map(json_map, "collection")
        try:
            configuration = load_collection_configuration_from_json(
                data.get(CONFIGURATION_JSON_KEY)
            )
        except DeserializationError as e:
            raise DeserializationError(
                e.args[0],
                field_path=child_path(CONFIGURATION_JSON_KEY, e.field_path)
                if e.field_path
                else CONFIGURATION_JSON_KEY,
            ) from e

        raw_schema = data.get(SCHEMA_JSON_KEY)
        schema = (
            load_schema_from_json(raw_schema, SCHEMA_JSON_KEY) if raw_schema else None
        )

        try:
            collection_id = UUID(require_string(data.get("id"), "id"))
        except ValueError as e:
            raise DeserializationError(f"id is not a valid UUID: {e}", field_path="id") from e

        return cls(
            id=collection_id,
            name=require_string(data.get("name"), "name"),
            tenant=require_string(data.get("tenant"), "tenant"),
            database=require_string(data.get("database"), "database"),
            configuration=configuration,
            schema=schema,
            metadata=optional_map(data.get("metadata"), "metadata"),
            dimension=(
                require_int(data["dimension"], "dimension")
                if data.get("dimension") is not None
                else None
            ),
        )


def _from_collection_schema(collection: Collection) -> Optional[EmbeddingFunctionSpec]:
    schema = collection.get_schema()
    return schema.default_embedding_function_spec() if schema is not None else None


def _from_configuration(collection: Collection) -> Optional[EmbeddingFunctionSpec]:
    configuration = collection.get_configuration()
    return configuration.embedding_function if configuration is not None else None


def _from_configuration_schema(
    collection: Collection,
) -> Optional[EmbeddingFunctionSpec]:
    configuration = collection.get_configuration()
    if configuration is None or configuration.schema is None:
        return None
    return configuration.schema.default_embedding_function_spec()


# Highest precedence first
EMBEDDING_FUNCTION_SPEC_LOOKUPS: Tuple[
    Callable[[Collection], Optional[EmbeddingFunctionSpec]], ...
] = (
    _from_collection_schema,
    _from_configuration,
    _from_configuration_schema,
)


def effective_embedding_function_spec(
    collection: Collection,
) -> Optional[EmbeddingFunctionSpec]:
    """The embedding function descriptor a text query against ``collection`` uses.

    The collection's own schema wins over the configuration's descriptor,
    which wins over the schema nested in the configuration. Later locations
    are not read once an earlier one yields a descriptor.
    """
    for lookup in EMBEDDING_FUNCTION_SPEC_LOOKUPS:
        spec = lookup(collection)
        if spec is not None:
            return spec
    return None
