from chromaconfig.config import DEFAULT_DATABASE, DEFAULT_TENANT, Settings
from chromaconfig.api import ServerAPI
from chromaconfig.api.models.Collection import Collection
from chromaconfig.api.collection_configuration import (
    CollectionConfiguration,
    UpdateCollectionConfiguration,
    UpdateHnswConfiguration,
    UpdateSpannConfiguration,
    collection_configuration_to_json,
    load_collection_configuration_from_json,
    update_collection_configuration_to_json,
    validate_update_against_existing,
    overwrite_collection_configuration,
)
from chromaconfig.api.types import (
    Cmek,
    CmekProvider,
    DistanceFunction,
    Documents,
    EmbeddingFunction,
    EmbeddingFunctionSpec,
    Embeddings,
    HnswIndexConfig,
    Include,
    Schema,
    Space,
    SpannIndexConfig,
    SpannQuantization,
    VectorIndexConfig,
)
from chromaconfig.errors import (
    ChromaError,
    DeserializationError,
    EmbeddingFunctionResolutionError,
    InvalidArgumentError,
)
from chromaconfig.utils.embedding_functions.resolver import (
    EmbeddingFunctionResolver,
    resolve_embedding_function,
)

__all__ = [
    "Collection",
    "CollectionConfiguration",
    "UpdateCollectionConfiguration",
    "UpdateHnswConfiguration",
    "UpdateSpannConfiguration",
    "collection_configuration_to_json",
    "load_collection_configuration_from_json",
    "update_collection_configuration_to_json",
    "validate_update_against_existing",
    "overwrite_collection_configuration",
    "Cmek",
    "CmekProvider",
    "DistanceFunction",
    "Documents",
    "EmbeddingFunction",
    "EmbeddingFunctionSpec",
    "Embeddings",
    "HnswIndexConfig",
    "Include",
    "Schema",
    "Space",
    "SpannIndexConfig",
    "SpannQuantization",
    "VectorIndexConfig",
    "ChromaError",
    "DeserializationError",
    "EmbeddingFunctionResolutionError",
    "InvalidArgumentError",
    "EmbeddingFunctionResolver",
    "resolve_embedding_function",
    "ServerAPI",
    "Settings",
    "DEFAULT_TENANT",
    "DEFAULT_DATABASE",
]

__version__ = "0.1.0"
