import logging
from typing import TYPE_CHECKING, Any, Dict, Optional
from uuid import UUID

from chromaconfig.api.collection_configuration import (
    CollectionConfiguration,
    UpdateCollectionConfiguration,
    overwrite_collection_configuration,
    update_collection_configuration_to_json,
    validate_update_against_existing,
)
from chromaconfig.api.types import (
    Documents,
    EmbeddingFunction,
    EmbeddingFunctionSpec,
    Embeddings,
    Schema,
)
from chromaconfig.errors import InvalidArgumentError
from chromaconfig.types import Collection as CollectionModel
from chromaconfig.types import effective_embedding_function_spec
from chromaconfig.utils.embedding_functions.resolver import EmbeddingFunctionResolver

if TYPE_CHECKING:
    from chromaconfig.api import ServerAPI

logger = logging.getLogger(__name__)


class Collection:
    """A collection bound to the client that fetched it.

    Reads go to the wrapped model. Configuration changes are validated
    locally, sent through the client, and merged into the model once the
    client call returns.
    """

    _model: CollectionModel
    _client: "ServerAPI"
    _embedding_function: Optional[EmbeddingFunction]

    def __init__(
        self,
        client: "ServerAPI",
        model: CollectionModel,
        embedding_function: Optional[EmbeddingFunction] = None,
        resolver: Optional[EmbeddingFunctionResolver] = None,
    ):
        self._client = client
        self._model = model
        self._embedding_function = embedding_function
        self._resolver = resolver
        self._resolved_embedding_function: Optional[EmbeddingFunction] = None

    # Expose the model properties as read-only properties on the Collection class

    @property
    def id(self) -> UUID:
        return self._model.id

    @property
    def name(self) -> str:
        return self._model.name

    @property
    def configuration(self) -> Optional[CollectionConfiguration]:
        return self._model.get_configuration()

    @property
    def configuration_json(self) -> Optional[Dict[str, Any]]:
        return self._model.configuration_json

    @property
    def schema(self) -> Optional[Schema]:
        return self._model.get_schema()

    @property
    def metadata(self) -> Optional[Dict[str, Any]]:
        return self._model.metadata

    @property
    def tenant(self) -> str:
        return self._model.tenant

    @property
    def database(self) -> str:
        return self._model.database

    def __repr__(self) -> str:
        return f"Collection(name={self.name})"

    def embedding_function_spec(self) -> Optional[EmbeddingFunctionSpec]:
        return effective_embedding_function_spec(self._model)

    def get_embedding_function(self) -> Optional[EmbeddingFunction]:
        """The function used to embed query texts.

        An explicitly supplied function wins; otherwise the collection's
        descriptor is resolved once and cached.
        """
        if self._embedding_function is not None:
            return self._embedding_function
        if self._resolved_embedding_function is None:
            if self._resolver is None:
                self._resolver = EmbeddingFunctionResolver()
            self._resolved_embedding_function = self._resolver.resolve(
                self.embedding_function_spec()
            )
        return self._resolved_embedding_function

    def _embed(self, input: Documents, is_query: bool = False) -> Embeddings:
        embedding_function = self.get_embedding_function()
        if embedding_function is None:
            raise InvalidArgumentError(
                f"Collection {self.name} has no embedding function to embed texts with. "
                "Pass query_embeddings directly instead of query texts, "
                "or create the collection with an embedding function."
            )
        if is_query:
            return embedding_function.embed_query(input)
        return embedding_function(input)

    def embed_query_texts(self, query_texts: Documents) -> Embeddings:
        return self._embed(query_texts, is_query=True)

    def modify(
        self,
        name: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        configuration: Optional[UpdateCollectionConfiguration] = None,
    ) -> None:
        """Modify the collection name, metadata or index parameters

        Args:
            name: The updated name for the collection. Optional.
            metadata: The updated metadata for the collection. Optional.
            configuration: Index parameters to change. Must target the index
                family the collection already uses. Optional.

        Raises:
            InvalidArgumentError: If ``configuration`` switches between HNSW
                and SPANN. Nothing is sent in that case.
        """
        if configuration is not None:
            validate_update_against_existing(self.configuration, configuration)

        self._client._modify(
            id=self.id,
            new_name=name,
            new_metadata=metadata,
            new_configuration=update_collection_configuration_to_json(configuration),
            tenant=self.tenant,
            database=self.database,
        )

        self._update_model_after_modify_success(name, metadata, configuration)

    def modify_configuration(self, configuration: UpdateCollectionConfiguration) -> None:
        self.modify(configuration=configuration)

    def _update_model_after_modify_success(
        self,
        name: Optional[str],
        metadata: Optional[Dict[str, Any]],
        configuration: Optional[UpdateCollectionConfiguration],
    ) -> None:
        if name:
            self._model.name = name
        if metadata:
            self._model.metadata = metadata
        if configuration:
            self._model.set_configuration(
                overwrite_collection_configuration(self.configuration, configuration)
            )
            logger.debug("Merged configuration update into collection %s", self.id)
