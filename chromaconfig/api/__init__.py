import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional
from uuid import UUID

import httpx

from chromaconfig import errors
from chromaconfig.config import DEFAULT_DATABASE, DEFAULT_TENANT


class ServerAPI(ABC):
    """The transport a live collection talks to.

    Implementations send requests to a server and raise ``ChromaError``
    subclasses for error responses (see ``raise_chroma_error``).
    """

    @abstractmethod
    def _modify(
        self,
        id: UUID,
        new_name: Optional[str] = None,
        new_metadata: Optional[Dict[str, Any]] = None,
        new_configuration: Optional[Dict[str, Any]] = None,
        tenant: str = DEFAULT_TENANT,
        database: str = DEFAULT_DATABASE,
    ) -> None:
        """[Internal] Modify a collection by UUID.

        Args:
            id: The internal UUID of the collection to modify.
            new_name: The new name of the collection. If None, the existing name will remain.
            new_metadata: The new metadata to associate with the collection.
            new_configuration: The update-shape configuration map, e.g.
                ``{"hnsw": {"ef_search": 200}}``.
        """
        pass


def raise_chroma_error(resp: httpx.Response) -> None:
    """Raises an error if the response is not ok, using a ChromaError if possible."""
    try:
        resp.raise_for_status()
        return
    except httpx.HTTPStatusError:
        pass

    chroma_error = None
    try:
        body = json.loads(resp.text)
        if "error" in body:
            if body["error"] in errors.error_types:
                chroma_error = errors.error_types[body["error"]](body["message"])
    except (ValueError, TypeError, KeyError):
        pass

    if chroma_error:
        raise chroma_error

    try:
        resp.raise_for_status()
    except httpx.HTTPStatusError:
        raise (Exception(resp.text))
