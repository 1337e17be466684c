from abc import abstractmethod
from typing import Dict, Optional, Type
from overrides import overrides, EnforceOverrides


class ChromaError(Exception, EnforceOverrides):
    trace_id: Optional[str] = None

    def code(self) -> int:
        """Return an appropriate HTTP response code for this error"""
        return 400  # Bad Request

    def message(self) -> str:
        return ", ".join(str(arg) for arg in self.args)

    @classmethod
    @abstractmethod
    def name(cls) -> str:
        """Return the error name"""
        pass


class InvalidArgumentError(ChromaError):
    @overrides
    def code(self) -> int:
        return 400

    @classmethod
    @overrides
    def name(cls) -> str:
        return "InvalidArgument"


class DeserializationError(ChromaError):
    """Raised when a server payload cannot be decoded.

    ``field_path`` is the dotted location of the offending value, e.g.
    ``hnsw:M`` or ``schema.keys['#embedding'].float_list``. The lower-level
    failure, when there is one, is chained as ``__cause__``.
    """

    def __init__(self, message: str, field_path: Optional[str] = None):
        super().__init__(message)
        self.field_path = field_path

    @overrides
    def code(self) -> int:
        return 500

    @overrides
    def message(self) -> str:
        if self.field_path is None:
            return str(self.args[0])
        return f"{self.args[0]} (at {self.field_path})"

    @classmethod
    @overrides
    def name(cls) -> str:
        return "DeserializationError"


class EmbeddingFunctionResolutionError(ChromaError):
    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider

    @classmethod
    @overrides
    def name(cls) -> str:
        return "EmbeddingFunctionResolutionError"


class NotFoundError(ChromaError):
    @overrides
    def code(self) -> int:
        return 404

    @classmethod
    @overrides
    def name(cls) -> str:
        return "NotFoundError"


class InternalError(ChromaError):
    @overrides
    def code(self) -> int:
        return 500

    @classmethod
    @overrides
    def name(cls) -> str:
        return "InternalError"


error_types: Dict[str, Type[ChromaError]] = {
    "InvalidArgument": InvalidArgumentError,
    "InvalidArgumentError": InvalidArgumentError,
    "DeserializationError": DeserializationError,
    "EmbeddingFunctionResolutionError": EmbeddingFunctionResolutionError,
    "NotFoundError": NotFoundError,
    "InternalError": InternalError,
    # Catch-all for any other errors
    "ChromaError": ChromaError,
}
