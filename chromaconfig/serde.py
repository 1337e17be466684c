import json
import math
from abc import abstractmethod
from typing import Any, Dict, Generic, Mapping, Optional, TypeVar, Union, cast

from chromaconfig.errors import DeserializationError

T = TypeVar("T")

Number = Union[int, float]


class BaseModelJSONSerializable(Generic[T]):
    """A mixin for BaseModels that allows a class to be serialized to JSON"""

    def to_json_str(self) -> str:
        """Serializes the object to JSON"""
        return self.model_dump_json()

    def to_json(self) -> Dict[str, Any]:
        """Serializes the object to a JSON compatible dictionary"""
        return cast(Dict[str, Any], json.loads(self.model_dump_json()))

    @abstractmethod
    def model_dump_json(self) -> str:
        """Abstract method that should be implemented to dump the model to JSON"""
        pass

    @classmethod
    def from_json(cls, json_map: Dict[str, Any]) -> T:
        """Deserializes the object from JSON"""
        return cast(T, cls(**json_map))


def child_path(parent: Optional[str], key: str) -> str:
    """Join a dotted field path, e.g. ``schema.defaults`` + ``bool``."""
    if not parent:
        return key
    return f"{parent}.{key}"


def key_path(parent: str, key: str) -> str:
    """Path segment for a user supplied key, e.g. ``schema.keys['#embedding']``."""
    return f"{parent}['{key}']"


def require_map(value: Any, path: str) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        raise DeserializationError(f"{path} must be an object", field_path=path)
    for key in value.keys():
        if not isinstance(key, str):
            raise DeserializationError(
                f"{path} contains non-string key {key!r}", field_path=path
            )
    return dict(value)


def optional_map(value: Any, path: str) -> Optional[Dict[str, Any]]:
    if value is None:
        return None
    return require_map(value, path)


def require_string(value: Any, path: str) -> str:
    if not isinstance(value, str):
        raise DeserializationError(f"{path} must be a string", field_path=path)
    return value


def require_bool(value: Any, path: str) -> bool:
    if not isinstance(value, bool):
        raise DeserializationError(f"{path} must be boolean", field_path=path)
    return value


def require_number(value: Any, path: str) -> Number:
    # bool is an int subclass but never a valid JSON number here
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DeserializationError(f"{path} must be numeric", field_path=path)
    return value


def require_int(value: Any, path: str) -> int:
    number = require_number(value, path)
    if isinstance(number, float):
        if not math.isfinite(number) or not number.is_integer():
            raise DeserializationError(
                f"{path} must be an integer, got {number}", field_path=path
            )
        return int(number)
    return number


def loads_object(json_str: str, path: str) -> Dict[str, Any]:
    try:
        decoded = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise DeserializationError(f"{path} is not valid JSON: {e}", field_path=path) from e
    return require_map(decoded, path)
