import httpx
import pytest

from chromaconfig.api import raise_chroma_error
from chromaconfig.errors import (
    ChromaError,
    DeserializationError,
    InvalidArgumentError,
    NotFoundError,
)

REQUEST = httpx.Request("PUT", "http://localhost:8000/api/v2/collections/c")


def response(status: int, **kwargs: object) -> httpx.Response:
    return httpx.Response(status, request=REQUEST, **kwargs)  # type: ignore[arg-type]


def test_ok_response_does_not_raise() -> None:
    raise_chroma_error(response(200, json={}))


@pytest.mark.parametrize(
    "error, expected",
    [
        ("NotFoundError", NotFoundError),
        ("InvalidArgument", InvalidArgumentError),
        ("InvalidArgumentError", InvalidArgumentError),
        ("DeserializationError", DeserializationError),
        ("ChromaError", ChromaError),
    ],
)
def test_known_errors_are_mapped(error: str, expected: type) -> None:
    with pytest.raises(expected) as e:
        raise_chroma_error(response(400, json={"error": error, "message": "bad hnsw:M"}))
    assert e.value.message() == "bad hnsw:M"


def test_unknown_error_body_falls_back_to_text() -> None:
    with pytest.raises(Exception, match="upstream exploded") as e:
        raise_chroma_error(response(502, text="upstream exploded"))
    assert not isinstance(e.value, ChromaError)


def test_error_codes() -> None:
    assert NotFoundError("x").code() == 404
    assert InvalidArgumentError("x").code() == 400
    error = DeserializationError("must be > 0", field_path="hnsw:M")
    assert error.code() == 500
    assert error.message() == "must be > 0 (at hnsw:M)"
    assert str(error) == "must be > 0"
