import locale
import warnings

import pytest

from chromaconfig.api.types import (
    REDACTED,
    Cmek,
    CmekProvider,
    DistanceFunction,
    EmbeddingFunctionSpec,
    Include,
    Space,
    SpannQuantization,
    normalize_include,
)
from chromaconfig.errors import DeserializationError

GCP_RESOURCE = "projects/p/locations/us/keyRings/ring/cryptoKeys/key"


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("cosine", DistanceFunction.COSINE),
        ("COSINE", DistanceFunction.COSINE),
        ("  L2 ", DistanceFunction.L2),
        ("Ip", DistanceFunction.IP),
        (DistanceFunction.IP, DistanceFunction.IP),
    ],
)
def test_distance_function_parsing(raw: object, expected: DistanceFunction) -> None:
    assert DistanceFunction.from_value(raw) is expected


def test_space_is_distance_function() -> None:
    assert Space is DistanceFunction


def test_distance_function_parsing_ignores_locale() -> None:
    # The Turkish dotted/dotless i breaks naive upper/lower casing
    previous = locale.setlocale(locale.LC_CTYPE)
    try:
        try:
            locale.setlocale(locale.LC_CTYPE, "tr_TR.UTF-8")
        except locale.Error:
            pytest.skip("tr_TR.UTF-8 locale not available")
        assert DistanceFunction.from_value("IP") is DistanceFunction.IP
        assert Include.from_value("URIS") is Include.URIS
    finally:
        locale.setlocale(locale.LC_CTYPE, previous)


@pytest.mark.parametrize("raw", ["euclidean", "", None, 3])
def test_distance_function_rejects_unknown_values(raw: object) -> None:
    with pytest.raises(ValueError):
        DistanceFunction.from_value(raw)


def test_include_parsing_and_normalization() -> None:
    assert Include.from_value("Documents") is Include.DOCUMENTS
    assert normalize_include(["metadatas", Include.DOCUMENTS, "METADATAS"]) == [
        Include.METADATAS,
        Include.DOCUMENTS,
    ]
    with pytest.raises(ValueError, match="Expected include to be a list"):
        normalize_include("documents")  # type: ignore[arg-type]
    with pytest.raises(ValueError, match="unsupported include value"):
        normalize_include(["data"])


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("none", SpannQuantization.NONE),
        ("NONE", SpannQuantization.NONE),
        (
            "four_bit_rabit_q_with_u_search",
            SpannQuantization.FOUR_BIT_RABIT_Q_WITH_U_SEARCH,
        ),
        (
            "FOUR_BIT_RABBIT_Q_WITH_U_SEARCH",
            SpannQuantization.FOUR_BIT_RABIT_Q_WITH_U_SEARCH,
        ),
    ],
)
def test_spann_quantization_parsing(raw: str, expected: SpannQuantization) -> None:
    assert SpannQuantization.from_value(raw) is expected


def test_spann_quantization_rejects_unknown() -> None:
    with pytest.raises(ValueError, match="unsupported SPANN quantize value"):
        SpannQuantization.from_value("eight_bit")


def test_cmek_gcp() -> None:
    cmek = Cmek.gcp(f"  {GCP_RESOURCE}  ")
    assert cmek.provider is CmekProvider.GCP
    assert cmek.resource == GCP_RESOURCE
    assert cmek.validate_pattern()
    assert cmek.to_dict() == {"gcp": GCP_RESOURCE}
    assert Cmek.from_dict({"gcp": GCP_RESOURCE}) == cmek


@pytest.mark.parametrize(
    "resource",
    [
        "",
        "   ",
        "projects/p/locations/us/keyRings/ring",
        "projects/p/locations/us/keyRings/ring/cryptoKeys/key/extra",
        "keys/p/locations/us/keyRings/ring/cryptoKeys/key",
    ],
)
def test_cmek_rejects_malformed_resources(resource: str) -> None:
    with pytest.raises(ValueError):
        Cmek.gcp(resource)


def test_cmek_from_dict_errors() -> None:
    with pytest.raises(ValueError, match="supported provider"):
        Cmek.from_dict({"aws": "arn:aws:kms:key"})
    with pytest.raises(ValueError, match="gcp must be a string"):
        Cmek.from_dict({"gcp": 5})


def test_embedding_function_spec_redacts_secrets() -> None:
    spec = EmbeddingFunctionSpec.known(
        "openai",
        {"api_key": "secret-value", "apiKey": "other-secret", "model_name": "m"},
    )
    for rendered in (repr(spec), str(spec), f"{spec}"):
        assert "secret-value" not in rendered
        assert "other-secret" not in rendered
        assert REDACTED in rendered
        assert "'model_name': 'm'" in rendered
    # The real value is still available to the resolver
    assert spec.config_dict()["api_key"] == "secret-value"


def test_embedding_function_spec_is_immutable() -> None:
    config = {"model_name": "m"}
    spec = EmbeddingFunctionSpec.known("openai", config)
    config["model_name"] = "changed"
    assert spec.config_dict() == {"model_name": "m"}
    assert spec.config is not None
    with pytest.raises(TypeError):
        spec.config["model_name"] = "changed"  # type: ignore[index]
    copy = spec.config_dict()
    copy["model_name"] = "changed"
    assert spec.config_dict() == {"model_name": "m"}


def test_embedding_function_spec_type_tag() -> None:
    assert EmbeddingFunctionSpec(name="openai").is_known_type()
    assert EmbeddingFunctionSpec(name="openai", type="KNOWN").is_known_type()
    assert not EmbeddingFunctionSpec(name="mine", type="custom").is_known_type()


def test_embedding_function_spec_empty_config_is_absent() -> None:
    assert EmbeddingFunctionSpec.known("openai", {}) == EmbeddingFunctionSpec.known(
        "openai"
    )
    assert EmbeddingFunctionSpec.known("openai", {}).config is None
    assert hash(EmbeddingFunctionSpec.known("openai", {"a": 1})) == hash(
        EmbeddingFunctionSpec.known("openai", {"a": 1})
    )


@pytest.mark.parametrize("name", ["", "   ", None, 3])
def test_embedding_function_spec_requires_name(name: object) -> None:
    with pytest.raises(ValueError, match="name must be a non-blank string"):
        EmbeddingFunctionSpec(name=name)  # type: ignore[arg-type]


def test_embedding_function_spec_json() -> None:
    spec = EmbeddingFunctionSpec.known("cohere", {"model_name": "embed-v3"})
    assert spec.to_json() == {
        "type": "known",
        "name": "cohere",
        "config": {"model_name": "embed-v3"},
    }
    assert EmbeddingFunctionSpec.from_json(spec.to_json()) == spec


def test_embedding_function_spec_from_json_errors() -> None:
    with pytest.raises(DeserializationError) as e:
        EmbeddingFunctionSpec.from_json({"type": "known"})
    assert e.value.field_path == "embedding_function.name"

    with pytest.raises(DeserializationError) as e:
        EmbeddingFunctionSpec.from_json({"name": "openai", "config": [1]})
    assert e.value.field_path == "embedding_function.config"

    with pytest.raises(DeserializationError, match="must be an object"):
        EmbeddingFunctionSpec.from_json("openai")


def test_legacy_descriptor_decodes_to_absent_with_warning() -> None:
    with pytest.warns(DeprecationWarning):
        assert EmbeddingFunctionSpec.from_json({"type": "legacy"}) is None


def test_unknown_descriptor_leniency_only_applies_inside_schemas() -> None:
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        assert (
            EmbeddingFunctionSpec.from_json(
                {"type": "unknown"},
                "schema.keys['#embedding'].float_list.vector_index.config.embedding_function",
            )
            is None
        )
    with pytest.raises(DeserializationError):
        EmbeddingFunctionSpec.from_json({"type": "unknown"})
