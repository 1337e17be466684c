import os
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID, uuid4

import hypothesis
import pytest

from chromaconfig.api import ServerAPI
from chromaconfig.config import DEFAULT_DATABASE, DEFAULT_TENANT, Settings
from chromaconfig.errors import InternalError
from chromaconfig.types import Collection as CollectionModel

VALID_PRESETS = ["fast", "normal", "slow"]
CURRENT_PRESET = os.getenv("PROPERTY_TESTING_PRESET", "fast")

if CURRENT_PRESET not in VALID_PRESETS:
    raise ValueError(
        f"Invalid property testing preset: {CURRENT_PRESET}. Must be one of {VALID_PRESETS}."
    )

hypothesis.settings.register_profile(
    "base",
    deadline=None,
    suppress_health_check=[
        hypothesis.HealthCheck.data_too_large,
        hypothesis.HealthCheck.function_scoped_fixture,
    ],
)

hypothesis.settings.register_profile(
    "fast", hypothesis.settings.get_profile("base"), max_examples=50
)
# Hypothesis's default max_examples is 100
hypothesis.settings.register_profile(
    "normal", hypothesis.settings.get_profile("base"), max_examples=100
)
hypothesis.settings.register_profile(
    "slow", hypothesis.settings.get_profile("base"), max_examples=500
)

hypothesis.settings.load_profile(CURRENT_PRESET)


class RecordingServerAPI(ServerAPI):
    """Records every _modify call instead of talking to a server."""

    def __init__(self, error: Optional[Exception] = None) -> None:
        self.modify_calls: List[Dict[str, Any]] = []
        self._error = error

    def _modify(
        self,
        id: UUID,
        new_name: Optional[str] = None,
        new_metadata: Optional[Dict[str, Any]] = None,
        new_configuration: Optional[Dict[str, Any]] = None,
        tenant: str = DEFAULT_TENANT,
        database: str = DEFAULT_DATABASE,
    ) -> None:
        self.modify_calls.append(
            {
                "id": id,
                "new_name": new_name,
                "new_metadata": new_metadata,
                "new_configuration": new_configuration,
                "tenant": tenant,
                "database": database,
            }
        )
        if self._error is not None:
            raise self._error


@pytest.fixture
def server_api() -> RecordingServerAPI:
    return RecordingServerAPI()


@pytest.fixture
def failing_server_api() -> RecordingServerAPI:
    return RecordingServerAPI(error=InternalError("modify failed"))


CollectionModelFactory = Callable[..., CollectionModel]


@pytest.fixture
def collection_model_factory() -> CollectionModelFactory:
    def make_collection_model(
        configuration_json: Optional[Dict[str, Any]] = None,
        schema_json: Optional[Dict[str, Any]] = None,
        name: str = "test_collection",
    ) -> CollectionModel:
        json_map: Dict[str, Any] = {
            "id": str(uuid4()),
            "name": name,
            "tenant": DEFAULT_TENANT,
            "database": DEFAULT_DATABASE,
        }
        if configuration_json is not None:
            json_map["configuration_json"] = configuration_json
        if schema_json is not None:
            json_map["schema"] = schema_json
        return CollectionModel.from_json(json_map)

    return make_collection_model


Getenv = Callable[[str], Optional[str]]


@pytest.fixture
def getenv_factory() -> Callable[[Dict[str, str]], Getenv]:
    """Builds getenv stand-ins backed by a plain dict instead of os.environ."""

    def make_getenv(env: Dict[str, str]) -> Getenv:
        return lambda name: env.get(name)

    return make_getenv


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)  # type: ignore[call-arg]
