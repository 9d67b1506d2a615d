from pathlib import Path

import pytest

from openapi_adapter.openapi import OpenAPILoader, dereference

FIXTURES = Path(__file__).parent / "fixtures"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def petstore_path() -> Path:
    return FIXTURES / "petstore.yaml"


@pytest.fixture
def raw_petstore(petstore_path):
    return OpenAPILoader().load_file(petstore_path)


@pytest.fixture
def petstore(raw_petstore):
    return dereference(raw_petstore)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
