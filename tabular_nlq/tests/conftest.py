from __future__ import annotations

import pytest

from tabular_nlq.config import LLMConfig, Settings
from tabular_nlq.database import StorageHandle
from tabular_nlq.models.schema import Schema
from tabular_nlq.services.llm_client import LLMResponse

HOTEL_SCHEMA = {
    "title": "Hotel",
    "description": "Hotels listed on a booking site",
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Hotel name", "examples": ["Grand Plaza"]},
        "city": {"type": "string", "description": "City the hotel is in", "examples": ["Paris"]},
        "rating": {"type": "number", "description": "Guest rating out of 5", "examples": [4.5]},
        "price": {"type": "integer", "description": "Nightly price in EUR", "examples": [150]},
        "is_active": {"type": "boolean", "description": "Listed for booking", "examples": [True]},
        "has_pool": {"type": "boolean", "description": "Has a swimming pool", "examples": [False]},
    },
    "required": ["name", "city"],
}

HOTELS = [
    {"name": "Grand Plaza", "city": "Paris", "rating": 4.5, "price": 300, "is_active": True, "has_pool": True},
    {"name": "Sea View", "city": "Nice", "rating": 4.0, "price": 150, "is_active": True, "has_pool": False},
    {"name": "City Inn", "city": "Paris", "rating": 3.5, "price": 100, "is_active": False, "has_pool": False},
    {"name": "Alpine Lodge", "city": "Geneva", "rating": 5.0, "price": 250, "is_active": True, "has_pool": True},
    {"name": "Harbor House", "city": "Nice", "rating": 4.0, "price": 200, "is_active": True, "has_pool": False},
]


@pytest.fixture
def settings() -> Settings:
    return Settings(llm=LLMConfig(api_key="test-key"))


@pytest.fixture
def hotel_schema() -> Schema:
    return Schema.from_dict(HOTEL_SCHEMA)


@pytest.fixture
def storage(tmp_path, settings):
    handle = StorageHandle.open(f"sqlite:///{tmp_path / 'hotels.db'}", settings)
    yield handle
    handle.close()


@pytest.fixture
def hotels(storage, hotel_schema) -> StorageHandle:
    storage.create_table_from_schema(hotel_schema, "hotels")
    storage.insert_records(HOTELS, "hotels")
    return storage


class DummyGenerator:
    """Returns canned completions and records every prompt it receives."""

    def __init__(self, *responses: str, error: Exception | None = None):
        self.responses = list(responses)
        self.error = error
        self.prompts: list[str] = []
        self.calls: list[dict] = []

    def generate(self, prompt, *, model=None, temperature=None, max_tokens=None):
        self.prompts.append(prompt)
        self.calls.append({"model": model, "temperature": temperature, "max_tokens": max_tokens})
        if self.error is not None:
            raise self.error
        return LLMResponse(content=self.responses.pop(0), model=model or "dummy")


@pytest.fixture
def generator_factory():
    return DummyGenerator


@pytest.fixture
def hotel_records():
    return [dict(record) for record in HOTELS]


@pytest.fixture
def hotel_schema_dict():
    return HOTEL_SCHEMA
