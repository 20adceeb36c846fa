"""Integration tests for querying through the memory connector."""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import re
from typing import Any, Iterator

import pytest

from core.config import MemstoreConfig
from core.errors import MemstoreGeoError, MemstoreQueryError
from core.model_registry import ModelRegistry
from core.types import ModelDefinition
from store.memory_connector import MemoryConnector

_USER = ModelDefinition(
    name="User",
    properties={
        "seq": "number",
        "name": "string",
        "email": "string",
        "role": "string",
        "birthday": "date",
        "vip": "boolean",
        "order": "number",
        "tag": "string",
        "address": "object",
        "friends": "array",
        "children": "array",
    },
)

_BEATLES: list[dict[str, Any]] = [
    {
        "seq": 0,
        "name": "John Lennon",
        "email": "john@b3atl3s.co.uk",
        "role": "lead",
        "birthday": datetime(1980, 12, 8),
        "vip": True,
        "tag": "[singer]",
        "address": {
            "street": "123 A St",
            "city": "San Jose",
            "state": "CA",
            "zipCode": "95131",
            "tags": [{"tag": "business"}, {"tag": "rent"}],
        },
        "friends": [
            {"name": "Paul McCartney"},
            {"name": "George Harrison"},
            {"name": "Ringo Starr"},
        ],
        "children": ["Sean", "Julian"],
    },
    {
        "seq": 1,
        "name": "Paul McCartney",
        "email": "paul@b3atl3s.co.uk",
        "role": "lead",
        "birthday": datetime(1942, 6, 18),
        "order": 1,
        "vip": True,
        "address": {
            "street": "456 B St",
            "city": "San Mateo",
            "state": "CA",
            "zipCode": "94065",
        },
        "friends": [
            {"name": "John Lennon"},
            {"name": "George Harrison"},
            {"name": "Ringo Starr"},
        ],
        "children": ["Stella", "Mary", "Heather", "Beatrice", "James"],
    },
    {"seq": 2, "name": "George Harrison", "order": 5, "vip": False, "children": ["Dhani"]},
    {"seq": 3, "name": "Ringo Starr", "order": 6, "vip": False},
    {"seq": 4, "name": "Pete Best", "order": 4, "children": []},
    {"seq": 5, "name": "Stuart Sutcliffe", "order": 3, "vip": True},
]


def _seeded_connector(neq_incomparable_matches: bool = True) -> MemoryConnector:
    config = replace(
        MemstoreConfig.from_env(),
        store_file=None,
        neq_incomparable_matches=neq_incomparable_matches,
    )
    connector = MemoryConnector(config, registry=ModelRegistry([_USER]))
    for beatle in _BEATLES:
        connector.create("User", beatle)
    return connector


@pytest.fixture
def connector() -> Iterator[MemoryConnector]:
    seeded = _seeded_connector()
    yield seeded
    seeded.close()


def _seqs(documents: list[dict[str, Any]]) -> list[int]:
    return [document["seq"] for document in documents]


def test_seeded_users_get_sequential_ids(connector: MemoryConnector) -> None:
    """Auto-assigned ids should follow insertion order."""
    users = connector.all("User")

    assert [user["id"] for user in users] == [1, 2, 3, 4, 5, 6]
    assert _seqs(users) == [0, 1, 2, 3, 4, 5]


@pytest.mark.parametrize(
    ("condition", "expected_count"),
    [
        ({"like": "%St%"}, 2),
        ({"like": "M%XY"}, 0),
        ({"nlike": "%St%"}, 4),
        ({"ilike": "%st%"}, 3),
    ],
)
def test_like_family_counts(
    connector: MemoryConnector, condition: dict[str, str], expected_count: int
) -> None:
    """LIKE operators should apply SQL wildcard semantics to names."""
    users = connector.all("User", {"where": {"name": condition}})

    assert len(users) == expected_count


@pytest.mark.parametrize(
    ("where", "expected_seqs"),
    [
        ({"seq": {"inq": [0, 1, 5]}}, [0, 1, 5]),
        ({"seq": {"nin": [2, 3]}}, [0, 1, 4, 5]),
        ({"seq": {"neq": 4}}, [0, 1, 2, 3, 5]),
        ({"order": {"between": [3, 5]}}, [2, 4, 5]),
        ({"or": [{"seq": 0}, {"name": "Ringo Starr"}]}, [0, 3]),
    ],
)
def test_operator_queries(
    connector: MemoryConnector, where: dict[str, Any], expected_seqs: list[int]
) -> None:
    """Comparison and logical operators should select the expected users."""
    users = connector.all("User", {"where": where})

    assert _seqs(users) == expected_seqs


def test_array_field_queries(connector: MemoryConnector) -> None:
    """Array fields should match when any element matches."""
    by_regexp = connector.all("User", {"where": {"children": {"regexp": re.compile("an")}}})
    by_value = connector.all("User", {"where": {"children": "Dhani"}})

    assert [user["name"] for user in by_regexp] == ["John Lennon", "George Harrison"]
    assert [user["name"] for user in by_value] == ["George Harrison"]


def test_neq_on_array_field_includes_missing_values(connector: MemoryConnector) -> None:
    """Compatibility mode should count users without children as different."""
    users = connector.all("User", {"where": {"children": {"neq": "Dhani"}}})

    assert _seqs(users) == [0, 1, 3, 4, 5]


def test_neq_strict_mode_excludes_missing_values() -> None:
    """Strict mode should leave out users with no children field."""
    strict_connector = _seeded_connector(neq_incomparable_matches=False)

    users = strict_connector.all("User", {"where": {"children": {"neq": "Dhani"}}})

    assert _seqs(users) == [0, 1, 4]
    strict_connector.close()


@pytest.mark.parametrize(
    ("where", "expected_names"),
    [
        ({"address.city": "San Jose"}, ["John Lennon"]),
        ({"address.tags.tag": "rent"}, ["John Lennon"]),
        ({"friends.name": "Ringo Starr"}, ["John Lennon", "Paul McCartney"]),
    ],
)
def test_nested_field_queries(
    connector: MemoryConnector, where: dict[str, Any], expected_names: list[str]
) -> None:
    """Dotted keys should reach nested objects and embedded lists."""
    users = connector.all("User", {"where": where})

    assert [user["name"] for user in users] == expected_names


def test_birthday_range_query(connector: MemoryConnector) -> None:
    """Date ranges should work as one condition and as an and-list."""
    combined = connector.all(
        "User",
        {"where": {"birthday": {"gte": datetime(1940, 1, 1), "lte": datetime(1990, 1, 1)}}},
    )
    split = connector.all(
        "User",
        {
            "where": {
                "and": [
                    {"birthday": {"gte": datetime(1940, 1, 1)}},
                    {"birthday": {"lte": datetime(1990, 1, 1)}},
                ]
            }
        },
    )

    assert _seqs(combined) == [0, 1]
    assert _seqs(split) == [0, 1]


def test_count_with_date_string(connector: MemoryConnector) -> None:
    """Counts should compare stored dates against ISO strings."""
    count = connector.count("User", {"birthday": {"lt": "1990-01-01T00:00:00.000Z"}})

    assert count == 2


@pytest.mark.parametrize("order", ["vip ASC, seq DESC", ["vip ASC", "order DESC"]])
def test_multi_key_ordering(connector: MemoryConnector, order: object) -> None:
    """Ties on vip should be broken by the second key, missing values last."""
    users = connector.all("User", {"order": order})

    assert _seqs(users) == [3, 2, 5, 1, 0, 4]


@pytest.mark.parametrize("order", ["order ASC", "order DESC"])
def test_missing_order_sorts_last(connector: MemoryConnector, order: str) -> None:
    """Users without an order value should come last in both directions."""
    users = connector.all("User", {"order": order})

    assert users[-1]["name"] == "John Lennon"


def test_invalid_order_direction_raises(connector: MemoryConnector) -> None:
    """Unknown sort directions should fail the query."""
    with pytest.raises(MemstoreQueryError):
        connector.all("User", {"order": "seq ABC"})


def test_projection_keeps_id(connector: MemoryConnector) -> None:
    """Field selection should always keep the id."""
    users = connector.all("User", {"fields": ["name"], "limit": 1})

    assert users == [{"name": "John Lennon", "id": 1}]


@pytest.mark.parametrize("skip_key", ["skip", "offset"])
def test_pagination(connector: MemoryConnector, skip_key: str) -> None:
    """Skip or offset should apply before limit."""
    users = connector.all("User", {skip_key: 2, "limit": 2})

    assert _seqs(users) == [2, 3]


def test_near_query_returns_places_within_range() -> None:
    """Places within 10 km of the origin should come back nearest first."""
    config = replace(MemstoreConfig.from_env(), store_file=None)
    place = ModelDefinition(name="Place", properties={"name": "string", "location": "geopoint"})
    geo_connector = MemoryConnector(config, registry=ModelRegistry([place]))
    for name, location in [
        ("P5", [42.3601, -71.0589]),
        ("P3", {"lat": 40.7306, "lng": -73.9352}),
        ("P1", "40.7128,-74.0060"),
        ("P4", [40.8448, -73.8648]),
        ("P2", [40.7580, -73.9855]),
    ]:
        geo_connector.create("Place", {"name": name, "location": location})

    places = geo_connector.all(
        "Place",
        {
            "where": {
                "location": {
                    "near": [40.7128, -74.0060],
                    "maxDistance": 10000,
                    "unit": "meters",
                }
            }
        },
    )

    assert [place_doc["name"] for place_doc in places] == ["P1", "P2", "P3"]
    geo_connector.close()


def test_multiple_near_clauses_raise(connector: MemoryConnector) -> None:
    """Only one near-clause may appear in a query."""
    where = {
        "or": [
            {"home": {"near": [40.7, -74.0]}},
            {"office": {"near": [42.3, -71.0]}},
        ]
    }

    with pytest.raises(MemstoreGeoError):
        connector.all("User", {"where": where})


def test_include_requires_resolver(connector: MemoryConnector) -> None:
    """Include filters should fail without a configured resolver."""
    with pytest.raises(MemstoreQueryError, match="include"):
        connector.all("User", {"include": "friends"})


def test_include_is_handed_to_resolver() -> None:
    """The resolver should receive the page and the include spec."""
    calls: list[tuple[str, int, Any, dict[str, Any]]] = []

    def _resolver(model_name, documents, include, options):
        calls.append((model_name, len(documents), include, dict(options)))
        return [{**document, "resolved": True} for document in documents]

    config = replace(MemstoreConfig.from_env(), store_file=None)
    include_connector = MemoryConnector(
        config, registry=ModelRegistry([_USER]), include_resolver=_resolver
    )
    include_connector.create("User", {"name": "Yoko Ono"})

    users = include_connector.all("User", {"include": "friends"}, {"transaction": None})

    assert calls == [("User", 1, "friends", {"transaction": None})]
    assert users[0]["resolved"] is True
    include_connector.close()
