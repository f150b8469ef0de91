"""
geoapi.lookup_index — Read-only lookup index over a loaded Dataset.

Answers the three query shapes of the API:
    list_countries()          → all countries
    list_states(country_id)   → states owned by one country
    list_cities(state_id)     → cities owned by one state

Design contract:
    - Built once from a Dataset; never mutated afterwards. Safe for any
      number of concurrent readers without locking.
    - Results are tuples of Place projections ({id, name} only), in
      source order. Child collections never leak through.
    - "No such id" and "id exists but owns nothing" are the same
      NotFound outcome. Callers cannot tell them apart.
    - An index built from a failed load is permanently unavailable:
      list_countries() raises DatasetUnavailable, while list_states()
      and list_cities() raise NotFound because nothing ever matches.
    - Duplicate ids: the first record in source order wins.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from types import MappingProxyType

from pydantic import BaseModel, ConfigDict

from geoapi.dataset import City, Country, Dataset, State


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DatasetUnavailable(Exception):
    """The dataset never loaded; the country list cannot be served."""


class NotFound(LookupError):
    """No record with the requested id, or the record has no children."""

    def __init__(self, entity: str, identifier: int | None) -> None:
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier!r} not found or empty")


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------


class Place(BaseModel):
    """``{id, name}`` projection of a country, state, or city."""

    model_config = ConfigDict(frozen=True)

    id: int | None
    name: str | None


def _project(records: Iterable[Country | State | City]) -> tuple[Place, ...]:
    return tuple(Place(id=r.id, name=r.name) for r in records)


def _is_key(value: object) -> bool:
    # bool is an int subclass; JSON true must never match id 1
    return isinstance(value, int) and not isinstance(value, bool)


# ---------------------------------------------------------------------------
# Id parsing
# ---------------------------------------------------------------------------


def parse_id(raw: str) -> int | None:
    """Parse a path segment as a base-10 integer, lenient about trailing junk.

    Leading whitespace is skipped, one optional sign is accepted, then the
    longest run of ASCII digits is taken. Returns None when no digit
    follows, or when the run is too long to convert; None matches no
    record.

        parse_id("42")    → 42
        parse_id(" 7")    → 7
        parse_id("12abc") → 12
        parse_id("-1")    → -1
        parse_id("abc")   → None
    """
    s = raw.lstrip()
    sign = 1
    if s[:1] in ("+", "-"):
        if s[0] == "-":
            sign = -1
        s = s[1:]
    end = 0
    while end < len(s) and s[end] in "0123456789":
        end += 1
    if end == 0:
        return None
    digits = s[:end].lstrip("0") or "0"
    try:
        return sign * int(digits)
    except ValueError:
        # Past the int/str conversion limit. The JSON decoder has the same
        # limit, so no loaded record can carry such an id.
        return None


# ---------------------------------------------------------------------------
# LookupIndex
# ---------------------------------------------------------------------------


class LookupIndex:
    """Immutable index answering the three lookup operations.

    Usage::

        index = LookupIndex.build(load_dataset(path))
        index.list_countries()
        index.list_states(1)
        index.list_cities(101)
    """

    __slots__ = ("_available", "_countries", "_states_by_country", "_cities_by_state", "_counts")

    def __init__(
        self,
        countries: tuple[Place, ...] | None,
        states_by_country: Mapping[int, tuple[Place, ...]],
        cities_by_state: Mapping[int, tuple[Place, ...]],
        counts: Mapping[str, int],
    ) -> None:
        self._available = countries is not None
        self._countries = countries or ()
        self._states_by_country = MappingProxyType(dict(states_by_country))
        self._cities_by_state = MappingProxyType(dict(cities_by_state))
        self._counts = MappingProxyType(dict(counts))

    @classmethod
    def build(cls, dataset: Dataset) -> LookupIndex:
        """Precompute every answer from the tree in one pass."""
        states_by_country: dict[int, tuple[Place, ...]] = {}
        cities_by_state: dict[int, tuple[Place, ...]] = {}

        for country in dataset.countries:
            if _is_key(country.id) and country.id not in states_by_country:
                states_by_country[country.id] = _project(country.states)
            for state in country.states:
                if _is_key(state.id) and state.id not in cities_by_state:
                    cities_by_state[state.id] = _project(state.cities)

        counts = {
            "countries": len(dataset.countries),
            "states": dataset.state_count,
            "cities": dataset.city_count,
        }
        return cls(_project(dataset.countries), states_by_country, cities_by_state, counts)

    @classmethod
    def unavailable(cls) -> LookupIndex:
        """Index for a process whose dataset failed to load."""
        return cls(None, {}, {}, {"countries": 0, "states": 0, "cities": 0})

    @property
    def available(self) -> bool:
        return self._available

    def stats(self) -> dict[str, int]:
        """Record counts, all zero when unavailable."""
        return dict(self._counts)

    def list_countries(self) -> tuple[Place, ...]:
        """All countries in source order. Empty dataset → ()."""
        if not self._available:
            raise DatasetUnavailable("dataset not loaded")
        return self._countries

    def list_states(self, country_id: int | None) -> tuple[Place, ...]:
        """States of one country, in source order.

        Raises:
            NotFound: unknown country id, or the country owns no states.
        """
        states = self._states_by_country.get(country_id) if _is_key(country_id) else None
        if not states:
            raise NotFound("country", country_id)
        return states

    def list_cities(self, state_id: int | None) -> tuple[Place, ...]:
        """Cities of one state, searched across every country.

        Raises:
            NotFound: unknown state id, or the state owns no cities.
        """
        cities = self._cities_by_state.get(state_id) if _is_key(state_id) else None
        if not cities:
            raise NotFound("state", state_id)
        return cities
