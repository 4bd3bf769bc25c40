"""Unit tests for database builder models."""

import pytest
from pydantic import ValidationError

from contactdb.services.builder.models import (
    ALL_CITIES,
    ALL_STATES,
    ContactDatabase,
    CreateDatabaseParams,
    DatabaseStatus,
    FreeTextLocation,
    IssuedQuery,
    QuerySource,
    SimpleLocation,
    StructuredLocation,
    parse_location,
)


@pytest.mark.unit
class TestParseLocation:
    def test_empty_is_simple(self):
        assert isinstance(parse_location(None), SimpleLocation)
        assert isinstance(parse_location(""), SimpleLocation)
        assert isinstance(parse_location({}), SimpleLocation)

    def test_structured_dict(self):
        loc = parse_location({"country": "US", "state": "TX", "city": "Austin"})
        assert isinstance(loc, StructuredLocation)
        assert loc.city == "Austin"
        assert loc.cities == []

    def test_null_lists_become_empty(self):
        loc = parse_location({"country": "US", "cities": None, "states": None})
        assert loc.cities == []
        assert loc.states == []

    def test_json_string(self):
        loc = parse_location('{"country": "US", "state": "all_states", "states": ["CA"]}')
        assert isinstance(loc, StructuredLocation)
        assert loc.states == ["CA"]

    def test_newline_text_is_free_text(self):
        loc = parse_location("Austin, TX\n\n  Dallas, TX  \n")
        assert isinstance(loc, FreeTextLocation)
        assert loc.locations == ["Austin, TX", "Dallas, TX"]

    def test_list_is_free_text(self):
        loc = parse_location(["Austin", " ", "Dallas"])
        assert loc.locations == ["Austin", "Dallas"]

    def test_dict_with_free_text_query_type(self):
        loc = parse_location({"locations": ["Austin"]}, "free_text")
        assert isinstance(loc, FreeTextLocation)

    def test_tagged_dict_roundtrips(self):
        original = StructuredLocation(country="US", cities=["Austin"])
        loc = parse_location(original.model_dump())
        assert loc == original

    def test_descriptor_passes_through(self):
        loc = FreeTextLocation(locations=["Austin"])
        assert parse_location(loc) is loc

    def test_unsupported_type_raises(self):
        with pytest.raises(ValueError):
            parse_location(42)


@pytest.mark.unit
class TestStructuredLocation:
    def test_sentinels_are_not_concrete(self):
        loc = StructuredLocation(country="US", state=ALL_STATES, city=ALL_CITIES)
        assert loc.concrete_city is None
        assert loc.concrete_state is None

    def test_concrete_values(self):
        loc = StructuredLocation(country="US", state="TX", city="Austin")
        assert loc.concrete_city == "Austin"
        assert loc.concrete_state == "TX"


@pytest.mark.unit
class TestContactDatabase:
    def _db(self, **kwargs):
        defaults = dict(id="db1", user_id="u1", name="Test", search_query="dentists", target=50)
        defaults.update(kwargs)
        return ContactDatabase(**defaults)

    def test_defaults(self):
        db = self._db()
        assert db.status == DatabaseStatus.PENDING
        assert isinstance(db.location, SimpleLocation)
        assert db.merged_query_index == -1
        assert db.statistics.unique_contacts == 0

    def test_unsubmitted_query(self):
        queries = [
            IssuedQuery(query="dentists", source=QuerySource.BASE),
            IssuedQuery(query="dentists businesses", source=QuerySource.VARIATION),
        ]
        assert self._db(queries=queries, current_query_index=0).has_unsubmitted_query
        assert not self._db(queries=queries, current_query_index=1).has_unsubmitted_query

    def test_current_page_merged(self):
        assert not self._db(current_query_index=2, merged_query_index=1).current_page_merged
        assert self._db(current_query_index=2, merged_query_index=2).current_page_merged

    def test_query_strings(self):
        db = self._db(queries=[IssuedQuery(query="dentists", source=QuerySource.BASE)])
        assert db.query_strings == ["dentists"]

    def test_location_from_tagged_dict(self):
        db = self._db(location={"kind": "free_text", "locations": ["Austin"]})
        assert isinstance(db.location, FreeTextLocation)

    def test_terminal_statuses(self):
        assert DatabaseStatus.COMPLETED.is_terminal
        assert DatabaseStatus.FAILED.is_terminal
        assert not DatabaseStatus.PROCESSING.is_terminal


@pytest.mark.unit
class TestCreateDatabaseParams:
    def test_defaults(self):
        p = CreateDatabaseParams(name="Test", search_query="dentists")
        assert p.credits == 50
        assert p.target is None

    def test_rejects_non_positive_credits(self):
        with pytest.raises(ValidationError):
            CreateDatabaseParams(name="Test", search_query="dentists", credits=0)

    def test_rejects_empty_term(self):
        with pytest.raises(ValidationError):
            CreateDatabaseParams(name="Test", search_query="")

    def test_rejects_blank_term(self):
        with pytest.raises(ValidationError):
            CreateDatabaseParams(name="Test", search_query="   ")

    def test_strips_term(self):
        p = CreateDatabaseParams(name=" Test ", search_query="  dentists ")
        assert p.search_query == "dentists"
        assert p.name == "Test"
