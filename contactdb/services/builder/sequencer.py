"""Query sequencing for database builds.

A build starts with one query and keeps asking the sequencer for the next
one until its target is reached or the sequencer runs dry. Narrow queries
come first (one city, one state) and broad ones last (country, generic term
variations), since every query costs provider credits.

Priority order, first branch yielding a query not yet issued wins:

1. next city from the ``cities`` list
2. state-level query when ``city`` is "all cities"
3. next state from the ``states`` list, else the country-level query, when
   ``state`` is "all states"
4. the exact state query
5. the country query
6. next unused free-text location
7. term variations ("dentists companies, TX, US")
8. the bare term
"""

from typing import Optional, Sequence

from loguru import logger

from contactdb.services.builder.models import (
    ALL_CITIES,
    ALL_STATES,
    FreeTextLocation,
    IssuedQuery,
    LocationDescriptor,
    NextQuery,
    QuerySource,
    SimpleLocation,
    StructuredLocation,
)

TERM_VARIATIONS = (
    "businesses",
    "companies",
    "establishments",
    "locations",
    "providers",
)


def build_query(*parts: Optional[str]) -> str:
    """Join the non-empty parts of a query with commas."""
    return ", ".join(p.strip() for p in parts if p and p.strip())


def initial_query(term: str, location: Optional[LocationDescriptor]) -> NextQuery:
    """The first query of a new build."""
    location = location or SimpleLocation()

    if isinstance(location, StructuredLocation) and location.concrete_city:
        query = build_query(
            term, location.concrete_city, location.concrete_state, location.country
        )
        return NextQuery(
            issued=IssuedQuery(query=query, source=QuerySource.CITY, value=location.city),
            location=location,
        )

    if not isinstance(location, SimpleLocation):
        chosen = next_query(term, location, [])
        if chosen:
            return chosen

    return NextQuery(
        issued=IssuedQuery(query=build_query(term), source=QuerySource.BASE),
        location=location,
    )


def next_query(
    term: str,
    location: Optional[LocationDescriptor],
    history: Sequence[IssuedQuery],
) -> Optional[NextQuery]:
    """Pick the next query for a build, or None when every option is used.

    Does not mutate `location`: the returned NextQuery carries a copy with
    any consumed city/state removed, which the caller must persist together
    with the new history entry.
    """
    working = (location or SimpleLocation()).model_copy(deep=True)
    issued = {q.query for q in history}

    chosen: Optional[IssuedQuery] = None
    if isinstance(working, StructuredLocation):
        chosen = (
            _next_city(term, working, issued)
            or _all_cities_state(term, working, issued)
            or _all_states(term, working, issued)
            or _exact_state(term, working, issued)
            or _country(term, working, issued)
        )
    elif isinstance(working, FreeTextLocation):
        chosen = _next_free_text(term, working, history, issued)

    chosen = chosen or _variation(term, working, issued) or _bare_term(term, issued)

    if chosen is None:
        logger.debug(f"No more queries for '{term}' after {len(history)} issued")
        return None
    return NextQuery(issued=chosen, location=working)


def _next_city(
    term: str, location: StructuredLocation, issued: set[str]
) -> Optional[IssuedQuery]:
    while location.cities:
        city = location.cities.pop(0)
        query = build_query(term, city, location.concrete_state, location.country)
        if query not in issued:
            return IssuedQuery(query=query, source=QuerySource.CITY, value=city)
    return None


def _all_cities_state(
    term: str, location: StructuredLocation, issued: set[str]
) -> Optional[IssuedQuery]:
    if location.city != ALL_CITIES or not location.concrete_state:
        return None
    query = build_query(term, location.concrete_state, location.country)
    if query in issued:
        return None
    return IssuedQuery(query=query, source=QuerySource.STATE, value=location.state)


def _all_states(
    term: str, location: StructuredLocation, issued: set[str]
) -> Optional[IssuedQuery]:
    if location.state != ALL_STATES and not location.states:
        return None

    while location.states:
        state = location.states.pop(0)
        query = build_query(term, state, location.country)
        if query not in issued:
            return IssuedQuery(query=query, source=QuerySource.STATE, value=state)

    return _country(term, location, issued)


def _exact_state(
    term: str, location: StructuredLocation, issued: set[str]
) -> Optional[IssuedQuery]:
    state = location.concrete_state
    if not state:
        return None
    query = build_query(term, state, location.country)
    if query in issued:
        return None
    return IssuedQuery(query=query, source=QuerySource.STATE, value=state)


def _country(
    term: str, location: StructuredLocation, issued: set[str]
) -> Optional[IssuedQuery]:
    if not location.country:
        return None
    query = build_query(term, location.country)
    if query in issued:
        return None
    return IssuedQuery(query=query, source=QuerySource.COUNTRY, value=location.country)


def _next_free_text(
    term: str,
    location: FreeTextLocation,
    history: Sequence[IssuedQuery],
    issued: set[str],
) -> Optional[IssuedQuery]:
    used = {q.value for q in history if q.source == QuerySource.FREE_TEXT}
    for place in location.locations:
        place = place.strip()
        if not place or place in used:
            continue
        query = build_query(term, place)
        if query not in issued:
            return IssuedQuery(query=query, source=QuerySource.FREE_TEXT, value=place)
    return None


def _variation_context(location: LocationDescriptor) -> tuple[Optional[str], ...]:
    if not isinstance(location, StructuredLocation):
        return ()
    if location.concrete_city:
        return (location.concrete_city, location.concrete_state, location.country)
    if location.concrete_state:
        return (location.concrete_state, location.country)
    if location.country:
        return (location.country,)
    return ()


def _variation(
    term: str, location: LocationDescriptor, issued: set[str]
) -> Optional[IssuedQuery]:
    context = _variation_context(location)
    for variation in TERM_VARIATIONS:
        query = build_query(f"{term} {variation}", *context)
        if query not in issued:
            return IssuedQuery(query=query, source=QuerySource.VARIATION, value=variation)
    return None


def _bare_term(term: str, issued: set[str]) -> Optional[IssuedQuery]:
    query = build_query(term)
    if not query or query in issued:
        return None
    return IssuedQuery(query=query, source=QuerySource.BASE)
