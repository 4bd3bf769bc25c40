"""Location specificity classification."""

from typing import Optional

from contactdb.services.builder.models import (
    FreeTextLocation,
    LocationDescriptor,
    StructuredLocation,
)


def is_specific(location: Optional[LocationDescriptor]) -> bool:
    """Whether a location pins a build to exactly one place.

    Specific builds issue one location-bearing query and then finalize,
    whether or not the target was reached.

    - Simple or missing location: specific.
    - Structured: specific iff it has a concrete city and a concrete state
      and no expansion lists.
    - Free text: never specific here; the sequencer decides when its
      locations are used up.
    """
    if location is None:
        return True

    if isinstance(location, FreeTextLocation):
        return False

    if isinstance(location, StructuredLocation):
        if location.cities or location.states:
            return False
        return bool(location.concrete_city and location.concrete_state)

    return True
