"""Completion decision for a build after a page of results was merged."""

from enum import Enum


class Decision(str, Enum):
    FINALIZE_TARGET = "finalize_target"
    FINALIZE_SPECIFIC = "finalize_specific"
    CONTINUE = "continue"


def evaluate(
    unique_contacts: int,
    target: int,
    specific: bool,
    queries_processed: int,
) -> Decision:
    """Decide what a build does next.

    Reaching the target always wins. Otherwise a specific-location build
    stops after its first processed query; everything else asks the
    sequencer for another query.
    """
    if unique_contacts >= target:
        return Decision.FINALIZE_TARGET
    if specific and queries_processed >= 1:
        return Decision.FINALIZE_SPECIFIC
    return Decision.CONTINUE
