"""Merging provider result pages into a deduplicated result set."""

import json
from typing import Any, Iterable, Optional

CHECKPOINT_RECORD_INTERVAL = 500
CHECKPOINT_QUERY_INTERVAL = 5

ResultSet = dict[str, dict]


def flatten_results(data: Any) -> list[dict]:
    """Flatten a provider payload into a flat list of records.

    Outscraper wraps records in one to three levels of lists depending on
    the request shape ([rec], [[rec]], [[[rec]]]); mixed nesting is fine.
    Non-dict leaves are dropped.
    """
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]

    records: list[dict] = []
    stack = [iter(data)] if isinstance(data, (list, tuple)) else []
    while stack:
        try:
            item = next(stack[-1])
        except StopIteration:
            stack.pop()
            continue
        if isinstance(item, (list, tuple)):
            stack.append(iter(item))
        elif isinstance(item, dict):
            records.append(item)
    return records


def identity_key(record: dict) -> str:
    """Stable identity for a place record, first available wins.

    place_id -> google_id -> name + full_address -> name + address ->
    the whole record serialized.
    """
    place_id = record.get("place_id")
    if place_id:
        return f"place_id:{place_id}"

    google_id = record.get("google_id")
    if google_id:
        return f"google_id:{google_id}"

    name = record.get("name")
    if name and record.get("full_address"):
        return f"full_address:{name}:{record['full_address']}"
    if name and record.get("address"):
        return f"address:{name}:{record['address']}"

    return "record:" + json.dumps(record, sort_keys=True, default=str)


def to_result_set(records: Iterable[dict]) -> ResultSet:
    """Build a result set from records, later records replacing earlier ones."""
    return merge_results({}, records)


def merge_results(accumulated: ResultSet, page: Iterable[dict]) -> ResultSet:
    """Merge a page of records into the accumulated set.

    Returns a new mapping; `accumulated` is left untouched. A record whose
    identity key is already present replaces the earlier one.
    """
    merged = dict(accumulated)
    for record in page:
        merged[identity_key(record)] = record
    return merged


def should_checkpoint(
    previous_count: int,
    merged_count: int,
    query_index: Optional[int] = None,
) -> bool:
    """Whether a merge warrants writing a checkpoint to storage.

    True when the merged size crosses a multiple of 500 records, or when
    the query index is a positive multiple of 5.
    """
    if merged_count // CHECKPOINT_RECORD_INTERVAL > previous_count // CHECKPOINT_RECORD_INTERVAL:
        return True
    if query_index and query_index % CHECKPOINT_QUERY_INTERVAL == 0:
        return True
    return False
