"""
Index inspection helpers: describe a collection's indexes and decide whether
a requested index already exists.
"""

from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

IndexKeys = List[Tuple[str, Any]]


def normalise_keys(keys: Sequence[Any]) -> IndexKeys:
    """Turn driver key specs into ``[(field, direction), ...]``.

    Servers may report numeric directions as floats (``1.0``); those are
    coerced to ``int`` so they compare equal to what the caller asked for.
    String directions (``"text"``, ``"2dsphere"``) are kept as-is.
    """
    if isinstance(keys, dict):
        keys = list(keys.items())
    normalised: IndexKeys = []
    for pair in keys:
        if isinstance(pair, str):
            normalised.append((pair, 1))
            continue
        field, direction = pair[0], pair[1]
        if isinstance(direction, (int, float)) and not isinstance(direction, bool):
            direction = int(direction)
        normalised.append((str(field), direction))
    return normalised


def describe_indexes(collection) -> List[Dict[str, Any]]:
    """Return a list of index descriptions for the collection.

    Each entry contains:
    - ``name``: index name
    - ``keys``: list of ``(field, direction)`` pairs
    - ``unique``: whether the index enforces uniqueness
    """
    raw_indexes = collection.index_information()

    indexes: List[Dict[str, Any]] = []
    for name, info in raw_indexes.items():
        indexes.append({
            "name": name,
            "keys": normalise_keys(info.get("key", [])),
            "unique": info.get("unique", False),
        })
    return indexes


def find_equivalent_index(
    indexes: List[Dict[str, Any]],
    keys: Sequence[Any],
) -> Optional[str]:
    """Name of an existing index with exactly the same key list, else ``None``.

    Field order and direction both count: ``[(a, 1), (b, 1)]`` is not
    equivalent to ``[(b, 1), (a, 1)]``.
    """
    wanted = normalise_keys(keys)
    for idx in indexes:
        if normalise_keys(idx.get("keys", [])) == wanted:
            return idx["name"]
    return None


def get_indexed_fields(indexes: List[Dict[str, Any]]) -> Set[str]:
    """Extract the set of indexed field names from index descriptions."""
    fields: Set[str] = set()
    for idx in indexes:
        for field, _direction in normalise_keys(idx.get("keys", [])):
            fields.add(field)
    return fields
