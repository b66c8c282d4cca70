"""Default optimistic patches and reconcilers for list-valued cache entries.

All helpers are pure: they return a new value and never mutate the one
passed in. Values that are not lists (counts, summaries) are returned
unchanged, with one exception: appending to an absent value starts a
new list.
"""

from typing import Any


def _record_id(record: Any, id_field: str) -> Any:
    if isinstance(record, dict):
        return record.get(id_field)
    return getattr(record, id_field, None)


def append_record(value: Any, record: dict[str, Any]) -> Any:
    """Append record to a list value (or start a list when value is None)."""
    if value is None:
        return [record]
    if isinstance(value, list):
        return [*value, record]
    return value


def merge_record(value: Any, record_id: Any, changes: dict[str, Any], id_field: str) -> Any:
    """Merge changes into the record(s) whose id is record_id.

    Works on a list of records or on a single record dict.
    """
    if isinstance(value, list):
        return [
            {**item, **changes}
            if isinstance(item, dict) and _record_id(item, id_field) == record_id
            else item
            for item in value
        ]
    if isinstance(value, dict) and value.get(id_field) == record_id:
        return {**value, **changes}
    return value


def replace_record(value: Any, record_id: Any, record: dict[str, Any], id_field: str) -> Any:
    """Replace the record whose id is record_id with the server's version."""
    if isinstance(value, list):
        return [
            dict(record) if _record_id(item, id_field) == record_id else item
            for item in value
        ]
    if isinstance(value, dict) and value.get(id_field) == record_id:
        return dict(record)
    return value


def remove_record(value: Any, record_id: Any, id_field: str) -> Any:
    """Drop every record whose id is record_id."""
    if isinstance(value, list):
        return [item for item in value if _record_id(item, id_field) != record_id]
    return value


def reconcile_placeholder(
    value: Any,
    temp_id: str,
    record: dict[str, Any],
    id_field: str,
) -> Any:
    """Swap the placeholder for the server record at the same list position.

    The first record carrying either the temporary id or the server id is
    replaced; later duplicates are dropped. Running this twice gives the
    same result as running it once.

    Raises:
        LookupError: If the list holds neither the placeholder nor the server record.
    """
    if not isinstance(value, list):
        return value
    server_id = record.get(id_field)
    ids = {temp_id, server_id}
    position = next(
        (index for index, item in enumerate(value) if _record_id(item, id_field) in ids),
        None,
    )
    if position is None:
        raise LookupError(temp_id)
    result = []
    for index, item in enumerate(value):
        if index == position:
            result.append(dict(record))
        elif _record_id(item, id_field) not in ids:
            result.append(item)
    return result
