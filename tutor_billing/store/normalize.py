"""
Normalization of raw store values.

Airtable returns linked-record fields as a bare id, a list of ids, or a
list of {"id": ...} objects depending on the field type and API options.
Checkboxes are omitted when unchecked and formulas may yield 0/1. These
helpers turn all of that into plain Python values before records reach
the calculators.
"""

from typing import Any, Optional, Tuple


def normalize_links(value: Any) -> Tuple[str, ...]:
    """
    Normalize a linked-record field to a tuple of record ids.

    Examples:
        >>> normalize_links("rec1")
        ('rec1',)
        >>> normalize_links([{"id": "rec1"}, "rec2", "rec1"])
        ('rec1', 'rec2')
        >>> normalize_links(None)
        ()
    """
    if value is None:
        return ()

    items = value if isinstance(value, (list, tuple)) else [value]

    ids = []
    for item in items:
        if isinstance(item, dict):
            item = item.get("id")
        if item is None:
            continue
        record_id = str(item).strip()
        if record_id and record_id not in ids:
            ids.append(record_id)
    return tuple(ids)


def first_link(value: Any) -> Optional[str]:
    """Return the first linked record id, or None."""
    ids = normalize_links(value)
    return ids[0] if ids else None


def to_bool(value: Any) -> bool:
    """
    Normalize a checkbox or 0/1 formula value.

    Missing values are False: Airtable omits unchecked checkboxes.
    """
    if isinstance(value, (list, tuple)):
        return bool(value) and to_bool(value[0])
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "y", "כן")
    return bool(value)


def to_number(value: Any) -> Optional[float]:
    """
    Normalize a numeric field.

    Returns:
        The number, or None if the field is empty or not numeric
    """
    if isinstance(value, (list, tuple)):
        return to_number(value[0]) if value else None
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).replace(",", "").strip())
    except ValueError:
        return None


def to_text(value: Any) -> Optional[str]:
    """Normalize a text, single-select or lookup field."""
    if isinstance(value, (list, tuple)):
        return to_text(value[0]) if value else None
    if isinstance(value, dict):
        return to_text(value.get("name"))
    if value is None:
        return None
    return str(value)
