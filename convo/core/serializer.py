"""
Convo Backend — Record Serializer
==================================

What:  Turns store records into JSON-ready dicts and merges the components
       of a multi-table object into one.
How:   Each table exposes a fixed list of public keys; anything else on the
       record (timestamps, password hashes, link ids) never leaves the
       service layer unless it is on that list.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence

PUBLIC_KEYS: Dict[str, Sequence[str]] = {
    "users": ("email",),
    "profiles": ("id", "username", "first_name", "last_name", "gender", "birthday", "categories"),
    "chats": ("id", "profiles", "messages"),
    "conversations": ("id", "chat", "label"),
    "messages": ("id", "sender", "recipient", "text", "delivered"),
    "categories": ("id", "conversations", "label"),
}

SENSITIVE_KEYS = ("password", "user")


def sanitize(value: Any) -> Any:
    """Drops None entries and converts datetimes to ISO strings, recursively."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {key: sanitize(item) for key, item in value.items() if item is not None}
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value if item is not None]
    return value


def serialize(record: Optional[Mapping[str, Any]], table: str) -> Dict[str, Any]:
    """Picks the public keys of `table` out of `record`."""
    if record is None:
        return {}
    keys = PUBLIC_KEYS.get(table, ())
    return sanitize({key: record.get(key) for key in keys})


def combine(components: Iterable[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Merges serialized components of one object.

    Earlier components win on key collisions, so the main table (always
    first) provides the object's `id`.
    """
    combined: Dict[str, Any] = {}
    for component in components:
        for key, value in component.items():
            combined.setdefault(key, value)
    return combined


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or (isinstance(value, (list, tuple, dict)) and not value)


def remove_sensitive(obj: Mapping[str, Any]) -> Dict[str, Any]:
    """Removes credentials, link ids and empty values before a response."""
    return {
        key: value
        for key, value in obj.items()
        if key not in SENSITIVE_KEYS and not _is_empty(value)
    }
