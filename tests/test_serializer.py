"""Tests for record serialization, object merging and sensitive-field removal."""

from datetime import datetime, timezone

from convo.core.serializer import combine, remove_sensitive, sanitize, serialize


def test_serialize_keeps_public_keys_only():
    record = {
        "id": "rec_p",
        "user": "rec_u",
        "username": "ann",
        "created_at": datetime(2024, 1, 1, tzinfo=timezone.utc),
        "categories": [],
    }
    assert serialize(record, "profiles") == {"id": "rec_p", "username": "ann", "categories": []}


def test_serialize_missing_record():
    assert serialize(None, "profiles") == {}


def test_sanitize_converts_datetimes_and_drops_none():
    value = {"a": datetime(2024, 1, 1, 12, tzinfo=timezone.utc), "b": None, "c": [1, None]}
    assert sanitize(value) == {"a": "2024-01-01T12:00:00+00:00", "c": [1]}


def test_combine_first_component_wins():
    profile = {"id": "rec_p", "username": "ann"}
    user = {"id": "rec_u", "email": "ann@example.com"}
    assert combine([profile, user]) == {
        "id": "rec_p",
        "username": "ann",
        "email": "ann@example.com",
    }


def test_remove_sensitive_drops_credentials_links_and_empty_values():
    obj = {
        "id": "rec_p",
        "password": "$2b$...",
        "user": "rec_u",
        "username": "",
        "categories": [],
        "unread": 0,
        "muted": False,
    }
    assert remove_sensitive(obj) == {"id": "rec_p", "unread": 0, "muted": False}
