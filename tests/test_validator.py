"""
Convo Backend — Validator Tests
================================

What we test:
    ✅ Valid payloads are segregated per physical table, in config order
    ✅ Required, unknown and malformed fields produce field-keyed errors
    ✅ Update mode makes every field optional and keeps only sent keys
"""

from datetime import datetime, timezone

import pytest

from convo.core.validator import validate
from convo.exceptions import ValidationError


def errors_of(entity, data, update=False):
    with pytest.raises(ValidationError) as exc_info:
        validate(entity, data, update=update)
    return exc_info.value.errors


class TestUserProfile:
    def test_segregates_profile_and_user_fields(self):
        values = validate(
            "UserProfile",
            {"email": "ann@example.com", "password": "secret1", "username": "ann"},
        )
        assert values == [
            {"username": "ann"},
            {"email": "ann@example.com", "password": "secret1"},
        ]

    def test_email_and_password_are_required_on_create(self):
        errors = errors_of("UserProfile", {"username": "ann"})
        assert errors["email"] == '"email" is required'
        assert errors["password"] == '"password" is required'

    def test_unknown_field_is_rejected(self):
        errors = errors_of(
            "UserProfile",
            {"email": "ann@example.com", "password": "secret1", "admin": True},
        )
        assert errors == {"admin": '"admin" is not allowed'}

    def test_invalid_email(self):
        errors = errors_of("UserProfile", {"email": "not-an-email", "password": "secret1"})
        assert "email" in errors

    def test_password_length(self):
        assert "password" in errors_of(
            "UserProfile", {"email": "ann@example.com", "password": "abc"}
        )
        assert "password" in errors_of(
            "UserProfile", {"email": "ann@example.com", "password": "x" * 31}
        )

    def test_forbidden_characters_in_names(self):
        errors = errors_of("UserProfile", {"username": "ann;drop"}, update=True)
        assert "username" in errors

    def test_duplicate_category_ids(self):
        errors = errors_of("UserProfile", {"categories": ["rec_a", "rec_a"]}, update=True)
        assert "categories" in errors

    def test_birthday_is_parsed_as_utc_datetime(self):
        values = validate("UserProfile", {"birthday": "2000-01-31"}, update=True)
        assert values[0]["birthday"] == datetime(2000, 1, 31, tzinfo=timezone.utc)

    def test_invalid_birthday(self):
        assert "birthday" in errors_of("UserProfile", {"birthday": "31/01/2000"}, update=True)

    def test_update_keeps_only_sent_keys(self):
        values = validate("UserProfile", {"first_name": "Ann"}, update=True)
        assert values == [{"first_name": "Ann"}, {}]

    def test_update_rejects_explicit_null(self):
        assert "username" in errors_of("UserProfile", {"username": None}, update=True)


class TestConversation:
    def test_segregates_conversation_and_chat_fields(self):
        values = validate("Conversation", {"label": "friends", "profiles": ["rec_a", "rec_b"]})
        assert values == [{"label": "friends"}, {"profiles": ["rec_a", "rec_b"]}]

    def test_label_must_be_alphanumeric(self):
        errors = errors_of("Conversation", {"label": "best friends", "profiles": ["rec_a"]})
        assert "label" in errors

    def test_chat_needs_participants(self):
        errors = errors_of("Conversation", {"label": "friends", "profiles": []})
        assert "profiles" in errors


class TestMessageAndCategory:
    def test_message_requires_every_field(self):
        errors = errors_of("Message", {"text": "hi"})
        assert set(errors) == {"sender", "recipient", "delivered"}

    def test_valid_message(self):
        values = validate(
            "Message",
            {
                "sender": "rec_a",
                "recipient": "rec_b",
                "text": "hello",
                "delivered": "2024-05-01T10:00:00Z",
            },
        )
        assert values[0]["delivered"] == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)

    def test_category_needs_conversations(self):
        errors = errors_of("Category", {"label": "work", "conversations": []})
        assert "conversations" in errors


class TestInputShape:
    def test_non_object_body(self):
        assert errors_of("Category", ["label"]) == {"body": "must be a JSON object"}
        assert errors_of("Category", None) == {"body": "must be a JSON object"}

    def test_unknown_entity(self):
        with pytest.raises(ValueError):
            validate("Unicorn", {})
