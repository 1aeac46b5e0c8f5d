"""
Convo Backend — Record Store Tests
===================================

What we test:
    ✅ CRUD primitives exchange plain dicts and commit on their own
    ✅ *_or_raise primitives raise NotFoundError
    ✅ Filters: eq, in, icontains, has_any
    ✅ Driver errors surface as DatabaseError
"""

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from convo.exceptions import DatabaseError, NotFoundError
from convo.store import Filter, categories_table, chats_table, profiles_table, users_table


@pytest.mark.usefixtures("db")
class TestPrimitives:
    @pytest.mark.asyncio
    async def test_create_and_read(self):
        user = await users_table.create({"email": "a@example.com", "password": "h"})
        assert user["id"].startswith("rec_")
        assert user["created_at"] is not None

        read = await users_table.read(user["id"])
        assert read["id"] == user["id"]
        assert read["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_create_honours_explicit_id(self):
        user = await users_table.create(
            {"id": "rec_fixed", "email": "a@example.com", "password": "h"}
        )
        assert user["id"] == "rec_fixed"

    @pytest.mark.asyncio
    async def test_read_unknown_or_empty_id(self):
        assert await users_table.read("rec_missing") is None
        assert await users_table.read(None) is None
        with pytest.raises(NotFoundError):
            await users_table.read_or_raise("rec_missing")

    @pytest.mark.asyncio
    async def test_update_only_touches_given_fields(self):
        user = await users_table.create({"email": "a@example.com", "password": "h"})
        updated = await users_table.update_or_raise({"id": user["id"], "password": "h2"})
        assert updated["password"] == "h2"
        assert updated["email"] == "a@example.com"

    @pytest.mark.asyncio
    async def test_update_missing_record(self):
        with pytest.raises(NotFoundError):
            await users_table.update_or_raise({"id": "rec_missing", "password": "x"})

    @pytest.mark.asyncio
    async def test_create_or_update_restores_deleted_record(self):
        user = await users_table.create({"email": "a@example.com", "password": "h"})
        await users_table.delete(user["id"])
        restored = await users_table.create_or_update(user)
        assert restored["id"] == user["id"]
        assert await users_table.read(user["id"]) is not None

    @pytest.mark.asyncio
    async def test_delete_returns_last_state(self):
        user = await users_table.create({"email": "a@example.com", "password": "h"})
        deleted = await users_table.delete(user["id"])
        assert deleted["email"] == "a@example.com"
        assert await users_table.delete(user["id"]) is None
        with pytest.raises(NotFoundError):
            await users_table.delete_or_raise(user["id"])

    @pytest.mark.asyncio
    async def test_unknown_field_is_rejected(self):
        with pytest.raises(ValueError):
            await users_table.create({"email": "a@example.com", "password": "h", "x": 1})


@pytest.mark.usefixtures("db")
class TestGetMany:
    async def _profiles(self):
        created = []
        for username, first_name, categories in (
            ("ann", "Ann", ["rec_c1"]),
            ("bob", "Robert", ["rec_c2"]),
            ("annika", "Nika", ["rec_c1", "rec_c3"]),
        ):
            user = await users_table.create({"email": f"{username}@example.com", "password": "h"})
            created.append(
                await profiles_table.create(
                    {
                        "user": user["id"],
                        "username": username,
                        "first_name": first_name,
                        "categories": categories,
                    }
                )
            )
        return created

    @pytest.mark.asyncio
    async def test_pagination_in_creation_order(self):
        ann, bob, annika = await self._profiles()
        page = await profiles_table.get_many(offset=1, limit=1)
        assert [p["id"] for p in page] == [bob["id"]]

    @pytest.mark.asyncio
    async def test_eq_and_in(self):
        ann, bob, annika = await self._profiles()
        assert (await profiles_table.find_first(username="bob"))["id"] == bob["id"]
        found = await profiles_table.get_many(filters=[Filter("id", "in", [ann["id"], annika["id"]])])
        assert {p["id"] for p in found} == {ann["id"], annika["id"]}
        assert await profiles_table.get_many(filters=[Filter("id", "in", [])]) == []

    @pytest.mark.asyncio
    async def test_icontains_over_several_fields(self):
        await self._profiles()
        found = await profiles_table.get_many(
            filters=[Filter(("username", "first_name"), "icontains", "NIKA")]
        )
        assert [p["username"] for p in found] == ["annika"]

    @pytest.mark.asyncio
    async def test_icontains_escapes_wildcards(self):
        await self._profiles()
        found = await profiles_table.get_many(filters=[Filter("username", "icontains", "%")])
        assert found == []

    @pytest.mark.asyncio
    async def test_has_any_on_json_lists(self):
        await self._profiles()
        found = await profiles_table.get_many(
            filters=[Filter("categories", "has_any", ["rec_c1"])]
        )
        assert [p["username"] for p in found] == ["ann", "annika"]

    @pytest.mark.asyncio
    async def test_unknown_operator(self):
        with pytest.raises(ValueError):
            await categories_table.get_many(filters=[Filter("label", "regex", ".*")])


@pytest.mark.usefixtures("db")
class TestErrors:
    @pytest.mark.asyncio
    async def test_driver_error_becomes_database_error(self):
        error = OperationalError("SELECT", {}, Exception("database is locked"))
        with patch.object(chats_table, "_session_factory", side_effect=error):
            with pytest.raises(DatabaseError) as exc_info:
                await chats_table.create({"profiles": ["rec_a"], "messages": []})
        assert exc_info.value.context["table"] == "chats"
        assert exc_info.value.context["operation"] == "create"
