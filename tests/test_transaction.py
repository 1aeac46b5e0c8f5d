"""
Convo Backend — Transaction Tests
==================================

What we test:
    ✅ add/remove bookkeeping and result indexing by operation id
    ✅ values from earlier results (use_result_for_values, callables,
       coroutine functions)
    ✅ a missing configuration aborts before anything runs
    ✅ a failing operation undoes completed writes in reverse order
"""

import pytest

from convo.core.mapper import CATEGORY, CONVERSATION, TableObjectMapper
from convo.core.transaction import Operation, Transaction
from convo.exceptions import NotFoundError, TransactionError
from convo.store import categories_table


def category(label="work", conversations=("rec_c",)):
    return [{"label": label, "conversations": list(conversations)}]


class TestBookkeeping:
    def test_unknown_method(self):
        with pytest.raises(ValueError):
            Operation("upsert")

    def test_add_and_remove(self):
        transaction = Transaction(CATEGORY)
        first = transaction.add(Operation("get", {"id": "rec_a"}))
        second = transaction.add(Operation("get", {"id": "rec_b"}))
        assert (first, second) == (0, 1)

        removed = transaction.remove(first)
        assert removed.data == {"id": "rec_a"}
        assert transaction.remove(first) is None
        assert transaction.remove(42) is None
        assert transaction.operations[0] is None


@pytest.mark.usefixtures("db")
class TestRun:
    @pytest.mark.asyncio
    async def test_results_are_indexed_by_operation_id(self):
        transaction = Transaction(CATEGORY)
        removed = transaction.add(Operation("create", {"values": category("skipped")}))
        created = transaction.add(Operation("create", {"values": category("kept")}))
        transaction.remove(removed)

        results = await transaction.run()

        assert results[removed] is None
        assert results[created][0]["label"] == "kept"
        assert len(await categories_table.get_many()) == 1

    @pytest.mark.asyncio
    async def test_use_result_for_values(self):
        transaction = Transaction(CATEGORY)
        original = transaction.add(Operation("create", {"values": category("copy")}))
        copy = transaction.add(Operation("create"), use_result_for_values=original)

        results = await transaction.run()

        assert results[copy][0]["label"] == "copy"
        assert results[copy][0]["id"] != results[original][0]["id"]

    @pytest.mark.asyncio
    async def test_callable_values_receive_earlier_results(self):
        transaction = Transaction(CATEGORY)
        created = transaction.add(Operation("create", {"values": category("first")}))
        transaction.add(
            Operation(
                "create",
                {"values": lambda results: category(conversations=[results[created][0]["id"]])},
            )
        )

        results = await transaction.run()

        assert results[1][0]["conversations"] == [results[created][0]["id"]]

    @pytest.mark.asyncio
    async def test_coroutine_values_may_read_the_store(self):
        (existing,) = await TableObjectMapper(CATEGORY).create(category("first"))

        async def copy_label(results):
            record = await categories_table.read(existing["id"])
            return category(label=record["label"] + "copy")

        transaction = Transaction(CATEGORY)
        created = transaction.add(Operation("create", {"values": copy_label}))

        results = await transaction.run()

        assert results[created][0]["label"] == "firstcopy"

    @pytest.mark.asyncio
    async def test_query_and_get(self):
        (existing,) = await TableObjectMapper(CATEGORY).create(category())
        transaction = Transaction(CATEGORY)
        transaction.add(Operation("query", {"offset": 0, "limit": 5}))
        transaction.add(Operation("get", {"id": existing["id"]}))

        listed, fetched = await transaction.run()

        assert [obj[0]["id"] for obj in listed] == [existing["id"]]
        assert fetched[0]["label"] == "work"

    @pytest.mark.asyncio
    async def test_operation_config_overrides_default(self):
        transaction = Transaction(CATEGORY)
        transaction.add(Operation("query", {"limit": 5}, config=CONVERSATION))
        (conversations,) = await transaction.run()
        assert conversations == []


@pytest.mark.usefixtures("db")
class TestFailures:
    @pytest.mark.asyncio
    async def test_missing_config_aborts_before_running(self):
        transaction = Transaction()
        transaction.add(Operation("create", {"values": category()}, config=CATEGORY))
        transaction.add(Operation("create", {"values": category()}))

        with pytest.raises(TransactionError) as exc_info:
            await transaction.run()

        assert exc_info.value.operation == "create#1"
        assert await categories_table.get_many() == []

    @pytest.mark.asyncio
    async def test_failure_reverts_completed_creates(self):
        transaction = Transaction(CATEGORY)
        transaction.add(Operation("create", {"values": category("a")}))
        transaction.add(Operation("create", {"values": category("b")}))
        transaction.add(Operation("delete", {"id": "rec_missing"}))

        with pytest.raises(TransactionError) as exc_info:
            await transaction.run()

        assert exc_info.value.operation == "delete#2"
        assert exc_info.value.rolled_back
        assert isinstance(exc_info.value.__cause__, NotFoundError)
        assert await categories_table.get_many() == []

    @pytest.mark.asyncio
    async def test_failure_restores_updated_and_deleted_objects(self):
        mapper = TableObjectMapper(CATEGORY)
        (to_update,) = await mapper.create(category("before"))
        (to_delete,) = await mapper.create(category("doomed"))

        transaction = Transaction(CATEGORY)
        transaction.add(Operation("update", {"id": to_update["id"], "values": [{"label": "after"}]}))
        transaction.add(Operation("delete", {"id": to_delete["id"]}))
        transaction.add(Operation("get", {"id": "rec_missing"}))

        with pytest.raises(TransactionError):
            await transaction.run()

        assert (await categories_table.read(to_update["id"]))["label"] == "before"
        assert (await categories_table.read(to_delete["id"]))["label"] == "doomed"
