"""
Convo Backend — Multi-Table Object Mapper
==========================================

What:  Composes and decomposes a logical object stored across a main table
       and dependent (secondary) tables.
How:   A TableConfig lists the tables and a Relation saying which table loads
       first and which key on the main record links each secondary table.
       A *table object* is a list of records indexed like `config.tables`.

           UserProfile: tables = (profiles, users)
                        relation = main 0, secondaries (1,), keys ("user",)

               profiles[0] ──user──▶ users[1]

Consistency without transactions:
    Every store primitive commits on its own, so a failure half way leaves
    earlier writes in place. Each write operation therefore knows how to
    undo itself:

        create  → delete what was created (main first, then secondaries)
        update  → write back the snapshot of the records already updated
        delete  → re-create the deleted records from the snapshot
                  (secondaries first, so links resolve)

    Compensation is best-effort. If an undo step fails too, it is logged and
    listed on the raised TransactionError (`rollback_errors`); the original
    failure is chained as `__cause__`.

Ordering invariant:
    Secondary records are created before the main record and deleted after
    it, so a main record never points at a missing secondary one.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence, Tuple

from convo.exceptions import NotFoundError, TransactionError
from convo.store import (
    Filter,
    Record,
    Table,
    categories_table,
    chats_table,
    conversations_table,
    messages_table,
    profiles_table,
    users_table,
)

logger = logging.getLogger(__name__)

TableObject = List[Optional[Record]]


@dataclass(frozen=True)
class Relation:
    """Loading order of a multi-table object and the keys linking its tables."""

    main_table_id: int = 0
    secondary_table_ids: Tuple[int, ...] = ()
    table_keys: Tuple[str, ...] = ()

    def __post_init__(self):
        if len(self.secondary_table_ids) != len(self.table_keys):
            raise ValueError("Each secondary table needs exactly one linking key")
        if self.main_table_id in self.secondary_table_ids:
            raise ValueError("The main table cannot also be a secondary table")

    @property
    def links(self) -> List[Tuple[int, str]]:
        return list(zip(self.secondary_table_ids, self.table_keys))


@dataclass(frozen=True)
class TableConfig:
    name: str
    tables: Tuple[Table, ...]
    relation: Relation = field(default_factory=Relation)

    def __post_init__(self):
        ids = (self.relation.main_table_id, *self.relation.secondary_table_ids)
        if any(i < 0 or i >= len(self.tables) for i in ids):
            raise ValueError(f"Relation of '{self.name}' refers to an unknown table")

    @property
    def main_table(self) -> Table:
        return self.tables[self.relation.main_table_id]


class TableObjectMapper:
    """CRUD over multi-table objects described by a TableConfig."""

    def __init__(self, config: TableConfig):
        self.config = config

    @property
    def _relation(self) -> Relation:
        return self.config.relation

    def _empty(self) -> TableObject:
        return [None] * len(self.config.tables)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def query(
        self,
        offset: int = 0,
        limit: int = 20,
        filters: Iterable[Filter] = (),
    ) -> List[TableObject]:
        """
        Loads a page of main records and their secondary records.

        Objects with a dangling link are skipped rather than returned half
        built, so a page may hold fewer objects than `limit`.
        """
        main_id = self._relation.main_table_id
        main_records = await self.config.main_table.get_many(offset, limit, filters)

        objects: List[TableObject] = []
        for main_record in main_records:
            obj = self._empty()
            obj[main_id] = main_record
            complete = True
            for table_id, key in self._relation.links:
                secondary = await self.config.tables[table_id].read(main_record.get(key))
                if secondary is None:
                    logger.warning(
                        "Skipping %s %s: linked %s record %s is missing",
                        self.config.name,
                        main_record.get("id"),
                        self.config.tables[table_id].name,
                        main_record.get(key),
                    )
                    complete = False
                    break
                obj[table_id] = secondary
            if complete:
                objects.append(obj)
        return objects

    async def get(self, object_id: str) -> TableObject:
        """
        Reads one object by the id of its main record.

        Raises:
            NotFoundError: the main record or one of its linked records is missing.
        """
        obj = self._empty()
        main_id = self._relation.main_table_id
        try:
            obj[main_id] = await self.config.main_table.read_or_raise(object_id)
            for table_id, key in self._relation.links:
                obj[table_id] = await self.config.tables[table_id].read_or_raise(
                    obj[main_id].get(key)
                )
        except NotFoundError:
            raise NotFoundError(resource=self.config.name, resource_id=object_id)
        return obj

    # ── Writes ────────────────────────────────────────────────────────────

    def _values_for(self, values: Sequence[Optional[Record]], table_id: int) -> Record:
        if table_id < len(values) and values[table_id]:
            return dict(values[table_id])
        return {}

    async def create(self, values: Sequence[Optional[Record]]) -> TableObject:
        """
        Creates an object from per-table values.

        Secondary records are created first; their ids are wired into the
        main record's link keys before the main record is created.
        """
        relation = self._relation
        created = self._empty()
        main_values = self._values_for(values, relation.main_table_id)

        try:
            for table_id, key in relation.links:
                record = await self.config.tables[table_id].create(
                    self._values_for(values, table_id)
                )
                created[table_id] = record
                main_values[key] = record["id"]

            created[relation.main_table_id] = await self.config.main_table.create(main_values)
        except Exception as e:
            rollback_errors = await self.revert_create(created)
            logger.error("Creating %s failed: %s", self.config.name, e)
            raise TransactionError(
                message=f"Could not create the {self.config.name}.",
                operation="create",
                rollback_errors=rollback_errors,
            ) from e

        logger.info("Created %s %s", self.config.name, created[relation.main_table_id]["id"])
        return created

    async def update(self, object_id: str, values: Sequence[Optional[Record]]) -> TableObject:
        """
        Applies per-table values to an existing object.

        Only tables with values are written. Link keys and record ids are
        taken from the stored object, never from `values`.
        """
        snapshot = await self.get(object_id)
        updated = list(snapshot)
        done: List[int] = []
        link_keys = set(self._relation.table_keys)

        try:
            for table_id, table in enumerate(self.config.tables):
                table_values = {
                    key: value
                    for key, value in self._values_for(values, table_id).items()
                    if key not in link_keys and key != "id"
                }
                if not table_values:
                    continue
                updated[table_id] = await table.update_or_raise(
                    {**table_values, "id": snapshot[table_id]["id"]}
                )
                done.append(table_id)
        except Exception as e:
            rollback_errors = await self.restore(snapshot, done)
            logger.error("Updating %s %s failed: %s", self.config.name, object_id, e)
            raise TransactionError(
                message=f"Could not update the {self.config.name}.",
                operation="update",
                rollback_errors=rollback_errors,
            ) from e

        return updated

    async def delete(self, object_id: str) -> TableObject:
        """Deletes an object (main record first) and returns its last state."""
        snapshot = await self.get(object_id)
        relation = self._relation
        deleted: List[int] = []

        try:
            for table_id in (relation.main_table_id, *relation.secondary_table_ids):
                await self.config.tables[table_id].delete_or_raise(snapshot[table_id]["id"])
                deleted.append(table_id)
        except Exception as e:
            rollback_errors = await self.restore(snapshot, deleted)
            logger.error("Deleting %s %s failed: %s", self.config.name, object_id, e)
            raise TransactionError(
                message=f"Could not delete the {self.config.name}.",
                operation="delete",
                rollback_errors=rollback_errors,
            ) from e

        logger.info("Deleted %s %s", self.config.name, object_id)
        return snapshot

    # ── Compensations ─────────────────────────────────────────────────────

    async def revert_create(self, created: TableObject) -> List[str]:
        """Deletes the records of a (partially) created object."""
        relation = self._relation
        errors: List[str] = []
        for table_id in (relation.main_table_id, *reversed(relation.secondary_table_ids)):
            record = created[table_id] if table_id < len(created) else None
            if not record:
                continue
            table = self.config.tables[table_id]
            try:
                await table.delete(record["id"])
            except Exception as e:
                logger.error("Rollback: could not delete %s %s: %s", table.name, record["id"], e)
                errors.append(f"delete {table.name} {record['id']}: {e}")
        return errors

    async def restore(
        self,
        snapshot: TableObject,
        table_ids: Optional[Iterable[int]] = None,
    ) -> List[str]:
        """
        Writes records back from a snapshot, secondaries first.

        `table_ids` limits the restore to the tables that were touched.
        """
        relation = self._relation
        wanted = None if table_ids is None else set(table_ids)
        errors: List[str] = []
        for table_id in (*relation.secondary_table_ids, relation.main_table_id):
            if wanted is not None and table_id not in wanted:
                continue
            record = snapshot[table_id]
            if not record:
                continue
            table = self.config.tables[table_id]
            try:
                await table.create_or_update(record)
            except Exception as e:
                logger.error("Rollback: could not restore %s %s: %s", table.name, record["id"], e)
                errors.append(f"restore {table.name} {record['id']}: {e}")
        return errors


# ── Table Configurations ──────────────────────────────────────────────────

USER_PROFILE = TableConfig(
    name="UserProfile",
    tables=(profiles_table, users_table),
    relation=Relation(main_table_id=0, secondary_table_ids=(1,), table_keys=("user",)),
)

CONVERSATION = TableConfig(
    name="Conversation",
    tables=(conversations_table, chats_table),
    relation=Relation(main_table_id=0, secondary_table_ids=(1,), table_keys=("chat",)),
)

CATEGORY = TableConfig(name="Category", tables=(categories_table,))

MESSAGE = TableConfig(name="Message", tables=(messages_table,))

TABLE_CONFIGS = {
    config.name: config for config in (USER_PROFILE, CONVERSATION, CATEGORY, MESSAGE)
}
