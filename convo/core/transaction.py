"""
Convo Backend — Compensating Transactions
==========================================

What:  Runs an ordered list of mapper operations as one unit of work.
How:   Operations execute sequentially through TableObjectMapper. When one
       fails, the write operations that already completed are undone in
       reverse order:

           create → delete the created object
           update → restore the snapshot taken just before the update
           delete → re-create the deleted object

       Reads (query/get) have nothing to undo.
Who:   ResourceService, for writes that touch more than one object
       (e.g. posting a message and appending it to its chat).

Values of an operation can be:
    - a list of per-table dicts (the mapper's `values`)
    - a callable receiving the results so far and returning such a list
      (coroutine functions are awaited, so they may read the store)
    - taken from an earlier operation's result via `use_result_for_values`

Example:
    tx = Transaction()
    msg = tx.add(Operation("create", {"values": [{...}]}, config=MESSAGE))
    tx.add(Operation("update", {
        "id": chat_id,
        "values": lambda results: [None, {"messages": [*ids, results[msg][0]["id"]]}],
    }, config=CONVERSATION))
    results = await tx.run()
"""

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from convo.core.mapper import TableConfig, TableObject, TableObjectMapper
from convo.exceptions import TransactionError
from convo.store.table import METADATA_FIELDS

logger = logging.getLogger(__name__)

METHODS = ("query", "create", "get", "update", "delete")


@dataclass
class Operation:
    method: str
    data: Dict[str, Any] = field(default_factory=dict)
    config: Optional[TableConfig] = None

    def __post_init__(self):
        if self.method not in METHODS:
            raise ValueError(f"Unknown transaction method: {self.method}")


@dataclass
class _Entry:
    operation: Operation
    use_result_for_values: Optional[int] = None


@dataclass
class _Completed:
    op_id: int
    method: str
    mapper: TableObjectMapper
    result: Any
    snapshot: Optional[TableObject] = None


class Transaction:
    """
    An ordered set of operations over table objects.

    `config` is the default table configuration for operations that do not
    carry their own.
    """

    def __init__(self, config: Optional[TableConfig] = None):
        self.config = config
        self._entries: List[Optional[_Entry]] = []
        self.results: List[Any] = []

    @property
    def operations(self) -> List[Optional[Operation]]:
        return [entry.operation if entry else None for entry in self._entries]

    def add(self, operation: Operation, use_result_for_values: Optional[int] = None) -> int:
        """Queues an operation and returns its id."""
        self._entries.append(_Entry(operation, use_result_for_values))
        return len(self._entries) - 1

    def remove(self, op_id: int) -> Optional[Operation]:
        """Unqueues an operation; ids of the others do not shift."""
        if 0 <= op_id < len(self._entries) and self._entries[op_id] is not None:
            operation = self._entries[op_id].operation
            self._entries[op_id] = None
            return operation
        return None

    # ── Execution ─────────────────────────────────────────────────────────

    def _resolve_configs(self) -> Dict[int, TableConfig]:
        configs: Dict[int, TableConfig] = {}
        for op_id, entry in enumerate(self._entries):
            if entry is None:
                continue
            config = entry.operation.config or self.config
            if config is None:
                raise TransactionError(
                    message="Table configurations for the operation is not provided.",
                    operation=f"{entry.operation.method}#{op_id}",
                )
            configs[op_id] = config
        return configs

    async def _values(self, entry: _Entry) -> Any:
        if entry.use_result_for_values is not None:
            source = self.results[entry.use_result_for_values]
            if source is None:
                raise ValueError(
                    f"Operation {entry.use_result_for_values} has no result to use as values"
                )
            return [
                {k: v for k, v in record.items() if k not in METADATA_FIELDS} if record else None
                for record in source
            ]
        values = entry.operation.data.get("values")
        if callable(values):
            values = values(list(self.results))
            if inspect.isawaitable(values):
                values = await values
        return values or []

    async def _execute(
        self, entry: _Entry, mapper: TableObjectMapper
    ) -> Tuple[Any, Optional[TableObject]]:
        operation = entry.operation
        data = operation.data
        if operation.method == "query":
            result = await mapper.query(
                offset=data.get("offset", 0),
                limit=data.get("limit", 20),
                filters=data.get("filters", ()),
            )
            return result, None
        if operation.method == "get":
            return await mapper.get(data["id"]), None
        if operation.method == "create":
            return await mapper.create(await self._values(entry)), None
        if operation.method == "update":
            snapshot = await mapper.get(data["id"])
            return await mapper.update(data["id"], await self._values(entry)), snapshot
        return await mapper.delete(data["id"]), None

    async def _compensate(self, completed: List[_Completed]) -> List[str]:
        errors: List[str] = []
        for done in reversed(completed):
            if done.method == "create":
                errors.extend(await done.mapper.revert_create(done.result))
            elif done.method == "update":
                errors.extend(await done.mapper.restore(done.snapshot))
            elif done.method == "delete":
                errors.extend(await done.mapper.restore(done.result))
        return errors

    async def run(self) -> List[Any]:
        """
        Executes the queued operations in order.

        Returns:
            Results indexed by operation id (None for removed operations).

        Raises:
            TransactionError: a configuration is missing (nothing ran) or an
                operation failed (completed writes were compensated).
        """
        configs = self._resolve_configs()
        self.results = [None] * len(self._entries)
        completed: List[_Completed] = []

        for op_id, entry in enumerate(self._entries):
            if entry is None:
                continue
            mapper = TableObjectMapper(configs[op_id])
            try:
                result, snapshot = await self._execute(entry, mapper)
            except Exception as e:
                rollback_errors = await self._compensate(completed)
                failed = f"{entry.operation.method}#{op_id}"
                logger.error("Transaction failed at %s: %s", failed, e)
                if isinstance(e, TransactionError):
                    rollback_errors = [*e.rollback_errors, *rollback_errors]
                raise TransactionError(
                    message=f"Transaction failed at operation {failed}.",
                    operation=failed,
                    rollback_errors=rollback_errors,
                ) from e
            self.results[op_id] = result
            completed.append(_Completed(op_id, entry.operation.method, mapper, result, snapshot))

        return list(self.results)
