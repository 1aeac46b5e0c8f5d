"""
Convo Backend — Record Store
=============================

What:  The hosted-store collaborator: one `Table` per physical table, each
       offering single-record primitives that commit on their own.
"""

from convo.store.table import Filter, Record, Table  # noqa: F401
from convo.store.tables import (  # noqa: F401
    categories_table,
    chats_table,
    conversations_table,
    messages_table,
    profiles_table,
    users_table,
)
