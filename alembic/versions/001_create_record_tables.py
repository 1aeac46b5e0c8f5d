"""Create record tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19 00:00:00.000000+00:00

What:  Creates the six record tables: users, profiles, categories, chats,
       conversations and messages.
How:   Ids are opaque strings generated by the application ("rec_..."), so
       no server-side defaults are needed. List-valued links are JSON arrays.

Rollback: downgrade() drops every table (destructive).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _record_columns():
    return [
        sa.Column("id", sa.String(32), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        *_record_columns(),
        sa.Column("email", sa.String(320), nullable=False),
        sa.Column("password", sa.String(255), nullable=False, comment="bcrypt hash"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )

    op.create_table(
        "profiles",
        *_record_columns(),
        sa.Column("user", sa.String(32), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("username", sa.String(30), nullable=True),
        sa.Column("first_name", sa.String(30), nullable=True),
        sa.Column("last_name", sa.String(30), nullable=True),
        sa.Column("gender", sa.String(16), nullable=True),
        sa.Column("birthday", sa.DateTime(timezone=True), nullable=True),
        sa.Column("categories", sa.JSON(), nullable=False, comment="JSON array of category ids"),
        sa.UniqueConstraint("user", name="uq_profiles_user"),
    )

    op.create_table(
        "categories",
        *_record_columns(),
        sa.Column("label", sa.String(30), nullable=False),
        sa.Column("conversations", sa.JSON(), nullable=False, comment="JSON array of conversation ids"),
    )

    op.create_table(
        "chats",
        *_record_columns(),
        sa.Column("profiles", sa.JSON(), nullable=False, comment="JSON array of profile ids"),
        sa.Column("messages", sa.JSON(), nullable=False, comment="JSON array of message ids"),
    )

    op.create_table(
        "conversations",
        *_record_columns(),
        sa.Column("chat", sa.String(32), sa.ForeignKey("chats.id"), nullable=False),
        sa.Column("label", sa.String(30), nullable=False),
        sa.UniqueConstraint("chat", name="uq_conversations_chat"),
    )

    op.create_table(
        "messages",
        *_record_columns(),
        sa.Column("sender", sa.String(32), nullable=False),
        sa.Column("recipient", sa.String(32), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("delivered", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("idx_messages_delivered", "messages", ["delivered"])

    for table in ("users", "profiles", "categories", "chats", "conversations", "messages"):
        op.create_index(f"ix_{table}_created_at", table, ["created_at"])


def downgrade() -> None:
    for table in ("messages", "conversations", "chats", "categories", "profiles", "users"):
        op.drop_index(f"ix_{table}_created_at", table_name=table)
    op.drop_index("idx_messages_delivered", table_name="messages")
    for table in ("messages", "conversations", "chats", "categories", "profiles", "users"):
        op.drop_table(table)
