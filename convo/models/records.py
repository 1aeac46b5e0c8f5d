"""
Convo Backend — Record Models
==============================

What:  ORM models for the six physical tables of the record store.
How:   Plain declarative models with opaque string ids. List-valued fields
       (category links, chat participants, message references) are JSON
       arrays of record ids, the way the hosted store keeps multi-links.
Who:   Wrapped by `convo.store.table.Table`; read by Alembic for migrations.

Logical objects vs physical tables:
    UserProfile  = profiles ⋈ users          (profiles.user → users.id)
    Conversation = conversations ⋈ chats     (conversations.chat → chats.id)
    Category     = categories
    Message      = messages

    The link lives on the main record, so the secondary record must exist
    before the main one is written. The mapper (convo/core/mapper.py) keeps
    that ordering.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from convo.database import Base


def new_record_id() -> str:
    """Opaque record identifier, e.g. 'rec_3f9c0d51a2b84e7c9d10'."""
    return f"rec_{uuid.uuid4().hex[:20]}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordMixin:
    """Columns every record carries: id plus store-managed timestamps."""

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_record_id)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id})>"


class User(RecordMixin, Base):
    """Credentials half of a UserProfile. `password` holds a bcrypt hash."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password: Mapped[str] = mapped_column(String(255), nullable=False)


class Profile(RecordMixin, Base):
    """Public half of a UserProfile; always linked to exactly one user."""

    __tablename__ = "profiles"

    user: Mapped[str] = mapped_column(
        String(32), ForeignKey("users.id"), nullable=False, unique=True
    )
    username: Mapped[Optional[str]] = mapped_column(String(30))
    first_name: Mapped[Optional[str]] = mapped_column(String(30))
    last_name: Mapped[Optional[str]] = mapped_column(String(30))
    gender: Mapped[Optional[str]] = mapped_column(String(16))
    birthday: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    categories: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)


class Category(RecordMixin, Base):
    __tablename__ = "categories"

    label: Mapped[str] = mapped_column(String(30), nullable=False)
    conversations: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)


class Chat(RecordMixin, Base):
    """Participants and message references of a conversation."""

    __tablename__ = "chats"

    profiles: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    messages: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)


class Conversation(RecordMixin, Base):
    __tablename__ = "conversations"

    chat: Mapped[str] = mapped_column(
        String(32), ForeignKey("chats.id"), nullable=False, unique=True
    )
    label: Mapped[str] = mapped_column(String(30), nullable=False)


class Message(RecordMixin, Base):
    __tablename__ = "messages"

    sender: Mapped[str] = mapped_column(String(32), nullable=False)
    recipient: Mapped[str] = mapped_column(String(32), nullable=False)
    text: Mapped[str] = mapped_column(Text, nullable=False)
    delivered: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("idx_messages_delivered", "delivered"),
    )
