"""Module-level table instances bound to the application's session factory."""

from convo.models import Category, Chat, Conversation, Message, Profile, User
from convo.store.table import Table

users_table = Table(User)
profiles_table = Table(Profile)
categories_table = Table(Category)
chats_table = Table(Chat)
conversations_table = Table(Conversation)
messages_table = Table(Message)
