"""
Convo Backend — Resource Services (Business Logic)
===================================================

What:  Generic CRUD over one logical entity, plus the entity-specific rules.
How:   Every write follows the same pipeline:

           JSON body
             │ validate + segregate      (convo.core.validator)
             ▼
           [values per table]
             │ hash password fields      (convo.core.security)
             ▼
           TableObjectMapper / Transaction
             │ serialize each record     (convo.core.serializer)
             ▼
           combine → remove sensitive → response dict

Who:   Route handlers. One module-level instance per entity.

Collection Pages:
    GET /api/profiles?page=2&size=10&search=ann
        page < 1       → 1
        size < 1       → settings.default_page_size
        size > max     → settings.max_page_size
        page too far   → last page whose offset fits MAX_OFFSET (an empty page)
    size + 1 objects are loaded; the extra one only proves a next page exists.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

from convo.config import settings
from convo.core import querystring, validator
from convo.core.mapper import (
    CATEGORY,
    CONVERSATION,
    MESSAGE,
    USER_PROFILE,
    TableConfig,
    TableObject,
    TableObjectMapper,
)
from convo.core.security import hash_password
from convo.core.serializer import combine, remove_sensitive, serialize
from convo.core.transaction import Operation, Transaction
from convo.exceptions import PermissionDeniedError, ValidationError
from convo.store import Filter, categories_table, chats_table, conversations_table, users_table

logger = logging.getLogger(__name__)

HASHED_FIELDS = ("password",)

# Largest offset a page may reach; keeps (page - 1) * size inside a 32-bit integer
MAX_OFFSET = 2**31 - 1


class ResourceService:
    """
    CRUD over one table configuration.

    Subclasses add search filters (`build_filters`) and pre-write checks
    (`before_create`, `before_update`, `before_delete`).

    `caller_id` is the authenticated profile behind a write. Routes always pass
    it; internal callers may leave it out to skip the ownership checks.
    """

    def __init__(self, entity: str, config: TableConfig):
        self.entity = entity
        self.config = config
        self.mapper = TableObjectMapper(config)
        self.template = querystring.TEMPLATES[entity]

    # ── Helpers ───────────────────────────────────────────────────────────

    def to_response(self, obj: TableObject) -> Dict[str, Any]:
        components = [
            serialize(record, table.name) for record, table in zip(obj, self.config.tables)
        ]
        return remove_sensitive(combine(components))

    @staticmethod
    async def hash_sensitive(values: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        hashed = []
        for table_values in values:
            table_values = dict(table_values)
            for key in HASHED_FIELDS:
                if table_values.get(key):
                    table_values[key] = await hash_password(table_values[key])
            hashed.append(table_values)
        return hashed

    @staticmethod
    def page_bounds(query: Mapping[str, Any]) -> Tuple[int, int]:
        page = query.get("page") or 1
        size = query.get("size") or settings.default_page_size
        if page < 1:
            page = 1
        if size < 1:
            size = settings.default_page_size
        size = min(size, settings.max_page_size)
        return min(page, MAX_OFFSET // size + 1), size

    @staticmethod
    def page_url(query: Mapping[str, Any], page: int, size: int, base: str) -> str:
        """`base?page=..&size=..` followed by the remaining search parameters."""
        params = {"page": page, "size": size}
        params.update((key, value) for key, value in query.items() if key not in params)
        return querystring.to_url(params, base)

    async def build_filters(self, query: Mapping[str, Any]) -> List[Filter]:
        return []

    async def before_create(
        self, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        pass

    async def before_update(
        self, object_id: str, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        pass

    async def before_delete(self, object_id: str, caller_id: Optional[str] = None) -> None:
        pass

    # ── Operations ────────────────────────────────────────────────────────

    async def query(self, url: str, base: Optional[str] = None) -> Dict[str, Any]:
        """
        Returns one page of objects matching the search parameters of `url`.

        `base` is the URL the previous/next links are built on; it defaults
        to `url` without its query string.
        """
        query = querystring.parse(url, self.template)
        page, size = self.page_bounds(query)
        if base is None:
            base = url.split("?", 1)[0]

        filters = await self.build_filters(query)
        objects = await self.mapper.query(
            offset=(page - 1) * size,
            limit=size + 1,
            filters=filters,
        )

        has_previous_page = page > 1
        has_next_page = len(objects) > size
        objects = objects[:size]

        previous = self.page_url(query, page - 1, size, base) if has_previous_page else None
        next_url = self.page_url(query, page + 1, size, base) if has_next_page else None

        return {
            "count": len(objects),
            "has_previous_page": has_previous_page,
            "has_next_page": has_next_page,
            "previous": previous,
            "next": next_url,
            "results": [self.to_response(obj) for obj in objects],
        }

    async def create(self, data: Any, caller_id: Optional[str] = None) -> Dict[str, Any]:
        values = validator.validate(self.entity, data)
        await self.before_create(values, caller_id)
        values = await self.hash_sensitive(values)
        obj = await self.mapper.create(values)
        return self.to_response(obj)

    async def get(self, object_id: str) -> Dict[str, Any]:
        return self.to_response(await self.mapper.get(object_id))

    async def update(
        self, object_id: str, data: Any, caller_id: Optional[str] = None
    ) -> Dict[str, Any]:
        values = validator.validate(self.entity, data, update=True)
        await self.before_update(object_id, values, caller_id)
        values = await self.hash_sensitive(values)
        obj = await self.mapper.update(object_id, values)
        return self.to_response(obj)

    async def delete(self, object_id: str, caller_id: Optional[str] = None) -> Dict[str, Any]:
        await self.before_delete(object_id, caller_id)
        return self.to_response(await self.mapper.delete(object_id))


# ── Profiles ──────────────────────────────────────────────────────────────


class ProfileService(ResourceService):
    """
    UserProfile = profiles ⋈ users.

    Search parameters:
        search          substring of username, first or last name
        search_precise  exact username
        categories      profile holds any of these category ids
        conversations   profile takes part in any of these conversations
    """

    def __init__(self):
        super().__init__("UserProfile", USER_PROFILE)

    async def build_filters(self, query: Mapping[str, Any]) -> List[Filter]:
        filters: List[Filter] = []
        if query.get("search"):
            filters.append(
                Filter(("username", "first_name", "last_name"), "icontains", query["search"])
            )
        if query.get("search_precise"):
            filters.append(Filter("username", "eq", query["search_precise"]))
        if query.get("categories"):
            filters.append(Filter("categories", "has_any", query["categories"]))
        if query.get("conversations"):
            profile_ids = set()
            for conversation_id in query["conversations"]:
                conversation = await conversations_table.read(conversation_id)
                chat = await chats_table.read(conversation["chat"]) if conversation else None
                if chat:
                    profile_ids.update(chat.get("profiles") or [])
            filters.append(Filter("id", "in", sorted(profile_ids)))
        return filters

    async def _ensure_email_available(self, email: str, user_id: Optional[str] = None) -> None:
        existing = await users_table.find_first(email=email)
        if existing and existing["id"] != user_id:
            raise ValidationError(
                message="Invalid input",
                errors={"email": "is already registered"},
            )

    async def before_create(
        self, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        user_values = values[1]
        await self._ensure_email_available(user_values["email"])

    async def before_update(
        self, object_id: str, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        email = values[1].get("email")
        if email:
            profile, _ = await self.mapper.get(object_id)
            await self._ensure_email_available(email, user_id=profile.get("user"))

    async def for_user(self, user_id: str) -> Optional[TableObject]:
        """The profile object owned by a user, or None."""
        profile = await self.config.main_table.find_first(user=user_id)
        if profile is None:
            return None
        return await self.mapper.get(profile["id"])


# ── Categories ────────────────────────────────────────────────────────────


class CategoryService(ResourceService):
    def __init__(self):
        super().__init__("Category", CATEGORY)


# ── Messages ──────────────────────────────────────────────────────────────


class MessageService(ResourceService):
    """Messages are written as their sender only, and changed by the sender only."""

    def __init__(self):
        super().__init__("Message", MESSAGE)

    async def _ensure_sender(self, message_id: str, caller_id: Optional[str]) -> None:
        if caller_id is None:
            return
        (message,) = await self.mapper.get(message_id)
        if message.get("sender") != caller_id:
            raise PermissionDeniedError(message="Only the sender can change this message.")

    async def before_create(
        self, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        if caller_id is not None and values[0]["sender"] != caller_id:
            raise PermissionDeniedError(message="Messages can only be sent as yourself.")

    async def before_update(
        self, object_id: str, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        await self._ensure_sender(object_id, caller_id)
        sender = values[0].get("sender")
        if caller_id is not None and sender is not None and sender != caller_id:
            raise PermissionDeniedError(message="Messages can only be sent as yourself.")

    async def before_delete(self, object_id: str, caller_id: Optional[str] = None) -> None:
        await self._ensure_sender(object_id, caller_id)


# ── Conversations ─────────────────────────────────────────────────────────


class ConversationService(ResourceService):
    """
    Conversation = conversations ⋈ chats.

    The chat holds the participants (`profiles`) and the ordered message ids
    (`messages`); the conversation holds its label.
    """

    def __init__(self, messages: MessageService):
        super().__init__("Conversation", CONVERSATION)
        self.messages = messages

    async def build_filters(self, query: Mapping[str, Any]) -> List[Filter]:
        if not query.get("categories"):
            return []
        conversation_ids = set()
        for category_id in query["categories"]:
            category = await categories_table.read(category_id)
            if category:
                conversation_ids.update(category.get("conversations") or [])
        return [Filter("id", "in", sorted(conversation_ids))]

    async def _chat(self, conversation_id: str) -> Dict[str, Any]:
        _, chat = await self.mapper.get(conversation_id)
        return chat

    async def _participant_chat(
        self, conversation_id: str, caller_id: Optional[str]
    ) -> Dict[str, Any]:
        chat = await self._chat(conversation_id)
        if caller_id is not None and caller_id not in (chat.get("profiles") or []):
            raise PermissionDeniedError(
                message="Only participants can access this conversation."
            )
        return chat

    async def before_create(
        self, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        if caller_id is not None and caller_id not in values[1]["profiles"]:
            raise PermissionDeniedError(
                message="You can only start conversations you take part in."
            )

    async def before_update(
        self, object_id: str, values: List[Dict[str, Any]], caller_id: Optional[str] = None
    ) -> None:
        await self._participant_chat(object_id, caller_id)

    async def before_delete(self, object_id: str, caller_id: Optional[str] = None) -> None:
        await self._participant_chat(object_id, caller_id)

    async def list_messages(
        self, conversation_id: str, url: str, caller_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """One page of the conversation's messages, oldest first."""
        chat = await self._participant_chat(conversation_id, caller_id)
        message_ids = list(chat.get("messages") or [])
        query = querystring.parse(url, self.messages.template)
        page, size = self.page_bounds(query)
        base = url.split("?", 1)[0]

        objects = await self.messages.mapper.query(
            offset=(page - 1) * size,
            limit=size + 1,
            filters=[Filter("id", "in", message_ids)],
        )
        has_next_page = len(objects) > size
        objects = objects[:size]
        return {
            "count": len(objects),
            "has_previous_page": page > 1,
            "has_next_page": has_next_page,
            "previous": self.page_url({}, page - 1, size, base) if page > 1 else None,
            "next": self.page_url({}, page + 1, size, base) if has_next_page else None,
            "results": [self.messages.to_response(obj) for obj in objects],
        }

    async def send_message(
        self, conversation_id: str, data: Any, sender_id: str
    ) -> Dict[str, Any]:
        """
        Posts a message into a conversation.

        Two steps run as one Transaction: create the message, then append its
        id to the chat. If the append fails the message is deleted again.
        The chat is read again right before the append, so a message posted
        meanwhile is kept; two appends racing on the same chat still resolve
        as last write wins.

        `sender` defaults to the authenticated profile and `delivered` to now;
        `recipient` defaults to the other participant of a two-person chat.
        """
        chat = await self._chat(conversation_id)
        participants = list(chat.get("profiles") or [])
        if sender_id not in participants:
            raise PermissionDeniedError(
                message="Only participants can post in this conversation."
            )

        payload: Dict[str, Any] = {
            "sender": sender_id,
            "delivered": datetime.now(timezone.utc),
        }
        others = [profile_id for profile_id in participants if profile_id != sender_id]
        if len(others) == 1:
            payload["recipient"] = others[0]
        if isinstance(data, Mapping):
            payload.update(data)
        if payload["sender"] != sender_id:
            raise PermissionDeniedError(message="Messages can only be sent as yourself.")

        values = validator.validate("Message", payload)
        if values[0]["recipient"] not in participants:
            raise ValidationError(errors={"recipient": "is not part of this conversation"})

        transaction = Transaction()
        create_id = transaction.add(Operation("create", {"values": values}, config=MESSAGE))

        async def append_message(results: List[Any]) -> List[Optional[Dict[str, Any]]]:
            current = await self._chat(conversation_id)
            message_ids = list(current.get("messages") or [])
            return [None, {"messages": [*message_ids, results[create_id][0]["id"]]}]

        transaction.add(
            Operation(
                "update",
                {"id": conversation_id, "values": append_message},
                config=CONVERSATION,
            )
        )
        results = await transaction.run()
        message = results[create_id]
        logger.info("Message %s posted to conversation %s", message[0]["id"], conversation_id)
        return self.messages.to_response(message)


# Singleton instances, imported by route handlers
profile_service = ProfileService()
category_service = CategoryService()
message_service = MessageService()
conversation_service = ConversationService(message_service)
